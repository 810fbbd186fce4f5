"""Research steps: planning, search, extraction, fact checking, synthesis."""

from datasleuth.steps.analyze import Analyze, AnalysisResult, analyze
from datasleuth.steps.base import LLMStep
from datasleuth.steps.extract import ExtractContent, extract_content
from datasleuth.steps.fact_check import FactCheck, FactCheckOutput, extract_statements, fact_check
from datasleuth.steps.plan import Plan, ResearchPlan, plan
from datasleuth.steps.refine_query import RefinedQueries, RefinedQuery, RefineQuery, refine_query
from datasleuth.steps.search import SearchWeb, search_web
from datasleuth.steps.summarize import Summarize, SummaryOutput, summarize

__all__ = [
    "AnalysisResult",
    "Analyze",
    "ExtractContent",
    "FactCheck",
    "FactCheckOutput",
    "LLMStep",
    "Plan",
    "RefineQuery",
    "RefinedQueries",
    "RefinedQuery",
    "ResearchPlan",
    "SearchWeb",
    "Summarize",
    "SummaryOutput",
    "analyze",
    "extract_content",
    "extract_statements",
    "fact_check",
    "plan",
    "refine_query",
    "search_web",
    "summarize",
]
