"""Domain enumerations for datasleuth.

These enums capture the fixed vocabularies used across the engine: error
classification codes, pipeline error-handling policies, halt reasons, loop
states, and the well-known slot names of the research-state scratch space.
"""

from enum import Enum


class ErrorCode(Enum):
    """Machine-checkable classification attached to every research error."""

    CONFIGURATION = "configuration_error"
    VALIDATION = "validation_error"
    NETWORK = "network_error"
    API = "api_error"
    LLM = "llm_error"
    SEARCH = "search_error"
    EXTRACTION = "extraction_error"
    PIPELINE = "pipeline_error"
    PROCESSING = "processing_error"
    TIMEOUT = "timeout_error"
    MAX_ITERATIONS = "max_iterations_error"
    UNKNOWN = "unknown_error"


ERROR_CODE_DESCRIPTIONS: dict[ErrorCode, str] = {
    ErrorCode.CONFIGURATION: "Invalid or missing configuration for a pipeline construct",
    ErrorCode.VALIDATION: "A value did not match its expected schema or shape",
    ErrorCode.NETWORK: "A transient network failure occurred while calling an external service",
    ErrorCode.API: "An external API returned an error response",
    ErrorCode.LLM: "The language model call failed or returned unusable output",
    ErrorCode.SEARCH: "The search provider failed to return results",
    ErrorCode.EXTRACTION: "Content could not be fetched or extracted from a page",
    ErrorCode.PIPELINE: "The pipeline halted before producing a usable result",
    ErrorCode.PROCESSING: "A step's internal logic failed",
    ErrorCode.TIMEOUT: "An operation did not complete before its deadline",
    ErrorCode.MAX_ITERATIONS: "A bounded loop exhausted its iteration budget",
    ErrorCode.UNKNOWN: "An unclassified error occurred",
}


class ErrorHandling(Enum):
    """Pipeline-level policy applied when a step's final attempt fails."""

    STOP = "stop"
    CONTINUE = "continue"
    ROLLBACK = "rollback"


class HaltReason(Enum):
    """Why a sequential run ended before its last step."""

    STEP_FAILED = "step_failed"
    ROLLED_BACK = "rolled_back"
    TIMEOUT = "timeout"


class LoopStatus(Enum):
    """States of the ``repeat_until`` state machine."""

    EVALUATING = "evaluating"
    REPEATING = "repeating"
    DONE = "done"
    MAXED_OUT = "maxed_out"


class DataSlot(str, Enum):
    """Well-known keys of ``ResearchState.data``.

    Steps are free to use other keys; these are the names the built-in
    steps and combinators agree on.
    """

    RESEARCH_PLAN = "research_plan"
    SEARCH_RESULTS = "search_results"
    EXTRACTED_CONTENT = "extracted_content"
    FACT_CHECKS = "fact_checks"
    FACTUAL_ACCURACY_SCORE = "factual_accuracy_score"
    ANALYSIS = "analysis"
    SUMMARY = "summary"
    REFINED_QUERIES = "refined_queries"
    TRACKS = "tracks"
    PARALLEL_MERGED = "parallel_merged"
    EVALUATIONS = "evaluations"
    ITERATIONS = "iterations"
    ORCHESTRATION = "orchestration"
