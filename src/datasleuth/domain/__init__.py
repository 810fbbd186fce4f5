"""Domain layer: enums, exceptions, the research state and value objects."""

from datasleuth.domain.enums import (
    ERROR_CODE_DESCRIPTIONS,
    DataSlot,
    ErrorCode,
    ErrorHandling,
    HaltReason,
    LoopStatus,
)
from datasleuth.domain.exceptions import (
    ApiError,
    ConfigurationError,
    ExtractionError,
    LLMError,
    MaxIterationsError,
    NetworkError,
    PipelineError,
    ProcessingError,
    ResearchError,
    ResearchTimeoutError,
    SearchError,
    ValidationError,
)
from datasleuth.domain.state import (
    ErrorRecord,
    ResearchState,
    StateMetadata,
    StepExecutionRecord,
    create_initial_state,
)
from datasleuth.domain.values import (
    EvaluationRecord,
    ExtractedContent,
    FactCheckResult,
    IterationRecord,
    OrchestrationIteration,
    OrchestrationSummary,
    SearchResult,
    TrackResult,
)

__all__ = [
    "ERROR_CODE_DESCRIPTIONS",
    "ApiError",
    "ConfigurationError",
    "DataSlot",
    "ErrorCode",
    "ErrorHandling",
    "ErrorRecord",
    "EvaluationRecord",
    "ExtractedContent",
    "ExtractionError",
    "FactCheckResult",
    "HaltReason",
    "IterationRecord",
    "LLMError",
    "LoopStatus",
    "MaxIterationsError",
    "NetworkError",
    "OrchestrationIteration",
    "OrchestrationSummary",
    "PipelineError",
    "ProcessingError",
    "ResearchError",
    "ResearchState",
    "ResearchTimeoutError",
    "SearchError",
    "SearchResult",
    "StateMetadata",
    "StepExecutionRecord",
    "TrackResult",
    "ValidationError",
    "create_initial_state",
]
