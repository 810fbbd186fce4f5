"""datasleuth.

Composable async research pipelines: steps with retry and backoff, a
sequential executor with stop/continue/rollback policies and a global
deadline, concurrent tracks with deterministic merging, bounded loops and an
agent-driven tool orchestration loop.
"""

__version__ = "0.1.0"

from datasleuth.domain import (
    DataSlot,
    ErrorCode,
    ErrorHandling,
    ResearchError,
    ResearchState,
    create_initial_state,
)
from datasleuth.infrastructure.config import PipelineConfig
from datasleuth.services import (
    RetryPolicy,
    Track,
    create_composite_step,
    create_step,
    evaluate,
    execute_pipeline,
    orchestrate,
    parallel,
    repeat_until,
    research,
)

__all__ = [
    "DataSlot",
    "ErrorCode",
    "ErrorHandling",
    "PipelineConfig",
    "ResearchError",
    "ResearchState",
    "RetryPolicy",
    "Track",
    "create_composite_step",
    "create_initial_state",
    "create_step",
    "evaluate",
    "execute_pipeline",
    "orchestrate",
    "parallel",
    "repeat_until",
    "research",
]
