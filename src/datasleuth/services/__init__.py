"""Execution engine: steps, retry, sequential and parallel executors,
flow control, orchestration and the top-level research entry point."""

from datasleuth.services.flow_control import (
    Evaluate,
    RepeatUntil,
    evaluate,
    latest_evaluation,
    repeat_until,
)
from datasleuth.services.merge import (
    MergeFunction,
    by_track,
    get_merge_strategy,
    last,
    most_confident,
    weighted,
)
from datasleuth.services.orchestration import (
    LLMToolSelector,
    Orchestrate,
    RoundRobinSelector,
    ToolSelection,
    ToolSelector,
    orchestrate,
)
from datasleuth.services.parallel import Parallel, parallel
from datasleuth.services.pipeline import execute_pipeline, run_steps
from datasleuth.services.research import default_steps, research, research_sync
from datasleuth.services.retry import (
    NO_RETRY,
    RetryPolicy,
    active_retry_policy,
    execute_with_retry,
    with_retry,
)
from datasleuth.services.step import (
    BaseStep,
    CompositeStep,
    FunctionStep,
    Step,
    create_composite_step,
    create_step,
)
from datasleuth.services.track import Track, create_track

__all__ = [
    "NO_RETRY",
    "BaseStep",
    "CompositeStep",
    "Evaluate",
    "FunctionStep",
    "LLMToolSelector",
    "MergeFunction",
    "Orchestrate",
    "Parallel",
    "RepeatUntil",
    "RetryPolicy",
    "RoundRobinSelector",
    "Step",
    "ToolSelection",
    "ToolSelector",
    "Track",
    "active_retry_policy",
    "by_track",
    "create_composite_step",
    "create_step",
    "create_track",
    "default_steps",
    "evaluate",
    "execute_pipeline",
    "execute_with_retry",
    "get_merge_strategy",
    "last",
    "latest_evaluation",
    "most_confident",
    "orchestrate",
    "parallel",
    "repeat_until",
    "research",
    "research_sync",
    "run_steps",
    "weighted",
    "with_retry",
]
