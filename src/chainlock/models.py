"""
Collaborator Data Models

Dataclasses for the values exchanged with the orchestration layer (tasks and
task results) and the read-only state exposed by a live agent profile, plus the
``NodeProfile`` protocol a profile must satisfy to be assessed and locked.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

MIN_COMPLEXITY = 1
MAX_COMPLEXITY = 10


def new_id(prefix: str = "") -> str:
    """Generate a short unique identifier, optionally prefixed."""
    token = uuid.uuid4().hex[:16]
    return f"{prefix}_{token}" if prefix else token


@dataclass
class TaskRequirements:
    """Expertise requirements attached to a task."""

    domains: List[str] = field(default_factory=list)
    complexity: int = 1
    time_constraint: Optional[float] = None
    quality_target: Optional[float] = None

    def __post_init__(self) -> None:
        if not MIN_COMPLEXITY <= self.complexity <= MAX_COMPLEXITY:
            raise ValueError(
                f"complexity must be in [{MIN_COMPLEXITY}, {MAX_COMPLEXITY}], "
                f"got {self.complexity}"
            )
        if self.quality_target is not None and not 0.0 <= self.quality_target <= 1.0:
            raise ValueError(
                f"quality_target must be in [0.0, 1.0], got {self.quality_target}"
            )
        if self.time_constraint is not None and self.time_constraint <= 0.0:
            raise ValueError(
                f"time_constraint must be > 0.0, got {self.time_constraint}"
            )


@dataclass
class Task:
    """Unit of work produced by the orchestration layer."""

    description: str
    requirements: TaskRequirements = field(default_factory=TaskRequirements)
    type: str = "general"
    id: str = field(default_factory=new_id)
    dependencies: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TaskResult:
    """Outcome of a profile processing a task."""

    task_id: str
    success: bool
    tokens_used: int = 0
    response_time: float = 0.0
    quality_score: float = 0.0
    output: str = ""
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not 0.0 <= self.quality_score <= 1.0:
            raise ValueError(
                f"quality_score must be in [0.0, 1.0], got {self.quality_score}"
            )
        if self.tokens_used < 0:
            raise ValueError(f"tokens_used must be >= 0, got {self.tokens_used}")


@dataclass
class ContextWindow:
    """Token budget of a profile's context."""

    max_tokens: int
    current_usage: int = 0
    optimization_threshold: float = 0.85

    @property
    def utilization(self) -> float:
        if self.max_tokens <= 0:
            return 0.0
        return self.current_usage / self.max_tokens


@dataclass
class PerformanceStats:
    """Rolling performance statistics of a profile.

    ``avg_response_time`` is in seconds; ``success_rate`` and
    ``token_efficiency`` are ratios.
    """

    avg_response_time: float = 0.0
    token_efficiency: float = 0.0
    success_rate: float = 1.0
    last_updated: float = field(default_factory=time.time)


@dataclass
class NodeState:
    """Read-only snapshot of a live profile's state."""

    id: str
    domain: str
    subdomains: List[str]
    expertise_level: float
    performance_stats: PerformanceStats
    context_window: ContextWindow

    def __post_init__(self) -> None:
        if not self.domain:
            raise ValueError("domain cannot be empty")
        if not 0.0 <= self.expertise_level <= 1.0:
            raise ValueError(
                f"expertise_level must be in [0.0, 1.0], got {self.expertise_level}"
            )


@runtime_checkable
class NodeProfile(Protocol):
    """A mutable, evolving specialized agent.

    Consumed read-only through ``get_state`` and for work through
    ``process_task``, which may suspend while a remote model answers.
    """

    def get_state(self) -> NodeState: ...

    async def process_task(self, task: Task) -> TaskResult: ...
