"""Quality assessment records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from chainlock.locking.models import LockingConfig, QualityRequirement
from chainlock.models import TaskResult


@dataclass(frozen=True)
class QualityRequirementResult:
    """One requirement measured against a profile.

    ``gap`` is how far the value falls short of the threshold, in the
    metric's unfavourable direction; 0.0 when passed.
    """

    requirement: QualityRequirement
    current_value: float
    passed: bool
    gap: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "requirement": self.requirement.to_dict(),
            "current_value": self.current_value,
            "passed": self.passed,
            "gap": self.gap,
        }


@dataclass(frozen=True)
class QualityAssessment:
    node_id: str
    is_eligible: bool
    score: float
    requirements: tuple[QualityRequirementResult, ...]
    recommendations: tuple[str, ...]
    locking_config: Optional[LockingConfig] = None
    assessed_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "requirements", tuple(self.requirements))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be in [0.0, 1.0], got {self.score}")
        if self.is_eligible and not all(r.passed for r in self.requirements):
            raise ValueError("an eligible assessment cannot contain failed requirements")

    @property
    def failed(self) -> list[QualityRequirementResult]:
        return [r for r in self.requirements if not r.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "is_eligible": self.is_eligible,
            "score": self.score,
            "requirements": [r.to_dict() for r in self.requirements],
            "recommendations": list(self.recommendations),
            "assessed_at": self.assessed_at,
        }


@dataclass
class DomainTestReport:
    """Outcome of running one domain battery."""

    passed: int = 0
    total: int = 0
    results: list[TaskResult] = field(default_factory=list)

    @property
    def pass_rate(self) -> float:
        return self.passed / self.total if self.total else 0.0

    @property
    def mean_quality(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.quality_score for r in self.results) / len(self.results)
