"""
Admission Guard Data Models

Decision values produced by every guard strategy and the per-guard usage
statistics they accumulate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Generic orchestrator role that receives tasks no specialist can take
ORCHESTRATOR_ROLE = "orchestrator"


class GuardAction(str, Enum):
    """Three-way admission outcome."""

    ALLOW = "allow"
    REJECT = "reject"
    REDIRECT = "redirect"


def _clamp(value: Any, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if math.isnan(number):
        return low
    return max(low, min(high, number))


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of filtering one task.

    ``confidence`` is clamped to [0, 1] and ``context_match_score`` to
    [0, 100] on construction, whatever the producing strategy returned.
    """

    action: GuardAction
    confidence: float
    reasoning: str
    context_match_score: float = 0.0
    missing_capabilities: tuple[str, ...] = ()
    suggested_node_type: str | None = None
    processing_time: float = 0.0
    cost: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", GuardAction(self.action))
        object.__setattr__(self, "confidence", _clamp(self.confidence, 0.0, 1.0))
        object.__setattr__(
            self, "context_match_score", _clamp(self.context_match_score, 0.0, 100.0)
        )
        object.__setattr__(
            self,
            "missing_capabilities",
            tuple(str(c) for c in self.missing_capabilities),
        )
        object.__setattr__(self, "processing_time", max(0.0, float(self.processing_time)))
        object.__setattr__(self, "cost", max(0.0, float(self.cost)))

    @property
    def allowed(self) -> bool:
        return self.action is GuardAction.ALLOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "context_match_score": self.context_match_score,
            "missing_capabilities": list(self.missing_capabilities),
            "suggested_node_type": self.suggested_node_type,
            "processing_time": self.processing_time,
            "cost": self.cost,
        }


@dataclass
class GuardUsageStats:
    """Running counters for one guard instance."""

    total_requests: int = 0
    allowed_requests: int = 0
    rejected_requests: int = 0
    redirected_requests: int = 0
    total_cost: float = 0.0
    total_processing_time: float = 0.0

    def record(self, decision: AdmissionDecision) -> None:
        self.total_requests += 1
        self.total_cost += decision.cost
        self.total_processing_time += decision.processing_time
        if decision.action is GuardAction.ALLOW:
            self.allowed_requests += 1
        elif decision.action is GuardAction.REJECT:
            self.rejected_requests += 1
        else:
            self.redirected_requests += 1

    def summary(self) -> dict[str, Any]:
        total = self.total_requests
        return {
            "total_requests": total,
            "allowed_requests": self.allowed_requests,
            "rejected_requests": self.rejected_requests,
            "redirected_requests": self.redirected_requests,
            "total_cost": self.total_cost,
            "total_processing_time": self.total_processing_time,
            "avg_processing_time": self.total_processing_time / total if total else 0.0,
            "success_rate": self.allowed_requests / total if total else 0.0,
        }
