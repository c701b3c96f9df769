"""
Locking Data Models

Frozen values that make up a locked component's contract: quality
requirements used at lock time, performance guarantees, reusability rights,
the context snapshot and the write-once metadata, plus the execution result
returned by guarded execution.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Mapping

from chainlock.fingerprint import compute_context_hash
from chainlock.guard.models import AdmissionDecision

METADATA_VERSION = "1.0.0"


class QualityMetric(str, Enum):
    """Metrics a quality requirement can gate on."""

    SUCCESS_RATE = "success_rate"
    RESPONSE_TIME = "response_time"
    TOKEN_EFFICIENCY = "token_efficiency"
    QUALITY_SCORE = "quality_score"

    @property
    def lower_is_better(self) -> bool:
        return self is QualityMetric.RESPONSE_TIME


class LicenseType(str, Enum):
    OPEN = "open"
    COMMERCIAL = "commercial"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class QualityRequirement:
    """A metric threshold a profile must meet to be locked.

    ``response_time`` thresholds are upper bounds (seconds); every other
    metric is a lower bound.
    """

    metric: QualityMetric
    threshold: float
    evaluation_period: float = 60.0
    test_cases: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metric", QualityMetric(self.metric))
        if self.threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {self.threshold}")
        if self.evaluation_period <= 0:
            raise ValueError(
                f"evaluation_period must be > 0, got {self.evaluation_period}"
            )
        if self.test_cases is not None and self.test_cases < 1:
            raise ValueError(f"test_cases must be >= 1, got {self.test_cases}")

    def is_met_by(self, value: float) -> bool:
        if self.metric.lower_is_better:
            return value <= self.threshold
        return value >= self.threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric.value,
            "threshold": self.threshold,
            "evaluation_period": self.evaluation_period,
            "test_cases": self.test_cases,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QualityRequirement:
        return cls(
            metric=QualityMetric(data["metric"]),
            threshold=float(data["threshold"]),
            evaluation_period=float(data.get("evaluation_period", 60.0)),
            test_cases=data.get("test_cases"),
        )


@dataclass(frozen=True)
class PerformanceGuarantee:
    """Bound a locked component promises to keep on every execution."""

    metric: QualityMetric
    confidence: float
    based_on_samples: int
    min_value: float | None = None
    max_value: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metric", QualityMetric(self.metric))
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0.0, 1.0], got {self.confidence}")
        if self.based_on_samples < 0:
            raise ValueError(
                f"based_on_samples must be >= 0, got {self.based_on_samples}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric.value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "confidence": self.confidence,
            "based_on_samples": self.based_on_samples,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PerformanceGuarantee:
        return cls(
            metric=QualityMetric(data["metric"]),
            confidence=float(data["confidence"]),
            based_on_samples=int(data["based_on_samples"]),
            min_value=data.get("min_value"),
            max_value=data.get("max_value"),
        )


@dataclass(frozen=True)
class ReusabilityRights:
    """Licensing terms of a locked component."""

    is_public: bool = True
    is_commercial: bool = False
    license_type: LicenseType = LicenseType.OPEN
    price_per_use: float | None = None
    max_uses: int | None = None
    restrictions: tuple[str, ...] = ("attribution-required", "same-domain-use-only")

    def __post_init__(self) -> None:
        object.__setattr__(self, "license_type", LicenseType(self.license_type))
        object.__setattr__(self, "restrictions", tuple(self.restrictions))
        if self.price_per_use is not None and self.price_per_use < 0:
            raise ValueError(f"price_per_use must be >= 0, got {self.price_per_use}")
        if self.max_uses is not None and self.max_uses < 1:
            raise ValueError(f"max_uses must be >= 1, got {self.max_uses}")

    def with_overrides(self, overrides: Mapping[str, Any] | None) -> ReusabilityRights:
        """New rights with ``overrides`` merged over these."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown reusability rights: {', '.join(sorted(unknown))}")
        return replace(self, **dict(overrides))

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_public": self.is_public,
            "is_commercial": self.is_commercial,
            "license_type": self.license_type.value,
            "price_per_use": self.price_per_use,
            "max_uses": self.max_uses,
            "restrictions": list(self.restrictions),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReusabilityRights:
        return cls().with_overrides(data)


@dataclass(frozen=True)
class LockingConfig:
    """Everything needed to lock a profile, as produced by an assessment."""

    quality_requirements: tuple[QualityRequirement, ...]
    performance_guarantees: tuple[PerformanceGuarantee, ...]
    reusability_rights: ReusabilityRights = field(default_factory=ReusabilityRights)

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality_requirements", tuple(self.quality_requirements))
        object.__setattr__(
            self, "performance_guarantees", tuple(self.performance_guarantees)
        )


@dataclass(frozen=True)
class ContextSnapshot:
    """Frozen capture of a profile's competence at lock time."""

    context_hash: str
    context_size: int
    domains: tuple[str, ...]
    expertise_level: float
    capabilities: tuple[str, ...]
    limitations: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "domains", tuple(self.domains))
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(self, "limitations", tuple(self.limitations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "context_hash": self.context_hash,
            "context_size": self.context_size,
            "domains": list(self.domains),
            "expertise_level": self.expertise_level,
            "capabilities": list(self.capabilities),
            "limitations": list(self.limitations),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ContextSnapshot:
        return cls(
            context_hash=data["context_hash"],
            context_size=int(data["context_size"]),
            domains=tuple(data["domains"]),
            expertise_level=float(data["expertise_level"]),
            capabilities=tuple(data["capabilities"]),
            limitations=tuple(data["limitations"]),
        )


def snapshot_hash(
    original_node_id: str,
    locked_at: float,
    version: str,
    context_size: int,
    domains: tuple[str, ...],
    expertise_level: float,
    capabilities: tuple[str, ...],
    limitations: tuple[str, ...],
) -> str:
    """Deterministic hash of everything a snapshot captures."""
    return compute_context_hash(
        {
            "original_node_id": original_node_id,
            "locked_at": locked_at,
            "version": version,
            "context_size": context_size,
            "domains": list(domains),
            "expertise_level": expertise_level,
            "capabilities": list(capabilities),
            "limitations": list(limitations),
        }
    )


@dataclass(frozen=True)
class LockedComponentMetadata:
    """Write-once description of a locked component."""

    original_node_id: str
    locked_at: float
    locking_conditions: tuple[QualityRequirement, ...]
    context_snapshot: ContextSnapshot
    performance_guarantees: tuple[PerformanceGuarantee, ...]
    reusability_rights: ReusabilityRights
    version: str = METADATA_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "locking_conditions", tuple(self.locking_conditions))
        object.__setattr__(
            self, "performance_guarantees", tuple(self.performance_guarantees)
        )

    def recompute_context_hash(self) -> str:
        snap = self.context_snapshot
        return snapshot_hash(
            self.original_node_id,
            self.locked_at,
            self.version,
            snap.context_size,
            snap.domains,
            snap.expertise_level,
            snap.capabilities,
            snap.limitations,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_node_id": self.original_node_id,
            "locked_at": self.locked_at,
            "locking_conditions": [r.to_dict() for r in self.locking_conditions],
            "context_snapshot": self.context_snapshot.to_dict(),
            "performance_guarantees": [g.to_dict() for g in self.performance_guarantees],
            "reusability_rights": self.reusability_rights.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LockedComponentMetadata:
        return cls(
            original_node_id=data["original_node_id"],
            locked_at=float(data["locked_at"]),
            locking_conditions=tuple(
                QualityRequirement.from_dict(r) for r in data["locking_conditions"]
            ),
            context_snapshot=ContextSnapshot.from_dict(data["context_snapshot"]),
            performance_guarantees=tuple(
                PerformanceGuarantee.from_dict(g) for g in data["performance_guarantees"]
            ),
            reusability_rights=ReusabilityRights.from_dict(data["reusability_rights"]),
            version=data.get("version", METADATA_VERSION),
        )


@dataclass(frozen=True)
class GuaranteeViolation:
    """A performance guarantee missed by one execution. Logged, never raised."""

    metric: QualityMetric
    actual: float | None
    bound: float | None
    kind: str  # below-minimum / above-maximum / unavailable

    def describe(self) -> str:
        if self.kind == "unavailable":
            return f"{self.metric.value} not available in result"
        relation = "<" if self.kind == "below-minimum" else ">"
        return f"{self.metric.value} {self.kind}: {self.actual} {relation} {self.bound}"


@dataclass(frozen=True)
class CompatibilityReport:
    """Outcome of the guard-free compatibility pre-check."""

    is_compatible: bool
    confidence: float
    reason: str | None = None


@dataclass
class ExecutionResult:
    """Result of one guarded execution."""

    task_id: str
    success: bool
    tokens_used: int = 0
    response_time: float = 0.0
    quality_score: float = 0.0
    output: str = ""
    error: str | None = None
    guard_decision: AdmissionDecision | None = None
    suggested_node_type: str | None = None
    guaranteed_metrics: dict[str, float] = field(default_factory=dict)
    context_integrity: bool = True
    reusability_tracking: dict[str, Any] = field(default_factory=dict)
    guarantee_violations: list[GuaranteeViolation] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "tokens_used": self.tokens_used,
            "response_time": self.response_time,
            "quality_score": self.quality_score,
            "output": self.output[:500],
            "error": self.error,
            "guard_decision": self.guard_decision.to_dict() if self.guard_decision else None,
            "suggested_node_type": self.suggested_node_type,
            "guaranteed_metrics": dict(self.guaranteed_metrics),
            "context_integrity": self.context_integrity,
            "reusability_tracking": dict(self.reusability_tracking),
            "guarantee_violations": [v.describe() for v in self.guarantee_violations],
            "created_at": self.created_at,
        }


class UsageCounters:
    """Monotonic usage and revenue counters, safe under concurrent callers."""

    def __init__(
        self, usage_count: int = 0, revenue: float = 0.0, last_used: float | None = None
    ) -> None:
        if usage_count < 0 or revenue < 0:
            raise ValueError("usage counters cannot be negative")
        self._lock = threading.Lock()
        self._usage_count = usage_count
        self._revenue = revenue
        self._last_used = last_used

    def record_use(self, price: float | None = None) -> dict[str, Any]:
        """Count one use and return the counters as they stand after it."""
        with self._lock:
            self._usage_count += 1
            if price:
                self._revenue += price
            self._last_used = time.time()
            return self._snapshot()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> dict[str, Any]:
        return {
            "usage_count": self._usage_count,
            "revenue": self._revenue,
            "last_used": self._last_used,
        }
