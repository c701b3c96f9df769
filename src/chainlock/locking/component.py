"""
Locked Component — Immutable, Guarded Packaging of a Node Profile

A ``LockedComponent`` is built once from a live ``NodeProfile`` and a
``LockingConfig``. Construction captures a frozen context snapshot, derives
its context hash and expertise fingerprint, and binds one admission guard to
that fingerprint. Afterwards only the usage counters change.

Execution delegates to the live profile: the lock freezes the competence
contract (snapshot, fingerprint, guarantees), and every result is checked
against that contract.

Usage:
    component = LockedComponent(node, config)
    result = await component.execute_guarded(task, execution_timeout=30.0)
    if not result.success:
        route_elsewhere(result.suggested_node_type)
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from chainlock.errors import ExecutionError, IntegrityError, LicensePermissionError
from chainlock.fingerprint import ExpertiseFingerprint, GuardThresholds
from chainlock.guard import AdmissionDecision, AdmissionGuard, GuardAction, RuleBasedGuard
from chainlock.guard.rules import match_domains
from chainlock.locking.models import (
    METADATA_VERSION,
    CompatibilityReport,
    ContextSnapshot,
    ExecutionResult,
    GuaranteeViolation,
    LockedComponentMetadata,
    LockingConfig,
    QualityMetric,
    ReusabilityRights,
    UsageCounters,
    snapshot_hash,
)
from chainlock.models import NodeProfile, NodeState, Task, TaskResult, new_id

logger = logging.getLogger(__name__)

GuardFactory = Callable[[ExpertiseFingerprint], AdmissionGuard]

LOW_EXPERTISE_THRESHOLD = 0.8
HIGH_CONTEXT_UTILIZATION = 0.9

# Compatibility pre-check weights
DOMAIN_MATCH_WEIGHT = 0.7
COMPLEXITY_FIT_WEIGHT = 0.3


def derive_capabilities(state: NodeState) -> tuple[str, ...]:
    capabilities = [
        f"{state.domain}-expert",
        f"{state.domain}-analysis",
        "problem-solving",
        "context-optimization",
    ]
    capabilities.extend(f"{sub}-specialist" for sub in state.subdomains)
    return tuple(capabilities)


def derive_limitations(state: NodeState) -> tuple[str, ...]:
    limitations = []
    if state.expertise_level < LOW_EXPERTISE_THRESHOLD:
        limitations.append("Limited expertise - use for basic tasks only")
    if state.context_window.utilization > HIGH_CONTEXT_UTILIZATION:
        limitations.append("High context usage - may have reduced performance")
    limitations.append(f"Domain-specific: optimized for {state.domain} only")
    limitations.append("Immutable context - cannot learn new information")
    return tuple(limitations)


def capture_snapshot(
    state: NodeState, locked_at: float, version: str = METADATA_VERSION
) -> ContextSnapshot:
    """Freeze the competence-relevant parts of a profile's state."""
    domains = tuple(dict.fromkeys([state.domain, *state.subdomains]))
    capabilities = derive_capabilities(state)
    limitations = derive_limitations(state)
    context_size = state.context_window.current_usage
    return ContextSnapshot(
        context_hash=snapshot_hash(
            state.id,
            locked_at,
            version,
            context_size,
            domains,
            state.expertise_level,
            capabilities,
            limitations,
        ),
        context_size=context_size,
        domains=domains,
        expertise_level=state.expertise_level,
        capabilities=capabilities,
        limitations=limitations,
    )


def build_fingerprint(
    component_id: str,
    metadata: LockedComponentMetadata,
    thresholds: GuardThresholds | None = None,
) -> ExpertiseFingerprint:
    snap = metadata.context_snapshot
    return ExpertiseFingerprint(
        component_id=component_id,
        expert_domains=snap.domains,
        competence_map={domain: snap.expertise_level for domain in snap.domains},
        capabilities=snap.capabilities,
        context_hash=snap.context_hash,
        locked_at=metadata.locked_at,
        guard_thresholds=thresholds or GuardThresholds(),
    )


def quality_profile_of(state: NodeState) -> dict[str, float]:
    stats = state.performance_stats
    return {
        "success_rate": stats.success_rate,
        "avg_response_time": stats.avg_response_time,
        "token_efficiency": stats.token_efficiency,
        "expertise_level": state.expertise_level,
        "context_utilization": state.context_window.utilization,
    }


class LockedComponent:
    """Immutable, quality-guaranteed component wrapping a node profile."""

    def __init__(
        self,
        node: NodeProfile,
        config: LockingConfig,
        *,
        guard_factory: GuardFactory | None = None,
        guard_thresholds: GuardThresholds | None = None,
    ) -> None:
        if not isinstance(node, NodeProfile):
            raise TypeError(f"node must implement NodeProfile, got {type(node).__name__}")

        state = node.get_state()
        locked_at = time.time()
        metadata = LockedComponentMetadata(
            original_node_id=state.id,
            locked_at=locked_at,
            locking_conditions=config.quality_requirements,
            context_snapshot=capture_snapshot(state, locked_at),
            performance_guarantees=config.performance_guarantees,
            reusability_rights=config.reusability_rights,
        )
        self._setup(
            node,
            metadata,
            component_id=new_id("locked"),
            guard_factory=guard_factory,
            guard_thresholds=guard_thresholds,
            quality_profile=quality_profile_of(state),
            counters=UsageCounters(),
        )
        logger.info(
            "Locked node %s as %s (hash %s...)",
            state.id,
            self._component_id,
            self._context_hash[:16],
        )

    def _setup(
        self,
        node: NodeProfile,
        metadata: LockedComponentMetadata,
        *,
        component_id: str,
        guard_factory: GuardFactory | None,
        guard_thresholds: GuardThresholds | None,
        quality_profile: Mapping[str, float],
        counters: UsageCounters,
    ) -> None:
        self._node = node
        self._metadata = metadata
        self._component_id = component_id
        self._context_hash = metadata.context_snapshot.context_hash
        self._fingerprint = build_fingerprint(component_id, metadata, guard_thresholds)
        self._guard_factory = guard_factory or RuleBasedGuard
        self._guard = self._guard_factory(self._fingerprint)
        if not isinstance(self._guard, AdmissionGuard):
            raise TypeError(
                f"guard_factory must return an AdmissionGuard, got {type(self._guard).__name__}"
            )
        self._quality_profile = MappingProxyType(dict(quality_profile))
        self._counters = counters

    @classmethod
    def _from_snapshot(
        cls,
        node: NodeProfile,
        metadata: LockedComponentMetadata,
        *,
        component_id: str,
        guard_factory: GuardFactory | None = None,
        guard_thresholds: GuardThresholds | None = None,
        quality_profile: Mapping[str, float] | None = None,
        counters: UsageCounters | None = None,
    ) -> LockedComponent:
        """Build a component around an existing snapshot without reading the profile."""
        component = cls.__new__(cls)
        component._setup(
            node,
            metadata,
            component_id=component_id,
            guard_factory=guard_factory,
            guard_thresholds=guard_thresholds,
            quality_profile=quality_profile or {},
            counters=counters or UsageCounters(),
        )
        return component

    # ── Identity and frozen contract ──────────────────────────────────

    @property
    def component_id(self) -> str:
        return self._component_id

    @property
    def context_hash(self) -> str:
        return self._context_hash

    @property
    def metadata(self) -> LockedComponentMetadata:
        return self._metadata

    @property
    def fingerprint(self) -> ExpertiseFingerprint:
        return self._fingerprint

    @property
    def guard(self) -> AdmissionGuard:
        return self._guard

    @property
    def node(self) -> NodeProfile:
        return self._node

    def verify_integrity(self) -> bool:
        """True if the stored snapshot still hashes to the lock-time hash."""
        return (
            self._metadata.recompute_context_hash() == self._context_hash
            and self._fingerprint.context_hash == self._context_hash
        )

    # ── Guarded execution ─────────────────────────────────────────────

    async def execute_guarded(
        self,
        task: Task,
        *,
        guard_timeout: float | None = None,
        execution_timeout: float | None = None,
    ) -> ExecutionResult:
        """Filter ``task`` through the guard and, if allowed, run it on the profile.

        Never raises for guard or execution failures; those come back as a
        failed ``ExecutionResult``. Cancellation propagates, and a cancelled
        call does not count as a use.
        """
        task_id = str(getattr(task, "id", "") or "<unknown>")

        try:
            decision = await asyncio.wait_for(self._guard.filter(task), timeout=guard_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Guard for %s timed out after %ss on task %s",
                self._component_id,
                guard_timeout,
                task_id,
            )
            decision = AdmissionGuard.fail_safe(f"Guard timed out after {guard_timeout}s")
            self._guard.record(decision)

        if decision.action is GuardAction.REJECT:
            return self._refused(task_id, decision, f"Guard rejected: {decision.reasoning}")
        if decision.action is GuardAction.REDIRECT:
            return self._refused(task_id, decision, f"Guard redirected: {decision.reasoning}")

        try:
            outcome = await asyncio.wait_for(
                self._node.process_task(task), timeout=execution_timeout
            )
            if not isinstance(outcome, TaskResult):
                raise TypeError(
                    f"process_task returned {type(outcome).__name__}, expected TaskResult"
                )
        except asyncio.TimeoutError:
            return self._failed(
                task_id,
                decision,
                ExecutionError(task_id, f"timed out after {execution_timeout}s"),
            )
        except Exception as exc:
            return self._failed(
                task_id, decision, ExecutionError(task_id, f"{type(exc).__name__}: {exc}")
            )

        violations = self._verify_guarantees(outcome)
        for violation in violations:
            logger.warning(
                "Guarantee violation on %s task %s: %s",
                self._component_id,
                task_id,
                violation.describe(),
            )

        rights = self._metadata.reusability_rights
        usage = self._counters.record_use(rights.price_per_use)
        if rights.max_uses is not None and usage["usage_count"] >= rights.max_uses:
            logger.warning(
                "Component %s reached its usage limit (%d/%d)",
                self._component_id,
                usage["usage_count"],
                rights.max_uses,
            )

        return ExecutionResult(
            task_id=outcome.task_id or task_id,
            success=outcome.success,
            tokens_used=outcome.tokens_used,
            response_time=outcome.response_time,
            quality_score=outcome.quality_score,
            output=outcome.output,
            error=outcome.error,
            guard_decision=decision,
            guaranteed_metrics=self.guaranteed_metrics(),
            context_integrity=self.verify_integrity(),
            reusability_tracking={
                "usage_count": usage["usage_count"],
                "last_used": usage["last_used"],
                "total_revenue": usage["revenue"],
            },
            guarantee_violations=violations,
        )

    def _refused(
        self, task_id: str, decision: AdmissionDecision, error: str
    ) -> ExecutionResult:
        logger.debug(
            "%s refused task %s: %s", self._component_id, task_id, decision.action.value
        )
        return ExecutionResult(
            task_id=task_id,
            success=False,
            error=error,
            guard_decision=decision,
            suggested_node_type=decision.suggested_node_type,
            context_integrity=self.verify_integrity(),
        )

    def _failed(
        self, task_id: str, decision: AdmissionDecision, error: ExecutionError
    ) -> ExecutionResult:
        logger.warning("%s: %s", self._component_id, error)
        return ExecutionResult(
            task_id=task_id,
            success=False,
            error=str(error),
            guard_decision=decision,
            context_integrity=self.verify_integrity(),
        )

    def _verify_guarantees(self, outcome: TaskResult) -> list[GuaranteeViolation]:
        observed = {
            QualityMetric.RESPONSE_TIME: outcome.response_time,
            QualityMetric.QUALITY_SCORE: outcome.quality_score,
            QualityMetric.SUCCESS_RATE: 1.0 if outcome.success else 0.0,
        }
        violations = []
        for guarantee in self._metadata.performance_guarantees:
            # token efficiency is not observable from a single result
            if guarantee.metric not in observed:
                continue
            actual = observed[guarantee.metric]
            if guarantee.min_value is not None and actual < guarantee.min_value:
                violations.append(
                    GuaranteeViolation(
                        guarantee.metric, actual, guarantee.min_value, "below-minimum"
                    )
                )
            if guarantee.max_value is not None and actual > guarantee.max_value:
                violations.append(
                    GuaranteeViolation(
                        guarantee.metric, actual, guarantee.max_value, "above-maximum"
                    )
                )
        return violations

    def guaranteed_metrics(self) -> dict[str, float]:
        metrics: dict[str, float] = {}
        for guarantee in self._metadata.performance_guarantees:
            name = guarantee.metric.value
            if guarantee.min_value is not None:
                metrics[f"min_{name}"] = guarantee.min_value
            if guarantee.max_value is not None:
                metrics[f"max_{name}"] = guarantee.max_value
            metrics[f"{name}_confidence"] = guarantee.confidence
        return metrics

    # ── Reuse ─────────────────────────────────────────────────────────

    def clone(
        self,
        reusability_rights: ReusabilityRights | Mapping[str, Any] | None = None,
        restrictions: Iterable[str] | None = None,
    ) -> LockedComponent:
        """New component over the same profile and snapshot, with fresh counters.

        Raises ``LicensePermissionError`` when this component is not public and
        no explicit rights are supplied.
        """
        current = self._metadata.reusability_rights
        if not current.is_public and reusability_rights is None:
            raise LicensePermissionError(
                f"Component {self._component_id} is not public; "
                "cloning requires explicit reusability rights"
            )

        if isinstance(reusability_rights, ReusabilityRights):
            rights = reusability_rights
        else:
            rights = current.with_overrides(reusability_rights)
        if restrictions:
            extra = [r for r in restrictions if r not in rights.restrictions]
            rights = replace(rights, restrictions=(*rights.restrictions, *extra))

        clone = type(self)._from_snapshot(
            self._node,
            replace(self._metadata, reusability_rights=rights),
            component_id=new_id("locked"),
            guard_factory=self._guard_factory,
            guard_thresholds=self._fingerprint.guard_thresholds,
            quality_profile=self._quality_profile,
        )
        logger.info("Cloned %s as %s", self._component_id, clone.component_id)
        return clone

    def validate_task_compatibility(self, task: Task) -> CompatibilityReport:
        """Guard-free pre-check of domain overlap and complexity."""
        snap = self._metadata.context_snapshot
        required = list(task.requirements.domains)
        complexity = task.requirements.complexity

        if not match_domains(tuple(required), tuple(snap.domains)):
            return CompatibilityReport(
                is_compatible=False,
                confidence=0.0,
                reason=(
                    f"No domain overlap. Required: {', '.join(required) or 'none'}, "
                    f"Available: {', '.join(snap.domains)}"
                ),
            )

        max_complexity = math.floor(snap.expertise_level * 10)
        if complexity > max_complexity:
            return CompatibilityReport(
                is_compatible=False,
                confidence=0.0,
                reason=(
                    f"Task complexity {complexity} exceeds component capability "
                    f"{max_complexity}"
                ),
            )

        available = {d.lower() for d in snap.domains}
        match_ratio = sum(1 for d in required if d.lower() in available) / len(required)
        confidence = DOMAIN_MATCH_WEIGHT * match_ratio + COMPLEXITY_FIT_WEIGHT * (
            1 - complexity / max_complexity
        )
        return CompatibilityReport(is_compatible=True, confidence=confidence)

    # ── Read-only views ───────────────────────────────────────────────

    def get_quality_profile(self) -> dict[str, float]:
        return dict(self._quality_profile)

    def get_usage_stats(self) -> dict[str, Any]:
        stats = self._counters.snapshot()
        stats["guard"] = self._guard.get_usage_stats()
        return stats

    def get_capabilities(self) -> list[str]:
        return list(self._metadata.context_snapshot.capabilities)

    def get_limitations(self) -> list[str]:
        return list(self._metadata.context_snapshot.limitations)

    def is_public(self) -> bool:
        return self._metadata.reusability_rights.is_public

    def is_commercial(self) -> bool:
        return self._metadata.reusability_rights.is_commercial

    def get_price(self) -> float | None:
        return self._metadata.reusability_rights.price_per_use

    # ── Serialization ─────────────────────────────────────────────────

    def to_record(self) -> dict[str, Any]:
        """Plain, JSON-serializable record of the component."""
        return {
            "component_id": self._component_id,
            "guard": self._guard.name,
            "metadata": self._metadata.to_dict(),
            "fingerprint": self._fingerprint.to_dict(),
            "quality_profile": dict(self._quality_profile),
            "usage": self._counters.snapshot(),
        }

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        node: NodeProfile,
        guard_factory: GuardFactory | None = None,
    ) -> LockedComponent:
        """Rebuild a component from ``to_record`` output.

        The snapshot comes from the record, not from ``node``. Raises
        ``IntegrityError`` if the stored hash does not match the stored snapshot.
        """
        metadata = LockedComponentMetadata.from_dict(record["metadata"])
        fingerprint = ExpertiseFingerprint.from_dict(record["fingerprint"])
        stored_hash = metadata.context_snapshot.context_hash
        if metadata.recompute_context_hash() != stored_hash:
            raise IntegrityError(
                f"Context hash mismatch for component {record.get('component_id')}"
            )
        if fingerprint.context_hash != stored_hash:
            raise IntegrityError(
                f"Fingerprint hash does not match snapshot for component "
                f"{record.get('component_id')}"
            )

        usage = record.get("usage") or {}
        return cls._from_snapshot(
            node,
            metadata,
            component_id=record["component_id"],
            guard_factory=guard_factory,
            guard_thresholds=fingerprint.guard_thresholds,
            quality_profile=record.get("quality_profile"),
            counters=UsageCounters(
                usage_count=int(usage.get("usage_count", 0)),
                revenue=float(usage.get("revenue", 0.0)),
                last_used=usage.get("last_used"),
            ),
        )

    def __repr__(self) -> str:
        return (
            f"LockedComponent(id={self._component_id!r}, "
            f"node={self._metadata.original_node_id!r}, "
            f"domains={list(self._metadata.context_snapshot.domains)!r})"
        )
