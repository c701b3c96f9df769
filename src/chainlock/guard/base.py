"""Admission guard contract shared by all strategies."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from numbers import Real
from typing import Any

from chainlock.fingerprint import ExpertiseFingerprint
from chainlock.guard.models import (
    ORCHESTRATOR_ROLE,
    AdmissionDecision,
    GuardAction,
    GuardUsageStats,
)

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 5000


@dataclass(frozen=True)
class TaskView:
    """Normalized, read-only view of an incoming task."""

    task_id: str
    description: str
    domains: tuple[str, ...]
    complexity: float


class AdmissionGuard(ABC):
    """Filters tasks into allow / reject / redirect for one fingerprint.

    ``filter`` never raises: malformed input becomes a reject decision and any
    internal failure becomes a low-confidence redirect. Strategies implement
    ``_decide`` against an already validated ``TaskView``.
    """

    name: str = "guard"

    def __init__(self, fingerprint: ExpertiseFingerprint) -> None:
        if not isinstance(fingerprint, ExpertiseFingerprint):
            raise TypeError(
                f"fingerprint must be an ExpertiseFingerprint, got {type(fingerprint).__name__}"
            )
        self.fingerprint = fingerprint
        self._stats = GuardUsageStats()
        self._stats_lock = threading.Lock()

    async def filter(self, task: Any) -> AdmissionDecision:
        """Decide whether ``task`` may reach the locked component."""
        start = time.perf_counter()
        try:
            view, rejection = self._validate(task)
        except Exception:
            logger.warning("%s could not read task %r", self.name, task, exc_info=True)
            view, rejection = None, self._invalid("unreadable task", "valid-task")

        if rejection is not None:
            decision = rejection
        else:
            assert view is not None
            try:
                decision = await self._decide(view)
            except Exception as exc:
                logger.exception(
                    "%s failed on task %s; falling back to redirect", self.name, view.task_id
                )
                decision = self.fail_safe(
                    f"Guard error fallback: {type(exc).__name__}: {exc}",
                    confidence=0.5,
                    missing="error-recovery",
                )

        decision = replace(decision, processing_time=time.perf_counter() - start)
        self.record(decision)
        logger.debug(
            "%s decision for %s: %s (confidence %.2f)",
            self.name,
            view.task_id if view else "<invalid>",
            decision.action.value,
            decision.confidence,
        )
        return decision

    @abstractmethod
    async def _decide(self, view: TaskView) -> AdmissionDecision:
        """Produce a decision for a validated task."""
        ...

    @staticmethod
    def fail_safe(
        reasoning: str,
        confidence: float = 0.5,
        missing: str = "error-recovery",
        cost: float = 0.0,
    ) -> AdmissionDecision:
        """Safe default when a decision cannot be made."""
        return AdmissionDecision(
            action=GuardAction.REDIRECT,
            confidence=confidence,
            reasoning=reasoning,
            context_match_score=0.0,
            missing_capabilities=(missing,),
            suggested_node_type=ORCHESTRATOR_ROLE,
            cost=cost,
        )

    def _validate(self, task: Any) -> tuple[TaskView | None, AdmissionDecision | None]:
        if task is None:
            return None, self._invalid("null or missing task", "valid-task")

        description = getattr(task, "description", None)
        if not isinstance(description, str) or not description.strip():
            return None, self._invalid("empty or missing description", "task-description")

        requirements = getattr(task, "requirements", None)
        raw_domains = getattr(requirements, "domains", None) or []
        if not isinstance(raw_domains, (list, tuple, set, frozenset)) or not all(
            isinstance(d, str) for d in raw_domains
        ):
            return None, self._invalid("malformed domain requirements", "valid-task")

        complexity = getattr(requirements, "complexity", None)
        if complexity is None:
            complexity = 1
        if isinstance(complexity, bool) or not isinstance(complexity, Real) or complexity <= 0:
            return None, self._invalid("malformed complexity", "valid-task")

        if len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[:MAX_DESCRIPTION_LENGTH] + "..."

        view = TaskView(
            task_id=str(getattr(task, "id", "") or "<unknown>"),
            description=description,
            domains=tuple(d for d in raw_domains if d.strip()),
            complexity=float(complexity),
        )
        return view, None

    @staticmethod
    def _invalid(reason: str, missing: str) -> AdmissionDecision:
        return AdmissionDecision(
            action=GuardAction.REJECT,
            confidence=1.0,
            reasoning=f"Task validation failed: {reason}",
            context_match_score=0.0,
            missing_capabilities=(missing,),
        )

    def record(self, decision: AdmissionDecision) -> None:
        """Count a decision made on this guard's behalf, e.g. a timeout fallback."""
        with self._stats_lock:
            self._stats.record(decision)

    def get_usage_stats(self) -> dict[str, Any]:
        with self._stats_lock:
            return self._stats.summary()

    def reset_usage_stats(self) -> None:
        with self._stats_lock:
            self._stats = GuardUsageStats()

    def describe(self) -> dict[str, Any]:
        fp = self.fingerprint
        return {
            "type": self.name,
            "component_id": fp.component_id,
            "expert_domains": list(fp.expert_domains),
            "capabilities": list(fp.capabilities),
            "thresholds": {
                "min_confidence": fp.guard_thresholds.min_confidence,
                "reject_below": fp.guard_thresholds.reject_below,
            },
            "context_hash": fp.context_hash[:16] + "...",
        }
