"""Exception types raised by chainlock.

Only failures that prevent a locked component from being built (or rebuilt)
are raised. Once a component exists, problems are reported as result values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from chainlock.quality.models import QualityRequirementResult


class ChainlockError(Exception):
    """Base class for chainlock errors."""


class EligibilityError(ChainlockError):
    """A profile's quality is insufficient for locking."""

    def __init__(
        self,
        node_id: str,
        score: float,
        recommendations: Sequence[str],
        failed: Sequence[QualityRequirementResult] = (),
    ) -> None:
        self.node_id = node_id
        self.score = score
        self.recommendations = list(recommendations)
        self.failed = list(failed)
        gaps = ", ".join(
            f"{r.requirement.metric.value} gap {r.gap:.2f}" for r in self.failed
        )
        message = (
            f"Node {node_id} quality insufficient for locking. "
            f"Score: {round(score * 100)}%."
        )
        if gaps:
            message += f" Failed: {gaps}."
        if self.recommendations:
            message += f" Requirements: {'; '.join(self.recommendations)}"
        super().__init__(message)


class LicensePermissionError(ChainlockError, PermissionError):
    """Reusability rights do not permit the requested operation."""


class ExecutionError(ChainlockError):
    """The delegated profile failed or timed out while processing a task."""

    def __init__(self, task_id: str, reason: str) -> None:
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Execution of task {task_id} failed: {reason}")


class IntegrityError(ChainlockError):
    """A stored record's context hash does not match its snapshot."""
