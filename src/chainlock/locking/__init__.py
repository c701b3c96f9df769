"""Locked components: frozen snapshot, guarantees, rights and guarded execution."""

from chainlock.fingerprint import ExpertiseFingerprint, GuardThresholds

from .component import GuardFactory, LockedComponent, capture_snapshot
from .models import (
    CompatibilityReport,
    ContextSnapshot,
    ExecutionResult,
    GuaranteeViolation,
    LicenseType,
    LockedComponentMetadata,
    LockingConfig,
    PerformanceGuarantee,
    QualityMetric,
    QualityRequirement,
    ReusabilityRights,
    UsageCounters,
)

__all__ = [
    "CompatibilityReport",
    "ContextSnapshot",
    "ExecutionResult",
    "ExpertiseFingerprint",
    "GuaranteeViolation",
    "GuardFactory",
    "GuardThresholds",
    "LicenseType",
    "LockedComponent",
    "LockedComponentMetadata",
    "LockingConfig",
    "PerformanceGuarantee",
    "QualityMetric",
    "QualityRequirement",
    "ReusabilityRights",
    "UsageCounters",
    "capture_snapshot",
]
