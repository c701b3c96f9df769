"""
chainlock — Quality Gate → Lock → Guarded Execution

Freezes continuously-learning agent profiles into immutable, quality-guaranteed
components and admission-controls every task against the frozen competence
fingerprint.

Core Components:
- quality: requirement gates, domain test batteries, QualityController
- locking: snapshot, fingerprint, guarantees, rights, LockedComponent
- guard: AdmissionGuard contract with rule-based and model-backed strategies
- handles: tagged union over mutable profiles and locked components
- storage: SQLite persistence of locked component records
"""

__version__ = "0.1.0"

from .errors import (
    ChainlockError,
    EligibilityError,
    ExecutionError,
    IntegrityError,
    LicensePermissionError,
)
from .guard import (
    AdmissionDecision,
    AdmissionGuard,
    GuardAction,
    ModelBackedGuard,
    RuleBasedGuard,
)
from .locking import (
    ExecutionResult,
    ExpertiseFingerprint,
    LockedComponent,
    PerformanceGuarantee,
    ReusabilityRights,
)
from .models import NodeProfile, NodeState, Task, TaskRequirements, TaskResult
from .quality import (
    BatteryRegistry,
    LockingConfig,
    QualityAssessment,
    QualityController,
    QualityMetric,
    QualityRequirement,
)

__all__ = [
    "__version__",
    # Errors
    "ChainlockError",
    "EligibilityError",
    "ExecutionError",
    "IntegrityError",
    "LicensePermissionError",
    # Guard
    "AdmissionDecision",
    "AdmissionGuard",
    "GuardAction",
    "ModelBackedGuard",
    "RuleBasedGuard",
    # Locking
    "ExecutionResult",
    "ExpertiseFingerprint",
    "LockedComponent",
    "PerformanceGuarantee",
    "ReusabilityRights",
    # Models
    "NodeProfile",
    "NodeState",
    "Task",
    "TaskRequirements",
    "TaskResult",
    # Quality
    "BatteryRegistry",
    "LockingConfig",
    "QualityAssessment",
    "QualityController",
    "QualityMetric",
    "QualityRequirement",
]
