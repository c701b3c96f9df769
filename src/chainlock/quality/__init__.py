"""Quality gate: requirements, domain batteries and the QualityController."""

from chainlock.locking.models import LockingConfig, QualityMetric, QualityRequirement

from .batteries import BatteryCase, BatteryRegistry, DomainBattery
from .controller import QualityController, default_requirements
from .models import DomainTestReport, QualityAssessment, QualityRequirementResult

__all__ = [
    "BatteryCase",
    "BatteryRegistry",
    "DomainBattery",
    "DomainTestReport",
    "LockingConfig",
    "QualityAssessment",
    "QualityController",
    "QualityMetric",
    "QualityRequirement",
    "QualityRequirementResult",
    "default_requirements",
]
