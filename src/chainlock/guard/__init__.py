"""Admission guards for locked components."""

from __future__ import annotations

from .base import AdmissionGuard, TaskView
from .llm import Completion, LanguageModelClient, OpenAICompatibleClient
from .model_backed import ModelBackedGuard
from .models import ORCHESTRATOR_ROLE, AdmissionDecision, GuardAction, GuardUsageStats
from .rules import RuleBasedGuard

__all__ = [
    "AdmissionDecision",
    "AdmissionGuard",
    "Completion",
    "GuardAction",
    "GuardUsageStats",
    "LanguageModelClient",
    "ModelBackedGuard",
    "OpenAICompatibleClient",
    "ORCHESTRATOR_ROLE",
    "RuleBasedGuard",
    "TaskView",
]
