"""
Rule-Based Guard — Normative Admission Decisions

Decides admission from the fingerprint alone, without calling a model:

1. No required domains           -> allow (general task)
2. No domain overlap             -> reject, suggest a specialist role
3. Complexity above capability   -> redirect to the orchestrator
4. Learning-requirement language -> reject (locked context cannot learn)
5. Technology outside domains    -> redirect to a technology specialist
6. Domain coverage >= 50%        -> allow
7. Otherwise                     -> redirect to the orchestrator
"""

from __future__ import annotations

from chainlock.guard.base import AdmissionGuard, TaskView
from chainlock.guard.models import ORCHESTRATOR_ROLE, AdmissionDecision, GuardAction
from chainlock.guard.tables import (
    find_incompatible_technologies,
    has_learning_requirement,
    suggest_role_for_domains,
    suggest_role_for_technology,
)

GENERAL_TASK_CONFIDENCE = 0.8
NO_OVERLAP_CONFIDENCE = 0.95
COMPLEXITY_REDIRECT_CONFIDENCE = 0.8
LEARNING_REJECT_CONFIDENCE = 0.9
TECHNOLOGY_REDIRECT_CONFIDENCE = 0.7
LOW_COVERAGE_REDIRECT_CONFIDENCE = 0.7
MIN_COVERAGE_FOR_ALLOW = 0.5

# Allow confidence weights (must sum to 1.0)
COVERAGE_WEIGHT = 0.7
COMPLEXITY_FIT_WEIGHT = 0.3


def match_domains(required: tuple[str, ...], expert: tuple[str, ...]) -> list[str]:
    """Required domains overlapping an expert domain as a substring, either way."""
    expert_lower = [d.lower() for d in expert]
    matches = []
    for domain in required:
        needle = domain.lower()
        if any(needle in e or e in needle for e in expert_lower):
            matches.append(domain)
    return matches


class RuleBasedGuard(AdmissionGuard):
    """Deterministic guard; the reference behavior for every strategy."""

    name = "rule-based"

    async def _decide(self, view: TaskView) -> AdmissionDecision:
        return self.evaluate(view)

    def evaluate(self, view: TaskView) -> AdmissionDecision:
        fp = self.fingerprint
        required = view.domains
        complexity = view.complexity

        if not required:
            return AdmissionDecision(
                action=GuardAction.ALLOW,
                confidence=GENERAL_TASK_CONFIDENCE,
                reasoning="Task has no specific domain requirements - general task accepted",
                context_match_score=GENERAL_TASK_CONFIDENCE * 100,
            )

        matches = match_domains(required, fp.expert_domains)
        if not matches:
            return AdmissionDecision(
                action=GuardAction.REJECT,
                confidence=NO_OVERLAP_CONFIDENCE,
                reasoning=(
                    f"Task domains [{', '.join(required)}] completely outside "
                    f"component expertise [{', '.join(fp.expert_domains)}]"
                ),
                context_match_score=0.0,
                missing_capabilities=required,
                suggested_node_type=suggest_role_for_domains(required),
            )

        coverage = len(matches) / len(required)
        max_capability = fp.max_competence * 10

        if complexity > max_capability:
            return AdmissionDecision(
                action=GuardAction.REDIRECT,
                confidence=COMPLEXITY_REDIRECT_CONFIDENCE,
                reasoning=(
                    f"Task complexity {complexity:g} exceeds component maximum "
                    f"{max_capability:.1f}"
                ),
                context_match_score=30.0,
                missing_capabilities=("higher-complexity-handling",),
                suggested_node_type=ORCHESTRATOR_ROLE,
            )

        if has_learning_requirement(view.description):
            return AdmissionDecision(
                action=GuardAction.REJECT,
                confidence=LEARNING_REJECT_CONFIDENCE,
                reasoning=(
                    "Task requires learning new information - the locked context is "
                    "immutable and cannot adapt"
                ),
                context_match_score=20.0,
                missing_capabilities=("learning-capability",),
                suggested_node_type="learning-capable-node",
            )

        incompatible = find_incompatible_technologies(view.description, fp.expert_domains)
        if incompatible:
            return AdmissionDecision(
                action=GuardAction.REDIRECT,
                confidence=TECHNOLOGY_REDIRECT_CONFIDENCE,
                reasoning=(
                    f"Task mentions technologies outside expertise: {', '.join(incompatible)}"
                ),
                context_match_score=40.0,
                missing_capabilities=tuple(incompatible),
                suggested_node_type=suggest_role_for_technology(incompatible[0]),
            )

        if coverage >= MIN_COVERAGE_FOR_ALLOW:
            complexity_fit = 1 - complexity / max_capability
            confidence = max(
                GENERAL_TASK_CONFIDENCE,
                coverage * COVERAGE_WEIGHT + complexity_fit * COMPLEXITY_FIT_WEIGHT,
            )
            return AdmissionDecision(
                action=GuardAction.ALLOW,
                confidence=confidence,
                reasoning=(
                    f"Task matches locked context: domains {', '.join(matches)}, "
                    f"complexity {complexity:g}/{max_capability:.1f}"
                ),
                context_match_score=confidence * 100,
            )

        return AdmissionDecision(
            action=GuardAction.REDIRECT,
            confidence=LOW_COVERAGE_REDIRECT_CONFIDENCE,
            reasoning=(
                f"Task has partial domain match but insufficient coverage: "
                f"{coverage * 100:.1f}%"
            ),
            context_match_score=coverage * 100,
            missing_capabilities=tuple(d for d in required if d not in matches),
            suggested_node_type=ORCHESTRATOR_ROLE,
        )
