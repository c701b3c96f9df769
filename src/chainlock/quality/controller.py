"""
Quality Controller — Gate Between Mutable Profiles and Locked Components

Measures a profile against quality requirements, recommends remediation for
what falls short, and locks eligible profiles into ``LockedComponent``s.

Scoring:
    per requirement = 1 + min(0.5, excess / threshold) if passed else 0
    score           = min(1, mean(per requirement))
    eligible        = every requirement passed and score >= 0.8

``response_time`` is an upper bound (seconds), so its excess is
``threshold - current``; all other metrics are lower bounds.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, Mapping

from chainlock.errors import EligibilityError
from chainlock.fingerprint import GuardThresholds
from chainlock.locking import (
    GuardFactory,
    LockedComponent,
    LockingConfig,
    PerformanceGuarantee,
    QualityMetric,
    QualityRequirement,
    ReusabilityRights,
)
from chainlock.models import NodeProfile, NodeState, TaskResult
from chainlock.quality.batteries import BatteryRegistry, DomainBattery
from chainlock.quality.models import (
    DomainTestReport,
    QualityAssessment,
    QualityRequirementResult,
)

logger = logging.getLogger(__name__)

ELIGIBILITY_THRESHOLD = 0.8
MAX_BONUS = 0.5
GUARANTEE_MARGIN = 0.9
GUARANTEE_CONFIDENCE = 0.95
DEFAULT_SAMPLES = 10
LOW_EXPERTISE = 0.8
HIGH_CONTEXT_UTILIZATION = 0.9

_REMEDIATION = {
    QualityMetric.SUCCESS_RATE: (
        "Improve success rate: {current} < {threshold} (gap {gap:.2f}). "
        "Train with more diverse scenarios."
    ),
    QualityMetric.RESPONSE_TIME: (
        "Reduce response time: {current}s > {threshold}s (gap {gap:.2f}s). "
        "Optimize context or use larger node type."
    ),
    QualityMetric.TOKEN_EFFICIENCY: (
        "Improve token efficiency: {current} < {threshold} (gap {gap:.2f}). "
        "Optimize prompts and context compression."
    ),
    QualityMetric.QUALITY_SCORE: (
        "Improve quality score: {current} < {threshold} (gap {gap:.2f}). "
        "Enhance domain expertise and training."
    ),
}


def default_requirements(domain: str) -> list[QualityRequirement]:
    """Base requirements plus the domain's extra gate."""
    requirements = [
        QualityRequirement(QualityMetric.SUCCESS_RATE, 0.85, 60.0, test_cases=10),
        QualityRequirement(QualityMetric.QUALITY_SCORE, 0.75, 60.0, test_cases=5),
    ]
    domain = domain.lower()
    if domain == "frontend":
        requirements.append(
            QualityRequirement(QualityMetric.RESPONSE_TIME, 5.0, 30.0, test_cases=5)
        )
    elif domain == "backend":
        requirements.append(
            QualityRequirement(QualityMetric.TOKEN_EFFICIENCY, 0.8, 60.0, test_cases=10)
        )
    elif domain == "ai":
        requirements.append(
            QualityRequirement(QualityMetric.QUALITY_SCORE, 0.85, 120.0, test_cases=15)
        )
    return requirements


def evaluate_requirement(
    requirement: QualityRequirement, current_value: float
) -> QualityRequirementResult:
    passed = requirement.is_met_by(current_value)
    gap = 0.0 if passed else abs(current_value - requirement.threshold)
    return QualityRequirementResult(requirement, current_value, passed, gap)


def requirement_score(result: QualityRequirementResult) -> float:
    if not result.passed:
        return 0.0
    threshold = result.requirement.threshold
    if result.requirement.metric.lower_is_better:
        excess = threshold - result.current_value
    else:
        excess = result.current_value - threshold
    if threshold == 0:
        bonus = MAX_BONUS if excess > 0 else 0.0
    else:
        bonus = min(excess / threshold, MAX_BONUS)
    return 1.0 + bonus


def build_guarantee(result: QualityRequirementResult) -> PerformanceGuarantee:
    requirement = result.requirement
    samples = requirement.test_cases or DEFAULT_SAMPLES
    if requirement.metric.lower_is_better:
        return PerformanceGuarantee(
            metric=requirement.metric,
            max_value=result.current_value / GUARANTEE_MARGIN,
            confidence=GUARANTEE_CONFIDENCE,
            based_on_samples=samples,
        )
    return PerformanceGuarantee(
        metric=requirement.metric,
        min_value=result.current_value * GUARANTEE_MARGIN,
        confidence=GUARANTEE_CONFIDENCE,
        based_on_samples=samples,
    )


class QualityController:
    """Assesses profiles and locks the eligible ones."""

    def __init__(self, batteries: BatteryRegistry | None = None) -> None:
        self._batteries = batteries if batteries is not None else BatteryRegistry.default()
        self._history: dict[str, list[QualityAssessment]] = {}

    async def assess_node_quality(
        self,
        node: NodeProfile,
        custom_requirements: Iterable[QualityRequirement] | None = None,
    ) -> QualityAssessment:
        state = node.get_state()
        requirements = (
            list(custom_requirements)
            if custom_requirements
            else default_requirements(state.domain)
        )
        logger.info("Assessing quality for node %s (%d requirements)", state.id, len(requirements))

        battery: DomainTestReport | None = None
        results = []
        for requirement in requirements:
            if requirement.metric is QualityMetric.QUALITY_SCORE:
                if battery is None:
                    battery = await self.run_domain_tests(node)
                value = battery.mean_quality
            else:
                value = self._live_metric(state, requirement.metric)
            results.append(evaluate_requirement(requirement, value))

        if results:
            score = min(1.0, sum(requirement_score(r) for r in results) / len(results))
        else:
            score = 0.0
        is_eligible = all(r.passed for r in results) and score >= ELIGIBILITY_THRESHOLD

        assessment = QualityAssessment(
            node_id=state.id,
            is_eligible=is_eligible,
            score=score,
            requirements=tuple(results),
            recommendations=tuple(self._recommendations(results, state)),
            locking_config=self._locking_config(results) if is_eligible else None,
        )
        self._history.setdefault(state.id, []).append(assessment)
        logger.info(
            "Quality assessment for %s: %d%% (%s)",
            state.id,
            round(score * 100),
            "eligible" if is_eligible else "not eligible",
        )
        return assessment

    async def lock_node(
        self,
        node: NodeProfile,
        quality_requirements: Iterable[QualityRequirement] | None = None,
        reusability_rights: ReusabilityRights | Mapping[str, Any] | None = None,
        guard_factory: GuardFactory | None = None,
        guard_thresholds: GuardThresholds | None = None,
    ) -> LockedComponent:
        """Assess ``node`` and lock it, or raise ``EligibilityError``."""
        assessment = await self.assess_node_quality(node, quality_requirements)
        if not assessment.is_eligible or assessment.locking_config is None:
            raise EligibilityError(
                assessment.node_id,
                assessment.score,
                assessment.recommendations,
                assessment.failed,
            )

        config = assessment.locking_config
        if isinstance(reusability_rights, ReusabilityRights):
            config = replace(config, reusability_rights=reusability_rights)
        elif reusability_rights:
            config = replace(
                config,
                reusability_rights=config.reusability_rights.with_overrides(reusability_rights),
            )

        return LockedComponent(
            node, config, guard_factory=guard_factory, guard_thresholds=guard_thresholds
        )

    async def run_domain_tests(
        self, node: NodeProfile, domain: str | None = None
    ) -> DomainTestReport:
        """Run a domain battery sequentially. Never raises for a missing battery."""
        target = domain or node.get_state().domain
        battery = self._batteries.get(target)
        if battery is None:
            logger.warning("No test battery found for domain: %s", target)
            return DomainTestReport()

        report = DomainTestReport(total=len(battery.cases))
        for case in battery.cases:
            task = case.build_task()
            try:
                result = await node.process_task(task)
            except Exception as exc:
                logger.warning("Battery case %s raised: %s", case.id, exc)
                result = TaskResult(
                    task_id=task.id,
                    success=False,
                    error=f"{type(exc).__name__}: {exc}",
                    metadata={"case_id": case.id},
                )
            report.results.append(result)
            if result.success and result.quality_score >= case.expected_quality:
                report.passed += 1

        logger.info(
            "Domain tests for %s: %d/%d passed", battery.domain, report.passed, report.total
        )
        return report

    def get_assessment_history(self, node_id: str) -> list[QualityAssessment]:
        return list(self._history.get(node_id, []))

    def get_battery(self, domain: str) -> DomainBattery | None:
        return self._batteries.get(domain)

    def get_available_domains(self) -> list[str]:
        return self._batteries.domains()

    @staticmethod
    def _live_metric(state: NodeState, metric: QualityMetric) -> float:
        stats = state.performance_stats
        if metric is QualityMetric.SUCCESS_RATE:
            return stats.success_rate
        if metric is QualityMetric.RESPONSE_TIME:
            return stats.avg_response_time
        if metric is QualityMetric.TOKEN_EFFICIENCY:
            return stats.token_efficiency
        raise ValueError(f"{metric.value} is not a live metric")

    @staticmethod
    def _recommendations(
        results: list[QualityRequirementResult], state: NodeState
    ) -> list[str]:
        recommendations = []
        for result in results:
            if result.passed:
                continue
            recommendations.append(
                _REMEDIATION[result.requirement.metric].format(
                    current=round(result.current_value, 2),
                    threshold=result.requirement.threshold,
                    gap=result.gap,
                )
            )
        if state.expertise_level < LOW_EXPERTISE:
            recommendations.append("Increase expertise level through more domain-specific training")
        if state.context_window.utilization > HIGH_CONTEXT_UTILIZATION:
            recommendations.append(
                "Optimize context usage - current utilization too high for reliable locking"
            )
        return recommendations

    @staticmethod
    def _locking_config(results: list[QualityRequirementResult]) -> LockingConfig:
        return LockingConfig(
            quality_requirements=tuple(r.requirement for r in results),
            performance_guarantees=tuple(build_guarantee(r) for r in results),
            reusability_rights=ReusabilityRights(),
        )
