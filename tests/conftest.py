"""Shared fixtures: a controllable fake node profile and fingerprint factory."""

import asyncio
import time
from typing import List, Optional, Sequence

import pytest

from chainlock.fingerprint import ExpertiseFingerprint, GuardThresholds
from chainlock.locking import LockedComponent, LockingConfig, ReusabilityRights
from chainlock.models import (
    ContextWindow,
    NodeState,
    PerformanceStats,
    Task,
    TaskRequirements,
    TaskResult,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeNode:
    """NodeProfile whose state and behavior tests can change between calls."""

    def __init__(
        self,
        node_id: str = "node-frontend",
        domain: str = "frontend",
        subdomains: Sequence[str] = ("react", "typescript"),
        expertise_level: float = 0.95,
        success_rate: float = 0.95,
        avg_response_time: float = 2.0,
        token_efficiency: float = 0.9,
        quality: float = 0.9,
        response_time: float = 1.5,
        context_usage: int = 2000,
        max_tokens: int = 10000,
    ) -> None:
        self.node_id = node_id
        self.domain = domain
        self.subdomains = list(subdomains)
        self.expertise_level = expertise_level
        self.success_rate = success_rate
        self.avg_response_time = avg_response_time
        self.token_efficiency = token_efficiency
        self.quality = quality
        self.response_time = response_time
        self.context_usage = context_usage
        self.max_tokens = max_tokens
        self.succeed = True
        self.delay = 0.0
        self.error: Optional[BaseException] = None
        self.calls: List[Task] = []

    def get_state(self) -> NodeState:
        return NodeState(
            id=self.node_id,
            domain=self.domain,
            subdomains=list(self.subdomains),
            expertise_level=self.expertise_level,
            performance_stats=PerformanceStats(
                avg_response_time=self.avg_response_time,
                token_efficiency=self.token_efficiency,
                success_rate=self.success_rate,
            ),
            context_window=ContextWindow(
                max_tokens=self.max_tokens, current_usage=self.context_usage
            ),
        )

    async def process_task(self, task: Task) -> TaskResult:
        self.calls.append(task)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TaskResult(
            task_id=task.id,
            success=self.succeed,
            tokens_used=120,
            response_time=self.response_time,
            quality_score=self.quality,
            output=f"done: {task.description}",
        )


@pytest.fixture
def frontend_node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def locking_config() -> LockingConfig:
    from chainlock.locking import PerformanceGuarantee, QualityMetric, QualityRequirement

    return LockingConfig(
        quality_requirements=(
            QualityRequirement(QualityMetric.SUCCESS_RATE, 0.85, test_cases=10),
            QualityRequirement(QualityMetric.RESPONSE_TIME, 5.0, test_cases=5),
        ),
        performance_guarantees=(
            PerformanceGuarantee(QualityMetric.QUALITY_SCORE, 0.95, 5, min_value=0.8),
            PerformanceGuarantee(QualityMetric.RESPONSE_TIME, 0.95, 5, max_value=3.0),
        ),
        reusability_rights=ReusabilityRights(),
    )


@pytest.fixture
def component(frontend_node: FakeNode, locking_config: LockingConfig) -> LockedComponent:
    return LockedComponent(frontend_node, locking_config)


@pytest.fixture
def make_fingerprint():
    def _make(
        domains: Sequence[str] = ("frontend", "react", "typescript"),
        competence: float = 0.95,
        min_confidence: float = 0.8,
        reject_below: float = 0.3,
    ) -> ExpertiseFingerprint:
        return ExpertiseFingerprint(
            component_id="locked_test",
            expert_domains=tuple(domains),
            competence_map={d: competence for d in domains},
            capabilities=(f"{domains[0]}-expert", "problem-solving"),
            context_hash="a" * 64,
            locked_at=time.time(),
            guard_thresholds=GuardThresholds(min_confidence, reject_below),
        )

    return _make


def make_task(
    description: str = "Build a responsive navbar component",
    domains: Sequence[str] = ("frontend", "react"),
    complexity: int = 4,
) -> Task:
    return Task(
        description=description,
        requirements=TaskRequirements(domains=list(domains), complexity=complexity),
    )


@pytest.fixture
def task_factory():
    return make_task
