"""
Domain Test Batteries

Fixed sets of representative tasks run against a profile to measure its
quality score. A ``BatteryRegistry`` is handed to ``QualityController`` at
construction; ``BatteryRegistry.default()`` covers frontend, backend and ai.

Usage:
    registry = BatteryRegistry.default()
    registry.register(DomainBattery("data", (BatteryCase(...), BatteryCase(...))))
    controller = QualityController(batteries=registry)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from chainlock.models import Task, TaskRequirements


@dataclass(frozen=True)
class BatteryCase:
    """One representative task and the quality it must reach."""

    id: str
    task_type: str
    description: str
    domains: tuple[str, ...]
    complexity: int
    expected_quality: float
    weight: float = 1.0
    context: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.expected_quality <= 1.0:
            raise ValueError(
                f"expected_quality must be in [0.0, 1.0], got {self.expected_quality}"
            )

    def build_task(self) -> Task:
        """A fresh task instance for one run of this case."""
        return Task(
            description=self.description,
            type=self.task_type,
            requirements=TaskRequirements(
                domains=list(self.domains),
                complexity=self.complexity,
                quality_target=self.expected_quality,
            ),
            context=dict(self.context),
        )


@dataclass(frozen=True)
class DomainBattery:
    domain: str
    cases: tuple[BatteryCase, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "domain", self.domain.lower())
        object.__setattr__(self, "cases", tuple(self.cases))
        if not self.cases:
            raise ValueError(f"battery for {self.domain!r} has no cases")


class BatteryRegistry:
    """Domain -> battery lookup, keyed case-insensitively."""

    def __init__(self, batteries: Iterable[DomainBattery] = ()) -> None:
        self._batteries: dict[str, DomainBattery] = {}
        for battery in batteries:
            self.register(battery)

    def register(self, battery: DomainBattery) -> None:
        self._batteries[battery.domain] = battery

    def get(self, domain: str) -> DomainBattery | None:
        return self._batteries.get(domain.lower())

    def domains(self) -> list[str]:
        return sorted(self._batteries)

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and domain.lower() in self._batteries

    def __len__(self) -> int:
        return len(self._batteries)

    @classmethod
    def default(cls) -> BatteryRegistry:
        return cls(
            [
                DomainBattery(
                    "frontend",
                    (
                        BatteryCase(
                            id="react-component",
                            task_type="component_creation",
                            description=(
                                "Create a responsive React button component with TypeScript"
                            ),
                            domains=("frontend",),
                            complexity=4,
                            expected_quality=0.8,
                            context={"framework": "React", "typescript": True},
                        ),
                        BatteryCase(
                            id="css-layout",
                            task_type="layout_design",
                            description=(
                                "Create a responsive grid layout using CSS Grid and Flexbox"
                            ),
                            domains=("frontend",),
                            complexity=3,
                            expected_quality=0.75,
                            weight=0.8,
                            context={"responsive": True},
                        ),
                    ),
                ),
                DomainBattery(
                    "backend",
                    (
                        BatteryCase(
                            id="api-endpoint",
                            task_type="api_development",
                            description=(
                                "Create a REST API endpoint for user management with validation"
                            ),
                            domains=("backend",),
                            complexity=5,
                            expected_quality=0.8,
                            context={"database": "PostgreSQL"},
                        ),
                        BatteryCase(
                            id="query-optimization",
                            task_type="database_tuning",
                            description=(
                                "Optimize a slow SQL query joining orders and customers"
                            ),
                            domains=("backend",),
                            complexity=5,
                            expected_quality=0.75,
                            weight=0.8,
                            context={"database": "PostgreSQL"},
                        ),
                    ),
                ),
                DomainBattery(
                    "ai",
                    (
                        BatteryCase(
                            id="prompt-optimization",
                            task_type="prompt_engineering",
                            description=(
                                "Optimize an AI prompt for code generation with better accuracy"
                            ),
                            domains=("ai",),
                            complexity=6,
                            expected_quality=0.85,
                        ),
                        BatteryCase(
                            id="output-evaluation",
                            task_type="model_evaluation",
                            description=(
                                "Score a batch of model answers against a grading rubric"
                            ),
                            domains=("ai",),
                            complexity=5,
                            expected_quality=0.8,
                            weight=0.8,
                        ),
                    ),
                ),
            ]
        )
