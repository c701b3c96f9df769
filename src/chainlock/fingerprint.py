"""Expertise fingerprint shared by locked components and their guards."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .config import DEFAULT_MIN_CONFIDENCE, DEFAULT_REJECT_BELOW

FINGERPRINT_VERSION = "1.0.0"


def compute_context_hash(payload: Mapping[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of ``payload``.

    Keys are sorted and separators fixed so the same snapshot always yields
    the same hash across processes.
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class GuardThresholds:
    """Confidence bounds a guard applies to its decisions."""

    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    reject_below: float = DEFAULT_REJECT_BELOW

    def __post_init__(self) -> None:
        if not 0.0 <= self.reject_below <= self.min_confidence <= 1.0:
            raise ValueError(
                "thresholds must satisfy 0 <= reject_below <= min_confidence <= 1, "
                f"got reject_below={self.reject_below}, "
                f"min_confidence={self.min_confidence}"
            )


@dataclass(frozen=True)
class ExpertiseFingerprint:
    """Compact, immutable summary of a locked component's competence."""

    component_id: str
    expert_domains: tuple[str, ...]
    competence_map: Mapping[str, float] = field(hash=False)
    capabilities: tuple[str, ...]
    context_hash: str
    locked_at: float
    guard_thresholds: GuardThresholds = field(default_factory=GuardThresholds)
    version: str = FINGERPRINT_VERSION

    def __post_init__(self) -> None:
        if not self.component_id:
            raise ValueError("component_id cannot be empty")
        if not self.expert_domains:
            raise ValueError("expert_domains cannot be empty")
        for domain, level in self.competence_map.items():
            if not 0.0 <= level <= 1.0:
                raise ValueError(
                    f"competence for {domain!r} must be in [0.0, 1.0], got {level}"
                )
        # Freeze containers handed in as lists/dicts
        object.__setattr__(self, "expert_domains", tuple(self.expert_domains))
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(
            self, "competence_map", MappingProxyType(dict(self.competence_map))
        )

    @property
    def max_competence(self) -> float:
        return max(self.competence_map.values(), default=0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "component_id": self.component_id,
            "expert_domains": list(self.expert_domains),
            "competence_map": dict(self.competence_map),
            "capabilities": list(self.capabilities),
            "context_hash": self.context_hash,
            "guard_thresholds": {
                "min_confidence": self.guard_thresholds.min_confidence,
                "reject_below": self.guard_thresholds.reject_below,
            },
            "locked_at": self.locked_at,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExpertiseFingerprint:
        thresholds = data.get("guard_thresholds") or {}
        return cls(
            component_id=data["component_id"],
            expert_domains=tuple(data["expert_domains"]),
            competence_map=dict(data["competence_map"]),
            capabilities=tuple(data.get("capabilities", ())),
            context_hash=data["context_hash"],
            locked_at=float(data["locked_at"]),
            guard_thresholds=GuardThresholds(**thresholds),
            version=data.get("version", FINGERPRINT_VERSION),
        )
