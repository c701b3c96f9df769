"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_DIR = Path.home() / ".chainlock"
DEFAULT_MIN_CONFIDENCE = 0.8
DEFAULT_REJECT_BELOW = 0.3
DEFAULT_GUARD_TIMEOUT = 10.0
DEFAULT_EXECUTION_TIMEOUT = 300.0
DEFAULT_LLM_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LLM_MODEL = "gpt-4o-mini"
# Blended price in USD per 1K tokens for the guard model
DEFAULT_COST_PER_1K_TOKENS = 0.0003


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Settings shared by the guard, the locked components and the CLI."""

    data_dir: Path = DEFAULT_DATA_DIR
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    reject_below: float = DEFAULT_REJECT_BELOW
    guard_timeout: float = DEFAULT_GUARD_TIMEOUT
    execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_api_key: str | None = None
    cost_per_1k_tokens: float = DEFAULT_COST_PER_1K_TOKENS

    def __post_init__(self) -> None:
        if not 0.0 <= self.reject_below <= self.min_confidence <= 1.0:
            raise ValueError(
                "thresholds must satisfy 0 <= reject_below <= min_confidence <= 1, "
                f"got reject_below={self.reject_below}, "
                f"min_confidence={self.min_confidence}"
            )
        if self.guard_timeout <= 0 or self.execution_timeout <= 0:
            raise ValueError("timeouts must be positive")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "data" / "components.db"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``CHAINLOCK_*`` environment variables."""
        data_dir = os.environ.get("CHAINLOCK_DATA_DIR")
        return cls(
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
            min_confidence=_env_float("CHAINLOCK_MIN_CONFIDENCE", DEFAULT_MIN_CONFIDENCE),
            reject_below=_env_float("CHAINLOCK_REJECT_BELOW", DEFAULT_REJECT_BELOW),
            guard_timeout=_env_float("CHAINLOCK_GUARD_TIMEOUT", DEFAULT_GUARD_TIMEOUT),
            execution_timeout=_env_float(
                "CHAINLOCK_EXECUTION_TIMEOUT", DEFAULT_EXECUTION_TIMEOUT
            ),
            llm_base_url=os.environ.get("CHAINLOCK_LLM_BASE_URL", DEFAULT_LLM_BASE_URL),
            llm_model=os.environ.get("CHAINLOCK_LLM_MODEL", DEFAULT_LLM_MODEL),
            llm_api_key=os.environ.get("CHAINLOCK_LLM_API_KEY") or None,
            cost_per_1k_tokens=_env_float(
                "CHAINLOCK_COST_PER_1K_TOKENS", DEFAULT_COST_PER_1K_TOKENS
            ),
        )
