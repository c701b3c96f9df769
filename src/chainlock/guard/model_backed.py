"""
Model-Backed Guard — Admission Decisions from a Language Model

Sends the fingerprint and the task to a language model as a structured
prompt and parses the JSON reply into an ``AdmissionDecision``. Every failure
mode (transport error, timeout, unparsable reply) degrades to a redirect:

- call failure / timeout -> redirect, confidence 0.5
- unparsable reply       -> redirect, confidence 0.1

Thresholds from the fingerprint are enforced on the parsed reply: an allow
below ``reject_below`` becomes a reject, an allow below ``min_confidence``
becomes a redirect.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import replace
from typing import Any

from chainlock.config import DEFAULT_COST_PER_1K_TOKENS, DEFAULT_GUARD_TIMEOUT
from chainlock.fingerprint import ExpertiseFingerprint
from chainlock.guard.base import AdmissionGuard, TaskView
from chainlock.guard.llm import LanguageModelClient
from chainlock.guard.models import ORCHESTRATOR_ROLE, AdmissionDecision, GuardAction

logger = logging.getLogger(__name__)

CALL_FAILURE_CONFIDENCE = 0.5
PARSE_FAILURE_CONFIDENCE = 0.1

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

PROMPT_TEMPLATE = """You are the admission guard for a LOCKED expert AI component.

The component's knowledge was frozen at lock time and compressed into the
fingerprint below. It can only perform tasks that match that frozen context.

COMPONENT:
ID: {component_id}
Expert domains: {domains}
Capabilities: {capabilities}
Competence map: {competence_map}
Context hash: {context_hash}...
Expertise level: {max_competence:.2f}

INCOMING TASK:
Description: "{description}"
Required domains: {task_domains}
Complexity (1-10): {complexity}

RULES:
1. If the task does not match the locked context -> reject
2. If the task requires learning or studying new technologies -> reject
3. If the complexity exceeds the component's capability -> redirect to orchestrator
4. If the task names technologies outside the competence map -> redirect
5. If the task matches the locked context -> allow

Minimum confidence for allow: {min_confidence}
Automatic reject when confidence < {reject_below}

Reply with JSON only:
{{
  "action": "allow" | "reject" | "redirect",
  "confidence": 0.0-1.0,
  "reasoning": "detailed explanation",
  "contextMatchScore": 0-100,
  "missingCapabilities": ["..."],
  "suggestedNodeType": "role for redirect or null"
}}
"""


def build_prompt(fingerprint: ExpertiseFingerprint, view: TaskView) -> str:
    thresholds = fingerprint.guard_thresholds
    return PROMPT_TEMPLATE.format(
        component_id=fingerprint.component_id,
        domains=", ".join(fingerprint.expert_domains),
        capabilities=", ".join(fingerprint.capabilities),
        competence_map=json.dumps(dict(fingerprint.competence_map), sort_keys=True),
        context_hash=fingerprint.context_hash[:16],
        max_competence=fingerprint.max_competence,
        description=view.description,
        task_domains=", ".join(view.domains) or "none",
        complexity=f"{view.complexity:g}",
        min_confidence=thresholds.min_confidence,
        reject_below=thresholds.reject_below,
    )


def _extract_json(text: str) -> dict[str, Any]:
    fenced = _FENCE.search(text)
    candidate = fenced.group(1) if fenced else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object in model response")
    data = json.loads(candidate[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("model response is not a JSON object")
    return data


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class ModelBackedGuard(AdmissionGuard):
    """Guard that asks a language model, wrapped in fail-safe handling."""

    name = "model-backed"

    def __init__(
        self,
        fingerprint: ExpertiseFingerprint,
        client: LanguageModelClient,
        timeout: float = DEFAULT_GUARD_TIMEOUT,
        cost_per_1k_tokens: float = DEFAULT_COST_PER_1K_TOKENS,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> None:
        super().__init__(fingerprint)
        self.client = client
        self.timeout = timeout
        self.cost_per_1k_tokens = cost_per_1k_tokens
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def _decide(self, view: TaskView) -> AdmissionDecision:
        prompt = build_prompt(self.fingerprint, view)
        try:
            completion = await asyncio.wait_for(
                self.client.complete(
                    prompt, temperature=self.temperature, max_tokens=self.max_tokens
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Guard model timed out after %ss on task %s", self.timeout, view.task_id)
            return self.fail_safe(
                f"Guard model timed out after {self.timeout}s",
                confidence=CALL_FAILURE_CONFIDENCE,
            )
        except Exception as exc:
            logger.warning("Guard model call failed on task %s: %s", view.task_id, exc)
            return self.fail_safe(
                f"Guard error fallback: {type(exc).__name__}: {exc}",
                confidence=CALL_FAILURE_CONFIDENCE,
            )

        cost = completion.total_tokens / 1000 * self.cost_per_1k_tokens
        return self.parse_response(completion.text, cost=cost)

    def parse_response(self, text: str, cost: float = 0.0) -> AdmissionDecision:
        """Turn a model reply into a bounded decision; never raises."""
        try:
            data = _extract_json(text)
        except ValueError as exc:
            logger.warning("Failed to parse guard model response: %s", exc)
            return self.fail_safe(
                "Failed to parse guard model response",
                confidence=PARSE_FAILURE_CONFIDENCE,
                missing="parsing-error",
                cost=cost,
            )

        raw_action = str(_pick(data, "action", "decision") or "").strip().lower()
        try:
            action = GuardAction(raw_action)
        except ValueError:
            logger.warning("Invalid guard action %r, defaulting to redirect", raw_action)
            action = GuardAction.REDIRECT

        missing = _pick(data, "missingCapabilities", "missing_capabilities")
        suggested = _pick(data, "suggestedNodeType", "suggested_node_type")
        decision = AdmissionDecision(
            action=action,
            confidence=_pick(data, "confidence") or 0.0,
            reasoning=str(_pick(data, "reasoning") or "No reasoning provided"),
            context_match_score=_pick(data, "contextMatchScore", "context_match_score") or 0.0,
            missing_capabilities=tuple(missing) if isinstance(missing, list) else (),
            suggested_node_type=str(suggested) if suggested else None,
            cost=cost,
        )
        return self._apply_thresholds(decision)

    def _apply_thresholds(self, decision: AdmissionDecision) -> AdmissionDecision:
        thresholds = self.fingerprint.guard_thresholds
        if decision.action is GuardAction.REDIRECT and decision.suggested_node_type is None:
            return replace(decision, suggested_node_type=ORCHESTRATOR_ROLE)
        if decision.action is not GuardAction.ALLOW:
            return decision
        if decision.confidence < thresholds.reject_below:
            return replace(
                decision,
                action=GuardAction.REJECT,
                reasoning=(
                    f"{decision.reasoning} (confidence {decision.confidence:.2f} below "
                    f"reject threshold {thresholds.reject_below})"
                ),
            )
        if decision.confidence < thresholds.min_confidence:
            return replace(
                decision,
                action=GuardAction.REDIRECT,
                reasoning=(
                    f"{decision.reasoning} (confidence {decision.confidence:.2f} below "
                    f"allow threshold {thresholds.min_confidence})"
                ),
                suggested_node_type=decision.suggested_node_type or ORCHESTRATOR_ROLE,
            )
        return decision
