"""
Tests for locked components.

Covers: snapshot and fingerprint, immutability, guarded execution, usage
counters, timeouts and cancellation, cloning, compatibility, records.
"""

import asyncio
import dataclasses
import json
import logging

import pytest

from chainlock.errors import IntegrityError, LicensePermissionError
from chainlock.fingerprint import GuardThresholds
from chainlock.guard import Completion, GuardAction, ModelBackedGuard, RuleBasedGuard
from chainlock.locking import (
    LicenseType,
    LockedComponent,
    LockingConfig,
    QualityMetric,
    ReusabilityRights,
)
from chainlock.locking.models import snapshot_hash
from conftest import FakeNode, make_task

pytestmark = pytest.mark.anyio


def with_rights(config: LockingConfig, **rights) -> LockingConfig:
    return dataclasses.replace(config, reusability_rights=ReusabilityRights(**rights))


class SlowClient:
    async def complete(self, prompt, *, temperature=0.1, max_tokens=500):
        await asyncio.sleep(1.0)
        return Completion('{"action": "allow", "confidence": 0.9, "reasoning": "x"}')


# ═══════════════════════════════════════════════════════════════════════════
# CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════════


class TestConstruction:
    def test_snapshot_captured(self, component):
        snap = component.metadata.context_snapshot
        assert snap.domains == ("frontend", "react", "typescript")
        assert snap.expertise_level == 0.95
        assert snap.context_size == 2000
        assert "frontend-expert" in snap.capabilities
        assert "frontend-analysis" in snap.capabilities
        assert "react-specialist" in snap.capabilities
        assert snap.limitations == (
            "Domain-specific: optimized for frontend only",
            "Immutable context - cannot learn new information",
        )

    def test_limitations_for_weak_node(self, locking_config):
        node = FakeNode(expertise_level=0.7, context_usage=9500)
        limitations = LockedComponent(node, locking_config).get_limitations()
        assert "Limited expertise - use for basic tasks only" in limitations
        assert "High context usage - may have reduced performance" in limitations

    def test_fingerprint_derived(self, component):
        fp = component.fingerprint
        assert fp.component_id == component.component_id
        assert dict(fp.competence_map) == {"frontend": 0.95, "react": 0.95, "typescript": 0.95}
        assert fp.context_hash == component.context_hash
        assert fp.guard_thresholds == GuardThresholds(0.8, 0.3)

    def test_custom_thresholds(self, frontend_node, locking_config):
        thresholds = GuardThresholds(min_confidence=0.9, reject_below=0.2)
        c = LockedComponent(frontend_node, locking_config, guard_thresholds=thresholds)
        assert c.fingerprint.guard_thresholds is thresholds

    def test_default_guard_is_rule_based(self, component):
        assert isinstance(component.guard, RuleBasedGuard)
        assert component.guard.fingerprint is component.fingerprint

    def test_custom_guard_factory(self, frontend_node, locking_config):
        c = LockedComponent(
            frontend_node,
            locking_config,
            guard_factory=lambda fp: ModelBackedGuard(fp, SlowClient()),
        )
        assert isinstance(c.guard, ModelBackedGuard)

    def test_guard_factory_must_return_guard(self, frontend_node, locking_config):
        with pytest.raises(TypeError):
            LockedComponent(frontend_node, locking_config, guard_factory=lambda fp: object())

    def test_rejects_non_profile(self, locking_config):
        with pytest.raises(TypeError):
            LockedComponent(object(), locking_config)

    def test_quality_profile(self, component):
        profile = component.get_quality_profile()
        assert profile["success_rate"] == 0.95
        assert profile["avg_response_time"] == 2.0
        assert profile["context_utilization"] == pytest.approx(0.2)


# ═══════════════════════════════════════════════════════════════════════════
# IMMUTABILITY
# ═══════════════════════════════════════════════════════════════════════════


class TestImmutability:
    def test_hash_rederivable(self, component):
        meta = component.metadata
        snap = meta.context_snapshot
        expected = snapshot_hash(
            meta.original_node_id,
            meta.locked_at,
            meta.version,
            snap.context_size,
            snap.domains,
            snap.expertise_level,
            snap.capabilities,
            snap.limitations,
        )
        assert expected == component.context_hash
        assert component.verify_integrity()

    async def test_live_profile_changes_do_not_leak(self, component, frontend_node, task_factory):
        before = component.context_hash
        frontend_node.expertise_level = 0.5
        frontend_node.subdomains.append("svelte")
        await component.execute_guarded(task_factory())

        assert component.context_hash == before
        assert component.metadata.context_snapshot.expertise_level == 0.95
        assert "svelte" not in component.fingerprint.expert_domains
        assert component.verify_integrity()

    def test_metadata_frozen(self, component):
        with pytest.raises(dataclasses.FrozenInstanceError):
            component.metadata.reusability_rights = ReusabilityRights(is_public=False)
        with pytest.raises(dataclasses.FrozenInstanceError):
            component.fingerprint.context_hash = "0" * 64

    def test_competence_map_read_only(self, component):
        with pytest.raises(TypeError):
            component.fingerprint.competence_map["frontend"] = 0.1


# ═══════════════════════════════════════════════════════════════════════════
# GUARDED EXECUTION
# ═══════════════════════════════════════════════════════════════════════════


class TestExecuteGuarded:
    async def test_allowed_task_runs(self, component, frontend_node, task_factory):
        result = await component.execute_guarded(task_factory())
        assert result.success
        assert result.guard_decision.action is GuardAction.ALLOW
        assert result.output.startswith("done:")
        assert result.context_integrity
        assert result.guarantee_violations == []
        assert result.guaranteed_metrics == {
            "min_quality_score": 0.8,
            "quality_score_confidence": 0.95,
            "max_response_time": 3.0,
            "response_time_confidence": 0.95,
        }
        assert result.reusability_tracking["usage_count"] == 1
        assert result.reusability_tracking["last_used"] is not None
        assert len(frontend_node.calls) == 1

    async def test_rejected_task_not_delegated(self, component, frontend_node, task_factory):
        result = await component.execute_guarded(
            task_factory("Design the orders schema", domains=["backend", "database"])
        )
        assert not result.success
        assert result.error.startswith("Guard rejected")
        assert result.suggested_node_type == "backend-expert"
        assert frontend_node.calls == []
        assert component.get_usage_stats()["usage_count"] == 0

    async def test_redirected_task_not_delegated(self, component, frontend_node, task_factory):
        result = await component.execute_guarded(task_factory(complexity=10))
        assert not result.success
        assert result.guard_decision.action is GuardAction.REDIRECT
        assert result.suggested_node_type == "orchestrator"
        assert frontend_node.calls == []
        assert component.get_usage_stats()["usage_count"] == 0

    async def test_malformed_task_is_a_result(self, component, frontend_node):
        result = await component.execute_guarded(None)
        assert not result.success
        assert result.guard_decision.action is GuardAction.REJECT
        assert frontend_node.calls == []

    async def test_usage_monotonic(self, component, task_factory):
        for _ in range(3):
            await component.execute_guarded(task_factory())
            await component.execute_guarded(task_factory(domains=["backend"]))
        stats = component.get_usage_stats()
        assert stats["usage_count"] == 3
        assert stats["guard"]["total_requests"] == 6

    async def test_concurrent_uses_counted_exactly(self, component, task_factory):
        await asyncio.gather(*(component.execute_guarded(task_factory()) for _ in range(25)))
        assert component.get_usage_stats()["usage_count"] == 25

    async def test_failed_task_result_still_counts(self, component, frontend_node, task_factory):
        frontend_node.succeed = False
        result = await component.execute_guarded(task_factory())
        assert not result.success
        assert result.reusability_tracking["usage_count"] == 1

    async def test_revenue_accumulates(self, frontend_node, locking_config, task_factory):
        c = LockedComponent(
            frontend_node,
            with_rights(locking_config, is_commercial=True, price_per_use=0.5),
        )
        for _ in range(3):
            result = await c.execute_guarded(task_factory())
        assert result.reusability_tracking["total_revenue"] == pytest.approx(1.5)
        assert c.get_price() == 0.5
        assert c.is_commercial()

    async def test_usage_limit_warns(self, frontend_node, locking_config, task_factory, caplog):
        caplog.set_level(logging.WARNING)
        c = LockedComponent(frontend_node, with_rights(locking_config, max_uses=1))
        result = await c.execute_guarded(task_factory())
        assert result.success
        assert "usage limit" in caplog.text

    async def test_guarantee_violation_logged_not_raised(
        self, component, frontend_node, task_factory, caplog
    ):
        caplog.set_level(logging.WARNING)
        frontend_node.quality = 0.5
        frontend_node.response_time = 4.0
        result = await component.execute_guarded(task_factory())
        assert result.success
        kinds = {(v.metric, v.kind) for v in result.guarantee_violations}
        assert kinds == {
            (QualityMetric.QUALITY_SCORE, "below-minimum"),
            (QualityMetric.RESPONSE_TIME, "above-maximum"),
        }
        assert "Guarantee violation" in caplog.text

    async def test_execution_error_captured(self, component, frontend_node, task_factory):
        frontend_node.error = RuntimeError("model down")
        result = await component.execute_guarded(task_factory())
        assert not result.success
        assert "RuntimeError: model down" in result.error
        assert component.get_usage_stats()["usage_count"] == 0

    async def test_execution_timeout(self, component, frontend_node, task_factory):
        frontend_node.delay = 1.0
        result = await component.execute_guarded(task_factory(), execution_timeout=0.05)
        assert not result.success
        assert "timed out" in result.error
        assert component.get_usage_stats()["usage_count"] == 0

    async def test_guard_timeout_redirects(self, frontend_node, locking_config, task_factory):
        c = LockedComponent(
            frontend_node,
            locking_config,
            guard_factory=lambda fp: ModelBackedGuard(fp, SlowClient()),
        )
        result = await c.execute_guarded(task_factory(), guard_timeout=0.05)
        assert not result.success
        assert result.guard_decision.action is GuardAction.REDIRECT
        assert result.suggested_node_type == "orchestrator"
        assert frontend_node.calls == []

        stats = c.guard.get_usage_stats()
        assert stats["total_requests"] == 1
        assert stats["redirected_requests"] == 1

    async def test_cancellation_does_not_count(self, component, frontend_node, task_factory):
        frontend_node.delay = 1.0
        pending = asyncio.ensure_future(component.execute_guarded(task_factory()))
        await asyncio.sleep(0.05)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert component.get_usage_stats()["usage_count"] == 0

    async def test_result_to_dict(self, component, task_factory):
        data = (await component.execute_guarded(task_factory())).to_dict()
        assert data["guard_decision"]["action"] == "allow"
        json.dumps(data)


# ═══════════════════════════════════════════════════════════════════════════
# CLONING
# ═══════════════════════════════════════════════════════════════════════════


class TestClone:
    async def test_public_clone(self, component, frontend_node, task_factory):
        await component.execute_guarded(task_factory())
        clone = component.clone(restrictions=["no-resale"])

        assert clone.component_id != component.component_id
        assert clone.context_hash == component.context_hash
        assert clone.node is frontend_node
        assert clone.get_usage_stats()["usage_count"] == 0
        assert clone.metadata.reusability_rights.restrictions[-1] == "no-resale"
        assert clone.verify_integrity()

    def test_private_clone_refused(self, frontend_node, locking_config):
        private = LockedComponent(frontend_node, with_rights(locking_config, is_public=False))
        with pytest.raises(PermissionError):
            private.clone()
        with pytest.raises(LicensePermissionError):
            private.clone(restrictions=["x"])

    def test_private_clone_with_explicit_rights(self, frontend_node, locking_config):
        private = LockedComponent(frontend_node, with_rights(locking_config, is_public=False))
        clone = private.clone(
            {"is_commercial": True, "license_type": "commercial", "price_per_use": 2.0}
        )
        rights = clone.metadata.reusability_rights
        assert rights.license_type is LicenseType.COMMERCIAL
        assert clone.get_price() == 2.0
        assert not clone.is_public()
        assert private.get_price() is None

    def test_unknown_rights_key(self, component):
        with pytest.raises(ValueError, match="Unknown"):
            component.clone({"royalty": 0.1})


# ═══════════════════════════════════════════════════════════════════════════
# COMPATIBILITY PRE-CHECK
# ═══════════════════════════════════════════════════════════════════════════


class TestCompatibility:
    def test_compatible(self, component):
        report = component.validate_task_compatibility(make_task(complexity=4))
        assert report.is_compatible
        # 0.7 * 1.0 + 0.3 * (1 - 4/9)
        assert report.confidence == pytest.approx(0.7 + 0.3 * (5 / 9))

    def test_partial_match_ratio(self, component):
        report = component.validate_task_compatibility(
            make_task(domains=["frontend", "mobile"], complexity=9)
        )
        assert report.is_compatible
        assert report.confidence == pytest.approx(0.35)

    def test_no_overlap(self, component):
        report = component.validate_task_compatibility(make_task(domains=["backend"]))
        assert not report.is_compatible
        assert "No domain overlap" in report.reason

    def test_too_complex(self, component):
        report = component.validate_task_compatibility(make_task(complexity=10))
        assert not report.is_compatible
        assert "exceeds" in report.reason

    def test_case_insensitive_overlap(self, component):
        report = component.validate_task_compatibility(make_task(domains=["React"]))
        assert report.is_compatible
        # exact match ignoring case: 0.7 * 1.0 + 0.3 * (1 - 4/9)
        assert report.confidence == pytest.approx(0.7 + 0.3 * (5 / 9))

    def test_substring_overlap(self, component):
        report = component.validate_task_compatibility(make_task(domains=["frontend-ui"]))
        assert report.is_compatible
        # overlaps, but no exact match: only the complexity term counts
        assert report.confidence == pytest.approx(0.3 * (5 / 9))

    @pytest.mark.parametrize("domains", [["React"], ["frontend-ui"], ["FRONTEND"]])
    async def test_agrees_with_guard_on_overlap(self, component, domains):
        task = make_task(domains=domains)
        decision = await component.guard.filter(task)
        report = component.validate_task_compatibility(task)
        assert decision.action is GuardAction.ALLOW
        assert report.is_compatible

    async def test_agrees_with_guard_on_no_overlap(self, component):
        task = make_task(domains=["backend"])
        decision = await component.guard.filter(task)
        report = component.validate_task_compatibility(task)
        assert decision.action is GuardAction.REJECT
        assert not report.is_compatible


# ═══════════════════════════════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════════════════════════════


class StatelessNode(FakeNode):
    def get_state(self):
        raise AssertionError("rebuild must not read the live profile")


class TestRecords:
    async def test_round_trip(self, component, task_factory):
        await component.execute_guarded(task_factory())
        record = json.loads(json.dumps(component.to_record()))

        node = StatelessNode()
        restored = LockedComponent.from_record(record, node)
        assert restored.component_id == component.component_id
        assert restored.context_hash == component.context_hash
        assert restored.metadata == component.metadata
        assert restored.get_usage_stats()["usage_count"] == 1
        assert restored.verify_integrity()

        result = await restored.execute_guarded(task_factory())
        assert result.success
        assert result.reusability_tracking["usage_count"] == 2

    def test_tampered_snapshot_refused(self, component):
        record = json.loads(json.dumps(component.to_record()))
        record["metadata"]["context_snapshot"]["expertise_level"] = 0.99
        with pytest.raises(IntegrityError):
            LockedComponent.from_record(record, FakeNode())

    def test_mismatched_fingerprint_refused(self, component):
        record = json.loads(json.dumps(component.to_record()))
        record["fingerprint"]["context_hash"] = "b" * 64
        with pytest.raises(IntegrityError):
            LockedComponent.from_record(record, FakeNode())

    def test_rights_round_trip(self):
        rights = ReusabilityRights(
            is_public=False, license_type="restricted", max_uses=10, restrictions=["a"]
        )
        assert ReusabilityRights.from_dict(rights.to_dict()) == rights
