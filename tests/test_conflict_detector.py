"""Tests for src.core.conflict_detector — the five detectors, severity roll-up, resolutions."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.core.ai_contracts import AIAnalysisResult, AIErrorCode, AIGatewayResponse, GatewayError
from src.core.conflict_detector import (
    ConflictDetector,
    OperationConflict,
    calculate_severity,
)
from src.data.models import BulkOperation, ChoreContext, FamilyContextSnapshot, FamilyMember

FIXED_NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _detector(gateway=None):
    return ConflictDetector(gateway=gateway, now=lambda: FIXED_NOW)


def _op(operation, chore_ids, **modifications):
    return BulkOperation(
        operation=operation,
        family_id="family123",
        requested_by="user1",
        chore_ids=chore_ids,
        modifications=modifications,
    )


def _chore(chore_id, assigned_to="user1", points=10, difficulty="medium", room=None):
    return ChoreContext(
        id=chore_id, title=f"Chore {chore_id}", points=points,
        assigned_to=assigned_to, difficulty=difficulty, room=room,
    )


def _assert_invariants(analysis):
    expected = "none"
    order = ["none", "minor", "major", "blocking"]
    for conflict in analysis.conflicts:
        if order.index(conflict.severity) > order.index(expected):
            expected = conflict.severity
    assert analysis.severity == expected
    assert (analysis.severity == "none") == (not analysis.conflicts)
    assert analysis.auto_resolution_available == all(c.auto_fixable for c in analysis.conflicts)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestNoConflicts:
    @pytest.mark.asyncio
    async def test_empty_chore_ids(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("modify_multiple", [], points=20), sample_context,
        )
        assert analysis.severity == "none"
        assert analysis.conflicts == []
        assert analysis.auto_resolution_available is True
        assert analysis.suggested_resolutions == []

    @pytest.mark.asyncio
    async def test_empty_assign(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", [], assign_to="user2"), sample_context,
        )
        assert analysis.severity == "none"
        _assert_invariants(analysis)


class TestWorkloadAndSkill:
    @pytest.mark.asyncio
    async def test_all_chores_to_young_child(self, sample_context):
        context = sample_context.model_copy(update={"member_ages": [45, 42, 16, 8]})
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", ["chore1", "chore2", "chore3"], assign_to="child_user"),
            context,
        )

        types = {c.type for c in analysis.conflicts}
        assert {"workload", "skill"} <= types
        assert analysis.severity in ("major", "blocking")
        assert analysis.auto_resolution_available is False

        skill = next(c for c in analysis.conflicts if c.type == "skill")
        assert skill.chore_ids == ["chore3"]
        assert skill.member_ids == ["child_user"]
        assert skill.severity == "major"
        assert skill.auto_fixable is False
        _assert_invariants(analysis)

    @pytest.mark.asyncio
    async def test_member_directory_age_takes_precedence(self, sample_context):
        context = sample_context.model_copy(update={
            "member_ages": [45, 42, 16, 8],
            "members": [FamilyMember(id="dad", name="Dad", age=45)],
        })
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", ["chore3"], assign_to="dad"), context,
        )
        assert not any(c.type == "skill" for c in analysis.conflicts)

    @pytest.mark.asyncio
    async def test_directory_child_gets_skill_conflict(self, sample_context):
        context = sample_context.model_copy(update={
            "members": [FamilyMember(id="kid1", name="Emma", age=9)],
        })
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", ["chore3"], assign_to="kid1"), context,
        )
        assert any(c.type == "skill" for c in analysis.conflicts)

    @pytest.mark.asyncio
    async def test_easy_chores_to_child_no_skill_conflict(self, sample_context):
        context = sample_context.model_copy(update={"member_ages": [8]})
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", ["chore2"], assign_to="child_user"), context,
        )
        assert not any(c.type == "skill" for c in analysis.conflicts)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("new_points, expected", [
        (14, None),
        (20, "minor"),
        (30, "major"),
        (90, "blocking"),
    ])
    async def test_workload_severity_thresholds(self, new_points, expected):
        context = FamilyContextSnapshot(
            family_size=2,
            member_ages=[40, 38],
            active_chores=[_chore("a", "user1", 10), _chore("b", "user2", 10)],
        )
        analysis = await _detector().analyze_operation(
            _op("modify_multiple", ["a"], points=new_points), context,
        )
        workload = [c for c in analysis.conflicts if c.type == "workload"]
        if expected is None:
            assert workload == []
        else:
            assert workload[0].severity == expected
            assert workload[0].auto_fixable is True
            assert set(workload[0].member_ids) == {"user1", "user2"}

    @pytest.mark.asyncio
    async def test_workload_resolution(self):
        context = FamilyContextSnapshot(
            family_size=2,
            active_chores=[_chore("a", "user1", 10), _chore("b", "user2", 10)],
        )
        analysis = await _detector().analyze_operation(
            _op("assign_multiple", ["b"], assign_to="user1"), context,
        )
        resolution = analysis.suggested_resolutions[0]
        assert resolution.strategy == "reassign"
        assert resolution.modifications == {"rebalance_workload": True}
        assert resolution.confidence == 0.9
        assert resolution.conflict_id == "workload-0"


class TestSchedule:
    @pytest.mark.asyncio
    async def test_past_date_is_blocking(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", ["chore1"], new_due_date="2020-01-01T10:00:00Z"),
            sample_context,
        )

        schedule = [c for c in analysis.conflicts if c.type == "schedule"]
        assert schedule[0].severity == "blocking"
        assert schedule[0].auto_fixable is True
        assert analysis.severity == "blocking"
        assert analysis.auto_resolution_available is True
        assert any(r.strategy == "reschedule" for r in analysis.suggested_resolutions)
        _assert_invariants(analysis)

    @pytest.mark.asyncio
    async def test_today_date_only_is_not_past(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", ["chore1"], new_due_date="2026-01-01"), sample_context,
        )
        assert analysis.conflicts == []

    @pytest.mark.asyncio
    async def test_unparsable_date_is_blocking(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", ["chore1"], new_due_date="next blursday"), sample_context,
        )
        conflict = analysis.conflicts[0]
        assert conflict.type == "schedule"
        assert conflict.severity == "blocking"
        assert conflict.auto_fixable is True

    @pytest.mark.asyncio
    async def test_busy_weekend(self):
        context = FamilyContextSnapshot(
            family_size=2,
            active_chores=[_chore(f"c{i}", room=f"room{i}") for i in range(6)],
        )
        # 2026-03-07 is a Saturday
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", [f"c{i}" for i in range(6)], new_due_date="2026-03-07"),
            context,
        )
        assert [c.type for c in analysis.conflicts] == ["schedule"]
        assert analysis.severity == "minor"
        assert analysis.suggested_resolutions[0].modifications == {"distribute_across_days": 3}

    @pytest.mark.asyncio
    async def test_busy_weekday_is_fine(self):
        context = FamilyContextSnapshot(
            family_size=2,
            active_chores=[_chore(f"c{i}", room=f"room{i}") for i in range(6)],
        )
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", [f"c{i}" for i in range(6)], new_due_date="2026-03-04"),
            context,
        )
        assert analysis.conflicts == []

    @pytest.mark.asyncio
    async def test_few_chores_on_weekend_is_fine(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", ["chore1", "chore2"], new_due_date="2026-03-07"),
            sample_context,
        )
        assert analysis.conflicts == []


class TestResource:
    @pytest.mark.asyncio
    async def test_crowded_room(self):
        context = FamilyContextSnapshot(
            family_size=3,
            active_chores=[
                _chore("k1", "user1", room="kitchen"),
                _chore("k2", "user2", room="kitchen"),
                _chore("k3", "user3", room="kitchen"),
            ],
        )
        analysis = await _detector().analyze_operation(
            _op("reschedule_multiple", ["k1", "k2", "k3"], new_due_date="2026-03-04"), context,
        )

        resource = [c for c in analysis.conflicts if c.type == "resource"]
        assert len(resource) == 1
        assert resource[0].chore_ids == ["k1", "k2", "k3"]
        assert "kitchen" in resource[0].description
        assert resource[0].severity == "minor"
        stagger = next(r for r in analysis.suggested_resolutions if r.conflict_id.startswith("resource"))
        assert stagger.modifications == {"stagger_by_hours": 2}
        assert stagger.confidence == 0.85

    @pytest.mark.asyncio
    async def test_only_reschedule_is_checked(self):
        context = FamilyContextSnapshot(
            family_size=1,
            active_chores=[_chore(f"k{i}", "user1", room="kitchen") for i in range(3)],
        )
        analysis = await _detector().analyze_operation(
            _op("modify_multiple", ["k0", "k1", "k2"], difficulty="easy"), context,
        )
        assert not any(c.type == "resource" for c in analysis.conflicts)


class TestDependency:
    @pytest.mark.asyncio
    async def test_deleting_most_chores(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("delete_multiple", ["chore1", "chore2"]), sample_context,
        )

        dependency = [c for c in analysis.conflicts if c.type == "dependency"]
        assert dependency[0].severity == "major"
        assert dependency[0].auto_fixable is False
        assert analysis.auto_resolution_available is False
        _assert_invariants(analysis)

    @pytest.mark.asyncio
    async def test_deleting_half_or_less(self, sample_context):
        analysis = await _detector().analyze_operation(
            _op("delete_multiple", ["chore2"]), sample_context,
        )
        assert not any(c.type == "dependency" for c in analysis.conflicts)


# ---------------------------------------------------------------------------
# AI resolutions
# ---------------------------------------------------------------------------


def _gateway_with(response=None, available=True, side_effect=None):
    gateway = AsyncMock()
    gateway.is_available.return_value = available
    if side_effect is not None:
        gateway.analyze_conflicts.side_effect = side_effect
    else:
        gateway.analyze_conflicts.return_value = response
    return gateway


class TestAIResolutions:
    @pytest.mark.asyncio
    async def test_ai_resolutions_appended_for_non_fixable(self, sample_context):
        response = AIGatewayResponse(
            request_id="r1",
            success=True,
            analysis=AIAnalysisResult(details={"resolutions": [
                {"strategy": "seek_approval", "description": "Ask the parents", "confidence": 0.7},
                {"strategy": "teleport", "description": "not a strategy"},
            ]}),
        )
        gateway = _gateway_with(response)

        analysis = await _detector(gateway).analyze_operation(
            _op("delete_multiple", ["chore1", "chore2"]), sample_context,
        )

        ai = [r for r in analysis.suggested_resolutions if r.strategy == "seek_approval"]
        assert len(ai) == 1
        assert ai[0].description == "Ask the parents"
        assert not any(r.description == "not a strategy" for r in analysis.suggested_resolutions)
        gateway.analyze_conflicts.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_called_when_everything_is_fixable(self, sample_context):
        gateway = _gateway_with()
        await _detector(gateway).analyze_operation(
            _op("reschedule_multiple", ["chore1"], new_due_date="2020-01-01"), sample_context,
        )
        gateway.analyze_conflicts.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_called_when_unavailable(self, sample_context):
        gateway = _gateway_with(available=False)
        analysis = await _detector(gateway).analyze_operation(
            _op("delete_multiple", ["chore1", "chore2"]), sample_context,
        )
        gateway.analyze_conflicts.assert_not_awaited()
        assert any(c.type == "dependency" for c in analysis.conflicts)

    @pytest.mark.asyncio
    async def test_gateway_failure_is_swallowed(self, sample_context):
        response = AIGatewayResponse(
            request_id="r1",
            success=False,
            error=GatewayError.of(AIErrorCode.REQUEST_TIMEOUT, "timed out"),
        )
        analysis = await _detector(_gateway_with(response)).analyze_operation(
            _op("delete_multiple", ["chore1", "chore2"]), sample_context,
        )
        assert any(c.type == "dependency" for c in analysis.conflicts)
        assert not any(r.strategy == "seek_approval" for r in analysis.suggested_resolutions)

    @pytest.mark.asyncio
    async def test_gateway_exception_is_swallowed(self, sample_context):
        gateway = _gateway_with(side_effect=RuntimeError("boom"))
        analysis = await _detector(gateway).analyze_operation(
            _op("delete_multiple", ["chore1", "chore2"]), sample_context,
        )
        assert analysis.severity != "none"


# ---------------------------------------------------------------------------
# Roll-up and failure
# ---------------------------------------------------------------------------


class TestSeverityRollup:
    def test_empty_is_none(self):
        assert calculate_severity([]) == "none"

    def test_max_wins(self):
        conflicts = [
            OperationConflict("resource", [], "a", "minor", True),
            OperationConflict("skill", [], "b", "major", False),
            OperationConflict("schedule", [], "c", "minor", True),
        ]
        assert calculate_severity(conflicts) == "major"

    def test_blocking_dominates(self):
        conflicts = [
            OperationConflict("skill", [], "b", "major", False),
            OperationConflict("schedule", [], "c", "blocking", True),
        ]
        assert calculate_severity(conflicts) == "blocking"


class TestInternalFailure:
    @pytest.mark.asyncio
    async def test_missing_context_gives_neutral_result(self):
        analysis = await _detector().analyze_operation(_op("assign_multiple", ["x"], assign_to="y"), None)
        assert analysis.severity == "none"
        assert analysis.conflicts == []
        assert analysis.auto_resolution_available is True
