"""
Household Bulk Assistant — Conflict Detector.

Checks a bulk operation against the family snapshot before it runs.
Five independent detectors (schedule, workload, skill, resource,
dependency) each contribute conflicts; the overall severity is the worst
of them. Auto-fixable conflicts get a fixed resolution; the rest may get
AI-suggested resolutions when the family has AI enabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Literal

from pydantic import BaseModel, Field, ValidationError

from src.core.dates import parse_due_date
from src.core.simulation import (
    calculate_member_workloads,
    find_affected_chores,
    resolve_member_age,
    resolve_member_name,
    simulate_operation,
)
from src.data.models import BulkOperation, FamilyContextSnapshot

if TYPE_CHECKING:
    from src.core.ai_gateway import AIGateway

logger = logging.getLogger(__name__)

ConflictType = Literal["schedule", "workload", "skill", "resource", "dependency"]
Severity = Literal["none", "minor", "major", "blocking"]

SEVERITY_ORDER: dict[str, int] = {"none": 0, "minor": 1, "major": 2, "blocking": 3}

WEEKEND_CHORE_LIMIT = 5
WORKLOAD_DEVIATION_LIMIT = 0.3
ROOM_CHORE_LIMIT = 2
DELETE_SHARE_LIMIT = 0.5
CHILD_AGE_LIMIT = 12


@dataclass
class OperationConflict:
    """One problem an operation would cause."""

    type: ConflictType
    chore_ids: list[str]
    description: str
    severity: Literal["minor", "major", "blocking"]
    auto_fixable: bool
    member_ids: list[str] = field(default_factory=list)


class ConflictResolution(BaseModel):
    conflict_id: str = ""
    strategy: Literal["reschedule", "reassign", "split_workload", "adjust_requirements", "seek_approval"]
    description: str
    modifications: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


@dataclass
class ConflictAnalysis:
    conflicts: list[OperationConflict] = field(default_factory=list)
    severity: Severity = "none"
    auto_resolution_available: bool = True
    suggested_resolutions: list[ConflictResolution] = field(default_factory=list)


def calculate_severity(conflicts: list[OperationConflict]) -> Severity:
    """Worst severity under none < minor < major < blocking."""
    severity: Severity = "none"
    for conflict in conflicts:
        if SEVERITY_ORDER[conflict.severity] > SEVERITY_ORDER[severity]:
            severity = conflict.severity
    return severity


# Conflict type -> (strategy, description, modifications, confidence)
_AUTO_RESOLUTIONS: dict[str, tuple[str, str, dict[str, Any], float]] = {
    "schedule": (
        "reschedule",
        "Spread chores across multiple days to avoid overload",
        {"distribute_across_days": 3},
        0.8,
    ),
    "workload": (
        "reassign",
        "Redistribute chores to balance workload more evenly",
        {"rebalance_workload": True},
        0.9,
    ),
    "resource": (
        "reschedule",
        "Stagger chores in the same room to avoid conflicts",
        {"stagger_by_hours": 2},
        0.85,
    ),
}


class ConflictDetector:
    """Runs every conflict detector over an operation.

    `now` is injectable so past-date checks are testable.
    """

    def __init__(
        self,
        gateway: AIGateway | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._gateway = gateway
        self._now = now

    async def analyze_operation(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> ConflictAnalysis:
        try:
            conflicts = [
                *self._detect_schedule_conflicts(operation),
                *self._detect_workload_conflicts(operation, context),
                *self._detect_skill_mismatches(operation, context),
                *self._detect_resource_conflicts(operation, context),
                *self._detect_dependency_conflicts(operation, context),
            ]
            resolutions = await self._generate_resolutions(conflicts, operation, context)
        except Exception as exc:
            logger.error("Error analyzing operation conflicts: %s", exc, exc_info=True)
            return ConflictAnalysis()

        analysis = ConflictAnalysis(
            conflicts=conflicts,
            severity=calculate_severity(conflicts),
            auto_resolution_available=all(c.auto_fixable for c in conflicts),
            suggested_resolutions=resolutions,
        )
        logger.info(
            "Conflict analysis for %s (family %s): %d conflicts, severity=%s",
            operation.operation, operation.family_id, len(conflicts), analysis.severity,
        )
        return analysis

    # ---------------------------------------------------------------------------
    # Detectors
    # ---------------------------------------------------------------------------

    def _detect_schedule_conflicts(self, operation: BulkOperation) -> list[OperationConflict]:
        if operation.operation not in ("assign_multiple", "reschedule_multiple"):
            return []
        raw_date = operation.modifications.get("new_due_date")
        if not raw_date:
            return []

        due = parse_due_date(raw_date)
        if due is None:
            return [OperationConflict(
                type="schedule",
                chore_ids=list(operation.chore_ids),
                description=f"Invalid due date: {raw_date}",
                severity="blocking",
                auto_fixable=True,
            )]

        conflicts: list[OperationConflict] = []
        if due.is_weekend and len(operation.chore_ids) > WEEKEND_CHORE_LIMIT:
            conflicts.append(OperationConflict(
                type="schedule",
                chore_ids=list(operation.chore_ids),
                description="High volume of chores scheduled for weekend",
                severity="minor",
                auto_fixable=True,
            ))
        if operation.operation == "reschedule_multiple" and due.is_before(self._now()):
            conflicts.append(OperationConflict(
                type="schedule",
                chore_ids=list(operation.chore_ids),
                description="Cannot schedule chores in the past",
                severity="blocking",
                auto_fixable=True,
            ))
        return conflicts

    def _detect_workload_conflicts(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[OperationConflict]:
        current = calculate_member_workloads(context.active_chores)
        predicted = simulate_operation(operation, current, context)
        if predicted == current:
            return []

        total_points = sum(w.points for w in predicted.values())
        members = context.family_size or len(predicted)
        if total_points <= 0 or members <= 0:
            return []
        fair_share = total_points / members

        imbalances: list[tuple[str, float, float]] = []
        for member_id, workload in predicted.items():
            deviation = abs(workload.points - fair_share) / fair_share
            if deviation > WORKLOAD_DEVIATION_LIMIT:
                imbalances.append((member_id, deviation, workload.points / total_points * 100))
        if not imbalances:
            return []

        max_deviation = max(d for _, d, _ in imbalances)
        if max_deviation >= 0.8:
            severity = "blocking"
        elif max_deviation >= 0.5:
            severity = "major"
        else:
            severity = "minor"

        details = ", ".join(
            f"{resolve_member_name(member_id, context)} would have {share:.0f}% of total workload"
            for member_id, _, share in imbalances
        )
        return [OperationConflict(
            type="workload",
            chore_ids=list(operation.chore_ids),
            member_ids=[member_id for member_id, _, _ in imbalances],
            description=f"Workload imbalance detected: {details}",
            severity=severity,
            auto_fixable=True,
        )]

    def _detect_skill_mismatches(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[OperationConflict]:
        assign_to = operation.modifications.get("assign_to")
        if operation.operation != "assign_multiple" or not assign_to:
            return []

        if resolve_member_age(assign_to, context) >= CHILD_AGE_LIMIT:
            return []
        mismatched = [c for c in find_affected_chores(operation, context) if c.difficulty == "hard"]
        if not mismatched:
            return []

        return [OperationConflict(
            type="skill",
            chore_ids=[c.id for c in mismatched],
            member_ids=[assign_to],
            description="Skill mismatches detected: " + ", ".join(
                f'Hard chore "{c.title}" assigned to child under {CHILD_AGE_LIMIT}' for c in mismatched
            ),
            severity="major",
            auto_fixable=False,
        )]

    def _detect_resource_conflicts(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[OperationConflict]:
        if operation.operation != "reschedule_multiple":
            return []

        by_room: dict[str, list[str]] = {}
        for chore in find_affected_chores(operation, context):
            if chore.room:
                by_room.setdefault(chore.room, []).append(chore.id)

        return [
            OperationConflict(
                type="resource",
                chore_ids=chore_ids,
                description=f"Too many chores scheduled simultaneously in {room}",
                severity="minor",
                auto_fixable=True,
            )
            for room, chore_ids in by_room.items()
            if len(chore_ids) > ROOM_CHORE_LIMIT
        ]

    def _detect_dependency_conflicts(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[OperationConflict]:
        if operation.operation != "delete_multiple":
            return []
        if len(operation.chore_ids) <= len(context.active_chores) * DELETE_SHARE_LIMIT:
            return []
        return [OperationConflict(
            type="dependency",
            chore_ids=list(operation.chore_ids),
            description="Deleting more than 50% of active chores may disrupt family routine",
            severity="major",
            auto_fixable=False,
        )]

    # ---------------------------------------------------------------------------
    # Resolutions
    # ---------------------------------------------------------------------------

    async def _generate_resolutions(
        self,
        conflicts: list[OperationConflict],
        operation: BulkOperation,
        context: FamilyContextSnapshot,
    ) -> list[ConflictResolution]:
        resolutions: list[ConflictResolution] = []
        for index, conflict in enumerate(conflicts):
            if not conflict.auto_fixable or conflict.type not in _AUTO_RESOLUTIONS:
                continue
            strategy, description, modifications, confidence = _AUTO_RESOLUTIONS[conflict.type]
            resolutions.append(ConflictResolution(
                conflict_id=f"{conflict.type}-{index}",
                strategy=strategy,
                description=description,
                modifications=dict(modifications),
                confidence=confidence,
            ))

        complex_conflicts = [c for c in conflicts if not c.auto_fixable]
        if complex_conflicts:
            resolutions.extend(
                await self._get_ai_resolutions(complex_conflicts, operation, context)
            )
        return resolutions

    async def _get_ai_resolutions(
        self,
        conflicts: list[OperationConflict],
        operation: BulkOperation,
        context: FamilyContextSnapshot,
    ) -> list[ConflictResolution]:
        if self._gateway is None:
            return []
        try:
            if not await self._gateway.is_available(operation.family_id):
                return []
            response = await self._gateway.analyze_conflicts(
                {"operation": operation, "conflicts": conflicts}, operation.family_id, context,
            )
        except Exception as exc:
            logger.warning("AI resolution generation failed: %s", exc)
            return []

        if not response.success:
            logger.warning(
                "AI resolutions unavailable for family %s: %s",
                operation.family_id, response.error_code,
            )
            return []
        if response.analysis is None:
            return []

        raw = response.analysis.details.get("resolutions")
        if not isinstance(raw, list):
            return []
        resolutions: list[ConflictResolution] = []
        for item in raw:
            try:
                resolutions.append(ConflictResolution.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed AI resolution: %r", item)
        return resolutions
