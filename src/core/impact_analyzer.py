"""
Household Bulk Assistant — Family Impact Analyzer.

Estimates how a bulk operation changes each member's workload, schedule and
skill fit, scores the result for family harmony (0-100), and produces
recommendations. AI recommendations are merged in when the family has AI
enabled; any AI failure just leaves them out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from src.core.dates import parse_due_date
from src.core.simulation import (
    MemberWorkload,
    calculate_member_workloads,
    find_affected_chores,
    resolve_member_age,
    resolve_member_name,
    simulate_operation,
)
from src.data.models import BulkOperation, ChoreContext, FamilyContextSnapshot

if TYPE_CHECKING:
    from src.core.ai_gateway import AIGateway

logger = logging.getLogger(__name__)

ImpactKind = Literal["positive", "neutral", "negative"]

CHILD_AGE_LIMIT = 12
BULK_ASSIGN_CONCERN_LIMIT = 5
BUSY_DAY_LIMIT = 3

FALLBACK_RECOMMENDATION = "Unable to analyze impact - please try again"


@dataclass
class MemberImpact:
    member_id: str
    member_name: str
    current_workload: int
    new_workload: int
    workload_change: int
    schedule_conflicts: int
    skill_mismatches: int
    impact: ImpactKind
    concerns: list[str] = field(default_factory=list)


@dataclass
class WorkloadChange:
    member_id: str
    current_chore_count: int
    new_chore_count: int
    current_points: int
    new_points: int
    change_percentage: float


@dataclass
class ScheduleChange:
    member_id: str
    conflicting_time_slots: list[str]
    overlap_count: int
    suggested_adjustments: list[str]


@dataclass
class SkillMismatch:
    chore_id: str
    reason: str


@dataclass
class DifficultyAdjustment:
    member_id: str
    inappropriate_assignments: list[str]
    skill_mismatches: list[SkillMismatch]
    recommendations: list[str]


@dataclass
class FamilyImpactAssessment:
    member_impacts: list[MemberImpact] = field(default_factory=list)
    workload_changes: list[WorkloadChange] = field(default_factory=list)
    schedule_changes: list[ScheduleChange] = field(default_factory=list)
    difficulty_adjustments: list[DifficultyAdjustment] = field(default_factory=list)
    overall_score: int = 50
    recommendations: list[str] = field(default_factory=lambda: [FALLBACK_RECOMMENDATION])


def classify_impact(workload_change: int, current_workload: int) -> ImpactKind:
    """Raises above 30% read as negative, drops above 20% as positive."""
    if workload_change == 0:
        return "neutral"
    ratio = abs(workload_change) / max(current_workload, 10)
    if workload_change > 0:
        return "negative" if ratio > 0.3 else "neutral"
    return "positive" if ratio > 0.2 else "neutral"


def calculate_overall_score(
    member_impacts: list[MemberImpact],
    workload_changes: list[WorkloadChange],
    schedule_changes: list[ScheduleChange],
) -> int:
    score = 100
    for impact in member_impacts:
        if impact.impact == "negative":
            score -= 15
        score -= len(impact.concerns) * 5
        score -= impact.skill_mismatches * 10

    max_change = max((abs(c.change_percentage) for c in workload_changes), default=0)
    if max_change > 50:
        score -= 20
    elif max_change > 30:
        score -= 10

    score -= sum(c.overlap_count for c in schedule_changes) * 8
    return max(0, min(100, score))


def _workload_pairs(
    operation: BulkOperation, context: FamilyContextSnapshot,
) -> list[tuple[str, MemberWorkload, MemberWorkload]]:
    """(member_id, current, predicted) for everyone with chores before or after."""
    current = calculate_member_workloads(context.active_chores)
    predicted = simulate_operation(operation, current, context)
    member_ids = list(dict.fromkeys([*current, *predicted]))
    return [
        (member_id, current.get(member_id, MemberWorkload()), predicted.get(member_id, MemberWorkload()))
        for member_id in member_ids
    ]


class ImpactAnalyzer:
    """Simulates an operation per member and scores its family impact."""

    def __init__(self, gateway: AIGateway | None = None) -> None:
        self._gateway = gateway

    async def analyze_impact(
        self, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> FamilyImpactAssessment:
        try:
            pairs = _workload_pairs(operation, context)
            member_impacts = self._analyze_member_impacts(operation, context, pairs)
            workload_changes = self._analyze_workload_changes(pairs)
            schedule_changes = self._analyze_schedule_changes(operation, context)
            difficulty_adjustments = self._analyze_difficulty_adjustments(operation, context)
            overall_score = calculate_overall_score(member_impacts, workload_changes, schedule_changes)
            recommendations = await self._generate_recommendations(operation, member_impacts, context)
        except Exception as exc:
            logger.error("Error analyzing family impact: %s", exc, exc_info=True)
            return FamilyImpactAssessment()

        logger.info(
            "Impact analysis for %s (family %s): score=%d",
            operation.operation, operation.family_id, overall_score,
        )
        return FamilyImpactAssessment(
            member_impacts=member_impacts,
            workload_changes=workload_changes,
            schedule_changes=schedule_changes,
            difficulty_adjustments=difficulty_adjustments,
            overall_score=overall_score,
            recommendations=recommendations,
        )

    # ---------------------------------------------------------------------------
    # Per-member analysis
    # ---------------------------------------------------------------------------

    def _analyze_member_impacts(
        self,
        operation: BulkOperation,
        context: FamilyContextSnapshot,
        pairs: list[tuple[str, MemberWorkload, MemberWorkload]],
    ) -> list[MemberImpact]:
        impacts: list[MemberImpact] = []
        for member_id, current, predicted in pairs:
            change = predicted.points - current.points
            impacts.append(MemberImpact(
                member_id=member_id,
                member_name=resolve_member_name(member_id, context),
                current_workload=current.points,
                new_workload=predicted.points,
                workload_change=change,
                schedule_conflicts=len(self._member_schedule_conflicts(member_id, operation, context)),
                skill_mismatches=len(self._member_skill_mismatches(member_id, operation, context)),
                impact=classify_impact(change, current.points),
                concerns=self._member_concerns(member_id, operation),
            ))
        return impacts

    @staticmethod
    def _member_schedule_conflicts(
        member_id: str, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[str]:
        if operation.operation != "reschedule_multiple":
            return []
        due = parse_due_date(operation.modifications.get("new_due_date"))
        if due is None or not due.is_weekend:
            return []
        if not any(c.assigned_to == member_id for c in find_affected_chores(operation, context)):
            return []
        return ["Weekend scheduling may conflict with family activities"]

    @staticmethod
    def _member_skill_mismatches(
        member_id: str, operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[str]:
        if operation.operation != "assign_multiple":
            return []
        if operation.modifications.get("assign_to") != member_id:
            return []
        if resolve_member_age(member_id, context) >= CHILD_AGE_LIMIT:
            return []
        return [
            f'Hard chore "{c.title}" may be too difficult for child'
            for c in find_affected_chores(operation, context)
            if c.difficulty == "hard"
        ]

    @staticmethod
    def _member_concerns(member_id: str, operation: BulkOperation) -> list[str]:
        if (
            operation.operation == "assign_multiple"
            and operation.modifications.get("assign_to") == member_id
            and len(operation.chore_ids) > BULK_ASSIGN_CONCERN_LIMIT
        ):
            return ["Large number of chores assigned simultaneously"]
        return []

    # ---------------------------------------------------------------------------
    # Aggregate changes
    # ---------------------------------------------------------------------------

    @staticmethod
    def _analyze_workload_changes(
        pairs: list[tuple[str, MemberWorkload, MemberWorkload]],
    ) -> list[WorkloadChange]:
        changes: list[WorkloadChange] = []
        for member_id, current, predicted in pairs:
            points_change = predicted.points - current.points
            if current.points > 0:
                percentage = points_change / current.points * 100
            else:
                percentage = 100.0 if predicted.points > 0 else 0.0
            changes.append(WorkloadChange(
                member_id=member_id,
                current_chore_count=current.chores,
                new_chore_count=predicted.chores,
                current_points=current.points,
                new_points=predicted.points,
                change_percentage=percentage,
            ))
        return changes

    @staticmethod
    def _analyze_schedule_changes(
        operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[ScheduleChange]:
        if operation.operation != "reschedule_multiple":
            return []
        if not operation.modifications.get("new_due_date"):
            return []

        by_member: dict[str, list[ChoreContext]] = {}
        for chore in find_affected_chores(operation, context):
            by_member.setdefault(chore.assigned_to, []).append(chore)

        changes: list[ScheduleChange] = []
        for member_id, chores in by_member.items():
            busy = len(chores) > BUSY_DAY_LIMIT
            changes.append(ScheduleChange(
                member_id=member_id,
                conflicting_time_slots=["Busy day with multiple chores"] if busy else [],
                overlap_count=max(0, len(chores) - 2),
                suggested_adjustments=["Spread some chores to adjacent days"] if busy else [],
            ))
        return changes

    @staticmethod
    def _analyze_difficulty_adjustments(
        operation: BulkOperation, context: FamilyContextSnapshot,
    ) -> list[DifficultyAdjustment]:
        assignee = operation.modifications.get("assign_to")
        if operation.operation != "assign_multiple" or not assignee:
            return []
        if resolve_member_age(assignee, context) >= CHILD_AGE_LIMIT:
            return []

        hard_chores = [c for c in find_affected_chores(operation, context) if c.difficulty == "hard"]
        if not hard_chores:
            return []
        return [DifficultyAdjustment(
            member_id=assignee,
            inappropriate_assignments=[c.title for c in hard_chores],
            skill_mismatches=[
                SkillMismatch(chore_id=c.id, reason="High difficulty for young family member")
                for c in hard_chores
            ],
            recommendations=["Consider assigning easier or age-appropriate alternatives"],
        )]

    # ---------------------------------------------------------------------------
    # Recommendations
    # ---------------------------------------------------------------------------

    async def _generate_recommendations(
        self,
        operation: BulkOperation,
        member_impacts: list[MemberImpact],
        context: FamilyContextSnapshot,
    ) -> list[str]:
        recommendations: list[str] = []
        if any(i.impact == "negative" for i in member_impacts):
            recommendations.append("Consider redistributing some chores to balance workload more evenly")
        if any(i.skill_mismatches > 0 for i in member_impacts):
            recommendations.append("Review chore difficulty assignments for age-appropriateness")
        if any(i.schedule_conflicts > 0 for i in member_impacts):
            recommendations.append("Consider spreading chores across multiple days to avoid conflicts")

        recommendations.extend(await self._get_ai_recommendations(operation, member_impacts, context))
        return list(dict.fromkeys(recommendations))

    async def _get_ai_recommendations(
        self,
        operation: BulkOperation,
        member_impacts: list[MemberImpact],
        context: FamilyContextSnapshot,
    ) -> list[str]:
        if self._gateway is None:
            return []
        try:
            if not await self._gateway.is_available(operation.family_id):
                return []
            response = await self._gateway.assess_family_impact(
                {"operation": operation, "member_impacts": member_impacts},
                operation.family_id,
                context,
            )
        except Exception as exc:
            logger.warning("AI recommendations failed: %s", exc)
            return []

        if not response.success or response.analysis is None:
            return []
        details = response.analysis.details.get("recommendations")
        recs = details if isinstance(details, list) else []
        recs = [*recs, *response.analysis.recommendations]
        return [r for r in recs if isinstance(r, str) and r.strip()]
