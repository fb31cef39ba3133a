"""
Household Bulk Assistant — Workload simulation.

Per-member workload totals for a family snapshot, and the predicted totals
after a bulk operation is applied. Shared by the conflict detector and the
impact analyzer so both judge an operation against the same numbers.

Simulation never touches the snapshot; it works on fresh MemberWorkload
objects keyed by member id.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

from src.data.models import BulkOperation, ChoreContext, FamilyContextSnapshot

DIFFICULTY_WEIGHTS: dict[str, int] = {"easy": 1, "medium": 2, "hard": 3}

DEFAULT_MEMBER_AGE = 16
NEW_CHORE_ASSIGNEE = "unassigned"
NEW_CHORE_POINTS = 10


@dataclass
class MemberWorkload:
    """Chore count, total points and difficulty-weighted score of one member."""

    chores: int = 0
    points: int = 0
    difficulty: int = 0

    def add(self, points: int, difficulty: str | None) -> None:
        self.chores += 1
        self.points += points
        self.difficulty += difficulty_weight(difficulty)

    def remove(self, points: int, difficulty: str | None) -> None:
        self.chores -= 1
        self.points -= points
        self.difficulty -= difficulty_weight(difficulty)


def difficulty_weight(difficulty: str | None) -> int:
    return DIFFICULTY_WEIGHTS.get(difficulty or "", 2)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_member_workloads(chores: list[ChoreContext]) -> dict[str, MemberWorkload]:
    """Current totals per assignee."""
    workloads: dict[str, MemberWorkload] = {}
    for chore in chores:
        workloads.setdefault(chore.assigned_to, MemberWorkload()).add(chore.points, chore.difficulty)
    return workloads


def find_affected_chores(
    operation: BulkOperation, context: FamilyContextSnapshot,
) -> list[ChoreContext]:
    """Active chores named by the operation, in snapshot order. Unknown ids are ignored."""
    wanted = set(operation.chore_ids)
    return [c for c in context.active_chores if c.id in wanted]


def simulate_operation(
    operation: BulkOperation,
    current: dict[str, MemberWorkload],
    context: FamilyContextSnapshot,
) -> dict[str, MemberWorkload]:
    """Predicted per-member totals after applying the operation.

    Reschedule leaves totals unchanged.
    """
    predicted = {member_id: replace(w) for member_id, w in current.items()}
    affected = find_affected_chores(operation, context)
    mods = operation.modifications

    if operation.operation == "assign_multiple":
        target = mods.get("assign_to")
        if not target:
            return predicted
        for chore in affected:
            if chore.assigned_to in predicted:
                predicted[chore.assigned_to].remove(chore.points, chore.difficulty)
            predicted.setdefault(target, MemberWorkload()).add(chore.points, chore.difficulty)

    elif operation.operation == "modify_multiple":
        for chore in affected:
            workload = predicted.get(chore.assigned_to)
            if workload is None:
                continue
            if mods.get("points") is not None:
                workload.points += int(mods["points"]) - chore.points
            if mods.get("points_multiplier") is not None:
                new_points = round_half_up(chore.points * float(mods["points_multiplier"]))
                workload.points += new_points - chore.points
            if mods.get("difficulty") is not None:
                workload.difficulty += (
                    difficulty_weight(mods["difficulty"]) - difficulty_weight(chore.difficulty)
                )

    elif operation.operation == "delete_multiple":
        for chore in affected:
            if chore.assigned_to in predicted:
                predicted[chore.assigned_to].remove(chore.points, chore.difficulty)

    elif operation.operation == "create_multiple":
        for data in operation.chore_data:
            assignee = data.get("assigned_to") or NEW_CHORE_ASSIGNEE
            predicted.setdefault(assignee, MemberWorkload()).add(
                data.get("points") or NEW_CHORE_POINTS, data.get("difficulty") or "medium",
            )

    return predicted


# ---------------------------------------------------------------------------
# Member lookups
# ---------------------------------------------------------------------------


def _find_member(member_id: str, context: FamilyContextSnapshot):
    key = member_id.casefold()
    for member in context.members:
        if member.id == member_id or (member.name and member.name.casefold() == key):
            return member
    return None


def resolve_member_age(member_id: str, context: FamilyContextSnapshot) -> int:
    """Age of a member from the directory; else the youngest known age; else 16."""
    member = _find_member(member_id, context)
    if member is not None and member.age is not None:
        return member.age
    if context.member_ages:
        return min(context.member_ages)
    return DEFAULT_MEMBER_AGE


def resolve_member_name(member_id: str, context: FamilyContextSnapshot) -> str:
    member = _find_member(member_id, context)
    if member is not None and member.name:
        return member.name
    return f"Member {member_id[:8]}"
