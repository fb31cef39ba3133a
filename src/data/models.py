"""
Household Bulk Assistant — Data Models.

Read-only family snapshot supplied by the caller, plus the bulk operation
the caller builds from a parse result. The analysis core never mutates
these; every "change" is simulated on copies.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Difficulty = Literal["easy", "medium", "hard"]

OperationKind = Literal[
    "assign_multiple",
    "reschedule_multiple",
    "modify_multiple",
    "delete_multiple",
    "create_multiple",
]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ChoreContext(_Frozen):
    """One active chore as seen by the analysis core.

    JSON example:
    {
        "id": "chore1",
        "title": "Clean kitchen",
        "type": "cleaning",
        "difficulty": "medium",
        "points": 15,
        "assigned_to": "user1",
        "due_date": "2025-01-01T10:00:00Z",
        "room": "kitchen",
        "category": "cleaning"
    }
    """
    id: str
    title: str
    type: str = "general"
    difficulty: Difficulty = "medium"
    points: int = 0
    assigned_to: str = ""
    due_date: str = ""          # ISO date or datetime
    room: str | None = None
    category: str | None = None
    completion_rate: float | None = None


class FamilyMember(_Frozen):
    """Optional member directory entry used for name and age resolution."""
    id: str
    name: str = ""
    age: int | None = None
    role: str = ""


class FamilyAIPreferences(_Frozen):
    enabled_features: list[str] = Field(default_factory=list)
    suggestion_frequency: str = "normal"
    auto_approval_threshold: float = 0.8
    language_style: str = "family_friendly"
    conflict_sensitivity: str = "medium"
    privacy_level: str = "standard"
    custom_instructions: str | None = None


class CompletionPattern(_Frozen):
    member_id: str
    chore_type: str
    average_completion_time: float = 0.0
    completion_rate: float = 0.0
    preferred_days: list[int] = Field(default_factory=list)
    preferred_time_slots: list[str] = Field(default_factory=list)


class FamilyPatternData(_Frozen):
    completion_patterns: list[CompletionPattern] = Field(default_factory=list)
    preferred_assignments: list[dict[str, Any]] = Field(default_factory=list)
    time_preferences: list[dict[str, Any]] = Field(default_factory=list)
    successful_operations: list[dict[str, Any]] = Field(default_factory=list)


class FamilyScheduleContext(_Frozen):
    week_start: str = ""
    upcoming_events: list[dict[str, Any]] = Field(default_factory=list)
    member_availability: list[dict[str, Any]] = Field(default_factory=list)
    recurring_commitments: list[dict[str, Any]] = Field(default_factory=list)


class FamilyContextSnapshot(_Frozen):
    """Immutable view of one family at the moment a request is analyzed."""
    family_size: int
    member_ages: list[int] = Field(default_factory=list)
    active_chores: list[ChoreContext] = Field(default_factory=list)
    members: list[FamilyMember] = Field(default_factory=list)
    preferences: FamilyAIPreferences = Field(default_factory=FamilyAIPreferences)
    historical_patterns: FamilyPatternData = Field(default_factory=FamilyPatternData)
    current_schedule: FamilyScheduleContext | None = None

    def chore_by_id(self, chore_id: str) -> ChoreContext | None:
        for chore in self.active_chores:
            if chore.id == chore_id:
                return chore
        return None


class BulkOperation(_Frozen):
    """A concrete bulk change over several chores.

    `modifications` keys by kind:
      assign_multiple     -> assign_to
      reschedule_multiple -> new_due_date (ISO date or datetime)
      modify_multiple     -> points, difficulty, points_multiplier
    `chore_data` holds the new chores of a create_multiple operation
    (assigned_to, points, difficulty, title).
    """
    operation: OperationKind
    family_id: str
    requested_by: str = ""
    chore_ids: list[str] = Field(default_factory=list)
    modifications: dict[str, Any] = Field(default_factory=dict)
    chore_data: list[dict[str, Any]] = Field(default_factory=list)
    ai_assisted: bool = False
    natural_language_request: str | None = None
    requires_approval: bool = False
    approval_status: Literal["pending", "approved", "rejected"] = "pending"
    estimated_duration: int = 30
    confidence_score: float = 0.0
