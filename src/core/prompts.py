"""
Household Bulk Assistant — Prompt templates.

One template per gateway request type, plus the helpers that render the
family snapshot into prompt text. The request-specific part of every
template comes first so the head of the prompt identifies the request.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from src.core.dates import parse_due_date
from src.data.models import BulkOperation, ChoreContext, FamilyContextSnapshot

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

BULK_OPERATION_PROMPT = """\
User Request: {user_request}

You are a helpful family household management assistant. Convert the user's
request into a structured bulk chore operation. Prioritize family harmony,
equitable workload distribution and age-appropriate assignments.

Family Context:
{family_context}

Current Chores:
{chores_context}

Return ONLY a JSON object, no markdown:
{{"reasoning": "string",
  "analysis": {{"type": "bulk_operation", "summary": "string",
    "details": {{"intent": {{"type": "assign|reschedule|modify|delete|create|optimize",
      "scope": "all|selected|filtered|specific", "target": ["string"], "modifiers": {{}}}}}},
    "recommendations": ["string"], "confidence": 0.0, "action_required": false}}}}
"""

SUGGESTION_PROMPT = """\
Operation Type: {operation_type}

Based on the family's chore completion patterns and preferences, suggest
optimizations for workload distribution, scheduling efficiency,
skill-appropriate assignments and family satisfaction.

Family Data:
{family_context}

Completion History:
{completion_history}

Current Issues:
{current_issues}

Return ONLY a JSON object, no markdown:
{{"reasoning": "string",
  "suggestions": [{{"type": "assignment|scheduling|points|optimization", "description": "string",
    "rationale": "string", "confidence": 0.0, "chore_ids": ["string"],
    "modifications": {{}}, "priority": "low|medium|high"}}]}}
"""

CONFLICT_ANALYSIS_PROMPT = """\
Operation: {operation_summary}

Analyze this bulk chore operation for schedule conflicts, workload
imbalances, skill mismatches and resource conflicts. For each conflict,
suggest a specific resolution strategy.

Operation Details:
{operation_details}

Family Schedule:
{family_schedule}

Member Workloads:
{member_workloads}

Return ONLY a JSON object, no markdown:
{{"reasoning": "string",
  "analysis": {{"type": "conflict_detection", "summary": "string",
    "details": {{"resolutions": [{{"conflict_id": "string",
      "strategy": "reschedule|reassign|split_workload|adjust_requirements|seek_approval",
      "description": "string", "modifications": {{}}, "confidence": 0.0}}]}},
    "recommendations": ["string"], "confidence": 0.0, "action_required": false}}}}
"""

IMPACT_ASSESSMENT_PROMPT = """\
Operation: {operation_summary}

Assess how this bulk operation changes each family member's workload and
schedule, its fairness, and its effect on family dynamics.

Current State:
{current_state}

{proposed_changes}

Return ONLY a JSON object, no markdown:
{{"reasoning": "string",
  "analysis": {{"type": "impact_assessment", "summary": "string",
    "details": {{"recommendations": ["string"]}},
    "recommendations": ["string"], "confidence": 0.0, "action_required": false}}}}
"""


# ---------------------------------------------------------------------------
# Context string builders
# ---------------------------------------------------------------------------


def build_family_context(context: FamilyContextSnapshot) -> str:
    preferences = context.preferences.model_dump(exclude_none=True)
    return (
        f"Family Size: {context.family_size}\n"
        f"Member Ages: {', '.join(str(a) for a in context.member_ages)}\n"
        f"Active Chores: {len(context.active_chores)}\n"
        f"Preferences: {json.dumps(preferences, indent=2)}"
    )


def build_chores_context(chores: list[ChoreContext]) -> str:
    if not chores:
        return "No active chores"
    return "\n".join(
        f"{i}. {c.title} ({c.difficulty}, {c.points} pts, assigned to: {c.assigned_to})"
        for i, c in enumerate(chores, start=1)
    )


def build_schedule_context(context: FamilyContextSnapshot) -> str:
    if context.current_schedule is None:
        return "No schedule data available"
    return json.dumps(context.current_schedule.model_dump(), indent=2)


def _points_by_member(chores: list[ChoreContext]) -> dict[str, tuple[int, int]]:
    totals: dict[str, tuple[int, int]] = {}
    for chore in chores:
        count, points = totals.get(chore.assigned_to, (0, 0))
        totals[chore.assigned_to] = (count + 1, points + chore.points)
    return totals


def build_workload_context(context: FamilyContextSnapshot) -> str:
    totals = _points_by_member(context.active_chores)
    if not totals:
        return "No assigned chores"
    return "\n".join(
        f"{member_id}: {count} chores, {points} points"
        for member_id, (count, points) in totals.items()
    )


def build_current_state(context: FamilyContextSnapshot) -> str:
    return (
        "Current Family State:\n"
        f"- {context.family_size} family members\n"
        f"- {len(context.active_chores)} active chores\n"
        f"- Member ages: {', '.join(str(a) for a in context.member_ages)}"
    )


def summarize_operation(value: Any) -> str:
    """One line: operation kind, modifications, then chore ids.

    Accepts a BulkOperation or a dict holding one under "operation".
    """
    operation = value.get("operation") if isinstance(value, dict) else value
    if not isinstance(operation, BulkOperation):
        return json.dumps(value, sort_keys=True, default=_json_default)

    parts = [operation.operation]
    parts.extend(f"{key}={val}" for key, val in sorted(operation.modifications.items()))
    if operation.chore_data:
        parts.append(f"new_chores={len(operation.chore_data)}")
    parts.append(f"chores={','.join(operation.chore_ids)}")
    return " ".join(parts)


def build_proposed_changes(operation: Any) -> str:
    return f"Proposed Changes: {to_json(operation)}"


def build_completion_history(context: FamilyContextSnapshot) -> str:
    patterns = context.historical_patterns.completion_patterns
    if not patterns:
        return "No completion history available"
    return "\n".join(
        f"{p.member_id}: {p.chore_type} - {round(p.completion_rate * 100)}% completion rate"
        for p in patterns
    )


def identify_current_issues(context: FamilyContextSnapshot, now: datetime | None = None) -> str:
    """Summarize visible problems: point spread between members, overdue chores."""
    issues: list[str] = []

    points = [p for _, p in _points_by_member(context.active_chores).values()]
    if len(points) > 1 and max(points) - min(points) > 50:
        issues.append("Significant workload imbalance detected")

    now = now or datetime.now(timezone.utc)
    overdue = 0
    for chore in context.active_chores:
        due = parse_due_date(chore.due_date)
        if due is not None and due.is_before(now):
            overdue += 1
    if overdue:
        issues.append(f"{overdue} overdue chores")

    return "\n".join(issues) if issues else "No significant issues identified"


def to_json(value: Any) -> str:
    """Render models, dataclasses-as-dicts and plain values as indented JSON."""
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    return json.dumps(value, indent=2, default=_json_default)


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        from dataclasses import asdict
        return asdict(obj)
    return str(obj)
