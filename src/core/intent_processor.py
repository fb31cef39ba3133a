"""
Household Bulk Assistant — Intent Processor.

Turns a free-text bulk request ("assign all kitchen chores to Sarah") into a
structured intent, the entities it mentions, a confidence score, the
ambiguities that need clarification, and a draft BulkOperation.

Matching is table-driven: entity matchers and intent patterns are plain
(category, regex, confidence) rows. When the best pattern is weak and the
family has AI enabled, the gateway is asked to classify instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Callable, Literal

from src.core.dates import WEEKDAYS, resolve_time_reference
from src.data.models import BulkOperation, FamilyContextSnapshot

if TYPE_CHECKING:
    from src.core.ai_gateway import AIGateway

logger = logging.getLogger(__name__)

IntentType = Literal["assign", "reschedule", "modify", "delete", "create", "optimize"]
Scope = Literal["all", "selected", "filtered", "specific"]

INTENT_TYPES = ("assign", "reschedule", "modify", "delete", "create", "optimize")
SCOPES = ("all", "selected", "filtered", "specific")

AI_FALLBACK_THRESHOLD = 0.8
APPROVAL_TARGET_LIMIT = 10


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Entity:
    type: str
    value: str
    confidence: float
    span: tuple[int, int]


@dataclass(frozen=True)
class ParsedIntent:
    type: IntentType = "modify"
    scope: Scope = "selected"
    target: list[str] = field(default_factory=list)
    modifiers: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NLPParseResult:
    intent: ParsedIntent
    entities: list[Entity]
    confidence: float
    ambiguities: list[str]
    suggested_operation: BulkOperation | None = None

    @property
    def clarification_needed(self) -> bool:
        return bool(self.ambiguities) or self.confidence < 0.7


# ---------------------------------------------------------------------------
# Matching tables
# ---------------------------------------------------------------------------

_MEMBER_WORDS = (
    "mom|dad|mother|father|parents?|kids?|child|children|teens?|teenager|adults?|"
    "sarah|mike|john|emma|alex|chris|sam|taylor|jordan|casey|riley|jamie|quinn|"
    "devon|cameron|skyler|avery|morgan|parker|blake|drew|sage|river|eden"
)

# (entity type, pattern, confidence); member names from the family are added per request
ENTITY_MATCHERS: list[tuple[str, re.Pattern[str], float]] = [
    ("member", re.compile(rf"\b(?:{_MEMBER_WORDS})\b"), 0.8),
    ("chore_type", re.compile(
        r"\b(?:cleaning|laundry|dishes|vacuum(?:ing)?|sweep(?:ing)?|mop(?:ping)?|dust(?:ing)?|"
        r"trash|garbage|recycling|yard|garden(?:ing)?|cooking|maintenance|organizing)\b"
    ), 0.85),
    ("category", re.compile(r"\b(?:indoor|outdoor|pet care|errands|homework|self care)\b"), 0.85),
    ("time", re.compile(
        r"\b(?:today|tomorrow|yesterday|morning|afternoon|evening|night|weekend|weekday|"
        r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|daily|weekly|monthly)\b"
    ), 0.9),
    ("difficulty", re.compile(
        r"\b(?:easy|simple|basic|medium|moderate|hard|difficult|challenging|complex)\b"
    ), 0.9),
    ("points", re.compile(r"\b\d+\s*(?:points?|pts?)\b"), 0.95),
    ("room", re.compile(
        r"\b(?:kitchen|bathroom|master bedroom|bedroom|living room|dining room|garage|"
        r"basement|attic|office|study|playroom|guest room|family room|laundry room)\b"
    ), 0.9),
]

# (intent type, default scope, pattern, base confidence)
INTENT_PATTERNS: list[tuple[IntentType, Scope, re.Pattern[str], float]] = [
    ("assign", "selected", re.compile(r"\b(?:assign|reassign|give|transfer|hand over)\b"), 0.9),
    ("reschedule", "selected", re.compile(
        r"\b(?:reschedule|postpone|defer|change to)\b|\bmove\b.*\bto\b"
    ), 0.85),
    ("modify", "selected", re.compile(
        r"\b(?:change|modify|update|adjust|increase|decrease|set)\b"
    ), 0.8),
    ("delete", "selected", re.compile(r"\b(?:delete|remove|cancel|eliminate)\b"), 0.95),
    ("create", "all", re.compile(r"\b(?:create|add|make|generate|new)\b"), 0.8),
    ("optimize", "all", re.compile(
        r"\b(?:optimize|balance|distribute|reorganize|improve)\b"
    ), 0.75),
]

RELEVANT_ENTITIES: dict[str, set[str]] = {
    "assign": {"member", "chore_type", "room"},
    "reschedule": {"time", "chore_type"},
    "modify": {"points", "difficulty", "chore_type"},
    "delete": {"chore_type", "room", "time"},
    "create": {"chore_type", "room", "difficulty", "points"},
    "optimize": {"member", "chore_type", "time"},
}

OPERATION_KINDS: dict[str, str] = {
    "assign": "assign_multiple",
    "reschedule": "reschedule_multiple",
    "modify": "modify_multiple",
    "delete": "delete_multiple",
    "create": "create_multiple",
    "optimize": "modify_multiple",
}

TARGET_ENTITY_TYPES = {"chore_type", "room", "member", "difficulty", "category"}

DIFFICULTY_LEVELS: dict[str, str] = {
    "easy": "easy", "simple": "easy", "basic": "easy",
    "medium": "medium", "moderate": "medium",
    "hard": "hard", "difficult": "hard", "challenging": "hard", "complex": "hard",
}

_SCOPE_WORDS: list[tuple[Scope, re.Pattern[str]]] = [
    ("all", re.compile(r"\b(?:all|every|everything|entire|whole)\b")),
    ("filtered", re.compile(r"\b(?:some|few|several)\b")),
    ("specific", re.compile(r"\b(?:one|this|that|these|those)\b")),
]
_BROAD_SCOPE = re.compile(r"\b(?:all|everything|entire|whole)\b")
_NARROW_SCOPE = re.compile(r"\b(?:some|few|several)\b")
_OPERATION_VERBS = re.compile(r"\b(assign|move|change|delete|create|increase|decrease)\b")
_CONJUNCTION = re.compile(r"\b(?:and|then)\b")
_PERCENTAGE = re.compile(r"(\d+)\s*(?:%|percent\b)")
_INCREASE = re.compile(r"\b(?:increase|raise|add|boost)\b")
_DECREASE = re.compile(r"\b(?:decrease|reduce|lower|cut)\b")
_RESOLVABLE_TIMES = {"today", "tomorrow", "weekend", *WEEKDAYS}

CLARIFICATION_QUESTIONS: dict[str, str] = {
    "unclear_target": "Which specific chores would you like to modify?",
    "unclear_member": "Which family member should be assigned these chores?",
    "unclear_time": "When should these chores be scheduled?",
    "unclear_scope": "Should this apply to all chores or just specific ones?",
    "unclear_operation": "What exactly would you like to do with these chores?",
}


def normalize_request(text: str) -> str:
    """Lowercase, drop punctuation (keeping %), collapse whitespace."""
    text = re.sub(r"[^\w\s%]", " ", (text or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def _member_matcher(context: FamilyContextSnapshot) -> re.Pattern[str] | None:
    names = sorted(
        {m.name.lower() for m in context.members if m.name},
        key=len, reverse=True,
    )
    if not names:
        return None
    return re.compile(r"\b(?:" + "|".join(re.escape(n) for n in names) + r")\b")


def extract_entities(text: str, context: FamilyContextSnapshot | None = None) -> list[Entity]:
    """All entity matches, deduplicated by (type, value) and sorted by confidence."""
    matchers = list(ENTITY_MATCHERS)
    if context is not None:
        family_names = _member_matcher(context)
        if family_names is not None:
            matchers.insert(1, ("member", family_names, 0.8))

    best: dict[tuple[str, str], Entity] = {}
    for entity_type, pattern, confidence in matchers:
        for match in pattern.finditer(text):
            value = match.group(0).strip()
            key = (entity_type, value)
            if key not in best or confidence > best[key].confidence:
                best[key] = Entity(entity_type, value, confidence, (match.start(), match.end()))

    return sorted(best.values(), key=lambda e: -e.confidence)


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class IntentProcessor:
    """Entry point for natural-language bulk requests."""

    def __init__(
        self,
        gateway: AIGateway | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._gateway = gateway
        self._today = today

    async def parse_request(
        self, text: str, family_id: str, context: FamilyContextSnapshot,
    ) -> NLPParseResult:
        """Parse a request. Never raises; failures come back as a low-confidence result."""
        try:
            normalized = normalize_request(text)
            entities = extract_entities(normalized, context)
            pattern_intent, pattern_confidence, matched_types = self._match_patterns(normalized, entities)

            intent = pattern_intent
            if pattern_confidence <= AI_FALLBACK_THRESHOLD:
                intent = await self._ai_intent(text, family_id, context, pattern_intent) or pattern_intent

            ambiguities = self._detect_ambiguities(normalized, entities, intent, matched_types)
            confidence = calculate_confidence(intent, entities, ambiguities)
            operation = self._build_operation(intent, entities, family_id, text)
        except Exception as exc:
            logger.error("Intent parsing failed for family %s: %s", family_id, exc, exc_info=True)
            return _error_result()

        logger.info(
            "Parsed request for family %s: intent=%s scope=%s confidence=%.2f ambiguities=%s",
            family_id, intent.type, intent.scope, confidence, ambiguities,
        )
        return NLPParseResult(
            intent=intent,
            entities=entities,
            confidence=confidence,
            ambiguities=ambiguities,
            suggested_operation=operation,
        )

    @staticmethod
    def generate_clarification_questions(result: NLPParseResult) -> list[str]:
        return [
            CLARIFICATION_QUESTIONS[a] for a in result.ambiguities if a in CLARIFICATION_QUESTIONS
        ]

    # -- Intent ------------------------------------------------------------

    def _match_patterns(
        self, text: str, entities: list[Entity],
    ) -> tuple[ParsedIntent, float, list[str]]:
        """Best-scoring intent pattern, its confidence, and every intent type that matched."""
        best_type: IntentType = "modify"
        best_scope: Scope = "selected"
        best_confidence = 0.0
        matched: list[str] = []

        for intent_type, default_scope, pattern, base in INTENT_PATTERNS:
            if not pattern.search(text):
                continue
            matched.append(intent_type)
            relevant = sum(1 for e in entities if e.type in RELEVANT_ENTITIES[intent_type])
            confidence = min(1.0, base + min(0.2, relevant * 0.05))
            if confidence > best_confidence:
                best_type, best_scope, best_confidence = intent_type, default_scope, confidence

        intent = ParsedIntent(
            type=best_type,
            scope=_detect_scope(text, best_scope),
            target=_extract_targets(entities),
            modifiers=_extract_modifiers(entities, text),
        )
        return intent, best_confidence, matched

    async def _ai_intent(
        self,
        text: str,
        family_id: str,
        context: FamilyContextSnapshot,
        fallback: ParsedIntent,
    ) -> ParsedIntent | None:
        if self._gateway is None:
            return None
        try:
            if not await self._gateway.is_available(family_id):
                return None
            response = await self._gateway.interpret_bulk_operation(text, family_id, context)
        except Exception as exc:
            logger.warning("AI intent detection raised for family %s: %s", family_id, exc)
            return None

        if not response.success:
            logger.warning(
                "AI intent detection failed for family %s (%s), using patterns",
                family_id, response.error_code,
            )
            return None
        if response.analysis is None:
            return None

        raw = response.analysis.details.get("intent")
        if not isinstance(raw, dict) or raw.get("type") not in INTENT_TYPES:
            logger.warning("AI intent for family %s has no usable type: %r", family_id, raw)
            return None

        target = raw.get("target")
        modifiers = raw.get("modifiers")
        return ParsedIntent(
            type=raw["type"],
            scope=raw["scope"] if raw.get("scope") in SCOPES else fallback.scope,
            target=[str(t) for t in target] if isinstance(target, list) and target else fallback.target,
            modifiers=dict(modifiers) if isinstance(modifiers, dict) and modifiers else fallback.modifiers,
        )

    # -- Ambiguity ---------------------------------------------------------

    @staticmethod
    def _detect_ambiguities(
        text: str, entities: list[Entity], intent: ParsedIntent, matched_types: list[str],
    ) -> list[str]:
        found: list[str] = []
        entity_types = {e.type for e in entities}

        if intent.type in ("assign", "modify", "delete") and not intent.target:
            found.append("unclear_target")
        if intent.type == "assign" and "member" not in entity_types:
            found.append("unclear_member")
        if intent.type == "reschedule" and "time" not in entity_types:
            found.append("unclear_time")
        if _BROAD_SCOPE.search(text) and _NARROW_SCOPE.search(text):
            found.append("unclear_scope")

        if len(set(_OPERATION_VERBS.findall(text))) > 2:
            found.append("unclear_operation")
        if not matched_types:
            found.append("unclear_operation")
        if len(set(matched_types)) >= 2 and _CONJUNCTION.search(text):
            found.append("unclear_operation")

        return list(dict.fromkeys(found))

    # -- Draft operation ---------------------------------------------------

    def _build_operation(
        self, intent: ParsedIntent, entities: list[Entity], family_id: str, text: str,
    ) -> BulkOperation:
        modifications: dict[str, Any] = {}
        mods = intent.modifiers

        if intent.type == "assign":
            members = [e.value for e in entities if e.type == "member"]
            assign_to = mods.get("assign_to") or (members[0] if members else None)
            if assign_to:
                modifications["assign_to"] = assign_to
        elif intent.type == "reschedule":
            modifications["new_due_date"] = resolve_time_reference(mods.get("time"), self._today())
        elif intent.type == "modify":
            modifications = _build_modifications(mods)

        return BulkOperation(
            operation=OPERATION_KINDS[intent.type],
            family_id=family_id,
            modifications=modifications,
            ai_assisted=True,
            natural_language_request=text,
            requires_approval=requires_approval(intent),
            estimated_duration=30,
            confidence_score=calculate_confidence(intent, entities, []),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _detect_scope(text: str, default: Scope) -> Scope:
    for scope, pattern in _SCOPE_WORDS:
        if pattern.search(text):
            return scope
    return default


def _extract_targets(entities: list[Entity]) -> list[str]:
    return list(dict.fromkeys(e.value for e in entities if e.type in TARGET_ENTITY_TYPES))


def _by_position(entities: list[Entity], entity_type: str) -> list[Entity]:
    return sorted((e for e in entities if e.type == entity_type), key=lambda e: e.span[0])


def _extract_modifiers(entities: list[Entity], text: str) -> dict[str, Any]:
    modifiers: dict[str, Any] = {}

    members = _by_position(entities, "member")
    if members:
        modifiers["assign_to"] = members[0].value

    times = _by_position(entities, "time")
    if times:
        resolvable = [e.value for e in times if e.value in _RESOLVABLE_TIMES]
        modifiers["time"] = resolvable[0] if resolvable else times[0].value

    points = _by_position(entities, "points")
    if points:
        modifiers["points"] = int(re.match(r"\d+", points[0].value).group(0))

    # The last difficulty word wins: "make hard chores easy" -> easy
    difficulties = _by_position(entities, "difficulty")
    if difficulties:
        modifiers["difficulty"] = DIFFICULTY_LEVELS[difficulties[-1].value]

    percentage = _PERCENTAGE.search(text)
    if percentage:
        modifiers["percentage_change"] = int(percentage.group(1))

    if _INCREASE.search(text):
        modifiers["operation"] = "increase"
    elif _DECREASE.search(text):
        modifiers["operation"] = "decrease"

    return modifiers


def _build_modifications(modifiers: dict[str, Any]) -> dict[str, Any]:
    modifications: dict[str, Any] = {}
    if modifiers.get("points"):
        modifications["points"] = modifiers["points"]
    if modifiers.get("difficulty"):
        modifications["difficulty"] = modifiers["difficulty"]
    if modifiers.get("percentage_change") and modifiers.get("operation"):
        change = modifiers["percentage_change"] / 100
        modifications["points_multiplier"] = (
            1 + change if modifiers["operation"] == "increase" else 1 - change
        )
    return modifications


def requires_approval(intent: ParsedIntent) -> bool:
    return (
        intent.type in ("delete", "optimize")
        or intent.scope == "all"
        or len(intent.target) > APPROVAL_TARGET_LIMIT
    )


def calculate_confidence(
    intent: ParsedIntent, entities: list[Entity], ambiguities: list[str],
) -> float:
    avg_entity = sum(e.confidence for e in entities) / len(entities) if entities else 0.5
    confidence = 0.7 + (avg_entity - 0.5) * 0.3
    confidence -= 0.15 * len(ambiguities)
    if intent.target:
        confidence += 0.1
    if intent.modifiers:
        confidence += 0.1
    return max(0.1, min(1.0, confidence))


def _error_result() -> NLPParseResult:
    return NLPParseResult(
        intent=ParsedIntent(),
        entities=[],
        confidence=0.1,
        ambiguities=["unclear_operation"],
        suggested_operation=None,
    )
