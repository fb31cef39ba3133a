"""
Household Bulk Assistant — AI Gateway.

Wraps one external text-generation endpoint (Gemini `generateContent` REST
shape) with per-family configuration lookup, a sliding-window rate limiter,
response caching, a hard deadline per call, and daily usage tracking.

All state (rate-limit windows, response cache, family-config cache, usage
counters) lives on the gateway instance and is process-local: it is lost on
restart. Updates are plain read-modify-write on dicts, which is safe under
asyncio's single-threaded scheduling but needs a lock if the instance is
ever shared between threads.

Gracefully degrades: every failure comes back as an AIGatewayResponse with
`success=False` and a typed error. Nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from src.config import Settings, settings as default_settings
from src.core import prompts
from src.core.ai_contracts import (
    AIAnalysisResult,
    AIErrorCode,
    AIGatewayRequest,
    AIGatewayResponse,
    AISuggestion,
    GatewayError,
    RequestOptions,
    RequestType,
    UsageInfo,
    UsageRecord,
)
from src.data.models import FamilyContextSnapshot
from src.ports.ai_config_port import AIConfigPort, FamilyAIConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Generation settings per request type
# ---------------------------------------------------------------------------

_REQUEST_PROFILES: dict[str, RequestOptions] = {
    "bulk_operation": RequestOptions(
        max_tokens=2048, temperature=0.3, top_p=0.8, require_structured_output=True,
    ),
    "suggestion": RequestOptions(max_tokens=1536, temperature=0.4, top_p=0.9),
    "conflict_analysis": RequestOptions(
        max_tokens=1024, temperature=0.2, top_p=0.7, require_structured_output=True,
    ),
    "impact_assessment": RequestOptions(max_tokens=1536, temperature=0.3, top_p=0.8),
}

_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]

_PLAIN_TEXT_CONFIDENCE = 0.7


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from the model's raw text."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def _calculate_confidence(candidate: dict) -> float:
    """0.3 for an unfinished generation, else 1.0 minus 0.2 per medium/high safety flag."""
    if candidate.get("finishReason") != "STOP":
        return 0.3
    flagged = sum(
        1 for rating in candidate.get("safetyRatings") or []
        if rating.get("probability") in ("HIGH", "MEDIUM")
    )
    return max(0.1, 1.0 - flagged * 0.2)


def _candidate_text(candidate: dict) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    if not parts:
        return ""
    return parts[0].get("text") or ""


def _parse_suggestions(raw: Any) -> list[AISuggestion]:
    if not isinstance(raw, list):
        return []
    suggestions: list[AISuggestion] = []
    for item in raw:
        try:
            suggestions.append(AISuggestion.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed AI suggestion: %s", exc.errors()[:1])
    return suggestions


def _error_response(request_id: str, code: AIErrorCode, message: str) -> AIGatewayResponse:
    return AIGatewayResponse(
        request_id=request_id,
        success=False,
        confidence=0.0,
        reasoning=f"Error: {message}",
        errors=[message],
        error=GatewayError.of(code, message),
    )


def _generate_request_id() -> str:
    return f"ai_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class AIGateway:
    """Rate-limited, cached access to the external text-generation endpoint.

    Construct one per process (or per test). `clock` drives the rate-limit
    window and cache expiry; `today` drives the usage-record day.
    """

    def __init__(
        self,
        config_store: AIConfigPort,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._config_store = config_store
        self._settings = settings or default_settings
        self._http_client = http_client
        self._clock = clock
        self._today = today

        self._rate_windows: dict[str, list[float]] = {}
        self._response_cache: dict[str, tuple[AIGatewayResponse, float]] = {}
        self._config_cache: dict[str, tuple[FamilyAIConfig, float]] = {}
        self._usage: dict[tuple[str, str], UsageRecord] = {}

    # -- Family configuration ------------------------------------------------

    async def _get_family_config(self, family_id: str) -> FamilyAIConfig:
        """Fetch a family's AI config, cached for AI_FAMILY_CONFIG_TTL_SECONDS.

        Lookup failures count as "AI disabled" and are not cached.
        """
        now = self._clock()
        cached = self._config_cache.get(family_id)
        if cached and now < cached[1]:
            return cached[0]

        for expired in [k for k, (_, exp) in self._config_cache.items() if now >= exp]:
            del self._config_cache[expired]

        try:
            config = await self._config_store.get_family_config(family_id)
        except Exception as exc:
            logger.error("Error loading AI config for family %s: %s", family_id, exc)
            return FamilyAIConfig(ai_enabled=False)

        config = config or FamilyAIConfig(ai_enabled=False)
        self._config_cache[family_id] = (
            config, now + self._settings.AI_FAMILY_CONFIG_TTL_SECONDS,
        )
        return config

    async def is_available(self, family_id: str) -> bool:
        """True when AI is globally enabled and the family has an enabled credential."""
        if not self._settings.AI_FEATURE_ENABLED:
            return False
        config = await self._get_family_config(family_id)
        return config.usable

    # -- Public request flavors ----------------------------------------------

    async def interpret_bulk_operation(
        self, request_text: str, family_id: str, context: FamilyContextSnapshot,
    ) -> AIGatewayResponse:
        """Ask the model to interpret a natural-language bulk request."""
        return await self.process_request(
            "bulk_operation", family_id, context, request_text=request_text,
        )

    async def get_suggestions(
        self, operation_type: str, family_id: str, context: FamilyContextSnapshot,
    ) -> AIGatewayResponse:
        """Ask the model for optimization suggestions."""
        return await self.process_request(
            "suggestion", family_id, context, operation_type=operation_type,
        )

    async def analyze_conflicts(
        self, operation_details: Any, family_id: str, context: FamilyContextSnapshot,
    ) -> AIGatewayResponse:
        """Ask the model for resolutions of conflicts the heuristics cannot fix."""
        return await self.process_request(
            "conflict_analysis", family_id, context, operation_details=operation_details,
        )

    async def assess_family_impact(
        self, operation: Any, family_id: str, context: FamilyContextSnapshot,
    ) -> AIGatewayResponse:
        """Ask the model for recommendations about an operation's family impact."""
        return await self.process_request(
            "impact_assessment", family_id, context, operation=operation,
        )

    async def process_request(
        self,
        request_type: RequestType,
        family_id: str,
        context: FamilyContextSnapshot,
        options: RequestOptions | None = None,
        **inputs: Any,
    ) -> AIGatewayResponse:
        """Run one gateway request: config → rate limit → cache → quota → call."""
        request_id = _generate_request_id()

        profile = _REQUEST_PROFILES.get(request_type)
        if profile is None:
            return _error_response(
                request_id, AIErrorCode.INVALID_INPUT, f"Unknown request type: {request_type!r}",
            )

        if not self._settings.AI_FEATURE_ENABLED:
            return _error_response(
                request_id, AIErrorCode.API_KEY_INVALID, "AI features are disabled",
            )
        config = await self._get_family_config(family_id)
        if not config.usable:
            return _error_response(
                request_id, AIErrorCode.API_KEY_INVALID, "AI service not configured for this family",
            )

        try:
            prompt = self._build_prompt(request_type, context, inputs)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Cannot build %s prompt: %s", request_type, exc)
            return _error_response(
                request_id, AIErrorCode.INVALID_INPUT, f"Missing or invalid prompt input: {exc}",
            )

        request = AIGatewayRequest(
            request_id=request_id,
            family_id=family_id,
            request_type=request_type,
            prompt=prompt,
            options=options or profile,
            timestamp=datetime.now(timezone.utc).isoformat(),
            family_size=context.family_size,
            chore_count=len(context.active_chores),
        )

        if not self._check_rate_limit(family_id):
            self._usage_record(family_id).rate_limit_hits += 1
            logger.warning("Rate limit exceeded for family %s", family_id)
            return _error_response(request_id, AIErrorCode.RATE_LIMIT_EXCEEDED, "Rate limit exceeded")

        cache_key = self._cache_key(request)
        cached = self._get_cached_response(cache_key)
        if cached is not None:
            self._usage_record(family_id).cache_hits += 1
            logger.debug("Cache hit for %s request (family %s)", request_type, family_id)
            return cached

        record = self._usage_record(family_id)
        if record.request_count >= self._settings.AI_MAX_REQUESTS_PER_FAMILY:
            record.rate_limit_hits += 1
            logger.warning("Daily AI quota reached for family %s", family_id)
            return _error_response(
                request_id, AIErrorCode.RATE_LIMIT_EXCEEDED, "Daily request limit reached",
            )

        self._track_request(request)
        response = await self._execute(request, config)
        if response.success:
            self._cache_response(cache_key, response)
        return response

    # -- Prompt building -----------------------------------------------------

    @staticmethod
    def _build_prompt(
        request_type: str, context: FamilyContextSnapshot, inputs: dict[str, Any],
    ) -> str:
        if request_type == "bulk_operation":
            return prompts.BULK_OPERATION_PROMPT.format(
                user_request=inputs["request_text"],
                family_context=prompts.build_family_context(context),
                chores_context=prompts.build_chores_context(context.active_chores),
            )
        if request_type == "suggestion":
            return prompts.SUGGESTION_PROMPT.format(
                operation_type=inputs["operation_type"],
                family_context=prompts.build_family_context(context),
                completion_history=prompts.build_completion_history(context),
                current_issues=prompts.identify_current_issues(context),
            )
        if request_type == "conflict_analysis":
            return prompts.CONFLICT_ANALYSIS_PROMPT.format(
                operation_summary=prompts.summarize_operation(inputs["operation_details"]),
                operation_details=prompts.to_json(inputs["operation_details"]),
                family_schedule=prompts.build_schedule_context(context),
                member_workloads=prompts.build_workload_context(context),
            )
        return prompts.IMPACT_ASSESSMENT_PROMPT.format(
            operation_summary=prompts.summarize_operation(inputs["operation"]),
            current_state=prompts.build_current_state(context),
            proposed_changes=prompts.build_proposed_changes(inputs["operation"]),
        )

    # -- Rate limiting and usage tracking ------------------------------------

    def _check_rate_limit(self, family_id: str) -> bool:
        """Sliding-window check; records the request when it is allowed."""
        now = self._clock()
        window = self._settings.AI_RATE_LIMIT_WINDOW_SECONDS
        recent = [t for t in self._rate_windows.get(family_id, []) if now - t < window]

        # Drop families whose whole window has passed
        idle = [
            k for k, times in self._rate_windows.items() if not times or now - times[-1] >= window
        ]
        for key in idle:
            del self._rate_windows[key]

        if len(recent) >= self._settings.AI_REQUEST_RATE_LIMIT:
            self._rate_windows[family_id] = recent
            return False

        recent.append(now)
        self._rate_windows[family_id] = recent
        return True

    def _usage_record(self, family_id: str) -> UsageRecord:
        today = self._today().isoformat()
        key = (family_id, today)
        record = self._usage.get(key)
        if record is None:
            # Day rollover: drop every record from earlier days
            for stale in [k for k in self._usage if k[1] != today]:
                del self._usage[stale]
            record = UsageRecord(family_id=family_id, date=today)
            self._usage[key] = record
        return record

    def _track_request(self, request: AIGatewayRequest) -> None:
        record = self._usage_record(request.family_id)
        record.request_count += 1
        record.request_types[request.request_type] = (
            record.request_types.get(request.request_type, 0) + 1
        )
        record.last_request = request.timestamp

    def _track_tokens(self, family_id: str, usage: UsageInfo) -> None:
        tokens = self._usage_record(family_id).token_usage
        tokens.input += usage.input_tokens
        tokens.output += usage.output_tokens
        tokens.total += usage.input_tokens + usage.output_tokens

    def get_usage_stats(self, family_id: str) -> UsageRecord | None:
        """Today's usage record for a family (a copy), or None if it made no requests."""
        record = self._usage.get((family_id, self._today().isoformat()))
        return record.model_copy(deep=True) if record else None

    def reset_rate_limits(self) -> None:
        self._rate_windows.clear()

    # -- Response caching ----------------------------------------------------

    @staticmethod
    def _cache_key(request: AIGatewayRequest) -> str:
        key_data = {
            "family": request.family_id,
            "type": request.request_type,
            "prompt": request.prompt[:200],
            "family_size": request.family_size,
            "chore_count": request.chore_count,
        }
        return hashlib.sha256(json.dumps(key_data, sort_keys=True).encode()).hexdigest()

    def _get_cached_response(self, cache_key: str) -> AIGatewayResponse | None:
        cached = self._response_cache.get(cache_key)
        if cached is None:
            return None
        response, expiry = cached
        if self._clock() < expiry:
            return response.model_copy(deep=True)
        del self._response_cache[cache_key]
        return None

    def _cache_response(self, cache_key: str, response: AIGatewayResponse) -> None:
        now = self._clock()
        expiry = now + self._settings.AI_CACHE_RESPONSES_MINUTES * 60
        self._response_cache[cache_key] = (response.model_copy(deep=True), expiry)

        if len(self._response_cache) > self._settings.AI_CACHE_MAX_ENTRIES:
            for key in [k for k, (_, exp) in self._response_cache.items() if now >= exp]:
                del self._response_cache[key]
        # Still over the bound: evict oldest insertions
        while len(self._response_cache) > self._settings.AI_CACHE_MAX_ENTRIES:
            del self._response_cache[next(iter(self._response_cache))]

    def clear_cache(self) -> None:
        self._response_cache.clear()

    # -- Execution -----------------------------------------------------------

    def _prepare_api_request(self, request: AIGatewayRequest) -> dict:
        return {
            "contents": [{"parts": [{"text": request.prompt}]}],
            "generationConfig": {
                "maxOutputTokens": request.options.max_tokens,
                "temperature": request.options.temperature,
                "topP": request.options.top_p,
            },
            "safetySettings": _SAFETY_SETTINGS,
        }

    async def _post(
        self, url: str, body: dict, headers: dict[str, str], deadline_s: float,
    ) -> httpx.Response:
        """POST with a hard deadline; the in-flight request is cancelled when it passes."""
        if self._http_client is not None:
            return await asyncio.wait_for(
                self._http_client.post(url, json=body, headers=headers), timeout=deadline_s,
            )
        async with httpx.AsyncClient(timeout=deadline_s) as client:
            return await asyncio.wait_for(
                client.post(url, json=body, headers=headers), timeout=deadline_s,
            )

    async def _execute(self, request: AIGatewayRequest, config: FamilyAIConfig) -> AIGatewayResponse:
        model = config.model or self._settings.AI_MODEL
        url = f"{self._settings.AI_BASE_URL.rstrip('/')}/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": config.credential}
        timeout_ms = request.options.timeout_ms or self._settings.AI_REQUEST_TIMEOUT_MS

        started = time.perf_counter()
        logger.info(
            "AI %s request %s for family %s (model %s)",
            request.request_type, request.request_id, request.family_id, model,
        )
        try:
            resp = await self._post(url, self._prepare_api_request(request), headers, timeout_ms / 1000)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("AI request %s timed out after %d ms", request.request_id, timeout_ms)
            return _error_response(request.request_id, AIErrorCode.REQUEST_TIMEOUT, "Request timed out")
        except httpx.HTTPError as exc:
            logger.error("AI request %s failed: %s", request.request_id, exc)
            return _error_response(request.request_id, AIErrorCode.SERVICE_UNAVAILABLE, str(exc))

        if resp.status_code in (401, 403):
            return _error_response(
                request.request_id, AIErrorCode.API_KEY_INVALID,
                f"API request rejected: {resp.status_code}",
            )
        if resp.status_code == 429:
            return _error_response(
                request.request_id, AIErrorCode.RATE_LIMIT_EXCEEDED,
                "Upstream rate limit exceeded",
            )
        if not resp.is_success:
            logger.error("AI request %s failed with HTTP %d", request.request_id, resp.status_code)
            return _error_response(
                request.request_id, AIErrorCode.SERVICE_UNAVAILABLE,
                f"API request failed: {resp.status_code} {resp.reason_phrase}",
            )

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("AI response body for %s is not JSON: %s", request.request_id, exc)
            return _error_response(
                request.request_id, AIErrorCode.PARSING_FAILED, "Response body is not valid JSON",
            )

        duration_ms = int((time.perf_counter() - started) * 1000)
        try:
            response = self._process_api_response(request.request_id, data, duration_ms)
        except (AttributeError, KeyError, TypeError, ValidationError) as exc:
            logger.error("AI response body for %s has an unexpected shape: %s", request.request_id, exc)
            return _error_response(
                request.request_id, AIErrorCode.PARSING_FAILED, "Unexpected response structure",
            )
        if response.success:
            self._track_tokens(request.family_id, response.usage)
        return response

    @staticmethod
    def _process_api_response(request_id: str, data: Any, duration_ms: int) -> AIGatewayResponse:
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            return _error_response(request_id, AIErrorCode.SERVICE_UNAVAILABLE, "No response from API")

        candidate = candidates[0]
        metadata = data.get("usageMetadata") or {}
        usage = UsageInfo(
            input_tokens=metadata.get("promptTokenCount") or 0,
            output_tokens=metadata.get("candidatesTokenCount") or 0,
            request_duration_ms=duration_ms,
        )
        response_text = _candidate_text(candidate)
        confidence = _calculate_confidence(candidate)
        cleaned = _clean_llm_response(response_text)
        logger.debug("AI raw response %s: %s", request_id, cleaned[:500])

        if cleaned.startswith("{"):
            try:
                parsed = json.loads(cleaned)
                analysis = parsed.get("analysis")
                bulk_operation = parsed.get("bulk_operation", parsed.get("bulkOperation"))
                return AIGatewayResponse(
                    request_id=request_id,
                    success=True,
                    confidence=confidence,
                    reasoning=parsed.get("reasoning") or response_text,
                    analysis=AIAnalysisResult.model_validate(analysis) if analysis else None,
                    suggestions=_parse_suggestions(parsed.get("suggestions")),
                    bulk_operation=bulk_operation if isinstance(bulk_operation, dict) else None,
                    usage=usage,
                )
            except (json.JSONDecodeError, ValidationError, AttributeError) as exc:
                logger.warning("AI response %s is not usable JSON, keeping text: %s", request_id, exc)

        return AIGatewayResponse(
            request_id=request_id,
            success=True,
            confidence=min(confidence, _PLAIN_TEXT_CONFIDENCE),
            reasoning=response_text,
            warnings=["Response was not structured JSON"] if response_text else ["Empty response text"],
            usage=usage,
        )
