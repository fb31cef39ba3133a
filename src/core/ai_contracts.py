"""
Household Bulk Assistant — AI Gateway contracts.

Request/response shapes exchanged between the analysis core and the AI
gateway. A response is a result value: either `success=True` with parsed
content, or `success=False` with a typed `error`. The gateway never raises
across this boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

RequestType = Literal["bulk_operation", "suggestion", "conflict_analysis", "impact_assessment"]


class AIErrorCode(str, Enum):
    API_KEY_INVALID = "API_KEY_INVALID"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    PARSING_FAILED = "PARSING_FAILED"
    INVALID_INPUT = "INVALID_INPUT"


_RETRYABLE = {
    AIErrorCode.RATE_LIMIT_EXCEEDED,
    AIErrorCode.REQUEST_TIMEOUT,
    AIErrorCode.SERVICE_UNAVAILABLE,
}


class GatewayError(BaseModel):
    code: AIErrorCode
    message: str
    retryable: bool = False

    @classmethod
    def of(cls, code: AIErrorCode, message: str) -> GatewayError:
        return cls(code=code, message=message, retryable=code in _RETRYABLE)


class RequestOptions(BaseModel):
    max_tokens: int = 1024
    temperature: float = 0.3
    top_p: float = 0.8
    require_structured_output: bool = False
    timeout_ms: int | None = None     # overrides Settings.AI_REQUEST_TIMEOUT_MS


class AIGatewayRequest(BaseModel):
    request_id: str
    family_id: str
    request_type: RequestType
    prompt: str
    options: RequestOptions
    timestamp: str
    family_size: int = 0
    chore_count: int = 0


class AISuggestion(BaseModel):
    id: str = ""
    type: str = "optimization"
    description: str
    rationale: str = ""
    confidence: float = 0.5
    expected_impact: str = ""
    chore_ids: list[str] = Field(default_factory=list)
    modifications: dict[str, Any] = Field(default_factory=dict)
    priority: Literal["low", "medium", "high"] = "medium"


class AIAnalysisResult(BaseModel):
    """Structured analysis block of a model response.

    `details` carries request-type specific payloads:
      bulk_operation     -> {"intent": {...}}
      conflict_analysis  -> {"resolutions": [...]}
      impact_assessment  -> {"recommendations": [...]}
    """
    type: str = ""
    summary: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    action_required: bool = False


class UsageInfo(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    request_duration_ms: int = 0


class AIGatewayResponse(BaseModel):
    request_id: str
    success: bool
    confidence: float = 0.0
    reasoning: str = ""
    analysis: AIAnalysisResult | None = None
    suggestions: list[AISuggestion] = Field(default_factory=list)
    bulk_operation: dict[str, Any] | None = None
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    error: GatewayError | None = None
    usage: UsageInfo = Field(default_factory=UsageInfo)

    @property
    def error_code(self) -> AIErrorCode | None:
        return self.error.code if self.error else None


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class UsageRecord(BaseModel):
    """Per-family, per-day usage counters. Process-local, never persisted."""
    family_id: str
    date: str                      # ISO date YYYY-MM-DD
    request_count: int = 0
    request_types: dict[str, int] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    rate_limit_hits: int = 0
    cache_hits: int = 0
    last_request: str = ""
