"""Shared test fixtures and configuration.

Sets up environment defaults before any src imports, and provides a sample
family snapshot, an in-memory AI config store, and a gateway factory whose
HTTP calls go to an httpx.MockTransport.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("AI_FEATURE_ENABLED", "true")
os.environ.setdefault("CONFIG_STORE", "memory")
os.environ.setdefault("DATABASE_PATH", ":memory:")

import json

import httpx
import pytest

from src.adapters.memory_config_store import InMemoryAIConfigStore
from src.config import Settings
from src.core.ai_gateway import AIGateway
from src.data.models import ChoreContext, FamilyContextSnapshot
from src.ports.ai_config_port import FamilyAIConfig

FAMILY_ID = "family123"


def gemini_body(text, finish_reason="STOP", safety_ratings=None, usage=None):
    """Build a generateContent response body around the given text."""
    return {
        "candidates": [{
            "content": {"parts": [{"text": text}]},
            "finishReason": finish_reason,
            "safetyRatings": safety_ratings or [],
        }],
        "usageMetadata": usage or {
            "promptTokenCount": 120, "candidatesTokenCount": 40, "totalTokenCount": 160,
        },
    }


def structured_text(**payload):
    return json.dumps(payload)


class FakeClock:
    """Manually advanced time source for rate-limit and cache expiry tests."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_ai_config.db")


@pytest.fixture
def sample_context():
    """Four-member family with three chores split across two members."""
    return FamilyContextSnapshot(
        family_size=4,
        member_ages=[45, 42, 16, 12],
        active_chores=[
            ChoreContext(
                id="chore1", title="Clean kitchen", type="cleaning", difficulty="medium",
                points=15, assigned_to="user1", due_date="2025-01-01T10:00:00Z",
                room="kitchen", category="cleaning",
            ),
            ChoreContext(
                id="chore2", title="Vacuum living room", type="cleaning", difficulty="easy",
                points=10, assigned_to="user2", due_date="2025-01-01T11:00:00Z",
                room="living room", category="cleaning",
            ),
            ChoreContext(
                id="chore3", title="Deep clean bathroom", type="cleaning", difficulty="hard",
                points=25, assigned_to="user1", due_date="2025-01-01T14:00:00Z",
                room="bathroom", category="cleaning",
            ),
        ],
    )


@pytest.fixture
def config_store():
    """In-memory store with AI enabled for FAMILY_ID."""
    return InMemoryAIConfigStore({
        FAMILY_ID: FamilyAIConfig(ai_enabled=True, credential="test-credential"),
    })


@pytest.fixture
def test_settings():
    return Settings(AI_REQUEST_TIMEOUT_MS=5000)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_gateway(config_store, test_settings, fake_clock):
    """Factory: make_gateway(handler) -> (gateway, calls).

    `handler(request)` returns an httpx.Response (sync or async); every
    request the gateway sends is appended to `calls`.
    """

    def _make(handler=None, settings=None, store=None):
        calls = []

        async def _transport(request):
            calls.append(request)
            if handler is None:
                return httpx.Response(200, json=gemini_body(structured_text(reasoning="ok")))
            result = handler(request)
            if hasattr(result, "__await__"):
                result = await result
            return result

        client = httpx.AsyncClient(transport=httpx.MockTransport(_transport))
        gateway = AIGateway(
            store or config_store,
            settings=settings or test_settings,
            http_client=client,
            clock=fake_clock,
        )
        return gateway, calls

    return _make
