"""AI config port — abstract interface for per-family AI configuration lookup.

The AI gateway depends on this protocol, never on a specific store.
"""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel


class ConfigStoreError(Exception):
    """Raised when a configuration store lookup fails."""


class FamilyAIConfig(BaseModel):
    """Per-family AI settings.

    JSON example:
    {
        "ai_enabled": true,
        "credential": "AIza...",
        "model": ""
    }
    """
    ai_enabled: bool = False
    credential: str = ""
    model: str = ""          # empty → Settings.AI_MODEL

    @property
    def usable(self) -> bool:
        return self.ai_enabled and bool(self.credential.strip())


class AIConfigPort(Protocol):
    """Abstract per-family AI configuration store."""

    async def get_family_config(self, family_id: str) -> FamilyAIConfig | None: ...
