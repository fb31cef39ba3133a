"""In-memory AI config store — a dict keyed by family id."""

from __future__ import annotations

from src.ports.ai_config_port import FamilyAIConfig


class InMemoryAIConfigStore:
    """Process-local AIConfigPort implementation."""

    def __init__(self, configs: dict[str, FamilyAIConfig] | None = None) -> None:
        self._configs: dict[str, FamilyAIConfig] = dict(configs or {})

    def set_family_config(self, family_id: str, config: FamilyAIConfig) -> None:
        self._configs[family_id] = config

    def remove_family_config(self, family_id: str) -> None:
        self._configs.pop(family_id, None)

    async def get_family_config(self, family_id: str) -> FamilyAIConfig | None:
        return self._configs.get(family_id)
