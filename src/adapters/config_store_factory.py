"""Config store factory — creates the right AI config store based on config."""

from __future__ import annotations

from src.config import Settings, settings as default_settings
from src.ports.ai_config_port import AIConfigPort


def create_config_store(cfg: Settings | None = None) -> AIConfigPort:
    """Return the config store matching the CONFIG_STORE setting."""
    cfg = cfg or default_settings
    kind = cfg.CONFIG_STORE.lower()

    if kind == "memory":
        from src.adapters.memory_config_store import InMemoryAIConfigStore

        return InMemoryAIConfigStore()

    if kind == "sqlite":
        from src.data.db import FamilyAIConfigDB

        return FamilyAIConfigDB(db_path=cfg.DATABASE_PATH)

    raise ValueError(f"Unknown CONFIG_STORE: {kind!r}")
