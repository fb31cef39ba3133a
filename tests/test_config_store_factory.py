"""Tests for the AI config store factory."""

import pytest

from src.adapters.config_store_factory import create_config_store
from src.adapters.memory_config_store import InMemoryAIConfigStore
from src.config import Settings
from src.data.db import FamilyAIConfigDB


class TestCreateConfigStore:
    def test_returns_memory_store(self):
        store = create_config_store(Settings(CONFIG_STORE="memory"))
        assert isinstance(store, InMemoryAIConfigStore)

    def test_returns_sqlite_store(self, tmp_db_path):
        store = create_config_store(Settings(CONFIG_STORE="sqlite", DATABASE_PATH=tmp_db_path))
        assert isinstance(store, FamilyAIConfigDB)

    def test_case_insensitive(self, tmp_db_path):
        store = create_config_store(Settings(CONFIG_STORE="SQLite", DATABASE_PATH=tmp_db_path))
        assert isinstance(store, FamilyAIConfigDB)

    def test_unknown_store_raises(self):
        with pytest.raises(ValueError, match="Unknown CONFIG_STORE"):
            create_config_store(Settings(CONFIG_STORE="redis"))

    def test_defaults_to_module_settings(self):
        # conftest sets CONFIG_STORE=memory before src.config is imported
        assert isinstance(create_config_store(), InMemoryAIConfigStore)


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_set_and_remove(self):
        from src.ports.ai_config_port import FamilyAIConfig

        store = InMemoryAIConfigStore()
        store.set_family_config("fam1", FamilyAIConfig(ai_enabled=True, credential="k"))
        assert (await store.get_family_config("fam1")).usable is True

        store.remove_family_config("fam1")
        store.remove_family_config("fam1")
        assert await store.get_family_config("fam1") is None
