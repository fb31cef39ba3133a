"""Tests for src.data.db — FamilyAIConfigDB (SQLite storage)."""

import asyncio
import sqlite3
import threading
from unittest.mock import patch

import pytest

from src.data.db import FamilyAIConfigDB
from src.ports.ai_config_port import ConfigStoreError, FamilyAIConfig


@pytest.fixture
def config_db(tmp_db_path):
    return FamilyAIConfigDB(db_path=tmp_db_path)


class TestSaveAndGet:
    def test_roundtrip(self, config_db):
        config_db.save_config("fam1", FamilyAIConfig(ai_enabled=True, credential="key-1"))
        config = config_db.get_config("fam1")
        assert config.ai_enabled is True
        assert config.credential == "key-1"
        assert config.model == ""

    def test_unknown_family_is_none(self, config_db):
        assert config_db.get_config("nobody") is None

    def test_save_overwrites(self, config_db):
        config_db.save_config("fam1", FamilyAIConfig(ai_enabled=True, credential="old"))
        config_db.save_config(
            "fam1", FamilyAIConfig(ai_enabled=False, credential="new", model="gemini-pro"),
        )
        config = config_db.get_config("fam1")
        assert config.ai_enabled is False
        assert config.credential == "new"
        assert config.model == "gemini-pro"

    def test_families_are_independent(self, config_db):
        config_db.save_config("fam1", FamilyAIConfig(ai_enabled=True, credential="a"))
        config_db.save_config("fam2", FamilyAIConfig(ai_enabled=False, credential="b"))
        assert config_db.get_config("fam1").credential == "a"
        assert config_db.get_config("fam2").ai_enabled is False

    def test_persists_across_instances(self, tmp_db_path):
        FamilyAIConfigDB(tmp_db_path).save_config(
            "fam1", FamilyAIConfig(ai_enabled=True, credential="k"),
        )
        assert FamilyAIConfigDB(tmp_db_path).get_config("fam1").usable is True


class TestDelete:
    def test_delete_existing(self, config_db):
        config_db.save_config("fam1", FamilyAIConfig(ai_enabled=True, credential="k"))
        assert config_db.delete_config("fam1") is True
        assert config_db.get_config("fam1") is None

    def test_delete_missing(self, config_db):
        assert config_db.delete_config("fam1") is False


class TestPortInterface:
    def test_get_family_config(self, config_db):
        config_db.save_config("fam1", FamilyAIConfig(ai_enabled=True, credential="k"))
        config = asyncio.run(config_db.get_family_config("fam1"))
        assert config.credential == "k"

    def test_read_runs_off_the_event_loop_thread(self, config_db):
        with patch.object(config_db, "get_config", side_effect=lambda _: threading.get_ident()):
            reader_thread = asyncio.run(config_db.get_family_config("fam1"))
        assert reader_thread != threading.get_ident()

    def test_read_failure_raises_store_error(self, config_db, tmp_db_path):
        conn = sqlite3.connect(tmp_db_path)
        conn.execute("DROP TABLE family_ai_config")
        conn.commit()
        conn.close()

        with pytest.raises(ConfigStoreError):
            config_db.get_config("fam1")


class TestSchema:
    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "config.db"
        FamilyAIConfigDB(str(path))
        assert path.exists()

    def test_model_column_in_schema(self, config_db, tmp_db_path):
        conn = sqlite3.connect(tmp_db_path)
        columns = {row[1] for row in conn.execute("PRAGMA table_info(family_ai_config)")}
        conn.close()
        assert {"family_id", "ai_enabled", "credential", "model", "updated_at"} <= columns
