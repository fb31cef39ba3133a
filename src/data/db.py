"""
Household Bulk Assistant — Family AI Config Database.

SQLite-backed implementation of the AI config port. Holds one row per
family: whether AI assistance is enabled and the credential to use.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from src.ports.ai_config_port import ConfigStoreError, FamilyAIConfig

logger = logging.getLogger(__name__)


class FamilyAIConfigDB:
    """SQLite-backed storage for per-family AI configuration."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the family_ai_config table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS family_ai_config (
                    family_id    TEXT    PRIMARY KEY,
                    ai_enabled   INTEGER NOT NULL DEFAULT 0,
                    credential   TEXT    NOT NULL DEFAULT '',
                    model        TEXT    NOT NULL DEFAULT '',
                    updated_at   TEXT    NOT NULL
                )
            """)
        logger.debug("family_ai_config table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_config(row: sqlite3.Row) -> FamilyAIConfig:
        return FamilyAIConfig(
            ai_enabled=bool(row["ai_enabled"]),
            credential=row["credential"],
            model=row["model"],
        )

    def save_config(self, family_id: str, config: FamilyAIConfig) -> None:
        """Insert or replace a family's AI configuration."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO family_ai_config (family_id, ai_enabled, credential, model, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(family_id) DO UPDATE SET
                    ai_enabled = excluded.ai_enabled,
                    credential = excluded.credential,
                    model      = excluded.model,
                    updated_at = excluded.updated_at
                """,
                (
                    family_id, int(config.ai_enabled), config.credential,
                    config.model, datetime.now().isoformat(),
                ),
            )
        logger.info("AI config saved for family %s (enabled=%s)", family_id, config.ai_enabled)

    def get_config(self, family_id: str) -> FamilyAIConfig | None:
        """Fetch a family's AI configuration, or None if the family has none."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM family_ai_config WHERE family_id = ?",
                    (family_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise ConfigStoreError(f"Failed to read AI config for {family_id}: {exc}") from exc
        if row is None:
            return None
        return self._row_to_config(row)

    def delete_config(self, family_id: str) -> bool:
        """Remove a family's AI configuration. Returns True if a row was deleted."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM family_ai_config WHERE family_id = ?",
                (family_id,),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("AI config deleted for family %s", family_id)
        return deleted

    async def get_family_config(self, family_id: str) -> FamilyAIConfig | None:
        """AIConfigPort entry point; the blocking read runs in a worker thread."""
        return await asyncio.to_thread(self.get_config, family_id)
