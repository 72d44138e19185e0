"""
Checkpoint manager. Snapshots EngineState to SQLite so the `status` command
can show what a running daemon last knew, and a restart can compare it with
what the ledger says.

The ledger stays authoritative for counters: on startup the loop re-seeds
them from predictions, never from a checkpoint. Each save is one
INSERT OR REPLACE.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from state.engine_state import EngineState

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS engine_checkpoint (
    name TEXT PRIMARY KEY,
    data_json TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

STATE_KEY = "engine_state"


class CheckpointManager:
    """Single-writer snapshot store. Shares the ledger's database file by default."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self.save_count = 0
        self._get_conn().executescript(_SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def save(self, state: EngineState, extra: dict[str, Any] | None = None) -> None:
        """Snapshot under the state's own lock so the view is consistent."""
        with state.lock:
            data = state.to_dict()
        if extra:
            data["extra"] = extra
        data_json = json.dumps(data, default=str)
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO engine_checkpoint (name, data_json, updated_at) VALUES (?, ?, ?)",
                (STATE_KEY, data_json, time.time()),
            )
            conn.commit()
            self.save_count += 1
        logger.debug("Checkpoint saved (%d bytes)", len(data_json))

    def load_raw(self) -> tuple[dict[str, Any], float] | None:
        """Stored dict and its save time, or None if nothing was saved."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT data_json, updated_at FROM engine_checkpoint WHERE name = ?",
                (STATE_KEY,),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row[0]), row[1]

    def load(self) -> EngineState | None:
        raw = self.load_raw()
        if raw is None:
            return None
        data, updated_at = raw
        try:
            state = EngineState.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Discarding unreadable checkpoint from %.0f: %s", updated_at, e)
            return None
        logger.info("Loaded checkpoint saved %.0fs ago", time.time() - updated_at)
        return state

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
