"""
SQLite persistence for predictions. WAL mode for concurrent read/write.

Every write is atomic at the single-record level. Resolution and abandonment
only apply to pending rows (status guard in the UPDATE), which makes them
idempotent; each terminal transition also appends to resolution_events in
the same transaction.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path
from typing import Any

from scanner.models import Category, Direction, Prediction, PredictionStatus

DB_PATH = Path("forecasts.db")


class PersistenceError(Exception):
    """A ledger write or read failed. Callers must treat the operation as not applied."""


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


def _to_prediction(row: dict[str, Any]) -> Prediction:
    outcome = row["outcome"]
    return Prediction(
        id=row["id"],
        question=row["question"],
        probability=row["probability"],
        direction=Direction(row["direction"]),
        category=Category(row["category"]),
        created_at=row["created_at"],
        venue=row["venue"],
        market_id=row["market_id"],
        reasoning=row["reasoning"],
        status=PredictionStatus(row["status"]),
        resolved_at=row["resolved_at"],
        outcome=None if outcome is None else bool(outcome),
        accuracy_score=row["accuracy_score"],
    )


class PredictionStore:
    """Thread-safe SQLite store for predictions and resolution events."""

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._db_path = str(db_path or DB_PATH)
        self._local = threading.local()
        try:
            self._init_schema()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open ledger at {self._db_path}: {e}") from e

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.row_factory = _dict_factory
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            self._local.conn = conn
        return conn

    def _init_schema(self) -> None:
        conn = self._conn
        conn.executescript(_SCHEMA)
        self._migrate(conn)
        conn.commit()

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply incremental migrations to existing tables."""
        cols = {row["name"] for row in conn.execute("PRAGMA table_info(predictions)").fetchall()}
        if "reasoning" not in cols:
            conn.execute("ALTER TABLE predictions ADD COLUMN reasoning TEXT NOT NULL DEFAULT ''")

    # ── Write methods ──

    def create_prediction(
        self,
        question: str,
        probability: float,
        direction: Direction,
        category: Category,
        venue: str = "",
        market_id: str = "",
        reasoning: str = "",
        created_at: float | None = None,
    ) -> Prediction:
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability {probability} out of range [0, 1]")
        ts = time.time() if created_at is None else created_at
        try:
            with self._conn as conn:
                cur = conn.execute(
                    """INSERT INTO predictions
                       (question, probability, direction, category, venue, market_id,
                        reasoning, status, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (question, probability, direction.value, category.value, venue,
                     market_id, reasoning, PredictionStatus.PENDING.value, ts),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"create_prediction failed: {e}") from e
        return Prediction(
            id=cur.lastrowid,  # type: ignore[arg-type]
            question=question,
            probability=probability,
            direction=direction,
            category=category,
            created_at=ts,
            venue=venue,
            market_id=market_id,
            reasoning=reasoning,
        )

    def resolve_prediction(
        self,
        prediction_id: int,
        outcome: bool,
        accuracy_score: float,
        resolved_at: float | None = None,
    ) -> bool:
        """
        Set outcome and accuracy score together. Returns False (no-op) if the
        prediction is already terminal or does not exist.
        """
        ts = time.time() if resolved_at is None else resolved_at
        try:
            with self._conn as conn:
                cur = conn.execute(
                    """UPDATE predictions
                       SET status = ?, outcome = ?, accuracy_score = ?, resolved_at = ?
                       WHERE id = ? AND status = ?""",
                    (PredictionStatus.RESOLVED.value, int(outcome), accuracy_score, ts,
                     prediction_id, PredictionStatus.PENDING.value),
                )
                if cur.rowcount == 0:
                    return False
                conn.execute(
                    """INSERT INTO resolution_events
                       (prediction_id, kind, outcome, accuracy_score, detail, created_at)
                       VALUES (?, 'resolved', ?, ?, '', ?)""",
                    (prediction_id, int(outcome), accuracy_score, ts),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"resolve_prediction({prediction_id}) failed: {e}") from e
        return True

    def abandon_prediction(self, prediction_id: int, reason: str) -> bool:
        """Mark a pending prediction abandoned. Outcome and score stay unset."""
        ts = time.time()
        try:
            with self._conn as conn:
                cur = conn.execute(
                    """UPDATE predictions SET status = ?, resolved_at = ?
                       WHERE id = ? AND status = ?""",
                    (PredictionStatus.ABANDONED.value, ts, prediction_id,
                     PredictionStatus.PENDING.value),
                )
                if cur.rowcount == 0:
                    return False
                conn.execute(
                    """INSERT INTO resolution_events
                       (prediction_id, kind, outcome, accuracy_score, detail, created_at)
                       VALUES (?, 'abandoned', NULL, NULL, ?, ?)""",
                    (prediction_id, reason, ts),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"abandon_prediction({prediction_id}) failed: {e}") from e
        return True

    # ── Read methods ──

    def _query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"query failed: {e}") from e

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        rows = self._query("SELECT * FROM predictions WHERE id = ?", (prediction_id,))
        return _to_prediction(rows[0]) if rows else None

    def list_pending(self) -> list[Prediction]:
        """Unresolved predictions that link to a venue market."""
        rows = self._query(
            """SELECT * FROM predictions
               WHERE status = ? AND venue != '' AND market_id != ''
               ORDER BY id""",
            (PredictionStatus.PENDING.value,),
        )
        return [_to_prediction(r) for r in rows]

    def list_resolved(self, limit: int = 100) -> list[Prediction]:
        """Most recently resolved first."""
        rows = self._query(
            "SELECT * FROM predictions WHERE status = ? ORDER BY resolved_at DESC, id DESC LIMIT ?",
            (PredictionStatus.RESOLVED.value, limit),
        )
        return [_to_prediction(r) for r in rows]

    def list_created_since(self, since: float) -> list[Prediction]:
        rows = self._query(
            "SELECT * FROM predictions WHERE created_at >= ? ORDER BY created_at",
            (since,),
        )
        return [_to_prediction(r) for r in rows]

    def get_resolution_events(self, prediction_id: int | None = None) -> list[dict[str, Any]]:
        if prediction_id is None:
            return self._query("SELECT * FROM resolution_events ORDER BY id")
        return self._query(
            "SELECT * FROM resolution_events WHERE prediction_id = ? ORDER BY id",
            (prediction_id,),
        )

    def count_by_status(self) -> dict[str, int]:
        rows = self._query("SELECT status, COUNT(*) AS n FROM predictions GROUP BY status")
        counts = {s.value: 0 for s in PredictionStatus}
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


_SCHEMA = """
CREATE TABLE IF NOT EXISTS predictions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    question TEXT NOT NULL,
    probability REAL NOT NULL,
    direction TEXT NOT NULL,
    category TEXT NOT NULL DEFAULT 'general',
    venue TEXT NOT NULL DEFAULT '',
    market_id TEXT NOT NULL DEFAULT '',
    reasoning TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending',
    created_at REAL NOT NULL,
    resolved_at REAL,
    outcome INTEGER,
    accuracy_score REAL
);
CREATE INDEX IF NOT EXISTS idx_pred_status ON predictions(status);
CREATE INDEX IF NOT EXISTS idx_pred_created ON predictions(created_at);
CREATE INDEX IF NOT EXISTS idx_pred_market ON predictions(venue, market_id);

CREATE TABLE IF NOT EXISTS resolution_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prediction_id INTEGER NOT NULL REFERENCES predictions(id),
    kind TEXT NOT NULL,
    outcome INTEGER,
    accuracy_score REAL,
    detail TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_pred ON resolution_events(prediction_id);
"""
