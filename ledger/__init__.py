"""
Ledger module: durable prediction records and the resolution event log.

Usage:
    from ledger import open_store
    store = open_store("forecasts.db")
"""

from __future__ import annotations

from ledger.store import PersistenceError, PredictionStore


def open_store(db_path: str | None = None) -> PredictionStore:
    """Factory: opens (and creates if needed) the SQLite ledger."""
    return PredictionStore(db_path=db_path)


__all__ = ["PersistenceError", "PredictionStore", "open_store"]
