"""Infra layer utilities (SQLite storage)."""

from .storage import SQLiteManager
from .store import LotStore, SQLiteLotStore

__all__ = ["LotStore", "SQLiteLotStore", "SQLiteManager"]
