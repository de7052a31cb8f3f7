"""Persistence contract for listings, lots and categories, with a SQLite backend."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Iterable, Sequence

from ..errors import CategoryError, NotFoundError
from ..models import Category, CategoryProbability, Listing, Lot, StoredListing, StoredLot
from .storage import SQLiteManager

SYSTEM_CATEGORY_NAMES = ("Other",)


class LotStore(ABC):
    """Storage used by the crawl and categorization pipelines.

    The crawl side only creates and refreshes listings and lots; the
    categorization side only writes probabilities and main categories.
    """

    @abstractmethod
    def ensure_source(self, name: str, url: str) -> int:
        ...

    @abstractmethod
    def upsert_listing_by_url(self, listing: Listing, source_id: int | None) -> tuple[int, bool]:
        """Insert or refresh a listing, returning its id and whether it was created."""

    @abstractmethod
    def upsert_lot_by_url(self, lot: Lot, listing_id: int) -> tuple[int, bool]:
        """Insert or refresh a lot, returning its id and whether it was created."""

    @abstractmethod
    def replace_lot_probabilities(
        self, lot_id: int, probabilities: Sequence[CategoryProbability]
    ) -> None:
        """Atomically swap the full probability set of a lot."""

    @abstractmethod
    def set_main_category(self, lot_id: int, category_id: int | None) -> None:
        ...

    @abstractmethod
    def list_categories(self) -> list[Category]:
        ...

    @abstractmethod
    def get_category(self, category_id: int) -> Category:
        ...

    @abstractmethod
    def create_category(
        self, name: str, description: str | None = None, is_system: bool = False
    ) -> Category:
        ...

    @abstractmethod
    def delete_category(self, category_id: int) -> None:
        ...

    @abstractmethod
    def ensure_system_categories(self) -> list[Category]:
        ...

    @abstractmethod
    def get_listing(self, listing_id: int) -> StoredListing:
        ...

    @abstractmethod
    def list_listings(self) -> list[StoredListing]:
        ...

    @abstractmethod
    def get_lot(self, lot_id: int) -> StoredLot:
        ...

    @abstractmethod
    def list_lots(self, listing_id: int | None = None) -> list[StoredLot]:
        ...

    @abstractmethod
    def get_lot_probabilities(self, lot_id: int) -> list[CategoryProbability]:
        ...

    def close(self) -> None:
        return


def _to_text(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        is_system=bool(row["is_system"]),
    )


def _stored_lot(row: sqlite3.Row) -> StoredLot:
    return StoredLot(
        id=row["id"],
        listing_id=row["listing_id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
        image_url=row["image_url"],
        current_price=row["current_price"],
        bid_count=row["bid_count"],
        main_category_id=row["main_category_id"],
    )


def _stored_listing(row: sqlite3.Row) -> StoredListing:
    return StoredListing(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
        start_time=_to_datetime(row["start_time"]),
        end_time=_to_datetime(row["end_time"]),
        lot_count=row["lot_count"],
        source_name=row["source_name"],
    )


_LISTING_QUERY = """
    SELECT listings.*, sources.name AS source_name
    FROM listings LEFT JOIN sources ON sources.id = listings.source_id
"""


class SQLiteLotStore(LotStore):
    """``LotStore`` on a single shared SQLite connection guarded by a lock."""

    def __init__(self, path: Path, manager: SQLiteManager | None = None) -> None:
        self.path = path
        self.manager = manager or SQLiteManager()
        self._conn = self.manager.connect(path)
        self._lock = RLock()
        self.ensure_system_categories()

    def close(self) -> None:
        self.manager.close_all()

    # sources / listings / lots ----------------------------------------
    def ensure_source(self, name: str, url: str) -> int:
        with self._lock, self._conn:
            row = self._conn.execute("SELECT id FROM sources WHERE name = ?", (name,)).fetchone()
            if row is not None:
                self._conn.execute("UPDATE sources SET url = ? WHERE id = ?", (url, row["id"]))
                return row["id"]
            cur = self._conn.execute("INSERT INTO sources(name, url) VALUES (?, ?)", (name, url))
            return int(cur.lastrowid)

    def upsert_listing_by_url(self, listing: Listing, source_id: int | None) -> tuple[int, bool]:
        values = (
            source_id,
            listing.title,
            listing.description,
            _to_text(listing.start_time),
            _to_text(listing.end_time),
            len(listing.lots),
        )
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT id FROM listings WHERE url = ?", (listing.url,)
            ).fetchone()
            if row is not None:
                self._conn.execute(
                    """
                    UPDATE listings
                    SET source_id = COALESCE(?, source_id), title = ?, description = ?,
                        start_time = ?, end_time = ?, lot_count = ?, updated_at = datetime('now')
                    WHERE id = ?
                    """,
                    (*values, row["id"]),
                )
                return row["id"], False
            cur = self._conn.execute(
                """
                INSERT INTO listings(source_id, title, description, start_time, end_time, lot_count, url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (*values, listing.url),
            )
            return int(cur.lastrowid), True

    def upsert_lot_by_url(self, lot: Lot, listing_id: int) -> tuple[int, bool]:
        values = (
            listing_id,
            lot.title,
            lot.description,
            lot.image_url,
            lot.current_price,
            lot.bid_count,
        )
        with self._lock, self._conn:
            row = self._conn.execute("SELECT id FROM lots WHERE url = ?", (lot.url,)).fetchone()
            if row is not None:
                self._conn.execute(
                    """
                    UPDATE lots
                    SET listing_id = ?, title = ?, description = ?, image_url = ?,
                        current_price = ?, bid_count = ?, updated_at = datetime('now')
                    WHERE id = ?
                    """,
                    (*values, row["id"]),
                )
                return row["id"], False
            cur = self._conn.execute(
                """
                INSERT INTO lots(listing_id, title, description, image_url, current_price, bid_count, url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (*values, lot.url),
            )
            return int(cur.lastrowid), True

    def get_listing(self, listing_id: int) -> StoredListing:
        with self._lock:
            row = self._conn.execute(
                _LISTING_QUERY + " WHERE listings.id = ?", (listing_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Listing {listing_id} does not exist")
        return _stored_listing(row)

    def list_listings(self) -> list[StoredListing]:
        with self._lock:
            rows = self._conn.execute(_LISTING_QUERY + " ORDER BY listings.id").fetchall()
        return [_stored_listing(row) for row in rows]

    def get_lot(self, lot_id: int) -> StoredLot:
        with self._lock:
            row = self._conn.execute("SELECT * FROM lots WHERE id = ?", (lot_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Lot {lot_id} does not exist")
        return _stored_lot(row)

    def list_lots(self, listing_id: int | None = None) -> list[StoredLot]:
        with self._lock:
            if listing_id is None:
                rows = self._conn.execute("SELECT * FROM lots ORDER BY id").fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM lots WHERE listing_id = ? ORDER BY id", (listing_id,)
                ).fetchall()
        return [_stored_lot(row) for row in rows]

    # categorization -----------------------------------------------------
    def replace_lot_probabilities(
        self, lot_id: int, probabilities: Sequence[CategoryProbability]
    ) -> None:
        with self._lock:
            self._require_lot(lot_id)
            self._require_categories(entry.category_id for entry in probabilities)
            with self._conn:
                self._conn.execute(
                    "DELETE FROM category_probabilities WHERE lot_id = ?", (lot_id,)
                )
                self._conn.executemany(
                    """
                    INSERT INTO category_probabilities(lot_id, category_id, probability)
                    VALUES (?, ?, ?)
                    """,
                    [(lot_id, entry.category_id, entry.probability) for entry in probabilities],
                )

    def set_main_category(self, lot_id: int, category_id: int | None) -> None:
        with self._lock:
            self._require_lot(lot_id)
            if category_id is not None:
                self._require_categories([category_id])
            with self._conn:
                self._conn.execute(
                    "UPDATE lots SET main_category_id = ?, updated_at = datetime('now') WHERE id = ?",
                    (category_id, lot_id),
                )

    def get_lot_probabilities(self, lot_id: int) -> list[CategoryProbability]:
        with self._lock:
            self._require_lot(lot_id)
            rows = self._conn.execute(
                """
                SELECT category_id, probability FROM category_probabilities
                WHERE lot_id = ? ORDER BY probability DESC, category_id
                """,
                (lot_id,),
            ).fetchall()
        return [
            CategoryProbability(category_id=row["category_id"], probability=row["probability"])
            for row in rows
        ]

    # categories -----------------------------------------------------------
    def list_categories(self) -> list[Category]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM categories ORDER BY id").fetchall()
        return [_category(row) for row in rows]

    def get_category(self, category_id: int) -> Category:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM categories WHERE id = ?", (category_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Category {category_id} does not exist")
        return _category(row)

    def create_category(
        self, name: str, description: str | None = None, is_system: bool = False
    ) -> Category:
        name = (name or "").strip()
        if not name:
            raise CategoryError("Category name cannot be empty")
        description = description.strip() if description and description.strip() else None
        with self._lock:
            existing = self._conn.execute(
                "SELECT id FROM categories WHERE name = ?", (name,)
            ).fetchone()
            if existing is not None:
                raise CategoryError(f"Category {name!r} already exists")
            with self._conn:
                cur = self._conn.execute(
                    "INSERT INTO categories(name, description, is_system) VALUES (?, ?, ?)",
                    (name, description, int(is_system)),
                )
            return self.get_category(int(cur.lastrowid))

    def delete_category(self, category_id: int) -> None:
        with self._lock:
            category = self.get_category(category_id)
            if category.is_system:
                raise CategoryError(f"System category {category.name!r} cannot be deleted")
            with self._conn:
                self._conn.execute(
                    "UPDATE lots SET main_category_id = NULL WHERE main_category_id = ?",
                    (category_id,),
                )
                self._conn.execute(
                    "DELETE FROM category_probabilities WHERE category_id = ?", (category_id,)
                )
                self._conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))

    def ensure_system_categories(self) -> list[Category]:
        ensured: list[Category] = []
        with self._lock:
            for name in SYSTEM_CATEGORY_NAMES:
                row = self._conn.execute(
                    "SELECT * FROM categories WHERE name = ?", (name,)
                ).fetchone()
                if row is None:
                    ensured.append(self.create_category(name, is_system=True))
                    continue
                if not row["is_system"]:
                    with self._conn:
                        self._conn.execute(
                            "UPDATE categories SET is_system = 1 WHERE id = ?", (row["id"],)
                        )
                ensured.append(self.get_category(row["id"]))
        return ensured

    # helpers -------------------------------------------------------------
    def _require_lot(self, lot_id: int) -> None:
        row = self._conn.execute("SELECT 1 FROM lots WHERE id = ?", (lot_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Lot {lot_id} does not exist")

    def _require_categories(self, category_ids: Iterable[int]) -> None:
        for category_id in set(category_ids):
            row = self._conn.execute(
                "SELECT 1 FROM categories WHERE id = ?", (category_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Category {category_id} does not exist")


__all__ = ["LotStore", "SQLiteLotStore", "SYSTEM_CATEGORY_NAMES"]
