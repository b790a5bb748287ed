"""SQLite database operations for items and collections."""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

import aiosqlite

from ..items import ExtractedItem

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    source_url TEXT NOT NULL,
    title TEXT,
    brand TEXT,
    price REAL,
    currency TEXT,
    retailer TEXT,
    image_url TEXT,
    category TEXT,
    tags TEXT,
    item_type TEXT NOT NULL DEFAULT 'product',
    attributes TEXT NOT NULL DEFAULT '{}',
    confidence_score REAL,
    raw_markdown TEXT,
    extraction_model TEXT,
    current_snapshot_id TEXT,
    last_extracted_at REAL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS item_snapshots (
    id TEXT PRIMARY KEY,
    item_id TEXT NOT NULL,
    price REAL,
    currency TEXT,
    image_url TEXT,
    raw_markdown TEXT,
    captured_at REAL NOT NULL,
    FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS collection_items (
    collection_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    notes TEXT,
    position INTEGER,
    added_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (collection_id, item_id),
    FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE,
    FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_items_source_url ON items(source_url);
CREATE INDEX IF NOT EXISTS idx_snapshots_item ON item_snapshots(item_id, captured_at);
CREATE INDEX IF NOT EXISTS idx_collection_items_collection ON collection_items(collection_id);
"""

ITEM_FIELDS = (
    "title",
    "brand",
    "price",
    "currency",
    "retailer",
    "image_url",
    "category",
    "tags",
    "item_type",
    "attributes",
    "confidence_score",
    "raw_markdown",
    "extraction_model",
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _item_from_row(row: aiosqlite.Row) -> dict:
    item = dict(row)
    item["tags"] = json.loads(item["tags"]) if item["tags"] else None
    item["attributes"] = json.loads(item["attributes"] or "{}")
    return item


def _item_values(extracted: ExtractedItem) -> dict:
    values = extracted.model_dump(include=set(ITEM_FIELDS))
    values["tags"] = json.dumps(values["tags"]) if values["tags"] is not None else None
    values["attributes"] = json.dumps(values["attributes"] or {})
    return values


async def init_db(db_path: Path, default_collection: str = "Inbox") -> None:
    """Create database tables and the default collection."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA)
        await db.execute(
            """INSERT OR IGNORE INTO collections (id, name, description, is_default, created_at)
               VALUES (?, ?, ?, 1, ?)""",
            (
                default_collection.lower(),
                default_collection,
                "Default collection for new items",
                time.time(),
            ),
        )
        await db.commit()
    logger.info(f"[DB] Initialized database at {db_path}")


async def get_db(db_path: Path) -> aiosqlite.Connection:
    """Get a database connection."""
    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    return db


# Items


async def get_item(db: aiosqlite.Connection, item_id: str) -> Optional[dict]:
    cursor = await db.execute("SELECT * FROM items WHERE id = ?", (item_id,))
    row = await cursor.fetchone()
    return _item_from_row(row) if row else None


async def find_item_by_url(db: aiosqlite.Connection, source_url: str) -> Optional[dict]:
    """Most recently extracted item for ``source_url``."""
    cursor = await db.execute(
        """SELECT * FROM items WHERE source_url = ?
           ORDER BY last_extracted_at IS NULL, last_extracted_at DESC LIMIT 1""",
        (source_url,),
    )
    row = await cursor.fetchone()
    return _item_from_row(row) if row else None


async def _insert_snapshot(db: aiosqlite.Connection, item_id: str, extracted: ExtractedItem) -> str:
    snapshot_id = _new_id()
    await db.execute(
        """INSERT INTO item_snapshots (id, item_id, price, currency, image_url, raw_markdown, captured_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            snapshot_id,
            item_id,
            extracted.price,
            extracted.currency,
            extracted.image_url,
            extracted.raw_markdown,
            time.time(),
        ),
    )
    return snapshot_id


async def create_item(db: aiosqlite.Connection, extracted: ExtractedItem) -> dict:
    """Insert a new item with its first snapshot and return it."""
    item_id = _new_id()
    now = time.time()
    values = _item_values(extracted)
    columns = ", ".join(ITEM_FIELDS)
    placeholders = ", ".join("?" for _ in ITEM_FIELDS)

    await db.execute(
        f"""INSERT INTO items (id, source_url, {columns}, last_extracted_at, created_at)
            VALUES (?, ?, {placeholders}, ?, ?)""",
        (item_id, extracted.source_url, *(values[f] for f in ITEM_FIELDS), now, now),
    )
    snapshot_id = await _insert_snapshot(db, item_id, extracted)
    await db.execute(
        "UPDATE items SET current_snapshot_id = ? WHERE id = ?",
        (snapshot_id, item_id),
    )
    await db.commit()
    logger.info(f"[DB] Created item {item_id} for {extracted.source_url}")
    return await get_item(db, item_id)


async def refresh_item(db: aiosqlite.Connection, item_id: str, extracted: ExtractedItem) -> dict:
    """Record a new snapshot for an existing item and update its fields."""
    values = _item_values(extracted)
    snapshot_id = await _insert_snapshot(db, item_id, extracted)
    assignments = ", ".join(f"{field} = ?" for field in ITEM_FIELDS)

    await db.execute(
        f"""UPDATE items SET {assignments}, last_extracted_at = ?, current_snapshot_id = ?
            WHERE id = ?""",
        (*(values[f] for f in ITEM_FIELDS), time.time(), snapshot_id, item_id),
    )
    await db.commit()
    logger.info(f"[DB] Refreshed item {item_id} (snapshot {snapshot_id})")
    return await get_item(db, item_id)


async def list_snapshots(db: aiosqlite.Connection, item_id: str) -> list[dict]:
    """Snapshots for an item, newest first."""
    cursor = await db.execute(
        """SELECT id, item_id, price, currency, image_url, captured_at
           FROM item_snapshots WHERE item_id = ? ORDER BY captured_at DESC""",
        (item_id,),
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]


# Collections


async def get_collection(db: aiosqlite.Connection, collection_id: str) -> Optional[dict]:
    cursor = await db.execute("SELECT * FROM collections WHERE id = ?", (collection_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


async def list_collections(db: aiosqlite.Connection) -> list[dict]:
    """All collections with item counts, default collection first."""
    cursor = await db.execute(
        """SELECT c.*, COUNT(ci.item_id) AS item_count
           FROM collections c LEFT JOIN collection_items ci ON ci.collection_id = c.id
           GROUP BY c.id
           ORDER BY c.is_default DESC, c.created_at ASC"""
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def create_collection(
    db: aiosqlite.Connection,
    name: str,
    description: Optional[str] = None,
) -> dict:
    """Insert a collection.

    Raises:
        aiosqlite.IntegrityError: If the name is already taken.
    """
    collection_id = _new_id()
    await db.execute(
        "INSERT INTO collections (id, name, description, created_at) VALUES (?, ?, ?, ?)",
        (collection_id, name, description, time.time()),
    )
    await db.commit()
    logger.info(f"[DB] Created collection '{name}' ({collection_id})")
    return await get_collection(db, collection_id)


async def upsert_collection_item(
    db: aiosqlite.Connection,
    collection_id: str,
    item_id: str,
    notes: Optional[str] = None,
    position: Optional[int] = None,
) -> dict:
    """Add an item to a collection, or update notes/position if already there."""
    now = time.time()
    await db.execute(
        """INSERT INTO collection_items (collection_id, item_id, notes, position, added_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT (collection_id, item_id) DO UPDATE SET
               notes = COALESCE(excluded.notes, collection_items.notes),
               position = COALESCE(excluded.position, collection_items.position),
               updated_at = excluded.updated_at""",
        (collection_id, item_id, notes, position, now, now),
    )
    await db.commit()
    cursor = await db.execute(
        "SELECT * FROM collection_items WHERE collection_id = ? AND item_id = ?",
        (collection_id, item_id),
    )
    row = await cursor.fetchone()
    return dict(row)


async def list_collection_items(db: aiosqlite.Connection, collection_id: str) -> list[dict]:
    """Items in a collection with their per-collection notes and position."""
    cursor = await db.execute(
        """SELECT i.*, ci.notes AS notes, ci.position AS position, ci.added_at AS added_at
           FROM collection_items ci JOIN items i ON i.id = ci.item_id
           WHERE ci.collection_id = ?
           ORDER BY ci.position IS NULL, ci.position ASC, ci.added_at DESC""",
        (collection_id,),
    )
    rows = await cursor.fetchall()
    return [_item_from_row(row) for row in rows]


async def remove_collection_item(db: aiosqlite.Connection, collection_id: str, item_id: str) -> bool:
    """Remove an item from a collection. Returns True if it was there."""
    cursor = await db.execute(
        "DELETE FROM collection_items WHERE collection_id = ? AND item_id = ?",
        (collection_id, item_id),
    )
    await db.commit()
    return cursor.rowcount > 0
