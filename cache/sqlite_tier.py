"""
Durable cache tier backed by a local SQLite file.

Survives restarts.  Three tables mirror the in-process tier:

    products               keyed by external_id
    product_groups         keyed by group id
    ingredient_snapshots   keyed by snapshot id, indexed by group and hash

Rows are stored as JSON payloads next to the columns we filter on.  All
sqlite work runs in a worker thread through ``asyncio.to_thread`` on one
connection guarded by a lock.  Calls made before ``open()`` (or after a
failed one) raise CacheTierUnavailable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from typing import Any

from errors import CacheTierUnavailable

from .base import CacheTier

logger = logging.getLogger("cache.sqlite")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    external_id  TEXT PRIMARY KEY,
    payload      TEXT NOT NULL,
    last_updated INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS product_groups (
    id           TEXT PRIMARY KEY,
    payload      TEXT NOT NULL,
    last_updated INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS ingredient_snapshots (
    id               TEXT PRIMARY KEY,
    product_group_id TEXT NOT NULL,
    ingredients_hash TEXT,
    is_current       INTEGER NOT NULL DEFAULT 0,
    payload          TEXT NOT NULL,
    last_updated     INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_group ON ingredient_snapshots (product_group_id);
CREATE INDEX IF NOT EXISTS idx_snapshots_hash ON ingredient_snapshots (ingredients_hash);
"""


class SqliteTier(CacheTier):
    name = "sqlite"

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await asyncio.to_thread(self._connect)
        except sqlite3.Error as exc:
            raise CacheTierUnavailable(f"cannot open {self.db_path}: {exc}") from exc
        logger.info("Durable cache opened at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.executescript(_SCHEMA)
        conn.commit()
        return conn

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await asyncio.to_thread(conn.close)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _run(self, fn, *args):
        if self._conn is None:
            raise CacheTierUnavailable("durable cache tier is not open")
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn, *args):
        with self._lock:
            conn = self._conn
            if conn is None:
                raise CacheTierUnavailable("durable cache tier closed mid-call")
            try:
                result = fn(conn, *args)
                conn.commit()
                return result
            except (sqlite3.Error, TypeError, ValueError) as exc:
                raise CacheTierUnavailable(str(exc)) from exc

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get(self, external_id: str) -> dict[str, Any] | None:
        def _q(conn, key):
            row = conn.execute(
                "SELECT payload FROM products WHERE external_id = ?", (key,)
            ).fetchone()
            return json.loads(row["payload"]) if row else None

        return await self._run(_q, external_id)

    async def put(self, external_id: str, entry: dict[str, Any]) -> None:
        def _q(conn, key, payload, ts):
            conn.execute(
                "INSERT OR REPLACE INTO products (external_id, payload, last_updated) VALUES (?, ?, ?)",
                (key, payload, ts),
            )

        await self._run(_q, external_id, json.dumps(entry), entry["last_updated"])

    async def invalidate(self, external_id: str) -> None:
        def _q(conn, key):
            conn.execute("DELETE FROM products WHERE external_id = ?", (key,))

        await self._run(_q, external_id)

    # ------------------------------------------------------------------
    # Groups + snapshots
    # ------------------------------------------------------------------

    async def get_group(self, group_id: Any) -> dict[str, Any] | None:
        def _q(conn, key):
            row = conn.execute(
                "SELECT payload FROM product_groups WHERE id = ?", (key,)
            ).fetchone()
            return json.loads(row["payload"]) if row else None

        return await self._run(_q, str(group_id))

    async def put_group(self, group: dict[str, Any]) -> None:
        def _q(conn, key, payload, ts):
            conn.execute(
                "INSERT OR REPLACE INTO product_groups (id, payload, last_updated) VALUES (?, ?, ?)",
                (key, payload, ts),
            )

        await self._run(_q, str(group["id"]), json.dumps(group), group["last_updated"])

    async def put_snapshot(self, snapshot: dict[str, Any]) -> None:
        def _q(conn, snap):
            group_key = str(snap["product_group_id"])
            if snap.get("is_current"):
                stale = conn.execute(
                    "SELECT id, payload FROM ingredient_snapshots "
                    "WHERE product_group_id = ? AND is_current = 1 AND id != ?",
                    (group_key, str(snap["id"])),
                ).fetchall()
                for row in stale:
                    payload = json.loads(row["payload"])
                    payload["is_current"] = False
                    conn.execute(
                        "UPDATE ingredient_snapshots SET is_current = 0, payload = ? WHERE id = ?",
                        (json.dumps(payload), row["id"]),
                    )
            conn.execute(
                "INSERT OR REPLACE INTO ingredient_snapshots "
                "(id, product_group_id, ingredients_hash, is_current, payload, last_updated) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(snap["id"]),
                    group_key,
                    snap.get("ingredients_hash"),
                    1 if snap.get("is_current") else 0,
                    json.dumps(snap),
                    snap["last_updated"],
                ),
            )

        await self._run(_q, snapshot)

    async def find_snapshots_by_hash(self, ingredients_hash: str) -> list[dict[str, Any]]:
        def _q(conn, key):
            rows = conn.execute(
                "SELECT payload FROM ingredient_snapshots WHERE ingredients_hash = ?", (key,)
            ).fetchall()
            return [json.loads(r["payload"]) for r in rows]

        return await self._run(_q, ingredients_hash)

    async def sweep(self, cutoff_ms: int) -> int:
        def _q(conn, cutoff):
            removed = 0
            for table in ("products", "product_groups", "ingredient_snapshots"):
                cur = conn.execute(f"DELETE FROM {table} WHERE last_updated <= ?", (cutoff,))
                removed += cur.rowcount
            return removed

        return await self._run(_q, cutoff_ms)
