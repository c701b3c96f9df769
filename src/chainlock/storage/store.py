"""
Component Store — SQLite Persistence for Locked Component Records

Persists ``LockedComponent.to_record()`` output so components can be rebuilt
with ``LockedComponent.from_record`` after a restart. The node and hash
columns are indexed for lookups; the record itself is stored as JSON.

Usage:
    async with ComponentStore(settings.db_path) as store:
        await store.save_component(component)
        record = await store.load_record(component.component_id)
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from chainlock.config import Settings
from chainlock.fingerprint import ExpertiseFingerprint
from chainlock.locking import LockedComponent


class ComponentStore:
    """Async SQLite store of locked component records."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None) -> None:
        self.db_path = Path(db_path) if db_path else Settings().db_path
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> "ComponentStore":
        await self._init_db()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        await self.close()

    async def _init_db(self) -> None:
        self._db = await aiosqlite.connect(str(self.db_path))
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS locked_components (
                component_id TEXT PRIMARY KEY,
                original_node_id TEXT NOT NULL,
                context_hash TEXT NOT NULL,
                domains TEXT NOT NULL,
                is_public INTEGER NOT NULL,
                usage_count INTEGER DEFAULT 0,
                record TEXT NOT NULL,
                locked_at REAL NOT NULL,
                saved_at REAL NOT NULL,
                CHECK (usage_count >= 0)
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_components_node
            ON locked_components(original_node_id)
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_components_hash
            ON locked_components(context_hash)
        """)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def save_component(self, component: LockedComponent) -> str:
        """Insert or update the record of ``component``."""
        return await self.save_record(component.to_record())

    async def save_record(self, record: Dict[str, Any]) -> str:
        assert self._db is not None
        metadata = record["metadata"]
        snapshot = metadata["context_snapshot"]
        await self._db.execute(
            """INSERT INTO locked_components
               (component_id, original_node_id, context_hash, domains, is_public,
                usage_count, record, locked_at, saved_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(component_id) DO UPDATE SET
                   usage_count = excluded.usage_count,
                   is_public = excluded.is_public,
                   record = excluded.record,
                   saved_at = excluded.saved_at""",
            (
                record["component_id"],
                metadata["original_node_id"],
                snapshot["context_hash"],
                ",".join(snapshot["domains"]),
                int(bool(metadata["reusability_rights"]["is_public"])),
                int(record.get("usage", {}).get("usage_count", 0)),
                json.dumps(record, sort_keys=True),
                float(metadata["locked_at"]),
                time.time(),
            ),
        )
        await self._db.commit()
        return record["component_id"]

    async def load_record(self, component_id: str) -> Optional[Dict[str, Any]]:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT record FROM locked_components WHERE component_id = ?",
            (component_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return json.loads(row[0])

    async def load_fingerprint(self, component_id: str) -> Optional[ExpertiseFingerprint]:
        record = await self.load_record(component_id)
        if record is None:
            return None
        return ExpertiseFingerprint.from_dict(record["fingerprint"])

    async def list_components(
        self, original_node_id: Optional[str] = None, limit: int = 50
    ) -> List[Dict[str, Any]]:
        """Summaries of stored components, newest lock first."""
        assert self._db is not None
        query = (
            "SELECT component_id, original_node_id, context_hash, domains, "
            "is_public, usage_count, locked_at FROM locked_components"
        )
        params: tuple = ()
        if original_node_id:
            query += " WHERE original_node_id = ?"
            params = (original_node_id,)
        query += " ORDER BY locked_at DESC LIMIT ?"
        params = params + (limit,)

        cursor = await self._db.execute(query, params)
        rows = await cursor.fetchall()
        return [
            {
                "component_id": row[0],
                "original_node_id": row[1],
                "context_hash": row[2],
                "domains": row[3].split(",") if row[3] else [],
                "is_public": bool(row[4]),
                "usage_count": row[5],
                "locked_at": row[6],
            }
            for row in rows
        ]

    async def delete_component(self, component_id: str) -> bool:
        assert self._db is not None
        cursor = await self._db.execute(
            "DELETE FROM locked_components WHERE component_id = ?", (component_id,)
        )
        await self._db.commit()
        return cursor.rowcount > 0
