from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock


async def add_entry(catalog, name, segments=("Furniture",), data=None, **kwargs):
    """Ingest a small asset and return its catalog entry"""
    result = await catalog.entries.ingest(
        name=name,
        data=data or name.encode(),
        file_name=f"{name}.glb",
        mime_type="model/gltf-binary",
        hierarchy_segments=list(segments),
        **kwargs,
    )
    return result.entry


def mock_database(fetchval=None, fetch=None, fetchrow=None):
    """Database double whose connection is an AsyncMock, for SQL shape checks"""
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=fetchval)
    conn.fetch = AsyncMock(return_value=fetch or [])
    conn.fetchrow = AsyncMock(side_effect=fetchrow)

    @asynccontextmanager
    async def acquire():
        yield conn

    db = MagicMock()
    db.pool.acquire = acquire
    return db, conn


def entry_row(entry_id=1, public_id="furniture-lamp", **overrides):
    row = {
        "entry_id": entry_id,
        "public_id": public_id,
        "slug": public_id,
        "name": "Lamp",
        "category_id": 1,
        "storage_key": f"models/items/furniture/{public_id}.glb",
        "checksum": "abc",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row
