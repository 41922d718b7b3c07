# asset_catalog/services/category_service.py
import logging
from typing import List, Optional, Sequence

import asyncpg

from ..errors import DATABASE_ERRORS, InvalidInput, StorageUnavailable, database_errors
from ..models.category import Category
from ..models.taxonomy import Taxonomy
from ..utils.formatters import clean_segments, normalize_name

CATEGORY_COLUMNS = "category_id, name, parent_id, path, level, created_at, updated_at"


class CategoryService:
    """Resolves category paths into (possibly new) category tree nodes"""

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def resolve(self, segments: Sequence[Optional[str]],
                      taxonomy: Taxonomy = Taxonomy.ITEM) -> Category:
        """Find or create every level of the path and return the deepest node.

        Concurrent callers sharing a prefix may race on the insert; the unique
        index on (name, parent) rejects the loser, which then reuses the row
        the winner created.
        """
        names = clean_segments(segments)
        if not names:
            raise InvalidInput("Category path must contain at least one segment",
                               taxonomy=taxonomy.value)

        parent: Optional[Category] = None
        accumulated: List[str] = []

        try:
            async with self.db.pool.acquire() as conn:
                for depth, name in enumerate(names, start=1):
                    accumulated.append(normalize_name(name))
                    parent_id = parent.category_id if parent else None

                    category = await self._find(conn, taxonomy, name, parent_id)
                    if category is None:
                        category = await self._create(
                            conn, taxonomy, name, parent_id, "/".join(accumulated), depth
                        )
                    parent = category
        except DATABASE_ERRORS as e:
            self.logger.error(f"Category resolution failed for {names}: {e}")
            raise StorageUnavailable("Category store unavailable",
                                     taxonomy=taxonomy.value,
                                     path="/".join(accumulated)) from e

        return parent

    async def get_category(self, category_id: int,
                           taxonomy: Taxonomy = Taxonomy.ITEM) -> Optional[Category]:
        """Fetch one category by id"""
        with database_errors(StorageUnavailable, "Category store unavailable",
                             taxonomy=taxonomy.value, category_id=category_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT {CATEGORY_COLUMNS}
                    FROM {taxonomy.category_table}
                    WHERE category_id = $1
                """, category_id)
        return Category(**dict(row)) if row else None

    async def _find(self, conn, taxonomy: Taxonomy, name: str,
                    parent_id: Optional[int]) -> Optional[Category]:
        row = await conn.fetchrow(f"""
            SELECT {CATEGORY_COLUMNS}
            FROM {taxonomy.category_table}
            WHERE name = $1 AND parent_id IS NOT DISTINCT FROM $2
        """, name, parent_id)
        return Category(**dict(row)) if row else None

    async def _create(self, conn, taxonomy: Taxonomy, name: str,
                      parent_id: Optional[int], path: str, level: int) -> Category:
        try:
            row = await conn.fetchrow(f"""
                INSERT INTO {taxonomy.category_table} (name, parent_id, path, level)
                VALUES ($1, $2, $3, $4)
                RETURNING {CATEGORY_COLUMNS}
            """, name, parent_id, path, level)
        except asyncpg.UniqueViolationError:
            # Lost the race: someone else created this level first
            self.logger.info(f"Category '{path}' created concurrently, reusing it")
            existing = await self._find(conn, taxonomy, name, parent_id)
            if existing is None:
                raise
            return existing

        self.logger.info(f"Created {taxonomy.value} category '{path}' (level {level})")
        return Category(**dict(row))
