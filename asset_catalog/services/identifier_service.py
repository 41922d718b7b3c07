# asset_catalog/services/identifier_service.py
import logging
from typing import Optional

from ..errors import InvalidInput, StorageUnavailable, database_errors
from ..models.taxonomy import Taxonomy
from ..utils.formatters import normalize_name, slugify


class IdentifierService:
    """Allocates public ids and slugs that are free within a taxonomy"""

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def base_public_id(hierarchy_path: str, name: str) -> str:
        """'furniture/chairs' + 'Red Chair' -> 'furniture-chairs-red_chair'"""
        processed = normalize_name(name)
        if not processed:
            raise InvalidInput("Name is empty after normalization", name=name)
        segments = [normalize_name(s) for s in (hierarchy_path or "").split("/")]
        prefix = "-".join(s for s in segments if s)
        return f"{prefix}-{processed}" if prefix else processed

    async def allocate_public_id(self, hierarchy_path: str, name: str,
                                 taxonomy: Taxonomy = Taxonomy.ITEM) -> str:
        """First free id among base, base_1, base_2, ..."""
        base = self.base_public_id(hierarchy_path, name)
        candidate = base
        counter = 0

        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, public_id=base):
            async with self.db.pool.acquire() as conn:
                while await conn.fetchval(f"""
                    SELECT 1 FROM {taxonomy.entry_table}
                    WHERE public_id = $1
                """, candidate):
                    counter += 1
                    candidate = f"{base}_{counter}"

        if counter:
            self.logger.debug(f"Public id '{base}' taken, allocated '{candidate}'")
        return candidate

    async def allocate_slug(self, name: str, taxonomy: Taxonomy = Taxonomy.ITEM,
                            exclude_entry_id: Optional[int] = None) -> str:
        """First free slug among slug, slug-1, slug-2, ...

        The entry being renamed is excluded so keeping its own slug is not a
        collision.
        """
        base = slugify(name)
        if not base:
            raise InvalidInput("Name is empty after normalization", name=name)
        candidate = base
        counter = 0

        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, slug=base):
            async with self.db.pool.acquire() as conn:
                while await conn.fetchval(f"""
                    SELECT 1 FROM {taxonomy.entry_table}
                    WHERE slug = $1 AND ($2::int IS NULL OR entry_id <> $2)
                """, candidate, exclude_entry_id):
                    counter += 1
                    candidate = f"{base}-{counter}"

        return candidate
