# asset_catalog/services/catalog_service.py
import hashlib
import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Sequence

import asyncpg

from ..config import Config
from ..errors import (
    DATABASE_ERRORS,
    CatalogWriteFailed,
    Conflict,
    InvalidInput,
    NotFound,
    StorageUnavailable,
    database_errors,
)
from ..models.entry import AccessPolicy, CatalogEntry, EntryStatus, IngestResult
from ..models.taxonomy import Taxonomy
from ..models.upload import UploadOptions
from ..utils.formatters import normalize_name, utcnow
from .category_service import CategoryService
from .identifier_service import IdentifierService
from .upload_service import UploadService

UPDATABLE_FIELDS = {
    'name', 'description', 'access_policy', 'is_premium', 'is_free',
    'owner_project_id', 'metadata',
}


def compute_checksum(data: bytes) -> str:
    """Content hash stored with the entry and attached to the object"""
    return hashlib.md5(data).hexdigest()


class CatalogService:
    """Writes catalog entries and serves lookups for both taxonomies"""

    def __init__(self, db, categories: CategoryService, identifiers: IdentifierService,
                 uploads: UploadService, identifier_retries: Optional[int] = None,
                 max_file_size: Optional[int] = None):
        self.db = db
        self.categories = categories
        self.identifiers = identifiers
        self.uploads = uploads
        self.identifier_retries = (
            identifier_retries if identifier_retries is not None else Config.IDENTIFIER_RETRIES
        )
        self.max_file_size = max_file_size or Config.MAX_FILE_SIZE
        self.logger = logging.getLogger(__name__)

    async def ingest(self, name: str, data: bytes, file_name: str, mime_type: str,
                     hierarchy_segments: Sequence[str],
                     owner_project_id: Optional[str] = None,
                     access_policy: AccessPolicy = AccessPolicy.DEVELOPERS_ONLY,
                     is_premium: bool = False,
                     taxonomy: Taxonomy = Taxonomy.ITEM,
                     uploaded_by: Optional[str] = None,
                     description: Optional[str] = None,
                     is_free: Optional[bool] = None,
                     metadata: Optional[Dict[str, Any]] = None) -> IngestResult:
        """Store an asset and record it in the catalog.

        Re-ingesting the same bytes under the same category and name returns
        the existing entry. The object upload and the catalog insert are not
        one transaction: if the insert fails, the uploaded object stays behind
        for the reconciliation sweep.
        """
        if not normalize_name(name):
            raise InvalidInput("Entry name is required", taxonomy=taxonomy.value)
        if not data:
            raise InvalidInput("Asset content is empty", name=name)
        if len(data) > self.max_file_size:
            raise InvalidInput("Asset exceeds the maximum file size",
                               name=name, size=len(data))

        category = await self.categories.resolve(hierarchy_segments, taxonomy)
        checksum = compute_checksum(data)
        upload_options = UploadOptions(
            content_type=mime_type,
            metadata={
                'category': category.path,
                'checksum': checksum,
                'original_name': file_name,
                'uploaded_by': uploaded_by or 'system',
            },
            max_retries=Config.UPLOAD_MAX_RETRIES,
        )

        existing = await self._find_same_content(taxonomy, category.category_id, name, checksum)
        if existing is not None:
            upload = await self.uploads.upload(data, existing.storage_key, upload_options)
            self.logger.info(f"Entry {existing.public_id} already ingested, reusing it")
            return IngestResult(entry=existing, upload=upload, created=False)

        if is_free is None:
            is_free = not is_premium
        file_type = PurePosixPath(file_name or '').suffix.lower() or Config.MODEL_EXTENSION

        attempts = max(0, self.identifier_retries) + 1
        for attempt in range(1, attempts + 1):
            public_id = await self.identifiers.allocate_public_id(category.path, name, taxonomy)
            slug = await self.identifiers.allocate_slug(name, taxonomy)
            key = self.storage_key(taxonomy, category.path, public_id)

            upload = await self.uploads.upload(data, key, upload_options)
            if upload.was_skipped:
                self.logger.info(f"Upload skipped because {key} already exists")

            try:
                entry = await self._insert_entry(taxonomy, {
                    'public_id': public_id,
                    'slug': slug,
                    'name': name,
                    'description': description,
                    'category_id': category.category_id,
                    'storage_key': upload.key,
                    'storage_url': upload.public_url,
                    'checksum': checksum,
                    'file_size': upload.size_bytes,
                    'file_type': file_type,
                    'mime_type': mime_type,
                    'access_policy': AccessPolicy(access_policy).value,
                    'is_premium': is_premium,
                    'is_free': is_free,
                    'owner_project_id': owner_project_id,
                    'uploaded_by': uploaded_by,
                    'metadata': metadata or {},
                })
            except Conflict as e:
                if attempt < attempts:
                    self.logger.warning(
                        f"Identifier {public_id} / {slug} taken concurrently, reallocating"
                    )
                    continue
                raise CatalogWriteFailed("Could not allocate a unique identifier",
                                         taxonomy=taxonomy.value, public_id=public_id,
                                         key=upload.key) from e
            except DATABASE_ERRORS as e:
                self.logger.error(f"Catalog insert failed for {public_id}, object left at {upload.key}: {e}")
                raise CatalogWriteFailed("Catalog entry could not be persisted",
                                         taxonomy=taxonomy.value, public_id=public_id,
                                         key=upload.key) from e

            self.logger.info(
                f"Ingested {taxonomy.value} entry {entry.public_id} "
                f"({upload.size_bytes} bytes, category '{category.path}')"
            )
            return IngestResult(entry=entry, upload=upload, created=True)

    @staticmethod
    def storage_key(taxonomy: Taxonomy, category_path: str, public_id: str) -> str:
        """models/<taxonomy>/<hierarchy-path>/<name>.<ext>

        The file name is the public id without its hierarchy prefix, so a
        suffixed id gets its own object.
        """
        prefix = category_path.replace('/', '-') + '-'
        file_stem = public_id[len(prefix):] if public_id.startswith(prefix) else public_id
        return f"{taxonomy.key_prefix}/{category_path}/{file_stem}{Config.MODEL_EXTENSION}"

    async def get_entry(self, public_id: str,
                        taxonomy: Taxonomy = Taxonomy.ITEM) -> Optional[CatalogEntry]:
        """Non-deleted entry by public id"""
        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, public_id=public_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT * FROM {taxonomy.entry_table}
                    WHERE public_id = $1 AND deleted_at IS NULL
                """, public_id)
        return self._to_entry(row, taxonomy) if row else None

    async def get_entry_by_id(self, entry_id: int,
                              taxonomy: Taxonomy = Taxonomy.ITEM) -> Optional[CatalogEntry]:
        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, entry_id=entry_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT * FROM {taxonomy.entry_table}
                    WHERE entry_id = $1 AND deleted_at IS NULL
                """, entry_id)
        return self._to_entry(row, taxonomy) if row else None

    async def find_entry(self, public_id: str) -> Optional[CatalogEntry]:
        """Look the id up in items first, then avatar parts"""
        for taxonomy in (Taxonomy.ITEM, Taxonomy.AVATAR):
            entry = await self.get_entry(public_id, taxonomy)
            if entry is not None:
                return entry
        return None

    async def update_entry(self, public_id: str, update_data: Dict[str, Any],
                           taxonomy: Taxonomy = Taxonomy.ITEM) -> CatalogEntry:
        """Update entry metadata; the stored object is never touched"""
        unknown = set(update_data) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInput(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        entry = await self.get_entry(public_id, taxonomy)
        if entry is None:
            raise NotFound("Entry not found", public_id=public_id, taxonomy=taxonomy.value)

        values = dict(update_data)
        if 'name' in values and values['name'] != entry.name:
            if not normalize_name(values['name']):
                raise InvalidInput("Entry name is required", public_id=public_id)
            values['slug'] = await self.identifiers.allocate_slug(
                values['name'], taxonomy, exclude_entry_id=entry.entry_id
            )
        if 'access_policy' in values:
            values['access_policy'] = AccessPolicy(values['access_policy']).value
        if not values:
            return entry

        query_parts = []
        params = []
        param_count = 1

        for key, value in values.items():
            query_parts.append(f"{key} = ${param_count}")
            params.append(value)
            param_count += 1

        query_parts.append(f"updated_at = ${param_count}")
        params.append(utcnow())
        param_count += 1
        params.append(entry.entry_id)

        with database_errors(CatalogWriteFailed, "Catalog entry could not be updated",
                             taxonomy=taxonomy.value, public_id=public_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    UPDATE {taxonomy.entry_table}
                    SET {', '.join(query_parts)}
                    WHERE entry_id = ${param_count}
                    RETURNING *
                """, *params)

        self.logger.info(f"Updated {taxonomy.value} entry {public_id}: {sorted(update_data)}")
        return self._to_entry(row, taxonomy)

    async def archive_entry(self, public_id: str, taxonomy: Taxonomy = Taxonomy.ITEM,
                            archived_by: Optional[str] = None) -> bool:
        """Soft delete: the row and the object stay, resolution ignores it"""
        now = utcnow()
        with database_errors(CatalogWriteFailed, "Catalog entry could not be archived",
                             taxonomy=taxonomy.value, public_id=public_id):
            async with self.db.pool.acquire() as conn:
                result = await conn.execute(f"""
                    UPDATE {taxonomy.entry_table}
                    SET status = $2, deleted_at = $3, updated_at = $3
                    WHERE public_id = $1 AND deleted_at IS NULL
                """, public_id, EntryStatus.ARCHIVED.value, now)

        archived = result == "UPDATE 1"
        if archived:
            self.logger.info(f"Archived {taxonomy.value} entry {public_id} (by {archived_by or 'system'})")
        return archived

    async def _find_same_content(self, taxonomy: Taxonomy, category_id: int, name: str,
                                 checksum: str) -> Optional[CatalogEntry]:
        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, name=name):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT * FROM {taxonomy.entry_table}
                    WHERE category_id = $1 AND name = $2 AND checksum = $3
                        AND deleted_at IS NULL
                    ORDER BY entry_id
                    LIMIT 1
                """, category_id, name, checksum)
        return self._to_entry(row, taxonomy) if row else None

    async def _insert_entry(self, taxonomy: Taxonomy, values: Dict[str, Any]) -> CatalogEntry:
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        try:
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    INSERT INTO {taxonomy.entry_table} ({', '.join(columns)})
                    VALUES ({placeholders})
                    RETURNING *
                """, *values.values())
        except asyncpg.UniqueViolationError as e:
            raise Conflict("Identifier already taken", taxonomy=taxonomy.value,
                           public_id=values.get('public_id'), slug=values.get('slug')) from e
        return self._to_entry(row, taxonomy)

    @staticmethod
    def _to_entry(row, taxonomy: Taxonomy) -> CatalogEntry:
        return CatalogEntry(**dict(row), taxonomy=taxonomy)
