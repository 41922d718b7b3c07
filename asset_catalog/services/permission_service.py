# asset_catalog/services/permission_service.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from ..config import Config
from ..errors import (
    CatalogError,
    CatalogWriteFailed,
    NotFound,
    StorageUnavailable,
    database_errors,
)
from ..models.entry import CatalogEntry
from ..models.permission import BulkGrantResult, PermissionGrant, PermissionSummary
from ..models.taxonomy import Taxonomy
from ..utils.formatters import format_datetime, utcnow
from .catalog_service import CatalogService


class PermissionService:
    """Grants, revokes and looks up premium access for developers"""

    def __init__(self, db, catalog: CatalogService):
        self.db = db
        self.catalog = catalog
        self.logger = logging.getLogger(__name__)

    async def grant(self, developer_id: str, public_id: str,
                    is_paid: bool = False,
                    paid_amount: Optional[Decimal] = None,
                    expires_at: Optional[datetime] = None,
                    granted_by: Optional[str] = None,
                    reason: str = "Manual grant") -> PermissionGrant:
        """Create or supersede the grant for (developer, entry)"""
        entry = await self._require_entry(public_id)
        now = utcnow()

        with database_errors(CatalogWriteFailed, "Grant could not be stored",
                             taxonomy=entry.taxonomy.value, public_id=public_id,
                             developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    INSERT INTO {entry.taxonomy.permission_table} (
                        developer_id, entry_id, is_paid, paid_amount,
                        expires_at, granted_by, reason, granted_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    ON CONFLICT (developer_id, entry_id)
                    DO UPDATE SET is_paid = EXCLUDED.is_paid,
                        paid_amount = EXCLUDED.paid_amount,
                        expires_at = EXCLUDED.expires_at,
                        granted_by = EXCLUDED.granted_by,
                        reason = EXCLUDED.reason,
                        updated_at = EXCLUDED.granted_at
                    RETURNING *
                """, developer_id, entry.entry_id, is_paid, paid_amount,
                    expires_at, granted_by, reason, now)

        self.logger.info(
            f"Granted {entry.taxonomy.value} entry {public_id} to developer {developer_id} "
            f"(expires {format_datetime(expires_at)})"
        )
        return PermissionGrant(**dict(row), taxonomy=entry.taxonomy)

    async def bulk_grant(self, developer_id: str, public_ids: Sequence[str],
                         **options: Any) -> BulkGrantResult:
        """Grant several entries; failures are counted, not raised"""
        options.setdefault("reason", "Bulk grant")
        result = BulkGrantResult()

        for public_id in public_ids:
            try:
                await self.grant(developer_id, public_id, **options)
                result.success += 1
            except CatalogError as e:
                result.failed += 1
                result.errors.append(f"{public_id}: {e.message}")

        self.logger.info(
            f"Bulk grant for developer {developer_id}: "
            f"{result.success} success, {result.failed} failed"
        )
        return result

    async def revoke(self, developer_id: str, public_id: str) -> bool:
        """Remove the grant; False when there was none"""
        entry = await self._require_entry(public_id)
        with database_errors(CatalogWriteFailed, "Grant could not be revoked",
                             taxonomy=entry.taxonomy.value, public_id=public_id,
                             developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                result = await conn.execute(f"""
                    DELETE FROM {entry.taxonomy.permission_table}
                    WHERE developer_id = $1 AND entry_id = $2
                """, developer_id, entry.entry_id)

        revoked = result == "DELETE 1"
        if revoked:
            self.logger.info(f"Revoked entry {public_id} from developer {developer_id}")
        else:
            self.logger.info(f"No grant of {public_id} for developer {developer_id} to revoke")
        return revoked

    async def get_active_grant(self, developer_id: str,
                               entry: CatalogEntry) -> Optional[PermissionGrant]:
        """Non-expired grant for (developer, entry), if any"""
        with database_errors(StorageUnavailable, "Grant store unavailable",
                             taxonomy=entry.taxonomy.value, public_id=entry.public_id,
                             developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow(f"""
                    SELECT * FROM {entry.taxonomy.permission_table}
                    WHERE developer_id = $1 AND entry_id = $2
                        AND (expires_at IS NULL OR expires_at > $3)
                """, developer_id, entry.entry_id, utcnow())
        return PermissionGrant(**dict(row), taxonomy=entry.taxonomy) if row else None

    async def list_permissions(self, developer_id: str,
                               taxonomy: Taxonomy = Taxonomy.ITEM,
                               active_only: bool = True,
                               page: int = 1,
                               page_size: Optional[int] = None) -> Dict[str, Any]:
        """Paginated grants of one developer, newest first"""
        page = max(1, page)
        page_size = page_size or Config.DEFAULT_PAGE_SIZE
        params: List[Any] = [developer_id]
        where = "p.developer_id = $1"
        if active_only:
            params.append(utcnow())
            where += " AND (p.expires_at IS NULL OR p.expires_at > $2)"

        with database_errors(StorageUnavailable, "Grant store unavailable",
                             taxonomy=taxonomy.value, developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                total = await conn.fetchval(f"""
                    SELECT COUNT(*) FROM {taxonomy.permission_table} p
                    WHERE {where}
                """, *params)
                rows = await conn.fetch(f"""
                    SELECT p.*, e.public_id, e.name AS entry_name
                    FROM {taxonomy.permission_table} p
                    JOIN {taxonomy.entry_table} e ON e.entry_id = p.entry_id
                    WHERE {where}
                    ORDER BY p.granted_at DESC
                    LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """, *params, page_size, (page - 1) * page_size)

        return {
            'permissions': [dict(row) for row in rows],
            'total': total or 0,
            'page': page,
            'page_size': page_size,
        }

    async def summary(self, developer_id: str,
                      taxonomy: Taxonomy = Taxonomy.ITEM) -> PermissionSummary:
        """Counts of entries and grants visible to one developer"""
        now = utcnow()
        with database_errors(StorageUnavailable, "Grant store unavailable",
                             taxonomy=taxonomy.value, developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                counts = await conn.fetchrow(f"""
                    SELECT COUNT(*) AS total_entries,
                        COUNT(*) FILTER (WHERE {taxonomy.free_clause}) AS free_entries,
                        COUNT(*) FILTER (WHERE NOT {taxonomy.free_clause}) AS premium_entries
                    FROM {taxonomy.entry_table} e
                    WHERE e.status = 'ACTIVE' AND e.deleted_at IS NULL
                """)
                grants = await conn.fetchrow(f"""
                    SELECT COUNT(*) FILTER (WHERE expires_at IS NULL OR expires_at > $2) AS granted,
                        COUNT(*) FILTER (WHERE expires_at <= $2) AS expired
                    FROM {taxonomy.permission_table}
                    WHERE developer_id = $1
                """, developer_id, now)

        return PermissionSummary(
            total_entries=counts['total_entries'],
            free_entries=counts['free_entries'],
            premium_entries=counts['premium_entries'],
            granted_permissions=grants['granted'],
            expired_permissions=grants['expired'],
        )

    async def _require_entry(self, public_id: str) -> CatalogEntry:
        entry = await self.catalog.find_entry(public_id)
        if entry is None:
            raise NotFound("Entry not found", public_id=public_id)
        return entry
