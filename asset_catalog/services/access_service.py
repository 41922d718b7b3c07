# asset_catalog/services/access_service.py
import logging
from typing import Any, List, Optional

from ..config import Config
from ..errors import StorageUnavailable, database_errors
from ..models.access import AccessDecision, AccessiblePage, AccessReason, EntryFilters
from ..models.entry import AccessPolicy, CatalogEntry
from ..models.taxonomy import Taxonomy
from ..utils.formatters import utcnow
from .catalog_service import CatalogService
from .permission_service import PermissionService


class AccessService:
    """Decides whether a developer may retrieve a catalog entry.

    Items and avatar parts differ only in how "free" is computed; both are
    normalized through ``CatalogEntry.accessible_without_grant`` before the
    shared grant lookup, so callers get one taxonomy-agnostic answer.
    """

    def __init__(self, db, catalog: CatalogService, permissions: PermissionService):
        self.db = db
        self.catalog = catalog
        self.permissions = permissions
        self.logger = logging.getLogger(__name__)

    async def decide(self, developer_id: str, public_id: str,
                     project_id: Optional[str] = None) -> AccessDecision:
        """Access decision plus the reason behind it; denial is not an error"""
        entry = await self.catalog.find_entry(public_id)
        if entry is None or not entry.is_active:
            self.logger.debug(f"Entry {public_id} not found or inactive, denying {developer_id}")
            return AccessDecision.denied(entry)

        if entry.access_policy == AccessPolicy.PUBLIC:
            return AccessDecision.granted(AccessReason.PUBLIC, entry)

        if entry.access_policy == AccessPolicy.PROJECT_ONLY:
            if project_id is not None and entry.owner_project_id == project_id:
                return AccessDecision.granted(AccessReason.PROJECT_OWNED, entry)
            self.logger.info(
                f"Denied {developer_id} access to project entry {public_id} (project {project_id})"
            )
            return AccessDecision.denied(entry)

        if not await self._developers_only_allows(developer_id, entry):
            return AccessDecision.denied(entry)

        if entry.accessible_without_grant:
            return AccessDecision.granted(AccessReason.FREE, entry)

        grant = await self.permissions.get_active_grant(developer_id, entry)
        if grant is not None:
            return AccessDecision.granted(AccessReason.PERMISSION, entry)

        self.logger.info(f"Denied {developer_id} access to premium entry {public_id}")
        return AccessDecision.denied(entry)

    async def _developers_only_allows(self, developer_id: str, entry: CatalogEntry) -> bool:
        # Category-scoped permissions were retired: every developer passes.
        # TODO: consult category-level grants here if they are reintroduced.
        return True

    async def list_accessible(self, developer_id: str, project_id: Optional[str] = None,
                              filters: Optional[EntryFilters] = None,
                              page: int = 1, page_size: Optional[int] = None,
                              taxonomy: Taxonomy = Taxonomy.ITEM) -> AccessiblePage:
        """Page of entries the developer may retrieve, filtered in SQL"""
        filters = filters or EntryFilters()
        page = max(1, page)
        page_size = page_size or Config.DEFAULT_PAGE_SIZE

        params: List[Any] = [developer_id, project_id, utcnow()]
        conditions = [
            "e.deleted_at IS NULL",
            "e.status = 'ACTIVE'",
            f"""(
                e.access_policy = 'PUBLIC'
                OR (e.access_policy = 'PROJECT_ONLY' AND $2::text IS NOT NULL
                    AND e.owner_project_id = $2)
                OR (e.access_policy = 'DEVELOPERS_ONLY' AND (
                    {taxonomy.free_clause}
                    OR EXISTS (
                        SELECT 1 FROM {taxonomy.permission_table} p
                        WHERE p.entry_id = e.entry_id AND p.developer_id = $1
                            AND (p.expires_at IS NULL OR p.expires_at > $3)
                    )
                ))
            )""",
        ]

        if filters.category_id is not None:
            params.append(filters.category_id)
            conditions.append(f"e.category_id = ${len(params)}")
        if filters.search:
            params.append(f"%{filters.search}%")
            conditions.append(
                f"(e.name ILIKE ${len(params)} OR e.description ILIKE ${len(params)})"
            )
        if filters.file_type:
            params.append(filters.file_type.lower())
            conditions.append(f"e.file_type = ${len(params)}")

        where = " AND ".join(conditions)

        with database_errors(StorageUnavailable, "Catalog store unavailable",
                             taxonomy=taxonomy.value, developer_id=developer_id):
            async with self.db.pool.acquire() as conn:
                total = await conn.fetchval(f"""
                    SELECT COUNT(*) FROM {taxonomy.entry_table} e
                    WHERE {where}
                """, *params)
                rows = await conn.fetch(f"""
                    SELECT e.* FROM {taxonomy.entry_table} e
                    WHERE {where}
                    ORDER BY e.created_at DESC, e.entry_id DESC
                    LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """, *params, page_size, (page - 1) * page_size)

        return AccessiblePage(
            entries=[CatalogEntry(**dict(row), taxonomy=taxonomy) for row in rows],
            total=total or 0,
            page=page,
            page_size=page_size,
        )
