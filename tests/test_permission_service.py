from datetime import datetime, timedelta, timezone
from decimal import Decimal

import asyncpg
import pytest

from asset_catalog.errors import CatalogWriteFailed, NotFound
from asset_catalog.models.taxonomy import Taxonomy
from asset_catalog.services.permission_service import PermissionService

from .helpers import add_entry, mock_database


@pytest.mark.asyncio
async def test_grant_creates_permission(catalog):
    entry = await add_entry(catalog, "Lamp", is_premium=True)

    grant = await catalog.permissions.grant("dev-1", entry.public_id, is_paid=True,
                                            paid_amount=Decimal("4.99"), granted_by="admin")

    assert grant.entry_id == entry.entry_id
    assert grant.taxonomy is Taxonomy.ITEM
    assert grant.is_paid and grant.paid_amount == Decimal("4.99")
    assert grant.expires_at is None
    assert grant.reason == "Manual grant"


@pytest.mark.asyncio
async def test_regrant_supersedes_previous(catalog, db):
    entry = await add_entry(catalog, "Lamp", is_premium=True)
    expires = datetime.now(timezone.utc) + timedelta(days=30)

    first = await catalog.permissions.grant("dev-1", entry.public_id)
    second = await catalog.permissions.grant("dev-1", entry.public_id, expires_at=expires)

    assert second.grant_id == first.grant_id
    assert second.expires_at == expires
    assert second.updated_at is not None
    assert len(db.tables["item_permissions"]) == 1


@pytest.mark.asyncio
async def test_grant_for_avatar_part_uses_avatar_table(catalog, db):
    entry = await add_entry(catalog, "Spiky", segments=["Hair"], taxonomy=Taxonomy.AVATAR,
                            is_premium=True, is_free=False)

    grant = await catalog.permissions.grant("dev-1", entry.public_id)

    assert grant.taxonomy is Taxonomy.AVATAR
    assert len(db.tables["avatar_permissions"]) == 1
    assert db.tables["item_permissions"] == []


@pytest.mark.asyncio
async def test_grant_unknown_entry(catalog):
    with pytest.raises(NotFound):
        await catalog.permissions.grant("dev-1", "missing")


@pytest.mark.asyncio
async def test_bulk_grant_counts_failures(catalog):
    lamp = await add_entry(catalog, "Lamp", is_premium=True)
    desk = await add_entry(catalog, "Desk", is_premium=True)

    result = await catalog.permissions.bulk_grant("dev-1", [lamp.public_id, "missing", desk.public_id])

    assert result.success == 2
    assert result.failed == 1
    assert result.errors == ["missing: Entry not found"]


@pytest.mark.asyncio
async def test_revoke(catalog):
    entry = await add_entry(catalog, "Lamp", is_premium=True)
    await catalog.permissions.grant("dev-1", entry.public_id)

    assert await catalog.permissions.revoke("dev-1", entry.public_id)
    assert not await catalog.permissions.revoke("dev-1", entry.public_id)
    assert await catalog.permissions.get_active_grant("dev-1", entry) is None


@pytest.mark.asyncio
async def test_expired_grant_is_not_active(catalog):
    entry = await add_entry(catalog, "Lamp", is_premium=True)
    await catalog.permissions.grant("dev-1", entry.public_id,
                                    expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))

    assert await catalog.permissions.get_active_grant("dev-1", entry) is None


@pytest.mark.asyncio
async def test_list_permissions_paginates_active_grants():
    db, conn = mock_database(fetchval=3)
    service = PermissionService(db, catalog=None)

    result = await service.list_permissions("dev-1", page=2, page_size=2)

    assert result["total"] == 3
    assert result["page"] == 2
    count_sql, developer, now = conn.fetchval.call_args.args
    assert "FROM item_permissions p" in count_sql
    assert "p.expires_at > $2" in count_sql
    assert developer == "dev-1"
    fetch_sql, *params = conn.fetch.call_args.args
    assert "LIMIT $3 OFFSET $4" in fetch_sql
    assert params[-2:] == [2, 2]


@pytest.mark.asyncio
async def test_summary_counts():
    db, conn = mock_database(fetchrow=[
        {"total_entries": 10, "free_entries": 6, "premium_entries": 4},
        {"granted": 3, "expired": 1},
    ])
    service = PermissionService(db, catalog=None)

    summary = await service.summary("dev-1", Taxonomy.AVATAR)

    assert summary.premium_entries == 4
    assert summary.accessible_entries == 9
    assert "(e.is_free OR NOT e.is_premium)" in conn.fetchrow.call_args_list[0].args[0]
    assert "FROM avatar_permissions" in conn.fetchrow.call_args_list[1].args[0]


@pytest.mark.asyncio
async def test_bulk_grant_counts_database_failures(catalog, db):
    lamp = await add_entry(catalog, "Lamp", is_premium=True)
    desk = await add_entry(catalog, "Desk", is_premium=True)
    db.fail_on("ON CONFLICT",
               asyncpg.exceptions.StringDataRightTruncationError("value too long"))

    result = await catalog.permissions.bulk_grant("dev-1", [lamp.public_id, desk.public_id])

    assert result.success == 1
    assert result.failed == 1
    assert result.errors == [f"{lamp.public_id}: Grant could not be stored"]
    assert len(db.tables["item_permissions"]) == 1


@pytest.mark.asyncio
async def test_revoke_failure_is_catalog_error(catalog, db):
    entry = await add_entry(catalog, "Lamp", is_premium=True)
    db.fail_on("DELETE FROM", ConnectionResetError("reset by peer"))

    with pytest.raises(CatalogWriteFailed):
        await catalog.permissions.revoke("dev-1", entry.public_id)
