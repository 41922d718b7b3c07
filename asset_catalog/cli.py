# asset_catalog/cli.py
import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from .catalog import AssetCatalog
from .errors import CatalogError
from .models.access import EntryFilters
from .models.entry import AccessPolicy
from .models.taxonomy import Taxonomy
from .services.import_service import detect_mime_type
from .utils.formatters import format_datetime, format_size

app = typer.Typer(
    name="asset-catalog",
    help="Ingest 3D assets and resolve access to catalog entries.",
    no_args_is_help=True
)


def _run(coro_factory):
    """Run one command against a connected catalog, reporting catalog errors"""
    async def runner():
        async with AssetCatalog() as catalog:
            return await coro_factory(catalog)

    try:
        return asyncio.run(runner())
    except CatalogError as e:
        typer.echo(json.dumps(e.to_dict()), err=True)
        raise typer.Exit(code=1)


@app.command("ingest")
def ingest(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Model file to ingest"),
    category: List[str] = typer.Option(..., "--category", "-c", help="Category segment, repeat for depth"),
    name: Optional[str] = typer.Option(None, help="Entry name (defaults to the file stem)"),
    taxonomy: Taxonomy = typer.Option(Taxonomy.ITEM, case_sensitive=False),
    policy: AccessPolicy = typer.Option(AccessPolicy.DEVELOPERS_ONLY, case_sensitive=False),
    premium: bool = typer.Option(False, "--premium"),
    project: Optional[str] = typer.Option(None, help="Owner project id"),
    uploaded_by: Optional[str] = typer.Option(None, "--by"),
):
    """Ingest one model file."""
    data = file.read_bytes()
    mime_type = detect_mime_type(data, file.name)

    async def command(catalog: AssetCatalog):
        return await catalog.entries.ingest(
            name=name or file.stem,
            data=data,
            file_name=file.name,
            mime_type=mime_type,
            hierarchy_segments=category,
            owner_project_id=project,
            access_policy=policy,
            is_premium=premium,
            taxonomy=taxonomy,
            uploaded_by=uploaded_by,
        )

    result = _run(command)
    state = "created" if result.created else "already present"
    typer.echo(f"{result.entry.public_id} ({state})")
    typer.echo(f"  key:  {result.upload.key}{' [upload skipped]' if result.upload.was_skipped else ''}")
    typer.echo(f"  size: {format_size(result.upload.size_bytes)}  md5: {result.entry.checksum}")


@app.command("import-dir")
def import_dir(
    directory: Path = typer.Argument(..., exists=True, file_okay=False),
    taxonomy: Taxonomy = typer.Option(Taxonomy.ITEM, case_sensitive=False),
    policy: AccessPolicy = typer.Option(AccessPolicy.DEVELOPERS_ONLY, case_sensitive=False),
    premium: bool = typer.Option(False, "--premium"),
    uploaded_by: Optional[str] = typer.Option(None, "--by"),
):
    """Ingest every model file below a directory."""
    report = _run(lambda catalog: catalog.importer.import_directory(
        directory, taxonomy=taxonomy, uploaded_by=uploaded_by,
        access_policy=policy, is_premium=premium,
    ))
    typer.echo(f"imported: {report.imported}  skipped: {report.skipped}  failed: {report.failed}")
    for error in report.errors:
        typer.echo(f"  {error}", err=True)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("check")
def check(
    developer: str = typer.Argument(...),
    public_id: str = typer.Argument(...),
    project: Optional[str] = typer.Option(None),
):
    """Show the access decision for a developer and an entry."""
    decision = _run(lambda catalog: catalog.access.decide(developer, public_id, project))
    typer.echo(json.dumps(decision.model_dump(mode="json")))
    if not decision.has_access:
        raise typer.Exit(code=2)


@app.command("grant")
def grant(
    developer: str = typer.Argument(...),
    public_ids: List[str] = typer.Argument(...),
    expires: Optional[datetime] = typer.Option(None, help="Expiry timestamp (ISO 8601)"),
    paid: bool = typer.Option(False, "--paid"),
    reason: str = typer.Option("Manual grant"),
    granted_by: Optional[str] = typer.Option(None, "--by"),
):
    """Grant premium entries to a developer."""
    result = _run(lambda catalog: catalog.permissions.bulk_grant(
        developer, public_ids, is_paid=paid, expires_at=expires,
        granted_by=granted_by, reason=reason,
    ))
    typer.echo(f"granted: {result.success}  failed: {result.failed}  expires: {format_datetime(expires)}")
    for error in result.errors:
        typer.echo(f"  {error}", err=True)


@app.command("revoke")
def revoke(developer: str = typer.Argument(...), public_id: str = typer.Argument(...)):
    """Revoke a developer's grant."""
    revoked = _run(lambda catalog: catalog.permissions.revoke(developer, public_id))
    typer.echo("revoked" if revoked else "no grant found")


@app.command("list")
def list_entries(
    developer: str = typer.Argument(...),
    project: Optional[str] = typer.Option(None),
    taxonomy: Taxonomy = typer.Option(Taxonomy.ITEM, case_sensitive=False),
    category_id: Optional[int] = typer.Option(None),
    search: Optional[str] = typer.Option(None),
    page: int = typer.Option(1, min=1),
    page_size: Optional[int] = typer.Option(None, min=1),
):
    """List entries a developer may retrieve."""
    filters = EntryFilters(category_id=category_id, search=search)
    result = _run(lambda catalog: catalog.access.list_accessible(
        developer, project, filters, page, page_size, taxonomy,
    ))
    for entry in result.entries:
        flag = "premium" if not entry.accessible_without_grant else "free"
        typer.echo(f"{entry.public_id:<60} {entry.access_policy.value:<16} {flag}")
    typer.echo(f"page {result.page}/{max(result.pages, 1)} ({result.total} entries)")
