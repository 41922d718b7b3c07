# asset_catalog/services/import_service.py
import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import aiofiles
import magic
from pydantic import BaseModel, Field

from ..config import Config
from ..errors import CatalogError, describe_error
from ..models.entry import AccessPolicy
from ..models.taxonomy import Taxonomy
from .catalog_service import CatalogService

MODEL_MIME_TYPES = {
    '.glb': 'model/gltf-binary',
    '.gltf': 'model/gltf+json',
    '.fbx': 'application/octet-stream',
    '.obj': 'model/obj',
}

# libmagic answers for formats it cannot identify
GENERIC_MIME_TYPES = {'application/octet-stream', 'text/plain', 'application/json'}


def detect_mime_type(data: bytes, file_name: str) -> str:
    """Sniff the MIME type, falling back to the extension table"""
    detected = magic.from_buffer(data[:2048], mime=True)
    if detected and detected not in GENERIC_MIME_TYPES:
        return detected
    return MODEL_MIME_TYPES.get(Path(file_name).suffix.lower(), 'application/octet-stream')


class ImportReport(BaseModel):
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class ImportService:
    """Bulk-ingests a directory tree; sub-directories become categories"""

    def __init__(self, catalog: CatalogService, concurrency: Optional[int] = None):
        self.catalog = catalog
        self.concurrency = max(1, concurrency or Config.IMPORT_CONCURRENCY)
        self.logger = logging.getLogger(__name__)

    def discover(self, root: Path, extensions: Iterable[str] = (Config.MODEL_EXTENSION,)
                 ) -> List[Tuple[Path, List[str]]]:
        """Model files under root paired with their directory segments"""
        wanted = {ext.lower() for ext in extensions}
        found = []
        for path in sorted(root.rglob('*')):
            if not path.is_file() or path.suffix.lower() not in wanted:
                continue
            segments = list(path.relative_to(root).parent.parts)
            if not segments:
                self.logger.warning(f"Skipping {path}: files need at least one category directory")
                continue
            found.append((path, segments))
        return found

    async def import_directory(self, root: Path, taxonomy: Taxonomy = Taxonomy.ITEM,
                               uploaded_by: Optional[str] = None,
                               access_policy: AccessPolicy = AccessPolicy.DEVELOPERS_ONLY,
                               is_premium: bool = False,
                               extensions: Iterable[str] = (Config.MODEL_EXTENSION,),
                               **ingest_options: Any) -> ImportReport:
        """Ingest every model file below ``root``; one bad file does not stop the rest"""
        root = Path(root)
        if not root.is_dir():
            raise NotADirectoryError(str(root))

        files = self.discover(root, extensions)
        self.logger.info(f"Importing {len(files)} files from {root} into {taxonomy.value}")

        report = ImportReport()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def import_one(path: Path, segments: List[str]):
            async with semaphore:
                try:
                    async with aiofiles.open(path, 'rb') as f:
                        data = await f.read()
                    result = await self.catalog.ingest(
                        name=path.stem,
                        data=data,
                        file_name=path.name,
                        mime_type=detect_mime_type(data, path.name),
                        hierarchy_segments=segments,
                        taxonomy=taxonomy,
                        uploaded_by=uploaded_by,
                        access_policy=access_policy,
                        is_premium=is_premium,
                        **ingest_options,
                    )
                except (CatalogError, OSError) as e:
                    report.failed += 1
                    report.errors.append(f"{path.relative_to(root)}: {e}")
                    self.logger.error(f"Failed to import {path}: {e}")
                    return
                except Exception as e:
                    report.failed += 1
                    report.errors.append(f"{path.relative_to(root)}: {describe_error(e)}")
                    self.logger.error(f"Unexpected error importing {path}: {e}", exc_info=True)
                    return

                if result.created:
                    report.imported += 1
                else:
                    report.skipped += 1

        await asyncio.gather(*(import_one(path, segments) for path, segments in files))

        self.logger.info(
            f"Import finished: {report.imported} imported, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report
