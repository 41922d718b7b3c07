# asset_catalog/catalog.py
import logging
from typing import Optional
from .config import Config
from .database.database import Database
from .services import (
    AccessService,
    CatalogService,
    CategoryService,
    IdentifierService,
    ImportService,
    ObjectStorageService,
    PermissionService,
    UploadService,
)

class AssetCatalog:
    def __init__(self, db: Optional[Database] = None,
                 storage: Optional[ObjectStorageService] = None):
        """Wire the services around one database pool and one S3 client"""
        self.db = db or Database()
        self.storage = storage or ObjectStorageService()
        self.logger = logging.getLogger(__name__)

        self.categories = CategoryService(self.db)
        self.identifiers = IdentifierService(self.db)
        self.uploads = UploadService(self.storage)
        self.entries = CatalogService(self.db, self.categories, self.identifiers, self.uploads)
        self.permissions = PermissionService(self.db, self.entries)
        self.access = AccessService(self.db, self.entries, self.permissions)
        self.importer = ImportService(self.entries)

    async def start(self):
        """Connect to the database and apply migrations"""
        Config.validate()
        await self.db.connect()
        self.logger.info(f"Catalog ready (bucket {self.storage.bucket})")

    async def close(self):
        await self.db.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
