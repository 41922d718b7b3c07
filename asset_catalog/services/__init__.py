"""Catalog engine services"""
from .category_service import CategoryService
from .identifier_service import IdentifierService
from .storage_service import ObjectStorageService
from .upload_service import UploadService
from .catalog_service import CatalogService
from .permission_service import PermissionService
from .access_service import AccessService
from .import_service import ImportService

__all__ = [
    'CategoryService',
    'IdentifierService',
    'ObjectStorageService',
    'UploadService',
    'CatalogService',
    'PermissionService',
    'AccessService',
    'ImportService',
]
