# asset_catalog/models/entry.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from .base import TimeStampedModel
from .taxonomy import Taxonomy
from .upload import UploadResult

class AccessPolicy(str, Enum):
    PUBLIC = "PUBLIC"
    PROJECT_ONLY = "PROJECT_ONLY"
    DEVELOPERS_ONLY = "DEVELOPERS_ONLY"

class EntryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"

class CatalogEntry(TimeStampedModel):
    """A stored 3D asset in one of the taxonomies"""
    entry_id: int
    taxonomy: Taxonomy = Taxonomy.ITEM
    public_id: str
    slug: str
    name: str
    description: Optional[str] = None
    category_id: int
    storage_key: str
    storage_url: Optional[str] = None
    checksum: str
    file_size: int = 0
    file_type: Optional[str] = None
    mime_type: Optional[str] = None
    access_policy: AccessPolicy = AccessPolicy.DEVELOPERS_ONLY
    is_premium: bool = False
    # Only consulted for the avatar taxonomy
    is_free: bool = False
    status: EntryStatus = EntryStatus.ACTIVE
    owner_project_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.ACTIVE and self.deleted_at is None

    @property
    def accessible_without_grant(self) -> bool:
        """Free/premium check, with is_free overriding for avatar parts"""
        if self.taxonomy is Taxonomy.AVATAR and self.is_free:
            return True
        return not self.is_premium

class IngestResult(BaseModel):
    """Outcome of one ingestion call"""
    entry: CatalogEntry
    upload: UploadResult
    created: bool = True
