# asset_catalog/models/access.py
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from .entry import CatalogEntry
from .taxonomy import Taxonomy

class AccessReason(str, Enum):
    FREE = "free"
    PERMISSION = "permission"
    PROJECT_OWNED = "project-owned"
    PUBLIC = "public"
    DENIED = "denied"

class AccessDecision(BaseModel):
    has_access: bool
    reason: AccessReason
    taxonomy: Optional[Taxonomy] = None
    entry_id: Optional[int] = None

    @classmethod
    def denied(cls, entry: Optional[CatalogEntry] = None) -> "AccessDecision":
        if entry is None:
            return cls(has_access=False, reason=AccessReason.DENIED)
        return cls(has_access=False, reason=AccessReason.DENIED,
                   taxonomy=entry.taxonomy, entry_id=entry.entry_id)

    @classmethod
    def granted(cls, reason: AccessReason, entry: CatalogEntry) -> "AccessDecision":
        return cls(has_access=True, reason=reason,
                   taxonomy=entry.taxonomy, entry_id=entry.entry_id)

class EntryFilters(BaseModel):
    category_id: Optional[int] = None
    search: Optional[str] = None
    file_type: Optional[str] = None

class AccessiblePage(BaseModel):
    entries: List[CatalogEntry] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
