# asset_catalog/models/permission.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field
from .taxonomy import Taxonomy

class PermissionGrant(BaseModel):
    """Time-bounded access of one developer to one entry"""
    grant_id: int
    taxonomy: Taxonomy = Taxonomy.ITEM
    developer_id: str
    entry_id: int
    is_paid: bool = False
    paid_amount: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    granted_by: Optional[str] = None
    reason: Optional[str] = None
    granted_at: datetime
    updated_at: Optional[datetime] = None

class BulkGrantResult(BaseModel):
    success: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)

class PermissionSummary(BaseModel):
    total_entries: int = 0
    free_entries: int = 0
    premium_entries: int = 0
    granted_permissions: int = 0
    expired_permissions: int = 0

    @property
    def accessible_entries(self) -> int:
        return self.free_entries + self.granted_permissions
