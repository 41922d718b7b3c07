# asset_catalog/models/upload.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

class UploadOptions(BaseModel):
    """Options for one object-store upload"""
    content_type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    skip_if_exists: bool = True
    max_retries: int = 3

class UploadResult(BaseModel):
    key: str
    public_url: str
    size_bytes: int
    was_skipped: bool = False
