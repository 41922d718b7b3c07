# asset_catalog/models/category.py
from typing import Optional
from .base import TimeStampedModel

class Category(TimeStampedModel):
    """Node of a taxonomy's category tree"""
    category_id: int
    name: str
    parent_id: Optional[int] = None
    path: str
    level: int = 1
