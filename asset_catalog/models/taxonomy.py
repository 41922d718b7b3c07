# asset_catalog/models/taxonomy.py
from enum import Enum


class Taxonomy(str, Enum):
    """The two independent catalogs sharing one access surface.

    Each taxonomy owns its own category, entry and grant tables with identical
    shapes; the value doubles as the object-store key prefix segment.
    """
    ITEM = "items"
    AVATAR = "avatar"

    @property
    def category_table(self) -> str:
        return "item_categories" if self is Taxonomy.ITEM else "avatar_categories"

    @property
    def entry_table(self) -> str:
        return "items" if self is Taxonomy.ITEM else "avatar_parts"

    @property
    def permission_table(self) -> str:
        return "item_permissions" if self is Taxonomy.ITEM else "avatar_permissions"

    @property
    def free_clause(self) -> str:
        """SQL predicate (alias ``e``) for entries reachable without a grant."""
        if self is Taxonomy.AVATAR:
            return "(e.is_free OR NOT e.is_premium)"
        return "NOT e.is_premium"

    @property
    def key_prefix(self) -> str:
        return f"models/{self.value}"
