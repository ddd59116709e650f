from typing import Any, Dict, List

from pydantic import BaseModel, Field, ConfigDict

from westock.models.bundle import Bundle
from westock.models.inventory_item import InventoryItem


class AppDocument(BaseModel):
    """
    Root object holding every item and bundle.

    This is the unit of local persistence, of remote mirroring and of
    backup files. Both lists are kept most-recent-first.
    """

    items: List[InventoryItem] = Field(default_factory=list)
    bundles: List[Bundle] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def empty(cls) -> "AppDocument":
        return cls(items=[], bundles=[])

    def is_empty(self) -> bool:
        return not self.items and not self.bundles

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using the stored field names (imageUrl, itemIds, ...)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def find_item(self, item_id: str):
        return next((i for i in self.items if i.id == item_id), None)

    def find_bundle(self, bundle_id: str):
        return next((b for b in self.bundles if b.id == bundle_id), None)
