import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator


class Size(str, Enum):
    """
    Sizes an item can be stocked in. The set is fixed.
    """

    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    OTHER = "Other"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


_last_item_id = 0


def new_item_id() -> str:
    """
    Timestamp-derived identifier, strictly increasing within this process so
    two items created in the same millisecond still get distinct ids.
    """
    global _last_item_id
    candidate = now_ms()
    if candidate <= _last_item_id:
        candidate = _last_item_id + 1
    _last_item_id = candidate
    return str(candidate)


class StockLevels(BaseModel):
    """
    Count per size. Unset sizes are zero and counts are never negative.
    """

    XS: int = Field(default=0, ge=0)
    S: int = Field(default=0, ge=0)
    M: int = Field(default=0, ge=0)
    L: int = Field(default=0, ge=0)
    other: int = Field(default=0, ge=0, alias="Other")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def get(self, size: Size) -> int:
        return getattr(self, "other" if size is Size.OTHER else size.value)

    def total(self) -> int:
        return sum(self.get(size) for size in Size)


class InventoryItem(BaseModel):
    """
    An item as stored in the app document.
    """

    id: str  # caller assigned, unique within a document
    name: str
    category: str = ""  # free text
    image_url: Optional[str] = Field(default=None, alias="imageUrl")  # base64 data URL
    stock: StockLevels = Field(default_factory=StockLevels)
    location: Optional[str] = None
    note: Optional[str] = None
    created_at: int = Field(default_factory=now_ms, alias="createdAt")  # epoch ms

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InventoryItemCreate(BaseModel):
    """
    Fields a client provides to create an item. The id is generated when omitted.
    """

    id: Optional[str] = None
    name: str
    category: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    stock: StockLevels = Field(default_factory=StockLevels)
    location: Optional[str] = None
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def to_item(self) -> InventoryItem:
        data = self.model_dump(exclude={"id"})
        return InventoryItem(id=self.id or new_item_id(), **data)


class InventoryItemUpdate(BaseModel):
    """
    Fields a client can change on an existing item.
    """

    name: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    stock: Optional[StockLevels] = None
    location: Optional[str] = None
    note: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "InventoryItemUpdate":
        for field in ("name", "category", "stock"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def apply_to(self, item: InventoryItem) -> InventoryItem:
        """
        Merged item, validated as a whole.

        Raises:
            ValidationError: If the result is not a valid item
        """
        changes = self.model_dump(exclude_unset=True)
        return InventoryItem.model_validate({**item.model_dump(), **changes})


class AnalyzeImageResponse(BaseModel):
    """
    Name and category suggested for an item photo.
    """

    name: str
    category: str
    suggested_stock: Optional[int] = Field(default=None, alias="suggestedStock")

    model_config = ConfigDict(populate_by_name=True)


class StockSummary(BaseModel):
    """
    Stock totals over all items, or over the items of one bundle.
    """

    bundle_id: Optional[str] = Field(default=None, alias="bundleId")
    item_count: int = Field(alias="itemCount")
    total_stock: int = Field(alias="totalStock")
    by_size: StockLevels = Field(alias="bySize")

    model_config = ConfigDict(populate_by_name=True)
