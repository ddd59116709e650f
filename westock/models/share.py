from typing import List

from pydantic import BaseModel, Field, ConfigDict

from westock.models.bundle import Bundle
from westock.models.inventory_item import InventoryItem, now_ms

SHARE_RECORD_TYPE = "westock_transfer"


class ShareRecord(BaseModel):
    """
    Remote copy of one bundle, addressed by a share token.

    The referenced items are stored separately, one entry per item,
    partitioned by this record's id.
    """

    id: str
    type: str = SHARE_RECORD_TYPE
    bundle: Bundle
    item_count: int = Field(default=0, ge=0, alias="itemCount")
    created_at: int = Field(default_factory=now_ms, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ShareItemEntry(BaseModel):
    """
    One item written under a share record.
    """

    id: str
    share_id: str = Field(alias="shareId")  # partition key
    item: InventoryItem
    degraded: bool = False  # media was stripped to fit the document size limit

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ShareExportResponse(BaseModel):
    token: str


class ShareImportRequest(BaseModel):
    token: str

    model_config = ConfigDict(extra="forbid")


class ShareImportResponse(BaseModel):
    imported: bool
    item_ids: List[str] = Field(default_factory=list, alias="itemIds")
    bundle_ids: List[str] = Field(default_factory=list, alias="bundleIds")

    model_config = ConfigDict(populate_by_name=True)
