from westock.models.bundle import Bundle, BundleCreate, BundleUpdate
from westock.models.document import AppDocument
from westock.models.identity import UserIdentity
from westock.models.inventory_item import (
    AnalyzeImageResponse,
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    Size,
    StockLevels,
    StockSummary,
    new_item_id,
    now_ms,
)
from westock.models.share import (
    SHARE_RECORD_TYPE,
    ShareExportResponse,
    ShareImportRequest,
    ShareImportResponse,
    ShareItemEntry,
    ShareRecord,
)

__all__ = [
    "AnalyzeImageResponse",
    "AppDocument",
    "Bundle",
    "BundleCreate",
    "BundleUpdate",
    "InventoryItem",
    "InventoryItemCreate",
    "InventoryItemUpdate",
    "SHARE_RECORD_TYPE",
    "ShareExportResponse",
    "ShareImportRequest",
    "ShareImportResponse",
    "ShareItemEntry",
    "ShareRecord",
    "Size",
    "StockLevels",
    "StockSummary",
    "UserIdentity",
    "new_item_id",
    "now_ms",
]
