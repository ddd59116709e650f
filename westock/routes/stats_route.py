from typing import Optional

from fastapi import APIRouter, Depends, Query

from westock.logging_config import tracer
from westock.models.inventory_item import StockSummary
from westock.repository import Repository
from westock.services import get_repository

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StockSummary)
async def get_stock_summary(
    bundle_id: Optional[str] = Query(
        None, alias="bundleId", description="Only count the items of this bundle"
    ),
    repository: Repository = Depends(get_repository),
):
    """Dashboard totals. An unknown bundle id is a 404."""
    with tracer.start_as_current_span("api_stock_summary") as span:
        if bundle_id is not None:
            span.set_attribute("bundle.id", bundle_id)
        return repository.stock_summary(bundle_id)
