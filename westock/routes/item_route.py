from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from westock.classifier import analyze_item_image
from westock.logging_config import get_child_logger, tracer
from westock.models.document import AppDocument
from westock.models.inventory_item import (
    AnalyzeImageResponse,
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
)
from westock.repository import Repository
from westock.services import get_repository, raise_for_failed_save

# Create a child logger for this module
logger = get_child_logger("routes.item")

router = APIRouter(prefix="/items", tags=["items"])


@router.get("/", response_model=List[InventoryItem])
async def get_items(
    q: Optional[str] = Query(None, description="Match against name or category"),
    repository: Repository = Depends(get_repository),
):
    if q:
        return repository.search_items(q)
    return repository.list_items()


@router.post(
    "/",
    response_model=InventoryItem,
    status_code=status.HTTP_201_CREATED,
)
async def add_new_item(
    item: InventoryItemCreate = Body(..., description="Item to create"),
    repository: Repository = Depends(get_repository),
):
    with tracer.start_as_current_span("api_add_item") as span:
        new_item = item.to_item()
        span.set_attribute("item.id", new_item.id)

        if not repository.add_item(new_item):
            raise_for_failed_save(repository.store)
        logger.info("Item created", extra={"item_id": new_item.id})
        return new_item


@router.post("/classify", response_model=AnalyzeImageResponse)
async def classify_item_image(
    image: str = Body(..., embed=True, description="Base64 image data"),
    mime_type: str = Body("image/jpeg", embed=True, alias="mimeType"),
):
    return await analyze_item_image(image, mime_type)


@router.get("/{item_id}", response_model=InventoryItem)
async def get_item(
    item_id: str = Path(..., title="The ID of the item to retrieve"),
    repository: Repository = Depends(get_repository),
):
    return repository.require_item(item_id)


@router.patch("/{item_id}", response_model=InventoryItem)
async def update_existing_item(
    changes: InventoryItemUpdate,
    item_id: str = Path(..., title="The ID of the item to update"),
    repository: Repository = Depends(get_repository),
):
    updated = changes.apply_to(repository.require_item(item_id))
    if not repository.update_item(updated):
        raise_for_failed_save(repository.store)
    return updated


@router.delete("/{item_id}", response_model=AppDocument)
async def delete_existing_item(
    item_id: str = Path(..., title="The ID of the item to delete"),
    repository: Repository = Depends(get_repository),
):
    with tracer.start_as_current_span("api_delete_item") as span:
        span.set_attribute("item.id", item_id)
        return repository.delete_item(item_id)
