from typing import List

from fastapi import APIRouter, Body, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field

from westock.exceptions import BundleNotFoundError
from westock.logging_config import get_child_logger
from westock.models.bundle import Bundle, BundleCreate, BundleUpdate
from westock.models.document import AppDocument
from westock.models.inventory_item import InventoryItem
from westock.repository import Repository
from westock.services import get_repository, raise_for_failed_save

logger = get_child_logger("routes.bundle")

router = APIRouter(prefix="/bundles", tags=["bundles"])


class BundleItemsResponse(BaseModel):
    """
    A bundle with its items resolved. Ids that no longer match an item are
    listed as missing rather than treated as an error.
    """

    bundle: Bundle
    items: List[InventoryItem]
    missing_item_ids: List[str] = Field(alias="missingItemIds")


@router.get("/", response_model=List[Bundle])
async def get_bundles(repository: Repository = Depends(get_repository)):
    return repository.list_bundles()


@router.post("/", response_model=Bundle, status_code=status.HTTP_201_CREATED)
async def add_new_bundle(
    bundle: BundleCreate = Body(..., description="Bundle to create"),
    repository: Repository = Depends(get_repository),
):
    new_bundle = bundle.to_bundle()
    if not repository.add_bundle(new_bundle):
        raise_for_failed_save(repository.store)
    logger.info("Bundle created", extra={"bundle_id": new_bundle.id})
    return new_bundle


@router.get("/{bundle_id}", response_model=Bundle)
async def get_bundle(
    bundle_id: str = Path(..., title="The ID of the bundle to retrieve"),
    repository: Repository = Depends(get_repository),
):
    bundle = repository.get_bundle(bundle_id)
    if bundle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Bundle with ID '{bundle_id}' not found",
        )
    return bundle


@router.get("/{bundle_id}/items", response_model=BundleItemsResponse)
async def get_bundle_items(
    bundle_id: str = Path(..., title="The ID of the bundle"),
    repository: Repository = Depends(get_repository),
):
    try:
        bundle, items, missing = repository.resolve_bundle_items(bundle_id)
    except BundleNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return BundleItemsResponse(bundle=bundle, items=items, missingItemIds=missing)


@router.patch("/{bundle_id}", response_model=Bundle)
async def update_existing_bundle(
    changes: BundleUpdate,
    bundle_id: str = Path(..., title="The ID of the bundle to update"),
    repository: Repository = Depends(get_repository),
):
    existing = repository.get_bundle(bundle_id)
    if existing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Bundle with ID '{bundle_id}' not found",
        )

    updated = changes.apply_to(existing)
    if not repository.update_bundle(updated):
        raise_for_failed_save(repository.store)
    return updated


@router.delete("/{bundle_id}", response_model=AppDocument)
async def delete_existing_bundle(
    bundle_id: str = Path(..., title="The ID of the bundle to delete"),
    repository: Repository = Depends(get_repository),
):
    return repository.delete_bundle(bundle_id)
