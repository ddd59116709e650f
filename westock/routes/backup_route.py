from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from westock.backup import backup_filename, export_backup, import_backup
from westock.local_store import LocalStore
from westock.services import get_services

router = APIRouter(tags=["backup"])


def get_store(request: Request) -> LocalStore:
    return get_services(request).store


class StorageUsage(BaseModel):
    usage: str
    quota_bytes: int = Field(alias="quotaBytes")


class PinRequest(BaseModel):
    pin: str = Field(..., min_length=1)


class PinCheckResponse(BaseModel):
    valid: bool


class PinStatus(BaseModel):
    enabled: bool


@router.get("/backup")
async def download_backup(store: LocalStore = Depends(get_store)):
    return Response(
        content=export_backup(store),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.post("/backup", status_code=status.HTTP_204_NO_CONTENT)
async def restore_backup(
    request: Request,
    store: LocalStore = Depends(get_store),
):
    """Replace all local data with the uploaded backup file."""
    text = (await request.body()).decode("utf-8", errors="replace")
    if not import_backup(store, text):
        if store.quota_exceeded:
            raise HTTPException(
                status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
                detail="Local storage is full.",
            )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is not a valid backup.",
        )


@router.get("/storage", response_model=StorageUsage)
async def get_storage_usage(store: LocalStore = Depends(get_store)):
    return StorageUsage(usage=store.storage_usage(), quotaBytes=store.quota_bytes)


@router.get("/pin", response_model=PinStatus)
async def get_pin_status(store: LocalStore = Depends(get_store)):
    return PinStatus(enabled=store.has_pin())


@router.put("/pin", status_code=status.HTTP_204_NO_CONTENT)
async def set_pin(request: PinRequest, store: LocalStore = Depends(get_store)):
    store.set_pin(request.pin)


@router.post("/pin/check", response_model=PinCheckResponse)
async def check_pin(request: PinRequest, store: LocalStore = Depends(get_store)):
    return PinCheckResponse(valid=store.check_pin(request.pin))


@router.delete("/pin", status_code=status.HTTP_204_NO_CONTENT)
async def remove_pin(store: LocalStore = Depends(get_store)):
    store.remove_pin()
