from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field

from westock.exceptions import (
    DatabaseError,
    LocalStorageError,
    NoIdentityError,
    RemoteDocumentNotFoundError,
    StorageQuotaExceededError,
)
from westock.logging_config import get_child_logger
from westock.models.identity import UserIdentity
from westock.sync_engine import SyncDirection, SyncEngine, SyncOutcome
from westock.services import get_sync_engine

logger = get_child_logger("routes.sync")

router = APIRouter(prefix="/sync", tags=["sync"])


class SyncStatus(BaseModel):
    bound: bool
    user_id: Optional[str] = Field(default=None, alias="userId")
    remote_configured: bool = Field(alias="remoteConfigured")


class BindResponse(BaseModel):
    outcome: SyncOutcome


@router.get("/", response_model=SyncStatus)
async def get_sync_status(engine: SyncEngine = Depends(get_sync_engine)):
    return SyncStatus(
        bound=engine.is_bound,
        userId=engine.identity.uid if engine.identity else None,
        remoteConfigured=engine.remote_configured,
    )


@router.put("/identity", response_model=BindResponse)
async def bind_identity(
    identity: UserIdentity,
    engine: SyncEngine = Depends(get_sync_engine),
):
    """Called by the sign-in flow once the auth provider reports a user."""
    return BindResponse(outcome=await engine.bind(identity))


@router.delete("/identity", status_code=status.HTTP_204_NO_CONTENT)
async def unbind_identity(engine: SyncEngine = Depends(get_sync_engine)):
    engine.unbind()


@router.post("/force/{direction}", status_code=status.HTTP_204_NO_CONTENT)
async def force_sync(
    direction: SyncDirection = Path(..., title="up pushes local, down pulls remote"),
    engine: SyncEngine = Depends(get_sync_engine),
):
    try:
        await engine.force_sync(direction)
    except NoIdentityError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RemoteDocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageQuotaExceededError as e:
        raise HTTPException(status_code=status.HTTP_507_INSUFFICIENT_STORAGE, detail=str(e))
    except LocalStorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Database error during forced sync: {e}", exc_info=e.original_exception)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Remote store could not be reached.",
        )
