from fastapi import APIRouter, Depends, HTTPException, Path, status

from westock.logging_config import get_child_logger, tracer
from westock.models.share import (
    ShareExportResponse,
    ShareImportRequest,
    ShareImportResponse,
)
from westock.repository import Repository
from westock.services import get_repository, get_share_exporter, get_share_importer
from westock.share import ShareExporter, ShareImporter, parse_share_token

logger = get_child_logger("routes.share")

router = APIRouter(prefix="/share", tags=["share"])


@router.post("/import", response_model=ShareImportResponse)
async def import_shared_bundle(
    request: ShareImportRequest,
    importer: ShareImporter = Depends(get_share_importer),
):
    with tracer.start_as_current_span("api_import_share") as span:
        if parse_share_token(request.token) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Share tokens look like WS-<code>.",
            )

        result = await importer.import_token_detailed(request.token)
        span.set_attribute("share.imported", result.imported)
        if not result.imported:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Share could not be imported. Check the code and try again.",
            )
        return result


@router.post("/{bundle_id}", response_model=ShareExportResponse)
async def export_bundle(
    bundle_id: str = Path(..., title="The ID of the bundle to share"),
    repository: Repository = Depends(get_repository),
    exporter: ShareExporter = Depends(get_share_exporter),
):
    if repository.get_bundle(bundle_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Bundle with ID '{bundle_id}' not found",
        )

    token = await exporter.export_bundle(bundle_id)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Bundle could not be shared. Try again later.",
        )
    return ShareExportResponse(token=token)
