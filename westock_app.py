import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from azure.cosmos import exceptions as cosmos_exceptions
from fastapi import FastAPI, HTTPException, Request, Security, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from westock.exceptions import (
    BundleNotFoundError,
    DatabaseError,
    ItemNotFoundError,
    StorageQuotaExceededError,
)
from westock.logging_config import logger, tracer
from westock.routes.backup_route import router as backup_router
from westock.routes.bundle_route import router as bundle_router
from westock.routes.item_route import router as item_router
from westock.routes.share_route import router as share_router
from westock.routes.stats_route import router as stats_router
from westock.routes.sync_route import router as sync_router
from westock.services import AppServices, build_services

API_KEY_NAME = "x-westock-key"
api_key_header_scheme = APIKeyHeader(
    name=API_KEY_NAME,
    auto_error=False,
    scheme_name="ApiKeyAuthHeader",
    description="Local API key (x-westock-key) in header",
)


async def get_api_key(api_key_from_header: str = Security(api_key_header_scheme)):
    """
    Require the local API key when WESTOCK_API_KEY is set.
    Without it the API is open, which is the normal single-user setup.
    """
    expected_key = os.environ.get("WESTOCK_API_KEY")
    if expected_key and api_key_from_header != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key.",
        )
    return api_key_from_header


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """
    Build the local API.

    Args:
        services: Prebuilt services; built from the environment at startup
            when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or await build_services()
        logger.info("WeStock API started")
        try:
            yield
        finally:
            if owned:
                await app.state.services.close()

    app = FastAPI(
        title="WeStock API",
        version="1.0.0",
        lifespan=lifespan,
        dependencies=[Security(get_api_key)],
    )

    @app.exception_handler(cosmos_exceptions.CosmosHttpResponseError)
    async def handle_cosmos_http_error(
        request: Request, exc: cosmos_exceptions.CosmosHttpResponseError
    ):
        with tracer.start_as_current_span("handle_cosmos_error") as span:
            span.set_attribute("error", True)
            span.set_attribute("error.type", "cosmos_http_error")
            span.set_attribute("error.status_code", exc.status_code)

            logger.error(
                "Cosmos DB HTTP error",
                extra={
                    "status_code": exc.status_code,
                    "error_message": str(exc),
                    "path": request.url.path,
                },
            )
            return JSONResponse(
                status_code=status.HTTP_502_BAD_GATEWAY,
                content={"detail": "Remote store error."},
            )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            f"Database error: {exc}",
            extra={"path": request.url.path},
            exc_info=exc.original_exception,
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "A database error occurred."},
        )

    @app.exception_handler(StorageQuotaExceededError)
    async def handle_quota_error(_: Request, exc: StorageQuotaExceededError):
        return JSONResponse(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ItemNotFoundError)
    @app.exception_handler(BundleNotFoundError)
    async def handle_not_found(_: Request, exc: Exception):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def handle_value_error(_: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    app.include_router(item_router)
    app.include_router(bundle_router)
    app.include_router(share_router)
    app.include_router(stats_router)
    app.include_router(sync_router)
    app.include_router(backup_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "westock_app:app",
        host=os.environ.get("WESTOCK_HOST", "127.0.0.1"),
        port=int(os.environ.get("WESTOCK_PORT", "8000")),
    )
