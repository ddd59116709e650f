from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, status

from westock.config import Settings, get_settings
from westock.db import ContainerType, close_client, get_container
from westock.local_store import LocalStore, open_local_store
from westock.logging_config import get_child_logger
from westock.repository import Repository
from westock.share import ShareExporter, ShareImporter
from westock.sync_engine import SyncEngine

logger = get_child_logger("services")


@dataclass
class AppServices:
    """Everything the API needs, built once at startup."""

    store: LocalStore
    repository: Repository
    sync_engine: SyncEngine
    exporter: Optional[ShareExporter] = None
    importer: Optional[ShareImporter] = None

    async def close(self) -> None:
        await self.sync_engine.drain()
        self.store.close()
        await close_client()


async def build_services(settings: Optional[Settings] = None) -> AppServices:
    """
    Open the local store and, when Cosmos DB is configured, the remote side.
    """
    settings = settings or get_settings()
    store = open_local_store(settings)
    repository = Repository(store)

    if not settings.remote_configured:
        logger.info("COSMOSDB_ENDPOINT not set, running local-only")
        return AppServices(
            store=store,
            repository=repository,
            sync_engine=SyncEngine(store, None),
        )

    user_documents = await get_container(ContainerType.USER_DOCUMENTS)
    shares = await get_container(ContainerType.SHARES)
    share_items = await get_container(ContainerType.SHARE_ITEMS)
    return AppServices(
        store=store,
        repository=repository,
        sync_engine=SyncEngine(store, user_documents),
        exporter=ShareExporter(repository, shares, share_items),
        importer=ShareImporter(repository, shares, share_items),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_repository(request: Request) -> Repository:
    return get_services(request).repository


def get_sync_engine(request: Request) -> SyncEngine:
    return get_services(request).sync_engine


def get_share_exporter(request: Request) -> ShareExporter:
    exporter = get_services(request).exporter
    if exporter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Remote store is not configured.",
        )
    return exporter


def get_share_importer(request: Request) -> ShareImporter:
    importer = get_services(request).importer
    if importer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Remote store is not configured.",
        )
    return importer


def raise_for_failed_save(store: LocalStore) -> None:
    """Turn a failed local save into the matching HTTP error."""
    if store.quota_exceeded:
        raise HTTPException(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            detail="Local storage is full. Delete some data and try again.",
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Local storage could not be written.",
    )
