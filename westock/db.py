from typing import Optional
from azure.cosmos.aio import CosmosClient, ContainerProxy
from azure.identity.aio import DefaultAzureCredential

from enum import Enum

from westock.config import get_settings
from westock.logging_config import get_child_logger

logger = get_child_logger("db")


class ContainerType(str, Enum):
    USER_DOCUMENTS = "user_documents"
    SHARES = "shares"
    SHARE_ITEMS = "share_items"


class RemoteNotConfiguredError(RuntimeError):
    """Raised when a container is requested but no Cosmos DB endpoint is set."""


_client: Optional[CosmosClient] = None
_credential: Optional[DefaultAzureCredential] = None


def _container_names() -> dict:
    settings = get_settings()
    return {
        ContainerType.USER_DOCUMENTS: settings.container_user_documents,
        ContainerType.SHARES: settings.container_shares,
        ContainerType.SHARE_ITEMS: settings.container_share_items,
    }


async def _ensure_client() -> CosmosClient:
    global _client, _credential
    if _client is None:
        settings = get_settings()
        if not settings.remote_configured:
            raise RemoteNotConfiguredError("COSMOSDB_ENDPOINT is not set")
        if settings.cosmosdb_key:
            logger.info("Creating CosmosDB client with account key")
            _client = CosmosClient(settings.cosmosdb_endpoint, settings.cosmosdb_key)
        else:
            logger.info("Creating CosmosDB client with DefaultAzureCredential")
            _credential = DefaultAzureCredential()
            _client = CosmosClient(settings.cosmosdb_endpoint, _credential)
    return _client


async def get_container(container_type: ContainerType) -> ContainerProxy:
    containers = _container_names()
    container_name = containers.get(container_type)
    if not container_name:
        raise ValueError(
            f"Container '{container_type}' not configured. "
            f"Valid options: {[c.value for c in containers]}"
        )

    client = await _ensure_client()
    database = client.get_database_client(get_settings().cosmosdb_database)
    return database.get_container_client(container_name)


async def close_client() -> None:
    global _client, _credential
    if _client is not None:
        await _client.close()
        _client = None
    if _credential is not None:
        await _credential.close()
        _credential = None
