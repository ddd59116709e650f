"""
Shared pytest fixtures for westock tests.

Provides an in-memory stand-in for Cosmos DB containers so no test talks to
a real remote store.
"""

import copy
from typing import Any, Dict, Optional, Set, Tuple

import pytest
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from westock.config import get_settings
from westock.local_store import LocalStore
from westock.models.bundle import Bundle
from westock.models.inventory_item import InventoryItem, StockLevels
from westock.repository import Repository


class FakeContainer:
    """
    Minimal async container: documents keyed by (partition key, id).

    Set ``fail_on`` to method names that should raise a 503 to simulate the
    remote store being unreachable.
    """

    def __init__(self, partition_key_field: str = "id"):
        self.partition_key_field = partition_key_field
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_on: Set[str] = set()
        self.writes = 0

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail_on:
            raise CosmosHttpResponseError(status_code=503, message="Service unavailable")

    def _key(self, body: Dict[str, Any]) -> Tuple[str, str]:
        return body[self.partition_key_field], body["id"]

    async def read_item(self, item: str, partition_key: str, **kwargs):
        self._maybe_fail("read_item")
        try:
            return copy.deepcopy(self.documents[(partition_key, item)])
        except KeyError:
            raise CosmosResourceNotFoundError(
                status_code=404,
                message="Entity with the specified id does not exist in the system.",
            )

    async def create_item(self, body: Dict[str, Any], **kwargs):
        self._maybe_fail("create_item")
        key = self._key(body)
        if key in self.documents:
            raise CosmosResourceExistsError(status_code=409, message="Conflict")
        self.documents[key] = copy.deepcopy(body)
        self.writes += 1
        return copy.deepcopy(body)

    async def upsert_item(self, body: Dict[str, Any], **kwargs):
        self._maybe_fail("upsert_item")
        self.documents[self._key(body)] = copy.deepcopy(body)
        self.writes += 1
        return copy.deepcopy(body)

    def query_items(self, query: str, parameters=None, partition_key: Optional[str] = None, **kwargs):
        self._maybe_fail("query_items")
        docs = [
            copy.deepcopy(doc)
            for (pk, _), doc in self.documents.items()
            if partition_key is None or pk == partition_key
        ]

        async def iterate():
            for doc in docs:
                yield doc

        return iterate()

    def get(self, partition_key: str, item_id: str) -> Optional[Dict[str, Any]]:
        return self.documents.get((partition_key, item_id))

    def in_partition(self, partition_key: str):
        return [doc for (pk, _), doc in self.documents.items() if pk == partition_key]


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temp dir and drop remote/AI configuration."""
    monkeypatch.setenv("WESTOCK_DATA_DIR", str(tmp_path / "data"))
    for name in (
        "COSMOSDB_ENDPOINT",
        "COSMOSDB_KEY",
        "GEMINI_API_KEY",
        "WESTOCK_API_KEY",
        "WESTOCK_STORAGE_QUOTA_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path):
    local = LocalStore(tmp_path / "device-a" / "westock.db")
    yield local
    local.close()


@pytest.fixture
def other_store(tmp_path):
    """A second, independent device."""
    local = LocalStore(tmp_path / "device-b" / "westock.db")
    yield local
    local.close()


@pytest.fixture
def repository(store):
    return Repository(store)


@pytest.fixture
def other_repository(other_store):
    return Repository(other_store)


@pytest.fixture
def user_documents():
    return FakeContainer("id")


@pytest.fixture
def shares():
    return FakeContainer("id")


@pytest.fixture
def share_items():
    return FakeContainer("shareId")


def make_item(item_id: str = "1", name: str = "Tee", **kwargs) -> InventoryItem:
    kwargs.setdefault("category", "Tops")
    kwargs.setdefault("stock", StockLevels(S=2))
    kwargs.setdefault("created_at", 1_700_000_000_000)
    return InventoryItem(id=item_id, name=name, **kwargs)


def make_bundle(bundle_id: str = "b1", item_ids=("1",), name: str = "Summer") -> Bundle:
    return Bundle(
        id=bundle_id,
        name=name,
        description="",
        item_ids=list(item_ids),
        created_at=1_700_000_000_500,
    )
