import asyncio
import json
import secrets
import string
import uuid
from typing import List, Tuple

from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from pydantic import ValidationError

from westock.exceptions import DatabaseError, ShareRecordNotFoundError
from westock.logging_config import get_child_logger, tracer
from westock.models.bundle import Bundle
from westock.models.inventory_item import InventoryItem
from westock.models.share import SHARE_RECORD_TYPE, ShareItemEntry, ShareRecord

logger = get_child_logger("crud.share")

# Cosmos DB rejects documents over 2 MB; stay well below that per item
MAX_SHARE_ITEM_BYTES = 900_000
MEDIA_OMITTED_NOTE = "media omitted: too large"

SHARE_ID_ALPHABET = string.ascii_letters + string.digits
SHARE_ID_LENGTH = 20


def generate_share_id() -> str:
    return "".join(secrets.choice(SHARE_ID_ALPHABET) for _ in range(SHARE_ID_LENGTH))


def serialized_size(body: dict) -> int:
    """Size in bytes of ``body`` as JSON."""
    return len(json.dumps(body, ensure_ascii=False).encode("utf-8"))


def degrade_item(item: InventoryItem) -> InventoryItem:
    """
    Copy of ``item`` without its image and with a note saying so.
    """
    note = f"{item.note} ({MEDIA_OMITTED_NOTE})" if item.note else MEDIA_OMITTED_NOTE
    return item.model_copy(update={"image_url": None, "note": note})


def build_share_item_entry(
    share_id: str, item: InventoryItem, max_bytes: int = MAX_SHARE_ITEM_BYTES
) -> ShareItemEntry:
    """
    Wrap ``item`` for storage under ``share_id``, stripping media if the
    result would be larger than ``max_bytes``.
    """
    entry = ShareItemEntry(id=str(uuid.uuid4()), share_id=share_id, item=item)
    size = serialized_size(entry.model_dump(mode="json", by_alias=True, exclude_none=True))
    if size <= max_bytes:
        return entry

    logger.warning(
        "Shared item too large, omitting media",
        extra={"item_id": item.id, "bytes": size, "limit": max_bytes},
    )
    return entry.model_copy(update={"item": degrade_item(item), "degraded": True})


def _raise_database_error(span, action: str, e: Exception, **context) -> None:
    span.set_attribute("error", True)
    if isinstance(e, CosmosHttpResponseError):
        span.set_attribute("error.type", "cosmos_http_error")
        span.set_attribute("error.status_code", e.status_code)
        logger.error(
            f"Cosmos DB error during {action}",
            extra={**context, "status_code": e.status_code, "error_message": e.message},
            exc_info=True,
        )
        raise DatabaseError(
            f"Cosmos DB error during {action}: Status Code {e.status_code}, Message: {e.message}",
            original_exception=e,
        ) from e

    span.set_attribute("error.type", type(e).__name__)
    logger.error(
        f"Unexpected error during {action}",
        extra={**context, "error_type": type(e).__name__},
        exc_info=True,
    )
    raise DatabaseError(
        "An unexpected error occurred during database operation.",
        original_exception=e,
    ) from e


async def create_share_record(
    container: ContainerProxy, bundle: Bundle, item_count: int
) -> ShareRecord:
    """
    Create the share record for a bundle.

    Args:
        container: Cosmos DB container for share records
        bundle: Bundle being shared
        item_count: Number of items that will be written under the record

    Returns:
        The stored record, including its generated id

    Raises:
        DatabaseError: If the record could not be created
    """
    with tracer.start_as_current_span("create_share_record") as span:
        record = ShareRecord(id=generate_share_id(), bundle=bundle, item_count=item_count)
        span.set_attribute("share.id", record.id)
        span.set_attribute("share.item_count", item_count)

        try:
            await container.create_item(
                body=record.model_dump(mode="json", by_alias=True, exclude_none=True)
            )
        except Exception as e:
            _raise_database_error(
                span, "share record creation", e, share_id=record.id, bundle_id=bundle.id
            )

        logger.info(
            "Share record created",
            extra={"share_id": record.id, "bundle_id": bundle.id, "item_count": item_count},
        )
        return record


async def write_share_items(
    container: ContainerProxy,
    share_id: str,
    items: List[InventoryItem],
    max_bytes: int = MAX_SHARE_ITEM_BYTES,
) -> List[ShareItemEntry]:
    """
    Write every item under ``share_id`` concurrently.

    The writes are independent, not one transaction: if one fails the
    others may still land. Oversized items are written without media.

    Returns:
        The entries that were written

    Raises:
        DatabaseError: If any write fails
    """
    with tracer.start_as_current_span("write_share_items") as span:
        span.set_attribute("share.id", share_id)
        span.set_attribute("share.item_count", len(items))

        entries = [build_share_item_entry(share_id, item, max_bytes) for item in items]
        span.set_attribute(
            "share.degraded_count", sum(1 for entry in entries if entry.degraded)
        )

        async def write_entry(entry: ShareItemEntry) -> ShareItemEntry:
            await container.upsert_item(
                body=entry.model_dump(mode="json", by_alias=True, exclude_none=True)
            )
            return entry

        tasks = [asyncio.create_task(write_entry(entry)) for entry in entries]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception as e:
            _raise_database_error(span, "share item write", e, share_id=share_id)


async def read_share_record(container: ContainerProxy, share_id: str) -> ShareRecord:
    """
    Raises:
        ShareRecordNotFoundError: If no record has this id, or it is not a share record
        DatabaseError: If the read fails
    """
    with tracer.start_as_current_span("read_share_record") as span:
        span.set_attribute("share.id", share_id)

        try:
            raw = await container.read_item(item=share_id, partition_key=share_id)
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                logger.warning("Share record not found", extra={"share_id": share_id})
                raise ShareRecordNotFoundError(
                    f"Share record with ID '{share_id}' not found"
                ) from e
            _raise_database_error(span, "share record read", e, share_id=share_id)
        except Exception as e:
            _raise_database_error(span, "share record read", e, share_id=share_id)

        try:
            record = ShareRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "Share record is malformed",
                extra={"share_id": share_id, "error_count": e.error_count()},
            )
            raise ShareRecordNotFoundError(
                f"Share record with ID '{share_id}' is malformed"
            ) from e

        if record.type != SHARE_RECORD_TYPE:
            logger.warning(
                "Record is not a share record",
                extra={"share_id": share_id, "record_type": record.type},
            )
            raise ShareRecordNotFoundError(
                f"Record with ID '{share_id}' is not a share record"
            )
        return record


async def list_share_items(
    container: ContainerProxy, share_id: str
) -> Tuple[List[InventoryItem], int]:
    """
    Read every item stored under ``share_id``.

    Entries that fail validation are skipped.

    Returns:
        The items, and the number of entries that were skipped

    Raises:
        DatabaseError: If the query fails
    """
    with tracer.start_as_current_span("list_share_items") as span:
        span.set_attribute("share.id", share_id)

        query = "SELECT * FROM c WHERE c.shareId = @shareId"
        params = [{"name": "@shareId", "value": share_id}]

        items: List[InventoryItem] = []
        skipped = 0
        try:
            async for raw in container.query_items(
                query=query, parameters=params, partition_key=share_id
            ):
                try:
                    items.append(ShareItemEntry.model_validate(raw).item)
                except ValidationError as e:
                    logger.debug(f"Pydantic validation errors: {e.errors()}")
                    skipped += 1
        except Exception as e:
            _raise_database_error(span, "share item listing", e, share_id=share_id)

        span.set_attribute("share.items_read", len(items))
        logger.info(
            f"Retrieved {len(items)} shared items",
            extra={"share_id": share_id, "count": len(items), "skipped": skipped},
        )
        return items, skipped

