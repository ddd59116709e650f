from typing import Optional

from azure.cosmos.aio import ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from pydantic import ValidationError

from westock.exceptions import DatabaseError
from westock.logging_config import get_child_logger, tracer
from westock.models.document import AppDocument
from westock.models.inventory_item import now_ms

# Create a child logger for this module
logger = get_child_logger("crud.user_document")


async def read_user_document(
    container: ContainerProxy, user_id: str
) -> Optional[AppDocument]:
    """
    Read the mirrored document of a user.

    Args:
        container: Cosmos DB container holding one document per user
        user_id: Identity of the user (document id and partition key)

    Returns:
        The user's document, or None if the user has none yet

    Raises:
        DatabaseError: If the read fails or the stored document is malformed
    """
    with tracer.start_as_current_span("read_user_document") as span:
        span.set_attribute("user.id", user_id)

        try:
            raw = await container.read_item(item=user_id, partition_key=user_id)
        except CosmosHttpResponseError as e:
            if e.status_code == 404:
                logger.info("No remote document for user", extra={"user_id": user_id})
                span.set_attribute("document.exists", False)
                return None

            span.set_attribute("error", True)
            span.set_attribute("error.type", "cosmos_http_error")
            span.set_attribute("error.status_code", e.status_code)
            logger.error(
                "Cosmos DB error reading user document",
                extra={"user_id": user_id, "status_code": e.status_code, "error_message": e.message},
                exc_info=True,
            )
            raise DatabaseError(
                f"Cosmos DB error reading document for {user_id}: Status {e.status_code}, Msg: {e.message}",
                original_exception=e,
            ) from e
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            logger.error(
                "Unexpected error reading user document",
                extra={"user_id": user_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise DatabaseError(
                "An unexpected error occurred during database operation.",
                original_exception=e,
            ) from e

        span.set_attribute("document.exists", True)
        try:
            return AppDocument.model_validate(
                {"items": raw.get("items", []), "bundles": raw.get("bundles", [])}
            )
        except ValidationError as e:
            logger.error(
                "Remote document is malformed",
                extra={"user_id": user_id, "error_count": e.error_count()},
            )
            raise DatabaseError(
                f"Remote document for {user_id} is malformed.", original_exception=e
            ) from e


async def write_user_document(
    container: ContainerProxy, user_id: str, doc: AppDocument
) -> None:
    """
    Overwrite the user's remote document with ``doc``.

    There is no version check: whichever write reaches the store last wins.

    Raises:
        DatabaseError: If the write fails
    """
    with tracer.start_as_current_span("write_user_document") as span:
        span.set_attribute("user.id", user_id)
        span.set_attribute("document.items", len(doc.items))
        span.set_attribute("document.bundles", len(doc.bundles))

        body = doc.to_wire()
        body["id"] = user_id
        body["updatedAt"] = now_ms()

        try:
            await container.upsert_item(body=body)
            logger.info(
                "Remote document written",
                extra={"user_id": user_id, "items": len(doc.items), "bundles": len(doc.bundles)},
            )
        except CosmosHttpResponseError as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", "cosmos_http_error")
            span.set_attribute("error.status_code", e.status_code)
            logger.error(
                "Cosmos DB error writing user document",
                extra={"user_id": user_id, "status_code": e.status_code, "error_message": e.message},
                exc_info=True,
            )
            raise DatabaseError(
                f"Cosmos DB error writing document for {user_id}: Status Code {e.status_code}, Message: {e.message}",
                original_exception=e,
            ) from e
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            logger.error(
                "Unexpected error writing user document",
                extra={"user_id": user_id, "error_type": type(e).__name__},
                exc_info=True,
            )
            raise DatabaseError(
                "An unexpected error occurred during database operation.",
                original_exception=e,
            ) from e
