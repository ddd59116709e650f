"""
Account-less transfer of one bundle and the items it references.

Export copies the bundle and its items into the remote share containers and
hands back a short ``WS-<id>`` token. Import reads that record and merges it
into the local document without overwriting anything already there.
"""

from typing import Optional

from azure.cosmos.aio import ContainerProxy

from westock.crud.share_crud import (
    MAX_SHARE_ITEM_BYTES,
    create_share_record,
    list_share_items,
    read_share_record,
    write_share_items,
)
from westock.exceptions import (
    BundleNotFoundError,
    DatabaseError,
    InvalidShareTokenError,
    ShareRecordNotFoundError,
)
from westock.logging_config import get_child_logger, tracer
from westock.models.share import ShareImportResponse
from westock.repository import Repository

logger = get_child_logger("share")

SHARE_TOKEN_PREFIX = "WS-"


def make_share_token(record_id: str) -> str:
    return f"{SHARE_TOKEN_PREFIX}{record_id}"


def parse_share_token(token: str) -> Optional[str]:
    """
    Record id embedded in ``token``, or None if it isn't a share token.

    The prefix is case-sensitive. Surrounding whitespace from copy-paste is ignored.
    """
    if not isinstance(token, str):
        return None
    token = token.strip()
    if not token.startswith(SHARE_TOKEN_PREFIX):
        return None
    record_id = token[len(SHARE_TOKEN_PREFIX):]
    if not record_id or any(c.isspace() or c in "/\\?#" for c in record_id):
        return None
    return record_id


class ShareExporter:
    def __init__(
        self,
        repository: Repository,
        shares: ContainerProxy,
        share_items: ContainerProxy,
        max_item_bytes: int = MAX_SHARE_ITEM_BYTES,
    ):
        self._repository = repository
        self._shares = shares
        self._share_items = share_items
        self._max_item_bytes = max_item_bytes

    async def export_bundle(self, bundle_id: str) -> str:
        """
        Publish a bundle and its items under a new share token.

        Items the bundle references but that no longer exist are left out.
        Items too large for one remote document are published without media.

        Returns:
            The ``WS-<id>`` token, or an empty string if the bundle doesn't
            exist or the remote store failed
        """
        with tracer.start_as_current_span("export_bundle") as span:
            span.set_attribute("bundle.id", bundle_id)

            try:
                bundle, items, missing = self._repository.resolve_bundle_items(bundle_id)
            except BundleNotFoundError:
                logger.warning("Export skipped, bundle not found", extra={"bundle_id": bundle_id})
                return ""

            if missing:
                logger.info(
                    "Bundle references missing items, leaving them out",
                    extra={"bundle_id": bundle_id, "missing": missing},
                )
            span.set_attribute("share.item_count", len(items))

            try:
                record = await create_share_record(self._shares, bundle, len(items))
                await write_share_items(
                    self._share_items, record.id, items, self._max_item_bytes
                )
            except DatabaseError as e:
                span.set_attribute("error", True)
                logger.error(f"Bundle export failed: {e}", extra={"bundle_id": bundle_id})
                return ""

            token = make_share_token(record.id)
            logger.info("Bundle exported", extra={"bundle_id": bundle_id, "share_id": record.id})
            return token


class ShareImporter:
    def __init__(
        self,
        repository: Repository,
        shares: ContainerProxy,
        share_items: ContainerProxy,
    ):
        self._repository = repository
        self._shares = shares
        self._share_items = share_items

    async def import_token(self, token: str) -> bool:
        """
        Merge the bundle and items behind ``token`` into the local document.

        Returns:
            True if the record was fetched and the merge was saved
        """
        return (await self.import_token_detailed(token)).imported

    async def import_token_detailed(self, token: str) -> ShareImportResponse:
        """
        Same as ``import_token`` but reports which ids were added.

        Everything is fetched before the local document is touched, so a
        failed import leaves no partial state. Items already stored locally
        keep their local version.
        """
        with tracer.start_as_current_span("import_share_token") as span:
            try:
                share_id = self._require_share_id(token)
                span.set_attribute("share.id", share_id)

                record = await read_share_record(self._shares, share_id)
                items, skipped = await list_share_items(self._share_items, share_id)
            except (InvalidShareTokenError, ShareRecordNotFoundError, DatabaseError) as e:
                span.set_attribute("error", True)
                span.set_attribute("error.type", type(e).__name__)
                logger.warning(f"Share import failed: {e}")
                return ShareImportResponse(imported=False)

            if len(items) < record.item_count:
                # Export writes are not transactional; take what made it
                logger.warning(
                    "Share record has fewer items than declared",
                    extra={
                        "share_id": share_id,
                        "declared": record.item_count,
                        "found": len(items),
                        "skipped": skipped,
                    },
                )

            added_items, added_bundles, saved = self._repository.merge(items, record.bundle)
            span.set_attribute("share.items_added", len(added_items))
            if not saved:
                span.set_attribute("error", True)
                logger.error("Imported share could not be saved locally", extra={"share_id": share_id})
                return ShareImportResponse(imported=False)

            logger.info(
                "Share imported",
                extra={
                    "share_id": share_id,
                    "items_added": len(added_items),
                    "bundles_added": len(added_bundles),
                },
            )
            return ShareImportResponse(
                imported=True, item_ids=added_items, bundle_ids=added_bundles
            )

    @staticmethod
    def _require_share_id(token: str) -> str:
        share_id = parse_share_token(token)
        if share_id is None:
            raise InvalidShareTokenError("Share tokens look like WS-<code>.")
        return share_id
