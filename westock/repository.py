from typing import Iterable, List, Optional, Tuple

from westock.exceptions import BundleNotFoundError, ItemNotFoundError
from westock.local_store import LocalStore
from westock.logging_config import get_child_logger
from westock.models.bundle import Bundle
from westock.models.document import AppDocument
from westock.models.inventory_item import InventoryItem, Size, StockLevels, StockSummary

logger = get_child_logger("repository")


class Repository:
    """
    Item and bundle CRUD over the local store.

    Every mutation re-reads the stored document, changes it and saves it
    back, so nothing relies on an in-memory copy shared between callers.
    Deleting an item also removes its id from every bundle.
    """

    def __init__(self, store: LocalStore):
        self._store = store

    @property
    def store(self) -> LocalStore:
        return self._store

    def document(self) -> AppDocument:
        return self._store.load()

    def replace_document(self, doc: AppDocument) -> bool:
        return self._store.replace(doc)

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def list_items(self) -> List[InventoryItem]:
        return self._store.load().items

    def add_item(self, item: InventoryItem) -> bool:
        """
        Insert ``item`` at the front of the list.

        Raises:
            ValueError: If an item with the same id already exists
        """
        data = self._store.load()
        if data.find_item(item.id) is not None:
            raise ValueError(f"Item with ID '{item.id}' already exists")
        data.items.insert(0, item)
        return self._store.save(data)

    def update_item(self, item: InventoryItem) -> bool:
        """Replace the stored item with the same id. False if there is none."""
        data = self._store.load()
        for index, existing in enumerate(data.items):
            if existing.id == item.id:
                data.items[index] = item
                return self._store.save(data)
        logger.info("Update skipped, item not found", extra={"item_id": item.id})
        return False

    def search_items(self, query: str) -> List[InventoryItem]:
        """Items whose name or category contains ``query``, ignoring case."""
        needle = query.strip().lower()
        items = self._store.load().items
        if not needle:
            return items
        return [
            i for i in items if needle in i.name.lower() or needle in i.category.lower()
        ]

    def get_item(self, item_id: str) -> Optional[InventoryItem]:
        return self._store.load().find_item(item_id)

    def require_item(self, item_id: str) -> InventoryItem:
        """
        Raises:
            ItemNotFoundError: If no item has this id
        """
        item = self.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item with ID '{item_id}' not found")
        return item

    def delete_item(self, item_id: str) -> AppDocument:
        """
        Remove the item and strip its id from every bundle.

        Bundles themselves are kept even when they end up empty. Deleting
        an unknown id is not an error.

        Returns:
            The document after deletion
        """
        data = self._store.load()
        data.items = [i for i in data.items if i.id != item_id]
        data.bundles = [
            b.model_copy(update={"item_ids": [ref for ref in b.item_ids if ref != item_id]})
            for b in data.bundles
        ]
        self._store.save(data)
        return data

    # -------------------------------------------------------------------------
    # Bundles
    # -------------------------------------------------------------------------

    def list_bundles(self) -> List[Bundle]:
        return self._store.load().bundles

    def add_bundle(self, bundle: Bundle) -> bool:
        data = self._store.load()
        if data.find_bundle(bundle.id) is not None:
            raise ValueError(f"Bundle with ID '{bundle.id}' already exists")
        data.bundles.insert(0, bundle)
        return self._store.save(data)

    def update_bundle(self, bundle: Bundle) -> bool:
        data = self._store.load()
        for index, existing in enumerate(data.bundles):
            if existing.id == bundle.id:
                data.bundles[index] = bundle
                return self._store.save(data)
        logger.info("Update skipped, bundle not found", extra={"bundle_id": bundle.id})
        return False

    def get_bundle(self, bundle_id: str) -> Optional[Bundle]:
        return self._store.load().find_bundle(bundle_id)

    def delete_bundle(self, bundle_id: str) -> AppDocument:
        data = self._store.load()
        data.bundles = [b for b in data.bundles if b.id != bundle_id]
        self._store.save(data)
        return data

    def resolve_bundle_items(
        self, bundle_id: str
    ) -> Tuple[Bundle, List[InventoryItem], List[str]]:
        """
        Look up the items a bundle references, in bundle order.

        Returns:
            The bundle, the items that still exist, and the ids that no
            longer match any item

        Raises:
            BundleNotFoundError: If the bundle doesn't exist
        """
        data = self._store.load()
        bundle = data.find_bundle(bundle_id)
        if bundle is None:
            raise BundleNotFoundError(f"Bundle with ID '{bundle_id}' not found")

        by_id = {item.id: item for item in data.items}
        items, missing = [], []
        for ref in bundle.item_ids:
            if ref in by_id:
                items.append(by_id[ref])
            else:
                missing.append(ref)
        return bundle, items, missing

    def stock_summary(self, bundle_id: Optional[str] = None) -> StockSummary:
        """
        Item count, total stock and stock per size.

        With ``bundle_id`` only the items in that bundle are counted, each
        once, however often the bundle lists it.

        Raises:
            BundleNotFoundError: If ``bundle_id`` is given and doesn't exist
        """
        data = self._store.load()
        items = data.items
        if bundle_id is not None:
            bundle = data.find_bundle(bundle_id)
            if bundle is None:
                raise BundleNotFoundError(f"Bundle with ID '{bundle_id}' not found")
            in_bundle = set(bundle.item_ids)
            items = [i for i in items if i.id in in_bundle]

        by_size = StockLevels(
            **{size.value: sum(i.stock.get(size) for i in items) for size in Size}
        )
        return StockSummary(
            bundle_id=bundle_id,
            item_count=len(items),
            total_stock=by_size.total(),
            by_size=by_size,
        )

    # -------------------------------------------------------------------------

    def merge(
        self, items: Iterable[InventoryItem], bundle: Optional[Bundle] = None
    ) -> Tuple[List[str], List[str], bool]:
        """
        Add items and a bundle that aren't already present.

        Anything whose id is already stored is left untouched, so merging the
        same payload twice adds nothing the second time.

        Returns:
            Ids of added items, ids of added bundles, and whether the
            document was saved (True when there was nothing to add)
        """
        data = self._store.load()
        known_items = {i.id for i in data.items}
        added_items: List[str] = []
        for item in items:
            if item.id in known_items:
                continue
            data.items.insert(0, item)
            known_items.add(item.id)
            added_items.append(item.id)

        added_bundles: List[str] = []
        if bundle is not None and data.find_bundle(bundle.id) is None:
            data.bundles.insert(0, bundle)
            added_bundles.append(bundle.id)

        if not added_items and not added_bundles:
            return added_items, added_bundles, True

        saved = self._store.save(data)
        return added_items, added_bundles, saved
