"""
Local key-value store for the app document.

The whole document lives as one JSON value under a well-known key in a
SQLite file, next to the app-lock PIN and the migration marker. Reads never
raise: anything unreadable loads as an empty document. Writes report failure
as ``False`` and keep the reason in ``last_error`` so a full store can be told
apart from other errors.

Older installs kept the document in a plain JSON file beside the database.
``migrate()`` copies it forward once and records a marker so the copy never
runs again.
"""

import hmac
import json
import sqlite3
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError

from westock.config import DEFAULT_STORAGE_QUOTA_BYTES, Settings
from westock.exceptions import LocalStorageError, StorageQuotaExceededError
from westock.logging_config import get_child_logger, tracer
from westock.models.document import AppDocument

logger = get_child_logger("local_store")

DATA_KEY = "we_stock_data_v1"
PIN_KEY = "we_stock_pin"
MIGRATION_KEY = "we_stock_migration_version"
CURRENT_MIGRATION_VERSION = 1
LEGACY_FILENAME = "we_stock_data_v1.json"

DocumentListener = Callable[[AppDocument], None]


def _is_disk_full(error: sqlite3.Error) -> bool:
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return code == getattr(sqlite3, "SQLITE_FULL", 13)
    return "database or disk is full" in str(error)


class LocalStore:
    """
    SQLite-backed storage for exactly one AppDocument.
    """

    def __init__(
        self,
        db_path: Path,
        quota_bytes: int = DEFAULT_STORAGE_QUOTA_BYTES,
        legacy_path: Optional[Path] = None,
    ):
        """
        Args:
            db_path: Path to the SQLite database file
            quota_bytes: Largest serialized document that will be written
            legacy_path: JSON file used by older versions; defaults to a
                file next to the database
        """
        self._db_path = Path(db_path)
        self._quota_bytes = quota_bytes
        self._legacy_path = (
            Path(legacy_path) if legacy_path else self._db_path.parent / LEGACY_FILENAME
        )
        self._saved_listeners: List[DocumentListener] = []
        self._replaced_listeners: List[DocumentListener] = []
        self.last_error: Optional[LocalStorageError] = None
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    # -------------------------------------------------------------------------
    # Raw key access
    # -------------------------------------------------------------------------

    def _get(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _put(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value)
            )

    def _delete(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # -------------------------------------------------------------------------
    # Document
    # -------------------------------------------------------------------------

    def load(self) -> AppDocument:
        """
        Return the stored document, or an empty one if nothing usable is stored.
        """
        try:
            raw = self._get(DATA_KEY)
        except sqlite3.Error as e:
            logger.error(f"Failed to read local document: {e}", exc_info=True)
            return AppDocument.empty()

        if raw is None:
            return AppDocument.empty()

        try:
            return AppDocument.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Stored document could not be parsed, starting empty",
                extra={"error_count": e.error_count()},
            )
            return AppDocument.empty()

    def save(self, doc: AppDocument, *, notify: bool = True) -> bool:
        """
        Replace the stored document with ``doc``.

        Args:
            doc: Document to persist
            notify: Tell saved-listeners about the write (the sync engine
                pushes on this signal)

        Returns:
            True if written. On False, ``last_error`` says why and the
            previously stored document is unchanged.
        """
        with tracer.start_as_current_span("local_store.save") as span:
            try:
                payload = json.dumps(doc.to_wire(), ensure_ascii=False)
            except (TypeError, ValueError) as e:
                return self._fail(span, LocalStorageError(
                    f"Document could not be serialized: {e}", original_exception=e
                ))

            size = len(payload.encode("utf-8"))
            span.set_attribute("document.bytes", size)

            if size > self._quota_bytes:
                return self._fail(span, StorageQuotaExceededError(
                    f"Document of {size} bytes exceeds the {self._quota_bytes} byte storage quota"
                ))

            try:
                self._put(DATA_KEY, payload)
            except sqlite3.Error as e:
                if _is_disk_full(e):
                    error = StorageQuotaExceededError(
                        "Local storage is full", original_exception=e
                    )
                else:
                    error = LocalStorageError(
                        f"Failed to write local document: {e}", original_exception=e
                    )
                return self._fail(span, error)

            self.last_error = None
            logger.debug(
                "Local document saved",
                extra={"items": len(doc.items), "bundles": len(doc.bundles), "bytes": size},
            )

        if notify:
            self._notify(self._saved_listeners, doc)
        return True

    def replace(self, doc: AppDocument, *, from_remote: bool = False) -> bool:
        """
        Save ``doc`` wholesale and announce that the document was replaced.

        Views holding a copy of the old document reload on this event.
        Documents that came from the remote store are not echoed back to it.
        """
        if not self.save(doc, notify=not from_remote):
            return False
        self._notify(self._replaced_listeners, doc)
        return True

    def _fail(self, span, error: LocalStorageError) -> bool:
        span.set_attribute("error", True)
        span.set_attribute("error.type", type(error).__name__)
        if isinstance(error, StorageQuotaExceededError):
            logger.warning(str(error))
        else:
            logger.error(str(error), exc_info=error.original_exception)
        self.last_error = error
        return False

    @property
    def quota_exceeded(self) -> bool:
        """Whether the last save failed because the store is full."""
        return isinstance(self.last_error, StorageQuotaExceededError)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def subscribe_saved(self, listener: DocumentListener) -> Callable[[], None]:
        """Call ``listener`` after every successful save. Returns an unsubscribe function."""
        return self._subscribe(self._saved_listeners, listener)

    def subscribe_replaced(self, listener: DocumentListener) -> Callable[[], None]:
        """Call ``listener`` whenever the document is replaced wholesale."""
        return self._subscribe(self._replaced_listeners, listener)

    @staticmethod
    def _subscribe(listeners: List[DocumentListener], listener: DocumentListener):
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _notify(listeners: List[DocumentListener], doc: AppDocument) -> None:
        for listener in list(listeners):
            try:
                listener(doc)
            except Exception as e:
                # The write already happened; a listener must not undo it
                logger.error(f"Document listener failed: {e}", exc_info=True)

    # -------------------------------------------------------------------------
    # Migration
    # -------------------------------------------------------------------------

    def migration_version(self) -> int:
        raw = self._get(MIGRATION_KEY)
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            return 0

    def migrate(self) -> bool:
        """
        Copy a document from the legacy JSON file into this store.

        Runs only while the recorded migration version is below
        CURRENT_MIGRATION_VERSION, and only copies when this store holds no
        document yet. The legacy file is deleted after a successful copy.

        Returns:
            True if a document was copied forward
        """
        if self.migration_version() >= CURRENT_MIGRATION_VERSION:
            return False

        copied = False
        if self._get(DATA_KEY) is None and self._legacy_path.exists():
            try:
                legacy = AppDocument.model_validate_json(
                    self._legacy_path.read_text(encoding="utf-8")
                )
            except (OSError, ValidationError) as e:
                logger.warning(f"Legacy document at {self._legacy_path} is unreadable: {e}")
                legacy = None

            if legacy is not None:
                if not self.save(legacy, notify=False):
                    # Leave the marker unset so the next start retries
                    logger.error("Could not copy legacy document forward")
                    return False
                self._legacy_path.unlink(missing_ok=True)
                copied = True
                logger.info(
                    "Migrated legacy document",
                    extra={"items": len(legacy.items), "bundles": len(legacy.bundles)},
                )

        self._put(MIGRATION_KEY, str(CURRENT_MIGRATION_VERSION))
        return copied

    # -------------------------------------------------------------------------
    # App-lock PIN
    # -------------------------------------------------------------------------

    def set_pin(self, pin: str) -> None:
        """Store the app-lock PIN. It is a UI gate, not an encryption key."""
        if not pin:
            raise ValueError("PIN must not be empty.")
        self._put(PIN_KEY, pin)

    def check_pin(self, pin: str) -> bool:
        stored = self._get(PIN_KEY)
        if stored is None:
            return False
        return hmac.compare_digest(stored.encode("utf-8"), pin.encode("utf-8"))

    def has_pin(self) -> bool:
        return bool(self._get(PIN_KEY))

    def remove_pin(self) -> None:
        self._delete(PIN_KEY)

    # -------------------------------------------------------------------------

    def storage_usage(self) -> str:
        """Size of the stored document, formatted for display."""
        try:
            raw = self._get(DATA_KEY) or ""
        except sqlite3.Error:
            return "unknown"
        kb = len(raw.encode("utf-8")) / 1024
        return f"{kb:.1f} KB" if kb < 1024 else f"{kb / 1024:.2f} MB"

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def open_local_store(settings: Settings) -> LocalStore:
    """Open the store under the configured data directory and run migrations."""
    store = LocalStore(settings.database_path, quota_bytes=settings.storage_quota_bytes)
    store.migrate()
    return store
