import json
from datetime import date
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from westock.local_store import LocalStore
from westock.logging_config import get_child_logger
from westock.models.document import AppDocument

logger = get_child_logger("backup")


def backup_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"westock_backup_{today.isoformat()}.json"


def export_backup(store: LocalStore) -> str:
    """The stored document as pretty-printed JSON."""
    return json.dumps(store.load().to_wire(), ensure_ascii=False, indent=2)


def write_backup(store: LocalStore, directory: Path, today: Optional[date] = None) -> Path:
    """
    Write a backup file into ``directory``.

    Returns:
        Path of the written file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / backup_filename(today)
    path.write_text(export_backup(store), encoding="utf-8")
    logger.info(f"Backup written to {path}")
    return path


def import_backup(store: LocalStore, text: str) -> bool:
    """
    Replace the stored document with the one in a backup file.

    Nothing is merged: on success the backup becomes the whole document.

    Returns:
        False if the text isn't a backup (both ``items`` and ``bundles`` must
        be present as lists) or the store rejects the write
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        logger.warning(f"Backup is not valid JSON: {e}")
        return False

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("items"), list)
        or not isinstance(data.get("bundles"), list)
    ):
        logger.warning("Backup is missing the items or bundles list")
        return False

    try:
        doc = AppDocument.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Backup failed validation: {e.error_count()} errors")
        return False

    if not store.replace(doc):
        return False
    logger.info(
        "Backup imported", extra={"items": len(doc.items), "bundles": len(doc.bundles)}
    )
    return True
