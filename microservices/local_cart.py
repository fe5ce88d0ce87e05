"""
Device-local cart kept while the shopper is anonymous.

The cache only reads and replaces the stored snapshot; merging it into a
server cart is done by services.cart_sync_service.
"""
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from errors import CartValidationError
from logging_config import get_logger
from schemas.cart_schemas import LocalCartEntry

logger = get_logger(__name__)

LOCAL_CART_KEY = "storefront-cart"


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set_item(self, key: str, value: str):
        self.values[key] = value

    def remove_item(self, key: str):
        self.values.pop(key, None)


class FileStorage:
    # one json file per key inside a device directory, survives restarts
    def __init__(self, directory):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str):
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def remove_item(self, key: str):
        self._path(key).unlink(missing_ok=True)


def parse_entry(value) -> LocalCartEntry:
    # raises CartValidationError with a short reason for a stored value that is not a usable entry
    if not isinstance(value, dict):
        raise CartValidationError("Entry is not an object")
    try:
        return LocalCartEntry.model_validate(value)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise CartValidationError(f"Field {field}: {error['msg']}") from e


def dump_entries(entries: Iterable) -> list:
    # parsed entries are dumped, raw stored values are kept as they were
    return [entry.model_dump() if isinstance(entry, LocalCartEntry) else entry for entry in entries]


class LocalCartCache:
    def __init__(self, storage=None, key: str = LOCAL_CART_KEY):
        self.storage = storage if storage is not None else MemoryStorage()
        self.key = key

    def load_raw(self) -> list:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable local cart: %s", e)
            return []
        if not isinstance(data, list):
            logger.warning("Discarding local cart that is not a list")
            return []
        return data

    def load(self) -> List[LocalCartEntry]:
        entries = []
        for position, value in enumerate(self.load_raw()):
            try:
                entries.append(parse_entry(value))
            except CartValidationError as e:
                logger.warning("Dropping local cart entry %d: %s", position, e.message)
        return entries

    def save(self, entries: Iterable):
        self.storage.set_item(self.key, json.dumps(dump_entries(entries), ensure_ascii=False))

    def clear(self):
        self.storage.remove_item(self.key)

    @classmethod
    def from_entries(cls, entries: Iterable) -> "LocalCartCache":
        # wraps a snapshot posted by a client in a throwaway cache
        cache = cls(MemoryStorage())
        cache.save(entries)
        return cache
