# storefront/utils/local_storage.py
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from storefront.schemas.cart import CartLine

logger = logging.getLogger(__name__)


class LocalStorage:
    """Synchronous key-value store of strings, scoped to one device.

    Mirrors the browser's local storage: values are opaque strings and
    reads of a missing key return None.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryLocalStorage(LocalStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class FileLocalStorage(LocalStorage):
    """Local storage persisted as one JSON object per device on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Unreadable local storage file %s, starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves a half written file
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


def read_guest_lines(storage: LocalStorage, key: str) -> List[CartLine]:
    """Read the guest cart stored under `key`.

    Missing or corrupt data reads as an empty cart. Entries that are not
    valid lines are dropped, entries written with the legacy `qty` field are
    accepted, and repeated variant ids are folded into one line.
    """
    raw = storage.get_item(key)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Corrupt guest cart under %s, treating as empty", key)
        return []
    if not isinstance(data, list):
        return []

    folded: Dict[str, int] = {}
    for entry in data:
        if not isinstance(entry, dict):
            continue
        if "quantity" not in entry and "qty" in entry:
            entry = {**entry, "quantity": entry["qty"]}
        try:
            line = CartLine.model_validate(entry)
        except ValidationError:
            logger.debug("Dropping invalid guest cart entry %r", entry)
            continue
        folded[line.variant_id] = folded.get(line.variant_id, 0) + line.quantity

    return [CartLine(variant_id=vid, quantity=qty) for vid, qty in folded.items()]


def write_guest_lines(storage: LocalStorage, key: str, lines: List[CartLine]) -> None:
    payload = [line.model_dump(by_alias=True) for line in lines]
    storage.set_item(key, json.dumps(payload))
