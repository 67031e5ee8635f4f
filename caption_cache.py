"""
Translation caches.

ResultCache maps a caption-list fingerprint to a full, previously completed
translation and lives in a key-value store. SentenceCache is the in-memory
sentence -> translation map used by the incremental path.
"""

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from captions import CaptionItem, items_from_dicts, items_to_dicts
from translator_errors import CacheError

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "lecture_"


# ─────────────────────────────────────────────────────────
#  Key-value stores
# ─────────────────────────────────────────────────────────
class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    def __init__(self):
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """Key-value store persisted as a single JSON object on disk"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        self._data = {}
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                self._data = None
                raise CacheError(f"Cannot read cache file {self.path}: {e}") from e
            if isinstance(data, dict):
                self._data = data
        return self._data

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise CacheError(f"Cannot write cache file {self.path}: {e}") from e


# ─────────────────────────────────────────────────────────
#  Result cache (fingerprint -> full translation)
# ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    items: list[CaptionItem] = field(default_factory=list)
    created_at: float = 0.0


class ResultCache:
    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def key_for(fp: str) -> str:
        return f"{CACHE_KEY_PREFIX}{fp}"

    def get(self, fp: str) -> CacheEntry | None:
        """Cached translation for a fingerprint; read failures count as a miss"""
        try:
            raw = self.store.get(self.key_for(fp))
        except CacheError as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", fp, e)
            return None
        if not raw:
            return None
        try:
            items = items_from_dicts(raw["captions"])
            created_at = float(raw.get("timestamp", 0)) / 1000.0
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring malformed cache entry %s: %s", fp, e)
            return None
        return CacheEntry(fingerprint=fp, items=items, created_at=created_at)

    def put(self, fp: str, items: list[CaptionItem]) -> bool:
        """Upsert the full translation; returns False when the write failed"""
        value = {
            "captions": items_to_dicts(items),
            "timestamp": int(time.time() * 1000),
        }
        try:
            self.store.set(self.key_for(fp), value)
        except CacheError as e:
            logger.warning("Cache write failed for %s: %s", fp, e)
            return False
        logger.info("Saved to cache: %s", self.key_for(fp))
        return True


# ─────────────────────────────────────────────────────────
#  Sentence cache (in memory, not persisted)
# ─────────────────────────────────────────────────────────
class SentenceCache:
    """Source sentence -> translation. Unbounded unless max_entries is given (LRU)."""

    def __init__(self, max_entries: int | None = None):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, sentence: str) -> str | None:
        if sentence in self._entries:
            self._entries.move_to_end(sentence)
            self.hits += 1
            return self._entries[sentence]
        self.misses += 1
        return None

    def set(self, sentence: str, translation: str) -> None:
        if sentence in self._entries:
            self._entries.pop(sentence)
        self._entries[sentence] = translation
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> tuple[int, int]:
        """Returns (hits, misses)"""
        return self.hits, self.misses

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, sentence: str) -> bool:
        return sentence in self._entries
