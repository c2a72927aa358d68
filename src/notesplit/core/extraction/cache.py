import hashlib
import json
import logging
from collections import OrderedDict

from notesplit.core.extraction.base import PageClassification

logger = logging.getLogger(__name__)


class ClassificationCache:
    """In-process LRU cache for page classifications.

    A classification depends only on the page content and the extractor
    settings, so the key is ``(content_hash, page_number, config_hash)``.
    """

    CACHE_VERSION = "page_classifier_v1"

    def __init__(self, max_entries: int = 1024):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, PageClassification] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _sha256(value: str) -> str:
        return hashlib.sha256(value.encode("utf-8")).hexdigest()

    @classmethod
    def build_cache_key(cls, *, content_hash: str, page_number: int, config_hash: str) -> str:
        payload = {
            "content_hash": content_hash,
            "page_number": page_number,
            "config_hash": config_hash,
            "cache_version": cls.CACHE_VERSION,
        }
        digest = cls._sha256(json.dumps(payload, sort_keys=True))
        return f"{cls.CACHE_VERSION}:{digest}"

    def get(self, key: str) -> PageClassification | None:
        if self.max_entries <= 0:
            return None
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.model_copy(deep=True)

    def set(self, key: str, value: PageClassification) -> None:
        if self.max_entries <= 0:
            return
        self._entries[key] = value.model_copy(deep=True)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached classification {evicted}")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
