"""Deduplication helpers for feed items.

This module normalizes headlines into fingerprints and keeps the bounded
history of fingerprints already handled by the ingestion loop. The
history lives in memory only; a restart begins with an empty ledger, so
an item seen before the restart may be published once more.
"""

from __future__ import annotations

import hashlib
import re
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Iterator, Optional

from .errors import InvalidConfiguration
from .logging_utils import get_logger

log = get_logger("dedupe")

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_title(title: Optional[str]) -> str:
    """Lower-case ``title`` and drop every non-alphanumeric character.

    >>> normalize_title("Fed Signals Rate-Cut!")
    'fedsignalsratecut'
    """
    return _NON_ALNUM.sub("", (title or "").lower())


def fingerprint(
    title: Optional[str],
    published: Optional[datetime] = None,
    strict: bool = False,
) -> str:
    """Compute the dedup key for an item.

    By default the key is the normalized title itself, so the same headline
    syndicated by two feeds collapses to one entry. With ``strict`` the key
    is a SHA1 of the normalized title plus the publish timestamp, which
    lets a re-run headline with a new timestamp through.
    """
    normalized = normalize_title(title)
    if not strict:
        return normalized
    ts = published.isoformat() if published is not None else ""
    return hashlib.sha1(f"{normalized}|{ts}".encode("utf-8")).hexdigest()


class HistorySet:
    """Insertion-ordered, size-capped set of fingerprints.

    ``contains`` is O(1); ``record`` appends and, once the cap is exceeded,
    evicts the single oldest fingerprint. There is no other removal.
    """

    def __init__(self, max_size: int = 500, name: str = "history") -> None:
        if max_size <= 0:
            raise InvalidConfiguration(f"history max_size must be > 0 (got {max_size})")
        self.max_size = max_size
        self.name = name
        self._items: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def contains(self, fp: str) -> bool:
        with self._lock:
            return fp in self._items

    def record(self, fp: str) -> None:
        with self._lock:
            if fp in self._items:
                return
            self._items[fp] = None
            while len(self._items) > self.max_size:
                evicted, _ = self._items.popitem(last=False)
                log.debug("history_evicted name=%s fp=%s", self.name, evicted[:40])

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def oldest(self) -> Optional[str]:
        with self._lock:
            return next(iter(self._items), None)

    def __contains__(self, fp: object) -> bool:
        return isinstance(fp, str) and self.contains(fp)

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._items))
