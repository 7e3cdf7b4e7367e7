"""In-memory rolling buffers and the pipeline state that owns them."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Generic, List, Optional, TypeVar

from .config import Settings, get_settings
from .dedupe import HistorySet
from .errors import InvalidConfiguration
from .models import MemoryRecord
from .thresholds import ThresholdTracker

T = TypeVar("T")


class RollingBuffer(Generic[T]):
    """Ordered buffer with optional FIFO cap.

    A capped buffer (the context window) slides on every append and is
    never drained. An uncapped buffer (a digest accumulator) grows until
    its owning job calls :meth:`drain_all`.
    """

    def __init__(self, cap: Optional[int] = None, name: str = "buffer") -> None:
        if cap is not None and cap <= 0:
            raise InvalidConfiguration(f"{name} cap must be > 0 (got {cap})")
        self.cap = cap
        self.name = name
        self._items: Deque[T] = deque(maxlen=cap)
        self._lock = threading.Lock()

    def append(self, record: T) -> None:
        with self._lock:
            self._items.append(record)

    def snapshot(self, n: Optional[int] = None) -> List[T]:
        """Return the last ``n`` records (all when ``n`` is None), oldest first."""
        with self._lock:
            items = list(self._items)
        if n is None:
            return items
        if n <= 0:
            return []
        return items[-n:]

    def drain_all(self) -> List[T]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def size_at_least(self, n: int) -> bool:
        with self._lock:
            return len(self._items) >= n

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class PipelineState:
    """Everything the jobs share for the lifetime of the process."""

    history: HistorySet
    context_window: RollingBuffer[MemoryRecord]
    weekly_digest: RollingBuffer[MemoryRecord] = field(
        default_factory=lambda: RollingBuffer(name="weekly_digest")
    )
    forex_digest: RollingBuffer[MemoryRecord] = field(
        default_factory=lambda: RollingBuffer(name="forex_digest")
    )
    crypto_levels: ThresholdTracker = field(
        default_factory=lambda: ThresholdTracker("crypto")
    )
    forex_levels: ThresholdTracker = field(
        default_factory=lambda: ThresholdTracker("forex")
    )
    whale_history: HistorySet = field(
        default_factory=lambda: HistorySet(20, name="whale_history")
    )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PipelineState":
        s = settings or get_settings()
        return cls(
            history=HistorySet(s.history_max, name="history"),
            context_window=RollingBuffer(s.context_window_size, name="context_window"),
            whale_history=HistorySet(s.whale_history_max, name="whale_history"),
        )

    def remember(self, record: MemoryRecord, forex: bool = False) -> None:
        """Append a classified item to the buffers that track it."""
        self.context_window.append(record)
        self.weekly_digest.append(record)
        if forex:
            self.forex_digest.append(record)
