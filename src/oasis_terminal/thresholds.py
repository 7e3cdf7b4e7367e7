"""Psychological-level crossing detection.

A tracker remembers the last value observed for every asset and compares
each new observation against it. Prices are bucketed with floor division
by the asset's step size; moving into a different bucket is a crossing.

Only one event is reported per observation however many buckets were
skipped: primed at 4999 with a 5000 step, an observation of 10001
reports a single upward crossing at 10000.
"""

from __future__ import annotations

import math
import threading
from typing import Dict, Optional

from .errors import InvalidConfiguration
from .logging_utils import get_logger
from .models import CrossingEvent

log = get_logger("thresholds")


def canonical_asset_key(asset: str) -> str:
    """Map display tickers and storage keys onto one key.

    ``"btc "``, ``"BTC"`` and ``"Btc"`` all resolve to ``"BTC"``; forex
    pairs keep their slash (``"xau/usd"`` -> ``"XAU/USD"``).
    """
    return (asset or "").strip().upper()


def format_level(asset: str, level: float) -> str:
    """Render a crossed level for display.

    JPY and gold pairs quote with 2 decimals, other forex pairs with 4;
    everything else gets thousands separators and no decimals unless the
    level is fractional.
    """
    key = canonical_asset_key(asset)
    if "/" in key:
        if "JPY" in key or "XAU" in key:
            return f"{level:.2f}"
        return f"{level:.4f}"
    if float(level).is_integer():
        return f"{level:,.0f}"
    return f"{level:,.2f}"


class ThresholdTracker:
    """Per-asset last-value memory with level-crossing detection."""

    def __init__(self, name: str = "thresholds") -> None:
        self.name = name
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def observe(self, asset: str, value: float, step: float) -> Optional[CrossingEvent]:
        if step is None or step <= 0:
            raise InvalidConfiguration(f"step size for {asset} must be > 0 (got {step})")
        key = canonical_asset_key(asset)
        current = float(value)
        if not math.isfinite(current):
            # NaN/inf would poison the stored baseline
            log.warning("threshold_value_rejected tracker=%s asset=%s value=%s", self.name, key, current)
            return None

        with self._lock:
            previous = self._last.get(key, 0.0)
            self._last[key] = current

        if not previous:
            log.debug("threshold_primed tracker=%s asset=%s value=%s", self.name, key, current)
            return None

        prev_level = math.floor(previous / step)
        curr_level = math.floor(current / step)
        if prev_level == curr_level:
            return None

        event = CrossingEvent(
            asset=key,
            previous=previous,
            current=current,
            step=float(step),
            crossed_level=curr_level * step,
            direction="up" if current > previous else "down",
        )
        log.info(
            "threshold_crossed tracker=%s asset=%s direction=%s level=%s prev=%s curr=%s",
            self.name,
            key,
            event.direction,
            event.crossed_level,
            previous,
            current,
        )
        return event

    def prime(self, asset: str, value: float) -> None:
        """Set the baseline for ``asset`` without evaluating a crossing."""
        with self._lock:
            self._last[canonical_asset_key(asset)] = float(value)

    def last_value(self, asset: str) -> Optional[float]:
        with self._lock:
            return self._last.get(canonical_asset_key(asset))

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)
