from __future__ import annotations

import os
import threading
import time
from typing import Any, Dict, Optional, Tuple

import requests  # runtime dep

# --- Small per-webhook soft rate limiter (header-aware) ---
_RL_LOCK = threading.Lock()
_RL_STATE: Dict[str, Dict[str, float]] = {}


def _min_interval_seconds() -> float:
    try:
        ms = int((os.getenv("ALERTS_MIN_INTERVAL_MS") or "450").strip() or "450")
    except ValueError:
        ms = 450
    # keep within sane bounds
    ms = max(0, min(ms, 2000))
    return ms / 1000.0


def _rl_pre_wait(url: str) -> None:
    """Sleep if a previous response asked us to, and always space posts a bit."""
    now = time.time()
    wait = 0.0
    with _RL_LOCK:
        st = _RL_STATE.get(url) or {}
        next_ok_at = float(st.get("next_ok_at", 0.0))
        if next_ok_at > now:
            wait = next_ok_at - now
        st["next_ok_at"] = max(next_ok_at, now) + _min_interval_seconds()
        _RL_STATE[url] = st
    if wait > 0:
        time.sleep(wait)


def _header_seconds(value: Any) -> Optional[float]:
    try:
        wait_s = float(value)
    except (TypeError, ValueError):
        return None
    # some proxies send ms
    if wait_s > 1000:
        wait_s = wait_s / 1000.0
    return wait_s


def _rl_note_headers(url: str, headers: Any, is_429: bool = False) -> None:
    """
    Remember Discord's rate-limit hints for the *next* post to this webhook.
    - On 429: pause for Reset-After / Retry-After.
    - On success: pause only when Remaining <= 0.
    """
    reset_after = headers.get("X-RateLimit-Reset-After")
    if reset_after is None and is_429:
        reset_after = headers.get("Retry-After")
    wait_s = _header_seconds(reset_after)
    if wait_s is None:
        return

    should_pace = bool(is_429)
    if not should_pace:
        remaining = _header_seconds(headers.get("X-RateLimit-Remaining"))
        should_pace = remaining is not None and remaining <= 0
    if not should_pace:
        return

    with _RL_LOCK:
        st = _RL_STATE.get(url) or {}
        st["next_ok_at"] = max(
            float(st.get("next_ok_at", 0.0)), time.time() + wait_s + 0.05
        )
        _RL_STATE[url] = st


def post_discord(
    url: str, payload: dict, session=None, timeout: float = 10
) -> Tuple[bool, Optional[int]]:
    """
    Do a header-aware POST with a soft pre-wait. A single attempt is made;
    a 429 only delays the next post to the same webhook.
    Returns (ok, status_code); status is None when the request never got a
    response.
    """
    _rl_pre_wait(url)
    try:
        resp = (session or requests).post(url, json=payload, timeout=timeout)
    except requests.RequestException:
        return False, None
    status = getattr(resp, "status_code", None)
    _rl_note_headers(url, resp.headers or {}, is_429=(status == 429))
    return (status is not None and 200 <= status < 300), status
