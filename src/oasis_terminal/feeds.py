# src/oasis_terminal/feeds.py
from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser  # type: ignore
import requests
from bs4 import BeautifulSoup
from dateutil import parser as dtparse

from .errors import SourceFetchError
from .logging_utils import get_logger
from .models import CandidateItem

log = get_logger("feeds")

USER_AGENT = "Mozilla/5.0 (compatible; OasisTerminal/1.0; +https://discord.com)"


def _get(url: str, timeout: float = 12) -> str:
    """GET a feed body; raise :class:`SourceFetchError` on any failure."""
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": (
            "application/rss+xml, application/atom+xml, "
            "application/xml;q=0.9, */*;q=0.8"
        ),
    }
    try:
        r = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        raise SourceFetchError(url, e.__class__.__name__) from e
    if r.status_code != 200:
        raise SourceFetchError(url, f"http {r.status_code}")
    return r.text


def _to_utc(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a feed timestamp into an aware UTC datetime, or None."""
    if not dt_str:
        return None
    try:
        d = dtparse.parse(dt_str)
    except (ValueError, OverflowError):
        log.debug("timestamp_parse_failed dt_str=%s", dt_str)
        return None
    if d.tzinfo is None:
        d = d.replace(tzinfo=timezone.utc)
    return d.astimezone(timezone.utc)


def clean_html_content(text: Optional[str]) -> str:
    """
    Decode entities, remove tags, and collapse whitespace.

    >>> clean_html_content("Gold &amp; Silver <b>rally</b>")
    'Gold & Silver rally'

    >>> clean_html_content(None)
    ''
    """
    if not text:
        return ""
    decoded = html.unescape(text)
    # separator=' ' keeps words in adjacent tags apart
    text_only = BeautifulSoup(decoded, "html.parser").get_text(separator=" ")
    return re.sub(r"\s+", " ", text_only).strip()


def _first_url(items: Any, key: str) -> Optional[str]:
    for it in items or []:
        try:
            url = it.get(key)
        except AttributeError:
            continue
        if url:
            return str(url)
    return None


def _content_html(e: Any) -> Optional[str]:
    content = e.get("content") or []
    for block in content:
        value = block.get("value") if hasattr(block, "get") else None
        if value:
            return value
    return e.get("summary") or e.get("description")


def _normalize_entry(source: str, e: Any) -> Optional[CandidateItem]:
    title = clean_html_content(e.get("title"))
    link = (e.get("link") or "").strip()
    if not title or not link:
        return None

    published = _to_utc(e.get("published") or e.get("updated"))
    raw_html = _content_html(e)
    snippet = clean_html_content(
        e.get("summary") or e.get("description") or e.get("contentSnippet")
    )

    return CandidateItem(
        title=title,
        link=link,
        published=published,
        snippet=snippet or None,
        source=source,
        enclosure_url=_first_url(e.get("enclosures"), "href"),
        media_url=_first_url(e.get("media_content"), "url"),
        content_html=raw_html,
    )


def parse_feed(text: str, source: str, limit: Optional[int] = None) -> List[CandidateItem]:
    """Parse an RSS/Atom document into candidate items, most recent first."""
    parsed = feedparser.parse(text)
    if parsed.get("bozo") and not parsed.get("entries"):
        exc = parsed.get("bozo_exception")
        raise SourceFetchError(source, f"unparseable feed: {exc.__class__.__name__}")

    items: List[CandidateItem] = []
    for e in parsed.get("entries") or []:
        item = _normalize_entry(source, e)
        if item is not None:
            items.append(item)

    # Feeds are usually newest first already; only reorder when every
    # entry carries a timestamp.
    if items and all(i.published is not None for i in items):
        items.sort(key=lambda i: i.published, reverse=True)

    if limit is not None:
        items = items[: max(limit, 0)]
    return items


def fetch_feed(url: str, limit: Optional[int] = None, timeout: float = 12) -> List[CandidateItem]:
    """Fetch ``url`` and return up to ``limit`` of its most recent items.

    Raises :class:`SourceFetchError` when the feed cannot be retrieved or
    parsed.
    """
    text = _get(url, timeout=timeout)
    items = parse_feed(text, source=url, limit=limit)
    log.debug("feed_fetched url=%s items=%d", url[:80], len(items))
    return items
