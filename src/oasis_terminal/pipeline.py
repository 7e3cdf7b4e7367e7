"""One polling pass over the configured feeds.

For each source the loop fetches the few most recent items and, for every
item it has not seen before, classifies the headline, publishes it to the
category's channel and remembers it for the digest jobs. The fingerprint
is recorded for every new item, whatever happened to it, so excluded and
unclassified headlines are not evaluated again on the next poll.

A failing source is logged and skipped; a failing item never stops the
items after it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .alerts import BOT_AVATAR, CRYPTO_FOOTER, FOREX_FOOTER, MACRO_FOOTER, Publisher
from .classify import Classifier, is_fx_sensitive, polarity_color
from .config import Settings, get_settings
from .dedupe import fingerprint
from .errors import SourceFetchError
from .feeds import fetch_feed
from .logging_utils import get_logger
from .memory import PipelineState
from .models import (
    CandidateItem,
    Category,
    Classification,
    Embed,
    MemoryRecord,
    PublishRequest,
)

log = get_logger("pipeline")

Fetcher = Callable[[str, int], List[CandidateItem]]

_IMG_SRC_RE = re.compile(r'src="([^"]+)"')


@dataclass(frozen=True)
class SinkRoute:
    webhook_attr: str
    display_name: str
    footer: str
    mention_attr: Optional[str] = None


ROUTES = {
    Category.CRYPTO: SinkRoute(
        "webhook_crypto", "OASIS | Crypto Intel", CRYPTO_FOOTER, "role_id_alpha"
    ),
    Category.MACRO: SinkRoute(
        "webhook_macro", "OASIS | Macro Terminal", MACRO_FOOTER, "role_id_macro"
    ),
    Category.FOREX: SinkRoute("webhook_forex", "OASIS | FX Desk", FOREX_FOOTER),
}


def extract_image(item: CandidateItem) -> Optional[str]:
    """Best-effort image for an item.

    Tries the enclosure URL, then the media-content URL, then the first
    ``src="..."`` inside the item's HTML content.
    """
    if item.enclosure_url:
        return item.enclosure_url
    if item.media_url:
        return item.media_url
    if item.content_html:
        m = _IMG_SRC_RE.search(item.content_html)
        if m:
            return m.group(1)
    return None


@dataclass
class IngestStats:
    sources_ok: int = 0
    sources_failed: int = 0
    items_seen: int = 0
    duplicates: int = 0
    unclassified: int = 0
    published: int = 0
    publish_failed: int = 0
    item_errors: int = 0

    def as_log_fields(self) -> str:
        return " ".join(f"{k}={v}" for k, v in self.__dict__.items())


class IngestionLoop:
    def __init__(
        self,
        state: PipelineState,
        publisher: Publisher,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
        classifier: Optional[Classifier] = None,
    ) -> None:
        self.state = state
        self.publisher = publisher
        self.settings = settings or get_settings()
        self.fetcher = fetcher or self._fetch
        self.classifier = classifier or Classifier()

    def _fetch(self, url: str, limit: int) -> List[CandidateItem]:
        return fetch_feed(url, limit=limit, timeout=self.settings.feed_timeout_secs)

    def build_request(
        self, item: CandidateItem, cls: Classification
    ) -> Optional[PublishRequest]:
        """Publish request for a classified item, or None if its sink is unset."""
        route = ROUTES.get(cls.category)
        if route is None:
            return None
        sink = getattr(self.settings, route.webhook_attr, "")
        if not sink:
            return None
        mention = getattr(self.settings, route.mention_attr, "") if route.mention_attr else ""
        embed = Embed(
            title=f"🚨 {item.title}",
            description=(item.snippet or "")[: self.settings.snippet_max_chars],
            url=item.link,
            color=polarity_color(cls.polarity),
            image=extract_image(item),
            footer=route.footer,
        )
        return PublishRequest(
            sink_id=sink,
            display_name=route.display_name,
            embed=embed,
            avatar_uri=BOT_AVATAR,
            mention=mention or None,
            meta={"category": cls.category.value, "polarity": cls.polarity.value},
        )

    def process_item(self, item: CandidateItem, stats: IngestStats) -> None:
        fp = fingerprint(item.title, item.published, strict=self.settings.strict_fingerprint)
        if self.state.history.contains(fp):
            stats.duplicates += 1
            return
        stats.items_seen += 1
        try:
            cls = self.classifier.classify(item.title)
            if not cls.publishable:
                stats.unclassified += 1
                return

            request = self.build_request(item, cls)
            if request is None:
                stats.publish_failed += 1
                log.warning(
                    "sink_missing category=%s title=%s", cls.category.value, item.title[:80]
                )
            elif self.publisher.publish(request):
                stats.published += 1
            else:
                stats.publish_failed += 1

            fx = cls.category is Category.FOREX or (
                cls.category is Category.MACRO and is_fx_sensitive(item.title)
            )
            self.state.remember(MemoryRecord(item.title, item.link), forex=fx)
        finally:
            self.state.history.record(fp)

    def run_source(self, url: str, stats: IngestStats) -> None:
        try:
            items = self.fetcher(url, self.settings.feed_items_per_poll)
        except SourceFetchError as e:
            stats.sources_failed += 1
            log.warning("feed_error url=%s err=%s", url[:80], e)
            return
        stats.sources_ok += 1

        for item in items[: self.settings.feed_items_per_poll]:
            try:
                self.process_item(item, stats)
            except Exception:
                stats.item_errors += 1
                log.error("item_error url=%s title=%s", url[:80], item.title[:80], exc_info=True)

    def run_once(self, sources: Optional[Iterable[str]] = None) -> IngestStats:
        stats = IngestStats()
        for url in list(sources if sources is not None else self.settings.feed_urls):
            try:
                self.run_source(url, stats)
            except Exception:
                stats.sources_failed += 1
                log.error("feed_error url=%s", url[:80], exc_info=True)
        log.info("ingest_pass_done %s", stats.as_log_fields())
        return stats
