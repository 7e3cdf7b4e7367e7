"""Ingestion loop behaviour: dedup, routing, buffers and error isolation."""

from oasis_terminal.classify import COLOR_BEARISH, COLOR_BULLISH
from oasis_terminal.dedupe import fingerprint
from oasis_terminal.errors import SourceFetchError
from oasis_terminal.models import CandidateItem, MemoryRecord
from oasis_terminal.pipeline import IngestionLoop, extract_image

from .conftest import FakeFeeds, make_item

A = "https://feeds.test/a"
B = "https://feeds.test/b"


def _loop(state, publisher, settings, feeds):
    return IngestionLoop(state, publisher, settings=settings, fetcher=feeds)


def test_macro_headline_end_to_end(state, publisher, settings):
    item = make_item("Fed Signals Rate Cut as CPI Cools", snippet="x" * 1000)
    feeds = FakeFeeds({A: [item]})
    stats = _loop(state, publisher, settings, feeds).run_once([A])

    assert stats.published == 1
    (req,) = publisher.requests
    assert req.sink_id == settings.webhook_macro
    assert req.mention == settings.role_id_macro
    assert req.embed.color == COLOR_BULLISH
    assert req.embed.title.endswith("Fed Signals Rate Cut as CPI Cools")
    assert req.embed.url == item.link
    assert len(req.embed.description) == settings.snippet_max_chars

    record = MemoryRecord(item.title, item.link)
    assert state.context_window.snapshot() == [record]
    assert state.weekly_digest.snapshot() == [record]


def test_crypto_headline_end_to_end(state, publisher, settings):
    item = make_item("Bitcoin Crashes Below Key Support Amid Hack Fears")
    feeds = FakeFeeds({A: [item]})
    _loop(state, publisher, settings, feeds).run_once([A])

    (req,) = publisher.requests
    assert req.sink_id == settings.webhook_crypto
    assert req.mention == settings.role_id_alpha
    assert req.embed.color == COLOR_BEARISH
    assert req.meta == {"category": "crypto", "polarity": "bearish"}


def test_excluded_headline_is_recorded_but_never_published(state, publisher, settings):
    item = make_item("Shiba Inu Rallies 40% Overnight")
    feeds = FakeFeeds({A: [item], B: [make_item("Shiba Inu Rallies 40% Overnight", link="https://other.test/x")]})
    loop = _loop(state, publisher, settings, feeds)

    first = loop.run_once([A])
    assert publisher.requests == []
    assert state.history.contains(fingerprint(item.title))
    assert first.unclassified == 1

    second = loop.run_once([A, B])
    assert publisher.requests == []
    assert second.duplicates == 2
    assert second.unclassified == 0
    assert len(state.weekly_digest) == 0


def test_same_item_across_passes_and_feeds_publishes_once(state, publisher, settings):
    item = make_item("Bitcoin ETF Approval Expected Friday")
    feeds = FakeFeeds({A: [item], B: [item]})
    loop = _loop(state, publisher, settings, feeds)
    loop.run_once([A, B])
    loop.run_once([A, B])

    assert len(publisher.requests) == 1
    assert len(state.weekly_digest) == 1
    assert len(state.context_window) == 1


def test_unclassified_items_are_recorded(state, publisher, settings):
    item = make_item("Local Bakery Opens New Store")
    _loop(state, publisher, settings, FakeFeeds({A: [item]})).run_once([A])
    assert publisher.requests == []
    assert state.history.contains(fingerprint(item.title))
    assert len(state.weekly_digest) == 0


def test_fetch_failure_does_not_stop_other_sources(state, publisher, settings):
    feeds = FakeFeeds(
        {
            A: SourceFetchError(A, "http 503"),
            B: [make_item("Fed Signals Rate Cut as CPI Cools")],
        }
    )
    stats = _loop(state, publisher, settings, feeds).run_once([A, B])
    assert feeds.calls == [A, B]
    assert stats.sources_failed == 1
    assert stats.sources_ok == 1
    assert len(publisher.requests) == 1


def test_unexpected_source_error_is_isolated(state, publisher, settings):
    feeds = FakeFeeds({A: ValueError("parser blew up"), B: [make_item("Fed Signals Rate Cut as CPI Cools")]})
    stats = _loop(state, publisher, settings, feeds).run_once([A, B])
    assert stats.sources_failed == 1
    assert len(publisher.requests) == 1


def test_publish_failure_still_records(state, settings):
    from .conftest import FakePublisher

    publisher = FakePublisher(ok=False)
    items = [make_item("Fed Signals Rate Cut as CPI Cools"), make_item("Bitcoin Crashes Below Key Support")]
    stats = _loop(state, publisher, settings, FakeFeeds({A: items})).run_once([A])

    assert len(publisher.requests) == 2
    assert stats.publish_failed == 2
    for it in items:
        assert state.history.contains(fingerprint(it.title))
    assert len(state.weekly_digest) == 2


def test_publisher_exception_does_not_stop_later_items(state, settings):
    class Exploding:
        def __init__(self):
            self.calls = 0

        def publish(self, request):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            return True

    publisher = Exploding()
    items = [make_item("Fed Signals Rate Cut as CPI Cools"), make_item("Bitcoin Crashes Below Key Support")]
    stats = _loop(state, publisher, settings, FakeFeeds({A: items})).run_once([A])

    assert publisher.calls == 2
    assert stats.item_errors == 1
    assert stats.published == 1
    # the failed item is still recorded and will not be retried
    assert state.history.contains(fingerprint(items[0].title))


def test_per_poll_limit(state, publisher, settings):
    settings.feed_items_per_poll = 2
    items = [
        make_item("Bitcoin Miners Expand"),
        make_item("Ethereum Devs Ship Upgrade"),
        make_item("Coinbase Lists New Stablecoin"),
    ]
    feeds = FakeFeeds({A: items})
    stats = _loop(state, publisher, settings, feeds).run_once([A])
    assert stats.items_seen == 2
    assert not state.history.contains(fingerprint(items[2].title))


def test_forex_and_fx_sensitive_macro_feed_forex_digest(state, publisher, settings):
    items = [
        make_item("Yen Slides as BOJ Holds"),
        make_item("Treasury Bond Yield Spikes"),
        make_item("Powell Speaks on Labor Market"),
    ]
    _loop(state, publisher, settings, FakeFeeds({A: items})).run_once([A])
    forex_titles = [r.title for r in state.forex_digest.snapshot()]
    assert forex_titles == ["Yen Slides as BOJ Holds", "Treasury Bond Yield Spikes"]
    assert publisher.to(settings.webhook_forex)[0].embed.title.endswith("Yen Slides as BOJ Holds")


def test_missing_sink_skips_publish_but_remembers(state, publisher, settings):
    settings.webhook_macro = ""
    item = make_item("Fed Signals Rate Cut as CPI Cools")
    stats = _loop(state, publisher, settings, FakeFeeds({A: [item]})).run_once([A])
    assert publisher.requests == []
    assert stats.publish_failed == 1
    assert len(state.weekly_digest) == 1
    assert state.history.contains(fingerprint(item.title))


def test_default_sources_come_from_settings(state, publisher, settings):
    feeds = FakeFeeds()
    _loop(state, publisher, settings, feeds).run_once()
    assert feeds.calls == settings.feed_urls


def test_extract_image_fallback_order():
    base = dict(title="t", link="l")
    html = '<p><img src="https://img.test/html.png"></p>'
    assert (
        extract_image(CandidateItem(enclosure_url="https://img.test/enc.jpg", media_url="https://img.test/m.jpg", content_html=html, **base))
        == "https://img.test/enc.jpg"
    )
    assert extract_image(CandidateItem(media_url="https://img.test/m.jpg", content_html=html, **base)) == "https://img.test/m.jpg"
    assert extract_image(CandidateItem(content_html=html, **base)) == "https://img.test/html.png"
    assert extract_image(CandidateItem(content_html="<p>no image</p>", **base)) is None
    assert extract_image(CandidateItem(**base)) is None
