from typing import Any, Dict, List, Optional

import pytest

from oasis_terminal import discord_transport
from oasis_terminal.config import Settings
from oasis_terminal.jobs import JobContext
from oasis_terminal.memory import PipelineState
from oasis_terminal.models import CandidateItem, PublishRequest

HOOK = "https://discord.test/api/webhooks/{}/token-{}"


class FakePublisher:
    """Collects publish requests instead of posting them."""

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.requests: List[PublishRequest] = []

    def publish(self, request: PublishRequest) -> bool:
        self.requests.append(request)
        return self.ok

    def to(self, sink: str) -> List[PublishRequest]:
        return [r for r in self.requests if r.sink_id == sink]


class FakeSummarizer:
    """Returns canned text / JSON and records every prompt."""

    def __init__(self, text: Optional[str] = None, json_data: Any = None) -> None:
        self.text = text
        self.json_data = json_data
        self.calls: List[Dict[str, Any]] = []

    def summarize(self, prompt, system=None, json_mode=False, live_search=False):
        self.calls.append(
            {"prompt": prompt, "system": system, "json_mode": json_mode, "live_search": live_search}
        )
        return self.text

    def summarize_json(self, prompt, system=None, live_search=False):
        self.calls.append(
            {"prompt": prompt, "system": system, "json_mode": True, "live_search": live_search}
        )
        return self.json_data


class FakeFeeds:
    """Feed fetcher keyed by URL; a value that is an exception is raised."""

    def __init__(self, feeds: Optional[Dict[str, Any]] = None) -> None:
        self.feeds: Dict[str, Any] = dict(feeds or {})
        self.calls: List[str] = []

    def __call__(self, url: str, limit: int) -> List[CandidateItem]:
        self.calls.append(url)
        value = self.feeds.get(url, [])
        if isinstance(value, Exception):
            raise value
        return list(value)[:limit]


@pytest.fixture(autouse=True)
def _no_webhook_spacing(monkeypatch):
    """Keep the per-webhook pacing from sleeping between test posts."""
    monkeypatch.setenv("ALERTS_MIN_INTERVAL_MS", "0")
    discord_transport._RL_STATE.clear()
    yield
    discord_transport._RL_STATE.clear()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        gemini_api_key="test-key",
        webhook_macro=HOOK.format(1, "macro"),
        webhook_crypto=HOOK.format(2, "crypto"),
        webhook_forex=HOOK.format(3, "forex"),
        webhook_market=HOOK.format(4, "market"),
        webhook_alerts=HOOK.format(5, "alerts"),
        webhook_weekly=HOOK.format(6, "weekly"),
        webhook_liquidations=HOOK.format(7, "liq"),
        webhook_whale=HOOK.format(8, "whale"),
        webhook_academy=HOOK.format(9, "academy"),
        webhook_snapshots=HOOK.format(10, "snapshots"),
        role_id_macro="111",
        role_id_alpha="222",
        feed_urls=["https://feeds.test/a", "https://feeds.test/b"],
        data_dir=tmp_path,
    )


@pytest.fixture
def state(settings):
    return PipelineState.from_settings(settings)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def feeds():
    return FakeFeeds()


@pytest.fixture
def ctx(state, settings, summarizer, publisher, feeds):
    return JobContext(
        state=state,
        settings=settings,
        summarizer=summarizer,
        publisher=publisher,
        fetch_prices=lambda: {},
        feed_fetcher=feeds,
    )


def make_item(title: str, link: Optional[str] = None, **kw) -> CandidateItem:
    slug = "".join(c for c in title.lower() if c.isalnum())[:24]
    return CandidateItem(title=title, link=link or f"https://news.test/{slug}", **kw)


@pytest.fixture
def item():
    return make_item
