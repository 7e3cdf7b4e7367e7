"""Scheduled jobs.

Every job is a function of a single :class:`JobContext`, so the scheduler,
the manual trigger routes and ``--once`` all run exactly the same code.
:func:`run_job` is the only way jobs are invoked: it refuses to start a
job that is already running and turns any exception into a logged
``False`` so nothing reaches the scheduler thread.
"""

from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .alerts import (
    ACADEMY_FOOTER,
    ALERT_FOOTER,
    BOT_AVATAR,
    BRIEF_FOOTER,
    FOREX_FOOTER,
    LIQ_FOOTER,
    LONDON_FOOTER,
    SENTIMENT_FOOTER,
    SETTLEMENT_FOOTER,
    WEEKLY_FOOTER,
    WEEKLY_HEADER_IMG,
    WHALE_FOOTER,
    Publisher,
)
from .classify import COLOR_BEARISH, COLOR_BULLISH, COLOR_NEUTRAL
from .config import Settings, get_settings
from .errors import InvalidConfiguration
from .logging_utils import get_logger
from .market import fetch_crypto_prices
from .memory import PipelineState
from .models import CrossingEvent, Embed, MemoryRecord, PublishRequest
from .pipeline import Fetcher, IngestionLoop, IngestStats
from .summarizer import Summarizer
from .thresholds import canonical_asset_key, format_level

log = get_logger("jobs")

FEAR_GREED_IMG = "https://alternative.me/crypto/fear-and-greed-index.png?t={ts}"

_NUMBER_RE = re.compile(r"\d+(?:,\d+)*(?:\.\d+)?")
_TOPIC_LINE_RE = re.compile(r"Topic:.*\n")
_WHALE_BEARISH_RE = re.compile(r"dump|inflow|exchange|sell", re.IGNORECASE)
_WHALE_BULLISH_RE = re.compile(r"accumulation|outflow|buy", re.IGNORECASE)

SAMPLE_FOREX_HEADLINES = [
    MemoryRecord("Gold Breaks $2,400 Amid Geopolitical Tensions", "https://cnbc.com"),
    MemoryRecord("ECB Signals Rate Cut for June as Inflation Cools", "https://bloomberg.com"),
    MemoryRecord("USD/JPY Hits 155.00 on Strong US Jobs Data", "https://reuters.com"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobContext:
    """Collaborators and state shared by every job."""

    state: PipelineState
    settings: Settings
    summarizer: Summarizer
    publisher: Publisher
    fetch_prices: Optional[Callable[[], Dict[str, float]]] = None
    feed_fetcher: Optional[Fetcher] = None
    clock: Callable[[], datetime] = _utcnow
    _locks: Dict[str, threading.Lock] = field(default_factory=dict, init=False, repr=False)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _ingestion: Optional[IngestionLoop] = field(default=None, init=False, repr=False)

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "JobContext":
        s = settings or get_settings()
        return cls(
            state=PipelineState.from_settings(s),
            settings=s,
            summarizer=Summarizer(s),
            publisher=Publisher(),
        )

    @property
    def ingestion(self) -> IngestionLoop:
        if self._ingestion is None:
            self._ingestion = IngestionLoop(
                self.state,
                self.publisher,
                settings=self.settings,
                fetcher=self.feed_fetcher,
            )
        return self._ingestion

    def prices(self) -> Dict[str, float]:
        if self.fetch_prices is not None:
            return self.fetch_prices()
        return fetch_crypto_prices(self.settings)

    def lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(name, threading.Lock())

    def require_sink(self, attr: str) -> str:
        sink = getattr(self.settings, attr, "")
        if not sink:
            raise InvalidConfiguration(f"{attr.upper()} is not set")
        return sink

    def post(self, sink: str, display_name: str, embed: Embed, mention: Optional[str] = None) -> bool:
        return self.publisher.publish(
            PublishRequest(
                sink_id=sink,
                display_name=display_name,
                embed=embed,
                avatar_uri=BOT_AVATAR,
                mention=mention,
            )
        )


def _source_lines(records: List[MemoryRecord], n: int) -> str:
    return "\n".join(f"• [{r.title}]({r.link})" for r in records[-n:])


# --- Real-time ---------------------------------------------------------------


def ingest(ctx: JobContext) -> IngestStats:
    return ctx.ingestion.run_once(ctx.settings.feed_urls)


def _crossing_embed(event: CrossingEvent) -> Embed:
    level = format_level(event.asset, event.crossed_level)
    price = format_level(event.asset, event.current)
    return Embed(
        title=f"⚡ PSYCHOLOGICAL LEVEL: {event.asset}",
        description=f"**{event.asset}** crossed **${level}**.\nPrice: **${price}**",
        color=COLOR_BULLISH if event.is_up else COLOR_BEARISH,
        footer=ALERT_FOOTER,
    )


def price_watchdog(ctx: JobContext) -> int:
    sink = ctx.require_sink("webhook_alerts")
    prices = ctx.prices()
    fired = 0
    for asset, step in ctx.settings.crypto_levels.items():
        price = prices.get(canonical_asset_key(asset))
        if price is None:
            continue
        event = ctx.state.crypto_levels.observe(asset, price, step)
        if event is None:
            continue
        fired += 1
        ctx.post(sink, "OASIS | Price Watchdog", _crossing_embed(event))
    return fired


FOREX_PROMPT = (
    "Get current prices for: Gold (XAU/USD), Silver (XAG/USD), EUR/USD, "
    "GBP/USD, USD/JPY, AUD/USD, USD/CAD."
)
FOREX_SYSTEM = (
    "Output STRICT JSON format only. Do not use Markdown. Example: "
    '{ "XAU/USD": 2350.50, "XAG/USD": 29.50, "EUR/USD": 1.0850, '
    '"GBP/USD": 1.2750, "USD/JPY": 155.00, "AUD/USD": 0.6650, "USD/CAD": 1.3650 }'
)


def forex_watchdog(ctx: JobContext) -> int:
    sink = ctx.require_sink("webhook_forex")
    quotes = ctx.summarizer.summarize_json(FOREX_PROMPT, FOREX_SYSTEM, live_search=True)
    if not isinstance(quotes, dict):
        log.warning("forex_quotes_unusable type=%s", type(quotes).__name__)
        return 0

    fired = 0
    for pair, raw in quotes.items():
        try:
            price = float(raw)
        except (TypeError, ValueError):
            log.debug("forex_quote_skipped pair=%s raw=%r", pair, raw)
            continue
        if not math.isfinite(price):
            log.debug("forex_quote_skipped pair=%s raw=%r", pair, raw)
            continue
        key = canonical_asset_key(pair)
        event = ctx.state.forex_levels.observe(key, price, ctx.settings.forex_step(key))
        if event is None:
            continue
        fired += 1
        label = "📈 BREAKOUT" if event.is_up else "📉 BREAKDOWN"
        ctx.post(
            sink,
            "OASIS | FX Watchdog",
            Embed(
                title=f"{label}: {key}",
                description=(
                    f"**{key}** has crossed the **{format_level(key, event.crossed_level)}** "
                    f"psychological level.\nCurrent Price: **{price}**"
                ),
                color=COLOR_BULLISH if event.is_up else COLOR_BEARISH,
                footer=FOREX_FOOTER,
            ),
        )
    return fired


# --- Flow trackers -----------------------------------------------------------


def liquidation_watch(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_liquidations")
    system = (
        "You are a Risk Manager. Search Liquidation Heatmaps (last 24h). "
        "Report ONLY on **BTC, ETH, and SOL**. Ignore memecoins.\n"
        "1. **MAJOR WALLS**: Where is >$50M liquidity sitting?\n"
        "2. **WHALE ACTIVITY**: Largest single liquidation.\n"
        '3. **RISK**: "Long Squeeze" or "Short Squeeze"?\n'
        "Format: Clean bullets. Institutional tone. No intro."
    )
    text = ctx.summarizer.summarize("Analyze Liquidations for BTC/ETH/SOL.", system, live_search=True)
    if not text:
        return False
    return ctx.post(
        sink,
        "OASIS | Liquidity Tracker",
        Embed(
            title="🔥 LIQUIDATION HEATMAP ANALYSIS",
            description=text,
            color=COLOR_BEARISH,
            footer=LIQ_FOOTER,
        ),
    )


def whale_color(text: str) -> int:
    if _WHALE_BEARISH_RE.search(text):
        return COLOR_BEARISH
    if _WHALE_BULLISH_RE.search(text):
        return COLOR_BULLISH
    return COLOR_NEUTRAL


def whale_key(text: str) -> str:
    """Dedup key for a whale report: its first number, commas removed."""
    m = _NUMBER_RE.search(text)
    return m.group(0).replace(",", "") if m else "unknown"


def whale_movement(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_whale")
    system = (
        "You are a Whale Tracker. Search Whale Alert.\n"
        "Strict Criteria: BTC > 1,000, ETH > 10,000, SOL > 100,000.\n"
        "Format:\n"
        "• **Asset**: [Amount] [Ticker] moved from [Wallet] to [Wallet].\n"
        "• **Implication**: [One phrase].\n"
        "If NONE match, output: NULL"
    )
    text = ctx.summarizer.summarize(
        "Scan for Whale Transfers (BTC > 1000, ETH > 10000).", system, live_search=True
    )
    if not text or "NULL" in text or "**Asset**" not in text:
        log.info("whale_skip reason=no_match")
        return False

    key = whale_key(text)
    if ctx.state.whale_history.contains(key):
        log.info("whale_skip reason=duplicate key=%s", key)
        return False
    ok = ctx.post(
        sink,
        "OASIS | Whale Tracker",
        Embed(title="🐋 WHALE MOVEMENT ALERT", description=text, color=whale_color(text), footer=WHALE_FOOTER),
    )
    ctx.state.whale_history.record(key)
    return ok


# --- Desk briefs -------------------------------------------------------------


def morning_brief(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_market")
    system = (
        "Senior Institutional Analyst. Search for the most critical global "
        "financial and crypto news (last 24h). Generate a **Morning Brief**: "
        "1. THE DANGER ZONE. 2. INSTITUTIONAL FLOWS. 3. MARKET NARRATIVE. "
        "Style: Professional Wall Street tone. High signal only."
    )
    prompt = "Create Morning Brief"
    recent = ctx.state.context_window.snapshot()
    if recent:
        lines = "\n".join(f"- {r.title}" for r in recent)
        prompt += f"\n\nHeadlines already on our desk:\n{lines}"
    text = ctx.summarizer.summarize(prompt, system, live_search=True)
    if not text:
        return False
    return ctx.post(
        sink,
        "OASIS | Intelligence",
        Embed(title="🌅 OASIS MORNING BRIEF", description=text, footer=BRIEF_FOOTER),
    )


def london_handover(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_market")
    text = ctx.summarizer.summarize("Recap London", "3 bullets. Institutional tone.", live_search=True)
    if not text:
        return False
    return ctx.post(
        sink,
        "OASIS | Session Desk",
        Embed(title="🇬🇧 LONDON SESSION HANDOVER", description=text, footer=LONDON_FOOTER),
    )


MARKET_DESK_SYSTEM = """Output ONLY the data in this EXACT format. No intro text.
• **DXY (Dollar Index)**
    • Level: [Value] [Emoji]
    • 24h Change: [Value]
• **US 10Y Treasury Yield**
    • Level: [Value] [Emoji]
    • 24h Change: [Value]
• **S&P 500 Index**
    • Level: [Value] [Emoji]
    • 24h Change: [Value]
Emoji Rules: 📈 for up, 📉 for down, 🛡️ for flat. Place ONLY after "Level". NO emoji after "24h Change".
Do NOT explain holidays."""


def _market_desk(ctx: JobContext, is_open: bool) -> bool:
    sink = ctx.require_sink("webhook_market")
    title = "🔔 NYSE SESSION OPEN" if is_open else "🌆 NYSE SESSION CLOSE"
    prompt = f"Topic: {title}\nFetch data for DXY, US 10Y Yield, and S&P 500."
    data = ctx.summarizer.summarize(prompt, MARKET_DESK_SYSTEM, live_search=True)
    if not data:
        return False
    return ctx.post(
        sink,
        "OASIS | Market Desk",
        Embed(
            title=title,
            description=_TOPIC_LINE_RE.sub("", data).strip(),
            footer=SETTLEMENT_FOOTER,
            timestamp=ctx.clock(),
        ),
    )


def market_open(ctx: JobContext) -> bool:
    return _market_desk(ctx, True)


def market_close(ctx: JobContext) -> bool:
    return _market_desk(ctx, False)


# --- Digests -----------------------------------------------------------------


def weekly_wrap(ctx: JobContext) -> bool:
    """Summarize the week's headlines, then empty the accumulator.

    Below the minimum population the accumulator is left alone and keeps
    growing until a later run. Once the gate passes it is drained whether
    or not the summarizer produced anything.
    """
    sink = ctx.require_sink("webhook_weekly")
    digest = ctx.state.weekly_digest
    if not digest.size_at_least(ctx.settings.weekly_min_records):
        log.info("weekly_wrap_skip records=%d min=%d", len(digest), ctx.settings.weekly_min_records)
        return False

    records = digest.drain_all()
    titles = "\n".join(r.title for r in records)
    summary = ctx.summarizer.summarize(
        f"Generate Weekly Wrap from these headlines:\n{titles}",
        "Senior Institutional Analyst. Generate 3-bullet summary with bold headers.",
    )
    log.info("weekly_wrap_drained records=%d summarized=%s", len(records), bool(summary))
    if not summary:
        return False
    sources = _source_lines(records, ctx.settings.digest_source_count)
    return ctx.post(
        sink,
        "OASIS | Reports",
        Embed(
            title="🗞️ MARKET OVERVIEW",
            description=f"**Summary:**\n{summary}\n\n**Primary Source:**\n{sources}",
            image=WEEKLY_HEADER_IMG,
            footer=WEEKLY_FOOTER,
        ),
    )


def forex_weekly(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_forex")
    digest = ctx.state.forex_digest

    if not digest.size_at_least(1):
        log.info("forex_weekly_fallback reason=empty_accumulator")
        text = ctx.summarizer.summarize(
            "Weekly FX Outlook",
            "Search for the biggest Forex news this week (EUR, USD, JPY, Gold). "
            "Write a 3-bullet Weekly Outlook.",
            live_search=True,
        )
        if not text:
            return False
        return ctx.post(
            sink,
            "OASIS | FX Intelligence",
            Embed(
                title="💱 WEEKLY FOREX OUTLOOK (Live Scan)",
                description=text,
                image=WEEKLY_HEADER_IMG,
                footer=FOREX_FOOTER,
            ),
        )

    records = digest.drain_all()
    titles = "\n".join(r.title for r in records)
    text = ctx.summarizer.summarize(
        f"Analyze these Forex headlines collected over the week:\n{titles}\n\n"
        "Task: Write a concise **Weekly Forex Outlook**.\n"
        "- Synthesize the data into 3 high-impact bullets with bold headers.\n"
        "- Focus on Central Banks, Yields, and DXY context.",
        "Senior Forex Analyst.",
    )
    log.info("forex_weekly_drained records=%d summarized=%s", len(records), bool(text))
    if not text:
        return False
    sources = _source_lines(records, ctx.settings.digest_source_count)
    return ctx.post(
        sink,
        "OASIS | FX Intelligence",
        Embed(
            title="💱 WEEKLY FOREX OUTLOOK",
            description=f"**Summary:**\n{text}\n\n**Primary Sources:**\n{sources}",
            image=WEEKLY_HEADER_IMG,
            footer=FOREX_FOOTER,
        ),
    )


# --- Misc --------------------------------------------------------------------


def knowledge_drop(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_academy")
    system = (
        "You are a Senior Trading Mentor.\n"
        "Select ONE advanced trading concept from: [Smart Money Concepts, "
        "Wyckoff, Order Flow, Market Structure].\n"
        "Format:\n**[Term Name]**\n• **Definition:** ...\n"
        "• **How to Use:** ...\n• **Fun Fact:** ...\nNO questions. NO intro."
    )
    text = ctx.summarizer.summarize("Teach me a trading term.", system)
    if not text:
        return False
    return ctx.post(
        sink,
        "OASIS | Academy",
        Embed(title="📖 KNOWLEDGE DROP", description=text, footer=ACADEMY_FOOTER),
    )


def fear_greed(ctx: JobContext) -> bool:
    sink = ctx.require_sink("webhook_snapshots")
    # cache-buster so Discord refetches the image
    ts = int(time.time() * 1000)
    return ctx.post(
        sink,
        "OASIS | Sentiment",
        Embed(title="", image=FEAR_GREED_IMG.format(ts=ts), footer=SENTIMENT_FOOTER),
    )


JOBS: Dict[str, Callable[[JobContext], Any]] = {
    "ingest": ingest,
    "price_watchdog": price_watchdog,
    "forex_watchdog": forex_watchdog,
    "liquidation_watch": liquidation_watch,
    "whale_movement": whale_movement,
    "morning_brief": morning_brief,
    "london_handover": london_handover,
    "market_open": market_open,
    "market_close": market_close,
    "weekly_wrap": weekly_wrap,
    "forex_weekly": forex_weekly,
    "knowledge_drop": knowledge_drop,
    "fear_greed": fear_greed,
}


def run_job(ctx: JobContext, name: str) -> bool:
    """Run job ``name`` once; ``False`` if it failed or is already running.

    Raises ``KeyError`` for an unknown job name.
    """
    fn = JOBS[name]
    lock = ctx.lock_for(name)
    if not lock.acquire(blocking=False):
        log.warning("job_skipped name=%s reason=already_running", name)
        return False
    t0 = time.time()
    try:
        fn(ctx)
    except InvalidConfiguration as e:
        log.error("job_failed name=%s reason=config err=%s", name, e)
        return False
    except Exception:
        log.error("job_failed name=%s", name, exc_info=True)
        return False
    finally:
        lock.release()
    log.info("job_done name=%s elapsed=%.2fs", name, time.time() - t0)
    return True


def trigger_forex_test(ctx: JobContext) -> bool:
    """Prime gold at 2000 so the next live quote produces an alert."""
    ctx.state.forex_levels.prime("XAU/USD", 2000)
    return run_job(ctx, "forex_watchdog")


def trigger_forex_weekly_test(ctx: JobContext) -> bool:
    for record in SAMPLE_FOREX_HEADLINES:
        ctx.state.forex_digest.append(record)
    return run_job(ctx, "forex_weekly")
