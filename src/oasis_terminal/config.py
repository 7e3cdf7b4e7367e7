import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .errors import InvalidConfiguration


def _env_float_opt(name: str) -> Optional[float]:
    """
    Read an optional float from env. Returns None if unset, blank, or non-numeric.
    """
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if raw == "" or raw.lower() in {"none", "null"} or raw.startswith("#"):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _b(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in {
        "1",
        "true",
        "yes",
        "y",
        "on",
    }


def _i(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_first(*names: str) -> str:
    for n in names:
        v = os.getenv(n)
        if v and v.strip():
            return v.strip()
    return ""


def _csv(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


DEFAULT_FEEDS: List[str] = [
    "https://cointelegraph.com/rss",
    "https://www.cnbc.com/id/10000664/device/rss/rss.html",
    "https://feeds.feedburner.com/coindesk",
]

# Psychological level step sizes. Keys are canonical asset keys
# (see thresholds.canonical_asset_key).
DEFAULT_CRYPTO_LEVELS: Dict[str, float] = {
    "BTC": 5000.0,
    "ETH": 500.0,
    "SOL": 10.0,
    "BNB": 50.0,
}

DEFAULT_FOREX_LEVELS: Dict[str, float] = {
    "XAU/USD": 25.0,
    "XAG/USD": 0.50,
    "USD/JPY": 0.50,
    "default": 0.0050,
}


@dataclass
class Settings:
    # --- Summarizer (Gemini REST API) ---
    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_endpoint: str = os.getenv(
        "GEMINI_ENDPOINT",
        "https://generativelanguage.googleapis.com/v1beta/models",
    )
    llm_timeout_secs: float = _env_float_opt("LLM_TIMEOUT_SECS") or 30.0

    # --- Sinks (Discord webhooks), one per channel ---
    webhook_macro: str = _env_first("WEBHOOK_MACRO")
    webhook_crypto: str = _env_first("WEBHOOK_CRYPTO")
    webhook_forex: str = _env_first("WEBHOOK_FOREX")
    webhook_market: str = _env_first("WEBHOOK_MARKET")
    webhook_alerts: str = _env_first("WEBHOOK_ALERTS")
    webhook_weekly: str = _env_first("WEBHOOK_WEEKLY")
    webhook_liquidations: str = _env_first("WEBHOOK_LIQUIDATIONS")
    webhook_whale: str = _env_first("WEBHOOK_WHALE")
    webhook_academy: str = _env_first("WEBHOOK_ACADEMY")
    # Sentiment snapshots fall back to the market channel when unset
    webhook_snapshots: str = _env_first("WEBHOOK_SNAPSHOTS", "WEBHOOK_MARKET")

    # Role mentions prepended to real-time alerts
    role_id_macro: str = os.getenv("ROLE_ID_MACRO", "")
    role_id_alpha: str = os.getenv("ROLE_ID_ALPHA", "")

    # --- Ingestion ---
    feed_urls: List[str] = field(
        default_factory=lambda: _csv("FEED_URLS", DEFAULT_FEEDS)
    )
    # Only the N most recent entries of each feed are looked at per poll.
    feed_items_per_poll: int = _i("FEED_ITEMS_PER_POLL", 2)
    feed_timeout_secs: float = _env_float_opt("FEED_TIMEOUT_SECS") or 12.0
    history_max: int = _i("HISTORY_MAX", 500)
    context_window_size: int = _i("CONTEXT_WINDOW_SIZE", 50)
    snippet_max_chars: int = _i("SNIPPET_MAX_CHARS", 400)
    # Hash title+timestamp instead of the bare normalized title
    strict_fingerprint: bool = _b("STRICT_FINGERPRINT", False)

    # --- Digests ---
    weekly_min_records: int = _i("WEEKLY_MIN_RECORDS", 5)
    digest_source_count: int = _i("DIGEST_SOURCE_COUNT", 5)
    whale_history_max: int = _i("WHALE_HISTORY_MAX", 20)

    # --- Price watchdogs ---
    coingecko_url: str = os.getenv(
        "COINGECKO_URL", "https://api.coingecko.com/api/v3/simple/price"
    )
    crypto_levels: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CRYPTO_LEVELS)
    )
    forex_levels: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_FOREX_LEVELS)
    )

    # --- Keep-alive server ---
    port: int = _i("PORT", 3000)
    feature_keepalive: bool = _b("FEATURE_KEEPALIVE", True)

    # Misc
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Human-readable console logs instead of JSON lines
    log_plain: bool = _b("LOG_PLAIN", False)
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DATA_DIR", "data")).resolve()
    )

    def validate(self) -> List[str]:
        """Check the configuration.

        Raises :class:`InvalidConfiguration` for values no job can run with
        (non-positive step sizes or caps). Missing sinks only fail the job
        that needs them, so they are returned as warnings instead.
        """
        for label, levels in (
            ("crypto", self.crypto_levels),
            ("forex", self.forex_levels),
        ):
            for asset, step in levels.items():
                if step is None or float(step) <= 0:
                    raise InvalidConfiguration(
                        f"{label} step size for {asset} must be > 0 (got {step})"
                    )
        for name in (
            "history_max",
            "context_window_size",
            "feed_items_per_poll",
            "whale_history_max",
        ):
            if int(getattr(self, name)) <= 0:
                raise InvalidConfiguration(f"{name} must be > 0")

        warnings: List[str] = []
        for name in ("webhook_macro", "webhook_crypto", "webhook_forex"):
            if not getattr(self, name):
                warnings.append(f"{name.upper()} is not set")
        return warnings

    def forex_step(self, pair: str) -> float:
        step = self.forex_levels.get(pair)
        if step is None:
            step = self.forex_levels.get("default", DEFAULT_FOREX_LEVELS["default"])
        return float(step)


SETTINGS = Settings()


def get_settings() -> Settings:
    return SETTINGS
