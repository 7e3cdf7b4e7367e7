# src/oasis_terminal/alerts.py
from __future__ import annotations

from typing import Optional

from .discord_transport import post_discord
from .errors import PublishError
from .logging_utils import get_logger
from .models import PublishRequest

log = get_logger("alerts")

# --- Branding ---
BOT_AVATAR = (
    "https://github.com/Aster1532/Bot-assets/blob/main/"
    "Picsart_26-01-04_00-27-24-969.jpg?raw=true"
)
WEEKLY_HEADER_IMG = (
    "https://raw.githubusercontent.com/Aster1532/Bot-assets/refs/heads/main/"
    "Picsart_25-12-24_19-16-44-741.jpg"
)

MACRO_FOOTER = "Institutional Macro Feed • Oasis Terminal"
CRYPTO_FOOTER = "Alpha News Feed • Oasis Terminal"
FOREX_FOOTER = "Institutional FX Strategy • Oasis Terminal"
WEEKLY_FOOTER = "⭐ The Most Important Only • Oasis Terminal"
BRIEF_FOOTER = "Pre-Market Institutional Analysis • Oasis Terminal"
LONDON_FOOTER = "Handover to New York Desk • Oasis Terminal"
SENTIMENT_FOOTER = "Daily Market Sentiment Update • Oasis Terminal"
ALERT_FOOTER = "Institutional Level Alert • Oasis Terminal"
LIQ_FOOTER = "Liquidity Flow Analysis • Oasis Terminal"
WHALE_FOOTER = "Large Scale On-Chain Alert • Oasis Terminal"
SETTLEMENT_FOOTER = "Market Settlement • Oasis Terminal"
ACADEMY_FOOTER = "Education • Oasis Terminal"


def _mask_webhook(url: Optional[str]) -> str:
    """Return a scrubbed identifier for a Discord webhook (avoid leaking secrets)."""
    if not url:
        return "<unset>"
    tail = str(url).rsplit("/", 1)[-1]
    return f"...{tail[-8:]}"


class Publisher:
    """Deliver :class:`PublishRequest` objects to Discord webhooks.

    Delivery is attempted once. A failure is logged and reported as
    ``False``; nothing is queued for a later retry.
    """

    def __init__(self, session=None, timeout: float = 10) -> None:
        self.session = session
        self.timeout = timeout
        self.sent = 0
        self.failed = 0

    def deliver(self, request: PublishRequest) -> None:
        """Post ``request``; raise :class:`PublishError` when it does not land."""
        if not request.sink_id:
            raise PublishError("<unset>")
        ok, status = post_discord(
            request.sink_id,
            request.to_payload(),
            session=self.session,
            timeout=self.timeout,
        )
        if not ok:
            raise PublishError(_mask_webhook(request.sink_id), status)

    def publish(self, request: PublishRequest) -> bool:
        try:
            self.deliver(request)
        except PublishError as e:
            self.failed += 1
            log.warning(
                "alert_error sink=%s http_status=%s title=%s",
                e.sink,
                e.status,
                request.embed.title[:80],
            )
            return False
        self.sent += 1
        log.info(
            "alert_sent sink=%s name=%s title=%s",
            _mask_webhook(request.sink_id),
            request.display_name,
            request.embed.title[:80],
        )
        return True
