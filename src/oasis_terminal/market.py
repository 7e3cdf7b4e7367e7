"""Spot prices for the crypto price watchdog."""

from __future__ import annotations

from typing import Dict, Optional

import requests

from .config import Settings, get_settings
from .errors import SourceFetchError
from .logging_utils import get_logger

log = get_logger("market")

# CoinGecko id -> canonical asset key
COINGECKO_IDS: Dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "binancecoin": "BNB",
}


def fetch_crypto_prices(
    settings: Optional[Settings] = None, session=None
) -> Dict[str, float]:
    """Return ``{"BTC": 64000.0, ...}`` for every tracked coin.

    Coins missing from the response are left out. Raises
    :class:`SourceFetchError` when the endpoint fails or returns nothing
    usable.
    """
    s = settings or get_settings()
    params = {"ids": ",".join(COINGECKO_IDS), "vs_currencies": "usd"}
    try:
        r = (session or requests).get(s.coingecko_url, params=params, timeout=10)
    except requests.RequestException as e:
        raise SourceFetchError("coingecko", e.__class__.__name__) from e
    if r.status_code != 200:
        raise SourceFetchError("coingecko", f"http {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise SourceFetchError("coingecko", "invalid json") from e

    prices: Dict[str, float] = {}
    for cg_id, asset in COINGECKO_IDS.items():
        try:
            prices[asset] = float(data[cg_id]["usd"])
        except (KeyError, TypeError, ValueError):
            log.debug("price_missing asset=%s", asset)
    if not prices:
        raise SourceFetchError("coingecko", "no prices in response")
    return prices
