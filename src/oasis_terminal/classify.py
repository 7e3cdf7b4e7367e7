"""Headline classification.

A headline is mapped to at most one :class:`~oasis_terminal.models.Category`
by scanning an ordered list of rules and taking the first that matches.
Exclusion rules sit at the front of that list and short-circuit to "no
category", so a spam headline never reaches the publishing categories no
matter what else it mentions. The canonical order is::

    excluded -> crypto -> macro -> forex

Polarity is derived independently from the same text: the bullish terms
are checked first and the bearish terms only when bullish did not match,
so a headline carrying both reads as bullish.

All matching is case-insensitive substring search, so ``"ETH"`` also hits
``"Ethereum"`` (and, by the same rule, ``"together"``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Sequence

from .models import Category, Classification, Polarity

EXCLUSION_TERMS = (
    "Shiba", "Bonk", "Pepe", "Floki", "Doge", "Meme", "NFT", "Airdrop",
    "Gaming", "Metaverse", "Ransomware", "Scam", "Phishing", "Cardano",
    "ADA", "Avalanche", "AVAX", "Tron", "TRX", "Mantle", "Phantom",
    "Pancake", "CAKE", "Polygon", "MATIC", "Polkadot", "DOT", "Litecoin",
    "LTC",
)

CRYPTO_TERMS = (
    "Bitcoin", "BTC", "ETH", "Ethereum", "Solana", "SOL", "BlackRock",
    "Fidelity", "ETF", "Stablecoin", "USDC", "Coinbase", "SEC",
    "Gary Gensler", "Binance", "MicroStrategy",
)

MACRO_TERMS = (
    "CPI", "PPI", "FOMC", "Powell", "Recession", "Rate Hike", "Rate Cut",
    "Interest Rate", "Treasury", "NFP", "BRICS", "Federal Reserve",
    "Central Bank", "ECB", "Bond Yield", "Geopolitics", "Trade War",
    "Oil Price", "Stimulus",
)

FOREX_TERMS = (
    "EUR", "GBP", "JPY", "USD", "CAD", "AUD", "Gold", "Silver", "XAU",
    "XAG", "DXY", "Forex", "FX", "BOJ", "BOE", "Lagarde", "Ueda", "Bailey",
    "Dollar", "Yen", "Euro", "Pound",
)

BULLISH_TERMS = (
    "Cut", "Approval", "Pump", "Green", "Bull", "Rally", "ETF", "Adoption",
    "Inflow", "Gains", "Record", "Breakout", "Whale Buy",
)

BEARISH_TERMS = (
    "Hike", "Panic", "Crash", "Dump", "Drop", "Inflation", "Recession",
    "SEC", "Lawsuit", "Hack", "Outflow", "Losses", "War", "Conflict",
)

# Macro headlines mentioning these also feed the forex digest
FX_SENSITIVE_TERMS = ("Gold", "Silver", "DXY", "Yield")

# Discord embed colours
COLOR_BULLISH = 3066993  # green
COLOR_BEARISH = 15158332  # red
COLOR_NEUTRAL = 16777215  # white

_POLARITY_COLORS = {
    Polarity.BULLISH: COLOR_BULLISH,
    Polarity.BEARISH: COLOR_BEARISH,
    Polarity.NEUTRAL: COLOR_NEUTRAL,
}


def compile_terms(terms: Iterable[str]) -> Pattern[str]:
    """Compile ``terms`` into one case-insensitive alternation."""
    escaped = [re.escape(t) for t in terms if t]
    if not escaped:
        # matches nothing
        return re.compile(r"(?!x)x")
    return re.compile("(" + "|".join(escaped) + ")", re.IGNORECASE)


@dataclass(frozen=True)
class CategoryRule:
    category: Category
    pattern: Pattern[str]

    @classmethod
    def from_terms(cls, category: Category, terms: Iterable[str]) -> "CategoryRule":
        return cls(category, compile_terms(terms))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def first_match(rules: Sequence[CategoryRule], text: str) -> Optional[CategoryRule]:
    """Return the first rule in ``rules`` that matches ``text``."""
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def default_rules() -> list[CategoryRule]:
    return [
        CategoryRule.from_terms(Category.EXCLUDED, EXCLUSION_TERMS),
        CategoryRule.from_terms(Category.CRYPTO, CRYPTO_TERMS),
        CategoryRule.from_terms(Category.MACRO, MACRO_TERMS),
        CategoryRule.from_terms(Category.FOREX, FOREX_TERMS),
    ]


class Classifier:
    """Ordered rule scanner plus bullish/bearish polarity.

    Rules with category ``EXCLUDED`` are evaluated before every other rule
    regardless of where they appear in ``rules``.
    """

    def __init__(
        self,
        rules: Optional[Sequence[CategoryRule]] = None,
        bullish_terms: Iterable[str] = BULLISH_TERMS,
        bearish_terms: Iterable[str] = BEARISH_TERMS,
    ) -> None:
        rules = list(rules) if rules is not None else default_rules()
        self.exclusions = [r for r in rules if r.category is Category.EXCLUDED]
        self.rules = [r for r in rules if r.category is not Category.EXCLUDED]
        self._bullish = compile_terms(bullish_terms)
        self._bearish = compile_terms(bearish_terms)

    def category_of(self, headline: Optional[str]) -> Optional[Category]:
        text = (headline or "").strip()
        if not text:
            return None
        if first_match(self.exclusions, text) is not None:
            return None
        rule = first_match(self.rules, text)
        return rule.category if rule is not None else None

    def polarity_of(self, headline: Optional[str]) -> Polarity:
        text = (headline or "").strip()
        if not text:
            return Polarity.NEUTRAL
        if self._bullish.search(text):
            return Polarity.BULLISH
        if self._bearish.search(text):
            return Polarity.BEARISH
        return Polarity.NEUTRAL

    def classify(self, headline: Optional[str]) -> Classification:
        return Classification(
            category=self.category_of(headline),
            polarity=self.polarity_of(headline),
        )


_DEFAULT_CLASSIFIER = Classifier()
_FX_SENSITIVE = compile_terms(FX_SENSITIVE_TERMS)


def classify(headline: Optional[str]) -> Classification:
    """Classify ``headline`` with the default rule set."""
    return _DEFAULT_CLASSIFIER.classify(headline)


def is_fx_sensitive(headline: Optional[str]) -> bool:
    return bool(headline) and _FX_SENSITIVE.search(headline or "") is not None


def polarity_color(polarity: Polarity) -> int:
    return _POLARITY_COLORS.get(polarity, COLOR_NEUTRAL)
