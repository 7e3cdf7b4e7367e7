from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Category(str, Enum):
    """Mutually exclusive headline buckets.

    ``EXCLUDED`` only exists so exclusion rules can sit in the same ordered
    rule list as the publishing categories; :func:`classify.classify` never
    returns it (an excluded headline classifies as ``None``).
    """

    EXCLUDED = "excluded"
    CRYPTO = "crypto"
    MACRO = "macro"
    FOREX = "forex"


class Polarity(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Classification:
    category: Optional[Category]
    polarity: Polarity = Polarity.NEUTRAL

    @property
    def publishable(self) -> bool:
        return self.category is not None and self.category is not Category.EXCLUDED


@dataclass
class CandidateItem:
    """One feed entry, consumed once by the ingestion loop.

    ``enclosure_url``, ``media_url`` and ``content_html`` are kept only so
    the image helper can run its ordered fallback.
    """

    title: str
    link: str
    published: Optional[datetime] = None
    snippet: Optional[str] = None
    source: str = ""
    enclosure_url: Optional[str] = None
    media_url: Optional[str] = None
    content_html: Optional[str] = None


@dataclass(frozen=True)
class MemoryRecord:
    title: str
    link: str


@dataclass(frozen=True)
class CrossingEvent:
    asset: str
    previous: float
    current: float
    step: float
    crossed_level: float
    direction: str  # "up" | "down"

    @property
    def is_up(self) -> bool:
        return self.direction == "up"


@dataclass
class Embed:
    title: str
    description: str = ""
    color: int = 16777215
    url: Optional[str] = None
    image: Optional[str] = None
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
        }
        if self.url:
            out["url"] = self.url
        if self.image:
            out["image"] = {"url": self.image}
        if self.footer:
            out["footer"] = {"text": self.footer}
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp.isoformat()
        return out


@dataclass
class PublishRequest:
    sink_id: str
    display_name: str
    embed: Embed
    avatar_uri: Optional[str] = None
    mention: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Discord webhook body."""
        payload: Dict[str, Any] = {
            "username": self.display_name,
            "embeds": [self.embed.to_dict()],
        }
        if self.avatar_uri:
            payload["avatar_url"] = self.avatar_uri
        if self.mention:
            payload["content"] = f"<@&{self.mention}>"
        return payload
