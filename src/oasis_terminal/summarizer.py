"""Generative-text enrichment through the Gemini REST API.

Every public call returns ``None`` on failure instead of raising; callers
treat ``None`` as "skip this publish". Failures are logged with the first
few characters of the prompt so they can be matched to a job.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

import requests

from .config import Settings, get_settings
from .errors import EnrichmentError
from .logging_utils import get_logger

log = get_logger("summarizer")

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(text: Optional[str]) -> str:
    """Remove markdown code fences the model likes to wrap JSON in.

    >>> strip_code_fences('```json\\n{"a": 1}\\n```')
    '{"a": 1}'
    """
    return _FENCE_RE.sub("", text or "").strip()


def _extract_text(body: Dict[str, Any]) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise EnrichmentError("response carried no candidates") from e
    if not isinstance(parts, list):
        raise EnrichmentError("response parts were not a list")
    # Search-grounded answers can come back split over several parts
    text = "".join(p.get("text") or "" for p in parts if isinstance(p, dict))
    if not text.strip():
        raise EnrichmentError("response text was empty")
    return text


class Summarizer:
    """Thin client for ``models/<model>:generateContent``."""

    def __init__(self, settings: Optional[Settings] = None, session=None) -> None:
        self.settings = settings or get_settings()
        self.session = session

    @property
    def enabled(self) -> bool:
        return bool(self.settings.gemini_api_key)

    def _payload(
        self, prompt: str, system: Optional[str], json_mode: bool, live_search: bool
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if json_mode:
            payload["generationConfig"] = {"responseMimeType": "application/json"}
        if live_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    def _call(self, payload: Dict[str, Any]) -> str:
        s = self.settings
        url = f"{s.gemini_endpoint.rstrip('/')}/{s.gemini_model}:generateContent"
        try:
            resp = (self.session or requests).post(
                url,
                params={"key": s.gemini_api_key},
                json=payload,
                timeout=s.llm_timeout_secs,
            )
        except requests.RequestException as e:
            raise EnrichmentError(f"request failed: {e.__class__.__name__}") from e
        if resp.status_code != 200:
            raise EnrichmentError(f"http {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise EnrichmentError("response was not JSON") from e
        return _extract_text(body)

    def summarize(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        live_search: bool = False,
    ) -> Optional[str]:
        """Return the model's text for ``prompt``, or ``None`` on any failure.

        ``live_search`` lets the model ground its answer with web search;
        ``json_mode`` asks for a JSON response body. Code fences are
        stripped from whatever comes back.
        """
        if not self.enabled:
            log.warning("summarizer_disabled reason=no_api_key prompt=%s", prompt[:15])
            return None
        payload = self._payload(prompt, system, json_mode, live_search)
        try:
            text = self._call(payload)
        except EnrichmentError as e:
            log.warning("summarizer_failed prompt=%s err=%s", prompt[:15], e)
            return None
        return strip_code_fences(text)

    def summarize_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        live_search: bool = False,
    ) -> Optional[Any]:
        """Like :meth:`summarize` but parse the answer as JSON."""
        text = self.summarize(prompt, system, json_mode=True, live_search=live_search)
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError:
            log.warning("summarizer_bad_json prompt=%s raw=%s", prompt[:15], text[:120])
            return None
