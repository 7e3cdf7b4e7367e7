"""Oasis terminal package.

Polls RSS feeds and price endpoints on a cron schedule, classifies and
deduplicates headlines, tracks psychological price levels, and publishes
alerts and AI-written digests to Discord webhooks. All state lives in
memory for the lifetime of the process.
"""

__all__: list[str] = []
