"""Error taxonomy for the Oasis pipeline.

None of these are fatal to the process. Collaborators raise them and the
ingestion loop / job wrapper catches them at the per-source, per-item or
per-job boundary, logs, and moves on.
"""

from __future__ import annotations


class OasisError(Exception):
    """Base class for all pipeline errors."""


class SourceFetchError(OasisError):
    """A feed or price endpoint did not return usable data."""

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        self.reason = reason
        msg = f"fetch failed source={source}"
        if reason:
            msg += f" reason={reason}"
        super().__init__(msg)


class EnrichmentError(OasisError):
    """The summarizer failed or returned text/JSON we cannot use."""


class PublishError(OasisError):
    """A webhook delivery failed."""

    def __init__(self, sink: str, status: int | None = None) -> None:
        self.sink = sink
        self.status = status
        super().__init__(f"publish failed sink={sink} status={status}")


class InvalidConfiguration(OasisError):
    """Configuration that cannot work, e.g. a zero step size or missing sink."""
