"""
Exceptions raised by the extraction layer.

Heuristics never raise for malformed input; these cover misuse of the
orchestration API and invalid configuration.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for extraction errors."""


class ExtractionInProgressError(ExtractionError):
    """An extraction was started while another one is still running on the same session."""

    def __init__(self, url: str | None = None) -> None:
        self.url = url
        message = "An extraction is already in progress"
        if url:
            message += f" for {url}"
        super().__init__(message)


class ConfigurationError(ExtractionError):
    """The supplied configuration or rule set cannot be used."""
