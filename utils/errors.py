from __future__ import annotations

from typing import Optional


class ScraperError(Exception):
    """Base class for every error raised by the scraper package."""


class ConfigError(ScraperError):
    """
    Invalid run configuration (bad limits, missing search input, schema errors).

    Raised before any network activity; always fatal to the run.
    """


class RetriableError(ScraperError):
    """
    A request-level failure the orchestrator may retry with a new identity.

    Attributes:
        url: URL of the request that failed.
    """

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class BlockedError(RetriableError):
    """The fetched document carries anti-bot signals (captcha, access denied...)."""

    def __init__(
        self, message: str, url: Optional[str] = None, indicator: Optional[str] = None
    ) -> None:
        super().__init__(message, url=url)
        self.indicator = indicator


class FetchError(RetriableError):
    """Network failure, timeout, or a non-success HTTP status."""

    def __init__(
        self, message: str, url: Optional[str] = None, status: Optional[int] = None
    ) -> None:
        super().__init__(message, url=url)
        self.status = status


class ExtractionError(ScraperError):
    """No usable data could be extracted where some was expected."""
