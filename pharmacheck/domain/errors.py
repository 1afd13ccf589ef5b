# pharmacheck/domain/errors.py
from __future__ import annotations


class PharmaCheckError(Exception):
    """Base class for errors raised inside the verification core."""


class InvalidQueryError(PharmaCheckError):
    """Request rejected before any matching work (missing/invalid name, description, batch, images)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ProviderUnavailableError(PharmaCheckError):
    """OCR / text-analysis / embedding provider failed or is not configured. Retryable, never fatal."""

    def __init__(self, provider: str, message: str = ""):
        super().__init__(f"{provider} unavailable: {message}" if message else f"{provider} unavailable")
        self.provider = provider
        self.retryable = True


class CorpusUnavailableError(PharmaCheckError):
    """Alert corpus could not be read."""


class PageFetchError(PharmaCheckError):
    """Alert detail page could not be fetched or parsed."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(f"{url}: {message}" if message else url)
        self.url = url
