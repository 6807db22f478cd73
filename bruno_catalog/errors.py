"""Error taxonomy for discovery, conversion, and batch runs."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    SEARCH_ABORTED = "search_aborted"
    INVALID_SPEC = "invalid_spec_format"
    CONVERSION = "conversion_failure"
    RENDER = "render_failure"
    NETWORK = "network_failure"
    CONFIGURATION = "fatal_configuration"
    STORAGE = "storage_failure"


class CatalogError(Exception):
    kind: ErrorKind = ErrorKind.NETWORK


class QuotaExceeded(CatalogError):
    kind = ErrorKind.QUOTA_EXCEEDED

    def __init__(self, message: str = "Search quota exceeded", reset_at: Optional[float] = None):
        self.reset_at = reset_at
        super().__init__(message)


class SearchAborted(CatalogError):
    """Retries for one sub-query ran out; the crawl moves on."""

    kind = ErrorKind.SEARCH_ABORTED


class InvalidSpecFormat(CatalogError):
    kind = ErrorKind.INVALID_SPEC


class ConversionFailure(CatalogError):
    kind = ErrorKind.CONVERSION


class RenderFailure(CatalogError):
    kind = ErrorKind.RENDER


class NetworkFailure(CatalogError):
    kind = ErrorKind.NETWORK


class FatalConfigurationError(CatalogError):
    """Raised before a batch starts; aborts the whole run."""

    kind = ErrorKind.CONFIGURATION
