"""
Error types shared by the catalog client, the record store and the routes.

Every handler turns these into a single JSON error response with status 500.
"""

from typing import Any, Optional


class CatalogSyncError(Exception):
    """Base class for all catalog sync failures"""


class ConfigurationError(CatalogSyncError):
    """A required secret or setting is missing from the environment"""
    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            f"Missing required environment variables: {', '.join(self.missing)}"
        )


class ValidationError(CatalogSyncError):
    """A request is missing a required field"""


class UpstreamError(CatalogSyncError):
    """The Spotify API or the record store failed"""
    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class CatalogAuthError(UpstreamError):
    """The client-credentials exchange with Spotify failed"""


class ExhaustedRetries(CatalogSyncError):
    """Raised when Spotify keeps answering 429 after every allowed retry"""
    def __init__(self, endpoint: str, retry_after: Optional[float] = None):
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(f"Rate limit retries exhausted for endpoint: {endpoint}")
