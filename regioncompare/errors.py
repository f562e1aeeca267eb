"""Error taxonomy for fetching, normalizing and caching."""
from typing import Optional


class RegionCompareError(Exception):
    """Base class for all region comparison errors."""


class FetchError(RegionCompareError):
    """An upstream request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Rate limiting, timeouts and 5xx responses. Retried with backoff."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class PermanentFetchError(FetchError):
    """Auth failures and malformed requests. Never retried."""


class EndpointNotFoundError(PermanentFetchError):
    """The provider exposes no endpoint for this query (or this api-version)."""


class FetchCancelled(RegionCompareError):
    """The run was cancelled before this fetch was issued."""


class NormalizationAmbiguity(RegionCompareError):
    """The upstream response had a shape the normalizer does not recognize."""


class CacheIntegrityError(RegionCompareError):
    """A cache entry failed its content-hash check or could not be decoded."""
