"""Minimal Azure Resource Manager REST client."""
import logging
from typing import Any, Dict, Optional

import requests
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from ..errors import (
    EndpointNotFoundError,
    NormalizationAmbiguity,
    PermanentFetchError,
    TransientFetchError,
)

logger = logging.getLogger(__name__)

ARM_URL = "https://management.azure.com"
ARM_SCOPE = "https://management.azure.com/.default"

# ARM error codes meaning "this provider/api-version has no such endpoint".
NOT_FOUND_CODES = {
    "noregisteredproviderfound",
    "invalidresourcetype",
    "resourcetypenotfound",
    "invalidapiversionparameter",
    "notfound",
}

MAX_PAGES = 100


def _error_code(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("code") or "")
    return ""


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ArmClient:
    """GET-only ARM client that classifies failures for the retry layer."""

    def __init__(self, subscription_id: str, credential=None,
                 session: Optional[requests.Session] = None, timeout: float = 30.0):
        """Initialize the client.

        Args:
            subscription_id: Azure subscription ID used in request paths.
            credential: Any azure-identity credential; defaults to DefaultAzureCredential.
            session: Optional requests session (tests pass a mock).
            timeout: Per-request timeout in seconds.
        """
        self.subscription_id = subscription_id
        self.credential = credential or DefaultAzureCredential()
        self.session = session or requests.Session()
        self.timeout = timeout

    def subscription_path(self, suffix: str) -> str:
        return f"/subscriptions/{self.subscription_id}/{suffix.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        try:
            token = self.credential.get_token(ARM_SCOPE).token
        except ClientAuthenticationError as e:
            raise PermanentFetchError(f"Could not acquire ARM token: {e}") from e
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _get_json(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        logger.debug("GET %s params=%s", url, params)
        try:
            response = self.session.get(url, headers=self._headers(), params=params,
                                        timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransientFetchError(f"Timeout calling {url}") from e
        except requests.exceptions.ConnectionError as e:
            raise TransientFetchError(f"Connection error calling {url}: {e}") from e
        except (requests.exceptions.ChunkedEncodingError,
                requests.exceptions.ContentDecodingError) as e:
            # Body broke off mid-transfer.
            raise TransientFetchError(f"Incomplete response from {url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise PermanentFetchError(f"Request to {url} failed: {e}") from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientFetchError(f"HTTP {status} from {url}", status_code=status,
                                      retry_after=_retry_after(response))
        if status in (401, 403):
            raise PermanentFetchError(f"HTTP {status} (not authorized) from {url}",
                                      status_code=status)
        if status >= 400:
            code = _error_code(response)
            if status == 404 or code.lower() in NOT_FOUND_CODES:
                raise EndpointNotFoundError(f"HTTP {status} {code or ''} from {url}".strip(),
                                            status_code=status)
            raise PermanentFetchError(f"HTTP {status} {code} from {url}", status_code=status)

        try:
            return response.json()
        except ValueError as e:
            raise NormalizationAmbiguity(f"Response from {url} is not JSON") from e

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET an ARM path, following ``nextLink`` pages of ``{value: [...]}`` envelopes.

        Args:
            path: Path below the ARM endpoint, e.g. ``/subscriptions/.../skus``.
            params: Query parameters, including ``api-version``.

        Returns:
            The decoded JSON body; paged envelopes are merged into one ``value`` list.
        """
        body = self._get_json(f"{ARM_URL}{path}", params)
        if not isinstance(body, dict) or not isinstance(body.get("value"), list):
            return body

        items = list(body["value"])
        next_link = body.get("nextLink")
        pages = 1
        while next_link and pages < MAX_PAGES:
            # nextLink already carries every query parameter.
            page = self._get_json(next_link, None)
            pages += 1
            if not isinstance(page, dict):
                break
            items.extend(page.get("value") or [])
            next_link = page.get("nextLink")
        if next_link:
            logger.warning("Stopped following nextLink for %s after %d pages", path, pages)
        return {"value": items}
