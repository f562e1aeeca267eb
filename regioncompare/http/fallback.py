"""Query an ARM endpoint across a list of api-versions."""
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

from ..errors import EndpointNotFoundError, TransientFetchError
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


def get_with_fallback(client, policy: RetryPolicy, path: str, params: Dict[str, Any],
                      api_versions: Sequence[str],
                      sleep: Callable[[float], None] = time.sleep) -> Optional[Any]:
    """GET ``path`` with the first api-version that answers.

    Each version gets the full retry budget of ``policy``. A version that keeps
    failing transiently, or that the provider does not support, hands over to
    the next one.

    Args:
        client: ArmClient (or anything with a compatible ``get``).
        policy: Retry policy applied per api-version.
        path: ARM path.
        params: Query parameters without ``api-version``.
        api_versions: Versions to try, primary first.
        sleep: Sleep function, injectable for tests.

    Returns:
        The decoded body, or None when no version exposes the endpoint.

    Raises:
        TransientFetchError: If no version succeeded and at least one failed transiently.
        PermanentFetchError: On auth or request errors, immediately.
    """
    last_transient: Optional[TransientFetchError] = None
    for api_version in api_versions:
        query = dict(params)
        query["api-version"] = api_version
        try:
            return call_with_retry(policy, client.get, path, query, sleep=sleep)
        except EndpointNotFoundError as e:
            logger.debug("No endpoint for %s at api-version %s: %s", path, api_version, e)
        except TransientFetchError as e:
            last_transient = e
            logger.warning("Giving up on %s at api-version %s after %d attempts: %s",
                           path, api_version, policy.max_attempts, e)
    if last_transient is not None:
        raise last_transient
    return None
