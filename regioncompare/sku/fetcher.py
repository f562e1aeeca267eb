"""Cache-first retrieval of normalized SKU sets."""
import logging
import time
from typing import Callable, Optional

from ..cache.store import CacheStore, make_cache_key
from ..errors import NormalizationAmbiguity
from ..http.fallback import get_with_fallback
from ..http.retry import RetryPolicy
from .models import ProviderSet
from .normalizer import normalize
from .strategies import SkuStrategy, StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

REGISTRATION_API_VERSIONS = ["2021-04-01"]


class SkuFetcher:
    """Fetches one provider's SKU set for one region, cache first."""

    def __init__(self, client, cache: CacheStore, retry_policy: Optional[RetryPolicy] = None,
                 registry: Optional[StrategyRegistry] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize the fetcher.

        Args:
            client: ArmClient used on cache misses.
            cache: Cache store shared by every fetch in the run.
            retry_policy: Backoff policy for transient failures.
            registry: Provider strategies; defaults to the built-in registry.
            sleep: Sleep function used between retries.
        """
        self.client = client
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.registry = registry or default_registry()
        self.sleep = sleep

    def cache_key(self, provider: str, region: str) -> str:
        strategy = self.registry.get(provider)
        _, params = strategy.request(self.client.subscription_path, provider, region)
        return make_cache_key(provider, strategy.api_versions[0], region,
                              dict(params, kind="skus", subscription=self.client.subscription_id))

    def fetch(self, provider: str, region: str) -> ProviderSet:
        """Get the normalized SKU set for (provider, region).

        A provider without a SKU endpoint yields an empty set, not an error.

        Raises:
            TransientFetchError: If every query strategy kept failing transiently.
            PermanentFetchError: On auth or malformed-request errors.
        """
        key = self.cache_key(provider, region)
        cached = self.cache.get(key)
        if cached is not None:
            try:
                return ProviderSet.from_payload(cached)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring undecodable cached SKUs for %s in %s: %s",
                               provider, region, e)

        logger.info("Fetching SKUs for %s in %s", provider, region)
        strategy = self.registry.get(provider)
        raw = self._query(strategy, provider, region)
        registration = self._registration(strategy.registration_namespace(provider))
        provider_set = normalize(raw, provider, region, registration, strategy=strategy)

        if provider_set.sku_count == 0 and strategy.generic_fallback:
            logger.info("No SKUs for %s in %s from its capabilities; trying the /skus listing",
                        provider, region)
            generic = self.registry.fallback
            generic_set = normalize(self._query(generic, provider, region), provider, region,
                                    registration, strategy=generic)
            if generic_set.sku_count:
                provider_set = generic_set

        self.cache.put(key, provider_set.to_payload())
        logger.info("Retrieved %d SKUs for %s in %s", provider_set.sku_count, provider, region)
        return provider_set

    def _query(self, strategy: SkuStrategy, provider: str, region: str):
        path, params = strategy.request(self.client.subscription_path, provider, region)
        try:
            raw = get_with_fallback(self.client, self.retry_policy, path, params,
                                    strategy.api_versions, sleep=self.sleep)
        except NormalizationAmbiguity as e:
            logger.warning("Unreadable SKU response for %s in %s (%s); treating as empty",
                           provider, region, e)
            return None
        if raw is None:
            logger.info("%s exposes no SKU listing at %s", provider, path)
        return raw

    def _registration(self, namespace: Optional[str]):
        if not namespace:
            return None
        path = self.client.subscription_path(f"providers/{namespace}")
        try:
            return get_with_fallback(self.client, self.retry_policy, path, {},
                                     REGISTRATION_API_VERSIONS, sleep=self.sleep)
        except NormalizationAmbiguity as e:
            logger.warning("Unreadable registration for %s: %s", namespace, e)
            return None
