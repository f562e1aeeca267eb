"""Provider-specific quota usage adapters."""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..cache.store import CacheStore, make_cache_key
from ..errors import FetchError, NormalizationAmbiguity
from ..http.fallback import get_with_fallback
from ..http.retry import RetryPolicy
from ..regions import canonical_region
from ..sku.normalizer import unwrap_items
from .models import QuotaMetric

logger = logging.getLogger(__name__)


class UsageAdapter(ABC):
    """Base class for provider-specific quota usage adapters."""

    api_versions: List[str] = []

    @abstractmethod
    def request_path(self, subscription_path, namespace: str, region: str) -> str:
        """ARM path listing usages for a namespace in a region."""
        pass

    def parse(self, raw: Any, namespace: str, region: str) -> List[QuotaMetric]:
        """Convert a usages response into QuotaMetrics.

        Items missing a name, limit or current value are skipped with a warning.

        Raises:
            NormalizationAmbiguity: If the response shape is unrecognized.
        """
        metrics = []
        for item in unwrap_items(raw):
            name = (item.get("name") or {}) if isinstance(item, dict) else {}
            metric_name = name.get("value") if isinstance(name, dict) else None
            if not metric_name:
                logger.warning("Malformed usage object for %s in %s", namespace, region)
                continue
            limit = item.get("limit")
            current_value = item.get("currentValue")
            if limit is None or current_value is None:
                logger.warning("Missing limit or currentValue for %s in %s for %s",
                               metric_name, region, namespace)
                continue
            try:
                limit_val = float(limit)
                current_val = float(current_value)
            except (TypeError, ValueError):
                logger.warning("Non-numeric limit/currentValue for %s in %s for %s",
                               metric_name, region, namespace)
                continue
            metrics.append(QuotaMetric(
                region=region,
                resource_type=namespace,
                metric_name=metric_name,
                limit=limit_val,
                current_usage=current_val,
                localized_name=name.get("localizedValue"),
                unit=item.get("unit"),
            ))
        return metrics


class LocationUsagesAdapter(UsageAdapter):
    """Adapter for ``/providers/{namespace}/locations/{region}/usages``."""

    def __init__(self, api_versions: Optional[List[str]] = None):
        self.api_versions = api_versions or ["2023-09-01", "2022-09-01", "2021-07-01"]

    def request_path(self, subscription_path, namespace, region):
        return subscription_path(
            f"providers/{namespace}/locations/{canonical_region(region)}/usages")


class ComputeUsageAdapter(LocationUsagesAdapter):
    """Adapter for Microsoft.Compute vCPU family and regional quotas."""

    def __init__(self):
        super().__init__(["2023-09-01", "2021-07-01"])


class PostgreSQLUsageAdapter(UsageAdapter):
    """Adapter for Microsoft.DBforPostgreSQL flexible server quotas."""

    api_versions = ["2024-11-01-preview", "2023-06-01-preview"]

    def request_path(self, subscription_path, namespace, region):
        return subscription_path(
            f"providers/Microsoft.DBforPostgreSQL/locations/{canonical_region(region)}"
            f"/resourceType/flexibleServers/usages")


class UsageAdapterRegistry:
    """Registry of usage adapters with fallback logic."""

    def __init__(self):
        self.adapters: Dict[str, UsageAdapter] = {}
        for namespace, adapter in {
            "Microsoft.Compute": ComputeUsageAdapter(),
            "Microsoft.Network": LocationUsagesAdapter(["2023-09-01", "2022-07-01"]),
            "Microsoft.Storage": LocationUsagesAdapter(["2023-01-01", "2021-09-01"]),
            "Microsoft.DBforPostgreSQL": PostgreSQLUsageAdapter(),
            "Microsoft.App": LocationUsagesAdapter(["2024-03-01", "2023-05-01"]),
        }.items():
            self.register(namespace, adapter)
        self.fallback = LocationUsagesAdapter()

    def register(self, namespace: str, adapter: UsageAdapter) -> None:
        self.adapters[namespace.lower()] = adapter

    def get_adapter(self, resource_type: str) -> UsageAdapter:
        """Get the adapter for a namespace or resource type, with fallback.

        Args:
            resource_type: Namespace or resource type (e.g. "Microsoft.Compute/virtualMachines").
        """
        namespace = resource_type.split('/')[0].lower()
        return self.adapters.get(namespace, self.fallback)


def quota_providers_for(resource_types: Iterable[str]) -> List[str]:
    """Unique provider namespaces of the given resource types, first spelling kept."""
    seen = {}
    for resource_type in resource_types:
        namespace = (resource_type or "").split('/')[0].strip()
        if namespace and namespace.lower() not in seen:
            seen[namespace.lower()] = namespace
    return list(seen.values())


class QuotaFetcher:
    """Fetches quota usage metrics for a namespace in a region, cache first."""

    def __init__(self, client, cache: CacheStore, retry_policy: Optional[RetryPolicy] = None,
                 registry: Optional[UsageAdapterRegistry] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.registry = registry or UsageAdapterRegistry()
        self.sleep = sleep

    def fetch(self, namespace: str, region: str) -> List[QuotaMetric]:
        """Get quota metrics for one namespace in one region.

        A namespace without a usages endpoint yields an empty list.

        Raises:
            TransientFetchError: If every api-version kept failing transiently.
            PermanentFetchError: On auth or malformed-request errors.
        """
        adapter = self.registry.get_adapter(namespace)
        key = make_cache_key(namespace, adapter.api_versions[0], region,
                             {"kind": "usages", "subscription": self.client.subscription_id})
        cached = self.cache.get(key)
        if cached is not None:
            try:
                return [QuotaMetric.from_dict(item) for item in cached]
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring undecodable cached quota for %s in %s: %s",
                               namespace, region, e)

        logger.info("Fetching quota for %s in %s", namespace, region)
        path = adapter.request_path(self.client.subscription_path, namespace, region)
        try:
            raw = get_with_fallback(self.client, self.retry_policy, path, {},
                                    adapter.api_versions, sleep=self.sleep)
            metrics = adapter.parse(raw, namespace, region)
        except NormalizationAmbiguity as e:
            logger.warning("Unreadable quota response for %s in %s (%s); treating as empty",
                           namespace, region, e)
            metrics = []

        self.cache.put(key, [m.to_dict() for m in metrics])
        logger.info("Fetched %d quota metrics for %s in %s", len(metrics), namespace, region)
        return metrics

    def fetch_all(self, namespaces: Iterable[str], region: str,
                  cancel_event: Optional[threading.Event] = None) -> List[QuotaMetric]:
        """Fetch metrics for several namespaces; a failing namespace is logged and skipped.

        Once ``cancel_event`` is set no further namespace is requested.
        """
        metrics: List[QuotaMetric] = []
        for namespace in namespaces:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Quota fetch in %s cancelled before %s", region, namespace)
                break
            try:
                metrics.extend(self.fetch(namespace, region))
            except FetchError as e:
                logger.warning("Skipping quota for %s in %s: %s", namespace, region, e)
        return metrics
