"""Provider-specific SKU query and normalization strategies."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import NormalizationAmbiguity
from ..regions import canonical_region
from .models import SkuRecord
from .normalizer import (
    count_resource_types,
    in_region,
    item_locations,
    item_restrictions,
    unwrap_items,
)

# Known /skus api-versions, newest first; later entries are fallbacks.
GENERIC_SKU_API_VERSIONS = [
    "2024-11-01", "2024-01-01", "2023-11-01", "2023-09-01", "2021-06-01", "2020-10-01",
]
COMPUTE_SKU_API_VERSIONS = ["2021-07-01", "2019-04-01"]

MANAGED_DISKS_PROVIDER = "Microsoft.Compute/disks"


class SkuStrategy(ABC):
    """How to query and flatten the SKU listing of one provider."""

    api_versions: List[str] = GENERIC_SKU_API_VERSIONS
    # Query the generic /skus listing when this strategy finds nothing.
    generic_fallback: bool = False

    def registration_namespace(self, provider: str) -> Optional[str]:
        """Namespace whose registration document gives the resource type count.

        Returns None when the count is fixed by the strategy.
        """
        return provider

    def resource_type_count(self, registration: Any, region: str) -> int:
        return count_resource_types(registration, region)

    @abstractmethod
    def request(self, subscription_path, provider: str, region: str) -> Tuple[str, Dict[str, str]]:
        """Return the ARM path and query parameters (without api-version).

        Args:
            subscription_path: Callable turning a suffix into a subscription-scoped path.
            provider: Provider id.
            region: Azure location.
        """
        pass

    @abstractmethod
    def extract(self, raw: Any, provider: str, region: str) -> Iterable[SkuRecord]:
        """Yield SkuRecords from a decoded response.

        Raises:
            NormalizationAmbiguity: If the response shape is unrecognized.
        """
        pass

    def note(self, raw: Any) -> Optional[str]:
        """Upstream explanation for an empty listing, if the response carries one."""
        return None


class GenericSkuStrategy(SkuStrategy):
    """Providers exposing ``/providers/{namespace}/skus`` with per-SKU locations."""

    def request(self, subscription_path, provider, region):
        return subscription_path(f"providers/{provider}/skus"), {}

    def extract(self, raw, provider, region):
        for item in unwrap_items(raw):
            if not isinstance(item, dict) or not item.get("name"):
                continue
            if not in_region(item, region):
                continue
            yield SkuRecord.create(
                name=str(item["name"]),
                resource_type=item.get("resourceType") or "",
                tier=item.get("tier"),
                kind=item.get("kind"),
                locations=(canonical_region(loc) for loc in item_locations(item)),
                restrictions=item_restrictions(item, region),
            )


class ComputeSkuStrategy(GenericSkuStrategy):
    """Microsoft.Compute supports a server-side location filter on /skus."""

    api_versions = COMPUTE_SKU_API_VERSIONS

    def request(self, subscription_path, provider, region):
        return (subscription_path("providers/Microsoft.Compute/skus"),
                {"$filter": f"location eq '{canonical_region(region)}'"})


class ManagedDiskStrategy(ComputeSkuStrategy):
    """Synthetic provider for managed disks.

    Disks have no provider namespace of their own; their SKUs are the
    ``resourceType == "disks"`` rows of the compute listing, repeated once per
    size tier. One entry is synthesized per disk SKU name.
    """

    def registration_namespace(self, provider):
        return None

    def resource_type_count(self, registration, region):
        return 1

    def extract(self, raw, provider, region):
        for item in unwrap_items(raw):
            if not isinstance(item, dict) or item.get("resourceType") != "disks":
                continue
            name = item.get("name")
            if not name or not in_region(item, region):
                continue
            yield SkuRecord.create(
                name=str(name),
                resource_type="disks",
                tier=item.get("tier"),
                kind=item.get("size"),
                locations=(canonical_region(loc) for loc in item_locations(item)),
                restrictions=item_restrictions(item, region),
            )


class FlexibleServerCapabilitiesStrategy(SkuStrategy):
    """MySQL/PostgreSQL flexible servers: SKUs come from location capabilities."""

    generic_fallback = True

    def __init__(self, api_versions: List[str]):
        self.api_versions = api_versions

    def request(self, subscription_path, provider, region):
        return (subscription_path(
            f"providers/{provider}/locations/{canonical_region(region)}/capabilities"), {})

    def extract(self, raw, provider, region):
        for capability in unwrap_items(raw):
            if not isinstance(capability, dict):
                continue
            for name in _flexible_server_sku_names(capability):
                yield SkuRecord.create(name=name, resource_type="flexibleServers",
                                       locations=[canonical_region(region)])

    def note(self, raw):
        try:
            items = unwrap_items(raw)
        except NormalizationAmbiguity:
            return None
        for item in items:
            if isinstance(item, dict):
                reason = item.get("reason")
                if isinstance(reason, str) and reason.strip():
                    return reason.strip()
        return None


class SqlCapabilitiesStrategy(SkuStrategy):
    """Azure SQL Database: editions and service objectives as ``edition:slo``."""

    api_versions = ["2023-08-01", "2021-11-01"]
    generic_fallback = True

    def request(self, subscription_path, provider, region):
        return (subscription_path(
            f"providers/Microsoft.Sql/locations/{canonical_region(region)}/capabilities"), {})

    def extract(self, raw, provider, region):
        if isinstance(raw, dict) and "supportedServerVersions" in raw:
            editions = [edition
                        for version in raw.get("supportedServerVersions") or []
                        for edition in (version or {}).get("supportedEditions") or []]
        else:
            editions = unwrap_items(raw)
        for edition in editions:
            if not isinstance(edition, dict) or not edition.get("name"):
                continue
            for slo in edition.get("supportedServiceLevelObjectives") or []:
                slo_name = (slo or {}).get("name")
                if slo_name:
                    yield SkuRecord.create(name=f"{edition['name']}:{slo_name}",
                                           resource_type="servers/databases",
                                           tier=edition["name"],
                                           locations=[canonical_region(region)])

    def note(self, raw):
        if isinstance(raw, dict) and isinstance(raw.get("reason"), str):
            return raw["reason"].strip() or None
        return None


def _flexible_server_sku_names(capability: dict) -> List[str]:
    names = []
    for edition in capability.get("supportedServerEditions") or []:
        for sku in (edition or {}).get("supportedServerSkus") or []:
            if (sku or {}).get("name"):
                names.append(sku["name"])
    for edition in capability.get("supportedFlexibleServerEditions") or []:
        for version in (edition or {}).get("supportedServerVersions") or []:
            for sku in (version or {}).get("supportedSkus") or []:
                if (sku or {}).get("name"):
                    names.append(sku["name"])
    return sorted(set(names))


class StrategyRegistry:
    """Registry of SKU strategies keyed by provider id, with a generic fallback."""

    def __init__(self, strategies: Optional[Dict[str, SkuStrategy]] = None,
                 fallback: Optional[SkuStrategy] = None):
        self.strategies: Dict[str, SkuStrategy] = {}
        for provider, strategy in (strategies or {}).items():
            self.register(provider, strategy)
        self.fallback = fallback or GenericSkuStrategy()

    def register(self, provider: str, strategy: SkuStrategy) -> None:
        self.strategies[provider.lower()] = strategy

    def get(self, provider: str) -> SkuStrategy:
        """Get the strategy for a provider id (case-insensitive), with fallback."""
        return self.strategies.get(provider.lower(), self.fallback)


def default_registry() -> StrategyRegistry:
    """A fresh registry holding the built-in special cases."""
    return StrategyRegistry({
        "Microsoft.Compute": ComputeSkuStrategy(),
        MANAGED_DISKS_PROVIDER: ManagedDiskStrategy(),
        "Microsoft.DBforMySQL": FlexibleServerCapabilitiesStrategy(["2023-12-30", "2021-05-01"]),
        "Microsoft.DBforPostgreSQL": FlexibleServerCapabilitiesStrategy(["2024-08-01", "2022-12-01"]),
        "Microsoft.Sql": SqlCapabilitiesStrategy(),
    })
