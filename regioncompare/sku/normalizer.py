"""Flatten heterogeneous provider responses into ProviderSets."""
import logging
from typing import Any, Iterable, List, Optional

from ..errors import NormalizationAmbiguity
from ..regions import canonical_region
from .models import ProviderSet, SkuRecord

logger = logging.getLogger(__name__)


def unwrap_items(raw: Any) -> List[Any]:
    """Return the item list of a bare array or a ``{value: [...]}`` envelope.

    ``None`` and empty bodies mean "no data" and yield an empty list.

    Raises:
        NormalizationAmbiguity: For any other shape.
    """
    if raw is None or raw == {} or raw == "":
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and "value" in raw:
        value = raw["value"]
        if value is None:
            return []
        if isinstance(value, list):
            return value
    raise NormalizationAmbiguity(f"Unexpected response shape: {type(raw).__name__} "
                                 f"with keys {sorted(raw)[:5] if isinstance(raw, dict) else '-'}")


def item_locations(item: dict) -> List[str]:
    """Locations of a SKU item from ``locations`` or ``locationInfo[].location``."""
    locations = item.get("locations")
    if not locations:
        locations = [info.get("location") for info in item.get("locationInfo") or []
                     if isinstance(info, dict)]
    return [loc for loc in locations or [] if isinstance(loc, str) and loc]


def item_restrictions(item: dict, region: Optional[str] = None) -> List[str]:
    """Restriction codes on a SKU item, limited to ``region`` when given.

    Compute-style restrictions carry a ``reasonCode`` and the locations they apply to.
    """
    codes = []
    target = canonical_region(region) if region else None
    for restriction in item.get("restrictions") or []:
        if not isinstance(restriction, dict):
            continue
        if target:
            values = (restriction.get("restrictionInfo") or {}).get("locations") \
                or restriction.get("values") or []
            if values and target not in {canonical_region(v) for v in values}:
                continue
        code = ":".join(str(part) for part in (restriction.get("type"),
                                               restriction.get("reasonCode")) if part)
        if code:
            codes.append(code)
    return codes


def in_region(item: dict, region: str) -> bool:
    target = canonical_region(region)
    return any(canonical_region(loc) == target for loc in item_locations(item))


def build_provider_set(provider: str, region: str, records: Iterable[SkuRecord],
                       resource_type_count: int = 0,
                       note: Optional[str] = None) -> ProviderSet:
    """Assemble a ProviderSet, deduplicating records by normalized name.

    The first occurrence of a name wins, so the result does not depend on
    how later duplicates differ.
    """
    skus = {}
    duplicates = 0
    for record in records:
        if not record.name:
            continue
        if record.name in skus:
            duplicates += 1
            continue
        skus[record.name] = record
    if duplicates:
        logger.debug("%s/%s: dropped %d duplicate SKU entries", provider, region, duplicates)
    return ProviderSet(provider, region, resource_type_count, skus, note)


def count_resource_types(registration: Any, region: str) -> int:
    """Count a provider's resource types offered in ``region``.

    Args:
        registration: Provider registration document with ``resourceTypes[].locations``.
        region: Azure location, matched case-insensitively.

    Returns:
        int: Number of resource types listing the region (0 for missing data).
    """
    if not isinstance(registration, dict):
        return 0
    target = canonical_region(region)
    count = 0
    for resource_type in registration.get("resourceTypes") or []:
        if not isinstance(resource_type, dict):
            continue
        locations = resource_type.get("locations") or []
        if any(canonical_region(loc) == target for loc in locations if isinstance(loc, str)):
            count += 1
    return count


def normalize(raw_response: Any, provider: str, region: str, registration: Any = None,
              registry=None, strategy=None) -> ProviderSet:
    """Convert a raw provider response into a ProviderSet.

    The provider's strategy (looked up in ``registry``) decides how to flatten
    the response. An unrecognized shape is logged and treated as "no SKUs".

    Args:
        raw_response: Decoded JSON body, or None when the provider has no SKU endpoint.
        provider: Provider namespace or synthetic provider id.
        region: Azure location the response was requested for.
        registration: Optional provider registration document.
        registry: StrategyRegistry; defaults to the built-in one.
        strategy: Strategy to use instead of the registry lookup.

    Returns:
        ProviderSet: Normalized set for (provider, region).
    """
    if strategy is None:
        if registry is None:
            from .strategies import default_registry
            registry = default_registry()
        strategy = registry.get(provider)
    resource_type_count = strategy.resource_type_count(registration, region)
    try:
        records = list(strategy.extract(raw_response, provider, region))
        note = strategy.note(raw_response)
    except NormalizationAmbiguity as e:
        logger.warning("Could not normalize SKUs for %s in %s (%s); treating as empty",
                       provider, region, e)
        return ProviderSet.empty(provider, region, resource_type_count)
    return build_provider_set(provider, region, records, resource_type_count, note)
