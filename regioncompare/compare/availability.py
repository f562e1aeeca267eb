"""Check caller-supplied resources against the target region's SKU listings."""
import logging
from typing import Dict, Iterable, List, Optional

from ..quota.models import ResourceTuple
from ..regions import same_region
from ..sku.models import ProviderSet
from ..sku.strategies import MANAGED_DISKS_PROVIDER

logger = logging.getLogger(__name__)

SAME_REGION_REASON = "Source and target region are the same"
SKU_NOT_FOUND_REASON = "SKU not found in target region"
SKU_RESTRICTED_REASON = "SKU has restrictions"


def resource_sku(resource: ResourceTuple) -> Optional[str]:
    """SKU name a resource asks for; ``vmSize`` and ``diskSku`` attributes win."""
    sku = resource.attributes.get("vmSize") or resource.attributes.get("diskSku") or resource.sku
    if not sku:
        return None
    return str(sku).strip() or None


def _provider_candidates(resource_type: str) -> List[str]:
    namespace = (resource_type or "").split('/')[0]
    if resource_type.lower() == MANAGED_DISKS_PROVIDER.lower():
        return [MANAGED_DISKS_PROVIDER, namespace]
    return [namespace]


def _service_level(resource: ResourceTuple, provider_set: ProviderSet, no_sku_reason: str) -> None:
    """Decide from the provider's presence alone when no SKU can be matched."""
    if provider_set.resource_type_count > 0 or provider_set.sku_count > 0:
        resource.available = True
        resource.availability_reason = (
            f"{no_sku_reason}; {provider_set.provider} is offered in {provider_set.region}")
    else:
        resource.available = None
        resource.availability_reason = (
            f"{no_sku_reason}; no resource type data for {provider_set.provider} "
            f"in {provider_set.region}")


def check_resource(resource: ResourceTuple, target_sets: Dict[str, ProviderSet]) -> ResourceTuple:
    """Annotate one resource with its availability in the target region.

    Args:
        resource: Resource to check.
        target_sets: Target-region SKU sets keyed by lower-cased provider id.

    Returns:
        ResourceTuple: The same resource, annotated in place.
    """
    resource.restrictions = []
    provider_set = None
    for provider in _provider_candidates(resource.type):
        provider_set = target_sets.get(provider.lower())
        if provider_set is not None:
            break
    if provider_set is None:
        resource.available = None
        resource.availability_reason = "Provider was not compared in the target region"
        return resource

    sku = resource_sku(resource)
    if sku is None:
        _service_level(resource, provider_set, "No SKU specified")
        return resource
    if provider_set.sku_count == 0:
        _service_level(resource, provider_set, "Provider publishes no SKUs")
        return resource

    record = provider_set.skus.get(sku.lower())
    if record is None:
        resource.available = False
        resource.availability_reason = SKU_NOT_FOUND_REASON
    elif record.is_restricted:
        resource.available = False
        resource.availability_reason = SKU_RESTRICTED_REASON
        resource.restrictions = sorted(record.restrictions)
    else:
        resource.available = True
        resource.availability_reason = None
    return resource


def check_availability(tuples: List[ResourceTuple], target_sets: Iterable[ProviderSet],
                       source_region: str, target_region: str) -> List[ResourceTuple]:
    """Annotate resources in place with whether their SKU exists in the target region.

    A SKU is available when the target listing of its provider contains it
    without restrictions. When source and target are the same region every
    resource is available by definition.

    Args:
        tuples: Resources to check.
        target_sets: SKU sets fetched for the target region.
        source_region: Region being migrated from.
        target_region: Region being migrated to.

    Returns:
        List[ResourceTuple]: The same list object that was passed in.
    """
    if same_region(source_region, target_region):
        for resource in tuples:
            resource.available = True
            resource.availability_reason = SAME_REGION_REASON
            resource.restrictions = []
        return tuples

    by_provider = {s.provider.lower(): s for s in target_sets}
    for resource in tuples:
        check_resource(resource, by_provider)

    unavailable = sum(1 for r in tuples if r.available is False)
    logger.info("Availability in %s: %d of %d resources available, %d unavailable",
                target_region, sum(1 for r in tuples if r.available), len(tuples), unavailable)
    if unavailable:
        logger.warning("%d resource(s) are not available in %s", unavailable, target_region)
    return tuples
