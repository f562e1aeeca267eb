"""Attach quota metrics to resources and rank the heaviest consumers."""
import copy
import logging
import re
from typing import Callable, Dict, Iterable, List, Optional

from ..regions import canonical_region, same_region
from .models import QuotaFit, QuotaMetric, ResourceTuple

logger = logging.getLogger(__name__)

MetricResolver = Callable[[ResourceTuple], List[str]]

# Standard_D2s_v3, Standard_E4-2ds_v4, Standard_NC6s_v3, Basic_A1 ...
_VM_SIZE = re.compile(r"^(?:(standard|basic)_)?([a-z]+)(\d+)(?:-\d+)?([a-z]*)(?:_(v\d+))?",
                      re.IGNORECASE)

# Series whose quota family ignores the size's feature letters.
_FIXED_SERIES_FAMILIES = {
    "B": "standardBSFamily",
    "M": "standardMSFamily",
}


def vm_family_metric(vm_size: Optional[str]) -> Optional[str]:
    """Derive the compute vCPU family usage name from a VM size.

    Args:
        vm_size: VM size such as "Standard_D2s_v3".

    Returns:
        Optional[str]: Usage name such as "standardDSv3Family", or None when
            the size cannot be parsed.
    """
    if not vm_size:
        return None
    match = _VM_SIZE.match(vm_size.strip())
    if not match:
        return None
    tier, series, _, features, version = match.groups()
    tier = (tier or "standard").lower()
    series = series.upper()
    if tier == "standard" and series in _FIXED_SERIES_FAMILIES:
        return _FIXED_SERIES_FAMILIES[series]
    return f"{tier}{series}{features.upper()}{(version or '').lower()}Family"


def _vm_metrics(resource: ResourceTuple) -> List[str]:
    size = resource.attributes.get("vmSize") or resource.sku
    family = vm_family_metric(size)
    return ([family] if family else []) + ["cores"]


def _disk_metrics(resource: ResourceTuple) -> List[str]:
    sku = (resource.attributes.get("diskSku") or resource.sku or "").lower()
    if sku.startswith("premiumv2"):
        return ["PremiumV2DiskCount", "PremiumDiskCount"]
    if sku.startswith("premium"):
        return ["PremiumDiskCount"]
    if sku.startswith("standardssd"):
        return ["StandardSSDDiskCount"]
    if sku.startswith("ultrassd"):
        return ["UltraSSDDiskCount"]
    return ["StandardDiskCount"]


def _public_ip_metrics(resource: ResourceTuple) -> List[str]:
    if (resource.sku or "").lower() == "standard":
        return ["StandardSkuPublicIpAddresses", "PublicIPAddresses"]
    return ["PublicIPAddresses"]


def _static(*names: str) -> MetricResolver:
    return lambda resource: list(names)


QUOTA_METRIC_MAP: Dict[str, MetricResolver] = {
    "microsoft.compute/virtualmachines": _vm_metrics,
    "microsoft.compute/virtualmachinescalesets": _static("virtualMachineScaleSets", "cores"),
    "microsoft.compute/availabilitysets": _static("availabilitySets"),
    "microsoft.compute/disks": _disk_metrics,
    "microsoft.network/publicipaddresses": _public_ip_metrics,
    "microsoft.network/loadbalancers": _static("LoadBalancers"),
    "microsoft.network/natgateways": _static("NatGateways"),
    "microsoft.network/applicationgateways": _static("ApplicationGateways"),
    "microsoft.network/virtualnetworks": _static("VirtualNetworks"),
    "microsoft.network/networksecuritygroups": _static("NetworkSecurityGroups"),
    "microsoft.network/networkinterfaces": _static("NetworkInterfaces"),
    "microsoft.network/routetables": _static("RouteTables"),
    "microsoft.storage/storageaccounts": _static("StorageAccounts"),
    "microsoft.containerservice/managedclusters": _static("managedClusters", "cores"),
    "microsoft.dbforpostgresql/flexibleservers": _static("cores"),
    "microsoft.app/managedenvironments": _static(
        "ManagedEnvironmentCores",
        "ManagedEnvironmentConsumptionCores",
        "ManagedEnvironmentGeneralPurposeCores",
    ),
}


def register_quota_mapping(resource_type: str, resolver: MetricResolver) -> None:
    """Add or replace the metric resolver for a resource type."""
    QUOTA_METRIC_MAP[resource_type.lower()] = resolver


def candidate_metrics(resource: ResourceTuple) -> List[str]:
    """Metric names that may govern a resource, most specific first."""
    resolver = QUOTA_METRIC_MAP.get((resource.type or "").lower())
    if resolver is None:
        return []
    return [name for name in resolver(resource) if name]


def _namespace(resource_type: str) -> str:
    return (resource_type or "").split('/')[0].lower()


def find_metric(resource: ResourceTuple, metrics: Iterable[QuotaMetric]) -> Optional[QuotaMetric]:
    """Find the quota metric governing a resource in its own region.

    Metrics are indexed by (canonical region, lower-cased metric name); a metric
    reported for a different provider namespace is never matched.
    """
    region = canonical_region(resource.region)
    namespace = _namespace(resource.type)
    by_name: Dict[str, QuotaMetric] = {}
    for metric in metrics:
        if canonical_region(metric.region) != region:
            continue
        if metric.resource_type and _namespace(metric.resource_type) != namespace:
            continue
        by_name.setdefault(metric.metric_name.lower(), metric)
    for name in candidate_metrics(resource):
        metric = by_name.get(name.lower())
        if metric is not None:
            return metric
    return None


def enrich(tuples: List[ResourceTuple], metrics: Iterable[QuotaMetric]) -> List[ResourceTuple]:
    """Annotate resources in place with their governing quota metric.

    Each matched resource gets a deep copy of its metric and ``quota_usage``
    set to the metric's current usage; unmatched resources get ``quota=None``.
    Order and membership of ``tuples`` are unchanged.

    Args:
        tuples: Resources to annotate.
        metrics: Quota metrics for any number of regions.

    Returns:
        List[ResourceTuple]: The same list object that was passed in.
    """
    metrics = list(metrics)
    matched = 0
    for resource in tuples:
        metric = find_metric(resource, metrics)
        if metric is None:
            resource.quota = None
            resource.quota_usage = None
            continue
        resource.quota = copy.deepcopy(metric)
        resource.quota_usage = metric.current_usage
        matched += 1
    logger.info("Matched quota metrics for %d of %d resources", matched, len(tuples))
    return tuples


def rank_top_consumers(metrics: Iterable[QuotaMetric], region: str, n: int = 5) -> List[QuotaMetric]:
    """Top ``n`` metrics of a region by percent used.

    Ties break on current usage (descending) and then metric name.
    """
    in_region = [m for m in metrics if same_region(m.region, region)]
    in_region.sort(key=lambda m: (-m.percent_used, -m.current_usage, m.metric_name))
    return in_region[:max(n, 0)]


def fits_within_target(source: Optional[QuotaMetric],
                       target: Optional[QuotaMetric]) -> Optional[bool]:
    """Whether source consumption does not exceed what the target already uses.

    Returns:
        Optional[bool]: None when either side is missing.
    """
    if source is None or target is None:
        return None
    return source.current_usage <= target.current_usage


def fits_within_headroom(source: Optional[QuotaMetric],
                         target: Optional[QuotaMetric]) -> Optional[bool]:
    """Whether source consumption fits in the target's remaining quota."""
    if source is None or target is None:
        return None
    return source.current_usage <= target.available_quota


def compare_region_quotas(source_metrics: Iterable[QuotaMetric],
                          target_metrics: Iterable[QuotaMetric]) -> List[QuotaFit]:
    """Pair source and target metrics by name and evaluate both fit checks.

    Names are matched case-insensitively; rows are sorted by metric name.
    """
    sources = {m.metric_name.lower(): m for m in source_metrics}
    targets = {m.metric_name.lower(): m for m in target_metrics}
    fits = []
    for key in sorted(set(sources) | set(targets)):
        source = sources.get(key)
        target = targets.get(key)
        fits.append(QuotaFit(
            metric_name=(source or target).metric_name,
            source=source,
            target=target,
            fits=fits_within_target(source, target),
            fits_headroom=fits_within_headroom(source, target),
        ))
    return fits


QUOTA_SUMMARY_COLUMNS = [
    "region", "resourceType", "quotaMetric", "limit", "currentUsage",
    "availableQuota", "percentUsed",
]


def quota_summary_rows(metrics: Iterable[QuotaMetric]) -> List[Dict[str, object]]:
    """Flatten metrics into quota summary rows keyed by QUOTA_SUMMARY_COLUMNS."""
    return [
        {
            "region": m.region,
            "resourceType": m.resource_type,
            "quotaMetric": m.display_name,
            "limit": m.limit,
            "currentUsage": m.current_usage,
            "availableQuota": m.available_quota,
            "percentUsed": m.percent_used,
        }
        for m in metrics
    ]
