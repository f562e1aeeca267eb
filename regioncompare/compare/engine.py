"""Set-difference comparison and status classification."""
from typing import Iterable, List

from ..sku.models import ProviderSet
from .models import ComparisonRecord, ComparisonStatus

COMPUTE_PREFIX = "microsoft.compute"


def classify(source_count: int, target_count: int,
             only_in_source: int, only_in_target: int) -> ComparisonStatus:
    """Assign a status from SKU counts and gap sizes.

    Rules are applied in order and the first match wins:

    1. no SKUs on either side -> AVAILABLE_NO_SKUS
    2. no gap on either side -> FULL_MATCH
    3. SKUs only in the source -> SOURCE_RESTRICTED
    4. larger source-only gap -> SOURCE_EXTENDED
    5. larger target-only gap -> TARGET_EXTENDED
    6. anything else (equal non-zero gaps) -> PARTIAL_MATCH
    """
    if source_count == 0 and target_count == 0:
        return ComparisonStatus.AVAILABLE_NO_SKUS
    if only_in_source == 0 and only_in_target == 0:
        return ComparisonStatus.FULL_MATCH
    if target_count == 0 and source_count > 0:
        return ComparisonStatus.SOURCE_RESTRICTED
    if only_in_source > only_in_target:
        return ComparisonStatus.SOURCE_EXTENDED
    if only_in_target > only_in_source:
        return ComparisonStatus.TARGET_EXTENDED
    return ComparisonStatus.PARTIAL_MATCH


def compare(source_set: ProviderSet, target_set: ProviderSet) -> ComparisonRecord:
    """Compare one provider's SKU sets in the source and target regions.

    Args:
        source_set: SKUs in the source region.
        target_set: SKUs in the target region, same provider.

    Returns:
        ComparisonRecord: Set differences on normalized SKU names plus a status.

    Raises:
        ValueError: If the two sets belong to different providers.
    """
    if source_set.provider.lower() != target_set.provider.lower():
        raise ValueError(f"Cannot compare {source_set.provider} with {target_set.provider}")

    source_keys = source_set.sku_keys
    target_keys = target_set.sku_keys
    only_in_source = source_keys - target_keys
    only_in_target = target_keys - source_keys

    return ComparisonRecord(
        provider=source_set.provider,
        status=classify(len(source_keys), len(target_keys),
                        len(only_in_source), len(only_in_target)),
        source_region=source_set.region,
        target_region=target_set.region,
        source_sku_count=len(source_keys),
        target_sku_count=len(target_keys),
        only_in_source=frozenset(only_in_source),
        only_in_target=frozenset(only_in_target),
        common_count=len(source_keys & target_keys),
        source_resource_type_count=source_set.resource_type_count,
        target_resource_type_count=target_set.resource_type_count,
        source_note=source_set.note,
        target_note=target_set.note,
    )


def is_compute(provider: str) -> bool:
    return provider.lower().startswith(COMPUTE_PREFIX)


def rank_by_gap(records: Iterable[ComparisonRecord]) -> List[ComparisonRecord]:
    """Order records for reporting: compute first, then largest gap, then name."""
    return sorted(records, key=lambda r: (not is_compute(r.provider), -r.total_gap,
                                          r.provider.lower()))
