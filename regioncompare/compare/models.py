"""Data models for region comparison results."""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from ..sku.models import ProviderSet


class ComparisonStatus(str, Enum):
    """Classification of a provider's SKU coverage across two regions."""
    AVAILABLE_NO_SKUS = "AVAILABLE_NO_SKUS"
    FULL_MATCH = "FULL_MATCH"
    SOURCE_RESTRICTED = "SOURCE_RESTRICTED"
    SOURCE_EXTENDED = "SOURCE_EXTENDED"
    TARGET_EXTENDED = "TARGET_EXTENDED"
    PARTIAL_MATCH = "PARTIAL_MATCH"


@dataclass(frozen=True)
class ComparisonRecord:
    """One provider's comparison between a source and a target region."""
    provider: str
    status: ComparisonStatus
    source_region: str
    target_region: str
    source_sku_count: int
    target_sku_count: int
    only_in_source: FrozenSet[str]
    only_in_target: FrozenSet[str]
    common_count: int = 0
    source_resource_type_count: int = 0
    target_resource_type_count: int = 0
    source_note: Optional[str] = None
    target_note: Optional[str] = None

    @property
    def total_gap(self) -> int:
        """SKUs present in one region but not the other."""
        return len(self.only_in_source) + len(self.only_in_target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status.value,
            "totalGap": self.total_gap,
            "commonCount": self.common_count,
            "sourceRegion": {
                "name": self.source_region,
                "resourceTypes": self.source_resource_type_count,
                "skuCount": self.source_sku_count,
                "onlyHere": sorted(self.only_in_source),
                "note": self.source_note,
            },
            "targetRegion": {
                "name": self.target_region,
                "resourceTypes": self.target_resource_type_count,
                "skuCount": self.target_sku_count,
                "onlyHere": sorted(self.only_in_target),
                "note": self.target_note,
            },
        }


@dataclass(frozen=True)
class SkippedProvider:
    """A provider that could not be compared, and why."""
    provider: str
    reason: str
    error_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"provider": self.provider, "reason": self.reason, "errorType": self.error_type}


@dataclass
class ComparisonReport:
    """Outcome of a comparison run: compared providers and skipped ones.

    ``target_sets`` keeps the target-region SKU set of every compared provider
    for per-resource checks; it is not serialized.
    """
    source_region: str
    target_region: str
    compared: List[ComparisonRecord] = field(default_factory=list)
    skipped: List[SkippedProvider] = field(default_factory=list)
    cancelled: bool = False
    target_sets: Dict[str, ProviderSet] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_complete(self) -> bool:
        return not self.skipped and not self.cancelled

    def record_for(self, provider: str) -> Optional[ComparisonRecord]:
        for record in self.compared:
            if record.provider.lower() == provider.lower():
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceRegion": self.source_region,
            "targetRegion": self.target_region,
            "cancelled": self.cancelled,
            "compared": [r.to_dict() for r in self.compared],
            "skipped": [s.to_dict() for s in self.skipped],
        }

    def save(self, output_path: str) -> None:
        """Save the report to a JSON file.

        Args:
            output_path: Path to write the JSON file.
        """
        with open(output_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
