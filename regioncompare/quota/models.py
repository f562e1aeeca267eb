"""Data models for quota information."""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class QuotaMetric:
    """Limit and current usage of one quota metric in a region."""
    region: str
    resource_type: str
    metric_name: str
    limit: float
    current_usage: float
    localized_name: Optional[str] = None
    unit: Optional[str] = None

    @property
    def available_quota(self) -> float:
        """Calculate available quota."""
        return self.limit - self.current_usage

    @property
    def percent_used(self) -> int:
        """Usage as a whole percentage of the limit, 0 when the limit is 0."""
        if self.limit == 0:
            return 0
        # Round half up.
        return int(math.floor(self.current_usage / self.limit * 100 + 0.5))

    @property
    def display_name(self) -> str:
        return self.localized_name or self.metric_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "region": self.region,
            "resourceType": self.resource_type,
            "metricName": self.metric_name,
            "localizedName": self.localized_name,
            "unit": self.unit,
            "limit": self.limit,
            "currentUsage": self.current_usage,
            "availableQuota": self.available_quota,
            "percentUsed": self.percent_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuotaMetric":
        return cls(
            region=data["region"],
            resource_type=data.get("resourceType") or "",
            metric_name=data["metricName"],
            limit=float(data["limit"]),
            current_usage=float(data["currentUsage"]),
            localized_name=data.get("localizedName"),
            unit=data.get("unit"),
        )


@dataclass
class ResourceTuple:
    """A concrete resource descriptor supplied by the caller.

    Enrichment annotates it in place with ``quota`` and ``quota_usage``; the
    target availability check sets ``available``, ``availability_reason`` and
    ``restrictions``. ``available`` stays None when it cannot be determined.
    """
    type: str
    sku: Optional[str]
    region: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    quota: Optional[QuotaMetric] = None
    quota_usage: Optional[float] = None
    available: Optional[bool] = None
    availability_reason: Optional[str] = None
    restrictions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceTuple":
        """Build a tuple from an inventory row; unknown keys become attributes."""
        known = {"type", "sku", "region", "location", "quota", "quotaUsage",
                 "available", "availabilityReason", "restrictions"}
        return cls(
            type=data["type"],
            sku=data.get("sku"),
            region=data.get("region") or data.get("location") or "",
            attributes={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.attributes)
        result.update({
            "type": self.type,
            "sku": self.sku,
            "region": self.region,
            "quota": self.quota.to_dict() if self.quota else None,
            "quotaUsage": self.quota_usage,
            "available": self.available,
            "availabilityReason": self.availability_reason,
            "restrictions": list(self.restrictions),
        })
        return result


@dataclass(frozen=True)
class QuotaFit:
    """Source versus target usage for one quota metric."""
    metric_name: str
    source: Optional[QuotaMetric]
    target: Optional[QuotaMetric]
    fits: Optional[bool]
    fits_headroom: Optional[bool]

    @property
    def determinable(self) -> bool:
        return self.fits is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metricName": self.metric_name,
            "sourceUsage": self.source.current_usage if self.source else None,
            "targetUsage": self.target.current_usage if self.target else None,
            "targetAvailable": self.target.available_quota if self.target else None,
            "fits": self.fits,
            "fitsHeadroom": self.fits_headroom,
        }
