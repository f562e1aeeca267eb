"""Uniform SKU set model shared by every provider."""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class SkuRecord:
    """One provider-exposed capability unit in a region."""
    name: str
    display_name: str
    resource_type: str = ""
    tier: Optional[str] = None
    kind: Optional[str] = None
    locations: FrozenSet[str] = frozenset()
    restrictions: FrozenSet[str] = frozenset()

    @classmethod
    def create(cls, name: str, resource_type: str = "", tier: Optional[str] = None,
               kind: Optional[str] = None, locations: Iterable[str] = (),
               restrictions: Iterable[str] = ()) -> "SkuRecord":
        """Build a record, lower-casing the name into the comparison key."""
        return cls(
            name=name.strip().lower(),
            display_name=name.strip(),
            resource_type=resource_type or "",
            tier=tier or None,
            kind=kind or None,
            locations=frozenset(locations),
            restrictions=frozenset(restrictions),
        )

    @property
    def is_restricted(self) -> bool:
        return bool(self.restrictions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "resourceType": self.resource_type,
            "tier": self.tier,
            "kind": self.kind,
            "locations": sorted(self.locations),
            "restrictions": sorted(self.restrictions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkuRecord":
        return cls(
            name=data["name"],
            display_name=data.get("displayName") or data["name"],
            resource_type=data.get("resourceType") or "",
            tier=data.get("tier"),
            kind=data.get("kind"),
            locations=frozenset(data.get("locations") or ()),
            restrictions=frozenset(data.get("restrictions") or ()),
        )


@dataclass(frozen=True)
class ProviderSet:
    """Every SKU one provider exposes in one region, keyed by normalized name.

    Built fresh for each comparison run and never mutated afterwards.
    """
    provider: str
    region: str
    resource_type_count: int = 0
    skus: Dict[str, SkuRecord] = field(default_factory=dict)
    note: Optional[str] = None

    @property
    def sku_keys(self) -> FrozenSet[str]:
        return frozenset(self.skus)

    @property
    def sku_count(self) -> int:
        return len(self.skus)

    @classmethod
    def empty(cls, provider: str, region: str, resource_type_count: int = 0,
              note: Optional[str] = None) -> "ProviderSet":
        return cls(provider, region, resource_type_count, {}, note)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-serializable form used for caching."""
        return {
            "provider": self.provider,
            "region": self.region,
            "resourceTypeCount": self.resource_type_count,
            "note": self.note,
            "skus": [self.skus[k].to_dict() for k in sorted(self.skus)],
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProviderSet":
        records = [SkuRecord.from_dict(item) for item in payload.get("skus") or []]
        return cls(
            provider=payload["provider"],
            region=payload["region"],
            resource_type_count=int(payload.get("resourceTypeCount") or 0),
            skus={r.name: r for r in records},
            note=payload.get("note"),
        )
