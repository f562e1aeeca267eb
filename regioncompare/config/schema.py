"""Pydantic models for run configuration."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..http.retry import RetryPolicy
from ..quota.models import ResourceTuple


class Settings(BaseModel):
    """Tunables for caching, concurrency and retry."""
    model_config = ConfigDict(populate_by_name=True)

    cache_dir: str = Field(default=".cache", alias='cacheDir')
    cache_ttl_seconds: int = Field(default=86400, gt=0, alias='cacheTtlSeconds')
    max_workers: int = Field(default=4, ge=1, alias='maxWorkers')
    max_retries: int = Field(default=3, ge=1, alias='maxRetries')
    base_backoff_seconds: float = Field(default=2.0, ge=0, alias='baseBackoffSeconds')
    max_backoff_seconds: float = Field(default=30.0, ge=0, alias='maxBackoffSeconds')
    backoff_jitter_seconds: float = Field(default=0.0, ge=0, alias='backoffJitterSeconds')
    request_timeout_seconds: float = Field(default=30.0, gt=0, alias='requestTimeoutSeconds')
    top_n: int = Field(default=5, ge=1, alias='topN')

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay=self.base_backoff_seconds,
            max_delay=self.max_backoff_seconds,
            jitter=self.backoff_jitter_seconds,
        )


class RunConfig(BaseModel):
    """Root run configuration."""
    model_config = ConfigDict(populate_by_name=True)

    subscription: Optional[str] = None
    source_region: str = Field(alias='sourceRegion')
    target_region: str = Field(alias='targetRegion')
    providers: List[str] = Field(default_factory=list)
    resources: List[Dict[str, Any]] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    @field_validator('source_region', 'target_region')
    @classmethod
    def _region_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("region must not be empty")
        return value.strip()

    @field_validator('resources')
    @classmethod
    def _resources_have_type(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, resource in enumerate(value):
            if not resource.get('type'):
                raise ValueError(f"resource #{index} has no type")
        return value

    def resource_tuples(self) -> List[ResourceTuple]:
        """Resources as ResourceTuples, defaulting their region to the source region."""
        tuples = []
        for resource in self.resources:
            item = ResourceTuple.from_dict(resource)
            if not item.region:
                item.region = self.source_region
            tuples.append(item)
        return tuples
