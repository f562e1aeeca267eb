"""Region migration analysis: SKU comparison plus quota enrichment."""
import json
import logging
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .cache.store import CacheStore, FileCacheStore
from .compare.availability import check_availability
from .compare.models import ComparisonReport
from .compare.runner import ComparisonRunner
from .config.schema import RunConfig
from .http.client import ArmClient
from .quota.enrichment import (
    compare_region_quotas,
    enrich,
    quota_summary_rows,
    rank_top_consumers,
)
from .quota.models import QuotaFit, QuotaMetric, ResourceTuple
from .quota.providers import QuotaFetcher, quota_providers_for
from .regions import same_region
from .sku.fetcher import SkuFetcher

logger = logging.getLogger(__name__)


@dataclass
class RegionAnalysis:
    """Everything a migration review needs for one source/target pair."""
    report: ComparisonReport
    resources: List[ResourceTuple] = field(default_factory=list)
    source_quota: List[QuotaMetric] = field(default_factory=list)
    target_quota: List[QuotaMetric] = field(default_factory=list)
    quota_fits: List[QuotaFit] = field(default_factory=list)
    top_consumers: List[QuotaMetric] = field(default_factory=list)

    @property
    def blockers(self) -> List[QuotaFit]:
        """Quota metrics where the source uses more than the target."""
        return [fit for fit in self.quota_fits if fit.fits is False]

    @property
    def unavailable(self) -> List[ResourceTuple]:
        """Resources whose SKU is missing or restricted in the target region."""
        return [r for r in self.resources if r.available is False]

    def to_dict(self) -> Dict[str, Any]:
        result = self.report.to_dict()
        result.update({
            "resources": [r.to_dict() for r in self.resources],
            "unavailableCount": len(self.unavailable),
            "quotaSummary": quota_summary_rows(self.source_quota + self.target_quota),
            "quotaFits": [fit.to_dict() for fit in self.quota_fits],
            "topConsumers": [m.to_dict() for m in self.top_consumers],
        })
        return result

    def save(self, output_path: str) -> None:
        """Save the analysis to a JSON file.

        Args:
            output_path: Path to write the JSON file.
        """
        with open(output_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def get_default_subscription() -> str:
    """Get the default subscription ID from Azure CLI.

    Raises:
        subprocess.CalledProcessError: If Azure CLI command fails.
    """
    cmd = ["az", "account", "show", "--query", "id", "-o", "tsv"]
    logger.debug("Running command: %s", " ".join(cmd))
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    subscription_id = result.stdout.strip()
    logger.debug("Using subscription ID: %s", subscription_id)
    return subscription_id


class RegionAnalyzer:
    """Wires the fetchers, runner and quota enrichment for one run config."""

    def __init__(self, config: RunConfig, client=None, cache: Optional[CacheStore] = None,
                 cancel_event: Optional[threading.Event] = None):
        """Initialize the analyzer.

        Args:
            config: Validated run configuration.
            client: ARM client; built from the config's subscription when omitted.
            cache: Cache store; a FileCacheStore under ``settings.cache_dir`` when omitted.
            cancel_event: Event that stops new fetches once set.
        """
        self.config = config
        settings = config.settings
        if client is None:
            subscription = config.subscription or get_default_subscription()
            client = ArmClient(subscription, timeout=settings.request_timeout_seconds)
        self.client = client
        self.cache = cache or FileCacheStore(settings.cache_dir, settings.cache_ttl_seconds)
        policy = settings.retry_policy()
        self.sku_fetcher = SkuFetcher(self.client, self.cache, retry_policy=policy)
        self.quota_fetcher = QuotaFetcher(self.client, self.cache, retry_policy=policy)
        self.cancel_event = cancel_event or threading.Event()
        self.runner = ComparisonRunner(self.sku_fetcher, max_workers=settings.max_workers,
                                       cancel_event=self.cancel_event)

    def providers(self, resources: List[ResourceTuple]) -> List[str]:
        """Configured providers, or the namespaces of the resources when none are set."""
        if self.config.providers:
            return list(self.config.providers)
        return quota_providers_for(r.type for r in resources)

    def analyze(self) -> RegionAnalysis:
        """Compare SKU availability and quota usage between the two regions.

        Returns:
            RegionAnalysis: Comparison report plus enriched resources and quota fits.
        """
        config = self.config
        resources = config.resource_tuples()
        report = self.runner.run(self.providers(resources),
                                 config.source_region, config.target_region)
        analysis = RegionAnalysis(report=report, resources=resources)
        check_availability(resources, report.target_sets.values(),
                           config.source_region, config.target_region)
        if not resources:
            return analysis
        if self.cancel_event.is_set():
            logger.info("Run cancelled; skipping quota fetches")
            return analysis

        namespaces = quota_providers_for(r.type for r in resources)
        regions = [config.source_region]
        if not same_region(config.source_region, config.target_region):
            regions.append(config.target_region)
        else:
            logger.info("Target region same as source; skipping target quota fetch")
        with ThreadPoolExecutor(max_workers=len(regions),
                                thread_name_prefix="quota-fetch") as executor:
            futures = [executor.submit(self.quota_fetcher.fetch_all, namespaces, region,
                                       self.cancel_event)
                       for region in regions]
            results = [future.result() for future in futures]
        analysis.source_quota = results[0]
        if len(results) > 1:
            analysis.target_quota = results[1]

        enrich(resources, analysis.source_quota)
        governing = {r.quota.metric_name.lower() for r in resources if r.quota is not None}
        analysis.quota_fits = [
            fit for fit in compare_region_quotas(analysis.source_quota, analysis.target_quota)
            if fit.metric_name.lower() in governing
        ]
        analysis.top_consumers = rank_top_consumers(analysis.source_quota, config.source_region,
                                                    config.settings.top_n)
        return analysis
