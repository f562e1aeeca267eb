"""Concurrent fetch-and-compare across providers."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import FetchCancelled
from ..sku.models import ProviderSet
from .engine import compare
from .models import ComparisonReport, SkippedProvider

logger = logging.getLogger(__name__)

SOURCE = "source"
TARGET = "target"


def unique_providers(providers: Iterable[str]) -> List[str]:
    """Drop empty and case-insensitive duplicate provider ids, keeping first spelling."""
    seen = set()
    result = []
    for provider in providers:
        provider = (provider or "").strip()
        if provider and provider.lower() not in seen:
            seen.add(provider.lower())
            result.append(provider)
    return result


class ComparisonRunner:
    """Fetches source and target SKU sets on a bounded pool and compares them.

    Each provider is compared as soon as both of its fetches are done; one
    provider's failure only skips that provider.
    """

    def __init__(self, fetcher, max_workers: int = 4,
                 cancel_event: Optional[threading.Event] = None):
        """Initialize the runner.

        Args:
            fetcher: Object with ``fetch(provider, region) -> ProviderSet``.
            max_workers: Upper bound on concurrent fetches.
            cancel_event: Event that, once set, stops new fetches from starting.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.fetcher = fetcher
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Stop issuing fetches; in-flight requests finish normally."""
        self.cancel_event.set()

    def _fetch(self, provider: str, region: str) -> ProviderSet:
        if self.cancel_event.is_set():
            raise FetchCancelled(f"Cancelled before fetching {provider} in {region}")
        return self.fetcher.fetch(provider, region)

    def run(self, providers: Iterable[str], source_region: str,
            target_region: str) -> ComparisonReport:
        """Compare every provider between the two regions.

        Args:
            providers: Provider namespaces or synthetic provider ids.
            source_region: Region being migrated from.
            target_region: Region being migrated to.

        Returns:
            ComparisonReport: Compared providers plus explicitly skipped ones.
        """
        providers = unique_providers(providers)
        report = ComparisonReport(source_region, target_region)
        logger.info("Comparing %d providers between %s and %s (%d workers)",
                    len(providers), source_region, target_region, self.max_workers)

        done: Dict[str, Dict[str, Future]] = {p: {} for p in providers}
        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix="sku-fetch") as executor:
            futures: Dict[Future, Tuple[str, str]] = {}
            for provider in providers:
                for side, region in ((SOURCE, source_region), (TARGET, target_region)):
                    futures[executor.submit(self._fetch, provider, region)] = (provider, side)

            for future in as_completed(futures):
                provider, side = futures[future]
                done[provider][side] = future
                if len(done[provider]) == 2:
                    self._finish(provider, done[provider], report)

        report.compared.sort(key=lambda r: r.provider.lower())
        report.skipped.sort(key=lambda s: s.provider.lower())
        report.cancelled = self.cancel_event.is_set()
        logger.info("Compared %d providers, skipped %d",
                    len(report.compared), len(report.skipped))
        return report

    def _finish(self, provider: str, pair: Dict[str, Future], report: ComparisonReport) -> None:
        errors = [f.exception() for f in (pair[SOURCE], pair[TARGET]) if f.exception()]
        if errors:
            # Prefer a real failure over a cancellation of the other side.
            errors.sort(key=lambda e: isinstance(e, FetchCancelled))
            error = errors[0]
            reason = "cancelled" if isinstance(error, FetchCancelled) else str(error)
            if not isinstance(error, FetchCancelled):
                logger.warning("Skipping %s: %s", provider, error)
            report.skipped.append(SkippedProvider(provider, reason, type(error).__name__))
            return
        try:
            record = compare(pair[SOURCE].result(), pair[TARGET].result())
        except Exception as e:
            logger.error("Comparison failed for %s: %s", provider, e, exc_info=True)
            report.skipped.append(SkippedProvider(provider, str(e), type(e).__name__))
            return
        logger.debug("%s: %s (gap %d)", provider, record.status.value, record.total_gap)
        report.compared.append(record)
        report.target_sets[provider] = pair[TARGET].result()
