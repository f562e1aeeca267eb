"""Tests for quota usage adapters and the quota fetcher."""
import threading
from unittest.mock import MagicMock

import pytest
import requests

from regioncompare.cache.store import MemoryCacheStore
from regioncompare.errors import EndpointNotFoundError, PermanentFetchError
from regioncompare.http.client import ArmClient
from regioncompare.http.retry import RetryPolicy
from regioncompare.quota.providers import (
    ComputeUsageAdapter,
    LocationUsagesAdapter,
    PostgreSQLUsageAdapter,
    QuotaFetcher,
    UsageAdapterRegistry,
    quota_providers_for,
)

COMPUTE_USAGES = {"value": [
    {"name": {"value": "cores", "localizedValue": "Total Regional vCPUs"},
     "limit": 100, "currentValue": 24, "unit": "Count"},
    {"name": {"value": "standardDSv3Family", "localizedValue": "Standard DSv3 Family vCPUs"},
     "limit": 350, "currentValue": 120, "unit": "Count"},
    {"name": {"value": "brokenRow"}, "limit": None, "currentValue": 1},
    {"name": {"value": "textRow"}, "limit": "lots", "currentValue": 1},
    {"limit": 1, "currentValue": 1},
]}


def subscription_path(suffix):
    return f"/subscriptions/sub-123/{suffix}"


@pytest.fixture
def client():
    client = MagicMock()
    client.subscription_id = "sub-123"
    client.subscription_path.side_effect = subscription_path
    return client


@pytest.fixture
def fetcher(client):
    return QuotaFetcher(client, MemoryCacheStore(), RetryPolicy(max_attempts=1),
                        sleep=lambda s: None)


class TestUsageAdapters:
    def test_parse_skips_malformed_rows(self):
        metrics = ComputeUsageAdapter().parse(COMPUTE_USAGES, "Microsoft.Compute", "eastus")
        assert [m.metric_name for m in metrics] == ["cores", "standardDSv3Family"]
        cores = metrics[0]
        assert cores.limit == 100
        assert cores.current_usage == 24
        assert cores.available_quota == 76
        assert cores.percent_used == 24
        assert cores.localized_name == "Total Regional vCPUs"
        assert cores.unit == "Count"

    def test_location_usages_path(self):
        path = LocationUsagesAdapter().request_path(subscription_path, "Microsoft.Network",
                                                    "West Europe")
        assert path == "/subscriptions/sub-123/providers/Microsoft.Network/locations/westeurope/usages"

    def test_postgres_flexible_server_path(self):
        path = PostgreSQLUsageAdapter().request_path(subscription_path,
                                                     "Microsoft.DBforPostgreSQL", "eastus")
        assert path.endswith("/locations/eastus/resourceType/flexibleServers/usages")

    def test_registry_lookup_with_fallback(self):
        registry = UsageAdapterRegistry()
        assert isinstance(registry.get_adapter("Microsoft.Compute/virtualMachines"),
                          ComputeUsageAdapter)
        assert registry.get_adapter("Contoso.Widgets") is registry.fallback

    def test_quota_providers_for(self):
        assert quota_providers_for([
            "Microsoft.Compute/virtualMachines", "microsoft.compute/disks",
            "Microsoft.Network/publicIPAddresses", "",
        ]) == ["Microsoft.Compute", "Microsoft.Network"]


class TestQuotaFetcher:
    def test_fetch_and_cache(self, fetcher, client):
        client.get.return_value = COMPUTE_USAGES
        first = fetcher.fetch("Microsoft.Compute", "eastus")
        second = fetcher.fetch("Microsoft.Compute", "East US")
        assert [m.metric_name for m in first] == ["cores", "standardDSv3Family"]
        assert second == first
        client.get.assert_called_once()
        path, params = client.get.call_args[0]
        assert path == "/subscriptions/sub-123/providers/Microsoft.Compute/locations/eastus/usages"
        assert params == {"api-version": "2023-09-01"}

    def test_namespace_without_usages_is_empty(self, fetcher, client):
        client.get.side_effect = EndpointNotFoundError("no usages")
        assert fetcher.fetch("Microsoft.KeyVault", "eastus") == []

    def test_unexpected_shape_is_empty(self, fetcher, client):
        client.get.return_value = {"usages": "?"}
        assert fetcher.fetch("Microsoft.Compute", "eastus") == []

    def test_fetch_all_skips_failing_namespace(self, fetcher, client):
        def get(path, params):
            if "Microsoft.Network" in path:
                raise PermanentFetchError("HTTP 403", status_code=403)
            return COMPUTE_USAGES

        client.get.side_effect = get
        metrics = fetcher.fetch_all(["Microsoft.Network", "Microsoft.Compute"], "eastus")
        assert {m.resource_type for m in metrics} == {"Microsoft.Compute"}

    def test_fetch_all_skips_namespace_with_broken_body(self):
        def session_get(url, **kwargs):
            if "Microsoft.Network" in url:
                raise requests.exceptions.ChunkedEncodingError("connection broken")
            response = MagicMock(status_code=200, headers={})
            response.json.return_value = COMPUTE_USAGES
            return response

        credential = MagicMock()
        credential.get_token.return_value.token = "token"
        session = MagicMock()
        session.get.side_effect = session_get
        arm = ArmClient("sub-123", credential=credential, session=session)
        fetcher = QuotaFetcher(arm, MemoryCacheStore(), RetryPolicy(max_attempts=2),
                               sleep=lambda s: None)

        metrics = fetcher.fetch_all(["Microsoft.Compute", "Microsoft.Network"], "eastus")
        assert {m.resource_type for m in metrics} == {"Microsoft.Compute"}
        network_calls = [c for c in session.get.call_args_list if "Microsoft.Network" in c[0][0]]
        # Two attempts for each of the two Network api-versions.
        assert len(network_calls) == 4

    def test_fetch_all_stops_once_cancelled(self, fetcher, client):
        client.get.return_value = COMPUTE_USAGES
        cancel_event = threading.Event()
        cancel_event.set()
        assert fetcher.fetch_all(["Microsoft.Compute"], "eastus", cancel_event=cancel_event) == []
        client.get.assert_not_called()
