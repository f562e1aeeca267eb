"""Tests for the cache-first SKU fetcher."""
import pytest

from regioncompare.cache.store import MemoryCacheStore
from regioncompare.errors import (
    EndpointNotFoundError,
    PermanentFetchError,
    TransientFetchError,
)
from regioncompare.http.retry import RetryPolicy
from regioncompare.sku.fetcher import SkuFetcher
from regioncompare.sku.normalizer import normalize


class Responses:
    """Route value answering successive calls with successive items."""

    def __init__(self, *items):
        self.items = list(items)

    def next(self):
        return self.items.pop(0) if len(self.items) > 1 else self.items[0]


class FakeArmClient:
    """Answers GETs from a path -> response table; responses may be exceptions."""

    subscription_id = "sub-123"

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def subscription_path(self, suffix):
        return f"/subscriptions/{self.subscription_id}/{suffix}"

    def get(self, path, params=None):
        self.calls.append((path, dict(params or {})))
        response = self.routes.get(path, EndpointNotFoundError(f"no route {path}"))
        if isinstance(response, Responses):
            response = response.next()
        if isinstance(response, Exception):
            raise response
        return response


WEB_SKUS = {"value": [
    {"name": "P1v3", "locations": ["East US", "West Europe"]},
    {"name": "S1", "locations": ["East US"]},
]}
WEB_REGISTRATION = {"resourceTypes": [
    {"resourceType": "sites", "locations": ["East US"]},
    {"resourceType": "serverfarms", "locations": ["East US"]},
]}


@pytest.fixture
def client():
    return FakeArmClient({
        "/subscriptions/sub-123/providers/Microsoft.Web/skus": WEB_SKUS,
        "/subscriptions/sub-123/providers/Microsoft.Web": WEB_REGISTRATION,
    })


@pytest.fixture
def fetcher(client):
    return SkuFetcher(client, MemoryCacheStore(), RetryPolicy(max_attempts=2),
                      sleep=lambda s: None)


class TestSkuFetcher:
    def test_fetch_normalizes_with_registration(self, fetcher):
        result = fetcher.fetch("Microsoft.Web", "eastus")
        assert result.sku_keys == {"p1v3", "s1"}
        assert result.resource_type_count == 2

    def test_second_fetch_served_from_cache(self, fetcher, client):
        first = fetcher.fetch("Microsoft.Web", "eastus")
        calls = len(client.calls)
        second = fetcher.fetch("Microsoft.Web", "East US")
        assert second == first
        assert len(client.calls) == calls

    def test_cached_result_equals_direct_normalization(self, fetcher):
        fetcher.fetch("Microsoft.Web", "eastus")
        cached = fetcher.fetch("Microsoft.Web", "eastus")
        assert cached == normalize(WEB_SKUS, "Microsoft.Web", "eastus", WEB_REGISTRATION)

    def test_regions_cached_separately(self, fetcher):
        assert fetcher.fetch("Microsoft.Web", "westeurope").sku_keys == {"p1v3"}
        assert fetcher.fetch("Microsoft.Web", "eastus").sku_keys == {"p1v3", "s1"}

    def test_provider_without_sku_endpoint_is_empty(self, fetcher):
        result = fetcher.fetch("Microsoft.KeyVault", "eastus")
        assert result.sku_count == 0
        assert result.resource_type_count == 0

    def test_transient_failure_retried_then_succeeds(self, client, fetcher):
        client.routes["/subscriptions/sub-123/providers/Microsoft.Web/skus"] = Responses(
            TransientFetchError("429", status_code=429), WEB_SKUS)
        assert fetcher.fetch("Microsoft.Web", "eastus").sku_count == 2

    def test_permanent_failure_propagates(self, client, fetcher):
        client.routes["/subscriptions/sub-123/providers/Microsoft.Web/skus"] = \
            PermanentFetchError("403", status_code=403)
        with pytest.raises(PermanentFetchError):
            fetcher.fetch("Microsoft.Web", "eastus")

    def test_api_version_fallback(self, client, fetcher):
        fetcher.fetch("Microsoft.Compute", "eastus")
        versions = [params.get("api-version") for path, params in client.calls
                    if path.endswith("Microsoft.Compute/skus")]
        assert versions == ["2021-07-01", "2019-04-01"]

    def test_managed_disks_skip_registration(self, client, fetcher):
        client.routes["/subscriptions/sub-123/providers/Microsoft.Compute/skus"] = {"value": [
            {"resourceType": "disks", "name": "Premium_LRS", "locations": ["eastus"]},
        ]}
        result = fetcher.fetch("Microsoft.Compute/disks", "eastus")
        assert result.sku_keys == {"premium_lrs"}
        assert all(not path.endswith("/providers/Microsoft.Compute") for path, _ in client.calls)


PG_CAPABILITIES = "/subscriptions/sub-123/providers/Microsoft.DBforPostgreSQL/locations/eastus/capabilities"
PG_SKUS = "/subscriptions/sub-123/providers/Microsoft.DBforPostgreSQL/skus"


class TestCapabilitiesFallback:
    def test_empty_capabilities_use_generic_listing(self, client, fetcher):
        client.routes[PG_CAPABILITIES] = {"value": []}
        client.routes[PG_SKUS] = {"value": [
            {"name": "Standard_D2ds_v4", "locations": ["East US"]},
            {"name": "Standard_E2ds_v4", "locations": ["West US"]},
        ]}
        result = fetcher.fetch("Microsoft.DBforPostgreSQL", "eastus")
        assert result.sku_keys == {"standard_d2ds_v4"}
        assert any(path == PG_SKUS for path, _ in client.calls)

    def test_capabilities_with_skus_skip_generic_listing(self, client, fetcher):
        client.routes[PG_CAPABILITIES] = {"value": [{"supportedFlexibleServerEditions": [
            {"supportedServerVersions": [{"supportedSkus": [{"name": "Standard_B1ms"}]}]},
        ]}]}
        result = fetcher.fetch("Microsoft.DBforPostgreSQL", "eastus")
        assert result.sku_keys == {"standard_b1ms"}
        assert all(path != PG_SKUS for path, _ in client.calls)

    def test_both_empty_keeps_capabilities_note(self, client, fetcher):
        client.routes[PG_CAPABILITIES] = {"value": [{"reason": "Subscription is restricted"}]}
        result = fetcher.fetch("Microsoft.DBforPostgreSQL", "eastus")
        assert result.sku_count == 0
        assert result.note == "Subscription is restricted"
        assert any(path == PG_SKUS for path, _ in client.calls)
