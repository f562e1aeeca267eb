"""Tests for quota metrics, enrichment and ranking."""
import pytest

from regioncompare.quota.enrichment import (
    QUOTA_METRIC_MAP,
    QUOTA_SUMMARY_COLUMNS,
    candidate_metrics,
    compare_region_quotas,
    enrich,
    fits_within_headroom,
    fits_within_target,
    quota_summary_rows,
    rank_top_consumers,
    register_quota_mapping,
    vm_family_metric,
)
from regioncompare.quota.models import QuotaMetric, ResourceTuple


def metric(name, limit, usage, region="centralus", resource_type="Microsoft.Compute", **kwargs):
    return QuotaMetric(region, resource_type, name, limit, usage, **kwargs)


@pytest.fixture
def compute_metrics():
    return [
        metric("standardDSv3Family", 350, 120, localized_name="Standard DSv3 Family vCPUs"),
        metric("standardBSFamily", 100, 24, localized_name="Standard BS Family vCPUs"),
        metric("standardFSv2Family", 50, 15),
        metric("cores", 500, 159, localized_name="Total Regional vCPUs"),
        metric("StandardSSDDiskCount", 1000, 10),
        metric("standardDSv3Family", 350, 0, region="eastus"),
    ]


class TestQuotaMetric:
    def test_available_and_percent(self):
        m = metric("standardBSFamily", 100, 24)
        assert m.available_quota == 76
        assert m.percent_used == 24

    def test_zero_limit_has_zero_percent(self):
        assert metric("x", 0, 0).percent_used == 0
        assert metric("x", 0, 5).percent_used == 0

    def test_percent_rounds_half_up(self):
        assert metric("x", 350, 120).percent_used == 34
        assert metric("x", 200, 1).percent_used == 1
        assert metric("x", 8, 3).percent_used == 38

    def test_dict_round_trip(self):
        m = metric("cores", 10, 3, localized_name="Total Regional vCPUs", unit="Count")
        assert QuotaMetric.from_dict(m.to_dict()) == m


class TestVmFamily:
    @pytest.mark.parametrize("size,family", [
        ("Standard_D2s_v3", "standardDSv3Family"),
        ("Standard_D4_v3", "standardDv3Family"),
        ("Standard_DS2_v2", "standardDSv2Family"),
        ("Standard_F8s_v2", "standardFSv2Family"),
        ("Standard_E4-2ds_v4", "standardEDSv4Family"),
        ("Standard_D2ads_v5", "standardDADSv5Family"),
        ("Standard_NC6s_v3", "standardNCSv3Family"),
        ("Standard_B2ms", "standardBSFamily"),
        ("Standard_M128ms", "standardMSFamily"),
        ("Basic_A1", "basicAFamily"),
    ])
    def test_family_from_size(self, size, family):
        assert vm_family_metric(size) == family

    @pytest.mark.parametrize("size", [None, "", "not a size"])
    def test_unparseable_size(self, size):
        assert vm_family_metric(size) is None

    def test_vm_candidates_fall_back_to_cores(self):
        vm = ResourceTuple("Microsoft.Compute/virtualMachines", None, "centralus",
                           {"vmSize": "Standard_D2s_v3"})
        assert candidate_metrics(vm) == ["standardDSv3Family", "cores"]


class TestEnrich:
    def test_vm_gets_family_metric(self, compute_metrics):
        vm = ResourceTuple("microsoft.compute/virtualmachines", "Standard_D2s_v3", "Central US")
        enrich([vm], compute_metrics)
        assert vm.quota.metric_name == "standardDSv3Family"
        assert vm.quota.region == "centralus"
        assert vm.quota_usage == 120

    def test_unknown_family_falls_back_to_cores(self, compute_metrics):
        vm = ResourceTuple("Microsoft.Compute/virtualMachines", "Standard_L8s_v3", "centralus")
        enrich([vm], compute_metrics)
        assert vm.quota.metric_name == "cores"

    def test_attached_metric_is_a_copy(self, compute_metrics):
        vm = ResourceTuple("Microsoft.Compute/virtualMachines", "Standard_B2s", "centralus")
        enrich([vm], compute_metrics)
        assert vm.quota == compute_metrics[1]
        assert vm.quota is not compute_metrics[1]

    def test_unmatched_tuples_keep_order_and_get_none(self, compute_metrics):
        tuples = [
            ResourceTuple("Microsoft.KeyVault/vaults", "standard", "centralus"),
            ResourceTuple("Microsoft.Compute/disks", "StandardSSD_LRS", "centralus"),
            ResourceTuple("Microsoft.Compute/virtualMachines", "Standard_D2s_v3", "westus"),
        ]
        original = list(tuples)
        result = enrich(tuples, compute_metrics)
        assert result is tuples
        assert result == original
        assert tuples[0].quota is None
        assert tuples[1].quota.metric_name == "StandardSSDDiskCount"
        assert tuples[2].quota is None
        assert tuples[2].quota_usage is None

    def test_metric_from_other_namespace_not_matched(self):
        network = [metric("cores", 10, 1, resource_type="Microsoft.Network")]
        vm = ResourceTuple("Microsoft.Compute/virtualMachines", "Standard_D2s_v3", "centralus")
        enrich([vm], network)
        assert vm.quota is None

    def test_metric_name_match_is_case_insensitive(self):
        metrics = [metric("standardsdssdfamily", 1, 1),
                   metric("STANDARDDSV3FAMILY", 10, 2)]
        vm = ResourceTuple("Microsoft.Compute/virtualMachines", "Standard_D2s_v3", "centralus")
        enrich([vm], metrics)
        assert vm.quota_usage == 2

    def test_registered_mapping_is_used(self):
        register_quota_mapping("Contoso.Widgets/gadgets", lambda r: ["gadgetCount"])
        try:
            gadget = ResourceTuple("contoso.widgets/gadgets", None, "centralus")
            enrich([gadget], [metric("gadgetCount", 5, 4, resource_type="Contoso.Widgets")])
            assert gadget.quota_usage == 4
        finally:
            QUOTA_METRIC_MAP.pop("contoso.widgets/gadgets", None)


class TestRanking:
    def test_top_consumers_for_region(self, compute_metrics):
        top = rank_top_consumers(compute_metrics, "centralus", n=3)
        assert [m.metric_name for m in top] == [
            "standardDSv3Family", "cores", "standardFSv2Family"]

    def test_ties_break_on_usage_then_name(self):
        metrics = [
            metric("b", 100, 10), metric("a", 100, 10),
            metric("c", 1000, 100), metric("d", 0, 0),
        ]
        top = rank_top_consumers(metrics, "centralus")
        assert [m.metric_name for m in top] == ["c", "a", "b", "d"]

    def test_truncates_to_n(self, compute_metrics):
        assert len(rank_top_consumers(compute_metrics, "centralus")) == 5
        assert rank_top_consumers(compute_metrics, "centralus", n=0) == []

    def test_other_regions_excluded(self, compute_metrics):
        top = rank_top_consumers(compute_metrics, "East US")
        assert [m.metric_name for m in top] == ["standardDSv3Family"]


class TestFit:
    def test_fits_when_source_usage_not_above_target_usage(self):
        source = metric("cores", 100, 20)
        assert fits_within_target(source, metric("cores", 100, 20, region="eastus")) is True
        assert fits_within_target(source, metric("cores", 100, 19, region="eastus")) is False

    def test_missing_side_cannot_be_determined(self):
        assert fits_within_target(None, metric("cores", 1, 1)) is None
        assert fits_within_target(metric("cores", 1, 1), None) is None
        assert fits_within_headroom(None, None) is None

    def test_headroom_uses_target_available(self):
        source = metric("cores", 100, 30)
        assert fits_within_headroom(source, metric("cores", 100, 70, region="eastus")) is True
        assert fits_within_headroom(source, metric("cores", 100, 71, region="eastus")) is False

    def test_compare_region_quotas_pairs_by_name(self):
        source = [metric("cores", 100, 30), metric("standardBSFamily", 10, 5)]
        target = [metric("Cores", 100, 10, region="eastus"),
                  metric("availabilitySets", 2500, 0, region="eastus")]
        fits = {f.metric_name.lower(): f for f in compare_region_quotas(source, target)}
        assert fits["cores"].fits is False
        assert fits["cores"].fits_headroom is True
        assert fits["standardbsfamily"].fits is None
        assert not fits["standardbsfamily"].determinable
        assert fits["availabilitysets"].source is None


def test_quota_summary_rows():
    rows = quota_summary_rows([metric("standardBSFamily", 100, 24,
                                      localized_name="Standard BS Family vCPUs")])
    assert list(rows[0]) == QUOTA_SUMMARY_COLUMNS
    assert rows[0]["quotaMetric"] == "Standard BS Family vCPUs"
    assert rows[0]["availableQuota"] == 76
    assert rows[0]["percentUsed"] == 24
