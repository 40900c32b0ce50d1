"""Tests for the node state per partition collector module."""

from unittest.mock import MagicMock

import pytest
from prometheus_client.core import GaugeMetricFamily

from slurm_partition_exporter.collectors import nodes_per_partition
from slurm_partition_exporter.collectors.nodes_per_partition import StateCategory
from slurm_partition_exporter.slurmcli import CommandError

# ---------------------------------------------------------------------------
# classify_state
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ("allocated", StateCategory.ALLOCATED),
        ("allocated+", StateCategory.ALLOCATED),
        ("completing", StateCategory.COMPLETING),
        ("down*", StateCategory.DOWN),
        ("drained", StateCategory.DRAINING),
        ("draining", StateCategory.DRAINING),
        ("error", StateCategory.ERROR),
        ("fail", StateCategory.FAILING),
        ("failing", StateCategory.FAILING),
        ("idle~", StateCategory.IDLE),
        ("maint", StateCategory.MAINTENANCE),
        ("mixed", StateCategory.MIXED),
        ("reserved", StateCategory.RESERVED),
        ("resv", StateCategory.RESERVED),
    ],
)
def test_classify_state(state: str, expected: StateCategory):
    """Raw states map to their category by prefix."""
    assert nodes_per_partition.classify_state(state) is expected


@pytest.mark.parametrize("state", ["unknown_state", "IDLE", "planned", "", " idle"])
def test_classify_state_no_match(state: str):
    """Unmatched and differently cased states are not classified."""
    assert nodes_per_partition.classify_state(state) is None


def test_state_prefixes_cover_every_category():
    """Every category is reachable through exactly one prefix."""
    categories = [category for _, category in nodes_per_partition.STATE_PREFIXES]
    assert sorted(categories) == sorted(StateCategory)


# ---------------------------------------------------------------------------
# aggregate_node_states
# ---------------------------------------------------------------------------


def test_aggregate_sample_output(sinfo_nodes_output: str):
    """Captured sinfo output aggregates into per partition counts."""
    result = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)

    assert set(result) == {"batch", "gpu", "debug"}
    batch = result["batch"].counts
    assert batch[StateCategory.ALLOCATED] == 4
    assert batch[StateCategory.IDLE] == 2
    assert batch[StateCategory.DRAINING] == 1

    gpu = result["gpu"].counts
    assert gpu[StateCategory.MIXED] == 3
    assert gpu[StateCategory.DOWN] == 1
    assert gpu[StateCategory.MAINTENANCE] == 2
    assert gpu[StateCategory.RESERVED] == 1


def test_aggregate_every_partition_has_all_categories(sinfo_nodes_output: str):
    """Each partition reports a full vector of categories."""
    result = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    for entry in result.values():
        assert set(entry.counts) == set(StateCategory)


def test_aggregate_unknown_state_registers_partition_with_zeros(
    sinfo_nodes_output: str,
):
    """A partition seen only with an unknown state has all counts at zero."""
    result = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    assert result["debug"].total == 0


def test_aggregate_total_matches_unique_lines():
    """The category sum equals the sum of unique classified line counts."""
    output = "3,idle,p\n3,idle,p\n2,mixed,p\n5,down,p*\n"
    result = nodes_per_partition.aggregate_node_states(output)
    assert result["p"].total == 3 + 2 + 5


def test_aggregate_duplicates_are_idempotent(sinfo_nodes_output: str):
    """Repeating every line N times gives the same result as once."""
    once = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    repeated = nodes_per_partition.aggregate_node_states(sinfo_nodes_output * 4)
    assert repeated == once


def test_aggregate_dedup_uses_raw_text():
    """Lines that differ only in whitespace are both counted."""
    result = nodes_per_partition.aggregate_node_states("2,idle,p\n 2,idle,p\n")
    assert result["p"].counts[StateCategory.IDLE] == 4


def test_aggregate_default_marker_merges_partitions():
    """"gpu*" and "gpu" share one entry."""
    marked = nodes_per_partition.aggregate_node_states("4,idle,gpu*\n")
    plain = nodes_per_partition.aggregate_node_states("4,idle,gpu\n")
    mixed = nodes_per_partition.aggregate_node_states("2,idle,gpu*\n2,idle,gpu\n")

    assert marked == plain
    assert mixed["gpu"].counts[StateCategory.IDLE] == 4


def test_aggregate_bad_count_is_zero():
    """A non-numeric count keeps the partition with a zero contribution."""
    result = nodes_per_partition.aggregate_node_states("x,idle,p\n")
    assert result["p"].counts[StateCategory.IDLE] == 0


def test_aggregate_ignores_noise_lines():
    """Lines without a delimiter, including blanks, are ignored."""
    result = nodes_per_partition.aggregate_node_states("\nNODES STATE\n1,idle,p\n")
    assert list(result) == ["p"]


def test_aggregate_empty_output():
    """Empty output yields no partitions."""
    assert nodes_per_partition.aggregate_node_states("") == {}


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


def test_fetch_uses_runner(sinfo_nodes_output: str):
    """fetch aggregates the runner's sinfo output."""
    mock_runner = MagicMock()
    mock_runner.get_node_states.return_value = sinfo_nodes_output

    result = nodes_per_partition.fetch(mock_runner)

    assert set(result) == {"batch", "gpu", "debug"}
    mock_runner.get_node_states.assert_called_once()


def test_fetch_propagates_command_error():
    """A failing sinfo is not turned into empty data."""
    mock_runner = MagicMock()
    mock_runner.get_node_states.side_effect = CommandError(["sinfo"], "exit 1")

    with pytest.raises(CommandError):
        nodes_per_partition.fetch(mock_runner)


# ---------------------------------------------------------------------------
# generate_metrics
# ---------------------------------------------------------------------------


def test_generate_metrics_all_families_present(sinfo_nodes_output: str):
    """All ten state families are yielded."""
    data = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    names = {m.name for m in nodes_per_partition.generate_metrics(data)}
    assert names == {
        f"slurm_nodes_{state}_per_partition"
        for state in (
            "alloc",
            "comp",
            "down",
            "drain",
            "err",
            "fail",
            "idle",
            "maint",
            "mix",
            "resv",
        )
    }


def test_generate_metrics_zero_values_emitted(sinfo_nodes_output: str):
    """Every partition appears in every family, zero or not."""
    data = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    for metric in nodes_per_partition.generate_metrics(data):
        samples = {s.labels["partition"]: s.value for s in metric.samples}
        assert set(samples) == {"batch", "gpu", "debug"}
        assert samples["debug"] == 0


def test_generate_metrics_values(sinfo_nodes_output: str):
    """Sample values carry the aggregated counts."""
    data = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    metrics = {m.name: m for m in nodes_per_partition.generate_metrics(data)}
    alloc = {
        s.labels["partition"]: s.value
        for s in metrics["slurm_nodes_alloc_per_partition"].samples
    }
    assert alloc == {"batch": 4, "debug": 0, "gpu": 0}


def test_generate_metrics_empty():
    """No partitions produce families without samples."""
    for metric in nodes_per_partition.generate_metrics({}):
        assert isinstance(metric, GaugeMetricFamily)
        assert metric.samples == []


def test_observe_is_immutable(sinfo_nodes_output: str):
    """Observations are returned as a tuple, ten per partition."""
    data = nodes_per_partition.aggregate_node_states(sinfo_nodes_output)
    observations = nodes_per_partition.observe(data)
    assert isinstance(observations, tuple)
    assert len(observations) == 10 * len(data)


def test_describe_metrics_has_no_samples():
    """Described families match the generated ones and hold no samples."""
    described = list(nodes_per_partition.describe_metrics())
    assert [m.name for m in described] == [
        spec.name for spec in nodes_per_partition.METRICS
    ]
    assert all(m.samples == [] for m in described)
