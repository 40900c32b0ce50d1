"""Node state per partition collector.

Counts nodes per partition in ten fixed state categories from the output of
`sinfo -h -o "%D,%T,%P"`. Raw state strings are classified by prefix, so
flagged variants such as "drain*" or "idle~" land in their base category.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

import structlog
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..metrics import MetricSpec, Observation, build_families, describe
from ..slurmcli import records

logger = structlog.get_logger(__name__)


class StateCategory(str, Enum):
    """Node state categories reported per partition."""

    ALLOCATED = "allocated"
    COMPLETING = "completing"
    DOWN = "down"
    DRAINING = "draining"
    ERROR = "error"
    FAILING = "failing"
    IDLE = "idle"
    MAINTENANCE = "maintenance"
    MIXED = "mixed"
    RESERVED = "reserved"


# Evaluated in order, first match wins.
STATE_PREFIXES: tuple[tuple[str, StateCategory], ...] = (
    ("alloc", StateCategory.ALLOCATED),
    ("comp", StateCategory.COMPLETING),
    ("down", StateCategory.DOWN),
    ("drain", StateCategory.DRAINING),
    ("fail", StateCategory.FAILING),
    ("err", StateCategory.ERROR),
    ("idle", StateCategory.IDLE),
    ("maint", StateCategory.MAINTENANCE),
    ("mix", StateCategory.MIXED),
    ("res", StateCategory.RESERVED),
)

METRIC_SPECS: dict[StateCategory, MetricSpec] = {
    StateCategory.ALLOCATED: MetricSpec(
        "slurm_nodes_alloc_per_partition", "Allocated nodes per partition"
    ),
    StateCategory.COMPLETING: MetricSpec(
        "slurm_nodes_comp_per_partition", "Completing nodes per partition"
    ),
    StateCategory.DOWN: MetricSpec(
        "slurm_nodes_down_per_partition", "Down nodes per partition"
    ),
    StateCategory.DRAINING: MetricSpec(
        "slurm_nodes_drain_per_partition", "Drain nodes per partition"
    ),
    StateCategory.ERROR: MetricSpec(
        "slurm_nodes_err_per_partition", "Error nodes per partition"
    ),
    StateCategory.FAILING: MetricSpec(
        "slurm_nodes_fail_per_partition", "Fail nodes per partition"
    ),
    StateCategory.IDLE: MetricSpec(
        "slurm_nodes_idle_per_partition", "Idle nodes per partition"
    ),
    StateCategory.MAINTENANCE: MetricSpec(
        "slurm_nodes_maint_per_partition", "Maint nodes per partition"
    ),
    StateCategory.MIXED: MetricSpec(
        "slurm_nodes_mix_per_partition", "Mix nodes per partition"
    ),
    StateCategory.RESERVED: MetricSpec(
        "slurm_nodes_resv_per_partition", "Reserved nodes per partition"
    ),
}

METRICS: tuple[MetricSpec, ...] = tuple(METRIC_SPECS[c] for c in StateCategory)


def classify_state(state: str) -> StateCategory | None:
    """Map a raw Slurm node state to its category.

    Matching is a case-sensitive prefix test against STATE_PREFIXES.

    Args:
        state: State string as printed by sinfo (e.g. "drain*", "mixed").

    Returns:
        The matching category, or None if no prefix matches.
    """
    for prefix, category in STATE_PREFIXES:
        if state.startswith(prefix):
            return category
    return None


def _zero_counts() -> dict[StateCategory, float]:
    return {category: 0.0 for category in StateCategory}


@dataclass
class PartitionNodeCounts:
    """Node counts of a single partition, one per state category."""

    partition: str
    counts: dict[StateCategory, float] = field(default_factory=_zero_counts)

    @property
    def total(self) -> float:
        """Sum of node counts across all categories of the partition."""
        return sum(self.counts.values())


def aggregate_node_states(output: str) -> dict[str, PartitionNodeCounts]:
    """Aggregate sinfo node state output into per partition counts.

    Lines are sorted and exact duplicates removed before parsing, since
    sinfo can list the same (count, state, partition) combination more than
    once. A trailing default partition marker is stripped so "gpu*" and
    "gpu" share one entry. Lines whose state matches no category still
    register their partition.

    Args:
        output: Raw sinfo output.

    Returns:
        Mapping of partition name to its node counts.
    """
    partitions: dict[str, PartitionNodeCounts] = {}
    unique_lines = sorted(set(output.split("\n")))

    for fields in records.split_records(unique_lines):
        record = records.parse_node_state_line(fields)
        if record is None:
            continue

        name = record.partition.removesuffix(records.DEFAULT_PARTITION_MARKER)
        entry = partitions.setdefault(name, PartitionNodeCounts(partition=name))

        category = classify_state(record.state)
        if category is None:
            logger.debug(
                "Ignoring unknown node state", state=record.state, partition=name
            )
            continue
        entry.counts[category] += record.count

    return partitions


def fetch(runner: slurmcli.SlurmCommandRunner) -> dict[str, PartitionNodeCounts]:
    """Fetch node state counts per partition.

    Args:
        runner: Command runner used to invoke sinfo.

    Returns:
        Mapping of partition name to its node counts.

    Raises:
        slurmcli.CommandError: If sinfo cannot be run.
    """
    return aggregate_node_states(runner.get_node_states())


def observe(partitions: dict[str, PartitionNodeCounts]) -> tuple[Observation, ...]:
    """List the observations of one scrape.

    Every known partition reports all ten categories, zero included.
    """
    return tuple(
        Observation(METRIC_SPECS[category].name, (name,), count)
        for name in sorted(partitions)
        for category, count in partitions[name].counts.items()
    )


def describe_metrics() -> Iterator[Metric]:
    """Yield the node state gauge families without samples."""
    yield from describe(METRICS)


def generate_metrics(partitions: dict[str, PartitionNodeCounts]) -> Iterator[Metric]:
    """Generate Prometheus metrics from node state counts.

    Args:
        partitions: Mapping of partition name to its node counts.

    Yields:
        One gauge family per state category, labeled by partition.
    """
    yield from build_families(METRICS, observe(partitions))
