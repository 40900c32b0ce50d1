"""Partition resource collector.

Joins two sources per scrape: the CPU allocation snapshot of every partition
(`sinfo -h -o%R,%C`) and the queue of pending jobs
(`squeue -a -r -h -o%P,%C,%r,%f --states=PENDING`). The snapshot decides
which partitions exist; pending jobs are only counted against partitions it
reported.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

import structlog
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..metrics import MetricSpec, Observation, build_families, describe
from ..slurmcli import records

logger = structlog.get_logger(__name__)

# Pending reason of jobs waiting for resources to become available.
RESOURCES_REASON = "Resources"

ALLOCATED = MetricSpec("slurm_partition_cpus_allocated", "Allocated CPUs for partition")
IDLE = MetricSpec("slurm_partition_cpus_idle", "Idle CPUs for partition")
OTHER = MetricSpec("slurm_partition_cpus_other", "Other CPUs for partition")
PENDING = MetricSpec("slurm_partition_jobs_pending", "Pending jobs for partition")
TOTAL = MetricSpec("slurm_partition_cpus_total", "Total CPUs for partition")
PENDING_RESOURCES = MetricSpec(
    "slurm_partition_cpus_pending_resources",
    "Pending CPUs waiting for resources",
    labels=("partition", "features"),
)

METRICS: tuple[MetricSpec, ...] = (
    ALLOCATED,
    IDLE,
    OTHER,
    PENDING,
    TOTAL,
    PENDING_RESOURCES,
)


@dataclass
class PartitionResourceSnapshot:
    """CPU and pending job figures of a single partition.

    CPU counts come from the partition's single snapshot line.
    pending_by_feature maps a feature name to the CPUs requested by jobs
    pending on "Resources" that asked for it.
    """

    partition: str
    allocated_cpus: float = 0.0
    idle_cpus: float = 0.0
    other_cpus: float = 0.0
    total_cpus: float = 0.0
    pending_jobs: int = 0
    pending_by_feature: dict[str, float] = field(default_factory=dict)


def _apply_cpu_snapshot(
    partitions: dict[str, PartitionResourceSnapshot],
    output: str,
) -> None:
    """Assign the CPU ratio of every snapshot line, creating partitions."""
    for fields in records.split_records(output.split("\n")):
        record = records.parse_partition_cpu_line(fields)
        if record is None:
            continue

        entry = partitions.setdefault(
            record.partition, PartitionResourceSnapshot(partition=record.partition)
        )
        entry.allocated_cpus = record.allocated
        entry.idle_cpus = record.idle
        entry.other_cpus = record.other
        entry.total_cpus = record.total


def _apply_pending_jobs(
    partitions: dict[str, PartitionResourceSnapshot],
    output: str,
) -> None:
    """Count pending jobs and their Resources CPUs against known partitions."""
    for fields in records.split_records(output.split("\n")):
        record = records.parse_pending_job_line(fields)
        if record is None:
            continue

        entry = partitions.get(record.partition)
        if entry is None:
            logger.debug(
                "Ignoring pending job for unknown partition",
                partition=record.partition,
            )
            continue

        entry.pending_jobs += 1
        if record.reason != RESOURCES_REASON:
            continue

        # Each requested feature is credited the job's full CPU request.
        for feature in record.features:
            entry.pending_by_feature[feature] = (
                entry.pending_by_feature.get(feature, 0.0) + record.cpus
            )


def aggregate_partitions(
    cpu_output: str,
    pending_output: str,
) -> dict[str, PartitionResourceSnapshot]:
    """Correlate partition CPU figures with the pending job queue.

    Args:
        cpu_output: Raw `sinfo -o%R,%C` output.
        pending_output: Raw `squeue -o%P,%C,%r,%f` output of pending jobs.

    Returns:
        Mapping of partition name to its resource snapshot.
    """
    partitions: dict[str, PartitionResourceSnapshot] = {}
    _apply_cpu_snapshot(partitions, cpu_output)
    _apply_pending_jobs(partitions, pending_output)
    return partitions


def fetch(
    runner: slurmcli.SlurmCommandRunner,
) -> dict[str, PartitionResourceSnapshot]:
    """Fetch partition resource snapshots.

    Both commands are run before any aggregation, so a failure of either
    aborts the whole fetch.

    Args:
        runner: Command runner used to invoke sinfo and squeue.

    Returns:
        Mapping of partition name to its resource snapshot.

    Raises:
        slurmcli.CommandError: If either command cannot be run.
    """
    cpu_output = runner.get_partition_cpus()
    pending_output = runner.get_pending_jobs()
    return aggregate_partitions(cpu_output, pending_output)


def observe(
    partitions: dict[str, PartitionResourceSnapshot],
) -> tuple[Observation, ...]:
    """List the observations of one scrape.

    Values equal to zero are left out of every partition family; negative
    and NaN readings are kept.
    """
    observations: list[Observation] = []

    for name in sorted(partitions):
        entry = partitions[name]
        for spec, value in (
            (ALLOCATED, entry.allocated_cpus),
            (IDLE, entry.idle_cpus),
            (OTHER, entry.other_cpus),
            (PENDING, float(entry.pending_jobs)),
            (TOTAL, entry.total_cpus),
        ):
            if value != 0:
                observations.append(Observation(spec.name, (name,), value))

        for feature in sorted(entry.pending_by_feature):
            cpus = entry.pending_by_feature[feature]
            if cpus != 0:
                observations.append(
                    Observation(PENDING_RESOURCES.name, (name, feature), cpus)
                )

    return tuple(observations)


def describe_metrics() -> Iterator[Metric]:
    """Yield the partition gauge families without samples."""
    yield from describe(METRICS)


def generate_metrics(
    partitions: dict[str, PartitionResourceSnapshot],
) -> Iterator[Metric]:
    """Generate Prometheus metrics from partition resource snapshots.

    Args:
        partitions: Mapping of partition name to its resource snapshot.

    Yields:
        Prometheus Metric objects.
    """
    yield from build_families(METRICS, observe(partitions))
