"""Typed records parsed from Slurm command output.

Slurm commands are asked for comma separated output. Each line holding at
least one comma is a record, anything else (blank lines, banners) is
ignored. Numeric fields are parsed leniently: a value that is not a number
becomes 0 instead of failing the line, since truncated or drifting command
output must not break a scrape.
"""

from collections.abc import Iterable, Iterator
from typing import Any

import structlog
from pydantic import BaseModel, field_validator

logger = structlog.get_logger(__name__)

FIELD_DELIMITER = ","
RATIO_DELIMITER = "/"
RATIO_COMPONENTS = 4
DEFAULT_PARTITION_MARKER = "*"


def parse_float(value: str) -> float:
    """Parse a numeric field, returning 0.0 when it is not a number."""
    try:
        return float(value.strip())
    except ValueError:
        logger.debug("Non-numeric field parsed as zero", value=value)
        return 0.0


def _lenient_float(value: Any) -> Any:
    """Parse string input with parse_float, passing other values to pydantic."""
    if isinstance(value, str):
        return parse_float(value)
    return value


def split_line(line: str) -> list[str] | None:
    """Split a line into trimmed fields, or None if it is not a record."""
    if FIELD_DELIMITER not in line:
        return None
    return [field.strip() for field in line.split(FIELD_DELIMITER)]


def split_records(lines: Iterable[str]) -> Iterator[list[str]]:
    """Yield the fields of every record line, skipping non-record lines."""
    for line in lines:
        fields = split_line(line)
        if fields is not None:
            yield fields


class NodeStateRecord(BaseModel):
    """One `<count>,<state>,<partition>` line of sinfo output."""

    count: float = 0.0
    state: str = ""
    partition: str = ""

    @field_validator("count", mode="before")
    @classmethod
    def parse_count(cls, value: Any) -> Any:
        """Turn a non-numeric count into 0."""
        return _lenient_float(value)


class PartitionCpuRecord(BaseModel):
    """One `<partition>,<allocated>/<idle>/<other>/<total>` line of sinfo output."""

    partition: str
    allocated: float = 0.0
    idle: float = 0.0
    other: float = 0.0
    total: float = 0.0

    @field_validator("allocated", "idle", "other", "total", mode="before")
    @classmethod
    def parse_cpus(cls, value: Any) -> Any:
        """Parse each ratio component, 0 when it is not a number."""
        return _lenient_float(value)


class PendingJobRecord(BaseModel):
    """One `<partition>,<cpus>,<reason>,(<features>)` line of squeue output.

    The feature list arrives already split on the field delimiter, so the
    enclosing parentheses sit on the first and last feature tokens.
    """

    partition: str
    cpus: float = 0.0
    reason: str = ""
    features: list[str] = []

    @field_validator("cpus", mode="before")
    @classmethod
    def parse_cpus(cls, value: Any) -> Any:
        """Treat a malformed CPU request as 0 so the job is still counted."""
        return _lenient_float(value)


def parse_node_state_line(fields: list[str]) -> NodeStateRecord | None:
    """Build a node state record from split fields.

    The default partition marker is not removed here; aggregation decides
    how partitions are keyed.
    """
    if len(fields) < 3:  # noqa: PLR2004
        logger.debug("Skipping short node state line", fields=fields)
        return None
    return NodeStateRecord(count=fields[0], state=fields[1], partition=fields[2])


def parse_partition_cpu_line(fields: list[str]) -> PartitionCpuRecord | None:
    """Build a partition CPU record from split fields.

    Returns None when the ratio field does not hold exactly four
    components; such a line contributes nothing.
    """
    if len(fields) < 2:  # noqa: PLR2004
        logger.debug("Skipping short partition cpu line", fields=fields)
        return None

    ratio = fields[1].split(RATIO_DELIMITER)
    if len(ratio) != RATIO_COMPONENTS:
        logger.debug(
            "Skipping malformed cpu ratio",
            partition=fields[0],
            ratio=fields[1],
        )
        return None

    allocated, idle, other, total = ratio
    return PartitionCpuRecord(
        partition=fields[0],
        allocated=allocated,
        idle=idle,
        other=other,
        total=total,
    )


def _unwrap_features(tokens: list[str]) -> list[str]:
    """Strip the parentheses wrapping a split feature list.

    Exactly one leading "(" is removed from the first token and one
    trailing ")" from the last. Tokens left empty are dropped, so "()"
    yields no features.
    """
    features = list(tokens)
    if features:
        features[0] = features[0].removeprefix("(")
        features[-1] = features[-1].removesuffix(")")
    return [feature for feature in features if feature]


def parse_pending_job_line(fields: list[str]) -> PendingJobRecord | None:
    """Build a pending job record from split fields."""
    if len(fields) < 3:  # noqa: PLR2004
        logger.debug("Skipping short pending job line", fields=fields)
        return None
    return PendingJobRecord(
        partition=fields[0],
        cpus=fields[1],
        reason=fields[2],
        features=_unwrap_features(fields[3:]),
    )
