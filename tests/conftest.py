"""Shared fixtures holding captured Slurm command output."""

from pathlib import Path

import pytest

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture
def sinfo_nodes_output() -> str:
    """`sinfo -h -o "%D,%T,%P"` output with a duplicated line."""
    return (DATA_DIR / "sinfo_nodes_per_partition.txt").read_text()


@pytest.fixture
def sinfo_partition_output() -> str:
    """`sinfo -h -o%R,%C` output for three partitions."""
    return (DATA_DIR / "sinfo_partition.txt").read_text()


@pytest.fixture
def squeue_partition_output() -> str:
    """`squeue -o%P,%C,%r,%f` pending jobs, one for an unknown partition."""
    return (DATA_DIR / "squeue_partition.txt").read_text()
