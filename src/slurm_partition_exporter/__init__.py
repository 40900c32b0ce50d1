"""Slurm Partition Exporter.

Prometheus exporter for the SLURM workload manager that turns sinfo and
squeue output into per partition gauges for node states, CPU allocation
and CPUs pending on resources.
"""

__version__ = "0.1.0"
