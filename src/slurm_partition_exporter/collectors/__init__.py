"""Collectors package for SLURM partition metrics.

Contains collector implementations for the per partition views of the
cluster. Each collector module provides fetch, generate_metrics and
describe_metrics functions that can be composed with the SlurmCollector
class.
"""
