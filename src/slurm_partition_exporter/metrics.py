"""Metric declarations and observations.

Collector modules declare their metric families once as static MetricSpec
tuples and describe each scrape as an immutable tuple of Observation values.
This module turns both into Prometheus gauge families.
"""

from collections.abc import Iterable, Iterator
from typing import NamedTuple

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric


class MetricSpec(NamedTuple):
    """Static declaration of a gauge family."""

    name: str
    documentation: str
    labels: tuple[str, ...] = ("partition",)


class Observation(NamedTuple):
    """A single gauge value for one label combination."""

    name: str
    labels: tuple[str, ...]
    value: float


def describe(specs: Iterable[MetricSpec]) -> Iterator[Metric]:
    """Yield sample-less gauge families for the declared metrics."""
    for spec in specs:
        yield GaugeMetricFamily(spec.name, spec.documentation, labels=spec.labels)


def build_families(
    specs: Iterable[MetricSpec],
    observations: Iterable[Observation],
) -> Iterator[Metric]:
    """Group observations into gauge families.

    Every declared family is yielded, in declaration order, even when no
    observation belongs to it.

    Raises:
        KeyError: If an observation names an undeclared metric.
    """
    families = {
        spec.name: GaugeMetricFamily(
            spec.name, spec.documentation, labels=spec.labels
        )
        for spec in specs
    }
    for observation in observations:
        families[observation.name].add_metric(
            list(observation.labels), observation.value
        )
    yield from families.values()
