"""Prometheus collector implementation using composition pattern.

Provides a reusable collector that separates data fetching from metric
generation through dependency injection. Every scrape fetches fresh data;
nothing is kept between scrapes except the error count.
"""

import time
from collections.abc import Callable, Iterator
from threading import Lock
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Fetcher: TypeAlias = Callable[[], T]
MetricsGenerator: TypeAlias = Callable[[T], Iterator[Metric]]
MetricsDescriber: TypeAlias = Callable[[], Iterator[Metric]]


class SlurmCollector(Collector, Generic[T]):
    """Prometheus collector for SLURM metrics using composition pattern.

    Separates concerns through dependency injection:
    - Data fetching and aggregation (via Fetcher function with injected dependencies)
    - Metric generation (via MetricsGenerator function)
    - Static metric declarations (via MetricsDescriber function)

    Each collector instance is configured with specific functions, making it
    reusable for different metric types (node states, partitions).
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        describer: MetricsDescriber,
        metric_prefix: str,
        scraper_description: str,
    ):
        """Initialize the SLURM collector.

        Args:
            fetcher: Function that fetches and aggregates data (with
                dependencies pre-injected).
            generator: Function that generates Prometheus metrics from data.
            describer: Function that yields the generator's metric families
                without samples.
            metric_prefix: Metric name prefix (e.g., "partition").
            scraper_description: Description of the data source for help
                texts (e.g., "slurm commands").
        """
        self._fetcher = fetcher
        self._generator = generator
        self._describer = describer
        self._metric_prefix = metric_prefix

        # Track errors manually (no global Counter registration). Overlapping
        # scrapes run in separate threads, so updates go through the lock.
        self._error_lock = Lock()
        self._error_count = 0

        self._scraper_desc = scraper_description

    @property
    def error_count(self) -> int:
        """Number of scrapes that failed because data could not be fetched."""
        with self._error_lock:
            return self._error_count

    def _record_error(self) -> int:
        """Increment the error count and return the new value."""
        with self._error_lock:
            self._error_count += 1
            return self._error_count

    def _metadata_families(self) -> tuple[GaugeMetricFamily, CounterMetricFamily]:
        """Build the scrape duration and error families without samples."""
        scrape_duration = GaugeMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_duration",
            f"scrape duration from {self._scraper_desc} in seconds",
        )
        error_counter = CounterMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_error",
            f"slurm {self._metric_prefix} info scrape errors",
        )
        return scrape_duration, error_counter

    def fetch_metrics(self) -> tuple[T, float]:
        """Fetch fresh data.

        Returns:
            Tuple of (data, fetch_duration) with the duration in seconds.
        """
        start = time.time()
        data = self._fetcher()
        duration = time.time() - start
        logger.debug(
            "Fetched fresh data",
            metric_prefix=self._metric_prefix,
            duration_seconds=duration,
        )
        return data, duration

    def describe(self) -> Iterator[Metric]:
        """Describe the metric families this collector produces.

        Called by the registry on registration. Does not fetch any data.

        Yields:
            Prometheus Metric objects without samples.
        """
        yield from self._metadata_families()
        yield from self._describer()

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for Prometheus scrape.

        Called by Prometheus client during each scrape. Yields scrape metadata
        (duration and error count) followed by domain-specific metrics from the
        configured generator function.

        Yields:
            Prometheus Metric objects (metadata + domain metrics).

        Raises:
            Exception: Whatever the fetcher raised. The failure is logged and
                counted first; nothing is yielded, so the whole scrape fails
                instead of serving partial metrics.
        """
        try:
            data, duration = self.fetch_metrics()
        except Exception:
            error_count = self._record_error()
            logger.exception(
                "Failed to fetch metrics for collection",
                metric_prefix=self._metric_prefix,
                error_count=error_count,
            )
            raise

        scrape_duration, error_counter = self._metadata_families()
        scrape_duration.add_metric([], duration)
        yield scrape_duration
        error_counter.add_metric([], self.error_count)
        yield error_counter

        yield from self._generator(data)
