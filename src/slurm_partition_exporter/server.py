"""HTTP server for the Slurm Partition Exporter."""

import json
import logging
import os
import pathlib
from typing import Literal

import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, slurmcli
from .collectors import nodes_per_partition, partitions

CONFIG_ENV_VAR = "SLURM_EXPORTER_CONFIG_PATH"
logger = structlog.get_logger(__name__)

CollectorName = Literal["nodes_per_partition", "partitions"]


class ExporterConfig(pydantic.BaseModel):
    """Configuration for the Slurm Partition Exporter."""

    command_timeout: float = pydantic.Field(
        slurmcli.DEFAULT_TIMEOUT,
        description="Seconds to wait for a Slurm command",
        gt=0,
    )
    slurm_bin_dir: str | None = pydantic.Field(
        None,
        description="Directory holding sinfo and squeue, PATH lookup if unset",
    )
    collectors: list[CollectorName] = pydantic.Field(
        ["nodes_per_partition", "partitions"],
        description="Collectors to register",
    )
    port: int = pydantic.Field(9341, description="HTTP server port", gt=0, lt=65536)
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> ExporterConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ExporterConfig(**data)


def _build_collector(
    name: CollectorName,
    runner: slurmcli.SlurmCommandRunner,
) -> collector.SlurmCollector:
    # Lambda captures runner in closure, creating a zero-argument fetcher
    if name == "nodes_per_partition":
        return collector.SlurmCollector(
            fetcher=lambda: nodes_per_partition.fetch(runner),
            generator=nodes_per_partition.generate_metrics,
            describer=nodes_per_partition.describe_metrics,
            metric_prefix="nodes_per_partition",
            scraper_description=runner.description,
        )
    return collector.SlurmCollector(
        fetcher=lambda: partitions.fetch(runner),
        generator=partitions.generate_metrics,
        describer=partitions.describe_metrics,
        metric_prefix="partition",
        scraper_description=runner.description,
    )


def create_registry_with_collectors(
    runner: slurmcli.SlurmCommandRunner,
    collector_names: list[CollectorName],
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with SLURM collectors.

    Creates a custom registry (not the global one) and registers the
    requested collectors. The runner is injected into fetcher functions at
    build time.

    Args:
        runner: Shared command runner for all collectors.
        collector_names: Names of the collectors to register.

    Returns:
        Configured Prometheus registry with injected dependencies.
    """
    registry = prometheus_client.core.CollectorRegistry()

    for name in dict.fromkeys(collector_names):
        registry.register(_build_collector(name, runner))
        logger.info("Registered collector", collector=name)

    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
) -> starlette.applications.Starlette:
    """Create a Starlette application for serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Generate and serve Prometheus metrics.

        A scrape is all or nothing: if any collector cannot run its Slurm
        command, the request fails with 503 and no metrics are served.
        """
        logger.info(
            "HTTP request",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        try:
            metrics_output = prometheus_client.generate_latest(registry)
        except slurmcli.CommandError as e:
            return starlette.responses.PlainTextResponse(
                content=f"scrape failed: {e}\n",
                status_code=503,
            )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_exporter(config: ExporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config."""
    runner = slurmcli.SlurmCommandRunner(
        timeout=config.command_timeout,
        bin_dir=config.slurm_bin_dir,
    )
    logger.info("Created shared command runner", source=runner.description)

    registry = create_registry_with_collectors(
        runner=runner,
        collector_names=config.collectors,
    )

    return create_starlette_app(
        metrics_path=config.metrics_path,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the exporter ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_exporter(config)
