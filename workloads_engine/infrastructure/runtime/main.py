"""Main entrypoint."""

import asyncio
import signal
import sys

import structlog

from workloads_engine.application.services.variables import create_top_level_variables
from workloads_engine.application.tables.workloads import (
    create_daemonsets_table,
    create_deployments_table,
    create_statefulsets_table,
)
from workloads_engine.infrastructure.config.settings import Settings
from workloads_engine.infrastructure.observability.logging import configure_logging
from workloads_engine.infrastructure.observability.metrics import start_metrics_server
from workloads_engine.infrastructure.prometheus.http_executor import PrometheusQueryExecutor
from workloads_engine.infrastructure.runtime.clock import SystemClock
from workloads_engine.interfaces.runners.table_refresh_runner import TableRefreshRunner

logger = structlog.get_logger()

shutdown_event = asyncio.Event()


def signal_handler() -> None:
    """Handle shutdown signal."""
    logger.info("shutdown_signal_received")
    shutdown_event.set()


async def main_loop() -> None:
    """Main event loop."""
    settings = Settings()
    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "engine_starting",
        prometheus_url=settings.prometheus_url,
        default_cluster=settings.default_cluster,
        refresh_interval_seconds=settings.refresh_interval_seconds,
    )

    start_metrics_server(settings.prometheus_port)

    executor = PrometheusQueryExecutor(settings, SystemClock())
    variables = create_top_level_variables(
        datasource=settings.datasource,
        default_cluster=settings.default_cluster,
        cluster_filter=settings.cluster_filter,
    )
    runner = TableRefreshRunner(
        tables=[
            create_daemonsets_table(executor, variables),
            create_deployments_table(executor, variables),
            create_statefulsets_table(executor, variables),
        ],
        variables=variables,
        executor=executor,
    )

    logger.info("engine_ready")

    try:
        while not shutdown_event.is_set():
            try:
                await runner.load_variables()
                for snapshot in await runner.refresh_all():
                    sys.stdout.write(snapshot.model_dump_json(by_alias=True) + "\n")
                sys.stdout.flush()
            except Exception as e:
                logger.error("main_loop_error", exc_info=True, error=str(e))

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=settings.refresh_interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        await executor.close()

    logger.info("engine_shutting_down")


def main() -> None:
    """Entrypoint."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(main_loop())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()


if __name__ == "__main__":
    main()
