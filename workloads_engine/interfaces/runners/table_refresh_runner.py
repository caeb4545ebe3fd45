"""Drives workload tables through refresh cycles."""

import asyncio
import time

import structlog

from workloads_engine.application.dto.snapshots import TableSnapshot
from workloads_engine.application.services.variables import VariableScope, load_variable_options
from workloads_engine.application.use_cases.async_table import AsyncTable
from workloads_engine.domain.errors import DomainError
from workloads_engine.domain.ports import QueryExecutorPort
from workloads_engine.infrastructure.observability.metrics import (
    table_refresh_duration_seconds,
    table_refreshes_total,
)

logger = structlog.get_logger()


class TableRefreshRunner:
    """Loads variable options and refreshes a set of tables."""

    def __init__(
        self,
        tables: list[AsyncTable],
        variables: VariableScope,
        executor: QueryExecutorPort,
    ) -> None:
        """Initialize table refresh runner."""
        self.tables = tables
        self.variables = variables
        self.executor = executor

    async def load_variables(self) -> None:
        """Resolve options for every discoverable variable, top-level scope first.

        Options are reloaded every call; namespace options depend on the
        current cluster.
        """
        scopes = [self.variables] + [table.variables for table in self.tables]
        for scope in scopes:
            for variable in scope:
                if variable.query is None:
                    continue
                try:
                    await load_variable_options(variable, scope, self.executor)
                except DomainError as e:
                    logger.error("variable_options_failed", variable=variable.name, error=str(e))

    async def refresh_table(self, table: AsyncTable) -> TableSnapshot:
        started = time.perf_counter()
        try:
            await table.refresh()
        except DomainError as e:
            logger.error("table_refresh_aborted", table=table.name, error=str(e))
        finally:
            table_refresh_duration_seconds.labels(table=table.name).observe(time.perf_counter() - started)
            table_refreshes_total.labels(table=table.name, state=table.state.value).inc()
        return table.snapshot()

    async def refresh_all(self) -> list[TableSnapshot]:
        """Refresh all tables concurrently.

        A table whose refresh crashed still reports its snapshot, in error state.
        """
        outcomes = await asyncio.gather(
            *[self.refresh_table(table) for table in self.tables],
            return_exceptions=True,
        )
        snapshots = []
        for table, outcome in zip(self.tables, outcomes):
            if isinstance(outcome, Exception):
                logger.error("table_refresh_crashed", table=table.name, error=str(outcome), exc_info=outcome)
                snapshots.append(table.snapshot())
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                snapshots.append(outcome)
        return snapshots
