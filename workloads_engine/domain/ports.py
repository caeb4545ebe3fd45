"""Ports (interfaces) for infrastructure adapters."""

from abc import ABC, abstractmethod

from workloads_engine.domain.entities import QueryResult, QuerySpec, TimeRange
from workloads_engine.domain.types import Timestamp


class QueryExecutorPort(ABC):
    """Port for executing queries against the time-series backend."""

    @abstractmethod
    async def execute(
        self,
        query: QuerySpec,
        time_range: TimeRange | None = None,
    ) -> QueryResult:
        """Execute a query. Raises QueryExecutionError on failure."""

    @abstractmethod
    async def label_values(self, label: str, match: str | None = None) -> list[str]:
        """List values of a label, optionally restricted to a series selector."""


class ClockPort(ABC):
    """Port for time operations."""

    @abstractmethod
    def now(self) -> Timestamp:
        """Get current timestamp."""
