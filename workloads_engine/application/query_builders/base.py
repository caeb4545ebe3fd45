"""Query builder protocol shared by all tables."""

from abc import ABC, abstractmethod

from workloads_engine.application.services.sorting import ColumnSortingConfig
from workloads_engine.application.services.variables import VariableScope
from workloads_engine.domain.entities import QuerySpec, Row, SortingState


class QueryBuilder(ABC):
    """Builds the discovery query and the per-row enrichment queries of a table."""

    @abstractmethod
    def root_query_builder(
        self,
        variables: VariableScope,
        sorting: SortingState,
        sorting_config: ColumnSortingConfig | None = None,
    ) -> QuerySpec:
        """Discovery query listing the rows of the table."""

    @abstractmethod
    def row_query_builder(self, rows: list[Row], variables: VariableScope) -> list[QuerySpec]:
        """Enrichment queries scoped to the given rows, one per derived field."""
