"""Two-phase async table: discovery query, then per-row enrichment queries."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

import structlog

from workloads_engine.application.dto.snapshots import RowSnapshot, SortingSnapshot, TableSnapshot
from workloads_engine.application.query_builders.base import QueryBuilder
from workloads_engine.application.services.sorting import ColumnSortingConfig, next_sorting, sort_rows
from workloads_engine.application.services.variables import VariableScope, interpolate
from workloads_engine.domain.entities import QueryResult, QuerySpec, Row, SortingState
from workloads_engine.domain.enums import TableState
from workloads_engine.domain.errors import DomainError, QueryExecutionError
from workloads_engine.domain.ports import QueryExecutorPort
from workloads_engine.domain.types import AsyncDataRowMapper, CreateRowId, ResultsByRefId, RowId

logger = structlog.get_logger()

DetailT = TypeVar("DetailT")

Listener = Callable[["AsyncTable"], None]


@dataclass(frozen=True)
class Column:
    """Table column."""

    id: str
    header: str
    sorting_config: ColumnSortingConfig | None = None


class AsyncTable(Generic[DetailT]):
    """Table whose rows come from a discovery query and are enriched by row queries.

    Only the latest refresh may apply results: every refresh bumps the root
    generation, every enrichment batch bumps the row generation, and results
    carrying an older generation are dropped.
    """

    def __init__(
        self,
        name: str,
        columns: list[Column],
        query_builder: QueryBuilder,
        executor: QueryExecutorPort,
        variables: VariableScope,
        create_row_id: CreateRowId,
        async_data_row_mapper: AsyncDataRowMapper,
        default_sorting: SortingState,
        expanded_row_builder: Callable[[Row], DetailT] | None = None,
    ) -> None:
        """Initialize async table."""
        self.name = name
        self.columns = columns
        self.query_builder = query_builder
        self.executor = executor
        self.variables = variables
        self.create_row_id = create_row_id
        self.async_data_row_mapper = async_data_row_mapper
        self.expanded_row_builder = expanded_row_builder

        self.state = TableState.IDLE
        self.sorting = default_sorting
        self.rows: list[Row] = []
        self.expanded: set[RowId] = set()
        self.error: str | None = None
        self.row_errors: dict[str, str] = {}

        self._root_generation = 0
        self._row_generation = 0
        self._expanded_details: dict[RowId, DetailT] = {}
        self._listeners: list[Listener] = []

    # ==================================================================
    # Subscription
    # ==================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` after every state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: TableState) -> None:
        previous = self.state
        self.state = state
        logger.debug("table_state_changed", table=self.name, previous=previous.value, state=state.value)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ==================================================================
    # Columns and sorting
    # ==================================================================

    def column(self, column_id: str) -> Column:
        for column in self.columns:
            if column.id == column_id:
                return column
        raise ValueError(f"Unknown column: {column_id}")

    def sorting_config(self) -> ColumnSortingConfig | None:
        """Sorting config of the active sort column."""
        return self.column(self.sorting.column_id).sorting_config

    def _is_remote_sort(self) -> bool:
        config = self.sorting_config()
        return config is not None and not config.local

    async def set_sorting(self, column_id: str) -> None:
        """Sort by `column_id`, flipping direction if it is already active.

        Local columns reorder fetched rows; other columns run a new refresh.
        """
        config = self.column(column_id).sorting_config
        if config is None or not config.enabled:
            raise ValueError(f"Sorting is not enabled for column: {column_id}")

        self.sorting = next_sorting(self.sorting, column_id, config)
        logger.info(
            "table_sorting_changed",
            table=self.name,
            column_id=self.sorting.column_id,
            direction=self.sorting.direction.value,
            local=config.local,
        )

        if config.local:
            self._notify()
            return
        await self.refresh()

    def display_rows(self) -> list[Row]:
        """Rows in display order."""
        config = self.sorting_config()
        if config is None or not config.local:
            return list(self.rows)
        return sort_rows(self.rows, self.sorting, config)

    # ==================================================================
    # Expansion
    # ==================================================================

    def toggle_row(self, row_id: RowId) -> bool:
        """Flip the expanded flag of a row. Returns the new flag."""
        row = self._row(row_id)
        row.expanded = not row.expanded
        if row.expanded:
            self.expanded.add(row_id)
        else:
            self.expanded.discard(row_id)
            self._expanded_details.pop(row_id, None)
        self._notify()
        return row.expanded

    def expanded_row(self, row_id: RowId) -> DetailT | None:
        """Detail content of an expanded row, built on first access."""
        if row_id not in self.expanded or self.expanded_row_builder is None:
            return None
        if row_id not in self._expanded_details:
            self._expanded_details[row_id] = self.expanded_row_builder(self._row(row_id))
        return self._expanded_details[row_id]

    def _row(self, row_id: RowId) -> Row:
        for row in self.rows:
            if row.row_id == row_id:
                return row
        raise KeyError(row_id)

    # ==================================================================
    # Refresh cycle
    # ==================================================================

    async def refresh(self) -> None:
        """Run the discovery query and then the enrichment queries."""
        self._root_generation += 1
        generation = self._root_generation
        self.error = None
        self._transition(TableState.ROOT_LOADING)

        try:
            query = self.query_builder.root_query_builder(
                self.variables,
                self.sorting,
                self.sorting_config() if self._is_remote_sort() else None,
            )
            logger.info("root_query_issued", table=self.name, generation=generation, ref_id=query.ref_id)
            result = await self._execute(query)
        except QueryExecutionError as e:
            if generation == self._root_generation:
                self._fail(e)
            return
        except Exception as e:
            if generation == self._root_generation:
                self._fail(e)
            raise

        if generation != self._root_generation:
            logger.info("stale_root_result_discarded", table=self.name, generation=generation)
            return

        try:
            self._apply_root_result(result)
        except Exception as e:
            self._fail(e)
            raise
        self._transition(TableState.ROOT_LOADED)

        if not self.rows:
            self._transition(TableState.READY)
            return

        await self._load_rows(generation)

    def _fail(self, error: Exception, phase: str = "root") -> None:
        self.error = str(error) or type(error).__name__
        self.rows = []
        logger.error("table_query_failed", table=self.name, phase=phase, error=self.error)
        self._transition(TableState.ERROR)

    def _apply_root_result(self, result: QueryResult) -> None:
        previous_expanded = self.expanded
        rows: list[Row] = []
        seen: set[RowId] = set()

        for raw_row in result.rows():
            row_id = self.create_row_id(raw_row)
            if row_id in seen:
                logger.warning("duplicate_row_id_skipped", table=self.name, row_id=row_id)
                continue
            seen.add(row_id)
            rows.append(Row(row_id=row_id, fields=raw_row, expanded=row_id in previous_expanded))

        self.rows = rows
        self.expanded = previous_expanded & seen
        self._expanded_details = {}
        self.row_errors = {}
        logger.info("root_query_loaded", table=self.name, row_count=len(rows))

    async def _load_rows(self, root_generation: int) -> None:
        self._row_generation += 1
        row_generation = self._row_generation

        try:
            queries = self.query_builder.row_query_builder(self.rows, self.variables)
        except DomainError as e:
            self._fail(e, phase="row")
            raise

        self._transition(TableState.ROW_LOADING)
        logger.info(
            "row_queries_issued",
            table=self.name,
            generation=row_generation,
            ref_ids=[q.ref_id for q in queries],
        )

        outcomes = await asyncio.gather(
            *[self._execute(query) for query in queries],
            return_exceptions=True,
        )

        if root_generation != self._root_generation or row_generation != self._row_generation:
            logger.info("stale_row_results_discarded", table=self.name, generation=row_generation)
            return

        results: ResultsByRefId = {}
        row_errors: dict[str, str] = {}
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, QueryExecutionError):
                row_errors[query.ref_id] = str(outcome)
            elif isinstance(outcome, DomainError):
                self._fail(outcome, phase="row")
                raise outcome
            elif isinstance(outcome, Exception):
                logger.error(
                    "row_query_crashed",
                    table=self.name,
                    ref_id=query.ref_id,
                    error=str(outcome),
                    exc_info=outcome,
                )
                row_errors[query.ref_id] = str(outcome) or type(outcome).__name__
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[query.ref_id] = outcome

        try:
            for row in self.rows:
                self.async_data_row_mapper(row, results)
        except Exception as e:
            self._fail(e, phase="row")
            raise

        self.row_errors = row_errors
        if row_errors:
            logger.warning("row_queries_failed", table=self.name, errors=row_errors)
        self._transition(TableState.READY)

    async def _execute(self, query: QuerySpec) -> QueryResult:
        interpolated = QuerySpec(
            ref_id=query.ref_id,
            expr=interpolate(query.expr, self.variables),
            instant=query.instant,
            format=query.format,
            legend_format=query.legend_format,
        )
        return await self.executor.execute(interpolated)

    # ==================================================================
    # Snapshot
    # ==================================================================

    def snapshot(self) -> TableSnapshot:
        """Current state for renderers."""
        return TableSnapshot(
            name=self.name,
            state=self.state,
            sorting=SortingSnapshot(column_id=self.sorting.column_id, direction=self.sorting.direction),
            rows=[
                RowSnapshot(
                    row_id=row.row_id,
                    fields=row.fields,
                    derived={key: _plain(value) for key, value in row.derived.items()},
                    expanded=row.expanded,
                )
                for row in self.display_rows()
            ],
            error=self.error,
            row_errors=dict(self.row_errors),
        )


def _plain(value: object) -> object:
    display = getattr(value, "display", None)
    return display() if callable(display) else value
