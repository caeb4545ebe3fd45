"""Unit tests for the async table engine."""

import asyncio

import pytest

from workloads_engine.application.query_builders.workloads import DaemonSetQueryBuilder
from workloads_engine.application.services.series_matcher import get_series_value
from workloads_engine.application.services.sorting import ColumnSortingConfig
from workloads_engine.application.services.variables import (
    Variable,
    VariableScope,
    create_namespace_variable,
    create_search_variable,
)
from workloads_engine.application.use_cases.async_table import AsyncTable, Column
from workloads_engine.domain.entities import QueryResult, Row, RowMatcher, Series, SortingState
from workloads_engine.domain.enums import SortDirection, SortingType, TableState
from workloads_engine.domain.errors import QueryExecutionError, VariableNotFoundError
from workloads_engine.domain.ports import QueryExecutorPort


class FakeExecutor(QueryExecutorPort):
    """Executor answering by ref id; a response may be a result, an exception or a coroutine function."""

    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.queries = []

    async def execute(self, query, time_range=None):
        self.queries.append(query)
        response = self.responses.get(query.ref_id, QueryResult(ref_id=query.ref_id))
        if callable(response):
            response = await response(query)
        if isinstance(response, Exception):
            raise response
        return response

    async def label_values(self, label, match=None):
        return []

    def ref_ids(self) -> list[str]:
        return [q.ref_id for q in self.queries]


def _discovery(*names: str, namespace: str = "ns1") -> QueryResult:
    return QueryResult(
        ref_id="daemonsets",
        series=tuple(Series(labels={"namespace": namespace, "daemonset": n}, values=(1.0,)) for n in names),
    )


def _values(ref_id: str, **values: float) -> QueryResult:
    return QueryResult(
        ref_id=ref_id,
        series=tuple(
            Series(labels={"namespace": "ns1", "daemonset": name.replace("_", "-")}, values=(value,))
            for name, value in values.items()
        ),
    )


def mapper(row: Row, results) -> None:
    matcher = RowMatcher.for_row(row, ["namespace", "daemonset"])
    row.derived["replicas"] = get_series_value(results, "replicas", matcher)
    row.derived["replicas_ready"] = get_series_value(results, "replicas_ready", matcher)


COLUMNS = [
    Column("daemonset", "DAEMONSET", ColumnSortingConfig(type=SortingType.LABEL, local=True)),
    Column("namespace", "NAMESPACE", ColumnSortingConfig(type=SortingType.LABEL, local=True)),
    Column("replicas", "REPLICAS", ColumnSortingConfig(type=SortingType.VALUE, local=True)),
    Column(
        "alerts",
        "ALERTS",
        ColumnSortingConfig(type=SortingType.VALUE, local=False, default_direction=SortDirection.DESC),
    ),
    Column("age", "AGE", None),
]


def _variables(cluster: str | None = "prod") -> VariableScope:
    parent = VariableScope([Variable(name="cluster", value=cluster)] if cluster else [])
    return parent.child([create_namespace_variable(), create_search_variable()])


def _table(
    executor: FakeExecutor,
    variables: VariableScope | None = None,
    expanded_row_builder=None,
    row_mapper=mapper,
) -> AsyncTable:
    return AsyncTable(
        name="daemonsets",
        columns=COLUMNS,
        query_builder=DaemonSetQueryBuilder(),
        executor=executor,
        variables=variables or _variables(),
        create_row_id=lambda raw: f"{raw['namespace']}/{raw['daemonset']}",
        async_data_row_mapper=row_mapper,
        default_sorting=SortingState("daemonset", SortDirection.ASC),
        expanded_row_builder=expanded_row_builder,
    )


def _ids(table: AsyncTable) -> list[str]:
    return [row.row_id for row in table.display_rows()]


@pytest.mark.asyncio
async def test_refresh_runs_both_phases():
    """Test discovery followed by enrichment, rows keyed by row id."""
    executor = FakeExecutor(
        {
            "daemonsets": _discovery("ds-a", "ds-b"),
            "replicas": _values("replicas", ds_a=3.0),
        }
    )
    table = _table(executor)
    states = []
    table.subscribe(lambda t: states.append(t.state))

    await table.refresh()

    assert table.state == TableState.READY
    assert executor.ref_ids() == ["daemonsets", "replicas", "replicas_ready", "alerts"]
    assert states == [
        TableState.ROOT_LOADING,
        TableState.ROOT_LOADED,
        TableState.ROW_LOADING,
        TableState.READY,
    ]
    rows = {row.row_id: row for row in table.rows}
    assert set(rows) == {"ns1/ds-a", "ns1/ds-b"}
    assert rows["ns1/ds-a"].derived["replicas"] == 3.0
    assert rows["ns1/ds-b"].derived["replicas"] is None


@pytest.mark.asyncio
async def test_queries_are_interpolated():
    """Test ambient variables are substituted before execution."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a")})
    table = _table(executor)

    await table.refresh()

    root = executor.queries[0].expr
    assert 'cluster="prod"' in root
    assert 'namespace=~".*"' in root
    assert 'daemonset=~".*.*"' in root
    assert 'daemonset=~"ds-a"' in executor.queries[1].expr


@pytest.mark.asyncio
async def test_empty_discovery_skips_enrichment():
    """Test an empty row set goes straight to ready."""
    executor = FakeExecutor({"daemonsets": _discovery()})
    table = _table(executor)

    await table.refresh()

    assert table.state == TableState.READY
    assert table.rows == []
    assert executor.ref_ids() == ["daemonsets"]


@pytest.mark.asyncio
async def test_duplicate_row_ids_are_collapsed():
    """Test row ids stay unique within a snapshot."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a", "ds-a")})
    table = _table(executor)

    await table.refresh()

    assert _ids(table) == ["ns1/ds-a"]


@pytest.mark.asyncio
async def test_discovery_failure_sets_error_state():
    """Test a failed discovery query shows a table error and skips enrichment."""
    executor = FakeExecutor({"daemonsets": QueryExecutionError("boom", ref_id="daemonsets")})
    table = _table(executor)

    await table.refresh()

    assert table.state == TableState.ERROR
    assert table.error == "boom"
    assert table.rows == []
    assert executor.ref_ids() == ["daemonsets"]


@pytest.mark.asyncio
async def test_error_cleared_on_next_refresh():
    """Test a successful refresh clears a previous error."""
    executor = FakeExecutor({"daemonsets": QueryExecutionError("boom")})
    table = _table(executor)
    await table.refresh()

    executor.responses["daemonsets"] = _discovery("ds-a")
    await table.refresh()

    assert table.state == TableState.READY
    assert table.error is None


@pytest.mark.asyncio
async def test_enrichment_failure_keeps_rows():
    """Test a failed enrichment query keeps rows and records a row error."""
    executor = FakeExecutor(
        {
            "daemonsets": _discovery("ds-a", "ds-b"),
            "replicas": _values("replicas", ds_a=3.0, ds_b=1.0),
            "replicas_ready": QueryExecutionError("timeout", ref_id="replicas_ready"),
        }
    )
    table = _table(executor)

    await table.refresh()

    assert table.state == TableState.READY
    assert table.error is None
    assert table.row_errors == {"replicas_ready": "timeout"}
    rows = {row.row_id: row for row in table.rows}
    assert rows["ns1/ds-a"].derived == {"replicas": 3.0, "replicas_ready": None}
    assert rows["ns1/ds-b"].derived["replicas"] == 1.0


@pytest.mark.asyncio
async def test_missing_variable_aborts_refresh():
    """Test an undefined variable fails the refresh loudly."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a")})
    table = _table(executor, variables=_variables(cluster=None))

    with pytest.raises(VariableNotFoundError):
        await table.refresh()

    assert table.state == TableState.ERROR
    assert table.error == "Variable cluster not found"
    assert executor.queries == []


@pytest.mark.asyncio
async def test_superseded_root_result_is_discarded():
    """Test only the latest discovery may populate the table."""
    gate = asyncio.Event()

    async def slow_root(query):
        await gate.wait()
        return _discovery("old")

    executor = FakeExecutor({"daemonsets": slow_root})
    table = _table(executor)

    first = asyncio.create_task(table.refresh())
    await asyncio.sleep(0)

    executor.responses["daemonsets"] = _discovery("new")
    await table.refresh()
    gate.set()
    await first

    assert _ids(table) == ["ns1/new"]
    assert table.state == TableState.READY
    assert executor.ref_ids().count("replicas") == 1


@pytest.mark.asyncio
async def test_superseded_enrichment_is_discarded():
    """Test enrichment of an older refresh never reaches the mapper."""
    gate = asyncio.Event()

    async def slow_replicas(query):
        await gate.wait()
        return _values("replicas", ds_a=99.0)

    executor = FakeExecutor({"daemonsets": _discovery("ds-a"), "replicas": slow_replicas})
    table = _table(executor)

    first = asyncio.create_task(table.refresh())
    for _ in range(3):
        await asyncio.sleep(0)
    assert table.state == TableState.ROW_LOADING

    executor.responses["replicas"] = _values("replicas", ds_a=1.0)
    await table.refresh()
    gate.set()
    await first

    assert table.rows[0].derived["replicas"] == 1.0
    assert table.state == TableState.READY


@pytest.mark.asyncio
async def test_expansion_survives_refresh():
    """Test unchanged row ids keep their expansion state."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a", "ds-b")})
    table = _table(executor)
    await table.refresh()

    assert table.toggle_row("ns1/ds-a") is True
    await table.refresh()

    assert table.expanded == {"ns1/ds-a"}
    assert {row.row_id: row.expanded for row in table.rows} == {"ns1/ds-a": True, "ns1/ds-b": False}


@pytest.mark.asyncio
async def test_expansion_dropped_for_vanished_rows():
    """Test expansion state of rows missing from a new discovery is discarded."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a", "ds-b")})
    table = _table(executor)
    await table.refresh()
    table.toggle_row("ns1/ds-a")
    table.toggle_row("ns1/ds-b")

    executor.responses["daemonsets"] = _discovery("ds-b")
    await table.refresh()

    assert table.expanded == {"ns1/ds-b"}


@pytest.mark.asyncio
async def test_toggle_twice_collapses():
    """Test toggling a row twice collapses it."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-a")})
    table = _table(executor)
    await table.refresh()

    table.toggle_row("ns1/ds-a")
    assert table.toggle_row("ns1/ds-a") is False
    assert table.expanded == set()


@pytest.mark.asyncio
async def test_toggle_unknown_row_raises():
    """Test toggling a row that is not in the table."""
    table = _table(FakeExecutor({"daemonsets": _discovery()}))
    await table.refresh()

    with pytest.raises(KeyError):
        table.toggle_row("ns1/missing")


@pytest.mark.asyncio
async def test_expanded_row_is_built_lazily_once():
    """Test the expanded row builder runs on first access only."""
    calls = []

    def build(row):
        calls.append(row.row_id)
        return f"detail:{row.row_id}"

    executor = FakeExecutor({"daemonsets": _discovery("ds-a", "ds-b")})
    table = _table(executor, expanded_row_builder=build)
    await table.refresh()

    assert table.expanded_row("ns1/ds-a") is None
    table.toggle_row("ns1/ds-a")
    assert calls == []

    assert table.expanded_row("ns1/ds-a") == "detail:ns1/ds-a"
    assert table.expanded_row("ns1/ds-a") == "detail:ns1/ds-a"
    assert calls == ["ns1/ds-a"]


@pytest.mark.asyncio
async def test_local_sort_does_not_requery():
    """Test local columns reorder fetched rows only."""
    executor = FakeExecutor(
        {
            "daemonsets": _discovery("ds-b", "ds-a", "ds-c"),
            "replicas": _values("replicas", ds_a=5.0, ds_b=1.0, ds_c=3.0),
        }
    )
    table = _table(executor)
    await table.refresh()
    issued = len(executor.queries)

    assert _ids(table) == ["ns1/ds-a", "ns1/ds-b", "ns1/ds-c"]

    await table.set_sorting("replicas")
    assert _ids(table) == ["ns1/ds-b", "ns1/ds-c", "ns1/ds-a"]

    await table.set_sorting("replicas")
    assert table.sorting == SortingState("replicas", SortDirection.DESC)
    assert _ids(table) == ["ns1/ds-a", "ns1/ds-c", "ns1/ds-b"]
    assert len(executor.queries) == issued


@pytest.mark.asyncio
async def test_remote_sort_requeries_with_rewritten_expression():
    """Test non-local columns re-run discovery with a sorted expression."""
    executor = FakeExecutor({"daemonsets": _discovery("ds-c", "ds-a", "ds-b")})
    table = _table(executor)
    await table.refresh()
    executor.queries.clear()

    await table.set_sorting("alerts")

    assert table.sorting == SortingState("alerts", SortDirection.DESC)
    assert executor.ref_ids() == ["daemonsets", "replicas", "replicas_ready", "alerts"]
    assert executor.queries[0].expr.startswith("sort_desc(")
    # backend order is the display order
    assert _ids(table) == ["ns1/ds-c", "ns1/ds-a", "ns1/ds-b"]

    executor.queries.clear()
    await table.set_sorting("alerts")

    assert executor.queries[0].expr.startswith("sort(")


@pytest.mark.asyncio
async def test_sorting_disabled_column_raises():
    """Test sorting a column without sorting config."""
    table = _table(FakeExecutor({}))

    with pytest.raises(ValueError, match="not enabled"):
        await table.set_sorting("age")
    with pytest.raises(ValueError, match="Unknown column"):
        await table.set_sorting("nope")


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications():
    """Test listeners can unsubscribe."""
    executor = FakeExecutor({"daemonsets": _discovery()})
    table = _table(executor)
    states = []
    unsubscribe = table.subscribe(lambda t: states.append(t.state))

    unsubscribe()
    await table.refresh()

    assert states == []


@pytest.mark.asyncio
async def test_snapshot():
    """Test snapshot exposes rows in display order."""
    executor = FakeExecutor(
        {
            "daemonsets": _discovery("ds-b", "ds-a"),
            "replicas": _values("replicas", ds_a=2.0),
        }
    )
    table = _table(executor)
    await table.refresh()
    table.toggle_row("ns1/ds-b")

    snapshot = table.snapshot()

    assert snapshot.name == "daemonsets"
    assert snapshot.state == TableState.READY
    assert snapshot.sorting.column_id == "daemonset"
    assert [row.row_id for row in snapshot.rows] == ["ns1/ds-a", "ns1/ds-b"]
    assert snapshot.rows[0].derived["replicas"] == 2.0
    assert snapshot.rows[1].expanded is True


@pytest.mark.asyncio
async def test_unexpected_discovery_exception_sets_error_state():
    """Test a discovery crash shows a table error before propagating."""
    executor = FakeExecutor({"daemonsets": RuntimeError("backend exploded")})
    table = _table(executor)

    with pytest.raises(RuntimeError):
        await table.refresh()

    assert table.state == TableState.ERROR
    assert table.error == "backend exploded"
    assert table.rows == []


@pytest.mark.asyncio
async def test_unexpected_row_query_exception_is_a_row_error():
    """Test an enrichment crash is reported under its ref id and the table completes."""
    executor = FakeExecutor(
        {
            "daemonsets": _discovery("ds-a"),
            "replicas": ValueError("bad sample"),
            "replicas_ready": _values("replicas_ready", ds_a=2.0),
        }
    )
    table = _table(executor)

    await table.refresh()

    assert table.state == TableState.READY
    assert table.row_errors == {"replicas": "bad sample"}
    assert _ids(table) == ["ns1/ds-a"]
    assert table.rows[0].derived == {"replicas": None, "replicas_ready": 2.0}


@pytest.mark.asyncio
async def test_row_mapper_exception_sets_error_state():
    """Test a failing row mapper moves the table to error."""

    def broken_mapper(row, results):
        raise KeyError("replicas")

    executor = FakeExecutor({"daemonsets": _discovery("ds-a")})
    table = _table(executor, row_mapper=broken_mapper)

    with pytest.raises(KeyError):
        await table.refresh()

    assert table.state == TableState.ERROR
    assert table.error == "'replicas'"
    assert table.rows == []


@pytest.mark.asyncio
async def test_row_id_exception_sets_error_state():
    """Test a discovery row without the key labels moves the table to error."""
    executor = FakeExecutor(
        {"daemonsets": QueryResult(ref_id="daemonsets", series=(Series(labels={"namespace": "ns1"}, values=(1.0,)),))}
    )
    table = _table(executor)

    with pytest.raises(KeyError):
        await table.refresh()

    assert table.state == TableState.ERROR
