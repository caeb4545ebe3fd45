"""Workload tables: columns, row identity and row mapping per kind."""

from workloads_engine.application.query_builders.workloads import (
    ALERTS,
    DAEMONSET,
    DEPLOYMENT,
    REPLICAS,
    REPLICAS_READY,
    STATEFULSET,
    DaemonSetQueryBuilder,
    DeploymentQueryBuilder,
    StatefulSetQueryBuilder,
    WorkloadKind,
    WorkloadQueryBuilder,
)
from workloads_engine.application.services.series_matcher import count_matching_series, get_series_value
from workloads_engine.application.services.sorting import ColumnSortingConfig
from workloads_engine.application.services.variables import (
    VariableScope,
    create_namespace_variable,
    create_search_variable,
)
from workloads_engine.application.use_cases.async_table import AsyncTable, Column
from workloads_engine.application.use_cases.workload_detail import WorkloadDetail, expanded_row_builder
from workloads_engine.domain.entities import ReplicaCounts, Row, RowMatcher, SortingState
from workloads_engine.domain.enums import SortDirection, SortingType
from workloads_engine.domain.ports import QueryExecutorPort
from workloads_engine.domain.types import RawRow, ResultsByRefId


def replicas_total(row: Row) -> float | None:
    replicas = row.derived.get(REPLICAS)
    return replicas.total if isinstance(replicas, ReplicaCounts) else None


def alerts_count(row: Row) -> float | None:
    return row.derived.get(ALERTS)


def create_columns(kind: WorkloadKind) -> list[Column]:
    return [
        Column(
            id=kind.key_label,
            header=kind.key_label.upper(),
            sorting_config=ColumnSortingConfig(type=SortingType.LABEL, local=True),
        ),
        Column(
            id=kind.namespace_label,
            header="NAMESPACE",
            sorting_config=ColumnSortingConfig(type=SortingType.LABEL, local=True),
        ),
        Column(
            id=REPLICAS,
            header="REPLICAS",
            sorting_config=ColumnSortingConfig(type=SortingType.VALUE, local=True, value=replicas_total),
        ),
        Column(
            id=ALERTS,
            header="ALERTS",
            sorting_config=ColumnSortingConfig(
                type=SortingType.VALUE,
                local=False,
                default_direction=SortDirection.DESC,
                value=alerts_count,
            ),
        ),
    ]


def row_id_factory(kind: WorkloadKind):
    def create_row_id(raw_row: RawRow) -> str:
        return f"{raw_row[kind.namespace_label]}/{raw_row[kind.key_label]}"

    return create_row_id


def row_mapper(kind: WorkloadKind):
    """Folds enrichment results into `row.derived`."""

    def map_row(row: Row, results: ResultsByRefId) -> None:
        matcher = RowMatcher.for_row(row, kind.key_labels)
        row.derived[REPLICAS] = ReplicaCounts(
            total=get_series_value(results, REPLICAS, matcher),
            ready=get_series_value(results, REPLICAS_READY, matcher),
        )
        row.derived[ALERTS] = count_matching_series(results, ALERTS, matcher)

    return map_row


def create_workload_table(
    kind: WorkloadKind,
    query_builder: WorkloadQueryBuilder,
    executor: QueryExecutorPort,
    parent_scope: VariableScope,
) -> AsyncTable[WorkloadDetail]:
    """Table with its own namespace and search variables under `parent_scope`."""
    variables = parent_scope.child([create_namespace_variable(), create_search_variable()])
    return AsyncTable(
        name=kind.ref_id,
        columns=create_columns(kind),
        query_builder=query_builder,
        executor=executor,
        variables=variables,
        create_row_id=row_id_factory(kind),
        async_data_row_mapper=row_mapper(kind),
        default_sorting=SortingState(kind.key_label, SortDirection.ASC),
        expanded_row_builder=expanded_row_builder(kind),
    )


def create_daemonsets_table(executor: QueryExecutorPort, parent_scope: VariableScope) -> AsyncTable[WorkloadDetail]:
    return create_workload_table(DAEMONSET, DaemonSetQueryBuilder(), executor, parent_scope)


def create_deployments_table(executor: QueryExecutorPort, parent_scope: VariableScope) -> AsyncTable[WorkloadDetail]:
    return create_workload_table(DEPLOYMENT, DeploymentQueryBuilder(), executor, parent_scope)


def create_statefulsets_table(executor: QueryExecutorPort, parent_scope: VariableScope) -> AsyncTable[WorkloadDetail]:
    return create_workload_table(STATEFULSET, StatefulSetQueryBuilder(), executor, parent_scope)
