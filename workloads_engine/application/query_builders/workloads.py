"""Discovery and enrichment queries for workload tables."""

from dataclasses import dataclass

import structlog

from workloads_engine.application.query_builders.base import QueryBuilder
from workloads_engine.application.services.promql import Expression, Labels, PromQL
from workloads_engine.application.services.sorting import ColumnSortingConfig
from workloads_engine.application.services.variables import VariableScope, resolve_variable
from workloads_engine.domain.entities import LabelMatch, QuerySpec, Row, SortingState
from workloads_engine.domain.enums import MatchOperator
from workloads_engine.domain.metrics_catalog import Metric, Metrics

logger = structlog.get_logger()

REPLICAS = "replicas"
REPLICAS_READY = "replicas_ready"
ALERTS = "alerts"

# A character followed by start-of-text: no string matches.
NEVER_MATCHES = ".^"


@dataclass(frozen=True)
class WorkloadKind:
    """Metrics and labels describing one workload kind."""

    title: str
    key_label: str
    ref_id: str
    created: Metric
    replicas: Metric
    replicas_ready: Metric
    pod_owner_kind: str

    @property
    def namespace_label(self) -> str:
        return self.created.labels["namespace"]

    @property
    def key_labels(self) -> list[str]:
        return [self.namespace_label, self.key_label]


DAEMONSET = WorkloadKind(
    title="DaemonSet",
    key_label="daemonset",
    ref_id="daemonsets",
    created=Metrics.kube_daemonset_created,
    replicas=Metrics.kube_daemonset_status_desired_number_scheduled,
    replicas_ready=Metrics.kube_daemonset_status_number_ready,
    pod_owner_kind="DaemonSet",
)

DEPLOYMENT = WorkloadKind(
    title="Deployment",
    key_label="deployment",
    ref_id="deployments",
    created=Metrics.kube_deployment_created,
    replicas=Metrics.kube_deployment_status_replicas,
    replicas_ready=Metrics.kube_deployment_status_replicas_ready,
    pod_owner_kind="ReplicaSet",
)

STATEFULSET = WorkloadKind(
    title="StatefulSet",
    key_label="statefulset",
    ref_id="statefulsets",
    created=Metrics.kube_statefulset_created,
    replicas=Metrics.kube_statefulset_status_replicas,
    replicas_ready=Metrics.kube_statefulset_status_replicas_ready,
    pod_owner_kind="StatefulSet",
)


def create_replicas_query(kind: WorkloadKind, cluster: str, additional_labels: Labels) -> Expression:
    return PromQL.max(
        PromQL.metric(kind.replicas.name)
        .with_labels(additional_labels)
        .with_label_equals("cluster", cluster)
    ).by([kind.key_label, kind.namespace_label])


def create_replicas_ready_query(kind: WorkloadKind, cluster: str, additional_labels: Labels) -> Expression:
    return PromQL.max(
        PromQL.metric(kind.replicas_ready.name)
        .with_labels(additional_labels)
        .with_label_equals("cluster", cluster)
    ).by([kind.key_label, kind.namespace_label])


def create_alerts_query(cluster: str, additional_labels: Labels) -> Expression:
    """Firing alerts joined with their ALERTS_FOR_STATE series."""
    return (
        PromQL.metric(Metrics.alerts.name)
        .with_label_equals("alertstate", "firing")
        .with_labels(additional_labels)
        .with_label_equals("cluster", cluster)
        .multiply()
        .ignoring(["alertstate"])
        .group_right(
            ["alertstate"],
            PromQL.metric(Metrics.alerts_for_state.name)
            .with_labels(additional_labels)
            .with_label_equals("cluster", cluster),
        )
    )


def row_matcher_regex(rows: list[Row], label: str) -> str:
    """Alternation of the rows' values for `label`; never matches when empty.

    Values are joined as-is, regex metacharacters in names are not escaped.
    """
    if not rows:
        return NEVER_MATCHES
    return "|".join(row.fields[label] for row in rows)


class WorkloadQueryBuilder(QueryBuilder):
    """Query builder for a workload kind."""

    def __init__(self, kind: WorkloadKind) -> None:
        """Initialize query builder."""
        self.kind = kind

    def base_query(self) -> Expression:
        """Entities matching the cluster, namespace and search variables."""
        created = self.kind.created
        return PromQL.group(
            PromQL.metric(created.name)
            .with_label_equals("cluster", "$cluster")
            .with_label_matches(self.kind.namespace_label, "$namespace")
            .with_label_matches(self.kind.key_label, ".*$search.*")
        ).by([self.kind.key_label, self.kind.namespace_label])

    def sort_target(self, column_id: str) -> Expression | None:
        """Per-entity aggregate the backend ranks by, None if the column has none."""
        if column_id == REPLICAS:
            return create_replicas_query(self.kind, "$cluster", {})
        if column_id == ALERTS:
            return PromQL.count(
                create_alerts_query(
                    "$cluster",
                    {self.kind.key_label: LabelMatch(MatchOperator.NOT_EQUALS, "")},
                )
            ).by(self.kind.key_labels)
        return None

    def root_query_builder(
        self,
        variables: VariableScope,
        sorting: SortingState,
        sorting_config: ColumnSortingConfig | None = None,
    ) -> QuerySpec:
        base = self.base_query()
        final: Expression = base

        if sorting_config is not None and not sorting_config.local:
            target = self.sort_target(sorting.column_id)
            if target is None:
                logger.warning(
                    "remote_sort_unsupported",
                    ref_id=self.kind.ref_id,
                    column_id=sorting.column_id,
                )
            else:
                final = PromQL.sort(
                    sorting.direction,
                    base.multiply()
                    .on(self.kind.key_labels)
                    .group_right([], target)
                    .or_()
                    .with_expression(base.multiply().with_scalar(0)),
                )

        return QuerySpec(ref_id=self.kind.ref_id, expr=final.stringify())

    def row_query_builder(self, rows: list[Row], variables: VariableScope) -> list[QuerySpec]:
        cluster = str(resolve_variable(variables, "cluster"))
        additional_labels = {
            self.kind.key_label: LabelMatch(
                MatchOperator.MATCHES,
                row_matcher_regex(rows, self.kind.key_label),
            )
        }

        return [
            QuerySpec(
                ref_id=REPLICAS,
                expr=create_replicas_query(self.kind, cluster, additional_labels).stringify(),
            ),
            QuerySpec(
                ref_id=REPLICAS_READY,
                expr=create_replicas_ready_query(self.kind, cluster, additional_labels).stringify(),
            ),
            QuerySpec(
                ref_id=ALERTS,
                expr=create_alerts_query(cluster, additional_labels).stringify(),
            ),
        ]


class DaemonSetQueryBuilder(WorkloadQueryBuilder):
    def __init__(self) -> None:
        super().__init__(DAEMONSET)


class DeploymentQueryBuilder(WorkloadQueryBuilder):
    def __init__(self) -> None:
        super().__init__(DEPLOYMENT)


class StatefulSetQueryBuilder(WorkloadQueryBuilder):
    def __init__(self) -> None:
        super().__init__(STATEFULSET)
