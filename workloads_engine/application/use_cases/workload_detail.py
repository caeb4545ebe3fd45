"""Detail queries for a single workload: pods, alerts, replicas history, resource usage."""

from dataclasses import dataclass, field

from workloads_engine.application.query_builders.workloads import DEPLOYMENT, WorkloadKind
from workloads_engine.application.services.promql import Expression, MetricExpression, PromQL
from workloads_engine.domain.entities import LabelFilter, QuerySpec, Row
from workloads_engine.domain.enums import MatchOperator, QueryFormat
from workloads_engine.domain.metrics_catalog import Metrics

RATE_WINDOW = "5m"


@dataclass(frozen=True)
class WorkloadDetail:
    """Queries backing the detail view of one workload."""

    row_id: str
    title: str
    queries: list[QuerySpec] = field(default_factory=list)

    def query(self, ref_id: str) -> QuerySpec:
        for query in self.queries:
            if query.ref_id == ref_id:
                return query
        raise KeyError(ref_id)


def with_filters(metric: MetricExpression, filters: list[LabelFilter]) -> MetricExpression:
    for label_filter in filters:
        metric = metric.with_label(label_filter.label, label_filter.op, label_filter.value)
    return metric


def pod_label_filters(kind: WorkloadKind, name: str, namespace: str) -> list[LabelFilter]:
    """Filters selecting the pods owned by a workload.

    Deployment pods are owned by a ReplicaSet named after the deployment.
    """
    if kind == DEPLOYMENT:
        owner = LabelFilter("created_by_name", MatchOperator.MATCHES, f"{name}.*")
    else:
        owner = LabelFilter("created_by_name", MatchOperator.EQUALS, name)
    return [
        owner,
        LabelFilter("created_by_kind", MatchOperator.EQUALS, kind.pod_owner_kind),
        LabelFilter("namespace", MatchOperator.EQUALS, namespace),
    ]


def create_pods_query(filters: list[LabelFilter]) -> QuerySpec:
    expr = PromQL.group(
        with_filters(
            PromQL.metric(Metrics.kube_pod_info.name).with_label_equals("cluster", "$cluster"),
            filters,
        )
    ).by(["namespace", "pod", "node"])
    return QuerySpec(ref_id="pods", expr=expr.stringify())


def create_workload_alerts_query(kind: WorkloadKind, name: str, namespace: str) -> QuerySpec:
    expr = (
        PromQL.metric(Metrics.alerts.name)
        .with_label_equals("alertstate", "firing")
        .with_label_equals(kind.key_label, name)
        .with_label_equals("namespace", namespace)
        .with_label_equals("cluster", "$cluster")
    )
    return QuerySpec(ref_id="alerts", expr=expr.stringify())


def _max_by_key(kind: WorkloadKind, metric_name: str, name: str, namespace: str) -> Expression:
    return PromQL.max(
        PromQL.metric(metric_name)
        .with_label_matches(kind.key_label, name)
        .with_label_equals(kind.namespace_label, namespace)
        .with_label_equals("cluster", "$cluster")
    ).by([kind.key_label])


def create_replicas_history_queries(kind: WorkloadKind, name: str, namespace: str) -> list[QuerySpec]:
    """Range queries for the replicas panel."""
    if kind == DEPLOYMENT:
        series = [
            ("unavailable_replicas", Metrics.kube_deployment_status_replicas_unavailable.name, "Unavailable"),
            ("available_replicas", Metrics.kube_deployment_status_replicas_available.name, "Available"),
            ("replicas", Metrics.kube_deployment_status_replicas.name, "Replicas"),
        ]
    else:
        series = [
            ("replicas_ready", kind.replicas_ready.name, "Ready"),
            ("replicas", kind.replicas.name, "Replicas"),
        ]

    return [
        QuerySpec(
            ref_id=ref_id,
            expr=_max_by_key(kind, metric_name, name, namespace).stringify(),
            instant=False,
            format=QueryFormat.TIME_SERIES,
            legend_format=legend,
        )
        for ref_id, metric_name, legend in series
    ]


def create_resource_usage_queries(pod_regex: str, namespace: str) -> list[QuerySpec]:
    """CPU and memory usage per pod."""
    filters = [
        LabelFilter("pod", MatchOperator.MATCHES, pod_regex),
        LabelFilter("namespace", MatchOperator.EQUALS, namespace),
    ]
    cpu = PromQL.sum(
        PromQL.rate(
            with_filters(
                PromQL.metric(Metrics.container_cpu_usage_seconds_total.name)
                .with_label_equals("cluster", "$cluster")
                .with_label_not_equals("container", ""),
                filters,
            ),
            RATE_WINDOW,
        )
    ).by(["pod"])
    memory = PromQL.sum(
        with_filters(
            PromQL.metric(Metrics.container_memory_working_set_bytes.name)
            .with_label_equals("cluster", "$cluster")
            .with_label_not_equals("container", ""),
            filters,
        )
    ).by(["pod"])
    return [
        QuerySpec(ref_id="cpu_usage", expr=cpu.stringify(), instant=False, format=QueryFormat.TIME_SERIES),
        QuerySpec(ref_id="memory_usage", expr=memory.stringify(), instant=False, format=QueryFormat.TIME_SERIES),
    ]


def build_workload_detail(kind: WorkloadKind, name: str, namespace: str) -> WorkloadDetail:
    pod_regex = f"{name}.*"
    queries = [
        create_pods_query(pod_label_filters(kind, name, namespace)),
        create_workload_alerts_query(kind, name, namespace),
        *create_replicas_history_queries(kind, name, namespace),
        *create_resource_usage_queries(pod_regex, namespace),
    ]
    return WorkloadDetail(
        row_id=f"{namespace}/{name}",
        title=f"{kind.title} - {namespace}/{name}",
        queries=queries,
    )


def expanded_row_builder(kind: WorkloadKind):
    """Expanded row callback for a workload table."""

    def build(row: Row) -> WorkloadDetail:
        return build_workload_detail(
            kind,
            row.fields[kind.key_label],
            row.fields[kind.namespace_label],
        )

    return build
