"""kube-state-metrics and cAdvisor metric names used by the tables."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Metric:
    """Metric name and the label names it carries."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)


def _kube(name: str, *labels: str) -> Metric:
    return Metric(name=name, labels={label: label for label in ("namespace", *labels)})


class Metrics:
    """Metric catalog."""

    kube_namespace_status_phase = _kube("kube_namespace_status_phase")

    kube_daemonset_created = _kube("kube_daemonset_created", "daemonset")
    kube_daemonset_status_desired_number_scheduled = _kube(
        "kube_daemonset_status_desired_number_scheduled", "daemonset"
    )
    kube_daemonset_status_number_ready = _kube("kube_daemonset_status_number_ready", "daemonset")

    kube_deployment_created = _kube("kube_deployment_created", "deployment")
    kube_deployment_status_replicas = _kube("kube_deployment_status_replicas", "deployment")
    kube_deployment_status_replicas_ready = _kube("kube_deployment_status_replicas_ready", "deployment")
    kube_deployment_status_replicas_available = _kube(
        "kube_deployment_status_replicas_available", "deployment"
    )
    kube_deployment_status_replicas_unavailable = _kube(
        "kube_deployment_status_replicas_unavailable", "deployment"
    )

    kube_statefulset_created = _kube("kube_statefulset_created", "statefulset")
    kube_statefulset_status_replicas = _kube("kube_statefulset_status_replicas", "statefulset")
    kube_statefulset_status_replicas_ready = _kube("kube_statefulset_status_replicas_ready", "statefulset")

    kube_pod_info = _kube("kube_pod_info", "pod", "created_by_kind", "created_by_name")

    container_cpu_usage_seconds_total = _kube("container_cpu_usage_seconds_total", "pod", "container")
    container_memory_working_set_bytes = _kube("container_memory_working_set_bytes", "pod", "container")

    alerts = Metric(name="ALERTS", labels={"alertstate": "alertstate", "alertname": "alertname"})
    alerts_for_state = Metric(name="ALERTS_FOR_STATE", labels={"alertname": "alertname"})
