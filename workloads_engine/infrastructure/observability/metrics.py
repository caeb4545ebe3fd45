"""Prometheus metrics."""

from prometheus_client import Counter, Histogram, start_http_server

backend_queries_total = Counter(
    "workloads_backend_queries_total",
    "Total number of backend queries executed",
    ["outcome"],
)

backend_query_duration_seconds = Histogram(
    "workloads_backend_query_duration_seconds",
    "Duration of backend queries in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

table_refreshes_total = Counter(
    "workloads_table_refreshes_total",
    "Total number of table refresh cycles",
    ["table", "state"],
)

table_refresh_duration_seconds = Histogram(
    "workloads_table_refresh_duration_seconds",
    "Duration of table refresh cycles in seconds",
    ["table"],
    buckets=[0.1, 0.5, 1, 2.5, 5, 10, 30, 60],
)


def start_metrics_server(port: int) -> None:
    """Expose the engine's own metrics on `port`."""
    start_http_server(port)
