"""Prometheus HTTP API query executor."""

import time
from datetime import timedelta

import httpx
import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from workloads_engine.application.dto.prometheus import LabelValuesResponse, QueryResponse
from workloads_engine.domain.entities import QueryResult, QuerySpec, TimeRange
from workloads_engine.domain.errors import QueryExecutionError
from workloads_engine.domain.ports import ClockPort, QueryExecutorPort
from workloads_engine.infrastructure.config.settings import Settings
from workloads_engine.infrastructure.observability.metrics import (
    backend_queries_total,
    backend_query_duration_seconds,
)

logger = structlog.get_logger()


class PrometheusQueryExecutor(QueryExecutorPort):
    """Runs instant and range queries against the Prometheus HTTP API.

    Transport failures (connection errors, timeouts) are retried with
    exponential backoff; error responses from Prometheus are not.
    """

    def __init__(
        self,
        settings: Settings,
        clock: ClockPort,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize executor."""
        self.settings = settings
        self.clock = clock
        self.client = client or httpx.AsyncClient(
            base_url=settings.prometheus_url,
            timeout=settings.query_timeout_seconds,
            headers=self._headers(settings.prometheus_bearer_token),
        )

    @staticmethod
    def _headers(token: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def close(self) -> None:
        await self.client.aclose()

    def default_time_range(self) -> TimeRange:
        end = self.clock.now()
        return TimeRange(
            start=end - timedelta(seconds=self.settings.range_query_seconds),
            end=end,
            step=timedelta(seconds=self.settings.range_query_step_seconds),
        )

    async def execute(
        self,
        query: QuerySpec,
        time_range: TimeRange | None = None,
    ) -> QueryResult:
        """Execute a query and convert the response."""
        if query.instant:
            path = "/api/v1/query"
            params = {"query": query.expr}
            if time_range is not None:
                params["time"] = str(time_range.end.timestamp())
        else:
            time_range = time_range or self.default_time_range()
            path = "/api/v1/query_range"
            params = {
                "query": query.expr,
                "start": str(time_range.start.timestamp()),
                "end": str(time_range.end.timestamp()),
                "step": str(int(time_range.step.total_seconds())),
            }

        started = time.perf_counter()
        try:
            body = await self._get(path, params)
            response = QueryResponse.model_validate(body)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            backend_queries_total.labels(outcome="error").inc()
            logger.error("backend_query_failed", ref_id=query.ref_id, expr=query.expr, error=str(e))
            raise QueryExecutionError(f"Query {query.ref_id} failed: {e}", ref_id=query.ref_id) from e
        finally:
            backend_query_duration_seconds.observe(time.perf_counter() - started)

        if response.status != "success":
            backend_queries_total.labels(outcome="error").inc()
            logger.error(
                "backend_query_rejected",
                ref_id=query.ref_id,
                expr=query.expr,
                error_type=response.error_type,
                error=response.error,
            )
            raise QueryExecutionError(
                f"Query {query.ref_id} failed: {response.error_type}: {response.error}",
                ref_id=query.ref_id,
            )

        try:
            result = response.to_result(query.ref_id)
        except (TypeError, ValueError, ValidationError) as e:
            backend_queries_total.labels(outcome="error").inc()
            logger.error("backend_response_malformed", ref_id=query.ref_id, expr=query.expr, error=str(e))
            raise QueryExecutionError(
                f"Query {query.ref_id} returned a malformed result: {e}",
                ref_id=query.ref_id,
            ) from e

        backend_queries_total.labels(outcome="success").inc()
        for warning in response.warnings:
            logger.warning("backend_query_warning", ref_id=query.ref_id, warning=warning)

        logger.debug("backend_query_succeeded", ref_id=query.ref_id, series_count=len(result.series))
        return result

    async def label_values(self, label: str, match: str | None = None) -> list[str]:
        """List label values via /api/v1/label/<label>/values."""
        params = {"match[]": match} if match else {}
        try:
            body = await self._get(f"/api/v1/label/{label}/values", params)
            response = LabelValuesResponse.model_validate(body)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise QueryExecutionError(f"Label values for {label} failed: {e}") from e

        if response.status != "success":
            raise QueryExecutionError(f"Label values for {label} failed: {response.error_type}: {response.error}")
        return response.data

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _get(self, path: str, params: dict[str, str]) -> dict:
        """GET a Prometheus API path and return the JSON body.

        Prometheus reports query errors as JSON with a 4xx/5xx status, so the
        body is parsed before the status is checked.
        """
        response = await self.client.get(path, params=params)
        try:
            return response.json()
        except ValueError:
            response.raise_for_status()
            raise
