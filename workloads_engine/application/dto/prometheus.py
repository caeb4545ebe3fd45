"""Prometheus HTTP API response DTOs."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from workloads_engine.domain.entities import QueryResult, Series


class PrometheusResult(BaseModel):
    """Series of a vector or matrix result."""

    metric: dict[str, str] = Field(default_factory=dict)
    value: tuple[float, str] | None = None
    values: list[tuple[float, str]] | None = None

    def samples(self) -> tuple[float, ...]:
        if self.values is not None:
            return tuple(float(v) for _, v in self.values)
        if self.value is not None:
            return (float(self.value[1]),)
        return ()


class QueryData(BaseModel):
    """`data` member of a query response."""

    model_config = ConfigDict(populate_by_name=True)

    result_type: str = Field(alias="resultType")
    result: list[Any] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Response of /api/v1/query and /api/v1/query_range."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    data: QueryData | None = None
    error_type: str | None = Field(None, alias="errorType")
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    def to_result(self, ref_id: str) -> QueryResult:
        """Convert to a domain result, keeping backend series order."""
        if self.data is None:
            return QueryResult(ref_id=ref_id)

        if self.data.result_type in ("scalar", "string"):
            _, raw = self.data.result
            return QueryResult(ref_id=ref_id, series=(Series(labels={}, values=(float(raw),)),))

        series = []
        for item in self.data.result:
            parsed = PrometheusResult.model_validate(item)
            series.append(Series(labels=dict(parsed.metric), values=parsed.samples()))
        return QueryResult(ref_id=ref_id, series=tuple(series))


class LabelValuesResponse(BaseModel):
    """Response of /api/v1/label/<name>/values."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    data: list[str] = Field(default_factory=list)
    error_type: str | None = Field(None, alias="errorType")
    error: str | None = None
