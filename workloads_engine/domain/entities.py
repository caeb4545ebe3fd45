"""Domain entities."""

from dataclasses import dataclass, field
from datetime import timedelta

from workloads_engine.domain.enums import MatchOperator, QueryFormat, SortDirection
from workloads_engine.domain.types import RowId, Timestamp


@dataclass(frozen=True)
class LabelMatch:
    """Operator and value applied to one label."""

    operator: MatchOperator
    value: str


@dataclass(frozen=True)
class LabelFilter:
    """Static label filter used by detail queries."""

    label: str
    op: MatchOperator
    value: str


@dataclass(frozen=True)
class QuerySpec:
    """Query sent to the backend."""

    ref_id: str
    expr: str
    instant: bool = True
    format: QueryFormat = QueryFormat.TABLE
    legend_format: str | None = None


@dataclass(frozen=True)
class TimeRange:
    """Evaluation window for range queries."""

    start: Timestamp
    end: Timestamp
    step: timedelta


@dataclass(frozen=True)
class Series:
    """One result series: its label set and sample values in time order."""

    labels: dict[str, str]
    values: tuple[float, ...]

    @property
    def value(self) -> float | None:
        """Most recent sample."""
        return self.values[-1] if self.values else None


@dataclass(frozen=True)
class QueryResult:
    """Result of one query, keyed by its ref id."""

    ref_id: str
    series: tuple[Series, ...] = ()

    def rows(self) -> list[dict[str, str]]:
        """Label sets in backend order."""
        return [dict(s.labels) for s in self.series]


@dataclass(frozen=True)
class SortingState:
    """Active sort column and direction."""

    column_id: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class RowMatcher:
    """Matches a series whose labels equal the given field values.

    Built from a row and the label names that identify it, so the comparison
    is data instead of a closure.
    """

    fields: tuple[tuple[str, str], ...]

    @classmethod
    def for_row(cls, row: "Row", labels: list[str] | tuple[str, ...]) -> "RowMatcher":
        """Create a matcher for the given row key labels."""
        return cls(fields=tuple((label, row.fields.get(label, "")) for label in labels))

    def matches(self, series_labels: dict[str, str]) -> bool:
        """Check whether every field equals the series label."""
        return all(series_labels.get(label) == value for label, value in self.fields)


@dataclass(frozen=True)
class ReplicaCounts:
    """Total and ready replicas; None means unknown."""

    total: float | None
    ready: float | None

    def display(self) -> str:
        """Render as ready/total, unknown values as '?'."""
        return f"{_fmt_count(self.ready)}/{_fmt_count(self.total)}"


def _fmt_count(value: float | None) -> str:
    if value is None:
        return "?"
    return str(int(value)) if float(value).is_integer() else str(value)


@dataclass
class Row:
    """Table row.

    `fields` holds the entity key labels from discovery, `derived` the values
    filled in by the row mapper after enrichment.
    """

    row_id: RowId
    fields: dict[str, str]
    derived: dict[str, object] = field(default_factory=dict)
    expanded: bool = False
