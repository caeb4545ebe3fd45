"""Sorting state transitions and client-side ordering."""

from dataclasses import dataclass
from typing import Callable

from workloads_engine.domain.entities import Row, SortingState
from workloads_engine.domain.enums import SortDirection, SortingType


@dataclass(frozen=True)
class ColumnSortingConfig:
    """How a column sorts.

    `local` columns are ordered over fetched rows; the others make the
    backend re-rank the discovery query. `value` extracts the numeric key for
    VALUE columns, LABEL columns compare `row.fields[column_id]`.
    """

    enabled: bool = True
    type: SortingType = SortingType.LABEL
    local: bool = True
    default_direction: SortDirection = SortDirection.ASC
    value: Callable[[Row], float | None] | None = None


def next_sorting(
    current: SortingState,
    column_id: str,
    config: ColumnSortingConfig | None = None,
) -> SortingState:
    """Same column flips direction; a new column starts at its default."""
    if column_id == current.column_id:
        return SortingState(column_id, SortDirection(current.direction).flipped())
    default = config.default_direction if config else SortDirection.ASC
    return SortingState(column_id, default)


def sort_rows(
    rows: list[Row],
    sorting: SortingState,
    config: ColumnSortingConfig,
) -> list[Row]:
    """Order rows locally. Unknown values go last in both directions."""
    reverse = SortDirection(sorting.direction) is SortDirection.DESC

    if config.type == SortingType.VALUE:
        getter = config.value or (lambda row: row.derived.get(sorting.column_id))
        keyed = [(getter(row), row) for row in rows]
    else:
        keyed = [(row.fields.get(sorting.column_id), row) for row in rows]

    known = [(key, row) for key, row in keyed if key is not None]
    unknown = [row for key, row in keyed if key is None]
    known.sort(key=lambda item: item[0], reverse=reverse)
    return [row for _, row in known] + unknown
