"""Pick the value of one row out of an enrichment result."""

from workloads_engine.domain.entities import RowMatcher
from workloads_engine.domain.types import ResultsByRefId


def get_series_value(
    results: ResultsByRefId,
    ref_id: str,
    matcher: RowMatcher,
) -> float | None:
    """Value of the first series in `ref_id` whose labels satisfy `matcher`.

    Returns None when the result set is missing or no series matches; callers
    render that as unknown, never as zero.
    """
    result = results.get(ref_id)
    if result is None:
        return None

    for series in result.series:
        if matcher.matches(series.labels):
            return series.value
    return None


def count_matching_series(
    results: ResultsByRefId,
    ref_id: str,
    matcher: RowMatcher,
) -> int | None:
    """Number of series in `ref_id` matching the row, None if the result is missing."""
    result = results.get(ref_id)
    if result is None:
        return None
    return sum(1 for series in result.series if matcher.matches(series.labels))
