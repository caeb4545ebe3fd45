"""Domain types and aliases."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from workloads_engine.domain.entities import QueryResult, Row

RowId = str

# Raw discovery row: label name -> label value
RawRow = dict[str, str]

# Enrichment results routed by query ref id
ResultsByRefId = dict[str, "QueryResult"]

VariableValue = str | list[str]

CreateRowId = Callable[[RawRow], RowId]
AsyncDataRowMapper = Callable[["Row", ResultsByRefId], None]

Timestamp = datetime
