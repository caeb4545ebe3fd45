"""Table snapshot DTOs handed to renderers."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from workloads_engine.domain.enums import SortDirection, TableState


class SortingSnapshot(BaseModel):
    """Active sorting."""

    column_id: str = Field(alias="columnId")
    direction: SortDirection

    model_config = ConfigDict(populate_by_name=True)


class RowSnapshot(BaseModel):
    """Row as rendered."""

    row_id: str = Field(alias="rowId")
    fields: dict[str, str]
    derived: dict[str, Any]
    expanded: bool = False

    model_config = ConfigDict(populate_by_name=True)


class TableSnapshot(BaseModel):
    """Table state at one point in time."""

    name: str
    state: TableState
    sorting: SortingSnapshot
    rows: list[RowSnapshot]
    error: str | None = None
    row_errors: dict[str, str] = Field(default_factory=dict, alias="rowErrors")

    model_config = ConfigDict(populate_by_name=True)
