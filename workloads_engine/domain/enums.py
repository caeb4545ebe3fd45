"""Domain enums for query expressions and tables."""

from enum import Enum


class MatchOperator(str, Enum):
    """Label matcher operator enum."""

    EQUALS = "="
    NOT_EQUALS = "!="
    MATCHES = "=~"
    NOT_MATCHES = "!~"


class AggregationOp(str, Enum):
    """Aggregation operator enum."""

    SUM = "sum"
    MIN = "min"
    MAX = "max"
    AVG = "avg"
    COUNT = "count"
    GROUP = "group"


class BinaryOp(str, Enum):
    """Binary operator enum."""

    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    OR = "or"
    AND = "and"
    UNLESS = "unless"


class VectorMatching(str, Enum):
    """Vector matching keyword enum."""

    ON = "on"
    IGNORING = "ignoring"


class GroupModifier(str, Enum):
    """Many-to-one matching modifier enum."""

    GROUP_LEFT = "group_left"
    GROUP_RIGHT = "group_right"


class SortDirection(str, Enum):
    """Sort direction enum."""

    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        """Return the opposite direction."""
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class SortingType(str, Enum):
    """Column comparison semantics."""

    LABEL = "label"  # string comparison
    VALUE = "value"  # numeric comparison


class QueryFormat(str, Enum):
    """Result format requested from the backend."""

    TABLE = "table"
    TIME_SERIES = "time_series"


class TableState(str, Enum):
    """Async table lifecycle states."""

    IDLE = "idle"
    ROOT_LOADING = "root_loading"
    ROOT_LOADED = "root_loaded"
    ROW_LOADING = "row_loading"
    READY = "ready"
    ERROR = "error"
