"""Domain errors."""


class DomainError(Exception):
    """Base domain error."""


class VariableNotFoundError(DomainError):
    """Variable is not defined in the scope chain."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Variable {name} not found")
        self.name = name


class QueryExecutionError(DomainError):
    """Backend query failed."""

    def __init__(self, message: str, ref_id: str | None = None) -> None:
        super().__init__(message)
        self.ref_id = ref_id


class InvalidExpressionError(DomainError):
    """Invalid query expression structure."""
