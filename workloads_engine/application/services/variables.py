"""Hierarchical variable scopes, lookup and interpolation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from workloads_engine.domain.errors import VariableNotFoundError
from workloads_engine.domain.metrics_catalog import Metrics
from workloads_engine.domain.ports import QueryExecutorPort
from workloads_engine.domain.types import VariableValue

logger = structlog.get_logger()

ALL_VALUE = "$__all"

_VARIABLE_REF = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


@dataclass
class Variable:
    """Named ambient parameter.

    `value` is a string, a list of strings for multi-value variables, or
    ALL_VALUE for the "match all" wildcard.
    """

    name: str
    label: str = ""
    value: VariableValue = ""
    is_multi: bool = False
    include_all: bool = False
    all_value: str | None = None
    options: list[str] = field(default_factory=list)
    # Label-values discovery: (series selector or None, label name)
    query: tuple[str | None, str] | None = None


class VariableScope:
    """Variable set with an optional enclosing scope."""

    def __init__(self, variables: list[Variable] | None = None, parent: VariableScope | None = None) -> None:
        self._variables: dict[str, Variable] = {}
        self.parent = parent
        for variable in variables or []:
            self._variables[variable.name] = variable

    def __iter__(self):
        return iter(self._variables.values())

    def get_by_name(self, name: str) -> Variable | None:
        """Variable defined in this scope only."""
        return self._variables.get(name)

    def lookup(self, name: str) -> Variable | None:
        """Variable from this scope or the nearest enclosing one."""
        scope: VariableScope | None = self
        while scope is not None:
            variable = scope.get_by_name(name)
            if variable is not None:
                return variable
            scope = scope.parent
        return None

    def set_value(self, name: str, value: VariableValue) -> None:
        """Set the value of a variable visible from this scope."""
        variable = self.lookup(name)
        if variable is None:
            raise VariableNotFoundError(name)
        variable.value = value

    def child(self, variables: list[Variable]) -> VariableScope:
        """New scope nested in this one."""
        return VariableScope(variables, parent=self)


def resolve_variable(scope: VariableScope, name: str) -> VariableValue:
    """Current value of `name`, looked up through the scope chain."""
    variable = scope.lookup(name)
    if variable is None:
        raise VariableNotFoundError(name)
    return variable.value


def format_value(variable: Variable) -> str:
    """Render a variable value for use inside a query."""
    value = variable.value
    if value == ALL_VALUE or (isinstance(value, list) and ALL_VALUE in value):
        if variable.all_value is not None:
            return variable.all_value
        return _alternation(variable.options)
    if isinstance(value, list):
        return _alternation(value)
    return value


def _alternation(values: list[str]) -> str:
    if len(values) == 1:
        return values[0]
    return f"({'|'.join(values)})"


def interpolate(expr: str, scope: VariableScope) -> str:
    """Replace $name and ${name} references with formatted variable values."""

    def substitute(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        variable = scope.lookup(name)
        if variable is None:
            raise VariableNotFoundError(name)
        return format_value(variable)

    return _VARIABLE_REF.sub(substitute, expr)


async def load_variable_options(
    variable: Variable,
    scope: VariableScope,
    executor: QueryExecutorPort,
) -> list[str]:
    """Fill options from the backend's label values; default the value to the first option."""
    if variable.query is None:
        return variable.options

    match, label = variable.query
    selector = interpolate(match, scope) if match else None
    options = sorted(await executor.label_values(label, selector))
    variable.options = options

    if not variable.value and options:
        variable.value = ALL_VALUE if variable.include_all else options[0]

    logger.info("variable_options_loaded", variable=variable.name, option_count=len(options))
    return options


def create_top_level_variables(
    datasource: str = "prometheus",
    default_cluster: str | None = None,
    cluster_filter: str | None = None,
) -> VariableScope:
    """Root scope with the datasource and cluster variables."""
    return VariableScope(
        [
            Variable(name="datasource", label="Datasource", value=datasource),
            create_cluster_variable(default_cluster, cluster_filter),
        ]
    )


def create_cluster_variable(default_cluster: str | None = None, cluster_filter: str | None = None) -> Variable:
    return Variable(
        name="cluster",
        label="Cluster",
        value=default_cluster or "",
        query=(cluster_filter or Metrics.kube_namespace_status_phase.name, "cluster"),
    )


def create_namespace_variable() -> Variable:
    return Variable(
        name="namespace",
        label="Namespace",
        value=ALL_VALUE,
        is_multi=True,
        include_all=True,
        all_value=".*",
        query=(
            f'{Metrics.kube_namespace_status_phase.name}{{cluster="$cluster"}}',
            Metrics.kube_namespace_status_phase.labels["namespace"],
        ),
    )


def create_search_variable() -> Variable:
    return Variable(name="search", label="Search", value="")
