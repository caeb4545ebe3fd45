"""PromQL expression builder.

Nodes are immutable; every builder call returns a new node, so a base query
can be reused in several branches of a larger expression. Label names and
values are written into the query text as given, without escaping.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Iterable

from workloads_engine.domain.entities import LabelMatch
from workloads_engine.domain.enums import (
    AggregationOp,
    BinaryOp,
    GroupModifier,
    MatchOperator,
    SortDirection,
    VectorMatching,
)
from workloads_engine.domain.errors import InvalidExpressionError

Labels = dict[str, LabelMatch]

_SET_OPERATORS = {BinaryOp.OR, BinaryOp.AND, BinaryOp.UNLESS}


class Expression(ABC):
    """Base PromQL expression node."""

    @abstractmethod
    def stringify(self) -> str:
        """Render as PromQL text."""

    def __str__(self) -> str:
        return self.stringify()

    def add(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.ADD)

    def subtract(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.SUBTRACT)

    def multiply(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.MULTIPLY)

    def divide(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.DIVIDE)

    def or_(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.OR)

    def and_(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.AND)

    def unless(self) -> BinaryBuilder:
        return BinaryBuilder(left=self, op=BinaryOp.UNLESS)


@dataclass(frozen=True)
class Matcher:
    """Single label matcher."""

    label: str
    operator: MatchOperator
    value: str

    def stringify(self) -> str:
        return f'{self.label}{self.operator.value}"{self.value}"'


@dataclass(frozen=True)
class MetricExpression(Expression):
    """Metric selector with label matchers in insertion order."""

    name: str
    matchers: tuple[Matcher, ...] = ()

    def _with(self, label: str, operator: MatchOperator, value: str) -> MetricExpression:
        return replace(self, matchers=self.matchers + (Matcher(label, operator, value),))

    def with_label(self, label: str, operator: MatchOperator | str, value: str) -> MetricExpression:
        return self._with(label, MatchOperator(operator), value)

    def with_label_equals(self, label: str, value: str) -> MetricExpression:
        return self._with(label, MatchOperator.EQUALS, value)

    def with_label_not_equals(self, label: str, value: str) -> MetricExpression:
        return self._with(label, MatchOperator.NOT_EQUALS, value)

    def with_label_matches(self, label: str, regex: str) -> MetricExpression:
        return self._with(label, MatchOperator.MATCHES, regex)

    def with_label_not_matches(self, label: str, regex: str) -> MetricExpression:
        return self._with(label, MatchOperator.NOT_MATCHES, regex)

    def with_labels(self, labels: Labels) -> MetricExpression:
        expr = self
        for label, match in labels.items():
            expr = expr._with(label, MatchOperator(match.operator), match.value)
        return expr

    def stringify(self) -> str:
        if not self.matchers:
            return self.name
        return f"{self.name}{{{', '.join(m.stringify() for m in self.matchers)}}}"


@dataclass(frozen=True)
class AggregationExpression(Expression):
    """Aggregation over a child expression."""

    op: AggregationOp
    expr: Expression
    by_labels: tuple[str, ...] | None = None
    without_labels: tuple[str, ...] | None = None

    def by(self, labels: Iterable[str]) -> AggregationExpression:
        return replace(self, by_labels=tuple(labels), without_labels=None)

    def without(self, labels: Iterable[str]) -> AggregationExpression:
        return replace(self, by_labels=None, without_labels=tuple(labels))

    def stringify(self) -> str:
        text = f"{self.op.value}({self.expr.stringify()})"
        if self.by_labels is not None:
            text += f" by ({', '.join(self.by_labels)})"
        elif self.without_labels is not None:
            text += f" without ({', '.join(self.without_labels)})"
        return text


@dataclass(frozen=True)
class RateExpression(Expression):
    """Per-second rate of a counter over a range window."""

    expr: MetricExpression
    window: str

    def stringify(self) -> str:
        return f"rate({self.expr.stringify()}[{self.window}])"


@dataclass(frozen=True)
class ScalarExpression(Expression):
    """Numeric literal."""

    value: float

    def stringify(self) -> str:
        value = float(self.value)
        if value.is_integer():
            return str(int(value))
        return repr(value)


@dataclass(frozen=True)
class SortExpression(Expression):
    """Backend-side ordering of an instant vector."""

    direction: SortDirection
    expr: Expression

    def stringify(self) -> str:
        func = "sort_desc" if SortDirection(self.direction) is SortDirection.DESC else "sort"
        return f"{func}({self.expr.stringify()})"


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """Binary operation with optional vector matching."""

    left: Expression
    op: BinaryOp
    right: Expression
    matching: VectorMatching | None = None
    matching_labels: tuple[str, ...] = ()
    group: GroupModifier | None = None
    group_labels: tuple[str, ...] = ()

    def stringify(self) -> str:
        modifiers = ""
        if self.matching is not None:
            modifiers += f" {self.matching.value}({', '.join(self.matching_labels)})"
        if self.group is not None:
            modifiers += f" {self.group.value}({', '.join(self.group_labels)})"
        return f"{_operand(self.left)} {self.op.value}{modifiers} {_operand(self.right)}"


def _operand(expr: Expression) -> str:
    if isinstance(expr, BinaryExpression):
        return f"({expr.stringify()})"
    return expr.stringify()


@dataclass(frozen=True)
class BinaryBuilder:
    """Pending binary operation awaiting its right-hand side."""

    left: Expression
    op: BinaryOp
    matching: VectorMatching | None = None
    matching_labels: tuple[str, ...] = ()
    group: GroupModifier | None = None
    group_labels: tuple[str, ...] = ()

    def on(self, labels: Iterable[str]) -> BinaryBuilder:
        return replace(self, matching=VectorMatching.ON, matching_labels=tuple(labels))

    def ignoring(self, labels: Iterable[str]) -> BinaryBuilder:
        return replace(self, matching=VectorMatching.IGNORING, matching_labels=tuple(labels))

    def group_left(
        self, labels: Iterable[str] = (), expr: Expression | None = None
    ) -> BinaryBuilder | BinaryExpression:
        return self._grouped(GroupModifier.GROUP_LEFT, labels, expr)

    def group_right(
        self, labels: Iterable[str] = (), expr: Expression | None = None
    ) -> BinaryBuilder | BinaryExpression:
        return self._grouped(GroupModifier.GROUP_RIGHT, labels, expr)

    def _grouped(
        self, modifier: GroupModifier, labels: Iterable[str], expr: Expression | None
    ) -> BinaryBuilder | BinaryExpression:
        if self.matching is None:
            raise InvalidExpressionError(f"{modifier.value} requires on() or ignoring()")
        if self.op in _SET_OPERATORS:
            raise InvalidExpressionError(f"{modifier.value} is not allowed with '{self.op.value}'")
        builder = replace(self, group=modifier, group_labels=tuple(labels))
        if expr is None:
            return builder
        return builder.with_expression(expr)

    def with_expression(self, expr: Expression) -> BinaryExpression:
        if not isinstance(expr, Expression):
            raise InvalidExpressionError(f"Right operand must be an expression, got {type(expr).__name__}")
        return BinaryExpression(
            left=self.left,
            op=self.op,
            right=expr,
            matching=self.matching,
            matching_labels=self.matching_labels,
            group=self.group,
            group_labels=self.group_labels,
        )

    def with_scalar(self, value: float) -> BinaryExpression:
        return self.with_expression(ScalarExpression(value))


class PromQL:
    """Entry points for building expressions."""

    @staticmethod
    def metric(name: str) -> MetricExpression:
        if not name:
            raise InvalidExpressionError("Metric name must not be empty")
        return MetricExpression(name=name)

    @staticmethod
    def sum(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.SUM, expr)

    @staticmethod
    def min(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.MIN, expr)

    @staticmethod
    def max(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.MAX, expr)

    @staticmethod
    def avg(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.AVG, expr)

    @staticmethod
    def count(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.COUNT, expr)

    @staticmethod
    def group(expr: Expression) -> AggregationExpression:
        return AggregationExpression(AggregationOp.GROUP, expr)

    @staticmethod
    def rate(expr: MetricExpression, window: str) -> RateExpression:
        if not isinstance(expr, MetricExpression):
            raise InvalidExpressionError("rate() needs a metric selector")
        return RateExpression(expr, window)

    @staticmethod
    def sort(direction: SortDirection | str, expr: Expression) -> SortExpression:
        return SortExpression(SortDirection(direction), expr)

    @staticmethod
    def scalar(value: float) -> ScalarExpression:
        return ScalarExpression(value)
