"""Rule conditions, the expressions parsed from them, and their execution."""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping


class ParseError(Exception):
    """Raised when rule conditions cannot be turned into an expression."""


class EvaluationError(Exception):
    """Raised when an expression cannot be evaluated against the given data."""


class ExecutionCancelled(Exception):
    """Raised when execution is requested after cancellation."""


class Operator(str, Enum):
    """Comparison operators a rule condition may use."""

    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"

    def __str__(self) -> str:
        return self.value


@dataclass
class RuleCondition:
    """A single ``field <operator> value`` test of a rule."""

    field: str
    operator: Operator | str
    value: Any = None


def _format_value(value: Any) -> str:
    """Render a value the way rule messages and expression strings show it."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "map[" + " ".join(f"{_format_value(k)}:{_format_value(v)}" for k, v in items) + "]"
    return str(value)


def _same(a: Any, b: Any) -> bool:
    """Equality that also requires both values to share a type."""
    return type(a) is type(b) and a == b


def compare_values(a: Any, b: Any) -> int:
    """Order two ints, two floats or two strings; anything else compares equal."""
    for kind in (int, float, str):
        if type(a) is kind and type(b) is kind:
            return (a > b) - (a < b)
    return 0


class Expression(ABC):
    """A boolean test over a mapping of field values."""

    @abstractmethod
    def evaluate(self, data: Mapping[str, Any]) -> bool:
        """Return whether ``data`` satisfies the expression."""

    @abstractmethod
    def __str__(self) -> str:
        ...


@dataclass(frozen=True)
class AndExpression(Expression):
    """Conjunction of expressions; true only when every part is true."""

    exprs: tuple[Expression, ...] = field(default_factory=tuple)

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        return all(expr.evaluate(data) for expr in self.exprs)

    def __str__(self) -> str:
        return "(" + " AND ".join(str(expr) for expr in self.exprs) + ")"


def _members(values: Any, label: str) -> list[Any]:
    if not isinstance(values, (list, tuple)):
        raise EvaluationError(f"invalid {label} values: {_format_value(values)}")
    return list(values)


def _contains(actual: Any, expected: Any, label: str) -> bool:
    if isinstance(actual, str):
        return _format_value(expected) in actual
    if isinstance(actual, (list, tuple)):
        return any(_same(item, expected) for item in actual)
    raise EvaluationError(f"unsupported type for {label}: {type(actual).__name__}")


_CHECKS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.EQUAL: _same,
    Operator.NOT_EQUAL: lambda a, b: not _same(a, b),
    Operator.GREATER_THAN: lambda a, b: compare_values(a, b) > 0,
    Operator.GREATER_THAN_OR_EQUAL: lambda a, b: compare_values(a, b) >= 0,
    Operator.LESS_THAN: lambda a, b: compare_values(a, b) < 0,
    Operator.LESS_THAN_OR_EQUAL: lambda a, b: compare_values(a, b) <= 0,
    Operator.IN: lambda a, b: any(_same(a, v) for v in _members(b, "IN")),
    Operator.NOT_IN: lambda a, b: not any(_same(a, v) for v in _members(b, "NOT IN")),
    Operator.CONTAINS: lambda a, b: _contains(a, b, "CONTAINS"),
    Operator.NOT_CONTAINS: lambda a, b: not _contains(a, b, "NOT CONTAINS"),
}

_SYMBOLS: dict[Operator, str] = {
    Operator.EQUAL: "==",
    Operator.NOT_EQUAL: "!=",
    Operator.GREATER_THAN: ">",
    Operator.GREATER_THAN_OR_EQUAL: ">=",
    Operator.LESS_THAN: "<",
    Operator.LESS_THAN_OR_EQUAL: "<=",
    Operator.IN: "IN",
    Operator.NOT_IN: "NOT IN",
    Operator.CONTAINS: "CONTAINS",
    Operator.NOT_CONTAINS: "NOT CONTAINS",
}


@dataclass(frozen=True)
class FieldExpression(Expression):
    """Compares one field of the data with a fixed value."""

    field: str
    operator: Operator
    value: Any = None

    def evaluate(self, data: Mapping[str, Any]) -> bool:
        if self.field not in data:
            raise EvaluationError(f"field not found: {self.field}")
        return _CHECKS[self.operator](data[self.field], self.value)

    def __str__(self) -> str:
        return f"{self.field} {_SYMBOLS[self.operator]} {_format_value(self.value)}"


class Parser:
    """Turns rule conditions into a single conjunctive expression."""

    def parse(self, conditions: Iterable[RuleCondition]) -> Expression:
        """Build an expression that holds when every condition holds."""
        exprs = tuple(self._parse_condition(condition) for condition in conditions)
        if not exprs:
            raise ParseError("no conditions provided")
        return AndExpression(exprs)

    @staticmethod
    def _parse_condition(condition: RuleCondition) -> Expression:
        try:
            operator = Operator(condition.operator)
        except ValueError:
            raise ParseError(f"unsupported operator: {condition.operator}") from None
        return FieldExpression(condition.field, operator, condition.value)


class Executor:
    """Runs expressions against data unless execution has been cancelled."""

    def execute(
        self,
        expr: Expression,
        data: Mapping[str, Any],
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Evaluate ``expr``; raise :class:`ExecutionCancelled` if cancelled."""
        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionCancelled("execution cancelled: context canceled")
        return expr.evaluate(data)