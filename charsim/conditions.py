"""Typed comparison conditions.

Conditions compare two operands with a closed set of comparators. Operands
reference a named variable of a given kind (state, modulator, tendency, field
dimension, derived metric), the value of the owning entity, or a literal.
Evaluation never parses strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

# Values closer than this compare equal under Comparator.EQ
EQUALITY_TOLERANCE = 0.5


class Comparator(str, Enum):
    """Comparison operators available to conditions."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"

    def apply(self, left: float, right: float) -> bool:
        if self is Comparator.GT:
            return left > right
        if self is Comparator.GTE:
            return left >= right
        if self is Comparator.LT:
            return left < right
        if self is Comparator.LTE:
            return left <= right
        return abs(left - right) < EQUALITY_TOLERANCE


class OperandKind(str, Enum):
    """What an operand refers to."""

    STATE = "state"
    MODULATOR = "modulator"
    TENDENCY = "tendency"
    FIELD = "field"
    METRIC = "metric"
    SELF = "self"
    LITERAL = "literal"


# (kind, name) -> value, or None when the variable is unknown
Resolver = Callable[[OperandKind, str], Optional[float]]


@dataclass(frozen=True)
class Operand:
    """Reference to a value used on one side of a condition."""

    kind: OperandKind
    name: str = ""
    value: float = 0.0

    def resolve(self, resolver: Optional[Resolver], self_value: Optional[float]) -> Optional[float]:
        if self.kind == OperandKind.LITERAL:
            return self.value
        if self.kind == OperandKind.SELF:
            return self_value
        if resolver is None:
            return None
        return resolver(self.kind, self.name)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Operand":
        return cls(
            kind=OperandKind(data["kind"]),
            name=data.get("name", ""),
            value=float(data.get("value", 0.0)),
        )


@dataclass(frozen=True)
class Condition:
    """A single typed comparison: left <comparator> right."""

    left: Operand
    comparator: Comparator
    right: Operand

    def evaluate(
        self,
        resolver: Optional[Resolver] = None,
        self_value: Optional[float] = None,
    ) -> bool:
        """Evaluate the comparison.

        Args:
            resolver: Looks up named operands. May be omitted when the
                condition only uses SELF and LITERAL operands.
            self_value: Value bound to SELF operands.

        Returns:
            False when either operand cannot be resolved.
        """
        left = self.left.resolve(resolver, self_value)
        right = self.right.resolve(resolver, self_value)
        if left is None or right is None:
            return False
        return self.comparator.apply(left, right)

    def describe(self) -> str:
        symbols = {
            Comparator.GT: ">",
            Comparator.GTE: ">=",
            Comparator.LT: "<",
            Comparator.LTE: "<=",
            Comparator.EQ: "==",
        }
        return f"{_label(self.left)} {symbols[self.comparator]} {_label(self.right)}"

    def to_dict(self) -> dict:
        return {
            "left": self.left.to_dict(),
            "comparator": self.comparator.value,
            "right": self.right.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Condition":
        return cls(
            left=Operand.from_dict(data["left"]),
            comparator=Comparator(data["comparator"]),
            right=Operand.from_dict(data["right"]),
        )


def _label(operand: Operand) -> str:
    if operand.kind == OperandKind.LITERAL:
        return f"{operand.value:g}"
    if operand.kind == OperandKind.SELF:
        return "value"
    return f"{operand.kind.value}:{operand.name}"


def literal(value: float) -> Operand:
    return Operand(OperandKind.LITERAL, value=float(value))


def ref(kind: OperandKind, name: str) -> Operand:
    return Operand(kind, name=name)


def self_is(comparator: Comparator, threshold: float) -> Condition:
    """Condition on the owning entity's own value, e.g. value > 60."""
    return Condition(Operand(OperandKind.SELF), comparator, literal(threshold))


def check(kind: OperandKind, name: str, comparator: Comparator, threshold: float) -> Condition:
    """Condition on a named variable against a literal threshold."""
    return Condition(ref(kind, name), comparator, literal(threshold))
