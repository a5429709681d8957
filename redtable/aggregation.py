"""Column aggregations over versioned query results."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence, Tuple, Union

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:inf|infinity|nan|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:e[+-]?[0-9]+)?)",
    re.IGNORECASE,
)

Versions = Sequence[Tuple[int, bytes]]


class AggregationType(Enum):
    """The kind of aggregation to perform on a column."""

    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"


@dataclass(frozen=True)
class Aggregation:
    """An aggregation to be performed on a specific column."""

    column: bytes
    aggregation_type: AggregationType


def _format_bytes(data: bytes) -> str:
    return "[" + ", ".join(str(b) for b in data) + "]"


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@dataclass(frozen=True)
class AggregationResult:
    """Outcome of one aggregation: a kind and its value."""

    class Kind(Enum):
        COUNT = "count"
        SUM = "sum"
        SUM_FLOAT = "sum_float"
        AVERAGE = "average"
        MIN = "min"
        MAX = "max"
        ERROR = "error"

    kind: "AggregationResult.Kind"
    value: Union[int, float, bytes, str]

    @property
    def is_error(self) -> bool:
        return self.kind is AggregationResult.Kind.ERROR

    def __str__(self) -> str:
        kind = self.kind
        if kind in (AggregationResult.Kind.COUNT, AggregationResult.Kind.SUM):
            return str(self.value)
        if kind in (AggregationResult.Kind.SUM_FLOAT, AggregationResult.Kind.AVERAGE):
            return _format_float(self.value)
        if kind in (AggregationResult.Kind.MIN, AggregationResult.Kind.MAX):
            return _format_bytes(self.value)
        return f"Error: {self.value}"


class _AggregationFailure(ValueError):
    """Raised when a value cannot take part in a numeric aggregation."""


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        raise _AggregationFailure("Invalid UTF-8 in value") from None


def _parse_int(text: str) -> int | None:
    if _INT_RE.fullmatch(text):
        number = int(text)
        if _I64_MIN <= number <= _I64_MAX:
            return number
    return None


def _parse_float(text: str) -> float | None:
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    return None


def _sum(column_values: Versions) -> AggregationResult:
    int_total = 0
    float_total = 0.0
    is_float = False
    for _, value in column_values:
        text = _decode(value)
        as_int = _parse_int(text)
        if as_int is not None:
            int_total += as_int
            continue
        as_float = _parse_float(text)
        if as_float is None:
            raise _AggregationFailure("Non-numeric value found")
        float_total += as_float
        is_float = True
    if is_float:
        return AggregationResult(AggregationResult.Kind.SUM_FLOAT, float_total)
    return AggregationResult(AggregationResult.Kind.SUM, int_total)


def _average(column_values: Versions) -> AggregationResult:
    if not column_values:
        return AggregationResult(AggregationResult.Kind.ERROR, "No values to average")
    total = 0.0
    for _, value in column_values:
        number = _parse_float(_decode(value))
        if number is None:
            raise _AggregationFailure("Non-numeric value found")
        total += number
    return AggregationResult(AggregationResult.Kind.AVERAGE, total / len(column_values))


def _aggregate(kind: AggregationType, column_values: Versions) -> AggregationResult:
    if kind is AggregationType.COUNT:
        return AggregationResult(AggregationResult.Kind.COUNT, len(column_values))
    if kind is AggregationType.SUM:
        return _sum(column_values)
    if kind is AggregationType.AVERAGE:
        return _average(column_values)
    if kind is AggregationType.MIN:
        if not column_values:
            return AggregationResult(
                AggregationResult.Kind.ERROR, "No values to find minimum"
            )
        return AggregationResult(
            AggregationResult.Kind.MIN, min(value for _, value in column_values)
        )
    if not column_values:
        return AggregationResult(AggregationResult.Kind.ERROR, "No values to find maximum")
    return AggregationResult(
        AggregationResult.Kind.MAX, max(value for _, value in column_values)
    )


@dataclass
class AggregationSet:
    """A set of aggregations to run over the versions of a row's columns."""

    aggregations: list[Aggregation] = field(default_factory=list)

    def add_aggregation(
        self, column: bytes, aggregation_type: AggregationType
    ) -> "AggregationSet":
        self.aggregations.append(Aggregation(bytes(column), aggregation_type))
        return self

    def apply(self, values: Mapping[bytes, Versions]) -> dict[bytes, AggregationResult]:
        """Run every aggregation; results are keyed by column in sorted order.

        A value that breaks a sum or an average aborts the whole run, and the
        result then holds only that column's error.
        """
        results: dict[bytes, AggregationResult] = {}
        for aggregation in self.aggregations:
            column_values = values.get(aggregation.column)
            if column_values is None:
                result = AggregationResult(
                    AggregationResult.Kind.ERROR,
                    f"Column not found: {_format_bytes(aggregation.column)}",
                )
            else:
                try:
                    result = _aggregate(aggregation.aggregation_type, column_values)
                except _AggregationFailure as exc:
                    return {
                        aggregation.column: AggregationResult(
                            AggregationResult.Kind.ERROR, str(exc)
                        )
                    }
            results[aggregation.column] = result
        return dict(sorted(results.items()))