import pytest

from redtable.aggregation import (
    Aggregation,
    AggregationResult,
    AggregationSet,
    AggregationType,
)

Kind = AggregationResult.Kind


def versions(*values):
    return [(ts, value) for ts, value in enumerate(values, start=1)]


def run(kind, column_values, column=b"col"):
    aggs = AggregationSet().add_aggregation(column, kind)
    return aggs.apply({column: column_values})


def test_add_aggregation_chains_and_records():
    aggs = AggregationSet()
    returned = aggs.add_aggregation(b"a", AggregationType.COUNT).add_aggregation(
        b"b", AggregationType.MAX
    )
    assert returned is aggs
    assert aggs.aggregations == [
        Aggregation(b"a", AggregationType.COUNT),
        Aggregation(b"b", AggregationType.MAX),
    ]


def test_count_matches_number_of_versions():
    vals = versions(b"x", b"y", b"z")
    result = run(AggregationType.COUNT, vals)[b"col"]
    assert result.kind is Kind.COUNT
    assert result.value == len(vals)


def test_sum_of_integers_stays_integer():
    result = run(AggregationType.SUM, versions(b"1", b"2", b"3"))[b"col"]
    assert result.kind is Kind.SUM
    assert result.value == 6


def test_sum_with_float_reports_only_float_part():
    result = run(AggregationType.SUM, versions(b"1", b"2.5"))[b"col"]
    assert result.kind is Kind.SUM_FLOAT
    assert result.value == 2.5


def test_sum_of_no_values_is_zero_integer():
    result = run(AggregationType.SUM, [])[b"col"]
    assert result.kind is Kind.SUM
    assert result.value == 0


def test_sum_non_numeric_aborts_everything():
    aggs = (
        AggregationSet()
        .add_aggregation(b"a", AggregationType.COUNT)
        .add_aggregation(b"b", AggregationType.SUM)
        .add_aggregation(b"c", AggregationType.COUNT)
    )
    out = aggs.apply(
        {b"a": versions(b"1"), b"b": versions(b"1", b"abc"), b"c": versions(b"1")}
    )
    assert list(out) == [b"b"]
    assert out[b"b"] == AggregationResult(Kind.ERROR, "Non-numeric value found")


def test_sum_invalid_utf8_is_error():
    out = run(AggregationType.SUM, versions(b"\xff\xfe"))
    assert out[b"col"].value == "Invalid UTF-8 in value"
    assert out[b"col"].is_error


def test_sum_rejects_whitespace_and_underscores():
    assert run(AggregationType.SUM, versions(b" 1"))[b"col"].is_error
    assert run(AggregationType.SUM, versions(b"1_000"))[b"col"].is_error


def test_average_of_values():
    result = run(AggregationType.AVERAGE, versions(b"2", b"3"))[b"col"]
    assert result.kind is Kind.AVERAGE
    assert result.value == 2.5


def test_average_of_empty_is_error_without_abort():
    aggs = (
        AggregationSet()
        .add_aggregation(b"a", AggregationType.AVERAGE)
        .add_aggregation(b"b", AggregationType.COUNT)
    )
    out = aggs.apply({b"a": [], b"b": versions(b"v")})
    assert out[b"a"] == AggregationResult(Kind.ERROR, "No values to average")
    assert out[b"b"].value == 1


def test_average_non_numeric_aborts():
    out = run(AggregationType.AVERAGE, versions(b"1", b"nope"))
    assert out == {b"col": AggregationResult(Kind.ERROR, "Non-numeric value found")}


@pytest.mark.parametrize(
    "kind, message",
    [
        (AggregationType.MIN, "No values to find minimum"),
        (AggregationType.MAX, "No values to find maximum"),
    ],
)
def test_min_max_empty_errors(kind, message):
    assert run(kind, [])[b"col"] == AggregationResult(Kind.ERROR, message)


def test_min_and_max_compare_bytes_lexicographically():
    vals = versions(b"b", b"abc", b"ba", b"c")
    aggs = (
        AggregationSet()
        .add_aggregation(b"x", AggregationType.MIN)
        .add_aggregation(b"y", AggregationType.MAX)
    )
    out = aggs.apply({b"x": vals, b"y": vals})
    assert out[b"x"] == AggregationResult(Kind.MIN, b"abc")
    assert out[b"y"] == AggregationResult(Kind.MAX, b"c")


def test_missing_column_reports_bytes_list():
    out = AggregationSet().add_aggregation(b"ab", AggregationType.COUNT).apply({})
    assert out[b"ab"].value == "Column not found: [97, 98]"


def test_results_sorted_by_column():
    aggs = (
        AggregationSet()
        .add_aggregation(b"zz", AggregationType.COUNT)
        .add_aggregation(b"aa", AggregationType.COUNT)
        .add_aggregation(b"mm", AggregationType.COUNT)
    )
    data = {c: versions(b"1") for c in (b"zz", b"aa", b"mm")}
    out = aggs.apply(data)
    assert list(out) == sorted(data)


def test_str_renderings():
    assert str(AggregationResult(Kind.COUNT, 7)) == "7"
    assert str(AggregationResult(Kind.SUM, -4)) == "-4"
    assert str(AggregationResult(Kind.AVERAGE, 2.5)) == "2.5"
    assert str(AggregationResult(Kind.SUM_FLOAT, 10.0)) == "10"
    assert str(AggregationResult(Kind.MIN, bytes([1, 2, 3]))) == "[1, 2, 3]"
    assert str(AggregationResult(Kind.ERROR, "boom")) == "Error: boom"