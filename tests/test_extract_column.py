import pytest

from colstats.csv_processor import EmptyResultError, tokenize
from colstats.main import (
    ExtractParams,
    ValidationMode,
    column_options,
    compute_stats,
    default_column_index,
    extract_column,
    get_default_params,
    require_points,
    resolve_column_name,
)


def _flex(column_index):
    return ExtractParams(mode=ValidationMode.FLEXIBLE, column_index=column_index)


def _fixed_line(value, count=24):
    fields = [str(i) for i in range(count)]
    if count > 11:
        fields[11] = value
    return ",".join(fields)


def test_flexible_column_zero_on_three_columns():
    table = tokenize("a,b,c\n1,10,100\n2,20,200\n3,30,300\n4,40,400\n")
    result = extract_column(table, _flex(0))
    assert [p.x for p in result.points] == [1, 2, 3, 4]
    assert [p.y for p in result.points] == [1.0, 2.0, 3.0, 4.0]
    assert result.values == [1.0, 2.0, 3.0, 4.0]
    assert result.column_label == "a"
    assert result.valid_count == 4
    assert result.invalid_count == 0


def test_skipped_rows_do_not_consume_x_slots():
    text = "h,v\n1,5\nx,bad\n2,6\n3\n4,7.5\n"
    result = extract_column(tokenize(text), _flex(1))
    assert [p.x for p in result.points] == [1, 2, 3]
    assert [p.y for p in result.points] == [5.0, 6.0, 7.5]
    assert result.invalid_count == 2
    assert result.valid_count + result.invalid_count == result.total_count == 5
    # Rejections carry 1-based source line numbers
    assert [ln for ln, _ in result.report.rejected] == [3, 5]


def test_blank_lines_are_excluded_from_all_counts():
    text = "h,v\n1,2\n\n   \n3,4\n"
    result = extract_column(tokenize(text), _flex(1))
    assert result.total_count == 2
    assert result.valid_count == 2
    assert result.invalid_count == 0
    assert result.report.blank_rows == 2
    assert [p.x for p in result.points] == [1, 2]


def test_fixed_schema_mixed_rows():
    lines = [
        _fixed_line("hdr"),
        _fixed_line("1.5"),
        _fixed_line("2.5", count=23),
        _fixed_line("3.5", count=25),
        _fixed_line(""),
        _fixed_line("4.5"),
    ]
    extract, _ = get_default_params(ValidationMode.FIXED_SCHEMA)
    result = extract_column(tokenize("\n".join(lines)), extract)
    assert [p.y for p in result.points] == [1.5, 4.5]
    assert [p.x for p in result.points] == [1, 2]
    assert result.invalid_count == 3
    assert result.column_index == 11


def test_column_out_of_range_and_unselected():
    table = tokenize("a,b\n1,2\n")
    with pytest.raises(ValueError) as excinfo:
        extract_column(table, _flex(2))
    assert "out of range" in str(excinfo.value)
    with pytest.raises(ValueError):
        extract_column(table, _flex(-1))
    with pytest.raises(ValueError):
        extract_column(table, _flex(None))


def test_require_points_raises_on_empty_result():
    result = extract_column(tokenize("a,b\nx,y\nz\n"), _flex(1))
    assert result.points == []
    with pytest.raises(EmptyResultError) as excinfo:
        require_points(result)
    assert excinfo.value.invalid_count == 2
    assert "2 invalid rows" in str(excinfo.value)


def test_reextracting_same_column_is_idempotent():
    table = tokenize("a,b,c\n1,9,3\n4,2,6\n7,5,x\n")
    first = extract_column(table, _flex(1))
    second = extract_column(table, _flex(1))
    assert first.points == second.points
    assert compute_stats(first.values) == compute_stats(second.values)


def test_to_frame():
    result = extract_column(tokenize("a\n3\n1\n"), _flex(0))
    df = result.to_frame()
    assert list(df.columns) == ["x", "y"]
    assert df["x"].tolist() == [1, 2]
    assert df["y"].tolist() == [3.0, 1.0]


def test_column_options_and_default_selection():
    table = tokenize(",".join(f"c{i}" for i in range(9)) + "\n" + ",".join("1" * 9))
    options = column_options(table)
    assert len(options) == 9
    assert options[0] == ("c0", 0)
    assert options[8] == ("c8", 8)
    assert default_column_index(9) == 7
    assert default_column_index(8) is None
    assert default_column_index(3) is None


def test_resolve_column_name_is_case_insensitive():
    table = tokenize("Time, Height ,Speed\n1,2,3\n")
    assert resolve_column_name(table, "height") == 1
    with pytest.raises(ValueError):
        resolve_column_name(table, "altitude")


def test_report_records_each_rejection(caplog):
    table = tokenize("a,b\n1,2\n3,oops\n\n5\n")
    with caplog.at_level("WARNING"):
        result = extract_column(table, _flex(1))
    report = result.report
    assert [line for line, _ in report.rejected] == [3, 5]
    assert report.invalid_rows == len(report.rejected) == 2
    assert "Skipped line 3" in caplog.text
    assert "valid=1" in report.summarize()
    assert "blank_skipped=1" in report.summarize()
