"""Tests for A1 notation parsing and range arithmetic."""

import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from range_operations import (
    MAX_CELLS,
    MAX_COLUMNS,
    MAX_ROWS,
    RangeReference,
    build_values_batch_update_request,
    calculate_range_dimensions,
    calculate_total_cells,
    column_index_to_string,
    column_string_to_index,
    detect_range_conflicts,
    expand_range,
    get_range_intersection,
    is_valid_a1_notation,
    parse_a1_notation,
    parse_cell_reference,
    quote_sheet_name,
    range_reference_to_grid_range,
    range_to_a1_notation,
    ranges_overlap,
    split_range_into_chunks,
    split_sheet_prefix,
    validate_a1_notation,
    validate_batch_ranges,
)


class TestA1Validation:
    """Validation of the four accepted A1 shapes."""

    @pytest.mark.parametrize("notation", [
        "A1",
        "A1:B2",
        "A:B",
        "1:2",
        "ZZZ10000000",
        "B2:A1",
        "AA100:AB200",
    ])
    def test_valid_notation(self, notation):
        assert is_valid_a1_notation(notation)

    @pytest.mark.parametrize("notation", [
        "",
        "A",
        "1",
        "a1",
        "A0",
        "AAAA1",
        "A10000001",
        "A1:",
        ":B2",
        "A1:B",
        "A1\n",
        "Sheet1!A1",
        "A1:B2:C3",
        "0A",
    ])
    def test_invalid_notation(self, notation):
        assert not is_valid_a1_notation(notation)

    def test_non_string_is_invalid(self):
        assert not is_valid_a1_notation(None)
        assert not is_valid_a1_notation(42)

    def test_validate_raises_with_formats(self):
        with pytest.raises(ValueError) as exc_info:
            validate_a1_notation("A0")
        assert str(exc_info.value) == 'Invalid A1 notation: "A0". Valid formats: A1, A1:B2, A:B, 1:2'

    def test_validate_accepts_valid(self):
        validate_a1_notation("C3:D4")


class TestColumnConversion:
    @pytest.mark.parametrize("column,index", [
        ("A", 1),
        ("Z", 26),
        ("AA", 27),
        ("AZ", 52),
        ("BA", 53),
        ("ZZ", 702),
        ("AAA", 703),
        ("ZZZ", MAX_COLUMNS),
    ])
    def test_both_directions(self, column, index):
        assert column_string_to_index(column) == index
        assert column_index_to_string(index) == column

    def test_round_trip_across_boundaries(self):
        for index in [1, 25, 26, 27, 675, 676, 677, 701, 702, 703, 18277, 18278]:
            assert column_string_to_index(column_index_to_string(index)) == index


class TestParsing:
    def test_parse_cell_reference(self):
        cell = parse_cell_reference("AB12")
        assert cell.column == "AB"
        assert cell.column_index == 28
        assert cell.row == 12

    def test_parse_cell_reference_invalid(self):
        with pytest.raises(ValueError, match="Invalid cell reference: 12A"):
            parse_cell_reference("12A")

    def test_parse_single_cell(self):
        range_ref = parse_a1_notation("C7")
        assert range_ref.type == "cell"
        assert range_ref.start_cell == range_ref.end_cell
        assert range_ref.start_cell.column_index == 3
        assert range_ref.start_cell.row == 7

    def test_parse_cell_range(self):
        range_ref = parse_a1_notation("B3:D10")
        assert range_ref.type == "range"
        assert range_ref.start_cell.column_index == 2
        assert range_ref.start_cell.row == 3
        assert range_ref.end_cell.column == "D"
        assert range_ref.end_cell.row == 10

    def test_parse_column_range(self):
        range_ref = parse_a1_notation("C:E")
        assert range_ref.type == "column"
        assert range_ref.start_column == "C"
        assert range_ref.end_column == "E"
        assert range_ref.start_column_index == 3
        assert range_ref.end_column_index == 5

    def test_parse_row_range(self):
        range_ref = parse_a1_notation("2:4")
        assert range_ref.type == "row"
        assert range_ref.start_row == 2
        assert range_ref.end_row == 4

    def test_reversed_range_is_not_normalized(self):
        range_ref = parse_a1_notation("B2:A1")
        assert range_ref.start_cell.column == "B"
        assert range_ref.end_cell.column == "A"

    def test_parse_invalid(self):
        with pytest.raises(ValueError, match="Invalid A1 notation"):
            parse_a1_notation("A1:B")


class TestRangeToA1:
    @pytest.mark.parametrize("notation", ["A1", "A1:C10", "A:C", "1:5", "ZZZ10000000"])
    def test_round_trip(self, notation):
        assert range_to_a1_notation(parse_a1_notation(notation)) == notation

    def test_single_column_collapses(self):
        range_ref = RangeReference(type="column", start_column="B", end_column="B")
        assert range_to_a1_notation(range_ref) == "B"

    def test_single_row_collapses(self):
        range_ref = RangeReference(type="row", start_row=4, end_row=4)
        assert range_to_a1_notation(range_ref) == "4"

    @pytest.mark.parametrize("range_ref,message", [
        (RangeReference(type="cell"), "Invalid cell range: missing start cell"),
        (RangeReference(type="range"), "Invalid range: missing start or end cell"),
        (RangeReference(type="column", start_column="A"), "Invalid column range: missing start or end column"),
        (RangeReference(type="row", end_row=3), "Invalid row range: missing start or end row"),
    ])
    def test_missing_fields(self, range_ref, message):
        with pytest.raises(ValueError, match=message):
            range_to_a1_notation(range_ref)

    def test_unknown_type(self):
        range_ref = RangeReference.model_construct(type="sheet")
        with pytest.raises(ValueError, match="Unknown range type: sheet"):
            range_to_a1_notation(range_ref)


class TestSheetPrefix:
    def test_plain_prefix(self):
        assert split_sheet_prefix("Sheet1!A1:B2") == ("Sheet1", "A1:B2")

    def test_quoted_prefix(self):
        assert split_sheet_prefix("'My Sheet'!A1") == ("My Sheet", "A1")

    def test_escaped_quote(self):
        assert split_sheet_prefix("'Bob''s'!C3") == ("Bob's", "C3")

    def test_no_prefix(self):
        assert split_sheet_prefix("A1:B2") == (None, "A1:B2")

    def test_quote_sheet_name(self):
        assert quote_sheet_name("Bob's") == "'Bob''s'"
        assert quote_sheet_name("Sheet1") == "'Sheet1'"


class TestDimensions:
    def test_cell(self):
        dimensions = calculate_range_dimensions("B5")
        assert (dimensions.rows, dimensions.columns, dimensions.cells) == (1, 1, 1)

    def test_range(self):
        dimensions = calculate_range_dimensions("A1:C10")
        assert (dimensions.rows, dimensions.columns, dimensions.cells) == (10, 3, 30)

    def test_column_range_spans_all_rows(self):
        dimensions = calculate_range_dimensions("A:B")
        assert dimensions.rows == MAX_ROWS
        assert dimensions.columns == 2
        assert dimensions.cells == 2 * MAX_ROWS

    def test_row_range_spans_all_columns(self):
        dimensions = calculate_range_dimensions("1:2")
        assert dimensions.rows == 2
        assert dimensions.columns == MAX_COLUMNS

    def test_five_columns_by_ten_rows(self):
        dimensions = calculate_range_dimensions("A1:E10")
        assert dimensions.model_dump() == {"rows": 10, "columns": 5, "cells": 50}

    def test_total_cells_counts_overlap_twice(self):
        assert calculate_total_cells(["A1:B2", "B2:C3"]) == 8


class TestOverlap:
    @pytest.mark.parametrize("range1,range2,expected", [
        ("A1:B2", "B2:C3", True),
        ("A1:B2", "C3:D4", False),
        ("A:A", "B1", False),
        ("A:B", "B5", True),
        ("1:2", "3:3", False),
        ("1:3", "A2", True),
        ("A1:C3", "B2", True),
    ])
    def test_ranges_overlap(self, range1, range2, expected):
        assert ranges_overlap(range1, range2) is expected
        assert ranges_overlap(range2, range1) is expected

    def test_unparsable_never_overlaps(self):
        assert ranges_overlap("invalid", "A1") is False

    def test_detect_conflicts(self):
        conflicts = detect_range_conflicts(["A1:B2", "B2:C3", "E5"])
        assert len(conflicts) == 1
        assert conflicts[0].range1 == "A1:B2"
        assert conflicts[0].range2 == "B2:C3"
        assert conflicts[0].conflict_type == "overlap"
        assert conflicts[0].description == "Ranges A1:B2 and B2:C3 overlap"

    def test_detect_conflicts_skips_invalid(self):
        assert len(detect_range_conflicts(["A1:B2", "", "nope", "A1"])) == 1

    def test_detect_conflicts_needs_two_ranges(self):
        assert detect_range_conflicts([]) == []
        assert detect_range_conflicts(["A1:B2"]) == []


class TestIntersection:
    @pytest.mark.parametrize("range1,range2,expected", [
        ("A1:C3", "B2:D4", "B2:C3"),
        ("A1:B2", "B2:C3", "B2"),
        ("A:C", "B:D", "B1:C10000000"),
        ("1:3", "2:4", "A2:ZZZ3"),
        ("A1:B2", "C3:D4", None),
        ("bad", "A1", None),
    ])
    def test_intersection(self, range1, range2, expected):
        assert get_range_intersection(range1, range2) == expected


class TestBatchValidation:
    def test_valid_batch(self):
        result = validate_batch_ranges(["A1:B2", "C1:D2"])
        assert result.valid
        assert result.errors == []
        assert result.warnings == []
        assert result.total_cells == 8

    def test_invalid_range_is_reported_with_position(self):
        result = validate_batch_ranges(["A1:B2", "XYZ"])
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].startswith('Range 2 (XYZ): Invalid A1 notation: "XYZ"')
        assert result.total_cells == 4

    def test_large_range_warning(self):
        result = validate_batch_ranges(["A1:A2000000"])
        assert result.valid
        assert result.warnings == [
            "Range 1 (A1:A2000000) affects 2,000,000 cells, which may impact performance"
        ]

    def test_total_cells_limit(self):
        result = validate_batch_ranges(["A:B"])
        assert not result.valid
        assert result.errors == ["Total cells exceed limit: 20,000,000 > 10,000,000"]

    def test_too_many_ranges(self):
        ranges = [f"A{row}" for row in range(1, 1002)]
        result = validate_batch_ranges(ranges)
        assert not result.valid
        assert "Too many ranges: 1001 > 1000" in result.errors

    def test_overlap_is_warning_only(self):
        result = validate_batch_ranges(["A1:B2", "B2:C3"])
        assert result.valid
        assert result.warnings == ["Ranges A1:B2 and B2:C3 overlap"]


class TestExpandRange:
    def test_expand_range_end(self):
        assert expand_range("A1:B2", 2, 1) == "A1:C4"

    def test_expand_cell(self):
        assert expand_range("B3", 1, 1) == "B3:C4"

    def test_zero_expansion_of_cell_is_unchanged(self):
        assert expand_range("B3", 0, 0) == "B3"

    def test_full_ranges_unchanged(self):
        assert expand_range("A:B", 5, 5) == "A:B"
        assert expand_range("2:3", 5, 5) == "2:3"

    def test_clamped_to_limits(self):
        assert expand_range("A1:ZZY9999999", 5, 5) == "A1:ZZZ10000000"


class TestChunking:
    def test_small_range_unchanged(self):
        assert split_range_into_chunks("A1:J100") == ["A1:J100"]

    def test_split_by_rows(self):
        assert split_range_into_chunks("A1:J20000", 100_000) == ["A1:J10000", "A10001:J20000"]

    def test_uneven_last_chunk(self):
        assert split_range_into_chunks("B2:C11", 6) == ["B2:C4", "B5:C7", "B8:C10", "B11:C11"]

    def test_split_by_columns_when_row_too_wide(self):
        chunks = split_range_into_chunks("A1:ZZZ10", 1000)
        assert chunks[0] == "A1:CV10"
        assert chunks[-1].endswith("ZZZ10")
        assert len(chunks) == 183

    def test_full_column_range_unchanged(self):
        assert split_range_into_chunks("A:B", 10) == ["A:B"]

    def test_reversed_range_over_budget_is_kept_whole(self):
        assert split_range_into_chunks("ZZ10000:A1", 10) == ["ZZ10000:A1"]


class TestGridRange:
    def test_cell_range(self):
        grid = range_reference_to_grid_range(parse_a1_notation("B3:D10"), 7)
        assert grid == {
            "sheetId": 7,
            "startRowIndex": 2,
            "endRowIndex": 10,
            "startColumnIndex": 1,
            "endColumnIndex": 4,
        }

    def test_single_cell(self):
        grid = range_reference_to_grid_range(parse_a1_notation("A1"), 0)
        assert grid == {
            "sheetId": 0,
            "startRowIndex": 0,
            "endRowIndex": 1,
            "startColumnIndex": 0,
            "endColumnIndex": 1,
        }

    def test_row_range_has_no_column_bounds(self):
        grid = range_reference_to_grid_range(parse_a1_notation("2:4"), 0)
        assert grid == {"sheetId": 0, "startRowIndex": 1, "endRowIndex": 4}

    def test_column_range_has_no_row_bounds(self):
        grid = range_reference_to_grid_range(parse_a1_notation("C:E"), 0)
        assert grid == {"sheetId": 0, "startColumnIndex": 2, "endColumnIndex": 5}

    def test_missing_bounds(self):
        with pytest.raises(ValueError):
            range_reference_to_grid_range(RangeReference(type="row", start_row=1), 0)


class TestValuesBatchUpdateRequest:
    def test_build_request(self):
        body = build_values_batch_update_request(
            [
                {"range": "A1:B2", "values": [[1, 2], [3, 4]]},
                {"range": "D1:D2", "values": [[5, 6]], "majorDimension": "COLUMNS"},
            ],
            "Sheet 1",
        )
        assert body["valueInputOption"] == "USER_ENTERED"
        assert body["includeValuesInResponse"] is False
        assert body["responseDateTimeRenderOption"] == "FORMATTED_STRING"
        assert body["responseValueRenderOption"] == "FORMATTED_VALUE"
        assert body["data"][0] == {
            "range": "'Sheet 1'!A1:B2",
            "values": [[1, 2], [3, 4]],
            "majorDimension": "ROWS",
        }
        assert body["data"][1]["majorDimension"] == "COLUMNS"

    def test_invalid_range_index(self):
        with pytest.raises(ValueError, match="Invalid range in request 1"):
            build_values_batch_update_request(
                [{"range": "A1", "values": [[1]]}, {"range": "A0", "values": [[1]]}],
                "Sheet1",
            )

    def test_cell_limit(self):
        with pytest.raises(ValueError, match=f"Batch update exceeds maximum cells limit: 20000000 > {MAX_CELLS}"):
            build_values_batch_update_request([{"range": "A:B", "values": []}], "Sheet1")
