"""
Range Operations

A1 notation parsing, validation and range arithmetic for Google Sheets.
Converts between A1 strings, structured range references and the 0-based,
end-exclusive GridRange objects used by the Sheets batchUpdate API.
"""
import re
import logging
from typing import Dict, List, Optional, Any, Literal, Tuple

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Google Sheets limits
MAX_ROWS = 10_000_000
MAX_COLUMNS = 18_278  # ZZZ
MAX_CELLS = 10_000_000
MAX_BATCH_REQUESTS = 1000
MAX_DIMENSION_BATCH_REQUESTS = 100

LARGE_RANGE_WARNING_CELLS = 1_000_000
DEFAULT_CHUNK_CELLS = 100_000

_ROW = r"(?:[1-9][0-9]{0,6}|10000000)"
_COLUMN = r"[A-Z]{1,3}"

A1_PATTERN = re.compile(
    rf"^(?:{_COLUMN}{_ROW}(?::{_COLUMN}{_ROW})?|{_COLUMN}:{_COLUMN}|{_ROW}:{_ROW})$"
)
CELL_PATTERN = re.compile(rf"^({_COLUMN})({_ROW})$")
COLUMN_PATTERN = re.compile(rf"^({_COLUMN})$")
ROW_PATTERN = re.compile(rf"^({_ROW})$")


class CellReference(BaseModel):
    """A single cell such as B5 (1-based)"""
    column: str
    column_index: int
    row: int


class RangeReference(BaseModel):
    """
    Parsed A1 range.

    ``type`` selects which fields are populated:
    cell/range use start_cell and end_cell, row uses start_row and end_row,
    column uses start_column/end_column and their indices.
    """
    type: Literal['cell', 'range', 'row', 'column']
    start_cell: Optional[CellReference] = None
    end_cell: Optional[CellReference] = None
    start_row: Optional[int] = None
    end_row: Optional[int] = None
    start_column: Optional[str] = None
    end_column: Optional[str] = None
    start_column_index: Optional[int] = None
    end_column_index: Optional[int] = None


class RangeDimensions(BaseModel):
    rows: int
    columns: int
    cells: int


class RangeConflict(BaseModel):
    range1: str
    range2: str
    conflict_type: Literal['overlap', 'contains', 'contained', 'adjacent']
    description: str


class BatchValidationResult(BaseModel):
    valid: bool
    errors: List[str]
    warnings: List[str]
    total_cells: int


# A1 notation validation

def is_valid_a1_notation(notation: Any) -> bool:
    """Check whether notation is one of A1, A1:B2, A:B or 1:2 within sheet limits"""
    if not notation or not isinstance(notation, str):
        return False

    if not A1_PATTERN.fullmatch(notation):
        return False

    for part in notation.split(':'):
        cell_match = CELL_PATTERN.fullmatch(part)
        if cell_match:
            column, row = cell_match.groups()
            if column_string_to_index(column) > MAX_COLUMNS or int(row) > MAX_ROWS:
                return False
            continue

        column_match = COLUMN_PATTERN.fullmatch(part)
        if column_match and column_string_to_index(column_match.group(1)) > MAX_COLUMNS:
            return False

        row_match = ROW_PATTERN.fullmatch(part)
        if row_match and int(row_match.group(1)) > MAX_ROWS:
            return False

    return True


def validate_a1_notation(notation: Any) -> None:
    if not is_valid_a1_notation(notation):
        raise ValueError(f'Invalid A1 notation: "{notation}". Valid formats: A1, A1:B2, A:B, 1:2')


# Column conversion

def column_string_to_index(column: str) -> int:
    """Convert a column string (A, Z, AA, ...) to its 1-based index"""
    index = 0
    for char in column:
        index = index * 26 + (ord(char) - ord('A') + 1)
    return index


def column_index_to_string(index: int) -> str:
    """Convert a 1-based column index to its column string (1 -> A, 27 -> AA)"""
    column = ""
    while index > 0:
        remainder = (index - 1) % 26
        column = chr(ord('A') + remainder) + column
        index = (index - 1) // 26
    return column


# Parsing

def parse_cell_reference(cell_ref: str) -> CellReference:
    match = CELL_PATTERN.fullmatch(cell_ref) if isinstance(cell_ref, str) else None
    if not match:
        raise ValueError(f"Invalid cell reference: {cell_ref}")

    column, row = match.groups()
    return CellReference(column=column, column_index=column_string_to_index(column), row=int(row))


def _column_range(start: str, end: str) -> RangeReference:
    return RangeReference(
        type='column',
        start_column=start,
        end_column=end,
        start_column_index=column_string_to_index(start),
        end_column_index=column_string_to_index(end),
    )


def parse_a1_notation(notation: str) -> RangeReference:
    """
    Parse A1 notation into a RangeReference

    Args:
        notation: A1 string without a sheet prefix (e.g. "A1", "A1:C10", "B:D", "3:7")

    Returns:
        RangeReference of type cell, range, column or row

    Raises:
        ValueError: If the notation is invalid
    """
    validate_a1_notation(notation)

    parts = notation.split(':')

    if len(parts) == 1:
        part = parts[0]
        if CELL_PATTERN.fullmatch(part):
            cell = parse_cell_reference(part)
            return RangeReference(type='cell', start_cell=cell, end_cell=cell)

        column_match = COLUMN_PATTERN.fullmatch(part)
        if column_match:
            column = column_match.group(1)
            return _column_range(column, column)

        row_match = ROW_PATTERN.fullmatch(part)
        if row_match:
            row = int(row_match.group(1))
            return RangeReference(type='row', start_row=row, end_row=row)

    if len(parts) == 2 and parts[0] and parts[1]:
        start, end = parts

        if CELL_PATTERN.fullmatch(start) and CELL_PATTERN.fullmatch(end):
            return RangeReference(
                type='range',
                start_cell=parse_cell_reference(start),
                end_cell=parse_cell_reference(end),
            )

        if COLUMN_PATTERN.fullmatch(start) and COLUMN_PATTERN.fullmatch(end):
            return _column_range(start, end)

        if ROW_PATTERN.fullmatch(start) and ROW_PATTERN.fullmatch(end):
            return RangeReference(type='row', start_row=int(start), end_row=int(end))

    raise ValueError(f"Unable to parse A1 notation: {notation}")


def range_to_a1_notation(range_ref: RangeReference) -> str:
    """Render a RangeReference back to A1 notation"""
    if range_ref.type == 'cell':
        if range_ref.start_cell is None:
            raise ValueError("Invalid cell range: missing start cell")
        return f"{range_ref.start_cell.column}{range_ref.start_cell.row}"

    if range_ref.type == 'range':
        if range_ref.start_cell is None or range_ref.end_cell is None:
            raise ValueError("Invalid range: missing start or end cell")
        start, end = range_ref.start_cell, range_ref.end_cell
        return f"{start.column}{start.row}:{end.column}{end.row}"

    if range_ref.type == 'column':
        if not range_ref.start_column or not range_ref.end_column:
            raise ValueError("Invalid column range: missing start or end column")
        if range_ref.start_column == range_ref.end_column:
            return range_ref.start_column
        return f"{range_ref.start_column}:{range_ref.end_column}"

    if range_ref.type == 'row':
        if range_ref.start_row is None or range_ref.end_row is None:
            raise ValueError("Invalid row range: missing start or end row")
        if range_ref.start_row == range_ref.end_row:
            return str(range_ref.start_row)
        return f"{range_ref.start_row}:{range_ref.end_row}"

    raise ValueError(f"Unknown range type: {range_ref.type}")


def quote_sheet_name(sheet_name: str) -> str:
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'"


def split_sheet_prefix(notation: str) -> Tuple[Optional[str], str]:
    """
    Split "Sheet1!A1:B2" or "'My Sheet'!A1" into (sheet name, A1 part).

    Returns (None, notation) when there is no sheet prefix.
    """
    if '!' not in notation:
        return None, notation

    sheet, _, a1 = notation.rpartition('!')
    if len(sheet) >= 2 and sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    return sheet, a1


# Dimensions and cell counts

def calculate_range_dimensions(notation: str) -> RangeDimensions:
    """
    Rows, columns and cells covered by a range.

    Full-column ranges count MAX_ROWS rows and full-row ranges count
    MAX_COLUMNS columns.
    """
    range_ref = parse_a1_notation(notation)

    if range_ref.type == 'cell':
        return RangeDimensions(rows=1, columns=1, cells=1)

    if range_ref.type == 'range':
        rows = range_ref.end_cell.row - range_ref.start_cell.row + 1
        columns = range_ref.end_cell.column_index - range_ref.start_cell.column_index + 1
        return RangeDimensions(rows=rows, columns=columns, cells=rows * columns)

    if range_ref.type == 'column':
        columns = range_ref.end_column_index - range_ref.start_column_index + 1
        return RangeDimensions(rows=MAX_ROWS, columns=columns, cells=MAX_ROWS * columns)

    rows = range_ref.end_row - range_ref.start_row + 1
    return RangeDimensions(rows=rows, columns=MAX_COLUMNS, cells=rows * MAX_COLUMNS)


def calculate_total_cells(ranges: List[str]) -> int:
    """Sum of cells over all ranges; overlapping cells are counted twice"""
    return sum(calculate_range_dimensions(notation).cells for notation in ranges)


# Batch builders

def build_values_batch_update_request(
    requests: List[Dict[str, Any]],
    sheet_title: str,
    value_input_option: str = "USER_ENTERED",
    include_values_in_response: bool = False,
    response_date_time_render_option: str = "FORMATTED_STRING",
    response_value_render_option: str = "FORMATTED_VALUE"
) -> Dict[str, Any]:
    """
    Build the body of a spreadsheets.values.batchUpdate call

    Args:
        requests: Dicts with "range" (A1 without sheet prefix), "values" and
                  an optional "majorDimension"
        sheet_title: Title of the sheet every range belongs to
        value_input_option: RAW or USER_ENTERED
        include_values_in_response: Whether the API echoes updated values
        response_date_time_render_option: SERIAL_NUMBER or FORMATTED_STRING
        response_value_render_option: FORMATTED_VALUE, UNFORMATTED_VALUE or FORMULA

    Returns:
        Request body dictionary

    Raises:
        ValueError: If a range is invalid or the batch exceeds MAX_CELLS
    """
    for index, request in enumerate(requests):
        try:
            validate_a1_notation(request["range"])
        except ValueError as e:
            raise ValueError(f"Invalid range in request {index}: {e}") from e

    total_cells = calculate_total_cells([request["range"] for request in requests])
    if total_cells > MAX_CELLS:
        raise ValueError(f"Batch update exceeds maximum cells limit: {total_cells} > {MAX_CELLS}")

    prefix = quote_sheet_name(sheet_title)
    data = [
        {
            "range": f"{prefix}!{request['range']}",
            "values": request["values"],
            "majorDimension": request.get("majorDimension") or "ROWS",
        }
        for request in requests
    ]

    return {
        "valueInputOption": value_input_option,
        "data": data,
        "includeValuesInResponse": include_values_in_response,
        "responseDateTimeRenderOption": response_date_time_render_option,
        "responseValueRenderOption": response_value_render_option,
    }


# Conflict detection

def _range_bounds(range_ref: RangeReference) -> Tuple[int, int, int, int]:
    """(start_row, end_row, start_col, end_col), 1-based inclusive"""
    if range_ref.type in ('cell', 'range'):
        if range_ref.start_cell is None or range_ref.end_cell is None:
            raise ValueError(f"Invalid {range_ref.type} range")
        return (
            range_ref.start_cell.row,
            range_ref.end_cell.row,
            range_ref.start_cell.column_index,
            range_ref.end_cell.column_index,
        )

    if range_ref.type == 'column':
        if range_ref.start_column_index is None or range_ref.end_column_index is None:
            raise ValueError("Invalid column range")
        return 1, MAX_ROWS, range_ref.start_column_index, range_ref.end_column_index

    if range_ref.type == 'row':
        if range_ref.start_row is None or range_ref.end_row is None:
            raise ValueError("Invalid row range")
        return range_ref.start_row, range_ref.end_row, 1, MAX_COLUMNS

    raise ValueError(f"Unknown range type: {range_ref.type}")


def _boxes_overlap(first: Tuple[int, int, int, int], second: Tuple[int, int, int, int]) -> bool:
    start_row1, end_row1, start_col1, end_col1 = first
    start_row2, end_row2, start_col2, end_col2 = second
    return not (
        end_row1 < start_row2
        or end_row2 < start_row1
        or end_col1 < start_col2
        or end_col2 < start_col1
    )


def ranges_overlap(range1: str, range2: str) -> bool:
    """True if the two ranges share at least one cell. Unparsable ranges never overlap."""
    try:
        first = _range_bounds(parse_a1_notation(range1))
        second = _range_bounds(parse_a1_notation(range2))
    except ValueError as e:
        logger.debug(f"Skipping overlap check for {range1!r} and {range2!r}: {e}")
        return False

    return _boxes_overlap(first, second)


def detect_range_conflicts(ranges: List[str]) -> List[RangeConflict]:
    """Every pair of ranges sharing at least one cell, in input order"""
    bounds = []
    for notation in ranges:
        try:
            bounds.append(_range_bounds(parse_a1_notation(notation)))
        except ValueError:
            bounds.append(None)

    conflicts = []
    for i in range(len(ranges)):
        if bounds[i] is None:
            continue
        for j in range(i + 1, len(ranges)):
            if bounds[j] is None or not _boxes_overlap(bounds[i], bounds[j]):
                continue

            conflicts.append(RangeConflict(
                range1=ranges[i],
                range2=ranges[j],
                conflict_type='overlap',
                description=f"Ranges {ranges[i]} and {ranges[j]} overlap",
            ))

    return conflicts


def validate_batch_ranges(ranges: List[str]) -> BatchValidationResult:
    """
    Check a batch of ranges against Google Sheets limits

    Collects every problem instead of failing on the first one. Overlapping
    ranges are reported as warnings only.
    """
    errors = []
    warnings = []
    total_cells = 0

    for position, notation in enumerate(ranges, start=1):
        try:
            dimensions = calculate_range_dimensions(notation)
        except ValueError as e:
            errors.append(f"Range {position} ({notation}): {e}")
            continue

        total_cells += dimensions.cells
        if dimensions.cells > LARGE_RANGE_WARNING_CELLS:
            warnings.append(
                f"Range {position} ({notation}) affects {dimensions.cells:,} cells, "
                f"which may impact performance"
            )

    if len(ranges) > MAX_BATCH_REQUESTS:
        errors.append(f"Too many ranges: {len(ranges)} > {MAX_BATCH_REQUESTS}")

    if total_cells > MAX_CELLS:
        errors.append(f"Total cells exceed limit: {total_cells:,} > {MAX_CELLS:,}")

    warnings.extend(conflict.description for conflict in detect_range_conflicts(ranges))

    return BatchValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        total_cells=total_cells,
    )


# Range manipulation

def expand_range(notation: str, expand_rows: int, expand_cols: int) -> str:
    """Grow a cell or range by moving its end bound, clamped to sheet limits"""
    range_ref = parse_a1_notation(notation)

    if range_ref.type == 'cell':
        if expand_rows == 0 and expand_cols == 0:
            return notation
        anchor = range_ref.start_cell
    elif range_ref.type == 'range':
        anchor = range_ref.end_cell
    else:
        # Full rows and columns already span the sheet
        return notation

    start = range_ref.start_cell
    end_row = min(anchor.row + expand_rows, MAX_ROWS)
    end_column = column_index_to_string(min(anchor.column_index + expand_cols, MAX_COLUMNS))
    return f"{start.column}{start.row}:{end_column}{end_row}"


def get_range_intersection(range1: str, range2: str) -> Optional[str]:
    """A1 notation of the cells shared by both ranges, or None"""
    try:
        first = _range_bounds(parse_a1_notation(range1))
        second = _range_bounds(parse_a1_notation(range2))
    except ValueError as e:
        logger.debug(f"No intersection for {range1!r} and {range2!r}: {e}")
        return None

    if not _boxes_overlap(first, second):
        return None

    start_row = max(first[0], second[0])
    end_row = min(first[1], second[1])
    start_col = column_index_to_string(max(first[2], second[2]))
    end_col = column_index_to_string(min(first[3], second[3]))

    if start_row == end_row and start_col == end_col:
        return f"{start_col}{start_row}"
    return f"{start_col}{start_row}:{end_col}{end_row}"


def split_range_into_chunks(notation: str, max_cells_per_chunk: int = DEFAULT_CHUNK_CELLS) -> List[str]:
    """
    Split a cell range into pieces of at most max_cells_per_chunk cells.

    Splits by whole rows when at least one row fits in a chunk, otherwise by
    columns. Full-row and full-column ranges are returned unchanged.
    """
    range_ref = parse_a1_notation(notation)
    dimensions = calculate_range_dimensions(notation)

    if dimensions.cells <= max_cells_per_chunk or range_ref.type != 'range':
        return [notation]

    start, end = range_ref.start_cell, range_ref.end_cell
    chunks = []

    rows_per_chunk = max_cells_per_chunk // dimensions.columns
    if rows_per_chunk >= 1:
        for row in range(start.row, end.row + 1, rows_per_chunk):
            chunk_end_row = min(row + rows_per_chunk - 1, end.row)
            chunks.append(f"{start.column}{row}:{end.column}{chunk_end_row}")
    else:
        columns_per_chunk = max(max_cells_per_chunk // dimensions.rows, 1)
        for column in range(start.column_index, end.column_index + 1, columns_per_chunk):
            chunk_end_column = min(column + columns_per_chunk - 1, end.column_index)
            chunks.append(
                f"{column_index_to_string(column)}{start.row}:"
                f"{column_index_to_string(chunk_end_column)}{end.row}"
            )

    if not chunks:
        return [notation]

    logger.debug(f"Split {notation} ({dimensions.cells} cells) into {len(chunks)} chunks")
    return chunks


# GridRange conversion

def range_reference_to_grid_range(range_ref: RangeReference, sheet_id: int) -> Dict[str, int]:
    """
    Convert a RangeReference to a Sheets API GridRange

    A1 rows and columns are 1-based and inclusive; GridRange indices are
    0-based with exclusive ends. Row ranges omit column indices and column
    ranges omit row indices, which the API reads as unbounded.
    """
    if range_ref.type in ('cell', 'range'):
        if range_ref.start_cell is None or range_ref.end_cell is None:
            raise ValueError(f"Invalid {range_ref.type} range: missing start or end cell")
        return {
            "sheetId": sheet_id,
            "startRowIndex": range_ref.start_cell.row - 1,
            "endRowIndex": range_ref.end_cell.row,
            "startColumnIndex": range_ref.start_cell.column_index - 1,
            "endColumnIndex": range_ref.end_cell.column_index,
        }

    if range_ref.type == 'row':
        if range_ref.start_row is None or range_ref.end_row is None:
            raise ValueError("Invalid row range: missing start or end row")
        return {
            "sheetId": sheet_id,
            "startRowIndex": range_ref.start_row - 1,
            "endRowIndex": range_ref.end_row,
        }

    if range_ref.type == 'column':
        if range_ref.start_column_index is None or range_ref.end_column_index is None:
            raise ValueError("Invalid column range: missing start or end column index")
        return {
            "sheetId": sheet_id,
            "startColumnIndex": range_ref.start_column_index - 1,
            "endColumnIndex": range_ref.end_column_index,
        }

    raise ValueError(f"Unknown range type: {range_ref.type}")
