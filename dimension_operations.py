"""
Dimension Operations

Ordering and request building for batches of row/column insert, delete and
append operations against a single sheet.

Deletes run first, from the highest index down, so that earlier deletes do
not shift the rows or columns later deletes refer to. Inserts and appends
follow from the lowest index up.
"""
import logging
from typing import Dict, List, Optional, Any, Literal, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_APPEND_COUNT = 1
DEFAULT_ROW_COUNT = 1000  # new sheet default
DEFAULT_COLUMN_COUNT = 26  # new sheet default (A-Z)
MAX_ROW_COUNT = 10_000_000
MAX_COLUMN_COUNT = 18_278  # ZZZ

OPERATION_PRIORITY = {
    "deleteDimension": 0,
    "insertDimension": 1,
    "appendDimension": 2,
}


class DimensionRequest(BaseModel):
    """A single row/column operation (0-based, end_index exclusive)"""
    operation: Literal['insertDimension', 'deleteDimension', 'appendDimension'] = Field(
        description="Type of dimension operation to perform"
    )
    dimension: Literal['ROWS', 'COLUMNS'] = Field(
        description="Whether to operate on rows or columns"
    )
    start_index: int = Field(ge=0, description="Starting index for the operation (0-based)")
    end_index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Ending index (0-based, exclusive). If omitted the range extends to the end of the sheet",
    )
    inherit_from_before: Optional[bool] = Field(
        default=None,
        description="For insertDimension: inherit properties from the row/column before the insertion point",
    )


def _sort_key(request: DimensionRequest) -> Tuple[int, ...]:
    priority = OPERATION_PRIORITY[request.operation]
    if request.operation == "deleteDimension":
        end_index = request.end_index if request.end_index is not None else request.start_index + 1
        return priority, -request.start_index, -end_index
    return priority, request.start_index


def sort_operations(requests: List[DimensionRequest]) -> List[DimensionRequest]:
    """
    Order dimension operations so that index shifts cannot corrupt them

    Returns a new list; the input list is left untouched.
    """
    return sorted(requests, key=_sort_key)


def build_dimension_request(operation: DimensionRequest, sheet_id: int) -> Dict[str, Any]:
    """
    Build the Sheets batchUpdate request for one dimension operation

    Args:
        operation: The dimension operation
        sheet_id: Numeric ID of the target sheet

    Returns:
        insertDimension, deleteDimension or appendDimension request

    Raises:
        ValueError: If the operation type is not supported
    """
    dimension_range = {
        "sheetId": sheet_id,
        "dimension": operation.dimension,
        "startIndex": operation.start_index,
    }
    if operation.end_index is not None:
        dimension_range["endIndex"] = operation.end_index

    if operation.operation == "insertDimension":
        return {
            "insertDimension": {
                "range": dimension_range,
                "inheritFromBefore": bool(operation.inherit_from_before),
            }
        }
    if operation.operation == "deleteDimension":
        return {
            "deleteDimension": {
                "range": dimension_range,
            }
        }
    if operation.operation == "appendDimension":
        # Append always adds a single unit at the end of the sheet
        return {
            "appendDimension": {
                "sheetId": sheet_id,
                "dimension": operation.dimension,
                "length": DEFAULT_APPEND_COUNT,
            }
        }

    raise ValueError(f"Unsupported operation type: {operation.operation}")


def calculate_affected_count(operation: DimensionRequest) -> int:
    if operation.operation in ("insertDimension", "deleteDimension"):
        if operation.end_index is not None:
            return operation.end_index - operation.start_index
        return 1
    if operation.operation == "appendDimension":
        return DEFAULT_APPEND_COUNT
    return 0


def project_dimensions(
    sorted_requests: List[DimensionRequest],
    row_count: int,
    column_count: int
) -> Tuple[int, int]:
    """
    Grid size after applying already-sorted operations in order

    A sheet always keeps at least one row and one column.
    """
    rows, columns = row_count, column_count

    for operation in sorted_requests:
        affected = calculate_affected_count(operation)
        delta = -affected if operation.operation == "deleteDimension" else affected

        if operation.dimension == "ROWS":
            rows = max(1, rows + delta)
        else:
            columns = max(1, columns + delta)

    if rows > MAX_ROW_COUNT or columns > MAX_COLUMN_COUNT:
        logger.debug(f"Projected size {rows}x{columns} exceeds sheet maximum")

    return rows, columns
