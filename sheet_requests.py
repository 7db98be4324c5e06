"""
Builders for formatting, data validation and chart batchUpdate requests
"""
from typing import Dict, List, Optional, Any

from range_operations import CellReference
from schemas import ChartPosition, FormatRequest, ValidationRequest, ValidationRule

DROPDOWN_CONDITIONS = ('ONE_OF_LIST', 'ONE_OF_RANGE')
LEGEND_POSITIONS = {
    'BOTTOM': 'BOTTOM_LEGEND',
    'RIGHT': 'RIGHT_LEGEND',
    'TOP': 'TOP_LEGEND',
    'LEFT': 'LEFT_LEGEND',
    'NONE': 'NO_LEGEND',
}
GRID_BOUNDS = ("startRowIndex", "endRowIndex", "startColumnIndex", "endColumnIndex")


def build_format_requests(grid_range: Dict[str, int], fmt: FormatRequest) -> List[Dict[str, Any]]:
    """
    Build repeatCell/updateBorders requests for one FormatRequest

    Args:
        grid_range: Target GridRange
        fmt: Requested formatting

    Returns:
        Zero, one or two batchUpdate requests
    """
    cell_format: Dict[str, Any] = {}
    fields = []

    if fmt.background_color:
        cell_format["backgroundColor"] = fmt.background_color.model_dump()
        fields.append("backgroundColor")

    text_format: Dict[str, Any] = {}
    if fmt.text_color:
        text_format["foregroundColor"] = fmt.text_color.model_dump()
        fields.append("textFormat.foregroundColor")
    if fmt.bold is not None:
        text_format["bold"] = fmt.bold
        fields.append("textFormat.bold")
    if fmt.font_size is not None:
        text_format["fontSize"] = fmt.font_size
        fields.append("textFormat.fontSize")
    if text_format:
        cell_format["textFormat"] = text_format

    if fmt.horizontal_alignment:
        cell_format["horizontalAlignment"] = fmt.horizontal_alignment
        fields.append("horizontalAlignment")

    if fmt.number_format:
        cell_format["numberFormat"] = fmt.number_format.model_dump(exclude_none=True)
        fields.append("numberFormat")

    requests = []
    if fields:
        requests.append({
            "repeatCell": {
                "range": grid_range,
                "cell": {"userEnteredFormat": cell_format},
                "fields": f"userEnteredFormat({','.join(fields)})",
            }
        })

    if fmt.borders:
        border = {"style": fmt.borders.style, "color": fmt.borders.color.model_dump()}
        requests.append({
            "updateBorders": {
                "range": grid_range,
                "top": border,
                "bottom": border,
                "left": border,
                "right": border,
            }
        })

    return requests


def _user_values(values: List[Any]) -> List[Dict[str, str]]:
    return [{"userEnteredValue": _format_number(value)} for value in values]


def _format_number(value: Any) -> str:
    # 5.0 -> "5" so the condition reads like the user typed it
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_validation_condition(rule: ValidationRule) -> Dict[str, Any]:
    """
    Map a ValidationRule to a Sheets BooleanCondition

    Raises:
        ValueError: If the rule is missing the values its condition needs
    """
    condition_type = rule.condition_type
    values = rule.values or []

    if condition_type == 'ONE_OF_LIST':
        if not values:
            raise ValueError("ONE_OF_LIST requires at least one value")
        return {"type": condition_type, "values": _user_values(values)}

    if condition_type == 'ONE_OF_RANGE':
        if not rule.source_range:
            raise ValueError("ONE_OF_RANGE requires source_range")
        return {"type": condition_type, "values": [{"userEnteredValue": f"={rule.source_range}"}]}

    if condition_type in ('NUMBER_GREATER', 'NUMBER_LESS', 'DATE_AFTER', 'DATE_BEFORE'):
        if len(values) != 1:
            raise ValueError(f"{condition_type} requires exactly one value")
        return {"type": condition_type, "values": _user_values(values)}

    if condition_type in ('NUMBER_BETWEEN', 'DATE_BETWEEN'):
        if len(values) != 2:
            raise ValueError(f"{condition_type} requires exactly two values")
        return {"type": condition_type, "values": _user_values(values)}

    if condition_type == 'TEXT_CONTAINS':
        return {"type": condition_type, "values": _user_values(values[:1])}

    if condition_type in ('TEXT_IS_EMAIL', 'TEXT_IS_URL'):
        return {"type": condition_type, "values": []}

    if condition_type == 'CUSTOM_FORMULA':
        if not rule.formula:
            raise ValueError("CUSTOM_FORMULA requires formula")
        formula = rule.formula if rule.formula.startswith('=') else f"={rule.formula}"
        return {"type": condition_type, "values": [{"userEnteredValue": formula}]}

    raise ValueError(f"Unknown condition type: {condition_type}")


def build_validation_request(grid_range: Dict[str, int], request: ValidationRequest) -> Dict[str, Any]:
    rule: Dict[str, Any] = {
        "condition": build_validation_condition(request.rule),
        "strict": request.rule.strict,
    }
    if request.rule.condition_type in DROPDOWN_CONDITIONS:
        rule["showCustomUi"] = request.rule.show_dropdown
    if request.input_message:
        rule["inputMessage"] = request.input_message

    return {
        "setDataValidation": {
            "range": grid_range,
            "rule": rule,
        }
    }


def _chart_source(grid_range: Dict[str, int]) -> Dict[str, Any]:
    return {"sourceRange": {"sources": [grid_range]}}


def _column_of(grid_range: Dict[str, int], offset: int) -> Dict[str, int]:
    start = grid_range["startColumnIndex"] + offset
    return {**grid_range, "startColumnIndex": start, "endColumnIndex": start + 1}


def build_chart_spec(
    chart_type: str,
    data_range: Dict[str, int],
    title: Optional[str] = None,
    legend: str = 'BOTTOM',
    is_3d: bool = False
) -> Dict[str, Any]:
    """
    Build a ChartSpec from a bounded GridRange

    The first column of data_range supplies the labels. PIE charts take their
    values from the second column; other chart types get one series per
    remaining column, or the whole range when there is only one column.

    Raises:
        ValueError: If data_range is missing a row or column bound
    """
    if any(bound not in data_range for bound in GRID_BOUNDS):
        raise ValueError("Data range must include row and column bounds")

    legend_position = LEGEND_POSITIONS[legend]
    domain = _chart_source(_column_of(data_range, 0))

    if chart_type == 'PIE':
        spec: Dict[str, Any] = {
            "pieChart": {
                "legendPosition": legend_position,
                "domain": domain,
                "series": _chart_source(_column_of(data_range, 1)),
                "threeDimensional": is_3d,
            }
        }
    else:
        width = data_range["endColumnIndex"] - data_range["startColumnIndex"]
        series = [{"series": _chart_source(_column_of(data_range, offset))} for offset in range(1, width)]
        basic_chart: Dict[str, Any] = {
            "chartType": chart_type,
            "headerCount": 1,
            "domains": [{"domain": domain}],
            "series": series or [{"series": _chart_source(data_range)}],
        }
        if legend != 'NONE':
            basic_chart["legendPosition"] = legend_position
        spec = {"basicChart": basic_chart}

    if title:
        spec["title"] = title
    return spec


def build_add_chart_request(
    spec: Dict[str, Any],
    sheet_id: int,
    anchor: CellReference,
    position: ChartPosition
) -> Dict[str, Any]:
    return {
        "addChart": {
            "chart": {
                "spec": spec,
                "position": {
                    "overlayPosition": {
                        "anchorCell": {
                            "sheetId": sheet_id,
                            "rowIndex": anchor.row - 1,
                            "columnIndex": anchor.column_index - 1,
                        },
                        "offsetXPixels": position.offset_x,
                        "offsetYPixels": position.offset_y,
                    }
                },
            }
        }
    }
