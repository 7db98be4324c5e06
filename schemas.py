"""
Input models for formatting, validation and batch value tools
"""
from typing import List, Optional, Any, Literal, Union

from pydantic import BaseModel, Field

from range_operations import quote_sheet_name


class SheetRange(BaseModel):
    sheet_name: str
    cell_range: str

    def to_a1_notation(self) -> str:
        return f"{quote_sheet_name(self.sheet_name)}!{self.cell_range}"


class Color(BaseModel):
    """RGB color, each component between 0 and 1"""
    red: float = Field(ge=0, le=1)
    green: float = Field(ge=0, le=1)
    blue: float = Field(ge=0, le=1)


class NumberFormat(BaseModel):
    type: Literal['TEXT', 'NUMBER', 'PERCENT', 'CURRENCY', 'DATE', 'TIME']
    pattern: Optional[str] = Field(default=None, description='Custom pattern, e.g. "$#,##0.00"')


class Border(BaseModel):
    style: Literal['SOLID', 'DASHED', 'DOTTED']
    color: Color


class FormatRequest(BaseModel):
    range: str = Field(min_length=1, description='A1 range to format (e.g. "A1:D10", "B:B", "5:5")')
    background_color: Optional[Color] = None
    text_color: Optional[Color] = None
    bold: Optional[bool] = None
    font_size: Optional[int] = Field(default=None, ge=6, le=36)
    horizontal_alignment: Optional[Literal['LEFT', 'CENTER', 'RIGHT']] = None
    number_format: Optional[NumberFormat] = None
    borders: Optional[Border] = None


ConditionType = Literal[
    'ONE_OF_LIST',
    'ONE_OF_RANGE',
    'NUMBER_GREATER',
    'NUMBER_LESS',
    'NUMBER_BETWEEN',
    'TEXT_CONTAINS',
    'TEXT_IS_EMAIL',
    'TEXT_IS_URL',
    'DATE_AFTER',
    'DATE_BEFORE',
    'DATE_BETWEEN',
    'CUSTOM_FORMULA',
]


class ValidationRule(BaseModel):
    """
    Data validation rule

    values holds the dropdown options, numeric bounds, text to match or ISO
    dates depending on condition_type. ONE_OF_RANGE reads source_range and
    CUSTOM_FORMULA reads formula.
    """
    condition_type: ConditionType
    values: Optional[List[Union[str, float]]] = None
    source_range: Optional[str] = Field(default=None, description='Range holding dropdown options, e.g. "Options!A1:A10"')
    formula: Optional[str] = Field(default=None, description='Custom formula, e.g. "=A1>0"')
    show_dropdown: bool = True
    strict: bool = True


class ValidationRequest(BaseModel):
    range: str = Field(min_length=1, description='A1 range to validate (e.g. "B2:B100")')
    rule: ValidationRule
    input_message: Optional[str] = Field(default=None, description="Help text shown when a cell is selected")


class ValueRangeInput(BaseModel):
    range: str = Field(min_length=1, description='A1 range without sheet prefix (e.g. "A1:C3")')
    values: List[List[Any]] = Field(description="Cell values; null leaves a cell unchanged, an empty string clears it")
    major_dimension: Literal['ROWS', 'COLUMNS'] = 'ROWS'


ChartType = Literal['PIE', 'BAR', 'COLUMN', 'LINE']
LegendPosition = Literal['BOTTOM', 'RIGHT', 'TOP', 'LEFT', 'NONE']


class ChartPosition(BaseModel):
    anchor_cell: str = Field(min_length=1, description='Cell the top-left corner of the chart is pinned to (e.g. "E2")')
    offset_x: int = Field(default=0, ge=0, description="Horizontal offset from the anchor cell in pixels")
    offset_y: int = Field(default=0, ge=0, description="Vertical offset from the anchor cell in pixels")
