#!/usr/bin/env python3
"""
Google Sheets MCP Server

A Model Context Protocol server exposing Google Sheets operations: reading and
writing values, managing sheets, row/column batch edits, formatting and data
validation. A1 ranges are validated and converted to grid coordinates before
any request reaches the Sheets API.
"""
import os
import sys
import json
import logging
import argparse
from typing import Dict, List, Optional, Any, Union, Literal

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

import uvicorn
from fastapi import FastAPI, HTTPException
from mcp.server.fastmcp import FastMCP
from mcp import McpError
from mcp.types import ErrorData, INVALID_PARAMS
from pydantic_settings import BaseSettings, SettingsConfigDict

from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from range_operations import (
    DEFAULT_CHUNK_CELLS,
    MAX_DIMENSION_BATCH_REQUESTS,
    build_values_batch_update_request,
    calculate_range_dimensions,
    column_index_to_string,
    detect_range_conflicts,
    is_valid_a1_notation,
    parse_a1_notation,
    parse_cell_reference,
    range_reference_to_grid_range,
    split_range_into_chunks,
    split_sheet_prefix,
    validate_a1_notation,
    validate_batch_ranges,
)
from dimension_operations import (
    DEFAULT_COLUMN_COUNT,
    DEFAULT_ROW_COUNT,
    MAX_COLUMN_COUNT,
    MAX_ROW_COUNT,
    DimensionRequest,
    build_dimension_request,
    calculate_affected_count,
    project_dimensions,
    sort_operations,
)
from schemas import (
    ChartPosition,
    ChartType,
    FormatRequest,
    LegendPosition,
    SheetRange,
    ValidationRequest,
    ValueRangeInput,
)
from sheet_requests import (
    build_add_chart_request,
    build_chart_spec,
    build_format_requests,
    build_validation_request,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Default Google API scopes
SCOPES = [
    'https://www.googleapis.com/auth/spreadsheets',
    'https://www.googleapis.com/auth/drive.file'
]

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
MAX_FORMAT_REQUESTS = 50
VALID_INPUT_OPTIONS = ["RAW", "USER_ENTERED"]
VALID_INSERT_OPTIONS = ["OVERWRITE", "INSERT_ROWS"]


class Settings(BaseSettings):
    """Server configuration settings"""
    model_config = SettingsConfigDict(env_prefix="GOOGLE_SHEETS_MCP_")

    GOOGLE_SERVICE_ACCOUNT_PATH: str | None = None
    GOOGLE_CREDENTIALS_PATH: str = "~/.config/google_sheets_mcp/google-sheets-mcp.json"
    GOOGLE_TOKEN_PATH: str = "~/.config/google_sheets_mcp/token.json"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    TRANSPORT: Literal["stdio", "http"] = "stdio"
    CHUNK_CELL_LIMIT: int = DEFAULT_CHUNK_CELLS


class GoogleSheetsError(Exception):
    """Base exception for Google Sheets operations"""
    pass


class CredentialsError(GoogleSheetsError):
    """Raised when there are issues with credentials"""
    pass


class SheetNotFoundError(GoogleSheetsError):
    """Raised when a spreadsheet or sheet is not found"""
    pass


def _is_retryable(exception: BaseException) -> bool:
    return isinstance(exception, HttpError) and exception.resp.status in RETRYABLE_STATUS_CODES


def _invalid_params(message: str) -> McpError:
    return McpError(ErrorData(code=INVALID_PARAMS, message=message))


def _format_values(values: List[List[Any]]) -> List[List[str]]:
    """Convert cells to the strings the values API expects"""
    formatted_values = []
    for row in values:
        formatted_row = []
        for cell in row:
            if cell is None:
                formatted_row.append("")
            elif isinstance(cell, bool):
                formatted_row.append(str(cell).upper())
            else:
                formatted_row.append(str(cell))
        formatted_values.append(formatted_row)
    return formatted_values


def _strip_trailing_blanks(row: List[Any]) -> List[Any]:
    while row and row[-1] == "":
        row.pop()
    return row


def merge_chunk_values(chunks: List[str], chunk_values: List[List[List[Any]]]) -> List[List[Any]]:
    """
    Stitch values read per chunk back into a single grid

    Chunks come from split_range_into_chunks, so they either share their
    columns (row split) or their rows (column split). The API drops trailing
    empty rows and cells per chunk; those are padded back in between chunks.
    """
    refs = [parse_a1_notation(chunk) for chunk in chunks]
    first_column = refs[0].start_cell.column_index

    if all(ref.start_cell.column_index == first_column for ref in refs):
        merged = []
        for ref, values in zip(refs, chunk_values):
            height = ref.end_cell.row - ref.start_cell.row + 1
            merged.extend(values)
            merged.extend([] for _ in range(height - len(values)))
        while merged and not merged[-1]:
            merged.pop()
        return merged

    height = max((len(values) for values in chunk_values), default=0)
    merged = [[] for _ in range(height)]
    for ref, values in zip(refs, chunk_values):
        width = ref.end_cell.column_index - ref.start_cell.column_index + 1
        for row_number, merged_row in enumerate(merged):
            row = values[row_number] if row_number < len(values) else []
            merged_row.extend(row + [""] * (width - len(row)))
    return [_strip_trailing_blanks(row) for row in merged]


def _sheet_url(file_id: str, sheet_id: int) -> str:
    return f"https://docs.google.com/spreadsheets/d/{file_id}/edit#gid={sheet_id}"


def search_values(
    rows: List[List[Any]],
    query: Optional[str],
    select: str = "cells",
    match_case: bool = False
) -> List[Dict[str, Any]]:
    """
    Find matches in a grid of cell values

    Text cells containing query match; other cells never do. Without a query
    every cell matches. select decides what a match is:
    - cells: each matching cell
    - rows: each row with at least one matching cell
    - columns: each column whose header (first row) matches

    Returns:
        One {"a1": ..., "value": ...} dict per match, in sheet order
    """
    needle = None
    if query:
        needle = query if match_case else query.lower()

    def matches(cell: Any) -> bool:
        if needle is None:
            return True
        if not isinstance(cell, str):
            return False
        return needle in (cell if match_case else cell.lower())

    found = []
    if select == "cells":
        for row_number, row in enumerate(rows, start=1):
            for column_number, cell in enumerate(row, start=1):
                if matches(cell):
                    found.append({"a1": f"{column_index_to_string(column_number)}{row_number}", "value": cell})
    elif select == "rows":
        for row_number, row in enumerate(rows, start=1):
            if row and any(matches(cell) for cell in row):
                last_column = column_index_to_string(len(row))
                found.append({"a1": f"A{row_number}:{last_column}{row_number}", "value": row})
    elif select == "columns":
        header = rows[0] if rows else []
        for column_number, cell in enumerate(header, start=1):
            if matches(cell):
                column = column_index_to_string(column_number)
                values = [row[column_number - 1] if column_number <= len(row) else None for row in rows]
                found.append({"a1": f"{column}:{column}", "value": values})
    else:
        raise ValueError(f"Invalid select: {select}. Must be one of ['cells', 'rows', 'columns']")
    return found


# Create the MCP server instance
mcp = FastMCP("Google Sheets MCP")
mcp._instance = None


def _get_instance() -> "GoogleSheetsMCP":
    instance = getattr(mcp, "_instance", None)
    if not instance:
        raise HTTPException(status_code=500, detail="MCP instance not initialized")
    return instance


class GoogleSheetsMCP:
    """
    Google Sheets MCP Server implementation
    """
    def __init__(self, service_account_path: Optional[str] = None, settings: Optional[Settings] = None):
        """
        Initialize the Google Sheets MCP Server

        Args:
            service_account_path: Path to service account JSON file
            settings: Server settings; read from the environment when omitted
        """
        self.settings = settings or Settings()
        self.service_account_path = service_account_path or self.settings.GOOGLE_SERVICE_ACCOUNT_PATH
        self.sheets_service = None
        self.drive_service = None
        self._initialize_services()

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        reraise=True,
    )
    def _execute(self, request):
        """Execute an API request, retrying rate limits and server errors"""
        return request.execute()

    def _initialize_services(self):
        """Initialize Google API services"""
        try:
            credentials = self._get_credentials()
            self.sheets_service = build('sheets', 'v4', credentials=credentials)
            self.drive_service = build('drive', 'v3', credentials=credentials)
            logger.info(f"Successfully initialized Google services with credentials type: {type(credentials).__name__}")
        except Exception as e:
            # Services are checked again before each use
            logger.error(f"Failed to initialize Google services: {str(e)}")

    def _get_credentials(self):
        """Get Google API credentials"""
        if self.service_account_path and os.path.exists(self.service_account_path):
            try:
                return service_account.Credentials.from_service_account_file(
                    self.service_account_path, scopes=SCOPES
                )
            except Exception as e:
                logger.error(f"Error loading service account credentials: {str(e)}")

        # Fall back to user OAuth
        token_path = os.path.expanduser(self.settings.GOOGLE_TOKEN_PATH)
        credentials_path = os.path.expanduser(self.settings.GOOGLE_CREDENTIALS_PATH)

        credentials = None
        if os.path.exists(token_path):
            try:
                with open(token_path) as token_file:
                    credentials = Credentials.from_authorized_user_info(json.load(token_file), SCOPES)
            except (OSError, ValueError):
                logger.warning("Failed to load token, will attempt to create new one")

        if not credentials or not credentials.valid:
            if credentials and credentials.expired and credentials.refresh_token:
                credentials.refresh(Request())
            else:
                if not os.path.exists(credentials_path):
                    logger.error("No credentials available. Please provide a service account or OAuth credentials.")
                    raise CredentialsError("No Google API credentials available")

                flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
                credentials = flow.run_local_server(port=0)

            os.makedirs(os.path.dirname(token_path), exist_ok=True)
            with open(token_path, 'w') as token:
                token.write(credentials.to_json())

        return credentials

    def _require_sheets_service(self):
        if not self.sheets_service:
            self._initialize_services()
            if not self.sheets_service:
                raise GoogleSheetsError("Google Sheets service unavailable")
        return self.sheets_service

    def _require_drive_service(self):
        if not self.drive_service:
            self._initialize_services()
            if not self.drive_service:
                raise GoogleSheetsError("Google Drive service unavailable")
        return self.drive_service

    def _api_error(self, error: HttpError, file_id: str, invalid_detail: str) -> GoogleSheetsError:
        """Map an HttpError to a GoogleSheetsError"""
        if error.resp.status == 404:
            return SheetNotFoundError(f"Sheet with ID {file_id} not found")
        if error.resp.status == 400:
            return GoogleSheetsError(f"Invalid {invalid_detail}")
        logger.error(f"Google API error: {str(error)}")
        return GoogleSheetsError(f"API Error: {error.resp.status} - {str(error)}")

    def _get_spreadsheet(self, file_id: str, fields: str = "sheets.properties") -> Dict[str, Any]:
        return self._execute(self._require_sheets_service().spreadsheets().get(
            spreadsheetId=file_id,
            fields=fields
        ))

    @staticmethod
    def _find_sheet(
        spreadsheet: Dict[str, Any],
        sheet_id: Optional[int] = None,
        sheet_name: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return the properties of the sheet matching sheet_id or sheet_name"""
        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            if sheet_id is not None and properties.get("sheetId") == sheet_id:
                return properties
            if sheet_id is None and sheet_name is not None and properties.get("title") == sheet_name:
                return properties

        label = sheet_id if sheet_id is not None else sheet_name
        raise _invalid_params(f"Sheet not found: {label}")

    # Spreadsheet and sheet management

    @staticmethod
    @mcp.tool(
        name="create_spreadsheet",
        description="Create a new Google Sheets spreadsheet"
    )
    async def create_spreadsheet(title: str) -> str:
        """Create a new spreadsheet"""
        instance = _get_instance()
        logger.info(f"create_spreadsheet called: title={title!r}")

        try:
            spreadsheet = instance._execute(instance._require_sheets_service().spreadsheets().create(
                body={'properties': {'title': title}},
                fields='spreadsheetId,spreadsheetUrl'
            ))
            return json.dumps({
                "spreadsheetId": spreadsheet.get('spreadsheetId'),
                "spreadsheetUrl": spreadsheet.get('spreadsheetUrl', ''),
            })
        except HttpError as error:
            raise instance._api_error(error, "", "spreadsheet title") from error
        except Exception as e:
            logger.error(f"Error creating spreadsheet: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="find_spreadsheets",
        description="Search spreadsheets by name in Google Drive"
    )
    async def find_spreadsheets(query: str, page_size: int = 50) -> str:
        """Search for spreadsheets whose name contains query"""
        instance = _get_instance()
        logger.info(f"find_spreadsheets called: query={query!r}")

        escaped = query.replace("\\", "\\\\").replace("'", "\\'")
        try:
            results = instance._execute(instance._require_drive_service().files().list(
                q=f"mimeType='application/vnd.google-apps.spreadsheet' and name contains '{escaped}' and trashed=false",
                pageSize=page_size,
                fields="files(id, name, createdTime, modifiedTime)"
            ))
        except Exception as e:
            logger.error(f"Error searching spreadsheets: {str(e)}")
            raise

        return json.dumps([
            {
                "id": item.get("id"),
                "name": item.get("name"),
                "createdTime": item.get("createdTime"),
                "modifiedTime": item.get("modifiedTime"),
                "url": f"https://docs.google.com/spreadsheets/d/{item.get('id')}/edit",
            }
            for item in results.get("files", [])
        ])

    @staticmethod
    @mcp.tool(
        name="add_sheet",
        description="Add a new sheet to an existing spreadsheet"
    )
    async def add_sheet(
        file_id: str,
        title: str,
        row_count: Optional[int] = None,
        column_count: Optional[int] = None
    ) -> str:
        """Add a new sheet (defaults to 1000 rows x 26 columns)"""
        instance = _get_instance()
        rows = DEFAULT_ROW_COUNT if row_count is None else row_count
        columns = DEFAULT_COLUMN_COUNT if column_count is None else column_count
        if not 1 <= rows <= MAX_ROW_COUNT:
            raise ValueError(f"row_count must be between 1 and {MAX_ROW_COUNT}")
        if not 1 <= columns <= MAX_COLUMN_COUNT:
            raise ValueError(f"column_count must be between 1 and {MAX_COLUMN_COUNT}")

        logger.info(f"add_sheet called: file_id={file_id} title={title!r} size={rows}x{columns}")
        try:
            result = instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={'requests': [{
                    'addSheet': {
                        'properties': {
                            'title': title,
                            'gridProperties': {'rowCount': rows, 'columnCount': columns}
                        }
                    }
                }]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"sheet title: {title}") from error
        except Exception as e:
            logger.error(f"Error adding sheet: {str(e)}")
            raise

        replies = result.get('replies') or [{}]
        properties = replies[0].get('addSheet', {}).get('properties', {})
        return json.dumps({"status": "success", "sheetId": properties.get('sheetId'), "title": title})

    @staticmethod
    @mcp.tool(
        name="delete_sheet",
        description="Delete a sheet from a spreadsheet"
    )
    async def delete_sheet(file_id: str, sheet_id: int) -> str:
        """Delete a sheet from a spreadsheet"""
        instance = _get_instance()
        logger.info(f"delete_sheet called: file_id={file_id} sheet_id={sheet_id}")
        try:
            instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={'requests': [{'deleteSheet': {'sheetId': sheet_id}}]}
            ))
            return json.dumps({"status": "success"})
        except HttpError as error:
            raise instance._api_error(error, file_id, f"sheet ID: {sheet_id}") from error
        except Exception as e:
            logger.error(f"Error deleting sheet: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="get_sheet_properties",
        description="Get properties of all sheets in a spreadsheet"
    )
    async def get_sheet_properties(file_id: str) -> str:
        """Get properties of all sheets in a spreadsheet"""
        instance = _get_instance()
        try:
            spreadsheet = instance._get_spreadsheet(file_id)
            return json.dumps(spreadsheet.get('sheets', []))
        except HttpError as error:
            raise instance._api_error(error, file_id, "spreadsheet ID") from error
        except Exception as e:
            logger.error(f"Error getting sheet properties: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="sheet_rename",
        description="Rename a sheet (tab) within a spreadsheet"
    )
    async def sheet_rename(file_id: str, sheet_id: int, new_title: str) -> str:
        """Rename a sheet"""
        instance = _get_instance()
        new_title = new_title.strip()
        if not new_title:
            raise _invalid_params("new_title cannot be empty")

        logger.info(f"sheet_rename called: file_id={file_id} sheet_id={sheet_id} new_title={new_title!r}")
        try:
            properties = instance._find_sheet(instance._get_spreadsheet(file_id), sheet_id=sheet_id)
            instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={'requests': [{
                    'updateSheetProperties': {
                        'properties': {'sheetId': sheet_id, 'title': new_title},
                        'fields': 'title'
                    }
                }]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"sheet title: {new_title}") from error
        except Exception as e:
            logger.error(f"Error renaming sheet: {str(e)}")
            raise

        old_title = properties.get("title", "")
        return json.dumps({
            "spreadsheetId": file_id,
            "sheetId": sheet_id,
            "sheetUrl": _sheet_url(file_id, sheet_id),
            "oldTitle": old_title,
            "newTitle": new_title,
            "operationSummary": f'Renamed sheet "{old_title}" to "{new_title}"',
        })

    @staticmethod
    @mcp.tool(
        name="sheet_copy",
        description="Duplicate a sheet within the same spreadsheet"
    )
    async def sheet_copy(file_id: str, sheet_id: int, new_title: str, insert_index: Optional[int] = None) -> str:
        """Duplicate a sheet, optionally placing the copy at insert_index"""
        instance = _get_instance()
        new_title = new_title.strip()
        if not new_title:
            raise _invalid_params("new_title cannot be empty")
        if insert_index is not None and insert_index < 0:
            raise _invalid_params("insert_index must be non-negative")

        duplicate = {'sourceSheetId': sheet_id, 'newSheetName': new_title}
        if insert_index is not None:
            duplicate['insertSheetIndex'] = insert_index

        logger.info(f"sheet_copy called: file_id={file_id} sheet_id={sheet_id} new_title={new_title!r}")
        try:
            source = instance._find_sheet(instance._get_spreadsheet(file_id), sheet_id=sheet_id)
            result = instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={'requests': [{'duplicateSheet': duplicate}]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"sheet title: {new_title}") from error
        except Exception as e:
            logger.error(f"Error copying sheet: {str(e)}")
            raise

        replies = result.get('replies') or [{}]
        properties = replies[0].get('duplicateSheet', {}).get('properties', {})
        if properties.get('sheetId') is None:
            raise GoogleSheetsError("Failed to retrieve new sheet info from API response")

        return json.dumps({
            "spreadsheetId": file_id,
            "sourceSheetId": sheet_id,
            "sourceTitle": source.get("title", ""),
            "sheetId": properties['sheetId'],
            "title": properties.get('title', new_title),
            "sheetUrl": _sheet_url(file_id, properties['sheetId']),
        })

    @staticmethod
    @mcp.tool(
        name="spreadsheet_rename",
        description="Rename a spreadsheet (the whole document, not an individual sheet)"
    )
    async def spreadsheet_rename(file_id: str, new_title: str) -> str:
        """Rename a spreadsheet"""
        instance = _get_instance()
        new_title = new_title.strip()
        if not new_title:
            raise _invalid_params("new_title cannot be empty")

        logger.info(f"spreadsheet_rename called: file_id={file_id} new_title={new_title!r}")
        try:
            spreadsheet = instance._get_spreadsheet(file_id, fields="properties.title")
            instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={'requests': [{
                    'updateSpreadsheetProperties': {
                        'properties': {'title': new_title},
                        'fields': 'title'
                    }
                }]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"spreadsheet title: {new_title}") from error
        except Exception as e:
            logger.error(f"Error renaming spreadsheet: {str(e)}")
            raise

        old_title = spreadsheet.get("properties", {}).get("title", "")
        return json.dumps({
            "spreadsheetId": file_id,
            "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{file_id}/edit",
            "oldTitle": old_title,
            "newTitle": new_title,
            "operationSummary": f'Renamed spreadsheet "{old_title}" to "{new_title}"',
        })

    # Values

    async def _read_range_impl(
        self,
        file_id: str,
        range: str,
        value_render_option: str = "FORMATTED_VALUE",
        date_time_render_option: str = "FORMATTED_STRING"
    ) -> str:
        """
        Read data from a specific range in a Google Sheet (internal implementation)

        Ranges larger than CHUNK_CELL_LIMIT are read in chunks with a single
        batchGet and stitched back together.

        Args:
            file_id: The ID of the Google Sheet
            range: The A1 notation range to read (e.g., "A1:B10", "Sheet1!A1:C5")
            value_render_option: FORMATTED_VALUE, UNFORMATTED_VALUE or FORMULA
            date_time_render_option: SERIAL_NUMBER or FORMATTED_STRING

        Returns:
            JSON string containing the values and range information
        """
        service = self._require_sheets_service()

        sheet_name, a1 = split_sheet_prefix(range)
        chunks = [a1]
        if is_valid_a1_notation(a1):
            chunks = split_range_into_chunks(a1, self.settings.CHUNK_CELL_LIMIT)

        try:
            if len(chunks) <= 1:
                result = self._execute(service.spreadsheets().values().get(
                    spreadsheetId=file_id,
                    range=range,
                    valueRenderOption=value_render_option,
                    dateTimeRenderOption=date_time_render_option
                ))
                return json.dumps({
                    'values': result.get('values', []),
                    'range': result.get('range', range)
                })

            logger.info(f"Reading {range} in {len(chunks)} chunks")
            chunk_ranges = [
                SheetRange(sheet_name=sheet_name, cell_range=chunk).to_a1_notation() if sheet_name else chunk
                for chunk in chunks
            ]
            result = self._execute(service.spreadsheets().values().batchGet(
                spreadsheetId=file_id,
                ranges=chunk_ranges,
                valueRenderOption=value_render_option,
                dateTimeRenderOption=date_time_render_option
            ))
            value_ranges = result.get('valueRanges', [])
            chunk_values = [value_range.get('values', []) for value_range in value_ranges]
            chunk_values += [[]] * (len(chunks) - len(chunk_values))

            return json.dumps({
                'values': merge_chunk_values(chunks, chunk_values),
                'range': range,
                'chunks': len(chunks)
            })

        except HttpError as error:
            raise self._api_error(error, file_id, f"range: {range}") from error
        except Exception as e:
            logger.error(f"Error reading range: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="read_range",
        description="Read data from a specific range in a Google Sheet"
    )
    async def read_range(
        file_id: str,
        range: str,
        value_render_option: Optional[str] = None,
        date_time_render_option: Optional[str] = None
    ) -> str:
        """Read a range, chunking large ones (MCP handler)"""
        instance = _get_instance()
        return await instance._read_range_impl(
            file_id=file_id,
            range=range,
            value_render_option=value_render_option or "FORMATTED_VALUE",
            date_time_render_option=date_time_render_option or "FORMATTED_STRING"
        )

    async def _get_values_impl(
        self,
        file_id: str,
        ranges: Union[str, List[str]],
        value_render_option: str = "FORMATTED_VALUE",
        date_time_render_option: str = "FORMATTED_STRING"
    ) -> str:
        """
        Get values from multiple ranges in a Google Sheet using batch API

        Returns:
            JSON string containing the spreadsheet ID and value ranges
        """
        service = self._require_sheets_service()
        ranges_list = [ranges] if isinstance(ranges, str) else ranges

        try:
            result = self._execute(service.spreadsheets().values().batchGet(
                spreadsheetId=file_id,
                ranges=ranges_list,
                valueRenderOption=value_render_option,
                dateTimeRenderOption=date_time_render_option
            ))
            return json.dumps(result)
        except HttpError as error:
            raise self._api_error(error, file_id, f"range(s): {ranges}") from error
        except Exception as e:
            logger.error(f"Error getting values: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="get_values",
        description="Get values from multiple ranges in a Google Sheet using batch API"
    )
    async def get_values(
        file_id: str,
        ranges: Union[str, List[str]],
        value_render_option: Optional[str] = None,
        date_time_render_option: Optional[str] = None
    ) -> str:
        instance = _get_instance()
        return await instance._get_values_impl(
            file_id=file_id,
            ranges=ranges,
            value_render_option=value_render_option or "FORMATTED_VALUE",
            date_time_render_option=date_time_render_option or "FORMATTED_STRING"
        )

    async def _update_range_impl(
        self,
        file_id: str,
        range: str,
        values: List[List[Any]],
        value_input_option: str = "USER_ENTERED"
    ) -> Dict[str, Any]:
        """
        Update a specific range in a Google Sheet with new values (internal implementation)

        Args:
            file_id: The ID of the Google Sheet
            range: The A1 notation range to update (e.g., "A1:B10", "Sheet1!A1:C5")
            values: 2D array of values to write
            value_input_option: RAW or USER_ENTERED (default)

        Returns:
            Dictionary containing the update information
        """
        service = self._require_sheets_service()

        if not file_id:
            raise ValueError("file_id is required")
        if not range:
            raise ValueError("range is required")
        if values is None:
            raise ValueError("values is required")
        if len(values) == 0:
            raise ValueError("Values array cannot be empty")
        if any(len(row) == 0 for row in values):
            raise ValueError("Values array cannot contain empty rows")
        if any(len(row) != len(values[0]) for row in values):
            raise ValueError("All rows must have the same number of columns")
        if value_input_option not in VALID_INPUT_OPTIONS:
            raise ValueError(f"Invalid value_input_option: {value_input_option}. Must be one of {VALID_INPUT_OPTIONS}")

        sheet_name, a1 = split_sheet_prefix(range)
        if sheet_name is not None:
            validate_a1_notation(a1)
            range_ref = parse_a1_notation(a1)
            if range_ref.type == 'range':
                dimensions = calculate_range_dimensions(a1)
                if len(values) > dimensions.rows or len(values[0]) > dimensions.columns:
                    raise ValueError(
                        f"Values ({len(values)}x{len(values[0])}) do not fit in range {a1} "
                        f"({dimensions.rows}x{dimensions.columns})"
                    )

        try:
            result = self._execute(service.spreadsheets().values().update(
                spreadsheetId=file_id,
                range=range,
                valueInputOption=value_input_option,
                body={"values": _format_values(values)}
            ))
            return {
                "spreadsheetId": result.get('spreadsheetId', file_id),
                "updatedRange": result.get('updatedRange', ''),
                "updatedRows": result.get('updatedRows', 0),
                "updatedColumns": result.get('updatedColumns', 0),
                "updatedCells": result.get('updatedCells', 0)
            }
        except HttpError as error:
            raise self._api_error(error, file_id, f"range or data: {range}") from error
        except Exception as e:
            logger.error(f"Error updating range: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="update_range",
        description="Update a specific range in a Google Sheet with new values"
    )
    async def update_range(
        file_id: str,
        range: str,
        values: List[List[Any]],
        value_input_option: Optional[str] = None
    ) -> str:
        """Update a specific range in a Google Sheet with new values (MCP handler)"""
        instance = _get_instance()
        result = await instance._update_range_impl(
            file_id=file_id,
            range=range,
            values=values,
            value_input_option=value_input_option or "USER_ENTERED"
        )
        return json.dumps(result)

    async def _append_rows_impl(
        self,
        file_id: str,
        range: str,
        values: List[List[Any]],
        value_input_option: str = "USER_ENTERED",
        insert_data_option: str = "OVERWRITE"
    ) -> str:
        """
        Append rows to the end of existing data in a Google Sheet (internal implementation)

        Args:
            file_id: The ID of the Google Sheet
            range: The A1 notation range to append to (e.g., "Sheet1", "Sheet1!A:C")
            values: 2D array of values to append
            value_input_option: RAW or USER_ENTERED (default)
            insert_data_option: OVERWRITE (default) or INSERT_ROWS
        """
        service = self._require_sheets_service()

        if not file_id:
            raise ValueError("file_id is required")
        if not range:
            raise ValueError("range is required")
        if values is None:
            raise ValueError("values is required")
        if len(values) == 0:
            raise ValueError("values cannot be empty")
        if value_input_option not in VALID_INPUT_OPTIONS:
            raise ValueError(f"Invalid value_input_option: {value_input_option}. Must be one of {VALID_INPUT_OPTIONS}")
        if insert_data_option not in VALID_INSERT_OPTIONS:
            raise ValueError(f"Invalid insert_data_option: {insert_data_option}. Must be one of {VALID_INSERT_OPTIONS}")

        try:
            result = self._execute(service.spreadsheets().values().append(
                spreadsheetId=file_id,
                range=range,
                valueInputOption=value_input_option,
                insertDataOption=insert_data_option,
                body={"values": _format_values(values)}
            ))
            updates = result.get('updates', {})
            return json.dumps({
                "spreadsheetId": result.get('spreadsheetId', file_id),
                "updatedRange": updates.get('updatedRange', ''),
                "updatedRows": updates.get('updatedRows', 0),
                "updatedColumns": updates.get('updatedColumns', 0),
                "updatedCells": updates.get('updatedCells', 0)
            })
        except HttpError as error:
            raise self._api_error(error, file_id, f"range or data: {range}") from error
        except Exception as e:
            logger.error(f"Error appending rows: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="append_rows",
        description="Append rows to the end of existing data in a Google Sheet"
    )
    async def append_rows(
        file_id: str,
        range: str,
        values: List[List[Any]],
        value_input_option: Optional[str] = None,
        insert_data_option: Optional[str] = None
    ) -> str:
        """Append rows to the end of existing data in a Google Sheet (MCP handler)"""
        instance = _get_instance()
        return await instance._append_rows_impl(
            file_id=file_id,
            range=range,
            values=values,
            value_input_option=value_input_option or "USER_ENTERED",
            insert_data_option=insert_data_option or "OVERWRITE"
        )

    async def _values_batch_update_impl(
        self,
        file_id: str,
        sheet_name: str,
        data: List[ValueRangeInput],
        value_input_option: str = "USER_ENTERED",
        include_values_in_response: bool = False
    ) -> Dict[str, Any]:
        """
        Write several ranges of one sheet in a single values.batchUpdate call

        Overlapping ranges are allowed and reported as warnings. Cell values
        are sent as given: None leaves a cell untouched, "" clears it.
        """
        service = self._require_sheets_service()

        if not data:
            raise ValueError("data cannot be empty")
        if value_input_option not in VALID_INPUT_OPTIONS:
            raise ValueError(f"Invalid value_input_option: {value_input_option}. Must be one of {VALID_INPUT_OPTIONS}")

        validation = validate_batch_ranges([item.range for item in data])
        if not validation.valid:
            raise ValueError("; ".join(validation.errors))
        for warning in validation.warnings:
            logger.warning(f"values_batch_update: {warning}")

        body = build_values_batch_update_request(
            [
                {
                    "range": item.range,
                    "values": item.values,
                    "majorDimension": item.major_dimension,
                }
                for item in data
            ],
            sheet_name,
            value_input_option=value_input_option,
            include_values_in_response=include_values_in_response,
        )

        try:
            result = self._execute(service.spreadsheets().values().batchUpdate(
                spreadsheetId=file_id,
                body=body
            ))
        except HttpError as error:
            raise self._api_error(error, file_id, f"ranges for sheet '{sheet_name}'") from error
        except Exception as e:
            logger.error(f"Error batch updating values: {str(e)}")
            raise

        responses = result.get('responses', [])
        if len(responses) != len(data):
            logger.error(f"values_batch_update reply mismatch: expected {len(data)}, got {len(responses)}")
            raise GoogleSheetsError(
                f"Batch operation partially failed: {len(responses)}/{len(data)} operations completed"
            )
        failed = [response for response in responses if not response.get('updatedRange')]
        if failed:
            raise GoogleSheetsError(f"{len(failed)} operations failed to update ranges")

        output = {
            "spreadsheetId": result.get('spreadsheetId', file_id),
            "totalUpdatedRanges": len(responses),
            "totalUpdatedRows": result.get('totalUpdatedRows', 0),
            "totalUpdatedColumns": result.get('totalUpdatedColumns', 0),
            "totalUpdatedCells": result.get('totalUpdatedCells', 0),
            "updatedRanges": [response['updatedRange'] for response in responses],
            "warnings": validation.warnings,
        }
        if include_values_in_response:
            output["updatedData"] = [
                {
                    "range": response['updatedRange'],
                    "majorDimension": response.get('updatedData', {}).get('majorDimension', 'ROWS'),
                    "values": response.get('updatedData', {}).get('values', []),
                }
                for response in responses
            ]
        return output

    @staticmethod
    @mcp.tool(
        name="values_batch_update",
        description="Write values to several ranges of one sheet in a single request. Ranges are A1 notation without sheet prefix."
    )
    async def values_batch_update(
        file_id: str,
        sheet_name: str,
        data: List[ValueRangeInput],
        value_input_option: Optional[str] = None,
        include_values_in_response: Optional[bool] = None
    ) -> str:
        """Write several ranges at once (MCP handler)"""
        instance = _get_instance()
        logger.info(f"values_batch_update called: file_id={file_id} sheet={sheet_name!r} ranges={len(data)}")
        result = await instance._values_batch_update_impl(
            file_id=file_id,
            sheet_name=sheet_name,
            data=data,
            value_input_option=value_input_option or "USER_ENTERED",
            include_values_in_response=bool(include_values_in_response)
        )
        return json.dumps(result)

    @staticmethod
    @mcp.tool(
        name="clear_ranges",
        description="Clear values (not formatting) from one or more ranges"
    )
    async def clear_ranges(file_id: str, ranges: List[str]) -> str:
        """Clear values from ranges such as "Sheet1!A1:C10" or "Sheet1" """
        instance = _get_instance()
        if not ranges:
            raise ValueError("ranges cannot be empty")
        for notation in ranges:
            sheet_name, a1 = split_sheet_prefix(notation)
            if sheet_name is not None:
                validate_a1_notation(a1)

        logger.info(f"clear_ranges called: file_id={file_id} ranges={ranges}")
        try:
            result = instance._execute(instance._require_sheets_service().spreadsheets().values().batchClear(
                spreadsheetId=file_id,
                body={"ranges": ranges}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"range(s): {ranges}") from error
        except Exception as e:
            logger.error(f"Error clearing ranges: {str(e)}")
            raise

        return json.dumps({
            "spreadsheetId": result.get("spreadsheetId", file_id),
            "clearedRanges": result.get("clearedRanges", []),
        })

    @staticmethod
    @mcp.tool(
        name="validate_ranges",
        description="Check A1 ranges against Google Sheets limits and report sizes and overlaps, without calling the API"
    )
    async def validate_ranges(ranges: List[str]) -> str:
        """Validate a batch of A1 ranges"""
        validation = validate_batch_ranges(ranges)

        details = []
        for notation in ranges:
            if is_valid_a1_notation(notation):
                details.append({"range": notation, "valid": True, **calculate_range_dimensions(notation).model_dump()})
            else:
                details.append({"range": notation, "valid": False})

        return json.dumps({
            **validation.model_dump(),
            "ranges": details,
            "conflicts": [conflict.model_dump() for conflict in detect_range_conflicts(ranges)],
        })

    @staticmethod
    @mcp.tool(
        name="values_search",
        description=(
            "Search a sheet and return matches as cells, whole rows, or columns whose header matches. "
            "Without a query every cell matches."
        )
    )
    async def values_search(
        file_id: str,
        sheet_id: int,
        query: Optional[str] = None,
        select: Literal['cells', 'rows', 'columns'] = 'cells',
        include_values: bool = False,
        include_a1: bool = False,
        value_render_option: Optional[str] = None,
        match_case: bool = False
    ) -> str:
        """Search the used grid of one sheet"""
        instance = _get_instance()
        query = query.strip() if query else None
        logger.info(f"values_search called: file_id={file_id} sheet_id={sheet_id} query={query!r} select={select}")

        try:
            properties = instance._find_sheet(
                instance._get_spreadsheet(
                    file_id,
                    fields="sheets.properties.sheetId,sheets.properties.title,sheets.properties.gridProperties"
                ),
                sheet_id=sheet_id
            )
            grid = properties.get("gridProperties", {})
            cell_range = (
                f"A1:{column_index_to_string(grid.get('columnCount', DEFAULT_COLUMN_COUNT))}"
                f"{grid.get('rowCount', DEFAULT_ROW_COUNT)}"
            )
            full_range = SheetRange(sheet_name=properties.get("title", ""), cell_range=cell_range).to_a1_notation()

            result = instance._execute(instance._require_sheets_service().spreadsheets().values().get(
                spreadsheetId=file_id,
                range=full_range,
                valueRenderOption=value_render_option or "FORMATTED_VALUE"
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"sheet ID: {sheet_id}") from error
        except Exception as e:
            logger.error(f"Error searching sheet: {str(e)}")
            raise

        found = search_values(result.get("values", []), query, select, match_case)
        output: Dict[str, Any] = {"count": len(found)}
        if include_a1 and found:
            output["a1s"] = [match["a1"] for match in found]
        if include_values and found:
            output["values"] = [match["value"] for match in found]
        return json.dumps(output)

    @staticmethod
    @mcp.tool(
        name="values_replace",
        description=(
            "Find and replace text across a spreadsheet. Searches all sheets unless sheet_id is given; "
            "range (A1 without sheet prefix) further limits the search and requires sheet_id. "
            "Regex replacements may use $1, $2 for capture groups."
        )
    )
    async def values_replace(
        file_id: str,
        find: str,
        replacement: str,
        sheet_id: Optional[int] = None,
        range: Optional[str] = None,
        match_case: Optional[bool] = None,
        match_entire_cell: Optional[bool] = None,
        search_by_regex: Optional[bool] = None,
        include_formulas: Optional[bool] = None
    ) -> str:
        """Run a findReplace request"""
        instance = _get_instance()
        if not find:
            raise _invalid_params("find cannot be empty")
        if range and sheet_id is None:
            raise _invalid_params("range requires sheet_id")

        find_replace: Dict[str, Any] = {"find": find, "replacement": replacement}
        options = {
            "matchCase": match_case,
            "matchEntireCell": match_entire_cell,
            "searchByRegex": search_by_regex,
            "includeFormulas": include_formulas,
        }
        find_replace.update({key: value for key, value in options.items() if value is not None})

        grid_range = None
        if range:
            try:
                grid_range = range_reference_to_grid_range(parse_a1_notation(range), sheet_id)
            except ValueError as e:
                raise _invalid_params(str(e)) from e

        logger.info(f"values_replace called: file_id={file_id} sheet_id={sheet_id} range={range}")
        try:
            if sheet_id is None:
                find_replace["allSheets"] = True
            else:
                instance._find_sheet(instance._get_spreadsheet(file_id), sheet_id=sheet_id)
                if grid_range is not None:
                    find_replace["range"] = grid_range
                else:
                    find_replace["sheetId"] = sheet_id

            result = instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={"requests": [{"findReplace": find_replace}]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"find/replace request: {find}") from error
        except Exception as e:
            logger.error(f"Error replacing values: {str(e)}")
            raise

        replies = result.get("replies") or [{}]
        counts = replies[0].get("findReplace", {})
        return json.dumps({
            "spreadsheetId": file_id,
            "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{file_id}/edit",
            "occurrencesChanged": counts.get("occurrencesChanged", 0),
            "valuesChanged": counts.get("valuesChanged", 0),
            "formulasChanged": counts.get("formulasChanged", 0),
            "rowsChanged": counts.get("rowsChanged", 0),
            "sheetsChanged": counts.get("sheetsChanged", 0),
        })

    # Dimensions

    async def _insert_rows_impl(
        self,
        file_id: str,
        sheet_id: Optional[int] = None,
        sheet_name: Optional[str] = None,
        start_index: int = 0,
        num_rows: int = 1,
        values: Optional[List[List[Any]]] = None,
        inherit_from_before: bool = False,
        value_input_option: str = "USER_ENTERED",
        range: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Insert rows at specific positions in a Google Sheet (internal implementation)

        Args:
            file_id: The ID of the Google Sheet
            sheet_id: The ID of the sheet (optional if sheet_name provided)
            sheet_name: The name of the sheet (optional if sheet_id provided)
            start_index: The index where to insert rows (0-based)
            num_rows: Number of rows to insert
            values: Optional 2D array of values to fill the inserted rows
            inherit_from_before: Whether to inherit properties from the row before
            value_input_option: How the input data should be interpreted (RAW, USER_ENTERED)
            range: Optional specific range for placing values

        Returns:
            Dictionary containing the insert operation information
        """
        service = self._require_sheets_service()

        if not file_id:
            raise ValueError("file_id is required")
        if sheet_id is None and sheet_name is None:
            raise ValueError("Either sheet_id or sheet_name must be provided")
        if start_index < 0:
            raise ValueError("start_index must be non-negative")
        if num_rows <= 0:
            raise ValueError("num_rows must be positive")
        if values is not None and len(values) != num_rows:
            raise ValueError(f"values list length ({len(values)}) does not match num_rows ({num_rows})")
        if value_input_option not in VALID_INPUT_OPTIONS:
            raise ValueError(f"Invalid value_input_option: {value_input_option}. Must be one of {VALID_INPUT_OPTIONS}")

        try:
            resolved_sheet_id = sheet_id
            sheet_title = sheet_name
            if sheet_id is None or (values is not None and range is None and sheet_name is None):
                properties = self._find_sheet(self._get_spreadsheet(file_id), sheet_id, sheet_name)
                resolved_sheet_id = properties["sheetId"]
                sheet_title = properties.get("title", sheet_title)

            operation = DimensionRequest(
                operation="insertDimension",
                dimension="ROWS",
                start_index=start_index,
                end_index=start_index + num_rows,
                inherit_from_before=inherit_from_before,
            )
            self._execute(service.spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={"requests": [build_dimension_request(operation, resolved_sheet_id)]}
            ))

            result = {
                "spreadsheetId": file_id,
                "sheetId": resolved_sheet_id,
                "insertedRows": calculate_affected_count(operation),
                "startIndex": start_index
            }

            if values is not None:
                if range is not None:
                    update_range = range
                else:
                    max_cols = max(len(row) for row in values) or 1
                    cell_range = f"A{start_index + 1}:{column_index_to_string(max_cols)}{start_index + num_rows}"
                    update_range = SheetRange(sheet_name=sheet_title, cell_range=cell_range).to_a1_notation()

                update_result = self._execute(service.spreadsheets().values().update(
                    spreadsheetId=file_id,
                    range=update_range,
                    valueInputOption=value_input_option,
                    body={"values": _format_values(values)}
                ))
                result.update({
                    "updatedRange": update_result.get("updatedRange", ""),
                    "updatedRows": update_result.get("updatedRows", 0),
                    "updatedColumns": update_result.get("updatedColumns", 0),
                    "updatedCells": update_result.get("updatedCells", 0)
                })

            return result

        except HttpError as error:
            raise self._api_error(error, file_id, "request parameters") from error
        except Exception as e:
            logger.error(f"Error inserting rows: {str(e)}")
            raise

    @staticmethod
    @mcp.tool(
        name="insert_rows",
        description="Insert rows at specific positions in a Google Sheet, shifting existing data down"
    )
    async def insert_rows(
        file_id: str,
        sheet_id: Optional[int] = None,
        sheet_name: Optional[str] = None,
        start_index: int = 0,
        num_rows: int = 1,
        values: Optional[List[List[Any]]] = None,
        inherit_from_before: Optional[bool] = None,
        value_input_option: Optional[str] = None,
        range: Optional[str] = None
    ) -> str:
        """Insert rows at specific positions in a Google Sheet (MCP handler)"""
        instance = _get_instance()
        result = await instance._insert_rows_impl(
            file_id=file_id,
            sheet_id=sheet_id,
            sheet_name=sheet_name,
            start_index=start_index,
            num_rows=num_rows,
            values=values,
            inherit_from_before=inherit_from_before or False,
            value_input_option=value_input_option or "USER_ENTERED",
            range=range
        )
        return json.dumps(result)

    async def _dimensions_batch_update_impl(
        self,
        file_id: str,
        sheet_id: int,
        requests: List[DimensionRequest]
    ) -> Dict[str, Any]:
        """
        Apply row/column inserts, deletes and appends as one atomic batch

        Operations are reordered with sort_operations before execution so
        that index shifts from one operation cannot corrupt another.
        """
        service = self._require_sheets_service()

        if not requests:
            raise ValueError("requests cannot be empty")
        if len(requests) > MAX_DIMENSION_BATCH_REQUESTS:
            raise ValueError(f"Too many dimension requests: {len(requests)} > {MAX_DIMENSION_BATCH_REQUESTS}")

        try:
            spreadsheet = self._get_spreadsheet(
                file_id,
                fields="properties.title,spreadsheetUrl,sheets.properties"
            )
            properties = self._find_sheet(spreadsheet, sheet_id=sheet_id)
            grid = properties.get("gridProperties", {})
            row_count = grid.get("rowCount", DEFAULT_ROW_COUNT)
            column_count = grid.get("columnCount", DEFAULT_COLUMN_COUNT)

            sorted_requests = sort_operations(requests)
            batch_requests = [build_dimension_request(operation, sheet_id) for operation in sorted_requests]
            logger.debug(f"Executing dimension batch on sheet {sheet_id}: {batch_requests}")

            result = self._execute(service.spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={"requests": batch_requests, "includeSpreadsheetInResponse": False}
            ))

            replies = result.get("replies", [])
            if len(replies) != len(batch_requests):
                logger.error(f"Dimension batch reply mismatch: expected {len(batch_requests)}, got {len(replies)}")
                raise GoogleSheetsError(
                    f"Batch operation failed: expected {len(batch_requests)} operations, "
                    f"received {len(replies)} replies"
                )

        except HttpError as error:
            raise self._api_error(error, file_id, f"dimension requests for sheet {sheet_id}") from error
        except Exception as e:
            logger.error(f"Error batch updating dimensions: {str(e)}")
            raise

        final_rows, final_columns = project_dimensions(sorted_requests, row_count, column_count)
        if final_rows > MAX_ROW_COUNT:
            logger.warning(f"Final row count {final_rows} exceeds Google Sheets maximum {MAX_ROW_COUNT}")
        if final_columns > MAX_COLUMN_COUNT:
            logger.warning(f"Final column count {final_columns} exceeds Google Sheets maximum {MAX_COLUMN_COUNT}")

        return {
            "spreadsheetId": file_id,
            "sheetId": sheet_id,
            "spreadsheetTitle": spreadsheet.get("properties", {}).get("title", ""),
            "spreadsheetUrl": spreadsheet.get("spreadsheetUrl", ""),
            "sheetTitle": properties.get("title", ""),
            "sheetUrl": _sheet_url(file_id, sheet_id),
            "totalOperations": len(sorted_requests),
            "operationResults": [
                {
                    "operation": operation.operation,
                    "dimension": operation.dimension,
                    "startIndex": operation.start_index,
                    "endIndex": operation.end_index,
                    "affectedCount": calculate_affected_count(operation),
                }
                for operation in sorted_requests
            ],
            "updatedDimensions": {"rows": final_rows, "columns": final_columns},
        }

    @staticmethod
    @mcp.tool(
        name="dimensions_batch_update",
        description=(
            "Batch insert, delete or append rows/columns. Operations are atomic and are "
            "executed in a safe order automatically (deletes from the bottom up, then inserts "
            "and appends from the top down). Indices are 0-based, end_index exclusive."
        )
    )
    async def dimensions_batch_update(file_id: str, sheet_id: int, requests: List[DimensionRequest]) -> str:
        """Batch update sheet dimensions (MCP handler)"""
        instance = _get_instance()
        logger.info(f"dimensions_batch_update called: file_id={file_id} sheet_id={sheet_id} requests={len(requests)}")
        result = await instance._dimensions_batch_update_impl(file_id=file_id, sheet_id=sheet_id, requests=requests)
        return json.dumps(result)

    @staticmethod
    @mcp.tool(
        name="dimensions_move",
        description="Move rows or columns to a new position. Indices are 0-based, end_index exclusive."
    )
    async def dimensions_move(
        file_id: str,
        sheet_id: int,
        dimension: Literal['ROWS', 'COLUMNS'],
        start_index: int,
        end_index: int,
        destination_index: int
    ) -> str:
        """Move a block of rows or columns"""
        instance = _get_instance()
        logger.info(
            f"dimensions_move called: file_id={file_id} sheet_id={sheet_id} {dimension} "
            f"[{start_index}, {end_index}) -> {destination_index}"
        )

        if start_index < 0 or destination_index < 0:
            raise _invalid_params("Indices must be non-negative")
        if start_index >= end_index:
            raise _invalid_params(f"start_index ({start_index}) must be less than end_index ({end_index})")
        if start_index < destination_index < end_index:
            raise _invalid_params(
                f"destination_index ({destination_index}) cannot be within the source range ({start_index}-{end_index})"
            )

        try:
            properties = instance._find_sheet(instance._get_spreadsheet(file_id), sheet_id=sheet_id)
            instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={"requests": [{
                    "moveDimension": {
                        "source": {
                            "sheetId": sheet_id,
                            "dimension": dimension,
                            "startIndex": start_index,
                            "endIndex": end_index,
                        },
                        "destinationIndex": destination_index,
                    }
                }]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"move of {dimension.lower()}") from error
        except Exception as e:
            logger.error(f"Error moving {dimension.lower()}: {str(e)}")
            raise

        return json.dumps({
            "spreadsheetId": file_id,
            "sheetId": sheet_id,
            "sheetTitle": properties.get("title", ""),
            "sheetUrl": _sheet_url(file_id, sheet_id),
            "dimension": dimension,
            "sourceRange": {"startIndex": start_index, "endIndex": end_index},
            "destinationIndex": destination_index,
            "movedCount": end_index - start_index,
        })

    # Formatting and validation

    async def _apply_range_requests(
        self,
        file_id: str,
        sheet_id: int,
        ranged_requests: List[Union[FormatRequest, ValidationRequest]],
        builder,
        action: str
    ) -> Dict[str, Any]:
        """
        Build batchUpdate requests for each ranged request and send them together

        Requests whose range or content cannot be converted are reported in
        failedRanges instead of failing the whole batch.
        """
        service = self._require_sheets_service()

        if not ranged_requests:
            raise ValueError("requests cannot be empty")
        if len(ranged_requests) > MAX_FORMAT_REQUESTS:
            raise ValueError(f"Too many requests: {len(ranged_requests)} > {MAX_FORMAT_REQUESTS}")

        try:
            properties = self._find_sheet(self._get_spreadsheet(file_id), sheet_id=sheet_id)

            batch_requests = []
            failed_ranges = []
            for item in ranged_requests:
                try:
                    grid_range = range_reference_to_grid_range(parse_a1_notation(item.range), sheet_id)
                    built = builder(grid_range, item)
                except ValueError as e:
                    logger.info(f"Skipping {item.range} for {action}: {str(e)}")
                    failed_ranges.append({"range": item.range, "error": str(e)})
                    continue
                batch_requests.extend(built if isinstance(built, list) else [built])

            if batch_requests:
                self._execute(service.spreadsheets().batchUpdate(
                    spreadsheetId=file_id,
                    body={"requests": batch_requests}
                ))
        except HttpError as error:
            raise self._api_error(error, file_id, f"{action} request for sheet {sheet_id}") from error
        except Exception as e:
            logger.error(f"Error during {action}: {str(e)}")
            raise

        result = {
            "spreadsheetId": file_id,
            "sheetId": sheet_id,
            "sheetTitle": properties.get("title", ""),
            "sheetUrl": _sheet_url(file_id, sheet_id),
            "successCount": len(ranged_requests) - len(failed_ranges),
        }
        if failed_ranges:
            result["failedRanges"] = failed_ranges
        return result

    @staticmethod
    @mcp.tool(
        name="format_cells",
        description=(
            "Apply formatting (colors, borders, fonts, alignment, number formats) to ranges "
            "without changing data. Colors use 0-1 RGB. Ranges are A1 notation without sheet prefix."
        )
    )
    async def format_cells(file_id: str, sheet_id: int, requests: List[FormatRequest]) -> str:
        """Format cell ranges (MCP handler)"""
        instance = _get_instance()
        logger.info(f"format_cells called: file_id={file_id} sheet_id={sheet_id} requests={len(requests)}")
        result = await instance._apply_range_requests(
            file_id, sheet_id, requests, build_format_requests, "format"
        )
        return json.dumps(result)

    @staticmethod
    @mcp.tool(
        name="set_validation",
        description=(
            "Add data validation rules: dropdowns, numeric and date constraints, text checks "
            "and custom formulas. Ranges are A1 notation without sheet prefix."
        )
    )
    async def set_validation(file_id: str, sheet_id: int, requests: List[ValidationRequest]) -> str:
        """Set data validation on ranges (MCP handler)"""
        instance = _get_instance()
        logger.info(f"set_validation called: file_id={file_id} sheet_id={sheet_id} requests={len(requests)}")
        result = await instance._apply_range_requests(
            file_id, sheet_id, requests, build_validation_request, "validation"
        )
        return json.dumps(result)

    # Charts

    @staticmethod
    @mcp.tool(
        name="chart_create",
        description=(
            "Create a PIE, BAR, COLUMN or LINE chart from a data range (A1 without sheet prefix). "
            "The first column holds labels and the first row headers; each further column is a series. "
            "3D is only available for PIE charts."
        )
    )
    async def chart_create(
        file_id: str,
        sheet_id: int,
        chart_type: ChartType,
        data_range: str,
        position: ChartPosition,
        title: Optional[str] = None,
        legend: LegendPosition = 'BOTTOM',
        is_3d: bool = False
    ) -> str:
        """Add an embedded chart to a sheet"""
        instance = _get_instance()
        logger.info(
            f"chart_create called: file_id={file_id} sheet_id={sheet_id} type={chart_type} "
            f"data_range={data_range} anchor={position.anchor_cell}"
        )

        if is_3d and chart_type != 'PIE':
            raise _invalid_params(f"3D mode is only supported for PIE charts, not {chart_type}")
        try:
            anchor = parse_cell_reference(position.anchor_cell)
        except ValueError as e:
            raise _invalid_params(f"Failed to parse anchor cell: {str(e)}") from e
        try:
            grid_range = range_reference_to_grid_range(parse_a1_notation(data_range), sheet_id)
            spec = build_chart_spec(chart_type, grid_range, title=title, legend=legend, is_3d=is_3d)
        except ValueError as e:
            raise _invalid_params(f"Failed to parse data range: {str(e)}") from e

        try:
            properties = instance._find_sheet(instance._get_spreadsheet(file_id), sheet_id=sheet_id)
            result = instance._execute(instance._require_sheets_service().spreadsheets().batchUpdate(
                spreadsheetId=file_id,
                body={"requests": [build_add_chart_request(spec, sheet_id, anchor, position)]}
            ))
        except HttpError as error:
            raise instance._api_error(error, file_id, f"chart request for sheet {sheet_id}") from error
        except Exception as e:
            logger.error(f"Error creating chart: {str(e)}")
            raise

        replies = result.get("replies") or [{}]
        chart_id = replies[0].get("addChart", {}).get("chart", {}).get("chartId")
        if chart_id is None:
            raise GoogleSheetsError("Chart creation failed: no chart ID returned from Google Sheets API")

        return json.dumps({
            "spreadsheetId": file_id,
            "sheetId": sheet_id,
            "sheetTitle": properties.get("title", ""),
            "sheetUrl": _sheet_url(file_id, sheet_id),
            "chartId": chart_id,
            "anchorCell": position.anchor_cell,
        })


def create_http_app() -> FastAPI:
    """FastAPI app serving the MCP SSE endpoints plus a health check"""
    app = FastAPI(title="Google Sheets MCP")

    @app.get("/health")
    def health():
        instance = getattr(mcp, "_instance", None)
        return {
            "status": "ok",
            "sheets_service": bool(instance and instance.sheets_service),
        }

    app.mount("/", mcp.sse_app())
    return app


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Google Sheets MCP Server")
    parser.add_argument("--transport", choices=["stdio", "http"], help="Transport to serve MCP over")
    parser.add_argument("--host", help="Host to bind the HTTP transport to")
    parser.add_argument("--port", type=int, help="Port to bind the HTTP transport to")
    parser.add_argument("--service-account", help="Path to service account JSON file")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--credentials-path", help="Path to OAuth credentials file")
    parser.add_argument("--token-path", help="Path to OAuth token file")
    return parser.parse_args(argv)


def build_settings(args) -> Settings:
    """Environment settings overridden by any command line flags given"""
    overrides = {
        "GOOGLE_SERVICE_ACCOUNT_PATH": args.service_account,
        "GOOGLE_CREDENTIALS_PATH": args.credentials_path,
        "GOOGLE_TOKEN_PATH": args.token_path,
        "HOST": args.host,
        "PORT": args.port,
        "LOG_LEVEL": args.log_level,
        "TRANSPORT": args.transport,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main():
    """Main entry point"""
    settings = build_settings(parse_args())

    logging.getLogger().setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logger.info(f"Creating GoogleSheetsMCP with service_account_path: {settings.GOOGLE_SERVICE_ACCOUNT_PATH}")
    mcp_server = GoogleSheetsMCP(settings=settings)
    mcp._instance = mcp_server

    if not mcp_server.sheets_service:
        logger.error("Failed to initialize Google Sheets service")
        sys.exit(1)

    if settings.TRANSPORT == "http":
        logger.info(f"Starting Google Sheets MCP Server on http://{settings.HOST}:{settings.PORT}")
        uvicorn.run(create_http_app(), host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
    else:
        logger.info("Starting Google Sheets MCP Server")
        mcp.run(transport='stdio')


if __name__ == "__main__":
    main()
