"""Tests for format_cells and set_validation."""

import json
import pytest
from unittest.mock import Mock, patch
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from mcp import McpError
from mcp.types import INVALID_PARAMS

from schemas import Border, Color, FormatRequest, ValidationRequest, ValidationRule
from sheets_server import GoogleSheetsMCP, mcp


@pytest.fixture
def setup_mcp():
    """Setup MCP instance for testing"""
    with patch('sheets_server.os.path.exists', return_value=False):
        server = GoogleSheetsMCP()
    server.sheets_service = Mock()
    server.sheets_service.spreadsheets().get.return_value.execute.return_value = {
        "sheets": [{"properties": {"sheetId": 3, "title": "Report"}}]
    }
    server.sheets_service.spreadsheets().batchUpdate.return_value.execute.return_value = {"replies": []}

    original_instance = getattr(mcp, '_instance', None)
    mcp._instance = server
    yield server
    mcp._instance = original_instance


def sent_requests(server):
    return server.sheets_service.spreadsheets().batchUpdate.call_args.kwargs["body"]["requests"]


class TestFormatCells:
    @pytest.mark.asyncio
    async def test_header_row(self, setup_mcp):
        result = json.loads(await GoogleSheetsMCP.format_cells("test123", 3, [
            FormatRequest(
                range="A1:D1",
                bold=True,
                background_color=Color(red=0.9, green=0.9, blue=0.9),
                borders=Border(style="SOLID", color=Color(red=0, green=0, blue=0)),
            ),
        ]))

        assert result["successCount"] == 1
        assert result["sheetTitle"] == "Report"
        assert "failedRanges" not in result

        requests = sent_requests(setup_mcp)
        assert len(requests) == 2
        assert requests[0]["repeatCell"]["range"] == {
            "sheetId": 3, "startRowIndex": 0, "endRowIndex": 1, "startColumnIndex": 0, "endColumnIndex": 4
        }
        assert requests[1]["updateBorders"]["top"]["style"] == "SOLID"

    @pytest.mark.asyncio
    async def test_whole_column(self, setup_mcp):
        await GoogleSheetsMCP.format_cells("test123", 3, [FormatRequest(range="B:B", horizontal_alignment="CENTER")])

        grid_range = sent_requests(setup_mcp)[0]["repeatCell"]["range"]
        assert grid_range == {"sheetId": 3, "startColumnIndex": 1, "endColumnIndex": 2}

    @pytest.mark.asyncio
    async def test_invalid_range_reported(self, setup_mcp):
        result = json.loads(await GoogleSheetsMCP.format_cells("test123", 3, [
            FormatRequest(range="A1:B2", bold=True),
            FormatRequest(range="not-a-range", bold=True),
        ]))

        assert result["successCount"] == 1
        assert result["failedRanges"][0]["range"] == "not-a-range"
        assert "Invalid A1 notation" in result["failedRanges"][0]["error"]
        assert len(sent_requests(setup_mcp)) == 1

    @pytest.mark.asyncio
    async def test_all_invalid_skips_api_call(self, setup_mcp):
        result = json.loads(await GoogleSheetsMCP.format_cells("test123", 3, [FormatRequest(range="A0", bold=True)]))

        assert result["successCount"] == 0
        setup_mcp.sheets_service.spreadsheets().batchUpdate.assert_not_called()

    @pytest.mark.asyncio
    async def test_request_limits(self, setup_mcp):
        with pytest.raises(ValueError, match="requests cannot be empty"):
            await GoogleSheetsMCP.format_cells("test123", 3, [])
        with pytest.raises(ValueError, match="Too many requests: 51 > 50"):
            await GoogleSheetsMCP.format_cells("test123", 3, [FormatRequest(range="A1", bold=True)] * 51)

    @pytest.mark.asyncio
    async def test_unknown_sheet(self, setup_mcp):
        with pytest.raises(McpError, match="Sheet not found: 0") as exc_info:
            await GoogleSheetsMCP.format_cells("test123", 0, [FormatRequest(range="A1", bold=True)])
        assert exc_info.value.error.code == INVALID_PARAMS
        setup_mcp.sheets_service.spreadsheets().batchUpdate.assert_not_called()


class TestSetValidation:
    @pytest.mark.asyncio
    async def test_dropdown(self, setup_mcp):
        result = json.loads(await GoogleSheetsMCP.set_validation("test123", 3, [
            ValidationRequest(
                range="C2:C100",
                rule=ValidationRule(condition_type="ONE_OF_LIST", values=["Open", "Closed"]),
            ),
        ]))

        assert result["successCount"] == 1
        rule = sent_requests(setup_mcp)[0]["setDataValidation"]["rule"]
        assert rule["condition"]["type"] == "ONE_OF_LIST"
        assert rule["showCustomUi"] is True

    @pytest.mark.asyncio
    async def test_incomplete_rule_reported(self, setup_mcp):
        result = json.loads(await GoogleSheetsMCP.set_validation("test123", 3, [
            ValidationRequest(range="D2:D50", rule=ValidationRule(condition_type="NUMBER_BETWEEN", values=[1])),
            ValidationRequest(range="E2:E50", rule=ValidationRule(condition_type="TEXT_IS_EMAIL")),
        ]))

        assert result["successCount"] == 1
        assert result["failedRanges"] == [
            {"range": "D2:D50", "error": "NUMBER_BETWEEN requires exactly two values"}
        ]
        requests = sent_requests(setup_mcp)
        assert len(requests) == 1
        assert requests[0]["setDataValidation"]["range"]["startColumnIndex"] == 4
