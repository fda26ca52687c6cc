"""Unit tests for report sinks."""
import sqlite3
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from src.propmetrics_core.exceptions import SinkError
from src.propmetrics_core.sinks.sheets import SheetsSink
from src.propmetrics_core.sinks.sqlite import SqliteSink, init_database


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.mark.asyncio
async def test_sqlite_sink_write_and_read(conn):
    sink = SqliteSink(conn)

    await sink.ensure_exists("Property List")
    await sink.write("Property List", [["A", "analytics_1"], ["B", "analytics_2"]], ["Property", "Dataset"])

    headers, rows = sink.read("Property List")
    assert headers == ["Property", "Dataset"]
    assert rows == [["A", "analytics_1"], ["B", "analytics_2"]]


@pytest.mark.asyncio
async def test_sqlite_sink_clear_then_rewrite_replaces_rows(conn):
    sink = SqliteSink(conn)
    await sink.ensure_exists("T")
    await sink.write("T", [[1], [2], [3]], ["n"])

    await sink.clear("T")
    await sink.write("T", [[9]], ["n"])

    assert sink.read("T") == (["n"], [[9]])


@pytest.mark.asyncio
async def test_sqlite_sink_keeps_unicode(conn):
    sink = SqliteSink(conn)
    await sink.write("T", [["予約完了", "5.00%"]], ["stage", "rate"])

    assert sink.read("T")[1] == [["予約完了", "5.00%"]]


def test_init_database_is_idempotent(tmp_path):
    db_path = tmp_path / "nested" / "report.db"

    init_database(db_path)
    init_database(db_path)

    conn = sqlite3.connect(db_path)
    try:
        versions = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    finally:
        conn.close()
    assert versions == 1


@pytest.mark.asyncio
async def test_sqlite_sink_wraps_database_errors(conn):
    sink = SqliteSink(conn)
    conn.execute("DROP TABLE report_rows")

    with pytest.raises(SinkError) as exc_info:
        await sink.clear("T")

    assert exc_info.value.table_name == "T"


def _response(status=200, payload=None, text=""):
    response = AsyncMock()
    response.status = status
    response.json.return_value = payload or {}
    response.text.return_value = text
    response.__aenter__.return_value = response
    return response


@pytest.mark.asyncio
async def test_sheets_sink_creates_missing_sheet_and_writes():
    session = MagicMock()
    session.request.side_effect = [
        _response(payload={"sheets": [{"properties": {"title": "Other"}}]}),
        _response(payload={"replies": []}),
        _response(payload={}),
        _response(payload={}),
    ]
    sink = SheetsSink("sheet-123", "ya29.token", session)

    await sink.ensure_exists("Property List")
    await sink.clear("Property List")
    await sink.write("Property List", [["A", 1]], ["Property", "Users"])

    methods = [call.args[0] for call in session.request.call_args_list]
    assert methods == ["GET", "POST", "POST", "PUT"]
    assert session.request.call_args_list[1].args[1].endswith(":batchUpdate")

    write_call = session.request.call_args_list[3]
    assert write_call.kwargs["json"] == {"values": [["Property", "Users"], ["A", 1]]}
    assert write_call.kwargs["params"] == {"valueInputOption": "RAW"}
    assert write_call.kwargs["headers"]["Authorization"] == "Bearer ya29.token"


@pytest.mark.asyncio
async def test_sheets_sink_skips_existing_sheet():
    session = MagicMock()
    session.request.return_value = _response(
        payload={"sheets": [{"properties": {"title": "Property List"}}]}
    )
    sink = SheetsSink("sheet-123", "token", session)

    await sink.ensure_exists("Property List")

    assert session.request.call_count == 1


@pytest.mark.asyncio
async def test_sheets_sink_http_error_is_sink_error_without_token():
    session = MagicMock()
    session.request.return_value = _response(
        status=403, text="permission denied for token ya29.token"
    )
    sink = SheetsSink("sheet-123", "ya29.token", session)

    with pytest.raises(SinkError) as exc_info:
        await sink.clear("Property List")

    assert exc_info.value.table_name == "Property List"
    assert "403" in str(exc_info.value)
    assert "ya29.token" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_sheets_sink_network_error_is_sink_error():
    session = MagicMock()
    session.request.side_effect = aiohttp.ClientConnectionError("connection reset")
    sink = SheetsSink("sheet-123", "token", session)

    with pytest.raises(SinkError):
        await sink.write("T", [[1]])
