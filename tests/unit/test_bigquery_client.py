"""Mock tests for the BigQuery REST executor."""
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from src.propmetrics_core.dates import Granularity
from src.propmetrics_core.dimensions import DimensionName
from src.propmetrics_core.exceptions import DimensionQueryError, QueryError
from src.propmetrics_core.sources.registry import SourceDescriptor
from src.propmetrics_core.warehouse.bigquery_client import BigQueryExecutor, decode_rows


SOURCE = SourceDescriptor(name="Hotel A", dataset="analytics_1", tablePrefix="events_")

SCHEMA = {
    "fields": [
        {"name": "period", "type": "STRING"},
        {"name": "active_users", "type": "INTEGER"},
        {"name": "cvr", "type": "FLOAT"},
    ]
}


def _response(status=200, payload=None, text=""):
    response = AsyncMock()
    response.status = status
    response.json.return_value = payload or {}
    response.text.return_value = text
    response.__aenter__.return_value = response
    return response


def _row(period, users, cvr):
    return {"f": [{"v": period}, {"v": str(users)}, {"v": None if cvr is None else str(cvr)}]}


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def executor(session):
    return BigQueryExecutor("test-project", "ya29.secret", session)


async def _execute(executor):
    return await executor.execute(
        DimensionName.BASIC_CVR, SOURCE, date(2024, 1, 1), date(2024, 3, 31), Granularity.MONTH
    )


def test_decode_rows_converts_types():
    rows = decode_rows(SCHEMA, [_row("2024-01", 100, 0.05), _row("2024-02", 0, None)])

    assert rows == [
        {"period": "2024-01", "active_users": 100, "cvr": 0.05},
        {"period": "2024-02", "active_users": 0, "cvr": None},
    ]


def test_decode_rows_empty():
    assert decode_rows({}, []) == []
    assert decode_rows(SCHEMA, None) == []


@pytest.mark.asyncio
async def test_execute_returns_decoded_rows(executor, session):
    session.request.return_value = _response(
        payload={"jobComplete": True, "schema": SCHEMA, "rows": [_row("2024-01", 100, 0.05)]}
    )

    rows = await _execute(executor)

    assert rows == [{"period": "2024-01", "active_users": 100, "cvr": 0.05}]
    method, url = session.request.call_args.args
    assert method == "POST"
    assert url.endswith("/projects/test-project/queries")
    payload = session.request.call_args.kwargs["json"]
    assert payload["useLegacySql"] is False
    assert "`test-project.analytics_1.events_*`" in payload["query"]
    assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer ya29.secret"


@pytest.mark.asyncio
async def test_execute_follows_pages(executor, session):
    session.request.side_effect = [
        _response(
            payload={
                "jobComplete": True,
                "schema": SCHEMA,
                "rows": [_row("2024-01", 100, 0.05)],
                "pageToken": "next",
                "jobReference": {"jobId": "job-1", "location": "US"},
            }
        ),
        _response(
            payload={"jobComplete": True, "schema": SCHEMA, "rows": [_row("2024-02", 120, 0.075)]}
        ),
    ]

    rows = await _execute(executor)

    assert [row["period"] for row in rows] == ["2024-01", "2024-02"]
    second = session.request.call_args_list[1]
    assert second.args == ("GET", executor.queries_endpoint + "/job-1")
    assert second.kwargs["params"]["pageToken"] == "next"
    assert second.kwargs["params"]["location"] == "US"


@pytest.mark.asyncio
async def test_execute_polls_until_job_complete(executor, session):
    session.request.side_effect = [
        _response(payload={"jobComplete": False, "jobReference": {"jobId": "job-1"}}),
        _response(payload={"jobComplete": True, "schema": SCHEMA, "rows": []}),
    ]

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        rows = await _execute(executor)

    assert rows == []
    sleep.assert_awaited_once_with(executor.POLL_INTERVAL)


@pytest.mark.asyncio
async def test_auth_failure_is_dimension_scoped(executor, session):
    session.request.return_value = _response(status=401, text="bad token ya29.secret")

    with pytest.raises(DimensionQueryError) as exc_info:
        await _execute(executor)

    assert exc_info.value.scope == "dimension"
    assert "ya29.secret" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_missing_dataset_is_source_scoped(executor, session):
    session.request.return_value = _response(status=404, text="Not found: Dataset analytics_1")

    with pytest.raises(QueryError) as exc_info:
        await _execute(executor)

    assert not isinstance(exc_info.value, DimensionQueryError)
    assert exc_info.value.scope == "source"
    assert exc_info.value.source_name == "Hotel A"


@pytest.mark.asyncio
async def test_job_errors_raise_query_error(executor, session):
    session.request.return_value = _response(
        payload={"jobComplete": True, "errors": [{"reason": "invalidQuery"}]}
    )

    with pytest.raises(QueryError):
        await _execute(executor)


@pytest.mark.asyncio
async def test_job_warnings_do_not_fail_completed_query(executor, session):
    session.request.return_value = _response(
        payload={
            "jobComplete": True,
            "schema": SCHEMA,
            "rows": [_row("2024-01", 100, 0.05)],
            "errors": [{"reason": "stopped", "message": "warning only"}],
        }
    )

    rows = await _execute(executor)

    assert rows == [{"period": "2024-01", "active_users": 100, "cvr": 0.05}]


@pytest.mark.asyncio
async def test_server_error_retried_then_succeeds(executor, session):
    session.request.side_effect = [
        _response(status=503, text="unavailable"),
        _response(status=429, text="rate limited"),
        _response(payload={"jobComplete": True, "schema": SCHEMA, "rows": []}),
    ]

    with patch("asyncio.sleep", new_callable=AsyncMock) as sleep:
        rows = await _execute(executor)

    assert rows == []
    assert sleep.await_count == 2
    assert session.request.call_count == 3


@pytest.mark.asyncio
async def test_retries_exhausted_is_dimension_scoped(executor, session):
    session.request.return_value = _response(status=500, text="internal")

    with patch("asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(DimensionQueryError):
            await _execute(executor)

    assert session.request.call_count == executor.MAX_RETRY_ATTEMPTS + 1


@pytest.mark.asyncio
async def test_network_error_retried(executor, session):
    session.request.side_effect = [
        aiohttp.ClientConnectionError("reset"),
        _response(payload={"jobComplete": True, "schema": SCHEMA, "rows": []}),
    ]

    with patch("asyncio.sleep", new_callable=AsyncMock):
        assert await _execute(executor) == []


def test_backoff_grows_and_is_capped(executor):
    with patch("random.uniform", return_value=0.0):
        assert executor._calculate_backoff(1) == 0.5
        assert executor._calculate_backoff(2) == 1.0
        assert executor._calculate_backoff(10) == executor.RETRY_MAX_DELAY
