"""Async BigQuery REST executor (jobs.query) for GA4 export datasets."""
import asyncio
import logging
import random
from datetime import date
from typing import Any, Optional

import aiohttp

from ..config import redact_text
from ..dates import Granularity
from ..dimensions import DimensionName
from ..exceptions import DimensionQueryError, QueryError
from ..sources.registry import SourceDescriptor
from .queries import build_query


BIGQUERY_API = "https://bigquery.googleapis.com/bigquery/v2"

_INT_TYPES = {"INTEGER", "INT64"}
_FLOAT_TYPES = {"FLOAT", "FLOAT64", "NUMERIC", "BIGNUMERIC"}
_BOOL_TYPES = {"BOOLEAN", "BOOL"}


def _convert(value: Any, field_type: str) -> Any:
    if value is None:
        return None
    if field_type in _INT_TYPES:
        return int(value)
    if field_type in _FLOAT_TYPES:
        return float(value)
    if field_type in _BOOL_TYPES:
        return str(value).lower() == "true"
    return value


def decode_rows(schema: dict, rows: list[dict]) -> list[dict]:
    """Decode BigQuery's f/v row format into plain dicts using the schema."""
    fields = schema.get("fields", []) if schema else []
    decoded = []
    for row in rows or []:
        cells = row.get("f", [])
        decoded.append(
            {
                field["name"]: _convert(cell.get("v"), field.get("type", "STRING"))
                for field, cell in zip(fields, cells)
            }
        )
    return decoded


class BigQueryExecutor:
    """MetricQueryExecutor backed by the BigQuery REST API.

    Bounds in-flight queries with a semaphore and retries 429/5xx/network
    errors with exponential backoff.
    """

    MAX_RETRY_ATTEMPTS = 4
    RETRY_BASE_DELAY = 0.5  # seconds
    RETRY_MULTIPLIER = 2.0
    RETRY_MAX_DELAY = 20.0  # seconds
    RETRY_JITTER_MS = 250  # milliseconds
    QUERY_TIMEOUT_MS = 60000
    POLL_INTERVAL = 1.0  # seconds

    def __init__(
        self,
        project_id: str,
        access_token: str,
        session: aiohttp.ClientSession,
        max_concurrency: int = 5,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize BigQuery executor.

        Args:
            project_id: GCP project that owns the GA4 export datasets
            access_token: OAuth2 bearer token (never logged)
            session: Injected aiohttp ClientSession
            max_concurrency: Max in-flight query requests
            logger: Optional logger instance
        """
        self.project_id = project_id
        self._access_token = access_token
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self.queries_endpoint = f"{BIGQUERY_API}/projects/{project_id}/queries"

    def _redact(self, text: str) -> str:
        return redact_text(text, [self._access_token])

    async def execute(
        self,
        dimension: DimensionName,
        source: SourceDescriptor,
        start: date,
        end: date,
        granularity: Granularity,
    ) -> list[dict]:
        """Run one dimension query for one source.

        Returns:
            Decoded result rows

        Raises:
            QueryError: Source-specific failure (dataset/table missing, bad query)
            DimensionQueryError: Auth failure or exhausted retries
        """
        query = build_query(dimension, self.project_id, source, start, end, granularity)
        self.logger.debug(
            "Executing %s query for %s: %s...",
            dimension.value,
            source.name,
            " ".join(query.split())[:200],
        )

        payload = {
            "query": query,
            "useLegacySql": False,
            "timeoutMs": self.QUERY_TIMEOUT_MS,
        }

        async with self._semaphore:
            response = await self._request(
                "POST", self.queries_endpoint, dimension, source, json=payload
            )
            rows = list(response.get("rows", []))
            job_ref = response.get("jobReference", {})

            while not response.get("jobComplete", False) or response.get("pageToken"):
                if not response.get("jobComplete", False):
                    await asyncio.sleep(self.POLL_INTERVAL)
                params = {"timeoutMs": str(self.QUERY_TIMEOUT_MS)}
                if response.get("pageToken"):
                    params["pageToken"] = response["pageToken"]
                if job_ref.get("location"):
                    params["location"] = job_ref["location"]
                response = await self._request(
                    "GET",
                    f"{self.queries_endpoint}/{job_ref.get('jobId')}",
                    dimension,
                    source,
                    params=params,
                )
                rows.extend(response.get("rows", []))

        # `errors` may carry warnings on a job that succeeded; only a result
        # without schema or rows is a failure.
        errors = response.get("errors")
        if errors and not rows and not response.get("schema"):
            raise QueryError(
                f"BigQuery job errors for {source.name}: {errors}",
                dimension=dimension.value,
                source_name=source.name,
            )

        decoded = decode_rows(response.get("schema", {}), rows)
        self.logger.info(
            "Fetched %s rows for %s/%s", len(decoded), dimension.value, source.name
        )
        return decoded

    async def _request(
        self,
        method: str,
        url: str,
        dimension: DimensionName,
        source: SourceDescriptor,
        **kwargs: Any,
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

        attempt = 0
        while True:
            attempt += 1

            try:
                timeout = aiohttp.ClientTimeout(total=120, connect=10)
                async with self.session.request(
                    method, url, headers=headers, timeout=timeout, **kwargs
                ) as resp:
                    if resp.status in (401, 403):
                        body = await resp.text()
                        raise DimensionQueryError(
                            f"BigQuery auth error HTTP {resp.status}: {self._redact(body[:300])}",
                            dimension=dimension.value,
                            source_name=source.name,
                        )

                    if resp.status == 429 or 500 <= resp.status < 600:
                        body = await resp.text()
                        if attempt > self.MAX_RETRY_ATTEMPTS:
                            raise DimensionQueryError(
                                f"HTTP {resp.status} after {attempt} attempts: "
                                f"{self._redact(body[:200])}",
                                dimension=dimension.value,
                                source_name=source.name,
                            )
                        delay = self._calculate_backoff(attempt)
                        self.logger.warning(
                            "HTTP %s, backoff=%.2fs, attempt=%s", resp.status, delay, attempt
                        )
                        await asyncio.sleep(delay)
                        continue

                    if 400 <= resp.status < 500:
                        body = await resp.text()
                        raise QueryError(
                            f"HTTP {resp.status} for source {source.name}: "
                            f"{self._redact(body[:500])}",
                            dimension=dimension.value,
                            source_name=source.name,
                        )

                    return await resp.json()

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt > self.MAX_RETRY_ATTEMPTS:
                    raise DimensionQueryError(
                        f"Network error after {attempt} attempts: {exc}",
                        dimension=dimension.value,
                        source_name=source.name,
                    ) from exc

                delay = self._calculate_backoff(attempt)
                self.logger.warning(
                    "Network error: %s, backoff=%.2fs, attempt=%s", exc, delay, attempt
                )
                await asyncio.sleep(delay)

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter (attempt is 1-indexed)."""
        delay = min(
            self.RETRY_BASE_DELAY * (self.RETRY_MULTIPLIER ** (attempt - 1)),
            self.RETRY_MAX_DELAY,
        )
        jitter = random.uniform(0, self.RETRY_JITTER_MS / 1000.0)
        return delay + jitter
