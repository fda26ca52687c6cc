"""Google Sheets v4 REST sink."""
import logging
from typing import Any, Optional, Sequence
from urllib.parse import quote

import aiohttp

from ..config import redact_text
from ..exceptions import SinkError


SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


class SheetsSink:
    """Writes each table to a same-named sheet of one spreadsheet."""

    CLEAR_RANGE = "A:Z"

    def __init__(
        self,
        spreadsheet_id: str,
        access_token: str,
        session: aiohttp.ClientSession,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize Sheets sink.

        Args:
            spreadsheet_id: Target spreadsheet ID
            access_token: OAuth2 bearer token with spreadsheets scope (never logged)
            session: Injected aiohttp ClientSession
            logger: Optional logger instance
        """
        self.spreadsheet_id = spreadsheet_id
        self._access_token = access_token
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self.base_url = f"{SHEETS_API}/{spreadsheet_id}"

    def _range(self, table_name: str, cells: str) -> str:
        return quote(f"'{table_name}'!{cells}", safe="")

    async def _call(
        self, table_name: str, method: str, url: str, **kwargs: Any
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=60, connect=10)
        try:
            async with self.session.request(
                method, url, headers=headers, timeout=timeout, **kwargs
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise SinkError(
                        table_name,
                        f"HTTP {resp.status}: "
                        f"{redact_text(body[:300], [self._access_token])}",
                    )
                return await resp.json()
        except aiohttp.ClientError as exc:
            raise SinkError(table_name, f"Network error: {exc}") from exc

    async def ensure_exists(self, table_name: str) -> None:
        spreadsheet = await self._call(
            table_name, "GET", self.base_url, params={"fields": "sheets.properties.title"}
        )
        titles = {
            sheet.get("properties", {}).get("title")
            for sheet in spreadsheet.get("sheets", [])
        }
        if table_name in titles:
            return

        await self._call(
            table_name,
            "POST",
            f"{self.base_url}:batchUpdate",
            json={"requests": [{"addSheet": {"properties": {"title": table_name}}}]},
        )
        self.logger.info("Created new sheet: %s", table_name)

    async def clear(self, table_name: str) -> None:
        await self._call(
            table_name,
            "POST",
            f"{self.base_url}/values/{self._range(table_name, self.CLEAR_RANGE)}:clear",
        )

    async def write(
        self,
        table_name: str,
        rows: Sequence[Sequence[Any]],
        headers: Optional[Sequence[str]] = None,
    ) -> None:
        values = [list(headers)] if headers else []
        values.extend(list(row) for row in rows)

        await self._call(
            table_name,
            "PUT",
            f"{self.base_url}/values/{self._range(table_name, 'A1')}",
            params={"valueInputOption": "RAW"},
            json={"values": values},
        )
        self.logger.info("Data written to sheet: %s (%s rows)", table_name, len(rows))
