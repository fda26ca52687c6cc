"""Output sink contract."""
from typing import Any, Optional, Protocol, Sequence


class Sink(Protocol):
    """Persists formatted tables. Writes are clear-then-write, never incremental."""

    async def ensure_exists(self, table_name: str) -> None:
        ...

    async def clear(self, table_name: str) -> None:
        ...

    async def write(
        self,
        table_name: str,
        rows: Sequence[Sequence[Any]],
        headers: Optional[Sequence[str]] = None,
    ) -> None:
        ...
