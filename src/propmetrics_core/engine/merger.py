"""Join per-dimension row sets into unified (period, source) records."""
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .models import PERIOD, SOURCE_DESCRIPTION, SOURCE_NAME, UnifiedRecord


RecordKey = tuple[str, str]


@dataclass(frozen=True)
class RowSet:
    """Rows from one dimension plus the fields they contribute.

    fields maps record field name -> row field name. When omitted, every
    row field except the key fields is copied under its own name.
    """

    rows: Sequence[Mapping]
    fields: Optional[Mapping[str, str]] = None


def row_key(row: Mapping) -> RecordKey:
    return (str(row[PERIOD]), str(row[SOURCE_NAME]))


def _contributed(row: Mapping, fields: Optional[Mapping[str, str]]) -> dict:
    if fields is None:
        return {
            name: value
            for name, value in row.items()
            if name not in (PERIOD, SOURCE_NAME, SOURCE_DESCRIPTION)
        }
    return {target: row.get(source) for target, source in fields.items()}


def merge(row_sets: Sequence[RowSet]) -> dict[RecordKey, UnifiedRecord]:
    """Merge row sets into records keyed by (period, source_name).

    The first row set is primary and creates records. Later row sets only
    update records that already exist; rows for unknown keys are ignored.

    Args:
        row_sets: Primary row set followed by dependent row sets

    Returns:
        Dict of (period, source_name) -> UnifiedRecord, in primary row order
    """
    records: dict[RecordKey, UnifiedRecord] = {}
    if not row_sets:
        return records

    primary, *dependents = row_sets

    for row in primary.rows:
        key = row_key(row)
        record = records.get(key)
        if record is None:
            record = UnifiedRecord(
                period=key[0],
                source_name=key[1],
                source_description=row.get(SOURCE_DESCRIPTION, "") or "",
            )
            records[key] = record
        record.fields.update(_contributed(row, primary.fields))

    for row_set in dependents:
        for row in row_set.rows:
            record = records.get(row_key(row))
            if record is not None:
                record.fields.update(_contributed(row, row_set.fields))

    return records
