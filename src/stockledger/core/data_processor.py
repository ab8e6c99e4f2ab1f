"""
Row merging and run statistics for spreadsheet imports.

Rows that share a conflict key (strings compared case-insensitively,
surrounding spaces ignored) are folded into one record before anything is
written, each field reduced by its ``FieldMergeMode``.
"""
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from stockledger.utils.logger import get_logger

logger = get_logger(__name__)

Record = Dict[str, Any]


class FieldMergeMode(Enum):
    SUM = "sum"
    MAX = "max"
    MIN = "min"
    FIRST = "first"
    LAST = "last"


_REDUCERS: Dict[FieldMergeMode, Callable[[List[Any]], Any]] = {
    FieldMergeMode.SUM: sum,
    FieldMergeMode.MAX: max,
    FieldMergeMode.MIN: min,
    FieldMergeMode.FIRST: lambda values: values[0],
    FieldMergeMode.LAST: lambda values: values[-1],
}


def _present(value: Any) -> bool:
    return value is not None and not (isinstance(value, float) and math.isnan(value))


def conflict_key(record: Record, columns: Sequence[str]) -> tuple:
    parts = []
    for column in columns:
        value = record.get(column)
        if isinstance(value, str):
            value = value.strip().lower() or None
        elif not _present(value):
            value = None
        parts.append(value)
    return tuple(parts)


@dataclass
class ImportStats:
    """Counters for one import run."""
    rows_read: int = 0
    rows_accepted: int = 0
    rows_skipped: int = 0
    rows_rejected: int = 0
    duplicate_groups: int = 0
    records_written: int = 0
    already_present: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def finish(self) -> None:
        self.finished_at = datetime.now()

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def log_summary(self) -> None:
        took = f"{self.duration:.2f}s" if self.duration is not None else "n/a"
        logger.info(f"Import finished in {took}: {self.rows_read:,} rows read, "
                    f"{self.rows_accepted:,} accepted, {self.rows_skipped:,} blank")
        logger.info(f"{self.records_written:,} written, {self.already_present:,} already present, "
                    f"{self.duplicate_groups:,} repeated names merged")
        if self.rows_rejected:
            logger.error(f"{self.rows_rejected:,} rows rejected, see warnings above")


class DataProcessor:
    """Merges repeated rows of an import."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def deduplicate_records(
        self,
        records: List[Record],
        conflict_columns: Sequence[str],
        merge_rules: Optional[Dict[str, FieldMergeMode]] = None,
    ) -> Tuple[List[Record], Dict[tuple, List[Record]]]:
        """
        Fold records sharing a conflict key, keeping first-seen order.

        Returns the merged records and the groups that had more than one row.
        """
        groups: "OrderedDict[tuple, List[Record]]" = OrderedDict()
        for record in records:
            groups.setdefault(conflict_key(record, conflict_columns), []).append(record)

        repeated = {key: rows for key, rows in groups.items() if len(rows) > 1}
        if repeated:
            self.logger.warning(f"Merging {sum(len(rows) for rows in repeated.values()):,} rows "
                                f"that repeat {len(repeated):,} keys")

        merged = [rows[0] if len(rows) == 1 else self.merge(rows, merge_rules or {})
                  for rows in groups.values()]
        return merged, repeated

    @staticmethod
    def merge(rows: List[Record], merge_rules: Dict[str, FieldMergeMode]) -> Record:
        """Reduce each field over ``rows``; fields without a rule keep their first value."""
        columns: List[str] = []
        for row in rows:
            columns.extend(c for c in row if c not in columns)

        merged = {}
        for column in columns:
            values = [row.get(column) for row in rows if _present(row.get(column))]
            mode = merge_rules.get(column, FieldMergeMode.FIRST)
            merged[column] = _REDUCERS[mode](values) if values else None
        return merged
