"""
ApiExtractor - replays a raw table for one scope into tool-layer rows.

Raw records are read in insertion order and each produced row is upserted
by primary key, so the most recently collected version of an entity wins.
Tool rows an earlier extraction of the same scope wrote are deleted first,
in the same transaction, so entities gone from the raw data disappear.
"""

import logging
from collections.abc import Callable

from lake.context import PipelineContext
from lake.models import RawRecord

# (tool table, row) pairs produced from one raw record
ExtractedRows = list[tuple[str, dict]]


class MalformedRecordError(Exception):
    """A raw record is not valid JSON or not the object shape expected."""

    def __init__(self, table: str, raw_id: int, reason: str):
        super().__init__(f"{table}#{raw_id}: {reason}")
        self.table = table
        self.raw_id = raw_id


def load_object(record: RawRecord, table: str) -> dict:
    try:
        payload = record.json()
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedRecordError(table, record.id, f"invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedRecordError(table, record.id, f"expected object, got {type(payload).__name__}")
    return payload


class ApiExtractor:
    """Extracts one raw table for one scope into a fixed set of tool tables."""

    def __init__(
        self,
        ctx: PipelineContext,
        raw_table: str,
        output_tables: tuple[str, ...],
        extract: Callable[[RawRecord, dict], ExtractedRows],
    ):
        """
        Args:
            ctx: run context
            raw_table: raw table to read for ctx.params
            output_tables: tool tables this extractor owns for the scope
            extract: maps (record, decoded payload) to tool rows
        """
        self.ctx = ctx
        self.raw_table = raw_table
        self.output_tables = output_tables
        self.extract = extract
        self.logger = logging.getLogger(self.__class__.__name__)

    def execute(self) -> int:
        records = self.ctx.store.iter_raw(self.raw_table, self.ctx.params)
        batches: dict[str, list[dict]] = {table: [] for table in self.output_tables}
        for record in records:
            payload = load_object(record, self.raw_table)
            for table, row in self.extract(record, payload):
                if table not in batches:
                    raise ValueError(f"Extractor for {self.raw_table} emitted undeclared table {table}")
                if "gid" in row and not row["gid"]:
                    raise MalformedRecordError(self.raw_table, record.id, "element has no gid")
                row.update(
                    {
                        "raw_data_params": self.ctx.params,
                        "raw_data_table": self.raw_table,
                        "raw_data_id": record.id,
                    }
                )
                batches[table].append(row)

        counts = self.ctx.store.replace_by_origin(batches, self.raw_table, self.ctx.params)
        written = sum(counts.values())
        self.logger.info(
            f"Extracted {len(records)} raw records from {self.raw_table} into "
            f"{written} rows ({', '.join(f'{t}={c}' for t, c in counts.items())})"
        )
        return written
