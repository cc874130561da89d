"""
DataConverter - turns tool rows for one scope into domain rows.

Each pass owns every domain row tagged with its (raw table, scope params)
origin: those rows are deleted and rewritten in one transaction, so a pass
over unchanged input leaves identical rows and vanished entities vanish.
"""

import logging
from collections.abc import Callable, Iterable

from lake.context import PipelineContext

# (domain table, row) pairs produced from one tool row
ConvertedRows = list[tuple[str, dict]]


class DataConverter:
    """Converts one tool-row stream into a fixed set of domain tables."""

    def __init__(
        self,
        ctx: PipelineContext,
        raw_table: str,
        output_tables: tuple[str, ...],
        rows: Iterable[dict],
        convert: Callable[[dict], ConvertedRows],
    ):
        self.ctx = ctx
        self.raw_table = raw_table
        self.output_tables = output_tables
        self.rows = rows
        self.convert = convert
        self.logger = logging.getLogger(self.__class__.__name__)

    def execute(self) -> int:
        outputs: dict[str, list[dict]] = {table: [] for table in self.output_tables}
        seen = 0
        for row in self.rows:
            seen += 1
            for table, out in self.convert(row):
                if table not in outputs:
                    raise ValueError(f"Converter for {self.raw_table} emitted undeclared table {table}")
                out["raw_data_params"] = self.ctx.params
                out["raw_data_table"] = self.raw_table
                outputs[table].append(out)

        counts = self.ctx.store.replace_by_origin(outputs, self.raw_table, self.ctx.params)
        written = sum(counts.values())
        self.logger.info(
            f"Converted {seen} rows from {self.raw_table}: "
            + ", ".join(f"{table}={count}" for table, count in counts.items())
        )
        return written
