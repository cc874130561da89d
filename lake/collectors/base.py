"""
ApiCollector - pages one Asana resource kind into its raw table.

Every collector:
1. Clears the scope's raw records left by the previous collection
2. Requests a page (limit + opt_fields, offset when continuing)
3. Appends the page's elements to the raw table before asking for the next
4. Stops when next_page is null or its offset is empty

Dependent collections (subtasks, tags, stories) run one paginated
sub-collection per input row on a bounded thread pool.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from lake.context import CollectionCancelled, PipelineContext


class ApiCollector:
    """Collects one resource kind for one scope into a raw table."""

    def __init__(
        self,
        ctx: PipelineContext,
        table: str,
        url_template: str,
        query: dict | None = None,
        input_rows: list[dict] | None = None,
        single_object: bool = False,
        paginate: bool = True,
    ):
        """
        Args:
            ctx: run context (options, store, client, cancel event)
            table: raw table to append to
            url_template: endpoint relative to the API base, formatted with the
                scope (``{project_id}``) and, for dependent collection, the
                input row (``{gid}``)
            query: extra query params, typically opt_fields
            input_rows: rows to fan out over; None for a root collection
            single_object: the endpoint returns one object, not a list
            paginate: follow next_page offsets
        """
        self.ctx = ctx
        self.table = table
        self.url_template = url_template
        self.query = dict(query or {})
        self.input_rows = input_rows
        self.single_object = single_object
        self.paginate = paginate
        self.logger = logging.getLogger(self.__class__.__name__)
        self._abort = threading.Event()

    def _check(self) -> None:
        self.ctx.check_cancelled()
        if self._abort.is_set():
            raise CollectionCancelled(f"Collection of {self.table} aborted by a failed sibling")

    def _endpoint(self, input_row: dict | None) -> str:
        values = {"project_id": self.ctx.project_id, "connection_id": self.ctx.connection_id}
        if input_row:
            values.update(input_row)
        return self.url_template.format(**values)

    def collect_one(self, input_row: dict | None = None) -> int:
        """Collect every page for one endpoint. Returns raw records written."""
        client = self.ctx.require_client()
        endpoint = self._endpoint(input_row)

        if self.single_object:
            self._check()
            obj = client.get_object(endpoint, self.query or None)
            if not obj:
                return 0
            return self.ctx.store.append_raw(
                self.table,
                self.ctx.params,
                [obj],
                url=client.url_for(endpoint, self.query or None),
                input_row=input_row,
            )

        total = 0
        pages = 0
        offset = ""
        while True:
            self._check()
            params = {"limit": self.ctx.page_size, **self.query}
            if offset:
                params["offset"] = offset
            page = client.get_page(endpoint, params)
            total += self.ctx.store.append_raw(
                self.table, self.ctx.params, page.data, url=page.url, input_row=input_row
            )
            pages += 1
            self.logger.debug(f"{endpoint}: page {pages} had {len(page.data)} items")
            if not self.paginate or not page.next_offset:
                break
            offset = page.next_offset
        return total

    def execute(self) -> int:
        """Run the collection. Returns total raw records written."""
        start = time.monotonic()
        self.ctx.require_client()
        self._check()
        cleared = self.ctx.store.clear_raw(self.table, self.ctx.params)
        if cleared:
            self.logger.debug(f"Cleared {cleared} raw records of {self.table} from the previous collection")
        if self.input_rows is None:
            total = self.collect_one()
        else:
            total = self._fan_out(self.input_rows)
        self.logger.info(
            f"Collected {total} records into {self.table} "
            f"in {(time.monotonic() - start) * 1000:.0f}ms"
        )
        return total

    def _fan_out(self, rows: list[dict]) -> int:
        if not rows:
            self.logger.info(f"No input rows for {self.table}, nothing to collect")
            return 0

        total = 0
        workers = max(1, min(self.ctx.fanout_workers, len(rows)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.collect_one, row) for row in rows]
            try:
                for future in as_completed(futures):
                    total += future.result()
            except BaseException:
                # one failed sub-collection fails the whole resource
                self._abort.set()
                for future in futures:
                    future.cancel()
                raise
        return total
