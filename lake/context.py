"""
Per-run state handed to every stage: options, store, API client, cancellation.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from lake import config
from lake.models import PipelineOptions
from lake.store import LakeStore


class CollectionCancelled(Exception):
    """The run was cancelled. Raw records persisted so far remain valid."""


@dataclass
class PipelineContext:
    options: PipelineOptions
    store: LakeStore
    client: Any = None  # engine.asana_client.AsanaClient; None for extract/convert-only runs
    cancel_event: threading.Event = field(default_factory=threading.Event)
    fanout_workers: int = config.FANOUT_WORKERS
    page_size: int = config.DEFAULT_PAGE_SIZE
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("lake.pipeline"))

    @property
    def connection_id(self) -> int:
        return self.options.connection_id

    @property
    def project_id(self) -> str:
        return self.options.project_id

    @property
    def params(self) -> str:
        return self.options.params

    def cancel(self) -> None:
        self.cancel_event.set()

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CollectionCancelled(f"Run cancelled for project {self.project_id}")

    def require_client(self):
        if self.client is None:
            raise RuntimeError("This stage calls the Asana API but the run has no client")
        return self.client
