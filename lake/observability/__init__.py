"""
Observability: structured logging with run and request ids.

Usage:
    from lake.observability import configure_logging, RunContext

    configure_logging("INFO")
    with RunContext() as ctx:
        logger.info("Stage finished", extra={"stage": "collect_task"})
"""

from .context import RequestContext, RunContext, get_request_id, get_run_id
from .logging import HumanFormatter, JSONFormatter, configure_logging, get_logger

__all__ = [
    "HumanFormatter",
    "JSONFormatter",
    "RequestContext",
    "RunContext",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "get_run_id",
]
