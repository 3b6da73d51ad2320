from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterable, Iterator, Optional, Union

from workflow_store.core.settings import get_store_settings


# Context variables for enriched logging. Never consulted for authorization.
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
project_ids_var: ContextVar[Optional[str]] = ContextVar("project_ids", default=None)


class LoggingContextFilter(logging.Filter):
    """
    Logging filter that injects correlation_id and project_ids from contextvars
    into each log record so formatters can include them.

    If no values are present in the context, placeholders are used.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        cid = correlation_id_var.get()
        pids = project_ids_var.get()
        setattr(record, "correlation_id", cid or "-")
        setattr(record, "project_ids", pids or "-")
        return True


# PUBLIC_INTERFACE
@contextmanager
def bind_log_context(
    *,
    correlation_id: Optional[str] = None,
    project_ids: Optional[Iterable[str]] = None,
) -> Iterator[None]:
    """Set logging context values for the duration of the block."""
    token_corr = correlation_id_var.set(correlation_id)
    token_pids = project_ids_var.set(",".join(project_ids) if project_ids is not None else None)
    try:
        yield
    finally:
        correlation_id_var.reset(token_corr)
        project_ids_var.reset(token_pids)


# PUBLIC_INTERFACE
def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """
    Configure root logging with a structured format and context filter.

    The level defaults to StoreSettings.LOG_LEVEL (env ``LOG_LEVEL``).
    """
    if level is None:
        level = get_store_settings().LOG_LEVEL
    handler = logging.StreamHandler(stream=sys.stdout)
    fmt = (
        "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | projects=%(project_ids)s | "
        "%(message)s"
    )
    formatter = logging.Formatter(fmt=fmt)
    handler.setFormatter(formatter)
    handler.addFilter(LoggingContextFilter())

    root = logging.getLogger()
    # Remove pre-existing default handlers configured elsewhere (e.g., basicConfig)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
