"""Operation ID logging context for tracing batch operations across modules.

Pattern applications and imports touch many dates. Each batch sets an
operation ID so every record it produces can be correlated, whichever
module logged it.

Usage:
    from availability_engine.logging_context import get_operation_logger, operation_scope

    logger = get_operation_logger(__name__)
    with operation_scope("apply-PT-1a2b3c"):
        logger.info("Applying pattern")  # record.operation_id == "apply-PT-1a2b3c"
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_operation_id: ContextVar[str] = ContextVar("operation_id", default="NO_OPERATION")


def get_operation_id() -> str:
    """Retrieve the current correlation ID."""
    return _operation_id.get()


def new_operation_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_scope(operation_id: Optional[str] = None, prefix: str = "op") -> Iterator[str]:
    """Bind an operation ID for the duration of a ``with`` block."""
    op_id = operation_id or new_operation_id(prefix)
    token = _operation_id.set(op_id)
    try:
        yield op_id
    finally:
        _operation_id.reset(token)


class OperationIdFilter(logging.Filter):
    """Injects operation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = _operation_id.get()  # type: ignore[attr-defined]
        return True


def get_operation_logger(name: str) -> logging.Logger:
    """Return a logger with the OperationIdFilter attached.

    The filter adds ``operation_id`` to each record so formatters can
    include ``%(operation_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, OperationIdFilter) for f in logger.filters):
        logger.addFilter(OperationIdFilter())
    return logger
