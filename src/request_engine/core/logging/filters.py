"""Log filters: correlation id and static extra fields."""

import logging
import threading
from typing import Any, Dict, Optional

_correlation = threading.local()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation id for the current thread.

    Example:
        >>> set_correlation_id("batch-42")
        >>> logger.info("Sync started")  # record gets correlation_id=batch-42
    """
    _correlation.value = correlation_id


def get_correlation_id() -> Optional[str]:
    return getattr(_correlation, 'value', None)


def clear_correlation_id() -> None:
    _correlation.__dict__.pop('value', None)


class CorrelationIdFilter(logging.Filter):
    """
    Adds the thread's correlation id to records.

    A ``correlation_id`` passed explicitly with the record wins; the engine
    passes the task's request id this way, because lifecycle events are
    logged from the transport delivery thread.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, 'correlation_id', None) is None:
            correlation_id = get_correlation_id()
            if correlation_id:
                record.correlation_id = correlation_id
        return True


class ExtraFieldsFilter(logging.Filter):
    """
    Adds static fields (service, environment, ...) to every record.

    Fields already present on the record are not overwritten.
    """

    def __init__(self, extra_fields: Dict[str, Any]):
        super().__init__()
        self.extra_fields = dict(extra_fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
