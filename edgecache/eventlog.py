"""Append observability events to per-type log files."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Union

from .events import (
    BackendEvent,
    FrontendEvent,
    StorageDiskMetricsEvent,
    StorageEvent,
    format_backend_event,
    format_frontend_event,
    format_storage_disk_metrics_event,
    format_storage_event,
)

logger = logging.getLogger(__name__)

EVENT_LOG_FILES = {
    "FrontendEvent": "frontend.log",
    "BackendEvent": "backend.log",
    "StorageEvent": "storage.log",
    "StorageDiskMetricsEvent": "storagedisk.log",
}

Event = Union[FrontendEvent, BackendEvent, StorageEvent, StorageDiskMetricsEvent]

_FORMATTERS: dict[type, tuple[str, Callable[..., str]]] = {
    FrontendEvent: ("FrontendEvent", format_frontend_event),
    BackendEvent: ("BackendEvent", format_backend_event),
    StorageEvent: ("StorageEvent", format_storage_event),
    StorageDiskMetricsEvent: ("StorageDiskMetricsEvent", format_storage_disk_metrics_event),
}


class EventLogError(Exception):
    """An event could not be written to its log file."""


def log_event_to_file(event_type: str, message: str, directory: str | Path = ".") -> Path:
    """Append a timestamped line to the log file of an event type and return its path."""
    file_name = EVENT_LOG_FILES.get(event_type)
    if file_name is None:
        logger.error("Invalid event type: %s", event_type)
        raise EventLogError(f"invalid event type: {event_type}")
    path = Path(directory) / file_name
    stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
    try:
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(f"{event_type}: {stamp} {message}\n")
    except OSError as exc:
        logger.error("Cannot write event log %s: %s", path, exc)
        raise EventLogError(f"cannot write {path}: {exc}") from exc
    return path


def log_event(event: Event, directory: str | Path = ".") -> Path | None:
    """Format and log an event; return the file written, or None if writing failed."""
    try:
        event_type, formatter = _FORMATTERS[type(event)]
    except KeyError:
        raise TypeError(f"unsupported event: {event!r}") from None
    try:
        return log_event_to_file(event_type, formatter(event), directory)
    except EventLogError as exc:
        logger.info("Error logging %s: %s", event_type, exc)
        return None