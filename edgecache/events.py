"""Observability events and the interface that records them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


@dataclass
class FrontendEvent:
    timestamp: datetime = field(default_factory=_now)
    client_ip: str = ""
    url: str = ""
    user_agent: str = ""
    response_time: int = 0
    ttfb: int = 0
    num_bytes: int = 0
    status_code: int = 0
    cache_hit: bool = False


@dataclass
class BackendEvent:
    timestamp: datetime = field(default_factory=_now)
    origin_server_ip: str = ""
    url: str = ""
    response_time: int = 0
    ttfb: int = 0
    num_bytes: int = 0
    status_code: int = 0


@dataclass
class StorageEvent:
    timestamp: datetime = field(default_factory=_now)
    url: str = ""
    operation: str = ""
    response_time: int = 0
    num_bytes: int = 0


@dataclass
class StorageDiskMetricsEvent:
    timestamp: datetime = field(default_factory=_now)
    disk_usage: int = 0
    total_contents: int = 0


@runtime_checkable
class ObservabilityHandler(Protocol):
    """Receives events from the frontend, backend and storage."""

    def record_event_frontend(self, event: FrontendEvent) -> None:
        """Record a served client request."""

    def record_event_backend(self, event: BackendEvent) -> None:
        """Record an origin fetch."""

    def record_event_storage(self, event: StorageEvent) -> None:
        """Record a storage operation."""

    def record_event_storage_disk_metrics(self, event: StorageDiskMetricsEvent) -> None:
        """Record storage disk usage."""


def format_frontend_event(event: FrontendEvent) -> str:
    return (
        f"Timestamp: {_rfc3339(event.timestamp)}, ClientIP: {event.client_ip}, "
        f"URL: {event.url}, UserAgent: {event.user_agent}, "
        f"ResponseTime: {event.response_time}ms, TTFB: {event.ttfb}ms, "
        f"Bytes: {event.num_bytes}, StatusCode: {event.status_code}, "
        f"CacheHit: {str(bool(event.cache_hit)).lower()}"
    )


def format_backend_event(event: BackendEvent) -> str:
    return (
        f"Timestamp: {_rfc3339(event.timestamp)}, OriginServerIP: {event.origin_server_ip}, "
        f"URL: {event.url}, ResponseTime: {event.response_time}ms, TTFB: {event.ttfb}ms, "
        f"Bytes: {event.num_bytes}, StatusCode: {event.status_code}"
    )


def format_storage_event(event: StorageEvent) -> str:
    return (
        f"Timestamp: {_rfc3339(event.timestamp)}, URL: {event.url}, "
        f"ResponseTime: {event.response_time}ms, Bytes: {event.num_bytes}, "
        f"Operation: {event.operation}"
    )


def format_storage_disk_metrics_event(event: StorageDiskMetricsEvent) -> str:
    return (
        f"Timestamp: {_rfc3339(event.timestamp)}, DiskUsage: {event.disk_usage}, "
        f"TotalContents: {event.total_contents}"
    )