"""In-process metrics rendered in the Prometheus text exposition format."""

from __future__ import annotations

import bisect
import math
import threading
from typing import Iterable, Iterator, Sequence, Union

from .events import BackendEvent, FrontendEvent, StorageDiskMetricsEvent, StorageEvent

NAMESPACE = "namespace_mycdn"
DEFAULT_BUCKETS = (10.0, 100.0, 200.0, 500.0, 1000.0, 2000.0, 5000.0, 10000.0)

_Sample = tuple[str, tuple[tuple[str, str], ...], float]


def _full_name(namespace: str, name: str) -> str:
    return f"{namespace}_{name}" if namespace and name else name


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_labels(labels: Sequence[tuple[str, str]]) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{name}="{_escape_label(value)}"' for name, value in labels) + "}"


class Gauge:
    """A single value that can go up and down."""

    metric_type = "gauge"

    def __init__(self, name: str = "", help_text: str = "", namespace: str = NAMESPACE) -> None:
        self.name = _full_name(namespace, name)
        self.help_text = help_text
        self._value = 0.0
        self._lock = threading.Lock()

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self) -> None:
        self.add(1.0)

    def add(self, amount: float) -> None:
        with self._lock:
            self._value += float(amount)

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def _samples(self, labels: Iterable[tuple[str, str]] = ()) -> Iterator[_Sample]:
        yield self.name, tuple(labels), self.value


class Histogram:
    """Counts observations into cumulative buckets with inclusive upper bounds."""

    metric_type = "histogram"

    def __init__(
        self,
        name: str = "",
        help_text: str = "",
        buckets: Iterable[float] = DEFAULT_BUCKETS,
        namespace: str = NAMESPACE,
    ) -> None:
        bounds = sorted(float(bound) for bound in buckets)
        if not bounds or len(set(bounds)) != len(bounds):
            raise ValueError("histogram buckets must be non-empty and distinct")
        if not math.isinf(bounds[-1]):
            bounds.append(math.inf)
        self.name = _full_name(namespace, name)
        self.help_text = help_text
        self.buckets = tuple(bounds)
        self._counts = [0] * len(bounds)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        value = float(value)
        index = len(self.buckets) - 1 if math.isnan(value) else bisect.bisect_left(self.buckets, value)
        with self._lock:
            self._counts[index] += 1
            self._sum += value
            self._count += 1

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def bucket_counts(self) -> dict[float, int]:
        """Return the cumulative count for each upper bound."""
        with self._lock:
            counts = list(self._counts)
        result: dict[float, int] = {}
        running = 0
        for bound, count in zip(self.buckets, counts):
            running += count
            result[bound] = running
        return result

    def _samples(self, labels: Iterable[tuple[str, str]] = ()) -> Iterator[_Sample]:
        base = tuple(labels)
        for bound, count in self.bucket_counts().items():
            yield f"{self.name}_bucket", base + (("le", _format_value(bound)),), float(count)
        yield f"{self.name}_sum", base, self.sum
        yield f"{self.name}_count", base, float(self.count)


class _MetricVec:
    metric_type = ""

    def __init__(self, name: str, help_text: str, label_names: Sequence[str], namespace: str) -> None:
        self.name = _full_name(namespace, name)
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._children: dict[tuple[str, ...], Union[Gauge, Histogram]] = {}
        self._lock = threading.Lock()

    def _make_child(self) -> Union[Gauge, Histogram]:
        raise NotImplementedError

    def _child(self, values: Sequence[object]) -> Union[Gauge, Histogram]:
        if len(values) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(values)}"
            )
        key = tuple(str(value) for value in values)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._make_child()
                self._children[key] = child
            return child

    def _samples(self) -> Iterator[_Sample]:
        with self._lock:
            children = sorted(self._children.items())
        for key, child in children:
            yield from child._samples(zip(self.label_names, key))


class GaugeVec(_MetricVec):
    """A family of gauges partitioned by label values."""

    metric_type = "gauge"

    def __init__(
        self, name: str, help_text: str, label_names: Sequence[str], namespace: str = NAMESPACE
    ) -> None:
        super().__init__(name, help_text, label_names, namespace)

    def _make_child(self) -> Gauge:
        return Gauge(self.name, self.help_text, namespace="")

    def labels(self, *args: object) -> Gauge:
        child = self._child(args)
        assert isinstance(child, Gauge)
        return child


class HistogramVec(_MetricVec):
    """A family of histograms partitioned by label values."""

    metric_type = "histogram"

    def __init__(
        self,
        name: str,
        help_text: str,
        label_names: Sequence[str],
        buckets: Iterable[float] = DEFAULT_BUCKETS,
        namespace: str = NAMESPACE,
    ) -> None:
        super().__init__(name, help_text, label_names, namespace)
        self.buckets = tuple(buckets)

    def _make_child(self) -> Histogram:
        return Histogram(self.name, self.help_text, self.buckets, namespace="")

    def labels(self, *args: object) -> Histogram:
        child = self._child(args)
        assert isinstance(child, Histogram)
        return child


Collector = Union[Gauge, Histogram, GaugeVec, HistogramVec]


class MetricsRegistry:
    """Holds named collectors and renders them as exposition text."""

    def __init__(self) -> None:
        self._collectors: dict[str, Collector] = {}
        self._lock = threading.Lock()

    def register(self, *args: Collector) -> None:
        """Register collectors; raise ValueError on a missing or duplicate name."""
        with self._lock:
            seen = set(self._collectors)
            for collector in args:
                if not collector.name:
                    raise ValueError("cannot register a metric without a name")
                if collector.name in seen:
                    raise ValueError(f"duplicate metrics collector registration: {collector.name}")
                seen.add(collector.name)
            for collector in args:
                self._collectors[collector.name] = collector

    def get(self, name: str) -> Collector:
        with self._lock:
            return self._collectors[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._collectors

    def __len__(self) -> int:
        with self._lock:
            return len(self._collectors)

    def render(self) -> str:
        """Return every collector with samples in the text exposition format."""
        with self._lock:
            collectors = sorted(self._collectors.items())
        lines: list[str] = []
        for name, collector in collectors:
            samples = list(collector._samples())
            if not samples:
                continue
            lines.append(f"# HELP {name} {_escape_help(collector.help_text)}")
            lines.append(f"# TYPE {name} {collector.metric_type}")
            for sample_name, labels, value in samples:
                lines.append(f"{sample_name}{_format_labels(labels)} {_format_value(value)}")
        return "\n".join(lines) + "\n" if lines else ""


_FE_LABELS = ("clientip", "url", "user_agent", "status_code", "cache_hit")
_BE_LABELS = ("origin_ip", "url", "status_code")
_STORAGE_LABELS = ("url", "operation")


class CdnMetrics:
    """The cache node's metric set and the aggregation of events into it."""

    def __init__(self, buckets: Iterable[float] = DEFAULT_BUCKETS) -> None:
        buckets = tuple(buckets)
        self.fe_total_req_count = GaugeVec(
            "fe_total_req_count", "Total request count for frontend", _FE_LABELS
        )
        self.fe_total_bytes_transferred = GaugeVec(
            "fe_total_bytes_transferred", "Total bytes transferred for frontend", _FE_LABELS
        )
        self.fe_req_time_to_serve_msec = HistogramVec(
            "fe_time_to_serve", "Time taken to serve frontend requests", _FE_LABELS, buckets
        )
        self.fe_req_ttfb_msec = HistogramVec(
            "fe_time_to_first_byte", "Time to first byte for frontend", _FE_LABELS, buckets
        )
        self.be_total_req_count = GaugeVec(
            "be_total_req_count", "Total request count for backend", _BE_LABELS
        )
        self.be_total_bytes_transferred = GaugeVec(
            "be_total_bytes_transferred", "Total bytes transferred for backend", _BE_LABELS
        )
        self.be_req_response_time_msec = HistogramVec(
            "be_response_time", "Response time for backend", _BE_LABELS, buckets
        )
        self.be_req_ttfb_msec = HistogramVec(
            "be_time_to_serve_firstbyte", "Time to serve first byte for backend", _BE_LABELS, buckets
        )
        self.storage_event_count = GaugeVec(
            "storage_event_count", "Storage event count", _STORAGE_LABELS
        )
        self.storage_total_bytes_served = GaugeVec(
            "storage_total_bytes_served", "Total bytes served from storage", _STORAGE_LABELS
        )
        self.storage_req_response_time_msec = HistogramVec(
            "storage_response_time", "Storage response time", _STORAGE_LABELS, buckets
        )
        self.storage_disk_metrics_event_count = GaugeVec(
            "storage_disk_metrics_event_count",
            "Storage disk metrics event count",
            ("diskUsage", "totalContents"),
        )
        self.storage_disk_usage_percentage = Gauge(
            "storage_disk_usage_percentage", "Storage - disk usage in percentage"
        )
        self.storage_total_contents = Gauge(
            "storage_total_contents", "Storage - Total mumber of content on disk"
        )

    @property
    def collectors(self) -> tuple[Collector, ...]:
        return (
            self.fe_total_req_count,
            self.fe_total_bytes_transferred,
            self.fe_req_time_to_serve_msec,
            self.fe_req_ttfb_msec,
            self.be_total_req_count,
            self.be_total_bytes_transferred,
            self.be_req_response_time_msec,
            self.be_req_ttfb_msec,
            self.storage_event_count,
            self.storage_total_bytes_served,
            self.storage_req_response_time_msec,
            self.storage_disk_metrics_event_count,
            self.storage_disk_usage_percentage,
            self.storage_total_contents,
        )

    def register(self, registry: MetricsRegistry) -> None:
        registry.register(*self.collectors)

    def process_frontend_event(self, event: FrontendEvent) -> None:
        labels = (
            event.client_ip,
            event.url,
            event.user_agent,
            str(event.status_code),
            str(bool(event.cache_hit)).lower(),
        )
        self.fe_total_req_count.labels(*labels).inc()
        self.fe_total_bytes_transferred.labels(*labels).add(event.num_bytes)
        self.fe_req_time_to_serve_msec.labels(*labels).observe(event.response_time)
        self.fe_req_ttfb_msec.labels(*labels).observe(event.response_time)

    def process_backend_event(self, event: BackendEvent) -> None:
        labels = (event.origin_server_ip, event.url, str(event.status_code))
        self.be_total_req_count.labels(*labels).inc()
        self.be_total_bytes_transferred.labels(*labels).add(event.num_bytes)
        self.be_req_response_time_msec.labels(*labels).observe(event.response_time)
        self.be_req_ttfb_msec.labels(*labels).observe(event.response_time)

    def process_storage_event(self, event: StorageEvent) -> None:
        labels = (event.url, event.operation)
        self.storage_event_count.labels(*labels).inc()
        self.storage_total_bytes_served.labels(*labels).add(event.num_bytes)
        self.storage_req_response_time_msec.labels(*labels).observe(event.response_time)

    def process_storage_disk_metrics_event(self, event: StorageDiskMetricsEvent) -> None:
        self.storage_total_contents.set(event.total_contents)
        self.storage_disk_usage_percentage.set(event.disk_usage)