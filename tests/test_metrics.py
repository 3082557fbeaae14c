import math

import pytest

from edgecache.events import BackendEvent, FrontendEvent, StorageDiskMetricsEvent, StorageEvent
from edgecache.metrics import (
    CdnMetrics,
    Gauge,
    GaugeVec,
    Histogram,
    HistogramVec,
    MetricsRegistry,
)


def test_gauge_inc_add_set():
    gauge = Gauge("g", "help")
    gauge.inc()
    gauge.inc()
    assert gauge.value == 2
    gauge.add(3.5)
    assert gauge.value == 5.5
    gauge.set(42)
    assert gauge.value == 42


def test_gauge_name_has_namespace():
    assert Gauge("fe_total_req_count").name == "namespace_mycdn_fe_total_req_count"


def test_histogram_buckets_are_cumulative_and_inclusive():
    hist = Histogram("h", "help")
    for value in (5, 10, 150, 20000):
        hist.observe(value)
    counts = hist.bucket_counts()
    assert counts[10.0] == 2
    assert counts[100.0] == 2
    assert counts[200.0] == 3
    assert counts[10000.0] == 3
    assert counts[math.inf] == 4
    assert hist.count == 4
    assert hist.sum == 5 + 10 + 150 + 20000


def test_histogram_rejects_bad_buckets():
    with pytest.raises(ValueError):
        Histogram("h", "help", buckets=[])
    with pytest.raises(ValueError):
        Histogram("h", "help", buckets=[1, 1])


def test_vec_labels_count_checked_and_children_shared():
    vec = GaugeVec("v", "help", ("a", "b"))
    with pytest.raises(ValueError):
        vec.labels("only-one")
    vec.labels("x", "y").inc()
    vec.labels("x", "y").inc()
    assert vec.labels("x", "y").value == 2
    assert vec.labels("x", "z").value == 0


def test_histogram_vec_children():
    vec = HistogramVec("hv", "help", ("a",))
    vec.labels("one").observe(7)
    assert vec.labels("one").count == 1
    assert vec.labels("two").count == 0
    with pytest.raises(ValueError):
        vec.labels()


def test_registry_rejects_duplicates_and_unnamed():
    registry = MetricsRegistry()
    registry.register(Gauge("dup", "help"))
    with pytest.raises(ValueError):
        registry.register(Gauge("dup", "other"))
    with pytest.raises(ValueError):
        registry.register(Gauge(namespace=""))
    assert len(registry) == 1


def test_render_gauge_and_histogram():
    registry = MetricsRegistry()
    gauge = Gauge("storage_total_contents", "Storage contents")
    hist = HistogramVec("storage_response_time", "Storage response time", ("url",))
    registry.register(gauge, hist)
    gauge.set(3)
    hist.labels("/a").observe(50)
    text = registry.render()
    assert "# TYPE namespace_mycdn_storage_total_contents gauge" in text
    assert "namespace_mycdn_storage_total_contents 3\n" in text
    assert "# TYPE namespace_mycdn_storage_response_time histogram" in text
    assert 'namespace_mycdn_storage_response_time_bucket{url="/a",le="+Inf"} 1' in text
    assert 'namespace_mycdn_storage_response_time_count{url="/a"} 1' in text


def test_render_skips_empty_vectors_and_escapes_labels():
    registry = MetricsRegistry()
    empty = GaugeVec("empty", "nothing", ("a",))
    used = GaugeVec("used", "something", ("a",))
    registry.register(empty, used)
    used.labels('say "hi"').inc()
    text = registry.render()
    assert "namespace_mycdn_empty" not in text
    assert 'a="say \\"hi\\""' in text


def test_cdn_metrics_register_all():
    registry = MetricsRegistry()
    metrics = CdnMetrics()
    metrics.register(registry)
    assert len(registry) == len(metrics.collectors)
    assert "namespace_mycdn_fe_time_to_serve" in registry
    assert "namespace_mycdn_storage_disk_usage_percentage" in registry
    with pytest.raises(ValueError):
        metrics.register(registry)


def test_process_frontend_event():
    metrics = CdnMetrics()
    event = FrontendEvent(
        client_ip="10.0.0.1",
        url="http://example.com/a",
        user_agent="agent",
        response_time=120,
        ttfb=5,
        num_bytes=512,
        status_code=200,
        cache_hit=True,
    )
    metrics.process_frontend_event(event)
    metrics.process_frontend_event(event)
    labels = ("10.0.0.1", "http://example.com/a", "agent", "200", "true")
    assert metrics.fe_total_req_count.labels(*labels).value == 2
    assert metrics.fe_total_bytes_transferred.labels(*labels).value == 512 * 2
    assert metrics.fe_req_time_to_serve_msec.labels(*labels).count == 2
    assert metrics.fe_req_ttfb_msec.labels(*labels).sum == 120 * 2


def test_process_backend_event():
    metrics = CdnMetrics()
    metrics.process_backend_event(
        BackendEvent(origin_server_ip="10.0.0.2", url="/o", response_time=30, num_bytes=9, status_code=404)
    )
    labels = ("10.0.0.2", "/o", "404")
    assert metrics.be_total_req_count.labels(*labels).value == 1
    assert metrics.be_total_bytes_transferred.labels(*labels).value == 9
    assert metrics.be_req_response_time_msec.labels(*labels).sum == 30
    assert metrics.be_req_ttfb_msec.labels(*labels).count == 1


def test_process_storage_events():
    metrics = CdnMetrics()
    metrics.process_storage_event(StorageEvent(url="/s", operation="Read", response_time=4, num_bytes=100))
    assert metrics.storage_event_count.labels("/s", "Read").value == 1
    assert metrics.storage_total_bytes_served.labels("/s", "Read").value == 100
    assert metrics.storage_req_response_time_msec.labels("/s", "Read").count == 1
    metrics.process_storage_disk_metrics_event(StorageDiskMetricsEvent(disk_usage=37, total_contents=12))
    assert metrics.storage_disk_usage_percentage.value == 37
    assert metrics.storage_total_contents.value == 12