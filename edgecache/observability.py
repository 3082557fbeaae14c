"""Collects observability events, aggregates them into metrics and serves /metrics."""

from __future__ import annotations

import logging
import queue
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable
from urllib.parse import urlsplit

from .eventlog import Event, log_event
from .events import BackendEvent, FrontendEvent, StorageDiskMetricsEvent, StorageEvent
from .metrics import CdnMetrics, MetricsRegistry

logger = logging.getLogger(__name__)

DEFAULT_PROM_PORT = 9090
_POLL = 0.05


class ObservabilityHandlerImpl:
    """Queues events and processes them into metrics and log files."""

    def __init__(
        self,
        stop_event: threading.Event | None = None,
        port: int = DEFAULT_PROM_PORT,
        log_directory: str | Path = ".",
        queue_size: int = 10,
    ) -> None:
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.events: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self.prom_port = port
        self.log_directory = log_directory
        self.metrics = CdnMetrics()
        self.registry = MetricsRegistry()
        self.threads: list[threading.Thread] = []

    def _enqueue(self, event: object) -> bool:
        while not self.stop_event.is_set():
            try:
                self.events.put(event, timeout=_POLL)
                return True
            except queue.Full:
                continue
        return False

    def record_event_frontend(self, event: FrontendEvent) -> bool:
        logger.info("frontend event received at observability API")
        return self._enqueue(event)

    def record_event_backend(self, event: BackendEvent) -> bool:
        logger.info("backend event received at observability API")
        return self._enqueue(event)

    def record_event_storage(self, event: StorageEvent) -> bool:
        logger.info("storage event received at observability API")
        return self._enqueue(event)

    def record_event_storage_disk_metrics(self, event: StorageDiskMetricsEvent) -> bool:
        logger.info("storage disk metrics event received at observability API")
        return self._enqueue(event)

    def process_event(self, event: object) -> bool:
        """Aggregate and log one event; return False for an unknown event type."""
        handlers: dict[type, Callable[..., None]] = {
            FrontendEvent: self.metrics.process_frontend_event,
            BackendEvent: self.metrics.process_backend_event,
            StorageEvent: self.metrics.process_storage_event,
            StorageDiskMetricsEvent: self.metrics.process_storage_disk_metrics_event,
        }
        handler = handlers.get(type(event))
        if handler is None:
            logger.warning("Unknown event type: %r", event)
            return False
        handler(event)
        known: Event = event  # type: ignore[assignment]
        log_event(known, self.log_directory)
        return True

    def read_events(self, stop_event: threading.Event | None = None) -> int:
        """Process queued events until stopped; return how many were processed."""
        stop = stop_event if stop_event is not None else self.stop_event
        logger.info("starting observabilityhandler...")
        processed = 0
        while not stop.is_set():
            try:
                event = self.events.get(timeout=_POLL)
            except queue.Empty:
                continue
            try:
                if self.process_event(event):
                    processed += 1
            finally:
                self.events.task_done()
        logger.info("observabilityhandler exiting")
        return processed

    def run_metrics_server(self, stop_event: threading.Event | None = None) -> bool:
        """Serve /metrics until stopped; return False if no port is configured."""
        stop = stop_event if stop_event is not None else self.stop_event
        if self.prom_port <= 0:
            logger.info("Not starting prometheus server, port %s", self.prom_port)
            return False
        registry = self.registry

        class _MetricsHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                if urlsplit(self.path).path != "/metrics":
                    self.send_error(404)
                    return
                body = registry.render().encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, fmt: str, *args: object) -> None:
                logger.debug(fmt, *args)

        logger.info("starting prometheus server on port %s", self.prom_port)
        server = ThreadingHTTPServer(("", self.prom_port), _MetricsHandler)
        serving = threading.Thread(
            target=server.serve_forever, kwargs={"poll_interval": _POLL}, daemon=True
        )
        serving.start()
        try:
            stop.wait()
        finally:
            server.shutdown()
            server.server_close()
            serving.join()
            logger.info("prometheus server exiting")
        return True

    def join(self, timeout: float | None = None) -> None:
        """Wait for the background threads started by init_observability."""
        for thread in self.threads:
            thread.join(timeout)


def init_observability(
    stop_event: threading.Event,
    port: int = DEFAULT_PROM_PORT,
    log_directory: str | Path = ".",
) -> ObservabilityHandlerImpl:
    """Create the handler, register its metrics and start its worker threads."""
    impl = ObservabilityHandlerImpl(stop_event, port, log_directory)
    impl.metrics.register(impl.registry)
    for target in (impl.read_events, impl.run_metrics_server):
        thread = threading.Thread(target=target, args=(stop_event,), daemon=True)
        thread.start()
        impl.threads.append(thread)
    return impl