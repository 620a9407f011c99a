"""
HTTP endpoints for the exporter:

    /metrics   Prometheus exposition (one Immich snapshot per request)
    /health    200 "ok" if Immich answers, 503 with the error otherwise
    /          small landing page

Served by a threaded wsgiref server. SIGINT/SIGTERM stop accepting new
connections and give in-flight requests a bounded amount of time to finish.
"""

from __future__ import annotations

import logging
import signal
import socket
import threading
from socketserver import ThreadingMixIn
from typing import Callable, Iterable, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import (
    CollectorRegistry,
    GCCollector,
    Gauge,
    PlatformCollector,
    ProcessCollector,
    make_wsgi_app,
)

from immich_exporter import __build_date__, __commit__, __version__
from immich_exporter.client import ImmichClient
from immich_exporter.collector.immich_collector import ImmichCollector
from immich_exporter.errors import ImmichError

log = logging.getLogger(__name__)

DEFAULT_DRAIN_TIMEOUT_SECONDS = 10.0

LANDING_PAGE = b"""<html>
<head><title>Immich Exporter</title></head>
<body>
<h1>Immich Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
<p><a href="/health">Health</a></p>
</body>
</html>
"""


def build_registry(collector: ImmichCollector) -> CollectorRegistry:
    """Fresh registry with the Immich collector, process stats and build info."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)

    build_info = Gauge(
        "immich_exporter_build_info",
        "Build information",
        ["version", "commit", "date"],
        registry=registry,
    )
    build_info.labels(version=__version__, commit=__commit__, date=__build_date__).set(1)

    registry.register(collector)
    return registry


def create_app(registry: CollectorRegistry, client: ImmichClient) -> Callable:
    metrics_app = make_wsgi_app(registry)

    def app(environ, start_response) -> Iterable[bytes]:
        path = environ.get("PATH_INFO") or "/"

        if path == "/metrics":
            return metrics_app(environ, start_response)

        if path == "/health":
            try:
                client.ping()
            except ImmichError as e:
                log.warning("Health check failed: %s", e)
                start_response("503 Service Unavailable", [("Content-Type", "text/plain; charset=utf-8")])
                return [f"unhealthy: {e}".encode()]
            start_response("200 OK", [("Content-Type", "text/plain; charset=utf-8")])
            return [b"ok"]

        if path == "/":
            start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
            return [LANDING_PAGE]

        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"404 page not found\n"]

    return app


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        pass  # Suppress per-request access log


class ExporterHTTPServer(ThreadingMixIn, WSGIServer):
    """One thread per request; counts in-flight requests so shutdown can drain."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, *args, **kwargs):
        self._inflight = 0
        self._idle = threading.Condition()
        super().__init__(*args, **kwargs)

    def process_request(self, request, client_address):
        with self._idle:
            self._inflight += 1
        super().process_request(request, client_address)

    def process_request_thread(self, request, client_address):
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._idle:
                self._inflight -= 1
                self._idle.notify_all()

    @property
    def inflight(self) -> int:
        with self._idle:
            return self._inflight

    def drain(self, timeout: float) -> bool:
        """Wait for in-flight requests. Returns False if the timeout expired first."""
        with self._idle:
            return self._idle.wait_for(lambda: self._inflight == 0, timeout=timeout)


class ExporterHTTPServerV6(ExporterHTTPServer):
    address_family = socket.AF_INET6


class ExporterServer:

    def __init__(
        self,
        app: Callable,
        host: str,
        port: int,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS,
    ):
        self._app = app
        self._host = host
        self._port = port
        self._drain_timeout = drain_timeout
        self._httpd: Optional[ExporterHTTPServer] = None

    @property
    def port(self) -> int:
        """Bound port (differs from the requested one when binding to port 0)."""
        if self._httpd is None:
            return self._port
        return self._httpd.server_port

    def bind(self):
        """Open the listening socket. Raises OSError if the address is unusable."""
        server_class = ExporterHTTPServerV6 if ":" in self._host else ExporterHTTPServer
        self._httpd = make_server(
            self._host,
            self._port,
            self._app,
            server_class=server_class,
            handler_class=_QuietHandler,
        )

    def serve_forever(self):
        if self._httpd is None:
            self.bind()
        log.info("Listening on %s:%d", self._host, self.port)
        self._httpd.serve_forever()

    def shutdown(self):
        """Stop the serve loop. Must not be called from the serving thread."""
        if self._httpd is not None:
            self._httpd.shutdown()

    def close(self) -> bool:
        """Drain in-flight requests (bounded), then release the socket."""
        if self._httpd is None:
            return True
        drained = self._httpd.drain(self._drain_timeout)
        if not drained:
            log.warning(
                "Gave up waiting for %d in-flight request(s) after %.0fs",
                self._httpd.inflight, self._drain_timeout,
            )
        self._httpd.server_close()
        self._httpd = None
        return drained

    def install_signal_handlers(self):
        def _on_signal(signum, frame):
            log.info("Received %s, shutting down...", signal.Signals(signum).name)
            # serve_forever() runs on this thread; shutdown() blocks until it exits
            threading.Thread(target=self.shutdown, name="exporter-shutdown", daemon=True).start()

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)

    def run(self):
        """Bind (unless already bound), serve until SIGINT/SIGTERM, then drain and close."""
        if self._httpd is None:
            self.bind()
        self.install_signal_handlers()
        try:
            self.serve_forever()
        finally:
            self.close()
        log.info("Stopped")
