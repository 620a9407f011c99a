"""
Fake Immich admin API for local development and tests.

    python -m immich_exporter.mock.fake_immich_server
    IMMICH_URL=http://127.0.0.1:2283 IMMICH_API_KEY=dev-key immich-exporter

Serves /api/jobs, /api/server/statistics and /api/server/storage with
canned payloads. Tests tweak FakeImmichState to inject bad statuses,
broken bodies and slow responses.
"""

from __future__ import annotations

import copy
import json
import random
import threading
import time
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple

from immich_exporter.client import JOBS_PATH, STATISTICS_PATH, STORAGE_PATH

DEFAULT_API_KEY = "dev-key"

SAMPLE_JOBS: Dict[str, Any] = {
    "thumbnailGeneration": {
        "jobCounts": {"active": 3, "waiting": 10, "failed": 2, "delayed": 1, "paused": 0, "completed": 0},
        "queueStatus": {"isActive": True, "isPaused": False},
    },
    "metadataExtraction": {
        "jobCounts": {"active": 0, "waiting": 0, "failed": 0, "delayed": 0, "paused": 0, "completed": 0},
        "queueStatus": {"isActive": False, "isPaused": False},
    },
    "videoConversion": {
        "jobCounts": {"active": 1, "waiting": 4, "failed": 0, "delayed": 0, "paused": 2, "completed": 0},
        "queueStatus": {"isActive": True, "isPaused": True},
    },
    "smartSearch": {
        "jobCounts": {"active": 0, "waiting": 120, "failed": 7, "delayed": 0, "paused": 0, "completed": 0},
        "queueStatus": {"isActive": False, "isPaused": False},
    },
}

SAMPLE_STATISTICS: Dict[str, Any] = {
    "photos": 5000,
    "videos": 250,
    "usage": 48_318_382_080,
    "usagePhotos": 30_064_771_072,
    "usageVideos": 18_253_611_008,
    "usageByUser": [
        {
            "userId": "0b4f0e1a-6a43-4d8a-9b11-1c2d3e4f5a6b",
            "userName": "alice",
            "photos": 3200,
            "videos": 180,
            "usage": 31_138_512_896,
            "quotaSizeInBytes": None,
        },
        {
            "userId": "7c8d9e0f-1a2b-4c3d-8e5f-6a7b8c9d0e1f",
            "userName": "bob",
            "photos": 1800,
            "videos": 70,
            "usage": 17_179_869_184,
            "quotaSizeInBytes": None,
        },
    ],
}

SAMPLE_STORAGE: Dict[str, Any] = {
    "diskSize": "931.5 GiB",
    "diskUse": "45 GiB",
    "diskAvailable": "886.5 GiB",
    "diskSizeRaw": 1_000_000_000_000,
    "diskUseRaw": 48_318_382_080,
    "diskAvailableRaw": 951_681_617_920,
    "diskUsagePercentage": 4.83,
}


def _default_payloads() -> Dict[str, Any]:
    return {
        JOBS_PATH: copy.deepcopy(SAMPLE_JOBS),
        STATISTICS_PATH: copy.deepcopy(SAMPLE_STATISTICS),
        STORAGE_PATH: copy.deepcopy(SAMPLE_STORAGE),
    }


@dataclass
class FakeImmichState:
    """Mutable knobs shared by every request the fake server handles."""

    api_key: str = DEFAULT_API_KEY
    payloads: Dict[str, Any] = field(default_factory=_default_payloads)
    # path -> status code to return instead of 200
    status_overrides: Dict[str, int] = field(default_factory=dict)
    # path -> body bytes sent verbatim with 200 (for malformed JSON)
    raw_bodies: Dict[str, bytes] = field(default_factory=dict)
    # path -> seconds to sleep before answering; "*" applies to all paths
    delays: Dict[str, float] = field(default_factory=dict)
    # path -> seconds between body bytes; headers go out at once
    trickle: Dict[str, float] = field(default_factory=dict)
    # Drift the job counts on each /api/jobs hit, like a busy server
    animate: bool = False

    requests: List[Tuple[str, Dict[str, str]]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _rng: random.Random = field(default_factory=lambda: random.Random(42), repr=False)

    def record(self, path: str, headers: Dict[str, str]):
        with self._lock:
            self.requests.append((path, headers))

    def paths_requested(self) -> List[str]:
        with self._lock:
            return [path for path, _ in self.requests]

    def delay_for(self, path: str) -> float:
        return self.delays.get(path, self.delays.get("*", 0.0))

    def next_jobs(self) -> Any:
        jobs = self.payloads[JOBS_PATH]
        if not self.animate or not isinstance(jobs, dict):
            return jobs
        with self._lock:
            for queue in jobs.values():
                counts = queue["jobCounts"]
                counts["waiting"] = max(0, counts["waiting"] + self._rng.randint(-3, 5))
                counts["active"] = self._rng.randint(0, 4) if counts["waiting"] else 0
                counts["failed"] += 1 if self._rng.random() > 0.95 else 0
                queue["queueStatus"]["isActive"] = counts["active"] > 0
        return jobs


def make_handler(state: FakeImmichState) -> type:

    class _ImmichHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            path = self.path.split("?", 1)[0]
            state.record(path, {k.lower(): v for k, v in self.headers.items()})

            delay = state.delay_for(path)
            if delay:
                time.sleep(delay)

            if self.headers.get("x-api-key") != state.api_key:
                self._send_json(401, {"message": "Invalid API key", "statusCode": 401})
                return

            if path not in state.payloads:
                self._send_json(404, {"message": f"Cannot GET {path}", "statusCode": 404})
                return

            status = state.status_overrides.get(path)
            if status is not None:
                self._send_json(status, {"message": "error", "statusCode": status})
                return

            raw = state.raw_bodies.get(path)
            if raw is not None:
                self._send(200, raw)
                return

            payload = state.next_jobs() if path == JOBS_PATH else state.payloads[path]
            self._send_json(200, payload, trickle=state.trickle.get(path, 0.0))

        def _send_json(self, status: int, payload: Any, trickle: float = 0.0):
            self._send(status, json.dumps(payload).encode(), trickle)

        def _send(self, status: int, body: bytes, trickle: float = 0.0):
            try:
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if not trickle:
                    self.wfile.write(body)
                    return
                for i in range(len(body)):
                    time.sleep(trickle)
                    self.wfile.write(body[i:i + 1])
            except (BrokenPipeError, ConnectionResetError):
                pass  # client gave up (timeout tests)

        def log_message(self, format, *args):
            pass  # Suppress request logging noise

    return _ImmichHandler


class FakeImmichServer:
    """Runs the fake API on a background thread. Port 0 picks a free port."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0, state: Optional[FakeImmichState] = None):
        self.state = state or FakeImmichState()
        self._server = ThreadingHTTPServer((host, port), make_handler(self.state))
        self._server.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> FakeImmichServer:
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        return self

    def serve_forever(self):
        self._server.serve_forever()

    def close(self):
        self._server.server_close()

    def stop(self):
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def __enter__(self) -> FakeImmichServer:
        return self.start()

    def __exit__(self, *exc_info):
        self.stop()


def run_fake_server(host: str = "127.0.0.1", port: int = 2283):
    server = FakeImmichServer(host, port, FakeImmichState(animate=True))
    print(f"Fake Immich API running at {server.url} (x-api-key: {DEFAULT_API_KEY})")
    print("Press Ctrl+C to stop.\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    server.close()
    print("\nServer stopped.")


if __name__ == "__main__":
    run_fake_server()
