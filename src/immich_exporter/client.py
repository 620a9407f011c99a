"""
Client for the Immich admin API. Three read-only endpoints, each decoded
into the value objects in immich_exporter.models.

One attempt per call, no caching. Every failure surfaces as an ImmichError
subclass so callers only need a single except clause.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import httpx

from immich_exporter.errors import DecodeError, HTTPStatusError, TransportError
from immich_exporter.models import (
    JobQueueStatus,
    LibraryStatistics,
    StorageStatus,
    decode_jobs,
)

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

JOBS_PATH = "/api/jobs"
STATISTICS_PATH = "/api/server/statistics"
STORAGE_PATH = "/api/server/storage"


class ImmichClient:

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "x-api-key": api_key,
                "Accept": "application/json",
            },
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def url_for(self, path: str) -> str:
        return self._base_url + path

    def _read_body(self, url: str) -> Tuple[int, bytes]:
        # httpx timeouts apply per connect/read/write; the deadline caps the whole exchange
        deadline = time.monotonic() + self._timeout
        try:
            with self._client.stream("GET", url) as response:
                chunks = []
                for chunk in response.iter_bytes():
                    if time.monotonic() > deadline:
                        raise TransportError(f"GET {url}: timed out after {self._timeout:g}s")
                    chunks.append(chunk)
                return response.status_code, b"".join(chunks)
        except httpx.DecodingError as e:
            raise DecodeError(f"GET {url}: undecodable body: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"GET {url}: {e}") from e

    def _get_json(self, path: str) -> Any:
        url = self.url_for(path)
        log.debug("GET %s", url)
        status, body = self._read_body(url)

        if status != httpx.codes.OK:
            raise HTTPStatusError(status, url, body=body[:200].decode("utf-8", errors="replace"))

        try:
            return json.loads(body)
        except ValueError as e:
            raise DecodeError(f"GET {url}: invalid JSON: {e}") from e

    def fetch_jobs(self) -> Dict[str, JobQueueStatus]:
        return decode_jobs(self._get_json(JOBS_PATH))

    def fetch_statistics(self) -> LibraryStatistics:
        return LibraryStatistics.from_json(self._get_json(STATISTICS_PATH))

    def fetch_storage(self) -> StorageStatus:
        return StorageStatus.from_json(self._get_json(STORAGE_PATH))

    def ping(self) -> None:
        """Raise ImmichError if the jobs endpoint can't be fetched."""
        self.fetch_jobs()

    def close(self):
        self._client.close()

    def __enter__(self) -> ImmichClient:
        return self

    def __exit__(self, *exc_info):
        self.close()
