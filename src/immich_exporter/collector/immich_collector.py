"""
Prometheus collector for Immich. Each scrape fetches jobs, statistics and
storage in parallel, then maps whatever came back into gauges.

A failed resource is logged and its families are left out of that scrape;
the other resources and the two immich_scrape_* gauges are always emitted.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Sequence, Tuple

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from immich_exporter.client import ImmichClient
from immich_exporter.errors import ImmichError
from immich_exporter.models import Snapshot

log = logging.getLogger(__name__)

NAMESPACE = "immich"

RESOURCES = ("jobs", "statistics", "storage")


@dataclass(frozen=True)
class MetricSpec:
    name: str
    documentation: str
    labels: Tuple[str, ...] = ()

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.name, self.documentation, labels=list(self.labels))


def _spec(subsystem: str, name: str, documentation: str, labels: Sequence[str] = ()) -> MetricSpec:
    return MetricSpec(f"{NAMESPACE}_{subsystem}_{name}", documentation, tuple(labels))


def _bool_value(flag: bool) -> float:
    return 1.0 if flag else 0.0


class ImmichCollector(Collector):
    """Custom collector; register it on a CollectorRegistry."""

    def __init__(self, client: ImmichClient):
        self._client = client

        # Job metrics (per queue)
        self.job_active = _spec("job", "active", "Number of active jobs", ["queue"])
        self.job_waiting = _spec("job", "waiting", "Number of waiting jobs", ["queue"])
        self.job_failed = _spec("job", "failed", "Number of failed jobs", ["queue"])
        self.job_delayed = _spec("job", "delayed", "Number of delayed jobs", ["queue"])
        self.job_paused = _spec("job", "paused", "Number of paused jobs", ["queue"])
        self.job_completed = _spec("job", "completed", "Number of completed jobs", ["queue"])
        self.queue_active = _spec("queue", "active", "Whether queue is active (1=yes, 0=no)", ["queue"])
        self.queue_paused = _spec("queue", "paused", "Whether queue is paused (1=yes, 0=no)", ["queue"])

        # Library metrics
        self.library_photos = _spec("library", "photos", "Total photos")
        self.library_videos = _spec("library", "videos", "Total videos")
        self.library_bytes = _spec("library", "bytes", "Total storage usage in bytes")
        self.user_photos = _spec("user", "photos", "Photos per user", ["user"])
        self.user_videos = _spec("user", "videos", "Videos per user", ["user"])
        self.user_bytes = _spec("user", "bytes", "Storage per user in bytes", ["user"])

        # Storage metrics
        self.storage_total = _spec("storage", "total_bytes", "Total disk size")
        self.storage_used = _spec("storage", "used_bytes", "Disk used")
        self.storage_available = _spec("storage", "available_bytes", "Disk available")
        self.storage_usage_percent = _spec("storage", "usage_percent", "Disk usage percentage")

        # Exporter metrics
        self.scrape_duration = _spec("scrape", "duration_seconds", "Time taken to scrape")
        self.scrape_success = _spec("scrape", "success", "Whether scrape succeeded (1=yes, 0=no)")

        self.catalog: List[MetricSpec] = [
            self.job_active, self.job_waiting, self.job_failed, self.job_delayed,
            self.job_paused, self.job_completed, self.queue_active, self.queue_paused,
            self.library_photos, self.library_videos, self.library_bytes,
            self.user_photos, self.user_videos, self.user_bytes,
            self.storage_total, self.storage_used, self.storage_available,
            self.storage_usage_percent,
            self.scrape_duration, self.scrape_success,
        ]

    def describe(self) -> Iterator[GaugeMetricFamily]:
        # Registry uses this instead of calling collect() at register time
        for spec in self.catalog:
            yield spec.family()

    def snapshot(self) -> Snapshot:
        """Fetch all three resources concurrently and wait for every one."""
        start = time.monotonic()
        fetchers = {
            "jobs": self._client.fetch_jobs,
            "statistics": self._client.fetch_statistics,
            "storage": self._client.fetch_storage,
        }

        with ThreadPoolExecutor(max_workers=len(fetchers), thread_name_prefix="immich-fetch") as pool:
            futures = {name: pool.submit(fetch) for name, fetch in fetchers.items()}

        results: Dict[str, object] = {}
        errors: Dict[str, Exception] = {}
        for name in RESOURCES:
            try:
                results[name] = futures[name].result()
            except ImmichError as e:
                log.warning("Error fetching %s: %s", name, e)
                errors[name] = e
            except Exception as e:
                log.exception("Unexpected error fetching %s", name)
                errors[name] = e

        return Snapshot(
            timestamp=datetime.now(timezone.utc),
            duration_seconds=time.monotonic() - start,
            jobs=results.get("jobs"),
            statistics=results.get("statistics"),
            storage=results.get("storage"),
            errors=errors,
        )

    def collect(self) -> Iterator[GaugeMetricFamily]:
        snap = self.snapshot()
        for family in self.families(snap):
            if family.samples:
                yield family

    def families(self, snap: Snapshot) -> List[GaugeMetricFamily]:
        """Map a snapshot onto fresh instances of the catalog, in catalog order."""
        fams = {spec.name: spec.family() for spec in self.catalog}

        def add(spec: MetricSpec, value: float, *labels: str):
            fams[spec.name].add_metric(list(labels), float(value))

        if snap.jobs is not None:
            for queue, job in snap.jobs.items():
                add(self.job_active, job.counts.active, queue)
                add(self.job_waiting, job.counts.waiting, queue)
                add(self.job_failed, job.counts.failed, queue)
                add(self.job_delayed, job.counts.delayed, queue)
                add(self.job_paused, job.counts.paused, queue)
                add(self.job_completed, job.counts.completed, queue)
                add(self.queue_active, _bool_value(job.status.is_active), queue)
                add(self.queue_paused, _bool_value(job.status.is_paused), queue)

        if snap.statistics is not None:
            stats = snap.statistics
            add(self.library_photos, stats.photos)
            add(self.library_videos, stats.videos)
            add(self.library_bytes, stats.usage)
            for user in stats.usage_by_user:
                add(self.user_photos, user.photos, user.username)
                add(self.user_videos, user.videos, user.username)
                add(self.user_bytes, user.usage, user.username)

        if snap.storage is not None:
            storage = snap.storage
            add(self.storage_total, storage.disk_size)
            add(self.storage_used, storage.disk_use)
            add(self.storage_available, storage.disk_available)
            add(self.storage_usage_percent, storage.disk_usage_percentage)

        add(self.scrape_duration, snap.duration_seconds)
        add(self.scrape_success, _bool_value(snap.success))

        return [fams[spec.name] for spec in self.catalog]
