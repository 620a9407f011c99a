"""
Value objects decoded from the Immich admin API.

Each one is built from a single successful response. Missing keys and nulls
decode to zero (Immich omits empty sections on fresh installs); a value of the
wrong JSON type is a DecodeError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from immich_exporter.errors import DecodeError


def _decode_error(where: str, e: ValidationError) -> DecodeError:
    first = e.errors()[0]
    loc = ".".join(str(part) for part in (where, *first["loc"]))
    return DecodeError(f"{loc}: {first['msg']} (got {first.get('input')!r})")


class ImmichModel(BaseModel):
    """Strict, frozen base for API payloads. JSON null reads as the field default."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value

    @classmethod
    def from_json(cls, payload: Any, where: Optional[str] = None):
        if payload is None:
            payload = {}
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise _decode_error(where or cls.__name__, e) from e


class JobCounts(ImmichModel):
    active: StrictInt = 0
    waiting: StrictInt = 0
    failed: StrictInt = 0
    delayed: StrictInt = 0
    paused: StrictInt = 0
    completed: StrictInt = 0


class QueueStatus(ImmichModel):
    is_active: StrictBool = Field(default=False, alias="isActive")
    is_paused: StrictBool = Field(default=False, alias="isPaused")


class JobQueueStatus(ImmichModel):
    """One named queue from GET /api/jobs."""

    counts: JobCounts = Field(default_factory=JobCounts, alias="jobCounts")
    status: QueueStatus = Field(default_factory=QueueStatus, alias="queueStatus")


_JOBS_ADAPTER = TypeAdapter(Dict[str, JobQueueStatus])


def decode_jobs(payload: Any) -> Dict[str, JobQueueStatus]:
    """Decode the jobs listing into {queue name: status}."""
    if payload is None:
        return {}
    try:
        return _JOBS_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise _decode_error("jobs", e) from e


class UserUsage(ImmichModel):
    username: StrictStr = Field(default="", alias="userName")
    photos: StrictInt = 0
    videos: StrictInt = 0
    usage: StrictInt = 0  # bytes


class LibraryStatistics(ImmichModel):
    """GET /api/server/statistics."""

    photos: StrictInt = 0
    videos: StrictInt = 0
    usage: StrictInt = 0  # bytes
    usage_by_user: Tuple[UserUsage, ...] = Field(default=(), alias="usageByUser")

    @field_validator("usage_by_user", mode="before")
    @classmethod
    def _users_must_be_array(cls, value: Any) -> Any:
        if value is None or isinstance(value, (list, tuple)):
            return value
        raise ValueError("expected array")


class StorageStatus(ImmichModel):
    """GET /api/server/storage. Sizes are the raw byte fields."""

    disk_size: StrictInt = Field(default=0, alias="diskSizeRaw")
    disk_use: StrictInt = Field(default=0, alias="diskUseRaw")
    disk_available: StrictInt = Field(default=0, alias="diskAvailableRaw")
    # 0-100, as reported by Immich
    disk_usage_percentage: StrictFloat = Field(default=0.0, alias="diskUsagePercentage")

    @field_validator("disk_usage_percentage", mode="before")
    @classmethod
    def _whole_percent(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("expected number")
        if isinstance(value, int):
            return float(value)
        return value


@dataclass
class Snapshot:
    """Result of one gather: whatever succeeded, plus what went wrong."""

    timestamp: datetime
    duration_seconds: float = 0.0

    jobs: Optional[Dict[str, JobQueueStatus]] = None
    statistics: Optional[LibraryStatistics] = None
    storage: Optional[StorageStatus] = None

    # resource name -> error, only for the fetches that failed
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    def summary(self) -> dict:
        """Return a plain dict for JSON output."""
        record: dict = {
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "duration_seconds": round(self.duration_seconds, 4),
            "errors": {name: str(err) for name, err in self.errors.items()},
        }
        if self.jobs is not None:
            record["jobs"] = {
                name: {
                    "active": q.counts.active,
                    "waiting": q.counts.waiting,
                    "failed": q.counts.failed,
                    "delayed": q.counts.delayed,
                    "paused": q.counts.paused,
                    "completed": q.counts.completed,
                    "is_active": q.status.is_active,
                    "is_paused": q.status.is_paused,
                }
                for name, q in self.jobs.items()
            }
        if self.statistics is not None:
            record["library"] = {
                "photos": self.statistics.photos,
                "videos": self.statistics.videos,
                "bytes": self.statistics.usage,
                "users": [
                    {"user": u.username, "photos": u.photos, "videos": u.videos, "bytes": u.usage}
                    for u in self.statistics.usage_by_user
                ],
            }
        if self.storage is not None:
            record["storage"] = {
                "total_bytes": self.storage.disk_size,
                "used_bytes": self.storage.disk_use,
                "available_bytes": self.storage.disk_available,
                "usage_percent": self.storage.disk_usage_percentage,
            }
        return record
