"""
Workflow data model for Archivist.

Outcome values returned by the status checker and the capture submitter,
the error taxonomy, and the per-run records the batch orchestrator builds
and hands to a result sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


class ErrorKind(str, Enum):
    CHECK_ERROR = "check_error"
    ARCHIVE_ERROR = "archive_error"
    ATTEMPT_LIMIT = "attempt_limit"
    LIMIT_EXCEEDED = "limit_exceeded"
    PROCESSING_ERROR = "processing_error"
    UNKNOWN_ERROR = "unknown_error"


class RunStatus(str, Enum):
    NO_DATA = "no_data"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    LIMIT_REACHED = "limit_reached"
    ERROR = "error"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.kind.value, "message": self.message, "code": self.kind.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorInfo":
        code = str(data.get("code") or "").upper()
        try:
            kind = ErrorKind[code]
        except KeyError:
            kind = ErrorKind.UNKNOWN_ERROR
        return cls(kind=kind, message=str(data.get("message", "")))


UNKNOWN_FAILURE = ErrorInfo(ErrorKind.UNKNOWN_ERROR, "Unknown error")


@dataclass(frozen=True)
class CheckOutcome:
    archived: bool
    snapshot_url: Optional[str] = None
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class SubmissionOutcome:
    success: bool
    snapshot_url: Optional[str] = None
    error: Optional[ErrorInfo] = None
    limit_reached: bool = False

    @classmethod
    def succeeded(cls, snapshot_url: str) -> "SubmissionOutcome":
        return cls(success=True, snapshot_url=snapshot_url)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "SubmissionOutcome":
        return cls(success=False, error=ErrorInfo(kind, message),
                   limit_reached=kind is ErrorKind.LIMIT_EXCEEDED)


@dataclass(frozen=True)
class ResultEntry:
    """One durable record per processed URL."""

    id: str
    original_url: str
    timestamp: str
    title: str
    status: str  # success|failed
    archive_url: Optional[str] = None
    error: Optional[ErrorInfo] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "originalUrl": self.original_url,
            "timestamp": self.timestamp,
            "title": self.title,
            "status": self.status,
        }
        if self.succeeded:
            data["archiveUrl"] = self.archive_url
        else:
            data["error"] = (self.error or UNKNOWN_FAILURE).to_dict()
        return data


@dataclass
class BatchSummary:
    """
    Per-run counters and status.

    Created when a batch starts, updated after every URL and finalized when
    the loop ends. URLs never reached stay in ``pending_urls``.
    """

    total: int = 0
    archived: int = 0
    failed: int = 0
    pending: int = 0
    status: RunStatus = RunStatus.IN_PROGRESS
    started_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    pending_urls: List[str] = field(default_factory=list)

    @classmethod
    def start(cls, urls: List[str]) -> "BatchSummary":
        return cls(total=len(urls), pending=len(urls), pending_urls=list(urls))

    def record(self, entry: ResultEntry) -> None:
        if entry.succeeded:
            self.archived += 1
        else:
            self.failed += 1
        if entry.original_url in self.pending_urls:
            self.pending_urls.remove(entry.original_url)
        self.pending = max(self.pending - 1, 0)
        self.updated_at = utc_now()

    def finalize(self, status: RunStatus) -> None:
        self.status = status
        self.updated_at = utc_now()

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return self.archived / self.total * 100

    def counts(self) -> Dict[str, int]:
        return {"total": self.total, "archived": self.archived,
                "failed": self.failed, "pending": self.pending}


class ResultSink(Protocol):
    """Receives results as a batch progresses (report/progress persistence)."""

    def begin(self, summary: BatchSummary) -> None:
        ...

    def record(self, entry: ResultEntry, summary: BatchSummary) -> None:
        ...

    def finalize(self, summary: BatchSummary, entries: List[ResultEntry], tracker: Any) -> None:
        ...
