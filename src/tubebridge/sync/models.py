"""Data models for sync passes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from tubebridge.archive.models import EntryAction


class SyncActionKind(Enum):
    """Playlist mutation issued against the archive."""
    CREATE = "create"
    REMOVE = "remove"
    TOP = "top"
    BOTTOM = "bottom"
    UP = "up"
    DOWN = "down"

    @property
    def entry_action(self) -> EntryAction:
        return EntryAction(self.value)


@dataclass
class SyncAction:
    """One playlist mutation. UP/DOWN repeat ``steps`` times; UP moves toward the start."""
    kind: SyncActionKind
    youtube_id: str
    steps: int = 1
    label: Optional[str] = None


class SyncStatus(Enum):
    """Outcome of a sync pass."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class SyncResult:
    """Counters for a single sync pass."""
    task: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def fail(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def abort(self, message: str) -> 'SyncResult':
        self.aborted = True
        self.errors.append(message)
        return self.finish()

    def finish(self) -> 'SyncResult':
        self.finished_at = datetime.now()
        return self

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    @property
    def status(self) -> SyncStatus:
        if self.cancelled:
            return SyncStatus.CANCELLED
        if self.aborted:
            return SyncStatus.FAILURE if self.errors else SyncStatus.SKIPPED
        if self.failed:
            return SyncStatus.PARTIAL if self.succeeded else SyncStatus.FAILURE
        return SyncStatus.SUCCESS

    def summary(self) -> str:
        return (f"{self.task}: {self.succeeded} synced, {self.failed} failed, "
                f"{self.skipped} skipped in {self.duration:.1f}s")


@dataclass
class SyncHistoryEntry:
    """Record of a finished sync pass."""
    task: str
    status: str
    processed: int = 0
    failed: int = 0
    details: Optional[str] = None
    sync_time: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None  # Database-assigned ID
