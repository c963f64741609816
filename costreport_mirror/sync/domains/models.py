"""Domain models for the one-way mirror."""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SyncJobDescriptor:
    """What to mirror and how. Constant for a deployment."""
    source: str
    destination: str
    checksum: bool = True
    chunk_size: str = "64M"
    upload_concurrency: int = 4
    transfers: int = 4
    prune: bool = False
    log_file: Optional[str] = None
    verbose: bool = False
    rclone_config: Optional[str] = None
    dry_run: bool = False


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a completed rclone invocation."""
    returncode: int
    duration_seconds: float
    command: Tuple[str, ...]


@dataclass(frozen=True)
class RemoteObject:
    """One object as listed by `rclone lsjson --hash`."""
    path: str
    size: int
    checksum: Optional[str]


@dataclass
class MirrorPlan:
    """Checksum-based difference between source and destination."""
    to_copy: List[str] = field(default_factory=list)
    to_update: List[str] = field(default_factory=list)
    to_delete: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def transfers(self) -> List[str]:
        return self.to_copy + self.to_update

    @property
    def in_sync(self) -> bool:
        return not (self.to_copy or self.to_update or self.to_delete)
