"""Counters collected during a backup run, logged as a summary at the end."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class ContainerStats:
    all: int = 0
    to_stop: int = 0
    stopped: int = 0
    stop_errors: int = 0


@dataclass
class BackupFileStats:
    name: str = ''
    full_path: str = ''
    size: int = 0


@dataclass
class StorageStats:
    """Status of one storage target after pruning."""
    total: int = 0
    pruned: int = 0
    prune_errors: int = 0


@dataclass
class Stats:
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    locked_seconds: float = 0.0
    containers: ContainerStats = field(default_factory=ContainerStats)
    backup_file: BackupFileStats = field(default_factory=BackupFileStats)
    storages: Dict[str, StorageStats] = field(default_factory=dict)
    log_output: List[str] = field(default_factory=list)

    @property
    def took_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def summary(self) -> str:
        lines = [
            f"Took {self.took_seconds:.2f}s (waited {self.locked_seconds:.2f}s for lock)",
            f"Containers: {self.containers.all} running, {self.containers.to_stop} to stop, "
            f"{self.containers.stopped} stopped, {self.containers.stop_errors} stop error(s)",
        ]
        if self.backup_file.name:
            lines.append(
                f"Backup file: {self.backup_file.name} ({self.backup_file.size / 1024 / 1024:.2f} MB)"
            )
        for name, storage in self.storages.items():
            lines.append(
                f"Storage {name}: {storage.total} backup(s), {storage.pruned} pruned, "
                f"{storage.prune_errors} prune error(s)"
            )
        return '\n'.join(lines)
