"""
Error types raised by the backup pipeline.

Every error names the stage it originated from. Errors collected across a
loop (stopping containers, deleting old backups) are folded into a single
AggregateError that keeps the number of failures and the first cause.
"""

from typing import List, Optional


class BackupError(Exception):
    """Base class for all pipeline errors."""

    stage = 'backup'

    def __init__(self, message: str):
        super().__init__(f"{self.stage}: {message}")


class ConfigError(BackupError):
    """Raised when the configuration is missing or malformed."""
    stage = 'init'


class LockError(BackupError):
    """Raised when the run lock cannot be acquired or released."""
    stage = 'lock'


class AggregateError(BackupError):
    """
    Several failures of the same kind, reported as one.

    Attributes:
        errors: All collected errors, in the order they occurred
        count: Number of collected errors
        cause: The first collected error
    """

    action = 'running stage'

    def __init__(self, errors: List[Exception]):
        if not errors:
            raise ValueError("AggregateError needs at least one error")
        self.errors = list(errors)
        super().__init__(
            f"{self.count} error(s) {self.action}, starting with: {self.cause}"
        )
        self.__cause__ = self.cause

    @property
    def count(self) -> int:
        return len(self.errors)

    @property
    def cause(self) -> Exception:
        return self.errors[0]

    @classmethod
    def from_errors(cls, errors: List[Exception]) -> Optional['AggregateError']:
        """Return an aggregate for the given errors, or None if there are none."""
        if not errors:
            return None
        return cls(errors)


class DiscoveryError(BackupError):
    """Raised when containers cannot be listed."""
    stage = 'containers'


class StopAggregateError(AggregateError):
    stage = 'containers'
    action = 'stopping containers'


class RestartAggregateError(AggregateError):
    stage = 'containers'
    action = 'restarting containers and services'


class ServiceNotFoundError(BackupError):
    """Raised when a swarm service vanished while its containers were stopped."""
    stage = 'containers'


class FilenameTemplateError(BackupError):
    stage = 'archive'


class ArchiveError(BackupError):
    stage = 'archive'


class EncryptionError(BackupError):
    stage = 'encrypt'


class DistributionError(BackupError):
    stage = 'copy'


class PruneAggregateError(AggregateError):
    stage = 'prune'
    action = 'removing old backups'


class PruneError(BackupError):
    """Raised when old backups cannot be listed for pruning."""
    stage = 'prune'
