"""
Retention policy enforcement for backups.

Removes backups older than the configured number of days from every storage
target. A prune that would remove every matching backup is refused.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Any, Optional

from ..errors import PruneAggregateError, PruneError
from .stats import StorageStats
from .storage import StorageError


logger = logging.getLogger(__name__)


def select_expired(candidates: List[Dict[str, Any]], deadline: datetime) -> List[Dict[str, Any]]:
    """Return the candidates last modified strictly before the deadline."""
    return [c for c in candidates if c['modified'] < deadline]


def is_safe_to_prune(expired: list, candidates: list) -> bool:
    """
    Check whether deleting the expired backups leaves at least one behind.

    Returns:
        True if there is something to delete and at least one backup remains
    """
    return 0 < len(expired) < len(candidates)


class RetentionManager:
    """
    Prunes old backups from storage targets.

    Attributes:
        retention_days: Age in days after which backups are removed; None
            disables pruning
        pruning_leeway: Time to wait before pruning starts
        pruning_prefix: Only backups whose name starts with this are considered
    """

    def __init__(self, retention_days: Optional[int], pruning_leeway: timedelta = timedelta(0),
                 pruning_prefix: str = '', sleep: Callable[[float], None] = time.sleep):
        self.retention_days = retention_days
        self.pruning_leeway = pruning_leeway
        self.pruning_prefix = pruning_prefix
        self._sleep = sleep

    @classmethod
    def from_config(cls, config) -> 'RetentionManager':
        return cls(
            retention_days=config.retention_days,
            pruning_leeway=config.pruning_leeway,
            pruning_prefix=config.pruning_prefix
        )

    @property
    def enabled(self) -> bool:
        return self.retention_days is not None

    def deadline(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=self.retention_days)

    def enforce(self, storages: list) -> Dict[str, StorageStats]:
        """
        Prune every storage target.

        Targets are pruned independently; a failure on one does not stop the
        others. Failures from all targets are reported together at the end.

        Returns:
            Per-target stats keyed by storage name

        Raises:
            PruneAggregateError: If listing or deleting failed anywhere
        """
        if not self.enabled:
            logger.info("No retention configured, skipping pruning")
            return {}

        leeway = self.pruning_leeway.total_seconds()
        if leeway > 0:
            logger.info(f"Waiting {leeway:.0f}s before pruning old backups")
            self._sleep(leeway)

        deadline = self.deadline()
        results = {}
        errors = []

        for storage in storages:
            try:
                stats, storage_errors = self._prune(storage, deadline)
            except PruneError as e:
                errors.append(e)
                continue
            results[storage.name] = stats
            errors.extend(storage_errors)

        if errors:
            raise PruneAggregateError(errors)

        return results

    def prune(self, storage, deadline: datetime) -> StorageStats:
        """
        Prune a single storage target.

        Returns:
            StorageStats for the target

        Raises:
            PruneError: If the backups cannot be listed
            PruneAggregateError: If some deletions failed
        """
        stats, errors = self._prune(storage, deadline)
        if errors:
            raise PruneAggregateError(errors)
        return stats

    def _prune(self, storage, deadline: datetime):
        try:
            candidates = storage.list_backups(self.pruning_prefix)
        except StorageError as e:
            raise PruneError(f"error looking up backups in {storage.name} storage: {e}") from e

        expired = select_expired(candidates, deadline)
        stats = StorageStats(total=len(candidates))

        if not candidates or not expired:
            logger.debug(f"Nothing to prune in {storage.name} storage")
            return stats, []

        if not is_safe_to_prune(expired, candidates):
            logger.warning(
                f"Refusing to delete all {len(candidates)} backup(s) in {storage.name} storage. "
                f"Check your configuration."
            )
            return stats, []

        names = [c['name'] for c in expired]
        errors = storage.delete_backups(names)

        stats.prune_errors = len(errors)
        stats.pruned = len(names) - len(errors)

        if errors:
            logger.warning(f"{len(errors)} error(s) pruning {storage.name} storage")
        else:
            logger.info(
                f"Pruned {stats.pruned} backup(s) older than {deadline:%Y-%m-%d %H:%M} "
                f"from {storage.name} storage"
            )
        return stats, errors
