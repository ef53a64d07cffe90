"""
Unit tests for pipeline errors and run stats (volume_backup/errors.py, volume_backup/backup/stats.py).
"""

from datetime import datetime, timedelta

import pytest

from volume_backup.backup.stats import Stats, StorageStats
from volume_backup.errors import (
    ArchiveError,
    BackupError,
    PruneAggregateError,
    StopAggregateError,
)


class TestBackupError:

    def test_message_names_stage(self):
        assert str(ArchiveError("disk full")) == 'archive: disk full'

    def test_all_errors_share_base(self):
        assert issubclass(StopAggregateError, BackupError)
        assert issubclass(PruneAggregateError, BackupError)


class TestAggregateError:

    def test_count_and_cause(self):
        first = RuntimeError("first")
        error = StopAggregateError([first, RuntimeError("second")])

        assert error.count == 2
        assert error.cause is first
        assert error.__cause__ is first
        assert str(error) == 'containers: 2 error(s) stopping containers, starting with: first'

    def test_from_errors_empty(self):
        assert PruneAggregateError.from_errors([]) is None

    def test_from_errors(self):
        error = PruneAggregateError.from_errors([RuntimeError("denied")])

        assert isinstance(error, PruneAggregateError)
        assert error.count == 1

    def test_requires_errors(self):
        with pytest.raises(ValueError):
            StopAggregateError([])


class TestStats:

    def test_took_seconds(self):
        start = datetime(2024, 1, 15, 12, 0, 0)
        stats = Stats(start_time=start, end_time=start + timedelta(seconds=90))

        assert stats.took_seconds == 90.0

    def test_took_seconds_while_running(self):
        assert Stats().took_seconds == 0.0

    def test_summary(self):
        stats = Stats(end_time=datetime.now())
        stats.backup_file.name = 'backup.tar.gz'
        stats.backup_file.size = 1024 * 1024
        stats.storages['local'] = StorageStats(total=5, pruned=3)

        summary = stats.summary()

        assert 'Backup file: backup.tar.gz (1.00 MB)' in summary
        assert 'Storage local: 5 backup(s), 3 pruned, 0 prune error(s)' in summary
