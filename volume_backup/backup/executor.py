"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Stop containers labelled for stopping
2. Create compressed archive of the backup sources
3. Restart the stopped containers (always, even if step 2 failed)
4. Encrypt the archive (if a passphrase is configured)
5. Copy the archive to S3 and/or the local archive directory
6. Remove the local working copy
7. Prune backups older than the retention period

The first failing step aborts the run. A failure to restart containers does
not abort the remaining steps but is raised once they are done.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import Config
from .compression import BackupArtifact, build_artifact
from .containers import ContainerManager
from .distribution import clean, send
from .encryption import encrypt_artifact
from .retention import RetentionManager
from .stats import Stats
from .storage import create_storages


logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Runs one backup with explicit collaborators.

    Attributes:
        config: Run configuration
        containers: Container manager (engine may be None)
        storages: Storage targets receiving the backup
        retention: Retention manager used for pruning
        artifact: The backup file once it has been created
        stats: Counters for the run summary
        error: The error that aborted the run, if any
    """

    def __init__(self, config: Config, docker_client=None, storages: Optional[list] = None,
                 retention: Optional[RetentionManager] = None):
        self.config = config
        self.containers = ContainerManager(docker_client, config.stop_container_label)
        self.storages = create_storages(config) if storages is None else storages
        self.retention = retention or RetentionManager.from_config(config)
        self.artifact: Optional[BackupArtifact] = None
        self.stats = Stats()
        self.error: Optional[Exception] = None

    def execute(self) -> Stats:
        """
        Execute the backup.

        Returns:
            Stats of the run

        Raises:
            BackupError: The first fatal error, or the container restart
                error if everything else succeeded
        """
        self.stats.start_time = datetime.now()
        self._log("Starting backup")

        try:
            self._execute_workflow()
        except Exception as e:
            self.error = e
            self._log(f"Backup failed: {e}", level=logging.ERROR)
            if self.artifact is not None:
                self._log(f"Backup file left at {self.artifact.path}", level=logging.WARNING)
            raise
        finally:
            self.stats.containers = self.containers.stats
            self.stats.end_time = datetime.now()
            for line in self.stats.summary().splitlines():
                logger.info(line)

        if self.containers.restart_error is not None:
            raise self.containers.restart_error

        return self.stats

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        self.containers.run_with_containers_paused(self._take_backup)
        self._log("Successfully took backup.")

        if self.config.encryption_passphrase:
            self.artifact = encrypt_artifact(self.artifact, self.config.encryption_passphrase)
            self._log("Successfully encrypted backup.")

        send(self.artifact, self.storages)
        self._log("Successfully copied backup.")

        clean(self.artifact)
        self.artifact = None
        self._log("Successfully cleaned local backup.")

        if self.retention.enabled:
            self.stats.storages = self.retention.enforce(self.storages)
            self._log("Successfully pruned old backups.")

    def _take_backup(self):
        self.artifact = build_artifact(
            self.config.backup_sources,
            self.config.backup_filename,
            self.config.temp_dir
        )
        size = self.artifact.size
        self.stats.backup_file.name = self.artifact.name
        self.stats.backup_file.full_path = self.artifact.path
        self.stats.backup_file.size = size
        self._log(f"Archive created: {self.artifact.name} ({size / 1024 / 1024:.2f} MB)")

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp to the run log.

        Args:
            message: Log message
            level: Level to emit the message at
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.stats.log_output.append(f"[{timestamp}] {message}")
        logger.log(level, message)
