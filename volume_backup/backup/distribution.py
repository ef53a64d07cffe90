"""Copying the finished artifact to its storage targets."""

import logging
import os
from typing import List

from ..errors import DistributionError
from .compression import BackupArtifact
from .storage import LocalStorage, StorageError


logger = logging.getLogger(__name__)


def send(artifact: BackupArtifact, storages: list) -> List[str]:
    """
    Copy the artifact to every storage target, in order.

    Stops at the first target that fails; later targets are not attempted.
    A local archive directory that does not exist is skipped.

    Returns:
        Names of the storages that received a copy

    Raises:
        DistributionError: If a copy fails
    """
    delivered = []

    for storage in storages:
        if isinstance(storage, LocalStorage) and not storage.exists():
            logger.warning(f"Local archive directory {storage.base_path} does not exist, skipping")
            continue

        try:
            location = storage.store(artifact.path)
        except StorageError as e:
            raise DistributionError(
                f"error copying backup to {storage.name} storage: {e}"
            ) from e

        logger.info(f"Copied {artifact.name} to {storage.name} storage as {location}")
        delivered.append(storage.name)

    return delivered


def clean(artifact: BackupArtifact):
    """
    Remove the local working copy of the artifact.

    Raises:
        DistributionError: If the file cannot be removed
    """
    try:
        os.remove(artifact.path)
    except OSError as e:
        raise DistributionError(f"error removing local backup file: {e}") from e
