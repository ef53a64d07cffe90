"""
Archive creation for backups.

The whole backup source directory is packed into a single gzip compressed
tar archive whose name is computed from a strftime style template.
"""

import os
import tarfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..errors import ArchiveError, FilenameTemplateError


@dataclass
class BackupArtifact:
    """The single backup file that moves through the pipeline."""

    path: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def size(self) -> int:
        return get_archive_size(self.path)


def resolve_filename(template: str, now: Optional[datetime] = None) -> str:
    """
    Resolve a filename template against the current time.

    Args:
        template: Template such as "backup-%Y-%m-%dT%H-%M-%S.tar.gz"
        now: Timestamp to use (default: current local time)

    Returns:
        Filename (without path)

    Raises:
        FilenameTemplateError: If the template cannot be resolved to a
            plain filename
    """
    if now is None:
        now = datetime.now()

    try:
        filename = now.strftime(template).strip()
    except (ValueError, TypeError) as e:
        raise FilenameTemplateError(f"error formatting filename template {template!r}: {e}") from e

    if not filename:
        raise FilenameTemplateError(f"filename template {template!r} resolved to an empty name")
    if os.sep in filename or (os.altsep and os.altsep in filename):
        raise FilenameTemplateError(f"filename template {template!r} must not contain a path separator")
    if filename in ('.', '..'):
        raise FilenameTemplateError(f"filename template {template!r} is not a valid filename")

    return filename


def create_archive(source_path: str, archive_path: str) -> str:
    """
    Create a gzip compressed tar archive of a directory tree.

    The directory is stored under its own basename inside the archive.

    Args:
        source_path: Directory to archive
        archive_path: Full path of the archive to create

    Returns:
        archive_path

    Raises:
        ArchiveError: If archive creation fails
    """
    source = Path(source_path)
    if not source.is_dir():
        raise ArchiveError(f"backup source is not a directory: {source_path}")

    try:
        with tarfile.open(archive_path, 'w:gz') as tar:
            tar.add(source, arcname=source.name or '.', recursive=True)
        return archive_path
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(archive_path):
            try:
                os.remove(archive_path)
            except OSError:
                pass
        raise ArchiveError(f"error compressing backup folder: {e}") from e


def build_artifact(source_path: str, filename_template: str, output_dir: str,
                   now: Optional[datetime] = None) -> BackupArtifact:
    """
    Resolve the filename and archive the backup sources into output_dir.

    Raises:
        FilenameTemplateError: If the template cannot be resolved
        ArchiveError: If archive creation fails
    """
    filename = resolve_filename(filename_template, now)
    archive_path = os.path.join(output_dir, filename)
    create_archive(source_path, archive_path)
    return BackupArtifact(path=archive_path)


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveError(f"archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveError(f"failed to get archive size: {e}")
