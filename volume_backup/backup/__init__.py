"""
Backup module for volume-backup.

This module handles the core backup functionality including:
- Stopping and restarting containers
- Compression
- Encryption
- Storage (S3 and local)
- Execution orchestration
- Retention policy enforcement
"""

from .executor import BackupExecutor
from .containers import ContainerManager
from .compression import BackupArtifact, build_artifact
from .encryption import encrypt_artifact, decrypt_file
from .storage import S3Storage, LocalStorage
from .retention import RetentionManager

__all__ = [
    'BackupExecutor',
    'ContainerManager',
    'BackupArtifact',
    'build_artifact',
    'encrypt_artifact',
    'decrypt_file',
    'S3Storage',
    'LocalStorage',
    'RetentionManager'
]
