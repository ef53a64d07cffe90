"""
Shared pytest fixtures for volume-backup tests.

This module provides fixtures for:
- Configuration built from a test environment
- A backup source directory and archive directory
- Mock fixtures for external services (S3, docker)
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import boto3
from docker.errors import APIError
from moto import mock_aws

from volume_backup.config import Config


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Use few PBKDF2 iterations so encryption tests stay fast."""
    monkeypatch.setattr('volume_backup.utils.crypto.KDF_ITERATIONS', 1000)


@pytest.fixture
def backup_source(tmp_path):
    """
    Create a directory tree to back up.

    Creates:
    - data/file1.txt
    - data/file2.log
    - data/nested/file3.txt
    """
    source = tmp_path / 'data'
    source.mkdir()
    (source / 'file1.txt').write_text('Test content 1')
    (source / 'file2.log').write_text('Test log content')
    nested = source / 'nested'
    nested.mkdir()
    (nested / 'file3.txt').write_text('Nested test content')
    return source


@pytest.fixture
def archive_dir(tmp_path):
    path = tmp_path / 'archive'
    path.mkdir()
    return path


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / 'work'
    path.mkdir()
    return path


@pytest.fixture
def make_config(backup_source, work_dir, tmp_path):
    """
    Factory building a Config from a minimal test environment.

    Keyword arguments override or add environment variables; pass None to
    remove one.
    """
    def _make(**overrides):
        env = {
            'BACKUP_SOURCES': str(backup_source),
            'BACKUP_FILENAME': 'backup-%Y-%m-%d.tar.gz',
            'BACKUP_TEMP_DIR': str(work_dir),
            'BACKUP_LOCK_FILE': str(tmp_path / 'backup.lock'),
            'BACKUP_PRUNING_LEEWAY': '0s',
        }
        for key, value in overrides.items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value
        return Config(env)

    return _make


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


def _make_container(container_id, labels=None, stop_error=None, start_error=None):
    """Build a MagicMock that behaves like a docker Container."""
    container = MagicMock()
    container.id = container_id
    container.short_id = container_id[:12]
    container.name = f"container-{container_id}"
    container.labels = labels or {}
    if stop_error:
        container.stop.side_effect = APIError(stop_error)
    if start_error:
        container.start.side_effect = APIError(start_error)
    return container


def _make_service(name, update_error=None):
    service = MagicMock()
    service.name = name
    if update_error:
        service.force_update.side_effect = APIError(update_error)
    return service


@pytest.fixture
def docker_client():
    """
    Factory for a mock docker client.

    Arguments:
        running: all running containers
        to_stop: containers returned for the stop label filter
        services: swarm services
    """
    def _make(running=(), to_stop=(), services=()):
        client = MagicMock()

        def list_containers(filters=None, **kwargs):
            if filters:
                return list(to_stop)
            return list(running)

        client.containers.list.side_effect = list_containers
        client.services.list.return_value = list(services)
        return client

    return _make


def _set_age(path, days):
    mtime = (datetime.now(timezone.utc) - timedelta(days=days)).timestamp()
    os.utime(path, (mtime, mtime))


@pytest.fixture
def make_container():
    """Factory for mock containers: make_container(id, labels=, stop_error=, start_error=)."""
    return _make_container


@pytest.fixture
def make_service():
    """Factory for mock swarm services: make_service(name, update_error=)."""
    return _make_service


@pytest.fixture
def set_age():
    """Set a file's modification time to the given number of days ago."""
    return _set_age
