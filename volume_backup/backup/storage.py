"""
Storage targets for backup archives.

Supports:
- S3Storage: Upload to S3 or any S3 compatible object storage
- LocalStorage: Copy into a local archive directory

Both targets expose the same interface so the distribution and pruning
stages can treat them alike:

- store(local_path) -> name of the stored backup
- list_backups(prefix) -> [{'name', 'modified', 'size'}]
- delete_backups(names) -> [errors]
"""

import glob
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from ..errors import ConfigError


logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000
MULTIPART_THRESHOLD = 100 * 1024 * 1024  # 100MB
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024  # 10MB


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


def content_type_for(path: str) -> str:
    """Content type to store an archive with."""
    if path.endswith('.tar.gz') or path.endswith('.tgz'):
        return 'application/tar+gzip'
    return 'application/octet-stream'


class S3Storage:
    """
    Handler for uploading backups to S3 compatible storage.

    Objects are stored at the top level of the bucket under the archive's
    filename, so the pruning prefix applies to filenames directly.
    """

    name = 's3'

    def __init__(self, bucket_name: str, access_key: Optional[str] = None,
                 secret_key: Optional[str] = None, region: str = 'us-east-1',
                 endpoint_url: Optional[str] = None):
        """
        Initialize S3 storage handler.

        Args:
            bucket_name: S3 bucket name
            access_key: Access key ID (default: boto3 credential chain)
            secret_key: Secret access key (default: boto3 credential chain)
            region: Region (default: us-east-1)
            endpoint_url: Endpoint of an S3 compatible service such as MinIO
        """
        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url
            )
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

    def __repr__(self):
        return f"S3Storage(bucket={self.bucket_name!r})"

    def store(self, local_path: str) -> str:
        """
        Upload archive to S3.

        Args:
            local_path: Path to local archive file

        Returns:
            S3 key of uploaded file

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        s3_key = os.path.basename(local_path)
        content_type = content_type_for(local_path)

        try:
            file_size = os.path.getsize(local_path)

            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(local_path, s3_key, content_type)
            else:
                self._simple_upload(local_path, s3_key, content_type)

            return s3_key

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"S3 upload failed: {e}")
        except Exception as e:
            raise StorageError(f"Failed to upload to S3: {e}")

    def _simple_upload(self, local_path: str, s3_key: str, content_type: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=s3_key,
                Body=f,
                ContentType=content_type
            )

    def _multipart_upload(self, local_path: str, s3_key: str, content_type: str):
        """Upload large file in chunks, aborting the upload on any error."""
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=s3_key,
            ContentType=content_type
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=s3_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=s3_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except Exception:
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                logger.warning(f"Failed to abort multipart upload of {s3_key}: {abort_error}")
            raise

    def list_objects(self, prefix: str) -> list:
        """
        List objects in S3 with given prefix.

        Returns:
            List of dicts with 'Key', 'LastModified', and 'Size' keys

        Raises:
            StorageError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                if 'Contents' in page:
                    for obj in page['Contents']:
                        objects.append({
                            'Key': obj['Key'],
                            'LastModified': obj['LastModified'],
                            'Size': obj['Size']
                        })

            return objects

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except Exception as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

    def list_backups(self, prefix: str) -> List[Dict[str, Any]]:
        return [
            {
                'name': obj['Key'],
                'modified': _as_utc(obj['LastModified']),
                'size': obj['Size']
            }
            for obj in self.list_objects(prefix)
        ]

    def delete_backups(self, names: List[str]) -> List[Exception]:
        """
        Delete objects in batches.

        Every key is submitted; failures are collected instead of raised.

        Returns:
            List of errors, one per key (or batch) that could not be removed
        """
        errors = []

        for start in range(0, len(names), DELETE_BATCH_SIZE):
            batch = names[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={
                        'Objects': [{'Key': key} for key in batch],
                        'Quiet': True
                    }
                )
            except (ClientError, BotoCoreError) as e:
                errors.append(StorageError(f"S3 delete of {len(batch)} object(s) failed: {e}"))
                continue

            for failure in response.get('Errors', []):
                errors.append(StorageError(
                    f"S3 delete failed for {failure.get('Key')} "
                    f"({failure.get('Code', 'Unknown')}): {failure.get('Message', '')}"
                ))

        return errors


class LocalStorage:
    """
    Handler for storing backups in a local archive directory.

    The directory is expected to exist already (usually a mounted volume);
    it is never created.
    """

    name = 'local'

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)

    def __repr__(self):
        return f"LocalStorage(path={str(self.base_path)!r})"

    def exists(self) -> bool:
        return self.base_path.is_dir()

    def store(self, source_path: str) -> str:
        """
        Copy archive into the archive directory.

        Returns:
            Filename of the stored copy

        Raises:
            StorageError: If storage fails
        """
        if not os.path.exists(source_path):
            raise StorageError(f"Source file not found: {source_path}")

        filename = os.path.basename(source_path)
        dest_path = self.base_path / filename

        try:
            shutil.copyfile(source_path, dest_path)
            return filename
        except PermissionError as e:
            raise StorageError(f"Permission denied writing to {dest_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to copy file to local archive: {e}")

    def list_backups(self, prefix: str) -> List[Dict[str, Any]]:
        """
        List archive files whose name starts with prefix.

        Raises:
            StorageError: If a matching file cannot be inspected
        """
        pattern = os.path.join(glob.escape(str(self.base_path)), glob.escape(prefix) + '*')
        files = []

        for candidate in sorted(glob.glob(pattern)):
            try:
                if not os.path.isfile(candidate):
                    continue
                stat = os.stat(candidate)
            except OSError as e:
                raise StorageError(f"Error calling stat on file {candidate}: {e}")

            files.append({
                'name': os.path.basename(candidate),
                'modified': datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                'size': stat.st_size
            })

        return files

    def delete_backups(self, names: List[str]) -> List[Exception]:
        errors = []
        for name in names:
            full_path = self.base_path / name
            try:
                full_path.unlink()
            except OSError as e:
                errors.append(StorageError(f"Failed to delete local file {full_path}: {e}"))
        return errors


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_storages(config) -> list:
    """
    Build the storage targets enabled by the configuration.

    Returns:
        List of storage handlers, S3 first
    """
    storages = []

    if config.s3_bucket:
        try:
            storages.append(S3Storage(
                bucket_name=config.s3_bucket,
                access_key=config.aws_access_key_id,
                secret_key=config.aws_secret_access_key,
                region=config.aws_region,
                endpoint_url=config.s3_endpoint_url
            ))
        except StorageError as e:
            raise ConfigError(f"error setting up S3 client: {e}") from e

    if config.backup_archive:
        storages.append(LocalStorage(config.backup_archive))

    return storages
