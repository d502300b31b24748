# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import logging
import os
import sqlite3
import tempfile
import threading
import typing

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError

logger = logging.getLogger('pds_data_backup')

SQLITE_SUFFIX = '.sqlite'
# Transient SQLite files. Their content is captured by the database snapshot
SQLITE_TRANSIENT_SUFFIXES = ('-wal', '-shm', '-journal')
# Failures of a single file upload. The file is retried on the next backup
UPLOAD_ERRORS = (ClientError, S3UploadFailedError, OSError, sqlite3.Error)


def parse_s3_path(s3_path: str) -> typing.Tuple[str, str]:
    """
    Split an s3://bucket/prefix path into its bucket and key prefix
    :param s3_path: S3 path
    :return: Bucket name and key prefix without surrounding slashes
    """
    if not s3_path or not s3_path.startswith('s3://'):
        raise ValueError(f'S3 path must start with s3://, got {s3_path!r}')

    bucket, _, prefix = s3_path[len('s3://'):].partition('/')
    if not bucket:
        raise ValueError(f'S3 path has no bucket: {s3_path!r}')
    return bucket, prefix.strip('/')


class DataSync(object):
    """
    Restore a local directory from S3 and back it up again
    """

    def __init__(self, s3_client, bucket: str, prefix: str, local_path: str):
        self._s3_client = s3_client
        self._bucket = bucket
        self._prefix = prefix
        self._local_path = local_path
        self._uploaded_signatures = {}

    def restore(self) -> int:
        """
        Download every object under the prefix into the local directory
        :return: Number of files restored
        """
        os.makedirs(self._local_path, exist_ok=True)
        key_prefix = f'{self._prefix}/' if self._prefix else ''

        restored = 0
        # see: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/paginator/ListObjectsV2.html
        paginator = self._s3_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self._bucket, Prefix=key_prefix):
            for obj in page.get('Contents', []):
                key = obj['Key']
                relative_path = key[len(key_prefix):]
                if not relative_path or key.endswith('/'):
                    continue  # directory placeholder

                local_file = os.path.join(self._local_path, *relative_path.split('/'))
                os.makedirs(os.path.dirname(local_file), exist_ok=True)
                self._s3_client.download_file(self._bucket, key, local_file)
                restored += 1

        # Restored files are already in S3
        for relative_path, local_file in self._walk():
            self._uploaded_signatures[relative_path] = self._signature(local_file)

        logger.info(f'Restored {restored} files from s3://{self._bucket}/{key_prefix} to {self._local_path}')
        return restored

    def backup(self) -> int:
        """
        Upload the files that changed since they were last uploaded
        :return: Number of files uploaded
        """
        uploaded = 0
        failed = 0
        for relative_path, local_file in self._walk():
            try:
                signature = self._signature(local_file)
            except FileNotFoundError:
                continue  # removed while walking
            if self._uploaded_signatures.get(relative_path) == signature:
                continue

            key = f'{self._prefix}/{relative_path}' if self._prefix else relative_path
            try:
                if local_file.endswith(SQLITE_SUFFIX):
                    self._upload_sqlite_snapshot(local_file, key)
                else:
                    self._s3_client.upload_file(local_file, self._bucket, key)
            except UPLOAD_ERRORS:
                logger.exception(f'Failed to back up {local_file}, retrying on the next backup')
                failed += 1
                continue

            self._uploaded_signatures[relative_path] = signature
            uploaded += 1

        if uploaded:
            logger.info(f'Backed up {uploaded} files to s3://{self._bucket}/{self._prefix}')
        if failed:
            logger.warning(f'{failed} files could not be backed up')
        return uploaded

    def run(self, interval_seconds: float, ready_file: str, stop_event: threading.Event) -> None:
        """
        Restore, signal readiness, then back up on an interval until asked to stop
        :param interval_seconds: Time between two backups
        :param ready_file: File created once the restore has completed
        :param stop_event: Event set when the container is stopping
        """
        self.restore()
        with open(ready_file, 'w') as ready:
            ready.write('restored\n')
        logger.info(f'Restore complete, wrote {ready_file}')

        while not stop_event.wait(interval_seconds):
            self.backup()

        logger.info('Stopping, running final backup')
        self.backup()

    def _walk(self) -> typing.Iterator[typing.Tuple[str, str]]:
        for root, _, files in os.walk(self._local_path):
            for filename in sorted(files):
                if filename.endswith(SQLITE_TRANSIENT_SUFFIXES):
                    continue
                local_file = os.path.join(root, filename)
                relative_path = os.path.relpath(local_file, self._local_path).replace(os.sep, '/')
                yield relative_path, local_file

    @staticmethod
    def _signature(local_file: str) -> tuple:
        stat = os.stat(local_file)
        signature = (stat.st_mtime_ns, stat.st_size)
        # Committed transactions may only live in the write-ahead log until a checkpoint
        if local_file.endswith(SQLITE_SUFFIX) and os.path.exists(f'{local_file}-wal'):
            wal_stat = os.stat(f'{local_file}-wal')
            signature += (wal_stat.st_mtime_ns, wal_stat.st_size)
        return signature

    def _upload_sqlite_snapshot(self, local_file: str, key: str) -> None:
        """
        Upload a consistent copy of a live SQLite database, taken with the online backup API
        """
        with tempfile.TemporaryDirectory() as snapshot_dir:
            snapshot_file = os.path.join(snapshot_dir, os.path.basename(local_file))
            source = sqlite3.connect(local_file)
            try:
                target = sqlite3.connect(snapshot_file)
                try:
                    source.backup(target)
                finally:
                    target.close()
            finally:
                source.close()
            self._s3_client.upload_file(snapshot_file, self._bucket, key)
