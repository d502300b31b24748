# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import logging
import os
import signal
import threading

import boto3

from .sync import DataSync, parse_s3_path

DEFAULT_SYNC_INTERVAL_SECONDS = 60
DEFAULT_READY_FILE = '/tmp/pds-restore-complete'


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    local_path = os.environ.get('LOCAL_PATH')
    if not local_path:
        raise ValueError('LOCAL_PATH is required')
    bucket, prefix = parse_s3_path(os.environ.get('S3_PATH', ''))
    interval_seconds = float(os.environ.get('SYNC_INTERVAL_SECONDS', DEFAULT_SYNC_INTERVAL_SECONDS))
    ready_file = os.environ.get('READY_FILE', DEFAULT_READY_FILE)

    # ECS sends SIGTERM on task stop and SIGKILL once the stop timeout expires
    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())
    signal.signal(signal.SIGINT, lambda signum, frame: stop_event.set())

    DataSync(boto3.client('s3'), bucket, prefix, local_path).run(interval_seconds, ready_file, stop_event)


if __name__ == '__main__':
    main()
