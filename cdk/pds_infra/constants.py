# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import os

MODE_PRODUCTION = 'Production'
MODE_TEST = 'Test'
SUPPORTED_MODES = [MODE_PRODUCTION, MODE_TEST]

RESOURCE_ID_COMMON_PREFIX = 'Pds'
PROJECT_TAG_KEY = 'project'
PROJECT_TAG_VALUE = 'bluesky-pds'

DEFAULT_STACK_NAME = 'BlueskyPdsInfra'
DEFAULT_ALARM_TOPIC_NAME = 'bluesky-pds-notifications'
DEFAULT_GITHUB_TOKEN_SECRET_NAME = 'ecr-pullthroughcache/bluesky-pds-image-github-token'
DEFAULT_PDS_IMAGE_TAG = '0.4'

# ECR pull-through cache for the PDS image on GHCR
PULL_THROUGH_CACHE_PREFIX = 'github-bluesky'
PULL_THROUGH_CACHE_UPSTREAM_URL = 'ghcr.io'
PDS_IMAGE_REPOSITORY_NAME = f'{PULL_THROUGH_CACHE_PREFIX}/bluesky-social/pds'

# S3 bucket that backs ECR image layers in each region
ECR_LAYER_BUCKET_NAME = 'prod-{region}-starport-layer-bucket'

GENERATED_SECRET_LENGTH = 16

# PDS min system requirements: 1 CPU core, 1 GB memory, 20 GB disk
PDS_TASK_CPU_UNITS = 1024
PDS_TASK_MEMORY_LIMIT_MIB = 2048  # lowest memory value Fargate allows for 1 vCPU

PDS_CONTAINER_NAME = 'pds'
PDS_CONTAINER_PORT = 3000
PDS_DATA_DIRECTORY = '/pds'
PDS_HEALTH_CHECK_PATH = '/xrpc/_health'
PDS_HEALTH_CHECK_COMMAND = [
    'CMD-SHELL',
    "node -e 'fetch(`http://localhost:3000/xrpc/_health`)"
    ".then(()=>process.exitCode = 0).catch(()=>process.exitCode = 1)'",
]
PDS_LOGGING_STREAM_PREFIX = 'PDSService'

# Settings handed to the PDS container that don't depend on deployed resources
PDS_STATIC_ENVIRONMENT = {
    'PDS_PORT': str(PDS_CONTAINER_PORT),
    'PDS_DATA_DIRECTORY': PDS_DATA_DIRECTORY,
    'PDS_BLOBSTORE_DISK_LOCATION': '',
    'PDS_BLOB_UPLOAD_LIMIT': '52428800',
    'PDS_DID_PLC_URL': 'https://plc.directory',
    'PDS_BSKY_APP_VIEW_URL': 'https://api.bsky.app',
    'PDS_BSKY_APP_VIEW_DID': 'did:web:api.bsky.app',
    'PDS_REPORT_SERVICE_URL': 'https://mod.bsky.app',
    'PDS_REPORT_SERVICE_DID': 'did:plc:ar7c4by46qjdydhdevvrndac',
    'PDS_CRAWLERS': 'https://bsky.network',
    'LOG_ENABLED': 'true',
}

# Sidecar that restores the PDS data from S3 before the PDS starts, then keeps backing it up
SYNC_CONTAINER_NAME = 's3_sync'
SYNC_CONTAINER_ASSET_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                                        'pds-data-backup')
SYNC_CONTAINER_LOCAL_PATH = '/sync'
SYNC_CONTAINER_HEALTH_CHECK_COMMAND = ['CMD', '/healthcheck.sh']
SYNC_CONTAINER_STOP_TIMEOUT_MINUTES = 1
SYNC_LOGGING_STREAM_PREFIX = 'PDSS3Sync'
DATA_BACKUP_S3_PREFIX = 'pds-backup'

DATA_VOLUME_NAME = 'pds-data'
