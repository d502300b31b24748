# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import os

# Config file names
PDS_CONFIG_FILENAME = 'pds_deploy_config.json'
STACK_OUTPUTS_CONFIG_FILENAME = 'pds_stack_outputs.json'
SAMPLE_TEST_POST_FILENAME = os.path.join('tests', 'sample_test_post.txt')

# Deploy config file keys
PDS_CONFIG_STACK_NAME_KEY = 'stack_name'
PDS_CONFIG_MODE_KEY = 'mode'
PDS_CONFIG_DOMAIN_NAME_KEY = 'domain_name'
PDS_CONFIG_DOMAIN_ZONE_KEY = 'domain_zone'
PDS_CONFIG_ROOT_DOMAIN_KEY = 'root_domain'
PDS_CONFIG_ALARM_TOPIC_NAME_KEY = 'alarm_topic_name'
PDS_CONFIG_GITHUB_TOKEN_SECRET_NAME_KEY = 'github_token_secret_name'
PDS_CONFIG_IMAGE_TAG_KEY = 'pds_image_tag'

PDS_CONFIG_AWS_ACCOUNT_ID_KEY = 'aws_account_id'
PDS_CONFIG_AWS_REGION_KEY = 'aws_region'

# Deploy config default values
PDS_CONFIG_DEFAULT_STACK_NAME = 'BlueskyPdsInfra'
PDS_CONFIG_DEFAULT_ALARM_TOPIC_NAME = 'bluesky-pds-notifications'
PDS_CONFIG_DEFAULT_GITHUB_TOKEN_SECRET_NAME = 'ecr-pullthroughcache/bluesky-pds-image-github-token'
PDS_CONFIG_DEFAULT_IMAGE_TAG = '0.4'

# Deployment modes
MODE_PRODUCTION = 'Production'
MODE_TEST = 'Test'
SUPPORTED_MODES = [MODE_PRODUCTION, MODE_TEST]

# Stack outputs read back after deployment
STACK_OUTPUT_SERVICE_URL_KEY = 'PdsServiceUrl'

# Environment variables consumed by the CDK application
CDK_ENV_DEPLOY_ACCOUNT = 'PDS_AWS_DEPLOY_ACCOUNT'
CDK_ENV_DEPLOY_REGION = 'PDS_AWS_DEPLOY_REGION'
CDK_ENV_STACK_NAME = 'PDS_STACK_NAME'

# Environment variables consumed by the validator
HANDLE_ENV = 'BSKY_HANDLE'
PASSWORD_ENV = 'BSKY_PASSWORD'
COMMIT_ID_ENV = 'CODEBUILD_RESOLVED_SOURCE_VERSION'
