#!/usr/bin/env python3

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import os

import aws_cdk as cdk

from pds_infra.constants import DEFAULT_STACK_NAME
from pds_infra.pds_stack import PdsStack

"""Configuration"""
REGION = os.environ.get('PDS_AWS_DEPLOY_REGION', os.environ.get('CDK_DEFAULT_REGION'))
ACCOUNT = os.environ.get('PDS_AWS_DEPLOY_ACCOUNT', os.environ.get('CDK_DEFAULT_ACCOUNT'))

STACK_NAME = os.environ.get('PDS_STACK_NAME', DEFAULT_STACK_NAME)

# The hosted zone lookup needs a concrete account and region
env = cdk.Environment(
    account=ACCOUNT,
    region=REGION)

"""End of Configuration"""

app = cdk.App()
PdsStack(
    app,
    STACK_NAME,
    stack_name=STACK_NAME,
    env=env
)

app.synth()
