# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

from aws_cdk import (
    RemovalPolicy,
    Stack,
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_s3 as s3,
)
from constructs import Construct

from .constants import *


class PdsStorageConstruct(Construct):
    """
    S3 buckets for PDS blobs and data backups, reachable from the VPC through a gateway endpoint
    """

    def __init__(self, scope: Construct, construct_id: str, vpc: ec2.Vpc, removal_policy: RemovalPolicy,
                 restrict_to_vpc_endpoint: bool) -> None:
        super().__init__(scope, construct_id)

        auto_delete_objects = removal_policy == RemovalPolicy.DESTROY
        self._blob_bucket = self._create_bucket('BlobStorage', removal_policy, auto_delete_objects)
        self._data_backup_bucket = self._create_bucket('DataBackupStorage', removal_policy, auto_delete_objects)

        self._s3_endpoint = vpc.add_gateway_endpoint(
            'S3Endpoint',
            service=ec2.GatewayVpcEndpointAwsService.S3
        )
        self._limit_endpoint_access()

        # Only allow object access through the VPC endpoint
        if restrict_to_vpc_endpoint:
            self._deny_access_outside_vpc_endpoint()

    def _create_bucket(self, construct_id: str, removal_policy: RemovalPolicy, auto_delete_objects: bool) -> s3.Bucket:
        return s3.Bucket(
            self, construct_id,
            removal_policy=removal_policy,
            auto_delete_objects=auto_delete_objects,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True
        )

    def _limit_endpoint_access(self) -> None:
        """
        Only the PDS buckets and the ECR layer bucket can be accessed within the VPC
        """
        stack = Stack.of(self)
        ecr_layer_bucket_arn = f'arn:{stack.partition}:s3:::' + ECR_LAYER_BUCKET_NAME.format(region=stack.region)
        self._s3_endpoint.add_to_policy(iam.PolicyStatement(
            actions=['s3:*'],
            effect=iam.Effect.ALLOW,
            principals=[iam.AnyPrincipal()],
            resources=[
                self._blob_bucket.bucket_arn,
                self._blob_bucket.arn_for_objects('*'),
                self._data_backup_bucket.bucket_arn,
                self._data_backup_bucket.arn_for_objects('*'),
                ecr_layer_bucket_arn,
                f'{ecr_layer_bucket_arn}/*',
            ]
        ))

    def _deny_access_outside_vpc_endpoint(self) -> None:
        bucket_policy = iam.PolicyStatement(
            actions=[
                's3:GetObject*',
                's3:DeleteObject*',
                's3:PutObject*',
                's3:Abort*',
            ],
            effect=iam.Effect.DENY,
            principals=[iam.AnyPrincipal()],
            resources=['*'],
            conditions={
                'StringNotEquals': {
                    'aws:sourceVpce': self._s3_endpoint.vpc_endpoint_id
                }
            }
        )
        self._blob_bucket.add_to_resource_policy(bucket_policy)
        self._data_backup_bucket.add_to_resource_policy(bucket_policy)

    @property
    def blob_bucket(self) -> s3.Bucket:
        """
        Get the bucket the PDS stores blobs in
        :return: Blob bucket
        """
        return self._blob_bucket

    @property
    def data_backup_bucket(self) -> s3.Bucket:
        """
        Get the bucket the sidecar backs up the PDS data directory to
        :return: Data backup bucket
        """
        return self._data_backup_bucket

    @property
    def s3_endpoint(self) -> ec2.GatewayVpcEndpoint:
        return self._s3_endpoint
