# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

from aws_cdk import (
    RemovalPolicy,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from .constants import *


class PdsImageCacheConstruct(Construct):
    """
    Mirror the PDS container image from GitHub Container Registry into Amazon ECR with a pull-through cache.
    Check https://docs.aws.amazon.com/AmazonECR/latest/userguide/pull-through-cache.html for more details
    """

    def __init__(self, scope: Construct, construct_id: str, github_token_secret_name: str, image_tag: str,
                 removal_policy: RemovalPolicy) -> None:
        super().__init__(scope, construct_id)
        self._image_tag = image_tag

        # GHCR requires credentials for pull-through caching even for public images
        github_secret = secretsmanager.Secret.from_secret_name_v2(
            self, 'GitHubToken',
            github_token_secret_name
        )
        ecr.CfnPullThroughCacheRule(
            self, 'ContainerImagePullThroughCache',
            credential_arn=github_secret.secret_arn,
            ecr_repository_prefix=PULL_THROUGH_CACHE_PREFIX,
            upstream_registry_url=PULL_THROUGH_CACHE_UPSTREAM_URL
        )

        # Created up front, so that the stack owns the cached repository and its removal policy
        self._repository = ecr.Repository(
            self, 'CacheRepo',
            repository_name=PDS_IMAGE_REPOSITORY_NAME,
            removal_policy=removal_policy,
            # Only a repository deleted with the stack may be emptied
            empty_on_delete=removal_policy == RemovalPolicy.DESTROY
        )

    def grant_pull_through(self, task_definition: ecs.TaskDefinition) -> None:
        """
        Allow the task to pull the image from upstream the first time it is requested
        :param task_definition: Task definition whose execution role pulls the image
        """
        task_definition.add_to_execution_role_policy(iam.PolicyStatement(
            actions=['ecr:BatchImportUpstreamImage'],
            resources=[self._repository.repository_arn]
        ))

    @property
    def repository(self) -> ecr.Repository:
        return self._repository

    @property
    def image(self) -> ecs.ContainerImage:
        """
        Get the PDS container image served from the cache repository
        :return: Container image
        """
        return ecs.ContainerImage.from_ecr_repository(self._repository, self._image_tag)
