# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

from aws_cdk import (
    Duration,
    RemovalPolicy,
    Stack,
    Tags,
    aws_ec2 as ec2,
    aws_ecr_assets as ecr_assets,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_elasticloadbalancingv2 as elb,
    aws_kms as kms,
    aws_logs as logs,
    aws_route53 as route53,
    aws_secretsmanager as secretsmanager,
)
import aws_cdk as cdk
from constructs import Construct

from .alarms_construct import PdsAlarmsConstruct
from .constants import *
from .image_cache_construct import PdsImageCacheConstruct
from .storage_construct import PdsStorageConstruct


class PdsStack(Stack):
    """
    Create stack for running a Bluesky PDS on Amazon ECS on AWS Fargate behind an Application Load Balancer
    """
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self._domain_name = self.node.try_get_context('domain_name')
        if not self._domain_name:
            raise RuntimeError('Domain name is required for deploying the PDS. '
                               'Pass the domain name using \'-c domain_name={domain_name}\'')
        self._domain_zone_name = self.node.try_get_context('domain_zone') or self._domain_name
        self._root_domain = self.node.try_get_context('root_domain') or self._domain_name.split('.', 1)[-1]

        self._mode = self.node.try_get_context('mode')
        if not self._mode:
            self._mode = MODE_PRODUCTION
            print(f'No deployment mode is specified. Use default mode {MODE_PRODUCTION}')
        if self._mode not in SUPPORTED_MODES:
            raise RuntimeError(f'Deployment mode {self._mode} is not supported yet')

        # Test stacks are wiped clean on deletion. Production stacks keep their data
        self._removal_policy = RemovalPolicy.DESTROY if self._mode == MODE_TEST \
            else RemovalPolicy.RETAIN_ON_UPDATE_OR_DELETE

        Tags.of(self).add(PROJECT_TAG_KEY, PROJECT_TAG_VALUE)

        self._create_network()
        self._create_secrets()

        self._storage = PdsStorageConstruct(
            self, f'{RESOURCE_ID_COMMON_PREFIX}Storage',
            vpc=self._vpc,
            removal_policy=self._removal_policy,
            restrict_to_vpc_endpoint=self._mode == MODE_PRODUCTION
        )
        self._image_cache = PdsImageCacheConstruct(
            self, f'{RESOURCE_ID_COMMON_PREFIX}ImageCache',
            github_token_secret_name=self.node.try_get_context('github_token_secret_name')
            or DEFAULT_GITHUB_TOKEN_SECRET_NAME,
            image_tag=str(self.node.try_get_context('pds_image_tag') or DEFAULT_PDS_IMAGE_TAG),
            removal_policy=self._removal_policy
        )

        self._create_service()
        self._add_sync_sidecar()
        self._grant_permissions()

        PdsAlarmsConstruct(
            self, f'{RESOURCE_ID_COMMON_PREFIX}Alarms',
            target_group=self._service.target_group,
            topic_name=self.node.try_get_context('alarm_topic_name') or DEFAULT_ALARM_TOPIC_NAME
        )

        self._create_outputs()

    @property
    def resource_name(self) -> str:
        """
        Name shared by the ECS cluster and service, derived from the domain name
        """
        return self._domain_name.replace('.', '-')

    def _create_network(self) -> None:
        """
        Create a VPC with public subnets only and the ECS cluster running in it
        """
        self._vpc = ec2.Vpc(
            self, 'Vpc',
            max_azs=2,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name='Public',
                    subnet_type=ec2.SubnetType.PUBLIC
                )
            ]
        )
        self._cluster = ecs.Cluster(
            self, 'Cluster',
            cluster_name=self.resource_name,
            vpc=self._vpc
        )
        self._domain_zone = route53.HostedZone.from_lookup(
            self, 'Zone',
            domain_name=self._domain_zone_name
        )

    def _create_secrets(self) -> None:
        """
        Create the admin password, the JWT signing secret and the PLC rotation key of the PDS
        """
        self._admin_password = secretsmanager.Secret(
            self, 'AdminPassword',
            generate_secret_string=secretsmanager.SecretStringGenerator(
                password_length=GENERATED_SECRET_LENGTH
            )
        )
        self._jwt_secret = secretsmanager.Secret(
            self, 'JwtSecret',
            generate_secret_string=secretsmanager.SecretStringGenerator(
                password_length=GENERATED_SECRET_LENGTH
            )
        )
        # secp256k1 signing key used by the PDS to sign PLC operations through KMS
        self._rotation_key = kms.Key(
            self, 'RotationKey',
            key_spec=kms.KeySpec.ECC_SECG_P256K1,
            key_usage=kms.KeyUsage.SIGN_VERIFY,
            removal_policy=self._removal_policy
        )

    def _create_log_group(self, construct_id: str) -> logs.LogGroup:
        return logs.LogGroup(
            self, construct_id,
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=self._removal_policy
        )

    def _pds_environment(self) -> dict:
        """
        Environment variables of the PDS container.
        Check https://github.com/bluesky-social/pds for the supported settings
        """
        environment = dict(PDS_STATIC_ENVIRONMENT)
        environment.update({
            'PDS_HOSTNAME': self._domain_name,
            'PDS_PLC_ROTATION_KEY_KMS_KEY_ID': self._rotation_key.key_id,
            'AWS_REGION': self.region,
            'AWS_DEFAULT_REGION': self.region,
            'PDS_BLOBSTORE_S3_BUCKET': self._storage.blob_bucket.bucket_name,
            'PDS_BLOBSTORE_S3_REGION': self.region,
            'PDS_SERVICE_HANDLE_DOMAINS': f'.{self._root_domain}',
        })
        return environment

    def _create_service(self) -> None:
        """
        Run the PDS container on AWS Fargate behind an HTTPS load balancer
        """
        self._service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self, 'Service',
            cluster=self._cluster,
            service_name=self.resource_name,
            desired_count=1,
            domain_name=self._domain_name,
            domain_zone=self._domain_zone,
            protocol=elb.ApplicationProtocol.HTTPS,
            redirect_http=True,
            assign_public_ip=True,
            propagate_tags=ecs.PropagatedTagSource.SERVICE,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                container_name=PDS_CONTAINER_NAME,
                image=self._image_cache.image,
                container_port=PDS_CONTAINER_PORT,
                log_driver=ecs.LogDriver.aws_logs(
                    stream_prefix=PDS_LOGGING_STREAM_PREFIX,
                    log_group=self._create_log_group('ServiceLogGroup')
                ),
                environment=self._pds_environment(),
                secrets={
                    'PDS_ADMIN_PASSWORD': ecs.Secret.from_secrets_manager(self._admin_password),
                    'PDS_JWT_SECRET': ecs.Secret.from_secrets_manager(self._jwt_secret),
                }
            ),
            health_check=ecs.HealthCheck(command=PDS_HEALTH_CHECK_COMMAND),
            cpu=PDS_TASK_CPU_UNITS,
            memory_limit_mib=PDS_TASK_MEMORY_LIMIT_MIB,
            # Only let 1 PDS instance run at a time.
            # Deployments will take down the old task before starting a new one
            max_healthy_percent=100,
            min_healthy_percent=0,
            circuit_breaker=ecs.DeploymentCircuitBreaker(
                enable=True,
                rollback=True
            ),
            # Enable running pdsadmin in the container
            enable_execute_command=True
        )

        self._service.target_group.configure_health_check(
            path=PDS_HEALTH_CHECK_PATH
        )
        self._image_cache.grant_pull_through(self._service.task_definition)

    def _add_sync_sidecar(self) -> None:
        """
        Add the sidecar container that restores the PDS data from S3 on startup and backs it up while running
        """
        task_definition = self._service.task_definition
        sidecar = task_definition.add_container(
            'SyncContainer',
            container_name=SYNC_CONTAINER_NAME,
            image=ecs.ContainerImage.from_asset(
                SYNC_CONTAINER_ASSET_DIR,
                platform=ecr_assets.Platform.LINUX_AMD64
            ),
            logging=ecs.LogDriver.aws_logs(
                stream_prefix=SYNC_LOGGING_STREAM_PREFIX,
                log_group=self._create_log_group('PDSS3SyncLogGroup')
            ),
            environment={
                'AWS_REGION': self.region,
                'AWS_DEFAULT_REGION': self.region,
                'S3_PATH': f's3://{self._storage.data_backup_bucket.bucket_name}/{DATA_BACKUP_S3_PREFIX}',
                'LOCAL_PATH': SYNC_CONTAINER_LOCAL_PATH,
            },
            health_check=ecs.HealthCheck(command=SYNC_CONTAINER_HEALTH_CHECK_COMMAND),
            # Time for the final backup once the task is asked to stop
            stop_timeout=Duration.minutes(SYNC_CONTAINER_STOP_TIMEOUT_MINUTES)
        )

        # Both containers share a task volume holding the PDS data directory
        task_definition.add_volume(
            name=DATA_VOLUME_NAME,
            host=ecs.Host()
        )
        sidecar.add_mount_points(ecs.MountPoint(
            container_path=SYNC_CONTAINER_LOCAL_PATH,
            read_only=False,
            source_volume=DATA_VOLUME_NAME
        ))
        pds_container = task_definition.find_container(PDS_CONTAINER_NAME)
        if pds_container is None:
            raise RuntimeError(f'Container {PDS_CONTAINER_NAME} is missing from the task definition')
        pds_container.add_mount_points(ecs.MountPoint(
            container_path=PDS_DATA_DIRECTORY,
            read_only=False,
            source_volume=DATA_VOLUME_NAME
        ))

        # Ensure that databases have been restored in the sidecar container before starting PDS
        pds_container.add_container_dependencies(ecs.ContainerDependency(
            container=sidecar,
            condition=ecs.ContainerDependencyCondition.HEALTHY
        ))

    def _grant_permissions(self) -> None:
        """
        Permissions needed by the containers
        """
        task_role = self._service.task_definition.task_role
        self._storage.data_backup_bucket.grant_read_write(task_role)
        self._storage.blob_bucket.grant_read_write(task_role)
        self._rotation_key.grant(task_role, 'kms:GetPublicKey', 'kms:Sign')

    def _create_outputs(self) -> None:
        cdk.CfnOutput(
            self,
            f'{RESOURCE_ID_COMMON_PREFIX}ServiceUrl',
            description='HTTPS URL of the PDS',
            value=f'https://{self._domain_name}'
        )
        cdk.CfnOutput(
            self,
            f'{RESOURCE_ID_COMMON_PREFIX}BlobBucketName',
            description='Bucket where the PDS stores blobs',
            value=self._storage.blob_bucket.bucket_name
        )
        cdk.CfnOutput(
            self,
            f'{RESOURCE_ID_COMMON_PREFIX}DataBackupBucketName',
            description='Bucket where the PDS data directory is backed up',
            value=self._storage.data_backup_bucket.bucket_name
        )
        cdk.CfnOutput(
            self,
            f'{RESOURCE_ID_COMMON_PREFIX}RotationKeyId',
            description='KMS key the PDS signs PLC operations with',
            value=self._rotation_key.key_id
        )

    @property
    def vpc(self) -> ec2.Vpc:
        return self._vpc

    @property
    def service(self) -> ecs_patterns.ApplicationLoadBalancedFargateService:
        return self._service
