# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import os
from typing import List

from config import PdsDeployConfig, StackOutputsConfig
from constants import *
from process_runner import ProcessRunner

DEPLOY_CMD = 'deploy'
DESTROY_CMD = 'destroy'


class CdkManager(object):
    """
    Deploy and tear down the PDS stack through the AWS CDK toolkit
    """

    def __init__(self, config: PdsDeployConfig, outputs_file: str = STACK_OUTPUTS_CONFIG_FILENAME):
        super().__init__()
        self._config = config
        self._outputs_file = outputs_file

        self._domain_name = self._config.get_str(PDS_CONFIG_DOMAIN_NAME_KEY)
        if not self._domain_name:
            raise RuntimeError('No domain name is provided. Set the PDS hostname with the '
                               f'\'{PDS_CONFIG_DOMAIN_NAME_KEY}\' key of the deploy config file')
        self._domain_zone = self._config.get_str(PDS_CONFIG_DOMAIN_ZONE_KEY, self._domain_name)
        self._root_domain = self._config.get_str(PDS_CONFIG_ROOT_DOMAIN_KEY,
                                                 self._domain_name.split('.', 1)[-1])

        self._mode = self._config.get_str(PDS_CONFIG_MODE_KEY, MODE_PRODUCTION)
        if self._mode not in SUPPORTED_MODES:
            raise RuntimeError(f'Deployment mode {self._mode} is not supported yet')
        if self._mode == MODE_TEST:
            print('[Warn] Deploying in Test mode. Buckets, keys and logs will be deleted with the stack')

        self._stack_name = self._config.get_str(PDS_CONFIG_STACK_NAME_KEY, PDS_CONFIG_DEFAULT_STACK_NAME)
        self._alarm_topic_name = self._config.get_str(PDS_CONFIG_ALARM_TOPIC_NAME_KEY,
                                                      PDS_CONFIG_DEFAULT_ALARM_TOPIC_NAME)
        self._github_token_secret_name = self._config.get_str(PDS_CONFIG_GITHUB_TOKEN_SECRET_NAME_KEY,
                                                              PDS_CONFIG_DEFAULT_GITHUB_TOKEN_SECRET_NAME)
        self._image_tag = self._config.get_str(PDS_CONFIG_IMAGE_TAG_KEY, PDS_CONFIG_DEFAULT_IMAGE_TAG)

        self._aws_account = self._config.get_str(PDS_CONFIG_AWS_ACCOUNT_ID_KEY, os.environ.get('CDK_DEFAULT_ACCOUNT'))
        self._aws_region = self._config.get_str(PDS_CONFIG_AWS_REGION_KEY, os.environ.get('CDK_DEFAULT_REGION'))
        if not self._aws_account or not self._aws_region:
            raise RuntimeError('No AWS account or region is provided. Update the deploy config file or '
                               'set up the CDK environment variables CDK_DEFAULT_ACCOUNT and CDK_DEFAULT_REGION. '
                               'Check https://docs.aws.amazon.com/cdk/v2/guide/environments.html for more details')

        self._env = dict(os.environ, **{
            CDK_ENV_DEPLOY_ACCOUNT: self._aws_account,
            CDK_ENV_DEPLOY_REGION: self._aws_region,
            CDK_ENV_STACK_NAME: self._stack_name
        })
        main_script_dir = os.path.abspath(os.path.dirname(__file__))
        self._cdk_dir = os.path.join(str(main_script_dir), 'cdk')

        self._bootstrap()

    def _bootstrap(self) -> None:
        """
        Bootstrap AWS CDK in the target account and region
        """
        cmd_list = ['cdk', 'bootstrap', f'aws://{self._aws_account}/{self._aws_region}']
        process = ProcessRunner('Bootstrap CDK', cmd_list)
        process.run(env=self._env)

    def deploy_aws_resources(self) -> None:
        """
        Deploy the AWS CDK application and keep the stack outputs for later verification
        """
        self._install_dependencies()

        process = ProcessRunner('Deploy CDK application', self._get_cdk_cmd_args(DEPLOY_CMD))
        process.run(self._cdk_dir, env=self._env)

        self._update_stack_outputs_config()

    def destroy_aws_resources(self) -> None:
        """
        Destroy the AWS CDK application
        """
        self._install_dependencies()

        process = ProcessRunner('Destroy CDK application', self._get_cdk_cmd_args(DESTROY_CMD))
        process.run(self._cdk_dir, env=self._env)

    @property
    def stack_name(self) -> str:
        return self._stack_name

    @property
    def domain_name(self) -> str:
        return self._domain_name

    def _install_dependencies(self) -> None:
        """
        Install dependencies of the AWS CDK application
        """
        install_dependencies_cmd_list = ['pip', 'install', '-r', 'requirements.txt']
        process = ProcessRunner('Install required dependencies', install_dependencies_cmd_list)
        process.run(self._cdk_dir)

    def _update_stack_outputs_config(self) -> None:
        """
        Describe the deployed stack and save its outputs to the stack outputs file
        """
        stack_outputs_config = StackOutputsConfig()
        stack_outputs_config.load(filename=self._outputs_file, backup=False)
        stack_outputs_config.populate_stack_outputs(self._stack_name, self._aws_region)

        stack_outputs_config.display()
        stack_outputs_config.save(self._outputs_file)

    def _get_cdk_cmd_args(self, cdk_cmd: str) -> List[str]:
        cmd_args = ['cdk', cdk_cmd,
                    '-c', f'mode={self._mode}',
                    '-c', f'domain_name={self._domain_name}',
                    '-c', f'domain_zone={self._domain_zone}',
                    '-c', f'root_domain={self._root_domain}',
                    '-c', f'alarm_topic_name={self._alarm_topic_name}',
                    '-c', f'github_token_secret_name={self._github_token_secret_name}',
                    '-c', f'pds_image_tag={self._image_tag}', '--all']

        final_arg = '--require-approval=never' if (cdk_cmd == DEPLOY_CMD) else '-f'
        cmd_args.append(final_arg)
        return cmd_args
