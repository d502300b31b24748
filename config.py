# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import json
import os
import pprint
import typing
from pathlib import Path

import boto3
from botocore.config import Config

from constants import *


class BaseConfig(object):
    """
    Base config file handler
    """
    def __init__(self):
        super().__init__()

        self._filename = ''
        self._config = {}

    def has_config(self, key: str) -> bool:
        """
        Check whether the specified key exists in the config
        :param key: Config key
        :return: Whether the key exists in the config
        """
        return key in self._config

    def set(self, key: str, value: typing.Any) -> None:
        """
        Set the value of the specified config key
        :param key: Config key
        :param value: Value for the config key
        """
        self._config[key] = value

    def get(self, key: str, default: typing.Any = None) -> typing.Any:
        """
        Get the value of the specified config key
        :param key: Config key
        :param default: Default value to return if the key doesn't exist
        :return: Value for the config key
        """
        return self._config.get(key, default)

    def get_str(self, key: str, default: str = '') -> str:
        """
        Returns the value of the given key as a stripped string. Empty and missing values fall back to the default.
        :param key: Config key
        :param default: Default value to return if the key doesn't exist or is empty
        :return: string from the config key
        """
        value = self._config.get(key)
        if value is None or str(value).strip() == '':
            return default
        return str(value).strip()

    def load(self, filename: str, backup: bool) -> None:
        """
        Load a config file by its name. Create a new config object if not exists
        :param filename: Config file name
        :param backup: Whether to back up the config file
        """
        raise NotImplementedError('Base config load called, need to use specific load')

    def backup(self, filename: str) -> None:
        """
        Make a backup of the config file next to the original
        :param filename: Config file name
        """
        p = Path(filename)
        self.save(str(p.with_name(f'{p.stem}_bak{p.suffix}')))

    def save(self, filename: str) -> None:
        """
        Save the content of a config file
        :param filename: Config file name
        """
        raise NotImplementedError('Base config save called, need to use specific save')

    def default_config(self) -> dict:
        """
        Default content of the config
        :return: Content of the config in dictionary
        """
        return {}

    def display(self):
        """
        Print out the config content
        """
        pp = pprint.PrettyPrinter(indent=4)
        pp.pprint(self._config)


class JsonConfig(BaseConfig):
    """
    Generic JSON config handler. Keys missing from the file are filled in from the defaults.
    """

    def load(self, filename: str, backup: bool) -> None:
        self._config = self.default_config()
        if os.path.exists(filename):
            with open(filename) as config_file:
                self._filename = filename
                self._config.update(json.load(config_file))
            if backup:
                self.backup(filename)
        else:
            print(f'[Warn] Config file {filename} not found. Generating new file')

    def save(self, filename: str) -> None:
        with open(filename, 'w') as config_file:
            json.dump(self._config, config_file, allow_nan=False, indent=1)


class PdsDeployConfig(JsonConfig):
    """
    Settings for deploying the PDS stack
    """

    def default_config(self) -> dict:
        return {
            # Name of the AWS CloudFormation stack
            PDS_CONFIG_STACK_NAME_KEY: PDS_CONFIG_DEFAULT_STACK_NAME,
            # Production retains data on stack deletion, Test wipes everything
            PDS_CONFIG_MODE_KEY: MODE_PRODUCTION,
            # Hostname the PDS is served on, e.g. pds.example.com
            PDS_CONFIG_DOMAIN_NAME_KEY: '',
            # Route 53 hosted zone of the hostname. Defaults to the hostname itself
            PDS_CONFIG_DOMAIN_ZONE_KEY: '',
            # Domain that user handles are created under. Defaults to the hostname without its first label
            PDS_CONFIG_ROOT_DOMAIN_KEY: '',
            # Existing SNS topic which receives the alarm notifications
            PDS_CONFIG_ALARM_TOPIC_NAME_KEY: PDS_CONFIG_DEFAULT_ALARM_TOPIC_NAME,
            # Existing Secrets Manager secret holding the GitHub token for the ECR pull-through cache
            PDS_CONFIG_GITHUB_TOKEN_SECRET_NAME_KEY: PDS_CONFIG_DEFAULT_GITHUB_TOKEN_SECRET_NAME,
            # Tag of the ghcr.io/bluesky-social/pds image
            PDS_CONFIG_IMAGE_TAG_KEY: PDS_CONFIG_DEFAULT_IMAGE_TAG,

            # AWS configurations
            PDS_CONFIG_AWS_ACCOUNT_ID_KEY: '',
            PDS_CONFIG_AWS_REGION_KEY: '',
        }


class StackOutputsConfig(JsonConfig):
    """
    Outputs of the deployed PDS stack, persisted for the verify command
    """

    def default_config(self) -> dict:
        return {
            'StackName': '',
            'Region': '',
            'Outputs': dict(),
        }

    def get_output(self, output_key: str, default: str = '') -> str:
        """
        Get the value of a single stack output
        :param output_key: CloudFormation output key
        :param default: Default value to return if the output doesn't exist
        :return: Output value
        """
        return self._config.get('Outputs', dict()).get(output_key, default)

    def populate_stack_outputs(self, stack_name: str, region: str) -> None:
        """
        Calls describe on the deployed AWS CloudFormation stack and keeps its outputs.
        :param stack_name: Name of the AWS CloudFormation stack.
        :param region: Region the stack is deployed to.
        """
        cloudformation_client = boto3.client(
            'cloudformation',
            config=Config(region_name=region))

        response = cloudformation_client.describe_stacks(
            StackName=stack_name
        )
        stacks = response.get('Stacks', [])
        if len(stacks) == 0:
            raise RuntimeError(f'{stack_name} is invalid.')

        self._write_stack_outputs(stacks[0].get('Outputs', []), stack_name, region)

    def _write_stack_outputs(self, stack_outputs: typing.List, stack_name: str, region: str) -> None:
        outputs = self._config.get('Outputs', dict())
        for output in stack_outputs:
            outputs[output.get('OutputKey', 'InvalidKey')] = output.get('OutputValue', '')

        self._config['StackName'] = stack_name
        self._config['Region'] = region
        self._config['Outputs'] = outputs
