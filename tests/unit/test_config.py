# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import json
import os
import tempfile
import unittest
from unittest.mock import patch

from config import PdsDeployConfig, StackOutputsConfig
from constants import *


class TestPdsDeployConfig(unittest.TestCase):

    def setUp(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self._config_file = os.path.join(self._temp_dir.name, PDS_CONFIG_FILENAME)

    def tearDown(self):
        self._temp_dir.cleanup()

    def test_load_no_file_use_defaults(self):
        config = PdsDeployConfig()
        config.load(filename=self._config_file, backup=True)

        self.assertEqual(config.get(PDS_CONFIG_STACK_NAME_KEY), PDS_CONFIG_DEFAULT_STACK_NAME)
        self.assertEqual(config.get(PDS_CONFIG_MODE_KEY), MODE_PRODUCTION)
        self.assertEqual(config.get(PDS_CONFIG_IMAGE_TAG_KEY), PDS_CONFIG_DEFAULT_IMAGE_TAG)
        self.assertEqual(config.get(PDS_CONFIG_DOMAIN_NAME_KEY), '')
        self.assertFalse(os.path.exists(self._config_file))

    def test_load_partial_file_merge_with_defaults(self):
        with open(self._config_file, 'w') as config_file:
            json.dump({PDS_CONFIG_DOMAIN_NAME_KEY: 'pds.example.com', PDS_CONFIG_MODE_KEY: MODE_TEST}, config_file)

        config = PdsDeployConfig()
        config.load(filename=self._config_file, backup=False)

        self.assertEqual(config.get(PDS_CONFIG_DOMAIN_NAME_KEY), 'pds.example.com')
        self.assertEqual(config.get(PDS_CONFIG_MODE_KEY), MODE_TEST)
        self.assertEqual(config.get(PDS_CONFIG_ALARM_TOPIC_NAME_KEY), PDS_CONFIG_DEFAULT_ALARM_TOPIC_NAME)

    def test_load_with_backup_write_backup_file(self):
        with open(self._config_file, 'w') as config_file:
            json.dump({PDS_CONFIG_DOMAIN_NAME_KEY: 'pds.example.com'}, config_file)

        config = PdsDeployConfig()
        config.load(filename=self._config_file, backup=True)

        backup_file = os.path.join(self._temp_dir.name, 'pds_deploy_config_bak.json')
        self.assertTrue(os.path.exists(backup_file))
        with open(backup_file) as config_file:
            self.assertEqual(json.load(config_file)[PDS_CONFIG_DOMAIN_NAME_KEY], 'pds.example.com')

    def test_save_and_load(self):
        config = PdsDeployConfig()
        config.load(filename=self._config_file, backup=False)
        config.set(PDS_CONFIG_DOMAIN_NAME_KEY, 'pds.example.com')
        config.save(self._config_file)

        reloaded_config = PdsDeployConfig()
        reloaded_config.load(filename=self._config_file, backup=False)

        self.assertEqual(reloaded_config.get(PDS_CONFIG_DOMAIN_NAME_KEY), 'pds.example.com')
        self.assertTrue(reloaded_config.has_config(PDS_CONFIG_AWS_REGION_KEY))

    def test_get_str_empty_value_use_default(self):
        config = PdsDeployConfig()
        config.set(PDS_CONFIG_DOMAIN_ZONE_KEY, '  ')
        config.set(PDS_CONFIG_IMAGE_TAG_KEY, 0.4)
        config.set(PDS_CONFIG_DOMAIN_NAME_KEY, ' pds.example.com ')

        self.assertEqual(config.get_str(PDS_CONFIG_DOMAIN_ZONE_KEY, 'example.com'), 'example.com')
        self.assertEqual(config.get_str('missing_key'), '')
        self.assertEqual(config.get_str(PDS_CONFIG_IMAGE_TAG_KEY), '0.4')
        self.assertEqual(config.get_str(PDS_CONFIG_DOMAIN_NAME_KEY), 'pds.example.com')


class TestStackOutputsConfig(unittest.TestCase):

    @patch('config.boto3.client')
    def test_populate_stack_outputs(self, mock_client):
        mock_client.return_value.describe_stacks.return_value = {
            'Stacks': [{
                'Outputs': [
                    {'OutputKey': STACK_OUTPUT_SERVICE_URL_KEY, 'OutputValue': 'https://pds.example.com'},
                    {'OutputKey': 'PdsBlobBucketName', 'OutputValue': 'test-blob-bucket'},
                ]
            }]
        }

        outputs_config = StackOutputsConfig()
        outputs_config.populate_stack_outputs('PdsTestStack', 'us-east-2')

        mock_client.return_value.describe_stacks.assert_called_once_with(StackName='PdsTestStack')
        self.assertEqual(outputs_config.get_output(STACK_OUTPUT_SERVICE_URL_KEY), 'https://pds.example.com')
        self.assertEqual(outputs_config.get_output('PdsBlobBucketName'), 'test-blob-bucket')
        self.assertEqual(outputs_config.get_output('Missing', 'default'), 'default')
        self.assertEqual(outputs_config.get('StackName'), 'PdsTestStack')
        self.assertEqual(outputs_config.get('Region'), 'us-east-2')

    @patch('config.boto3.client')
    def test_populate_stack_outputs_no_stack_raise_runtime_error(self, mock_client):
        mock_client.return_value.describe_stacks.return_value = {'Stacks': []}

        outputs_config = StackOutputsConfig()
        with self.assertRaises(RuntimeError) as context:
            outputs_config.populate_stack_outputs('PdsTestStack', 'us-east-2')

        self.assertEqual(str(context.exception), 'PdsTestStack is invalid.')
