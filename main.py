# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import argparse
import logging
import os
import sys

from cdk_manager import CdkManager
from config import PdsDeployConfig, StackOutputsConfig
from constants import *
from pds_validator import PdsValidator


def _create_deploy_config(args):
    config = PdsDeployConfig()
    config.load(filename=args.config_file, backup=True)
    if args.mode:
        config.set(PDS_CONFIG_MODE_KEY, args.mode)
    config.display()
    config.save(args.config_file)
    return config


def deploy(config: PdsDeployConfig, args: argparse.Namespace) -> None:
    """
    Deploy the PDS AWS resources
    :param config: Deploy config
    :param args: CLI input arguments
    """
    CdkManager(config, outputs_file=args.outputs_file).deploy_aws_resources()


def clear(config: PdsDeployConfig, args: argparse.Namespace) -> None:
    """
    Clear the PDS AWS resources
    :param config: Deploy config
    :param args: CLI input arguments
    """
    CdkManager(config, outputs_file=args.outputs_file).destroy_aws_resources()


def verify(config: PdsDeployConfig, args: argparse.Namespace) -> None:
    """
    Run the integration tests against the deployed PDS
    :param config: Deploy config
    :param args: CLI input arguments
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    pds_url = args.pds_url or _get_deployed_service_url(config, args.outputs_file)
    wss_url = args.wss_url or get_websocket_url(pds_url)

    post_template = None
    if os.path.exists(args.post_file):
        with open(args.post_file) as post_file:
            post_template = post_file.read()

    validator = PdsValidator(
        pds_url,
        wss_url,
        handle=os.environ.get(HANDLE_ENV),
        password=os.environ.get(PASSWORD_ENV),
        post_template=post_template,
        commit_id=os.environ.get(COMMIT_ID_ENV, '')
    )
    if not validator.run_all():
        sys.exit(1)


def get_websocket_url(pds_url: str) -> str:
    """
    WebSocket URL of the PDS, using ws:// for a plain HTTP PDS and wss:// otherwise
    """
    scheme, separator, address = pds_url.partition('://')
    if not separator:
        return f'wss://{pds_url}'
    websocket_scheme = 'ws' if scheme.lower() == 'http' else 'wss'
    return f'{websocket_scheme}://{address}'


def _get_deployed_service_url(config: PdsDeployConfig, outputs_file: str) -> str:
    """
    Find the PDS URL from the saved stack outputs, falling back to the configured hostname
    """
    stack_outputs_config = StackOutputsConfig()
    stack_outputs_config.load(filename=outputs_file, backup=False)
    service_url = stack_outputs_config.get_output(STACK_OUTPUT_SERVICE_URL_KEY)
    if service_url:
        return service_url

    domain_name = config.get_str(PDS_CONFIG_DOMAIN_NAME_KEY)
    if not domain_name:
        raise RuntimeError('No PDS URL is known. Pass it using \'--pds-url\' or deploy the stack first')
    return f'https://{domain_name}'


if __name__ == '__main__':
    parser = argparse.ArgumentParser(
        prog='main.py',
        description=(
            'Deploys and verifies a Bluesky PDS on AWS'
        ),
        add_help=False
    )
    parser.add_argument(
        '-f', '--config-file', action='store', default=PDS_CONFIG_FILENAME,
        help='Path to the PDS deploy config file. Creates a new config file if none exists'
    )
    parser.add_argument(
        '-o', '--outputs-file', action='store', default=STACK_OUTPUTS_CONFIG_FILENAME,
        help='Path to the file where the deployed stack outputs are saved'
    )
    # Capitalizing the mode argument to match the deployment mode names
    parser.add_argument(
        '-m', '--mode', choices=SUPPORTED_MODES, action='store', default=None, type=str.capitalize,
        help='Deployment mode. Overrides the mode in the config file'
    )

    subparsers = parser.add_subparsers(metavar='COMMAND')
    parser_deploy = subparsers.add_parser('deploy', parents=[parser], help='Deploy the PDS AWS resources')
    parser_deploy.set_defaults(func=deploy)

    parser_clear = subparsers.add_parser('clear', parents=[parser], help='Clear deployed AWS resources')
    parser_clear.set_defaults(func=clear)

    parser_verify = subparsers.add_parser('verify', parents=[parser], help='Run integration tests against the PDS')
    parser_verify.set_defaults(func=verify)
    parser_verify.add_argument(
        '--pds-url', action='store', default=None,
        help='HTTPS URL of the PDS. Defaults to the deployed stack output'
    )
    parser_verify.add_argument(
        '--wss-url', action='store', default=None,
        help='WebSocket URL of the PDS. Derived from the PDS URL if not specified'
    )
    parser_verify.add_argument(
        '--post-file', action='store', default=SAMPLE_TEST_POST_FILENAME,
        help='Template of the test post. COMMIT_ID is replaced with the commit being tested'
    )

    args = parser.parse_args()
    config = _create_deploy_config(args)
    if hasattr(args, 'func'):
        args.func(config, args)
