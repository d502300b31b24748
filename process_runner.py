# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import os
import platform
import subprocess
import typing


class ProcessRunner:
    """
    Runs an external command and streams its output to the console
    """

    def __init__(self, description: str, cmds_list: typing.Optional[typing.List[str]] = None):
        self._description = description
        self._cmd_list = list(cmds_list or [])

    def run(self, exec_dir: str = '', env: typing.Optional[dict] = None) -> int:
        """
        Run the process and wait for it to finish
        :param exec_dir: Execution directory
        :param env: environment variables for running the process
        :return: exit code of the process being run
        """
        original_cwd = os.getcwd()
        print(f'{self._description}: {str(self._cmd_list)}')

        try:
            if exec_dir:
                os.chdir(exec_dir)

            with subprocess.Popen(self._get_cmd_args_for_os(self._cmd_list),
                                  stdout=subprocess.PIPE,
                                  stderr=subprocess.STDOUT,
                                  env=env) as process:
                for line in process.stdout:
                    print(line.decode('utf-8', errors='replace').rstrip())
                return_code = process.wait()
        except OSError:
            print(f'Exception running command: {str(self._cmd_list)}')
            raise
        finally:
            os.chdir(original_cwd)

        if return_code != 0:
            raise subprocess.CalledProcessError(return_code, self._cmd_list)

        return return_code

    @staticmethod
    def _get_cmd_args_for_os(cmd_args: typing.List[str]) -> typing.List[str]:
        # The cdk and pip entry points are .cmd shims on Windows
        if platform.system() == 'Windows':
            return ['powershell.exe'] + cmd_args
        return cmd_args
