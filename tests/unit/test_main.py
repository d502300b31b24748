# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import unittest

from main import get_websocket_url


class TestMain(unittest.TestCase):

    def test_get_websocket_url_https_use_wss(self):
        self.assertEqual(get_websocket_url('https://pds.example.com'), 'wss://pds.example.com')

    def test_get_websocket_url_http_use_ws(self):
        self.assertEqual(get_websocket_url('http://localhost:3000'), 'ws://localhost:3000')
        self.assertEqual(get_websocket_url('HTTP://localhost:3000'), 'ws://localhost:3000')

    def test_get_websocket_url_no_scheme_use_wss(self):
        self.assertEqual(get_websocket_url('pds.example.com'), 'wss://pds.example.com')
