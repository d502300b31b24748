# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import unittest
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import requests

from pds_validator import PdsValidator, ValidationError

TEST_PDS_URL = 'https://pds.example.com'
TEST_WSS_URL = 'wss://pds.example.com'


def _response(status_code: int = 200, text: str = '', json_body: dict = None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = json_body or {}
    return response


def _healthy_pds_response(method, url, **kwargs):
    path = url[len(TEST_PDS_URL):]
    if path == '/':
        return _response(text='This is an AT Protocol Personal Data Server (PDS). Status: OK')
    if path == '/.well-known/atproto-did':
        return _response(404, 'User not found')
    if path == '/xrpc/com.atproto.admin.getAccountInfo':
        return _response(401, '{"error":"AuthenticationRequired"}')
    if path == '/hello-world':
        return _response(403)
    return _response()


class TestPdsValidator(unittest.TestCase):

    def setUp(self):
        self._session = Mock()
        self._session.request.side_effect = _healthy_pds_response

    def _create_validator(self, **kwargs) -> PdsValidator:
        return PdsValidator(TEST_PDS_URL + '/', TEST_WSS_URL, session=self._session, **kwargs)

    def test_validate_basic_routes(self):
        self._create_validator().validate_basic_routes()

        requested_urls = [c.args[1] for c in self._session.request.call_args_list]
        self.assertEqual(requested_urls, [f'{TEST_PDS_URL}/', f'{TEST_PDS_URL}/robots.txt',
                                          f'{TEST_PDS_URL}/xrpc/_health'])

    def test_validate_basic_routes_no_banner_raise_validation_error(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(text='')

        with self.assertRaises(ValidationError):
            self._create_validator().validate_basic_routes()

    def test_validate_well_known_routes_unexpected_status_raise_validation_error(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(200, 'did:plc:abc')

        with self.assertRaises(ValidationError):
            self._create_validator().validate_well_known_routes()

    def test_validate_xrpc_routes(self):
        self._create_validator().validate_xrpc_routes()

        self._session.request.assert_any_call('GET', f'{TEST_PDS_URL}/xrpc/com.atproto.sync.listRepos',
                                              timeout=10, params={'limit': 1})

    def test_validate_xrpc_routes_admin_not_protected_raise_validation_error(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(401, 'Unauthorized')

        with self.assertRaises(ValidationError):
            self._create_validator().validate_xrpc_routes()

    def test_request_exception_raise_validation_error(self):
        self._session.request.side_effect = requests.ConnectionError('connection refused')

        with self.assertRaises(ValidationError):
            self._create_validator().validate_unknown_paths()

    @patch('pds_validator.websockets.connect')
    def test_validate_websocket(self, mock_connect):
        mock_websocket = AsyncMock()
        mock_websocket.recv.return_value = b'\xa2aop\x01'
        mock_connect.return_value.__aenter__ = AsyncMock(return_value=mock_websocket)
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        self._create_validator().validate_websocket()

        mock_connect.assert_called_once_with(
            f'{TEST_WSS_URL}/xrpc/com.atproto.sync.subscribeRepos?cursor=0', open_timeout=10)

    @patch('pds_validator.websockets.connect')
    def test_validate_websocket_text_frame_raise_validation_error(self, mock_connect):
        mock_websocket = AsyncMock()
        mock_websocket.recv.return_value = 'not a binary frame'
        mock_connect.return_value.__aenter__ = AsyncMock(return_value=mock_websocket)
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        with self.assertRaises(ValidationError):
            self._create_validator().validate_websocket()

    @patch('pds_validator.websockets.connect')
    def test_validate_websocket_connection_refused_raise_validation_error(self, mock_connect):
        mock_connect.return_value.__aenter__ = AsyncMock(side_effect=ConnectionRefusedError())
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        with self.assertRaises(ValidationError):
            self._create_validator().validate_websocket()

    @patch('pds_validator.websockets.connect')
    def test_run_all_no_credentials_skip_account_checks(self, mock_connect):
        mock_websocket = AsyncMock()
        mock_websocket.recv.return_value = b'\x01'
        mock_connect.return_value = MagicMock()
        mock_connect.return_value.__aenter__ = AsyncMock(return_value=mock_websocket)
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        validator = self._create_validator()

        self.assertFalse(validator.has_credentials)
        self.assertTrue(validator.run_all())
        requested_urls = [c.args[1] for c in self._session.request.call_args_list]
        self.assertNotIn(f'{TEST_PDS_URL}/xrpc/com.atproto.server.createSession', requested_urls)

    @patch('pds_validator.websockets.connect')
    def test_run_all_failed_check_return_false(self, mock_connect):
        mock_connect.return_value.__aenter__ = AsyncMock(side_effect=OSError('unreachable'))
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        self.assertFalse(self._create_validator().run_all())

    def test_validate_read_path(self):
        def account_response(method, url, **kwargs):
            if url.endswith('createSession'):
                return _response(json_body={'accessJwt': 'test-jwt', 'did': 'did:plc:test'})
            if url.endswith('getProfile'):
                return _response(json_body={'description': 'Test account', 'postsCount': 3,
                                            'followersCount': 1, 'followsCount': 2})
            return _response(json_body={'feed': [{'post': {'record': {'text': 'hello'}}}]})
        self._session.request.side_effect = account_response

        self._create_validator(handle='test.pds.example.com', password='test-password').validate_read_path()

        self._session.request.assert_any_call(
            'GET', f'{TEST_PDS_URL}/xrpc/app.bsky.actor.getProfile', timeout=10,
            params={'actor': 'test.pds.example.com'}, headers={'Authorization': 'Bearer test-jwt'})

    def test_validate_read_path_empty_timeline_raise_validation_error(self):
        def account_response(method, url, **kwargs):
            if url.endswith('createSession'):
                return _response(json_body={'accessJwt': 'test-jwt', 'did': 'did:plc:test'})
            if url.endswith('getProfile'):
                return _response(json_body={'description': 'Test account', 'postsCount': 3,
                                            'followersCount': 1, 'followsCount': 2})
            return _response(json_body={'feed': []})
        self._session.request.side_effect = account_response

        with self.assertRaises(ValidationError):
            self._create_validator(handle='test.pds.example.com', password='test-password').validate_read_path()

    def test_validate_write_path(self):
        test_blob = {'$type': 'blob', 'ref': {'$link': 'bafkrei'}, 'mimeType': 'image/jpeg', 'size': 4}

        def account_response(method, url, **kwargs):
            if url.endswith('createSession'):
                return _response(json_body={'accessJwt': 'test-jwt', 'did': 'did:plc:test'})
            if url.endswith('uploadBlob'):
                return _response(json_body={'blob': test_blob})
            return _response(json_body={'uri': 'at://did:plc:test/app.bsky.feed.post/1'})
        self._session.request.side_effect = account_response
        self._session.get.return_value = Mock(content=b'jpeg')

        validator = self._create_validator(handle='test.pds.example.com', password='test-password',
                                           post_template='Post for COMMIT_ID\n', commit_id='0123456789abcdef')
        validator.validate_write_path()

        create_record_call = self._session.request.call_args_list[-1]
        self.assertEqual(create_record_call.args[1], f'{TEST_PDS_URL}/xrpc/com.atproto.repo.createRecord')
        body = create_record_call.kwargs['json']
        self.assertEqual(body['repo'], 'did:plc:test')
        self.assertEqual(body['collection'], 'app.bsky.feed.post')
        self.assertEqual(body['record']['text'], 'Post for 0123456')
        self.assertTrue(body['record']['createdAt'].endswith('Z'))
        self.assertEqual(body['record']['embed']['images'][0]['image'], test_blob)

        upload_call = self._session.request.call_args_list[1]
        self.assertEqual(upload_call.kwargs['data'], b'jpeg')
        self.assertEqual(upload_call.kwargs['headers']['Content-Type'], 'image/jpeg')

    def test_post_text_default_template(self):
        validator = self._create_validator(commit_id='')

        self.assertEqual(validator.post_text(), 'Integration test post for commit unknown')

    def test_validate_read_path_non_json_response_raise_validation_error(self):
        def maintenance_response(method, url, **kwargs):
            response = _response(text='<html>maintenance</html>')
            response.json.side_effect = requests.exceptions.JSONDecodeError('Expecting value', '<html>', 0)
            return response
        self._session.request.side_effect = maintenance_response

        with self.assertRaises(ValidationError):
            self._create_validator(handle='test.pds.example.com', password='test-password').validate_read_path()

    def test_validate_read_path_session_without_token_raise_validation_error(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(json_body={'did': 'did:plc:test'})

        with self.assertRaises(ValidationError):
            self._create_validator(handle='test.pds.example.com', password='test-password').validate_read_path()

    @patch('pds_validator.websockets.connect')
    def test_run_all_non_json_response_report_failure_and_continue(self, mock_connect):
        mock_websocket = AsyncMock()
        mock_websocket.recv.return_value = b'\x01'
        mock_connect.return_value.__aenter__ = AsyncMock(return_value=mock_websocket)
        mock_connect.return_value.__aexit__ = AsyncMock(return_value=False)

        def maintenance_on_session(method, url, **kwargs):
            if url.endswith('createSession'):
                response = _response(text='<html>maintenance</html>')
                response.json.side_effect = requests.exceptions.JSONDecodeError('Expecting value', '<html>', 0)
                return response
            return _healthy_pds_response(method, url, **kwargs)
        self._session.request.side_effect = maintenance_on_session

        validator = self._create_validator(handle='test.pds.example.com', password='test-password')

        with self.assertLogs('pds_validator', level='INFO') as logs:
            self.assertFalse(validator.run_all())

        self.assertTrue(any('FAILED: read path' in line for line in logs.output))
        self.assertTrue(any('FAILED: write path' in line for line in logs.output))
        self.assertTrue(any('PASSED: unknown paths' in line for line in logs.output))

    def test_validate_auth_routes_accept_any_success_status(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(204)

        self._create_validator().validate_auth_routes()

    def test_validate_auth_routes_redirect_raise_validation_error(self):
        self._session.request.side_effect = None
        self._session.request.return_value = _response(302)

        with self.assertRaises(ValidationError):
            self._create_validator().validate_auth_routes()
