# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Smoke tests for a deployed Bluesky PDS.

Exercises the public routes served by the PDS over HTTPS, the repo event
stream over WebSocket, and optionally the read and write paths of a test
account. See https://github.com/bluesky-social/atproto/tree/main/packages/pds
for the routes being validated.
"""
import asyncio
import datetime
import logging
import typing

import requests
import websockets

logger = logging.getLogger('pds_validator')

DEFAULT_TIMEOUT = 10  # seconds, per HTTP request and WebSocket frame
TEST_IMAGE_URL = 'https://picsum.photos/600/600.jpg'
COMMIT_ID_PLACEHOLDER = 'COMMIT_ID'


class ValidationError(RuntimeError):
    """
    Raised when the PDS does not respond as expected
    """


class PdsValidator(object):
    """
    Validate the endpoints of a deployed PDS
    """

    def __init__(self, pds_url: str, wss_url: str, handle: str = None, password: str = None,
                 post_template: str = None, commit_id: str = '', timeout: int = DEFAULT_TIMEOUT,
                 session: requests.Session = None):
        self._pds_url = pds_url.rstrip('/')
        self._wss_url = wss_url.rstrip('/')
        self._handle = handle
        self._password = password
        self._post_template = post_template
        self._commit_id = (commit_id or 'unknown')[:7]
        self._timeout = timeout
        self._session = session or requests.Session()

        self._access_jwt = None
        self._did = None

    @property
    def has_credentials(self) -> bool:
        return bool(self._handle and self._password)

    def run_all(self) -> bool:
        """
        Run every check, logging the result of each
        :return: Whether all the checks passed
        """
        checks = [
            ('basic routes', self.validate_basic_routes),
            ('auth routes', self.validate_auth_routes),
            ('well-known routes', self.validate_well_known_routes),
            ('xrpc routes', self.validate_xrpc_routes),
            ('web sockets', self.validate_websocket),
            ('unknown paths', self.validate_unknown_paths),
        ]
        if self.has_credentials:
            checks.append(('read path', self.validate_read_path))
            checks.append(('write path', self.validate_write_path))
        else:
            logger.warning('No test account credentials provided. Skipping read and write path checks')

        failures = []
        for name, check in checks:
            try:
                check()
                logger.info(f'PASSED: {name}')
            except ValidationError as e:
                logger.error(f'FAILED: {name}: {e}')
                failures.append(name)

        if failures:
            logger.error(f'{len(failures)} of {len(checks)} checks failed: {", ".join(failures)}')
            return False
        logger.info(f'All {len(checks)} checks passed against {self._pds_url}')
        return True

    def validate_basic_routes(self) -> None:
        response = self._expect_status('GET', '/', 200)
        if 'OK' not in response.text:
            raise ValidationError('GET / did not return the PDS banner')
        self._expect_success('GET', '/robots.txt')
        self._expect_success('GET', '/xrpc/_health')

    def validate_auth_routes(self) -> None:
        self._expect_success('GET', '/.well-known/oauth-protected-resource')
        self._expect_success('GET', '/.well-known/oauth-authorization-server')

    def validate_well_known_routes(self) -> None:
        # The service hostname is not a user handle
        response = self._expect_status('GET', '/.well-known/atproto-did', 404)
        if 'User not found' not in response.text:
            raise ValidationError(f'Unexpected atproto-did response: {response.text}')

    def validate_xrpc_routes(self) -> None:
        self._expect_success('GET', '/xrpc/com.atproto.server.describeServer')
        self._expect_success('GET', '/xrpc/com.atproto.sync.listRepos', params={'limit': 1})
        response = self._expect_status('GET', '/xrpc/com.atproto.admin.getAccountInfo', 401,
                                       params={'did': 'hello-world'})
        if 'AuthenticationRequired' not in response.text:
            raise ValidationError(f'Admin route did not require authentication: {response.text}')

    def validate_websocket(self) -> None:
        try:
            frame = asyncio.run(self._receive_first_frame())
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise ValidationError(f'No event received from the repo event stream: {e!r}') from e

        if not isinstance(frame, bytes) or len(frame) == 0:
            raise ValidationError('Repo event stream frame is not a binary frame')
        logger.info(f'Received {len(frame)} byte frame from the repo event stream')

    def validate_unknown_paths(self) -> None:
        self._expect_status('GET', '/hello-world', 403)

    def validate_read_path(self) -> None:
        self._create_session()

        profile = self._expect_json('GET', '/xrpc/app.bsky.actor.getProfile', 200,
                                    params={'actor': self._handle}, headers=self._auth_headers())
        if len(profile.get('description') or '') == 0:
            raise ValidationError('Test account profile has no description')
        for count_key in ('postsCount', 'followersCount', 'followsCount'):
            if (profile.get(count_key) or 0) <= 0:
                raise ValidationError(f'Test account profile {count_key} is not positive')

        timeline = self._expect_json('GET', '/xrpc/app.bsky.feed.getTimeline', 200,
                                     params={'limit': 1}, headers=self._auth_headers())
        feed = timeline.get('feed') or []
        if len(feed) == 0:
            raise ValidationError('Test account timeline is empty')
        if len(feed[0].get('post', {}).get('record', {}).get('text') or '') == 0:
            raise ValidationError('Latest timeline post has no text')

    def validate_write_path(self) -> None:
        self._create_session()

        try:
            image = self._session.get(TEST_IMAGE_URL, timeout=self._timeout)
            image.raise_for_status()
        except requests.RequestException as e:
            raise ValidationError(f'Could not download the test image: {e}') from e

        upload = self._expect_json('POST', '/xrpc/com.atproto.repo.uploadBlob', 200,
                                   data=image.content,
                                   headers=dict(self._auth_headers(), **{'Content-Type': 'image/jpeg'}))
        blob = upload.get('blob')
        if not blob:
            raise ValidationError('uploadBlob response has no blob')

        record = {
            '$type': 'app.bsky.feed.post',
            'text': self.post_text(),
            'createdAt': datetime.datetime.now(datetime.timezone.utc).isoformat(
                timespec='milliseconds').replace('+00:00', 'Z'),
            'embed': {
                '$type': 'app.bsky.embed.images',
                'images': [{'alt': 'Random test image', 'image': blob}],
            },
        }
        created = self._expect_json('POST', '/xrpc/com.atproto.repo.createRecord', 200,
                                    json={'repo': self._did, 'collection': 'app.bsky.feed.post',
                                          'record': record},
                                    headers=self._auth_headers())
        logger.info(f'Created test post {created.get("uri")}')

    def post_text(self) -> str:
        """
        Text of the test post, stamped with the abbreviated commit ID
        """
        template = self._post_template or f'Integration test post for commit {COMMIT_ID_PLACEHOLDER}'
        return template.strip().replace(COMMIT_ID_PLACEHOLDER, self._commit_id)

    async def _receive_first_frame(self) -> typing.Union[bytes, str]:
        # cursor=0 replays the stream from the oldest retained event
        uri = f'{self._wss_url}/xrpc/com.atproto.sync.subscribeRepos?cursor=0'
        logger.info(f'Connecting to {uri}')
        async with websockets.connect(uri, open_timeout=self._timeout) as websocket:
            return await asyncio.wait_for(websocket.recv(), timeout=self._timeout)

    def _create_session(self) -> None:
        if self._access_jwt:
            return
        if not self.has_credentials:
            raise ValidationError('Test account credentials are required')

        session = self._expect_json('POST', '/xrpc/com.atproto.server.createSession', 200,
                                    json={'identifier': self._handle, 'password': self._password})
        if not session.get('accessJwt') or not session.get('did'):
            raise ValidationError('createSession response has no access token or DID')
        self._access_jwt = session['accessJwt']
        self._did = session['did']

    def _auth_headers(self) -> dict:
        return {'Authorization': f'Bearer {self._access_jwt}'}

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f'{self._pds_url}{path}'
        try:
            return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise ValidationError(f'{method} {path} failed: {e}') from e

    def _expect_success(self, method: str, path: str, **kwargs) -> requests.Response:
        response = self._request(method, path, **kwargs)
        if not 200 <= response.status_code < 300:
            raise ValidationError(f'{method} {path} returned {response.status_code}, '
                                  f'expected 2xx: {response.text[:200]}')
        return response

    def _expect_status(self, method: str, path: str, status_code: int, **kwargs) -> requests.Response:
        response = self._request(method, path, **kwargs)
        if response.status_code != status_code:
            raise ValidationError(f'{method} {path} returned {response.status_code}, '
                                  f'expected {status_code}: {response.text[:200]}')
        return response

    def _expect_json(self, method: str, path: str, status_code: int, **kwargs) -> dict:
        response = self._expect_status(method, path, status_code, **kwargs)
        try:
            body = response.json()
        except ValueError as e:
            raise ValidationError(f'{method} {path} did not return JSON: {response.text[:200]}') from e

        if not isinstance(body, dict):
            raise ValidationError(f'{method} {path} did not return a JSON object: {response.text[:200]}')
        return body
