import asyncio
import base64
import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional

import aiohttp.web
import pytest

from cfkit._cogs.clients.auth import APIContext
from cfkit._cogs.clients.oauth import OAuthClient
from cfkit._cogs.configs.configuration import ClientSettings
from cfkit._cogs.structs.credentials import Credentials


@pytest.fixture()
def settings():
    settings = ClientSettings()
    settings.networking.error_backoffs = [0, 0, 0]  # never sleep for real in tests.
    return settings


@pytest.fixture()
def hostname():
    """ A fake hostname of the control plane to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def auth_hostname():
    """ A fake hostname of the identity provider, as discovered from the control plane. """
    return 'fake-auth-host'


@pytest.fixture()
def base_url(hostname):
    return f'https://{hostname}'


@pytest.fixture()
def auth_url(auth_hostname):
    return f'https://{auth_hostname}'


@pytest.fixture()
def logger():
    return logging.getLogger('cfkit.tests')


def make_jwt(**claims: Any) -> str:
    """ An unsigned JWT, good enough for the unverified claims decoding. """
    def b64(data: Any) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b'=').decode()
    return f"{b64({'alg': 'none', 'typ': 'JWT'})}.{b64(claims)}.signature"


@pytest.fixture()
def jwt():
    return make_jwt


@dataclasses.dataclass
class ReceivedRequest:
    method: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str]
    form: Dict[str, str]
    data: Any


async def receive(request: aiohttp.web.Request) -> ReceivedRequest:
    """
    The request's content can be read inside of the handler only. We preserve
    the data into a conventional structure, so that they could be asserted later.
    """
    form: Dict[str, str] = {}
    data: Any = None
    if request.content_type == 'application/x-www-form-urlencoded':
        form = {key: str(val) for key, val in (await request.post()).items()}
    elif request.can_read_body:
        text = await request.text()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = text
    return ReceivedRequest(
        method=request.method,
        path=request.path,
        query=dict(request.query),
        headers={key.lower(): val for key, val in request.headers.items()},
        form=form,
        data=data,
    )


@dataclasses.dataclass
class FakeServer:
    """
    A helper around `aresponses` to serve the responses and remember the requests.

    Note: `aresponses` excludes a response once it is matched (side-effect-like).
    So we just accumulate them there, as many as needed, in the order of use.
    """
    aresponses: Any
    hostname: str
    requests: List[ReceivedRequest] = dataclasses.field(default_factory=list)

    def add(
            self,
            method: str,
            path: str,
            payload: Any = None,
            *,
            status: int = 200,
            headers: Optional[Dict[str, str]] = None,
            delay: float = 0,
            text: Optional[str] = None,
    ) -> None:
        async def handler(request: aiohttp.web.Request) -> aiohttp.web.Response:
            self.requests.append(await receive(request))
            if delay:
                await asyncio.sleep(delay)
            if text is not None:
                return aiohttp.web.Response(text=text, status=status, headers=headers)
            if payload is None and status in (202, 204):
                return aiohttp.web.Response(status=status, headers=headers)
            return aiohttp.web.json_response(payload if payload is not None else {},
                                             status=status, headers=headers)

        self.aresponses.add(self.hostname, path, method.lower(), handler)


@dataclasses.dataclass
class FakeIdentityProvider(FakeServer):

    def issue(
            self,
            access_token: str = 'access1',
            refresh_token: Optional[str] = 'refresh1',
            *,
            expires_in: Optional[float] = 3600,
            delay: float = 0,
    ) -> None:
        payload: Dict[str, Any] = {'access_token': access_token, 'token_type': 'bearer'}
        if refresh_token is not None:
            payload['refresh_token'] = refresh_token
        if expires_in is not None:
            payload['expires_in'] = expires_in
        self.add('post', '/oauth/token', payload, delay=delay)

    def reject(self, status: int = 401, description: str = 'Bad credentials') -> None:
        payload = {'error': 'unauthorized', 'error_description': description}
        self.add('post', '/oauth/token', payload, status=status)


@pytest.fixture()
def platform(aresponses, hostname):
    return FakeServer(aresponses=aresponses, hostname=hostname)


@pytest.fixture()
def idp(aresponses, auth_hostname):
    return FakeIdentityProvider(aresponses=aresponses, hostname=auth_hostname)


@pytest.fixture()
def credentials():
    return Credentials(username='user', password='pass')


@pytest.fixture()
async def oauth(settings, auth_url):
    client = OAuthClient(auth_url, settings=settings)
    yield client
    await client.close()


@pytest.fixture()
async def context(oauth, credentials, base_url, settings):
    """ An authorized API context, as if made by the controller client. """
    oauth.initialize(credentials)
    context = APIContext(base_url, oauth=oauth, settings=settings)
    yield context
    await context.close()


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns=(), prohibited=(), strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
