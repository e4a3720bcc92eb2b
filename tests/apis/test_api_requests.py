import aiohttp
import pytest

from cfkit._cogs.clients.api import delete, get, patch, post, put, request, send
from cfkit._cogs.clients.errors import PlatformError, TransportError


@pytest.mark.parametrize('method', ['get', 'post', 'put', 'patch', 'delete'])
async def test_raw_requests_work(platform, context, method):
    platform.add(method, '/url', {})

    response = await request(
        method=method,
        url='/url',
        payload={'fake': 'payload'},
        headers={'fake': 'headers'},
        context=context,
    )
    async with response:
        assert isinstance(response, aiohttp.ClientResponse)  # unparsed!

    assert len(platform.requests) == 1
    assert platform.requests[0].method.lower() == method
    assert platform.requests[0].path == '/url'
    assert platform.requests[0].data == {'fake': 'payload'}
    assert platform.requests[0].headers['fake'] == 'headers'  # and other system headers
    assert platform.requests[0].headers['authorization'] == 'Bearer fake-token'
    assert platform.requests[0].headers['user-agent'].startswith('cfkit/')


@pytest.mark.parametrize('method', ['get', 'post', 'put', 'patch', 'delete'])
async def test_raw_requests_are_not_parsed(platform, context, method):
    platform.add(method, '/url', text='BAD JSON!')
    response = await request(method, '/url', context=context)
    async with response:
        assert isinstance(response, aiohttp.ClientResponse)


@pytest.mark.parametrize('method', ['get', 'post', 'put', 'patch', 'delete'])
async def test_errors_escalate_with_details(platform, context, method):
    platform.add(method, '/url', {'errors': [{'code': 10008, 'title': 'CF-UnprocessableEntity',
                                              'detail': 'The request is semantically invalid'}]},
                 status=422)
    with pytest.raises(PlatformError) as err:
        await request(method, '/url', context=context)
    assert err.value.status == 422
    assert err.value.code == 'CF-UnprocessableEntity'
    assert err.value.description == 'The request is semantically invalid'


async def test_relative_urls_are_joined_to_the_server(platform, context, hostname):
    platform.add('get', '/v3/apps', {})
    await get('v3/apps', context=context)
    assert platform.requests[0].path == '/v3/apps'


async def test_query_params_are_sent(platform, context):
    platform.add('get', '/v3/apps', {})
    await get('/v3/apps', params={'names': 'a,b'}, context=context)
    assert platform.requests[0].query == {'names': 'a,b'}


async def test_absolute_urls_are_passed_through(aresponses, context):
    requested = []

    async def handler(request):
        requested.append(request.host)
        return aiohttp.web.json_response({})

    aresponses.add('other-host', '/url', 'get', handler)
    await get('https://other-host/url', context=context)
    assert requested == ['other-host']


@pytest.mark.parametrize('fn, method', [
    (get, 'get'),
    (delete, 'delete'),
])
async def test_parsing_without_payload(platform, context, fn, method):
    platform.add(method, '/url', {'fake': 'result'})
    result = await fn('/url', context=context)
    assert result == {'fake': 'result'}


@pytest.mark.parametrize('fn, method', [
    (post, 'post'),
    (put, 'put'),
    (patch, 'patch'),
])
async def test_parsing_with_payload(platform, context, fn, method):
    platform.add(method, '/url', {'fake': 'result'})
    result = await fn('/url', payload={'fake': 'payload'}, context=context)
    assert result == {'fake': 'result'}
    assert platform.requests[0].data == {'fake': 'payload'}


async def test_empty_body_is_parsed_as_none(platform, context):
    platform.add('delete', '/url', status=204)
    result = await delete('/url', context=context)
    assert result is None


async def test_malformed_body_is_a_transport_error(platform, context):
    platform.add('get', '/url', text='BAD JSON!')
    with pytest.raises(TransportError):
        await get('/url', context=context)


async def test_send_returns_status_and_headers(platform, context):
    platform.add('post', '/url', status=202, headers={'Location': 'https://fake-host/v3/jobs/123'})
    status, headers, data = await send('post', '/url', payload={}, context=context)
    assert status == 202
    assert headers['Location'] == 'https://fake-host/v3/jobs/123'
    assert data is None
