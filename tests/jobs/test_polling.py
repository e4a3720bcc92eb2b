import asyncio

import aiohttp
import pytest

from cfkit._cogs.clients.auth import APIContext
from cfkit._cogs.structs.credentials import Credentials, Token

from cfkit._cogs.clients.errors import JobFailedError, JobTimeoutError, PlatformError, \
                                       ServerError, TooManyRequestsError, TransportError
from cfkit._cogs.clients.jobs import get_job
from cfkit._cogs.structs.jobs import AsyncJob, JobState
from cfkit._core.engines.polling import await_completion, complete

QUEUED = AsyncJob(id='job-1', state=JobState.QUEUED)
PROCESSING = AsyncJob(id='job-1', state=JobState.PROCESSING)
COMPLETE = AsyncJob(id='job-1', state=JobState.COMPLETE)
FAILED = AsyncJob(id='job-1', state=JobState.FAILED, errors=({'detail': 'Broker timed out'},))


@pytest.mark.looptime
async def test_polling_until_complete(settings, mocker):
    fetch = mocker.AsyncMock(side_effect=[QUEUED, PROCESSING, COMPLETE])
    loop = asyncio.get_running_loop()
    started = loop.time()

    job = await await_completion('job-1', interval=5, timeout=60, fetch=fetch, settings=settings)

    assert job is COMPLETE
    assert fetch.call_count == 3
    assert fetch.call_args_list[0][0] == ('job-1',)
    assert loop.time() - started == pytest.approx(10)


@pytest.mark.looptime
async def test_immediately_complete_job_is_not_waited_for(settings, mocker):
    fetch = mocker.AsyncMock(return_value=COMPLETE)
    loop = asyncio.get_running_loop()
    started = loop.time()

    job = await await_completion('job-1', interval=5, timeout=60, fetch=fetch, settings=settings)

    assert job is COMPLETE
    assert fetch.call_count == 1
    assert loop.time() == pytest.approx(started)


@pytest.mark.looptime
async def test_failed_job_raises_with_details(settings, mocker):
    fetch = mocker.AsyncMock(side_effect=[PROCESSING, FAILED])

    with pytest.raises(JobFailedError) as err:
        await await_completion('job-1', interval=5, timeout=60, fetch=fetch, settings=settings)

    assert err.value.job is FAILED
    assert err.value.detail == 'Broker timed out'


@pytest.mark.looptime
async def test_timeout_stops_polling_at_the_deadline(settings, mocker):
    fetch = mocker.AsyncMock(return_value=PROCESSING)
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(JobTimeoutError) as err:
        await await_completion('job-1', interval=5, timeout=12, fetch=fetch, settings=settings)

    assert err.value.job_id == 'job-1'
    assert err.value.job is PROCESSING
    assert err.value.timeout == 12
    assert fetch.call_count == 3  # at 0s, 5s, 10s; but not at 12s.
    assert loop.time() - started == pytest.approx(12)


@pytest.mark.looptime
async def test_zero_timeout_fetches_once(settings, mocker):
    fetch = mocker.AsyncMock(return_value=PROCESSING)

    with pytest.raises(JobTimeoutError):
        await await_completion('job-1', interval=5, timeout=0, fetch=fetch, settings=settings)

    assert fetch.call_count == 1


@pytest.mark.looptime
async def test_defaults_come_from_settings(settings, mocker):
    settings.polling.interval = 7
    settings.polling.timeout = 20
    fetch = mocker.AsyncMock(return_value=PROCESSING)
    loop = asyncio.get_running_loop()
    started = loop.time()

    with pytest.raises(JobTimeoutError):
        await await_completion('job-1', fetch=fetch, settings=settings)

    assert fetch.call_count == 3  # at 0s, 7s, 14s; but not at 20s.
    assert loop.time() - started == pytest.approx(20)


@pytest.mark.looptime
async def test_transient_errors_are_tolerated(settings, mocker, assert_logs):
    fetch = mocker.AsyncMock(side_effect=[
        TransportError("connection reset"),
        ServerError(status=503),
        TooManyRequestsError(status=429),
        COMPLETE,
    ])

    job = await await_completion('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert job is COMPLETE
    assert fetch.call_count == 4
    assert_logs([
        r"Fetching the job job-1 has failed \(1/3\); will retry",
        r"Fetching the job job-1 has failed \(2/3\); will retry",
        r"Fetching the job job-1 has failed \(3/3\); will retry",
        r"Job job-1 is complete",
    ])


@pytest.mark.looptime
async def test_transient_error_counter_is_reset_by_successes(settings, mocker):
    settings.polling.fetch_retries = 1
    fetch = mocker.AsyncMock(side_effect=[
        TransportError("connection reset"),
        PROCESSING,
        TransportError("connection reset"),
        COMPLETE,
    ])

    job = await await_completion('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert job is COMPLETE


@pytest.mark.looptime
async def test_too_many_transient_errors_escalate(settings, mocker, assert_logs):
    settings.polling.fetch_retries = 2
    fetch = mocker.AsyncMock(side_effect=TransportError("connection reset"))

    with pytest.raises(TransportError):
        await await_completion('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert fetch.call_count == 3
    assert_logs([
        r"failed \(1/2\); will retry",
        r"failed \(2/2\); will retry",
        r"has failed 3 times in a row; escalating",
    ])


@pytest.mark.looptime
@pytest.mark.parametrize('status', [400, 403, 404])
async def test_permanent_errors_escalate_immediately(settings, mocker, status):
    fetch = mocker.AsyncMock(side_effect=PlatformError(status=status))

    with pytest.raises(PlatformError) as err:
        await await_completion('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert err.value.status == status
    assert fetch.call_count == 1


@pytest.mark.looptime
async def test_unexpected_transitions_are_warned_about(settings, mocker, assert_logs):
    fetch = mocker.AsyncMock(side_effect=[PROCESSING, QUEUED, COMPLETE])

    job = await await_completion('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert job is COMPLETE
    assert_logs([r"Job job-1 has moved unexpectedly from PROCESSING to QUEUED"])


async def test_no_job_means_completed_synchronously(settings, mocker):
    fetch = mocker.AsyncMock()

    result = await complete(None, fetch=fetch, settings=settings)

    assert result is None
    assert not fetch.called


@pytest.mark.looptime
async def test_job_is_awaited_if_there_is_one(settings, mocker):
    fetch = mocker.AsyncMock(side_effect=[PROCESSING, COMPLETE])

    result = await complete('job-1', interval=1, timeout=60, fetch=fetch, settings=settings)

    assert result is COMPLETE


async def test_job_is_fetched_from_the_platform(context, platform, idp):
    idp.issue()
    platform.add('get', '/v3/jobs/job-1', {'guid': 'job-1', 'state': 'PROCESSING'})

    job = await get_job('job-1', context=context)

    assert job.id == 'job-1'
    assert job.state is JobState.PROCESSING
    assert platform.requests[0].headers['authorization'] == 'Bearer access1'


async def test_non_object_job_status_fails(context, platform, idp):
    idp.issue()
    platform.add('get', '/v3/jobs/job-1', ['unexpected'])

    with pytest.raises(TransportError):
        await get_job('job-1', context=context)


async def test_job_is_polled_on_the_platform(context, platform, idp):
    idp.issue()
    platform.add('get', '/v3/jobs/job-1', {'guid': 'job-1', 'state': 'PROCESSING'})
    platform.add('get', '/v3/jobs/job-1', {'guid': 'job-1', 'state': 'COMPLETE'})

    job = await await_completion('job-1', interval=0.01, timeout=60, context=context)

    assert job.state is JobState.COMPLETE
    assert len(platform.requests) == 2
    assert len(idp.requests) == 1


@pytest.fixture()
async def token_context(oauth, settings, base_url):
    """ A context with a never-expiring token: no identity provider is involved. """
    oauth.initialize(Credentials(token=Token(access_token='fake-token')))
    context = APIContext(base_url, oauth=oauth, settings=settings)
    yield context
    await context.close()


@pytest.mark.looptime
async def test_request_retries_stop_at_the_polling_deadline(settings, token_context, mocker):
    settings.networking.error_backoffs = (1, 1, 2, 3, 5)
    loop = asyncio.get_running_loop()
    started = loop.time()
    attempts = []

    async def refuse(*_, **__):
        attempts.append(loop.time() - started)
        raise aiohttp.ClientConnectionError("connection refused")

    mocker.patch('aiohttp.ClientSession.request', side_effect=refuse)

    with pytest.raises(JobTimeoutError):
        await await_completion('job-1', interval=5, timeout=6, context=token_context)

    assert attempts == pytest.approx([0, 1, 2, 4])  # but not at 7s & 12s.
    assert loop.time() - started == pytest.approx(6)


@pytest.mark.looptime
async def test_failed_job_reports_a_textual_error(settings, mocker):
    fetch = mocker.AsyncMock(return_value=AsyncJob.from_payload(
        {'id': 'job-1', 'state': 'FAILED', 'error': 'quota exceeded'}))

    with pytest.raises(JobFailedError) as err:
        await await_completion('job-1', interval=5, timeout=60, fetch=fetch, settings=settings)

    assert err.value.detail == 'quota exceeded'
    assert 'quota exceeded' in str(err.value)
