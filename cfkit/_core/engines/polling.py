"""
Waiting for the asynchronous jobs of the platform to finish.

The long-running operations of the platform return a job id instead of the
result. The job is then polled at a fixed interval until it reaches one of
the terminal states (complete or failed), or until the time limit is reached.

The polling blocks the calling task for its whole duration. Whoever needs
it in the background, should wrap it into a task of their own.

The time limit is measured by the event loop's clock (monotonic). Once it is
reached, no new fetches are started; a fetch that is already in flight is
allowed to finish, but its result is only used if it is terminal. The deadline
is also passed to the requests of the fetches, so that their own retries do not
start new requests after it either.
"""
import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional

from cfkit._cogs.clients import auth, errors, jobs as job_clients
from cfkit._cogs.configs import configuration
from cfkit._cogs.helpers import typedefs
from cfkit._cogs.structs import jobs

default_logger = logging.getLogger(__name__)

# Any coroutine function to get a fresh snapshot of the job by its id.
JobFetcher = Callable[[str], Awaitable[jobs.AsyncJob]]


async def await_completion(
        job_id: str,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        fetch: Optional[JobFetcher] = None,
        context: Optional[auth.APIContext] = None,
        settings: Optional[configuration.ClientSettings] = None,
        logger: typedefs.Logger = default_logger,
) -> jobs.AsyncJob:
    """
    Poll the job until it is complete and return its last snapshot.

    Raise :class:`JobFailedError` if the job has failed, and
    :class:`JobTimeoutError` if it has not finished within the time limit.
    The transient errors of fetching (connectivity, HTTP 5xx & 429) are
    tolerated a few times in a row before they are escalated.
    """
    settings = settings if settings is not None else _get_settings(context)
    interval = interval if interval is not None else settings.polling.interval
    timeout = timeout if timeout is not None else settings.polling.timeout
    retries = settings.polling.fetch_retries
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    if fetch is None:
        fetch = functools.partial(job_clients.get_job, deadline=deadline, context=context, logger=logger)
    job: Optional[jobs.AsyncJob] = None
    failures = 0
    while True:
        try:
            fresh = await fetch(job_id)
        except (errors.TransportError, errors.PlatformError) as e:
            if not e.retryable:
                raise
            failures += 1
            if failures > retries:
                logger.error(f"Fetching the job {job_id} has failed {failures} times in a row; "
                             f"escalating: {e!r}")
                raise
            logger.warning(f"Fetching the job {job_id} has failed ({failures}/{retries}); "
                           f"will retry: {e!r}")
        else:
            failures = 0
            if job is not None and not fresh.state.can_follow(job.state):
                logger.warning(f"Job {job_id} has moved unexpectedly "
                               f"from {job.state.value} to {fresh.state.value}.")
            job = fresh

            if job.state is jobs.JobState.COMPLETE:
                logger.debug(f"Job {job_id} is complete.")
                return job
            elif job.state is jobs.JobState.FAILED:
                logger.debug(f"Job {job_id} has failed: {job.error_detail or 'no details'}")
                raise errors.JobFailedError(job)
            else:
                logger.debug(f"Job {job_id} is {job.state.value.lower()}; waiting.")

        # Never start a fetch past the deadline, even if the last sleep lands exactly on it.
        remaining = deadline - loop.time()
        if remaining > 0:
            await asyncio.sleep(min(interval, remaining))
        if loop.time() >= deadline:
            raise errors.JobTimeoutError(job_id, timeout=timeout, job=job)


async def complete(
        job_id: Optional[str],
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        fetch: Optional[JobFetcher] = None,
        context: Optional[auth.APIContext] = None,
        settings: Optional[configuration.ClientSettings] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[jobs.AsyncJob]:
    """
    Wait for the result of a possibly asynchronous operation.

    No job id means that the operation has been completed synchronously,
    so there is nothing to wait for.
    """
    if job_id is None:
        return None
    return await await_completion(job_id, interval=interval, timeout=timeout, fetch=fetch,
                                  context=context, settings=settings, logger=logger)


def _get_settings(context: Optional[auth.APIContext]) -> configuration.ClientSettings:
    if context is None:
        context = auth.context_var.get(None)
    return context.settings if context is not None else configuration.ClientSettings()
