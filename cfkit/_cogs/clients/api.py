import asyncio
import collections.abc
import itertools
import logging
from typing import Any, Mapping, Optional, Tuple

import aiohttp

from cfkit._cogs.clients import auth, errors, sessions
from cfkit._cogs.helpers import typedefs
from cfkit._cogs.structs import credentials

default_logger = logging.getLogger(__name__)

# Failures worth retrying: they say nothing about the request itself, only about the platform.
RETRYABLE_ERRORS = (errors.TransportError, errors.TooManyRequestsError, errors.ServerError)


@auth.authorized
async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        payload: Optional[object] = None,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        deadline: Optional[float] = None,  # by the loop's clock; no new attempts after it.
        context: Optional[auth.APIContext] = None,  # injected by the decorator
        token: Optional[credentials.Token] = None,  # injected by the decorator
        logger: typedefs.Logger = default_logger,
) -> aiohttp.ClientResponse:
    if context is None or token is None:  # for type-checking!
        raise RuntimeError("API context is not injected by the decorator.")

    url = context.url(url)
    headers = dict(headers or {}, Authorization=token.authorization)
    if timeout is None:
        timeout = sessions.make_timeout(context.settings)

    loop = asyncio.get_running_loop()
    backoffs = context.settings.networking.error_backoffs
    backoffs = backoffs if isinstance(backoffs, collections.abc.Iterable) else [backoffs]
    count = len(backoffs) + 1 if isinstance(backoffs, collections.abc.Sized) else None
    backoff: Optional[float]
    for retry, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
        idx = f"#{retry}/{count}" if count is not None else f"#{retry}"
        what = f"{method.upper()} {url}"
        try:
            if retry > 1:
                logger.debug(f"Request attempt {idx}: {what}")

            try:
                response = await context.session.request(
                    method=method,
                    url=url,
                    json=payload,
                    params=params,
                    headers=headers,
                    timeout=timeout,
                )
            except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError) as e:
                raise errors.TransportError(f"{what} has failed: {e!r}") from e
            await errors.check_response(response)  # but do not parse it!

        except RETRYABLE_ERRORS as e:
            if backoff is None:  # i.e. the last or the only attempt.
                logger.error(f"Request attempt {idx} failed; escalating: {what} -> {e!r}")
                raise
            elif deadline is not None and loop.time() + backoff >= deadline:
                logger.error(f"Request attempt {idx} failed; escalating as the next one is past the deadline: "
                             f"{what} -> {e!r}")
                raise
            else:
                logger.error(f"Request attempt {idx} failed; will retry: {what} -> {e!r}")
                await asyncio.sleep(backoff)  # non-awakable! but still cancellable.
        else:
            if retry > 1:
                logger.debug(f"Request attempt {idx} succeeded: {what}")
            return response

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.


async def send(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        payload: Optional[object] = None,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        deadline: Optional[float] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Tuple[int, Mapping[str, str], Any]:
    """
    Perform a request and return its status & headers besides the parsed body.

    It is used for the operations that can be performed asynchronously by the
    platform: ``202 Accepted`` with a reference to the job in ``Location``.
    """
    response = await request(
        method=method,
        url=url,
        payload=payload,
        params=params,
        headers=headers,
        timeout=timeout,
        deadline=deadline,
        context=context,
        logger=logger,
    )
    async with response:
        return response.status, response.headers, await errors.parse_response(response)


async def get(
        url: str,  # relative to the server/api root.
        *,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        deadline: Optional[float] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Any:
    _, _, data = await send('get', url, params=params, headers=headers, timeout=timeout, deadline=deadline,
                            context=context, logger=logger)
    return data


async def post(
        url: str,  # relative to the server/api root.
        *,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Any:
    _, _, data = await send('post', url, payload=payload, headers=headers, timeout=timeout,
                            context=context, logger=logger)
    return data


async def put(
        url: str,  # relative to the server/api root.
        *,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Any:
    _, _, data = await send('put', url, payload=payload, headers=headers, timeout=timeout,
                            context=context, logger=logger)
    return data


async def patch(
        url: str,  # relative to the server/api root.
        *,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Any:
    _, _, data = await send('patch', url, payload=payload, headers=headers, timeout=timeout,
                            context=context, logger=logger)
    return data


async def delete(
        url: str,  # relative to the server/api root.
        *,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Any:
    _, _, data = await send('delete', url, params=params, headers=headers, timeout=timeout,
                            context=context, logger=logger)
    return data
