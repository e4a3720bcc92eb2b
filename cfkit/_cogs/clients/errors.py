"""
Platform API errors.

The underlying client library (now, ``aiohttp``) can be replaced in the future.
We cannot rely on embedding its exceptions all over the code and in the users'
code. Hence, we have our own hierarchy of exceptions for the platform errors.

Every failure is normalised into one of these:

* :class:`PlatformError` and its subclasses for the non-2xx HTTP responses:
  with the status, the reason phrase, and the description as provided by
  the platform in its response body (not guessed by the HTTP status alone).
* :class:`TransportError` for everything below the HTTP layer: connection
  failures, timeouts, unparseable responses.
* :class:`DiscoveryError` for the failures to discover the platform's info.
* :class:`AuthenticationError` & :class:`ConfigurationError` for the identity.
* :class:`JobFailedError` & :class:`JobTimeoutError` for the asynchronous jobs.

The original errors of the client library are chained as the causes of our own
specialised errors -- for better explainability of errors in the stack traces.
They are never swallowed.

Some selected statuses are made into their own classes, so that they could be
intercepted and handled in other places: e.g. 401 for the re-authentication,
404 for the optional lookups, 429 & 5xx for the retries. All other statuses
are raised as the base error class and are indistinguishable from each other
(except via the exception's fields).
"""
import collections.abc
import http
import json
from typing import Any, Mapping, Optional, Tuple, Type

import aiohttp

from cfkit._cogs.structs import jobs
from cfkit._cogs.structs.credentials import AuthenticationError, ConfigurationError

__all__ = [
    'AuthenticationError', 'ConfigurationError', 'DiscoveryError', 'TransportError',
    'PlatformError', 'UnauthorizedError', 'ResourceNotFoundError', 'ConflictError',
    'TooManyRequestsError', 'ServerError', 'JobFailedError', 'JobTimeoutError',
    'classify', 'describe', 'make_error', 'check_response', 'parse_response',
]


class DiscoveryError(Exception):
    """ Raised when the platform's info is unreachable or malformed. """


class TransportError(Exception):
    """ Raised on connection failures, timeouts, malformed responses below HTTP. """

    @property
    def retryable(self) -> bool:
        return True


class PlatformError(Exception):
    """ A non-2xx response of the platform, with the details from its body. """

    def __init__(
            self,
            payload: Optional[Mapping[str, Any]] = None,
            *,
            status: int,
            reason: Optional[str] = None,
            description: Optional[str] = None,
    ) -> None:
        code, described = describe(payload)
        self._status = status
        self._reason = reason or _standard_reason(status)
        self._description = description if description is not None else described
        self._code = code
        self._payload = payload
        super().__init__(f"{self._status} {self._reason}: {self._description or 'no details'}")

    @property
    def status(self) -> int:
        return self._status

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def code(self) -> Optional[str]:
        """ The platform's error name, e.g. ``CF-ResourceNotFound``, if reported. """
        return self._code

    @property
    def payload(self) -> Optional[Mapping[str, Any]]:
        return self._payload

    @property
    def retryable(self) -> bool:
        return False


class UnauthorizedError(PlatformError):
    pass


class ResourceNotFoundError(PlatformError):
    pass


class ConflictError(PlatformError):
    pass


class TooManyRequestsError(PlatformError):

    @property
    def retryable(self) -> bool:
        return True


class ServerError(PlatformError):

    @property
    def retryable(self) -> bool:
        return True


class JobFailedError(Exception):
    """ Raised when an asynchronous job ends in the failed state. """

    def __init__(self, job: jobs.AsyncJob) -> None:
        super().__init__(f"Job {job.id} has failed: {job.error_detail or 'no details'}")
        self.job = job

    @property
    def detail(self) -> Optional[str]:
        return self.job.error_detail


class JobTimeoutError(Exception):
    """
    Raised when an asynchronous job does not end within the time limit.

    This is a recoverable condition: the job might still complete server-side.
    The last seen state of the job (if any) is available for diagnostics.
    """

    def __init__(
            self,
            job_id: str,
            *,
            timeout: float,
            job: Optional[jobs.AsyncJob] = None,
    ) -> None:
        state = job.state.value if job is not None else 'unknown'
        super().__init__(f"Job {job_id} has not finished in {timeout}s; the last state is {state}.")
        self.job_id = job_id
        self.timeout = timeout
        self.job = job


def classify(status: int) -> Type[PlatformError]:
    """ Map an HTTP status to the error class, regardless of the response body. """
    return (
        UnauthorizedError if status == 401 else
        ResourceNotFoundError if status == 404 else
        ConflictError if status == 409 else
        TooManyRequestsError if status == 429 else
        ServerError if 500 <= status <= 599 else
        PlatformError
    )


def describe(payload: object) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract the error name & the human-readable description from a response body.

    Three formats are recognised:

    * The v3 API: ``{"errors": [{"code": 10010, "title": "CF-X", "detail": "..."}]}``.
    * The v2 API: ``{"code": 10010, "error_code": "CF-X", "description": "..."}``.
    * The OAuth2 identity provider: ``{"error": "x", "error_description": "..."}``.

    Everything else gives no information at all, and is not exposed in the errors:
    who knows which sensitive information can be dumped by arbitrary servers.
    """
    if not isinstance(payload, collections.abc.Mapping):
        return None, None

    items = payload.get('errors')
    if isinstance(items, collections.abc.Sequence) and not isinstance(items, str):
        items = [item for item in items if isinstance(item, collections.abc.Mapping)]
        titles = [str(item['title']) for item in items if item.get('title')]
        details = [str(item['detail']) for item in items if item.get('detail')]
        return (titles[0] if titles else None), ('; '.join(details) if details else None)

    if 'error_code' in payload or 'description' in payload:
        code = payload.get('error_code')
        description = payload.get('description')
        return (str(code) if code else None), (str(description) if description else None)

    if 'error' in payload:
        code = payload.get('error')
        description = payload.get('error_description') or code
        return (str(code) if code else None), (str(description) if description else None)

    return None, None


def make_error(
        status: int,
        payload: Optional[Mapping[str, Any]],
        *,
        reason: Optional[str] = None,
) -> PlatformError:
    cls = classify(status)
    return cls(payload, status=status, reason=reason)


async def read_payload(
        response: aiohttp.ClientResponse,
) -> Optional[Mapping[str, Any]]:
    """ Read the JSON body of an erroneous response, if it is there at all. """
    try:
        payload = await response.json(content_type=None)
    except (json.JSONDecodeError, UnicodeDecodeError,
            aiohttp.ContentTypeError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError):
        return None
    return payload if isinstance(payload, collections.abc.Mapping) else None


async def check_response(
        response: aiohttp.ClientResponse,
) -> None:
    """
    Check for the platform errors, and raise with extended information.
    """
    if response.status >= 400:

        # Read the response's body before it is closed by raise_for_status().
        payload = await read_payload(response)

        # Raise the client-specific error while keeping the original error in scope.
        # This call also closes the response's body, so it cannot be read afterwards.
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            raise make_error(response.status, payload, reason=response.reason) from e


async def parse_response(
        response: aiohttp.ClientResponse,
) -> Any:
    """
    Check the response for errors, and either raise or return the parsed data.

    Empty bodies (e.g. of ``204 No Content``) are parsed as ``None``.
    """
    await check_response(response)
    try:
        return await response.json(content_type=None)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TransportError(f"Malformed response from {response.url}: {e}") from e
    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
        raise TransportError(f"Broken response from {response.url}: {e!r}") from e


def _standard_reason(status: int) -> str:
    try:
        return http.HTTPStatus(status).phrase
    except ValueError:
        return 'Unknown'
