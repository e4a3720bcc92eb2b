"""
All configuration flags, options, settings to fine-tune a client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults). The settings object
is created once per client and is shared by all its components: the OAuth
client, the request interceptor, the discovery cache, and the job poller.
"""
import dataclasses
from typing import Iterable, Optional, Union


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the whole request, including the connection and the reading.
    Measured in seconds. ``None`` disables the timeout.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the connection establishment only. ``None`` means no limit
    beyond the ``request_timeout``.
    """

    error_backoffs: Union[float, Iterable[float]] = (1, 1, 2, 3, 5)
    """
    Backoff intervals in case of retryable errors of the API requests.

    The retryable errors are the connection-level (transport) errors,
    the server-side errors (HTTP 5xx), and the throttling (HTTP 429).
    All other errors are escalated immediately.

    The number of attempts is the number of backoffs plus one: one initial
    attempt and one retry after every backoff. If a single number is used,
    it is the only backoff, i.e. one retry only.

    To disable retries, set it to ``[]`` or ``()``.
    """

    user_agent: Optional[str] = None
    """
    The ``User-Agent`` header to identify the client. If ``None``,
    the default of ``cfkit/<version>`` is used.
    """


@dataclasses.dataclass
class AuthSettings:

    expiry_margin: float = 30
    """
    How many seconds before the token's actual expiry it is considered expired.

    A token that is about to expire is refreshed beforehand, so that it does
    not expire on the way to the server or while the request is processed.
    """

    token_path: str = '/oauth/token'
    """
    The path of the OAuth2 token endpoint relative to the authorization endpoint
    (as discovered from the platform info).
    """


@dataclasses.dataclass
class DiscoverySettings:

    info_path: str = '/v2/info'
    """
    The path of the platform's metadata document relative to the base URL.
    The document contains the ``authorization_endpoint`` field, among others.
    """


@dataclasses.dataclass
class PollingSettings:

    interval: float = 5.0
    """
    How long to wait between the fetches of an asynchronous job's status.
    """

    timeout: float = 30 * 60
    """
    How long to wait for an asynchronous job to reach its terminal state
    (complete or failed) before giving up with :class:`JobTimeoutError`.

    The job is not cancelled on timeout: it might still complete server-side.
    """

    fetch_retries: int = 3
    """
    How many consecutive transient failures of fetching the job's status
    are tolerated before escalating them. A successful fetch resets the count.
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    auth: AuthSettings = dataclasses.field(default_factory=AuthSettings)
    discovery: DiscoverySettings = dataclasses.field(default_factory=DiscoverySettings)
    polling: PollingSettings = dataclasses.field(default_factory=PollingSettings)
