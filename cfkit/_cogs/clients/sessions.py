from typing import Optional

import aiohttp

from cfkit._cogs.configs import configuration
from cfkit._cogs.helpers import versions


def make_timeout(settings: configuration.ClientSettings) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(
        total=settings.networking.request_timeout,
        sock_connect=settings.networking.connect_timeout,
    )


def make_session(
        settings: configuration.ClientSettings,
        *,
        session: Optional[aiohttp.ClientSession] = None,
) -> aiohttp.ClientSession:
    """
    Create a new session for the platform, or adjust the user-provided one.

    It is a good practice to self-identify a bit, even with a user-provided session.
    Must be called from inside of a coroutine, i.e. with the event loop running.
    """
    user_agent = settings.networking.user_agent or f'cfkit/{versions.version or "unknown"}'
    if session is None:
        session = aiohttp.ClientSession(
            headers={'User-Agent': user_agent},
            timeout=make_timeout(settings),
        )
    elif session.headers.get('User-Agent') is None:
        session.headers['User-Agent'] = user_agent
    return session
