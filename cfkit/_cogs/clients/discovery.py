"""
Discovery of the platform's metadata, foremost its authorization endpoint.

Every control plane publishes an unauthenticated metadata document, which
points to the identity provider that issues the tokens for that control plane.
The document is fetched once per base URL and remembered for the lifetime of
the cache: the identity of a control plane does not change at runtime.

The base URLs are used as the keys verbatim, with no normalisation:
``https://api.example.com`` and ``https://api.example.com/`` are different keys
(and both are discovered separately), exactly as the callers spell them.
"""
import asyncio
import collections.abc
import functools
import json
import logging
import urllib.parse
from typing import Dict, Optional

import aiohttp

from cfkit._cogs.aiokits import aioflights
from cfkit._cogs.clients import errors, sessions
from cfkit._cogs.configs import configuration
from cfkit._cogs.helpers import typedefs

logger = logging.getLogger(__name__)


class InfoCache:
    """
    A memo of the platforms' metadata documents, keyed by their base URLs.

    Only the successful discoveries are remembered. A failed one is escalated
    to all the callers that were waiting for it, and the next call tries again.
    """

    _infos: Dict[str, typedefs.RawBody]
    _endpoints: Dict[str, str]
    _flights: aioflights.Flights[str, typedefs.RawBody]

    def __init__(self, settings: Optional[configuration.ClientSettings] = None) -> None:
        super().__init__()
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self._infos = {}
        self._endpoints = {}
        self._flights = aioflights.Flights()

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {list(self._infos)!r}>'

    def __len__(self) -> int:
        return len(self._infos)

    def __contains__(self, base_url: object) -> bool:
        return base_url in self._infos

    async def get_info(
            self,
            base_url: str,
            *,
            session: Optional[aiohttp.ClientSession] = None,
            settings: Optional[configuration.ClientSettings] = None,
    ) -> typedefs.RawBody:
        """
        Get the whole metadata document of a platform, discovering it if needed.

        The settings (e.g. the path of the document) are those of the caller;
        the cache's own settings are used only if the caller has none.
        """
        if base_url in self._infos:
            return self._infos[base_url]
        fn = functools.partial(self._discover, base_url, session=session, settings=settings)
        return await self._flights.run(base_url, fn)

    async def resolve_authorization_endpoint(
            self,
            base_url: str,
            *,
            session: Optional[aiohttp.ClientSession] = None,
            settings: Optional[configuration.ClientSettings] = None,
    ) -> str:
        if base_url not in self._endpoints:
            await self.get_info(base_url, session=session, settings=settings)
        return self._endpoints[base_url]

    async def _discover(
            self,
            base_url: str,
            *,
            session: Optional[aiohttp.ClientSession] = None,
            settings: Optional[configuration.ClientSettings] = None,
    ) -> typedefs.RawBody:
        settings = settings if settings is not None else self.settings
        url = f'{base_url.rstrip("/")}{settings.discovery.info_path}'
        logger.debug(f"Discovering the platform info at {url}")

        # The discovery happens before the client is fully constructed, so maybe without a session.
        own_session = sessions.make_session(settings) if session is None else None
        try:
            info = await _fetch(url, session=own_session or session)
        finally:
            if own_session is not None:
                await own_session.close()

        endpoint = _validate_endpoint(url, info.get('authorization_endpoint'))
        self._infos[base_url] = info
        self._endpoints[base_url] = endpoint
        logger.debug(f"Discovered the authorization endpoint of {base_url}: {endpoint}")
        return info


# The default cache for all clients of the process, unless a client is given its own one.
default_cache = InfoCache()


async def _fetch(url: str, *, session: aiohttp.ClientSession) -> typedefs.RawBody:
    try:
        async with session.get(url, headers={'Accept': 'application/json'}) as response:
            await errors.check_response(response)
            info = await response.json(content_type=None)
    except errors.PlatformError as e:
        raise errors.DiscoveryError(f"The platform info is unavailable at {url}: {e}") from e
    except aiohttp.InvalidURL as e:
        raise errors.DiscoveryError(f"The platform info URL is invalid: {url!r}") from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise errors.DiscoveryError(f"The platform info is unreachable at {url}: {e!r}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise errors.DiscoveryError(f"The platform info is not a JSON document at {url}.") from e

    if not isinstance(info, collections.abc.Mapping):
        raise errors.DiscoveryError(f"The platform info is not a JSON object at {url}.")
    return info


def _validate_endpoint(url: str, endpoint: object) -> str:
    if not isinstance(endpoint, str) or not endpoint:
        raise errors.DiscoveryError(f"The platform info has no authorization endpoint at {url}.")
    try:
        parsed = urllib.parse.urlsplit(endpoint)
    except ValueError as e:  # e.g. malformed IPv6 hosts.
        raise errors.DiscoveryError(f"The platform info has an unparseable authorization endpoint "
                                    f"at {url}: {endpoint!r}") from e
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise errors.DiscoveryError(f"The platform info has an invalid authorization endpoint "
                                    f"at {url}: {endpoint!r}")
    return endpoint
