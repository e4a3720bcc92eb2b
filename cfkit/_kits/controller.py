"""
The client of one control plane: the entry point for the library's users.

Usage::

    async with cfkit.ControllerClient('https://api.example.com', credentials) as client:
        job_id = await client.bind_service_instance('my-app', 'my-db')
        await client.await_job(job_id)

On entering, the authorization endpoint is discovered (once per base URL,
see :class:`InfoCache`), and the OAuth client is prepared for the credentials.
No token is obtained until the first request (or an explicit :meth:`login`).

The client is bound to the event loop it was entered in.
"""
import contextvars
from typing import Any, Mapping, Optional, Protocol

import aiohttp

from cfkit._cogs.clients import auth, creating, deleting, discovery, fetching, jobs, oauth, updating
from cfkit._cogs.configs import configuration
from cfkit._cogs.helpers import typedefs
from cfkit._cogs.structs import credentials
from cfkit._cogs.structs import jobs as job_structs
from cfkit._core.actions import loggers
from cfkit._core.engines import polling


class ControllerAPI(Protocol):
    """
    The operations of a control plane, as consumed by the users' code.

    :class:`ControllerClient` is the implementation for the real platform.
    Tests can use any other object with the same methods.
    """

    async def login(self) -> credentials.Token: ...
    async def logout(self) -> None: ...

    async def get_application(
            self, name: str, *, required: bool = True,
    ) -> Optional[typedefs.RawBody]: ...

    async def get_service_instance(
            self, name: str, *, required: bool = True,
    ) -> Optional[typedefs.RawBody]: ...

    async def get_service_broker(
            self, name: str, *, required: bool = True,
    ) -> Optional[typedefs.RawBody]: ...

    async def get_async_job(self, job_id: str) -> job_structs.AsyncJob: ...

    async def bind_service_instance(
            self, app_name: str, instance_name: str, parameters: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]: ...

    async def unbind_service_instance(self, app_name: str, instance_name: str) -> Optional[str]: ...

    async def create_service_broker(
            self, name: str, url: str, username: str, password: str, space_guid: Optional[str] = None,
    ) -> Optional[str]: ...

    async def update_service_broker(
            self, name: str, url: Optional[str] = None,
            username: Optional[str] = None, password: Optional[str] = None,
    ) -> Optional[str]: ...

    async def delete_service_broker(self, name: str) -> Optional[str]: ...
    async def delete_service_instance(self, name: str) -> Optional[str]: ...

    async def await_job(
            self, job_id: Optional[str], *,
            interval: Optional[float] = None, timeout: Optional[float] = None,
    ) -> Optional[job_structs.AsyncJob]: ...


class ControllerClient:
    """
    The client of one control plane with one identity.
    """

    _context: Optional[auth.APIContext]
    _token: Optional[contextvars.Token[auth.APIContext]]

    def __init__(
            self,
            base_url: str,
            credentials: credentials.Credentials,
            *,
            settings: Optional[configuration.ClientSettings] = None,
            info_cache: Optional[discovery.InfoCache] = None,
            session: Optional[aiohttp.ClientSession] = None,
            space_guid: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.base_url = base_url
        self.credentials = credentials
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.info_cache = info_cache if info_cache is not None else discovery.default_cache
        self.space_guid = space_guid
        self.logger: typedefs.Logger = loggers.TargetLogger(target=base_url)
        self._session = session
        self._context = None
        self._token = None

        # Fail early on the obviously broken credentials, even before the discovery.
        credentials.validate()

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.base_url} {self.credentials!r}>'

    async def __aenter__(self) -> "ControllerClient":
        await self.connect()
        self._token = auth.context_var.set(self.context)
        return self

    async def __aexit__(self, *_: Any) -> None:
        if self._token is not None:
            auth.context_var.reset(self._token)
            self._token = None
        await self.close()

    @property
    def context(self) -> auth.APIContext:
        if self._context is None:
            raise RuntimeError("The client is not connected. Use it as an async context manager.")
        return self._context

    @property
    def oauth(self) -> oauth.OAuthClient:
        return self.context.oauth

    async def connect(self) -> None:
        """
        Discover the platform and prepare for the requests. Idempotent.
        """
        if self._context is not None:
            return
        endpoint = await self.info_cache.resolve_authorization_endpoint(self.base_url, session=self._session,
                                                                       settings=self.settings)
        client = oauth.OAuthClient(endpoint, settings=self.settings, session=self._session)
        client.initialize(self.credentials)
        self._context = auth.APIContext(self.base_url, oauth=client, settings=self.settings,
                                        session=self._session)
        self.logger.debug(f"Connected; the authorization endpoint is {endpoint}")

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None

    async def login(self) -> credentials.Token:
        token = await self.oauth.login()
        self.logger.info(f"Logged in as {token.username or 'a client'}; "
                         f"the token expires at {token.expires_at or 'unknown time'}.")
        return token

    async def logout(self) -> None:
        self.oauth.invalidate()
        self.logger.info("Logged out.")

    async def get_application(self, name: str, *, required: bool = True) -> Optional[typedefs.RawBody]:
        return await fetching.get_application(name, required=required, space_guid=self.space_guid,
                                              context=self.context, logger=self.logger)

    async def get_service_instance(self, name: str, *, required: bool = True) -> Optional[typedefs.RawBody]:
        return await fetching.get_service_instance(name, required=required, space_guid=self.space_guid,
                                                   context=self.context, logger=self.logger)

    async def get_service_broker(self, name: str, *, required: bool = True) -> Optional[typedefs.RawBody]:
        return await fetching.get_service_broker(name, required=required,
                                                 context=self.context, logger=self.logger)

    async def get_async_job(self, job_id: str) -> job_structs.AsyncJob:
        return await jobs.get_job(job_id, context=self.context, logger=self.logger)

    async def bind_service_instance(
            self,
            app_name: str,
            instance_name: str,
            parameters: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        return await creating.bind_service_instance(app_name, instance_name, parameters=parameters,
                                                    space_guid=self.space_guid,
                                                    context=self.context, logger=self.logger)

    async def unbind_service_instance(self, app_name: str, instance_name: str) -> Optional[str]:
        return await deleting.unbind_service_instance(app_name, instance_name, space_guid=self.space_guid,
                                                      context=self.context, logger=self.logger)

    async def create_service_broker(
            self,
            name: str,
            url: str,
            username: str,
            password: str,
            space_guid: Optional[str] = None,
    ) -> Optional[str]:
        return await creating.create_service_broker(name, url, username, password, space_guid=space_guid,
                                                    context=self.context, logger=self.logger)

    async def update_service_broker(
            self,
            name: str,
            url: Optional[str] = None,
            username: Optional[str] = None,
            password: Optional[str] = None,
    ) -> Optional[str]:
        return await updating.update_service_broker(name, url=url, username=username, password=password,
                                                    context=self.context, logger=self.logger)

    async def delete_service_broker(self, name: str) -> Optional[str]:
        return await deleting.delete_service_broker(name, context=self.context, logger=self.logger)

    async def delete_service_instance(self, name: str) -> Optional[str]:
        return await deleting.delete_service_instance(name, space_guid=self.space_guid,
                                                      context=self.context, logger=self.logger)

    async def await_job(
            self,
            job_id: Optional[str],
            *,
            interval: Optional[float] = None,
            timeout: Optional[float] = None,
    ) -> Optional[job_structs.AsyncJob]:
        return await polling.complete(job_id, interval=interval, timeout=timeout,
                                      context=self.context, settings=self.settings, logger=self.logger)


