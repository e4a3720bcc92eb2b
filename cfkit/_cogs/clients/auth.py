import functools
import logging
from contextvars import ContextVar
from typing import Any, Callable, Optional, TypeVar, cast

import aiohttp

from cfkit._cogs.clients import errors, oauth, sessions
from cfkit._cogs.configs import configuration

logger = logging.getLogger(__name__)

# Per-client storage and exchange point for the authenticated sessions.
# Used by the client wrappers when no explicit context is passed to them.
# Set by `ControllerClient` for the duration of its `async with` block.
context_var: ContextVar["APIContext"] = ContextVar('context_var')

# A typevar to show that we return a function with the same signature as given.
_F = TypeVar('_F', bound=Callable[..., Any])


def authorized(fn: _F) -> _F:
    """
    A decorator to inject an authorized context & token to a requesting routine.

    If the wrapped function fails with HTTP 401, the token is refreshed
    in the context's OAuth client (one exchange for all the overlapping
    requests), and the function is re-executed with the new token -- once.
    If it fails with 401 again, the credentials are considered revoked.
    All other errors are escalated as is.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, context: Optional["APIContext"] = None, **kwargs: Any) -> Any:
        if context is None:
            try:
                context = context_var.get()
            except LookupError:
                raise errors.ConfigurationError(
                    "No API context is set. Use the client as an async context manager, "
                    "or pass the context explicitly.") from None

        token = await context.oauth.current_token()
        try:
            return await fn(*args, **kwargs, context=context, token=token)
        except errors.UnauthorizedError as e:
            logger.debug(f"The access token is rejected; refreshing it and retrying once: {e}")

        token = await context.oauth.refresh(stale=token)
        try:
            return await fn(*args, **kwargs, context=context, token=token)
        except errors.UnauthorizedError as e:
            raise errors.AuthenticationError(
                f"The platform rejects the freshly refreshed token: {e.description or e.reason}") from e

    return cast(_F, wrapper)


class APIContext:
    """
    A container for an aiohttp session, the OAuth client, and the settings.

    The container is constructed once per :class:`ControllerClient` and is
    shared by all its requests. We assume that the whole client runs in the
    same event loop, so there is no need to split the sessions for multiple
    loops.
    """

    # The main contained object used by the API methods.
    session: aiohttp.ClientSession

    # Contextual information for URL building.
    server: str

    def __init__(
            self,
            server: str,
            *,
            oauth: oauth.OAuthClient,
            settings: Optional[configuration.ClientSettings] = None,
            session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__()
        self.server = server.rstrip('/')
        self.oauth = oauth
        self.settings = settings if settings is not None else oauth.settings
        self._owned_session = session is None
        self.session = sessions.make_session(self.settings, session=session)

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.server}>'

    def url(self, path: str) -> str:
        """ Resolve a relative path against the server; absolute URLs are kept. """
        if path.startswith(('http://', 'https://')):
            return path
        return f'{self.server}/{path.lstrip("/")}'

    async def close(self) -> None:
        if self._owned_session:
            await self.session.close()
        await self.oauth.close()
