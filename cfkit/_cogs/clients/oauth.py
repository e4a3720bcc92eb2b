"""
Token exchanges with the platform's identity provider (OAuth2).

One :class:`OAuthClient` is created per control-plane target. It owns the
token store of that target, and it is the only one who mutates it.

All token exchanges of one client (logins & refreshes, both implicit on expiry
and forced on HTTP 401) go through one single flight: at most one exchange is
in flight at a time, and all overlapping callers wait for it and receive its
result or its error. Identity providers often invalidate the previous refresh
token on every use, so two parallel refreshes with the same refresh token
would make one of them fail.

The exchanges are not retried here: a rejection is fatal for the session
(:class:`AuthenticationError`), and the transport errors are escalated
to the callers as usually (:class:`TransportError`).
"""
import asyncio
import collections.abc
import dataclasses
import json
import logging
from typing import Dict, Mapping, Optional

import aiohttp

from cfkit._cogs.aiokits import aioflights
from cfkit._cogs.clients import errors, sessions
from cfkit._cogs.configs import configuration
from cfkit._cogs.structs import credentials

logger = logging.getLogger(__name__)

# All exchanges share one key, so that a login and a refresh never overlap either.
_FLIGHT_KEY = 'token'


class OAuthClient:
    """
    A keeper of the tokens for one identity at one identity provider.
    """

    _session: Optional[aiohttp.ClientSession]
    _credentials: Optional[credentials.Credentials]
    _flights: aioflights.Flights[str, credentials.Token]

    def __init__(
            self,
            authorization_endpoint: str,
            *,
            settings: Optional[configuration.ClientSettings] = None,
            session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__()
        self.authorization_endpoint = authorization_endpoint.rstrip('/')
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self._session = session
        self._owned_session = session is None
        self._credentials = None
        self._store = credentials.TokenStore()
        self._flights = aioflights.Flights()

        # Incremented on every (re-)initialization & logout. An exchange that started
        # in an older generation delivers its token to its callers but does not store it.
        self._generation = 0

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.authorization_endpoint} {self._store!r}>'

    @property
    def token_url(self) -> str:
        return f'{self.authorization_endpoint}{self.settings.auth.token_path}'

    @property
    def identity(self) -> credentials.Credentials:
        if self._credentials is None:
            raise credentials.ConfigurationError("The OAuth client is not initialized.")
        return self._credentials

    def initialize(self, identity: credentials.Credentials) -> None:
        """
        Remember the credentials for the later exchanges. No I/O is done here.
        """
        identity.validate()
        self._credentials = identity
        self._generation += 1
        if identity.token is not None:
            self._store.set(identity.token)
        else:
            self._store.clear()

    def invalidate(self) -> None:
        """
        Log out: forget the current token. It is safe to call it repeatedly.

        The next request will log in again (if the credentials allow that).
        """
        self._generation += 1
        if self._store:
            logger.debug("Logging out: the access token is forgotten.")
        self._store.clear()

    async def close(self) -> None:
        if self._owned_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def current_token(self) -> credentials.Token:
        """
        Get a valid token, logging in or refreshing it if it is about to expire.
        """
        token = self._store.get()
        if token is not None and not token.is_expired(self.settings.auth.expiry_margin):
            return token
        return await self._flights.run(_FLIGHT_KEY, self._exchange)

    async def current_access_token(self) -> str:
        token = await self.current_token()
        return token.access_token

    async def refresh(self, stale: Optional[credentials.Token] = None) -> credentials.Token:
        """
        Get a new token regardless of the expiry of the current one.

        If the stale token (the one rejected by the platform) is already replaced
        by someone else (e.g. by an overlapping request with the same rejection),
        then the replacement is returned as is, without a new exchange.
        """
        token = self._store.get()
        if stale is not None and token is not None and token is not stale:
            return token
        return await self._flights.run(_FLIGHT_KEY, self._exchange)

    async def login(self) -> credentials.Token:
        """
        Log in with the credentials' identity, ignoring the current token.

        The token-based credentials cannot log in; for them, the current token
        is validated instead: refreshed if expired, as with any request.
        If some exchange is already in flight, its result is used instead.
        """
        if not self.identity.can_login:
            return await self.current_token()
        return await self._flights.run(_FLIGHT_KEY, self._login)

    async def _login(self) -> credentials.Token:
        generation = self._generation
        token = await self._grant_login()
        return self._remember(token, generation=generation)

    async def _exchange(self) -> credentials.Token:
        generation = self._generation
        stored = self._store.get()
        refresh_token = stored.refresh_token if stored is not None else None

        if refresh_token:
            logger.debug("Refreshing the access token.")
            try:
                token = await self._grant({'grant_type': 'refresh_token', 'refresh_token': refresh_token})
            except credentials.AuthenticationError:
                if not self.identity.can_login:
                    raise
                logger.debug("The refresh token is rejected. Logging in again.")
                token = await self._grant_login()
            else:
                # Some identity providers do not rotate the refresh tokens; keep the old one then.
                if token.refresh_token is None:
                    token = dataclasses.replace(token, refresh_token=refresh_token)
        elif self.identity.can_login:
            token = await self._grant_login()
        else:
            raise credentials.AuthenticationError(
                "The access token is expired or absent, and there is no refresh token "
                "or other credentials to obtain a new one.")

        return self._remember(token, generation=generation)

    def _remember(self, token: credentials.Token, *, generation: int) -> credentials.Token:
        if generation == self._generation:
            self._store.set(token)
        else:
            logger.debug("The client was logged out while exchanging the token. Not storing it.")
        logger.debug(f"Access token refreshed, expires at {token.expires_at or 'unknown time'}.")
        return token

    async def _grant_login(self) -> credentials.Token:
        creds = self.identity
        form: Dict[str, str]
        if creds.kind is credentials.CredentialsKind.PASSWORD:
            form = {'grant_type': 'password', 'username': creds.username or '', 'password': creds.password or ''}
        else:
            form = {'grant_type': 'client_credentials'}
        if creds.origin:
            form['login_hint'] = json.dumps({'origin': creds.origin})
        logger.debug(f"Logging in with the {creds.kind.value} grant.")
        return await self._grant(form)

    async def _grant(self, form: Mapping[str, str]) -> credentials.Token:
        creds = self.identity
        if self._session is None:
            self._session = sessions.make_session(self.settings)
        try:
            async with self._session.post(
                self.token_url,
                data=dict(form),
                headers={'Accept': 'application/json'},
                auth=aiohttp.BasicAuth(creds.client_id, creds.client_secret),
                timeout=sessions.make_timeout(self.settings),
            ) as response:
                if response.status in (400, 401):
                    payload = await errors.read_payload(response)
                    error = errors.make_error(response.status, payload, reason=response.reason)
                    raise credentials.AuthenticationError(
                        f"The identity provider has rejected the credentials: "
                        f"{error.description or error.reason}") from error
                data = await errors.parse_response(response)
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError) as e:
            raise errors.TransportError(f"Cannot reach the identity provider at {self.token_url}: {e!r}") from e

        if not isinstance(data, collections.abc.Mapping) or not data.get('access_token'):
            raise errors.TransportError("The identity provider has responded without an access token.")
        try:
            return credentials.Token.from_response(data)
        except (ValueError, TypeError, OverflowError) as e:  # e.g. a non-numeric "expires_in".
            raise errors.TransportError(f"The identity provider has responded with a malformed token: {e}") from e
