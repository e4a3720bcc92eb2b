"""
Authentication-related structures.

The client authenticates in the platform with OAuth2 bearer tokens issued by
the platform's identity provider. For that, a minimally sufficient data
structure is introduced -- both to bring all the identity information together
in a structured and type-annotated way, and to keep the issued tokens.

The identity can be one of:

* A username & password (the password grant), optionally routed
  to a specific identity provider via the origin.
* A client id & secret (the client-credentials grant).
* A pre-issued token (an access token, a refresh token, or both).

The secrets are hidden from the reprs, so that they do not leak into the logs
by accident. They are never logged intentionally either.

.. seealso::
    :mod:`cfkit._cogs.clients.oauth` for the token exchanges.
"""
import base64
import dataclasses
import datetime
import enum
import json
from typing import Any, Dict, FrozenSet, Mapping, Optional

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class ConfigurationError(Exception):
    """ Raised when the client is configured improperly, e.g. with invalid credentials. """


class AuthenticationError(Exception):
    """ Raised when the identity provider rejects the credentials or the tokens. """


@dataclasses.dataclass(frozen=True)
class Token:
    """
    An OAuth2 token pair as issued by the identity provider.

    The expiry is an absolute instant (timezone-aware, in UTC), or ``None``
    if it is unknown, in which case the token is assumed to be valid until
    the platform says otherwise (with HTTP 401).
    """
    access_token: str = dataclasses.field(repr=False)
    refresh_token: Optional[str] = dataclasses.field(default=None, repr=False)
    expires_at: Optional[datetime.datetime] = None
    token_type: str = 'bearer'
    scope: FrozenSet[str] = frozenset()
    claims: Mapping[str, Any] = dataclasses.field(default_factory=dict, repr=False, hash=False)

    @classmethod
    def from_response(
            cls,
            payload: Mapping[str, Any],
            *,
            now: Optional[datetime.datetime] = None,
    ) -> "Token":
        """
        Build a token from the token endpoint's response.

        The fields are as per RFC 6749 §5.1: ``access_token``, ``token_type``,
        ``expires_in`` (seconds), ``refresh_token``, ``scope`` (space-separated).
        """
        now = now if now is not None else datetime.datetime.now(datetime.timezone.utc)
        access_token = str(payload['access_token'])
        claims = decode_claims(access_token)
        expires_in = payload.get('expires_in')
        expires_at: Optional[datetime.datetime]
        if expires_in is not None:
            expires_at = now + datetime.timedelta(seconds=float(expires_in))
        else:
            expires_at = _expiry_from_claims(claims)
        return cls(
            access_token=access_token,
            refresh_token=payload.get('refresh_token') or None,
            expires_at=expires_at,
            token_type=str(payload.get('token_type') or 'bearer'),
            scope=frozenset(str(payload.get('scope') or '').split()),
            claims=claims,
        )

    @classmethod
    def from_access_token(
            cls,
            access_token: Optional[str],
            *,
            refresh_token: Optional[str] = None,
    ) -> "Token":
        """
        Build a token from the pre-issued token strings.

        The expiry is taken from the JWT's ``exp`` claim if it is a JWT.
        If there is no access token at all (a refresh token only), the token
        is born expired, so that it is refreshed on the first use.
        """
        if not access_token:
            return cls(access_token='', refresh_token=refresh_token, expires_at=EPOCH)
        claims = decode_claims(access_token)
        scope = claims.get('scope')
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=_expiry_from_claims(claims),
            scope=frozenset(scope) if isinstance(scope, list) else frozenset(),
            claims=claims,
        )

    def is_expired(
            self,
            margin: float = 0,
            *,
            now: Optional[datetime.datetime] = None,
    ) -> bool:
        if self.expires_at is None:
            return False
        now = now if now is not None else datetime.datetime.now(datetime.timezone.utc)
        return now + datetime.timedelta(seconds=margin) >= self.expires_at

    @property
    def authorization(self) -> str:
        """ The value of the ``Authorization`` header for this token. """
        return f'Bearer {self.access_token}'

    @property
    def username(self) -> Optional[str]:
        value = self.claims.get('user_name')
        return str(value) if value is not None else None

    @property
    def user_id(self) -> Optional[str]:
        value = self.claims.get('user_id')
        return str(value) if value is not None else None


class CredentialsKind(enum.Enum):
    PASSWORD = 'password'
    CLIENT = 'client_credentials'
    TOKEN = 'token'


@dataclasses.dataclass(frozen=True)
class Credentials:
    """
    The identity to authenticate with, as supplied by the caller.

    The default client id ``cf`` with an empty secret is the public client
    that the platform's identity providers accept for the password grant.
    """
    username: Optional[str] = None
    password: Optional[str] = dataclasses.field(default=None, repr=False)
    client_id: str = 'cf'
    client_secret: str = dataclasses.field(default='', repr=False)
    token: Optional[Token] = dataclasses.field(default=None, repr=False)
    origin: Optional[str] = None  # e.g. "uaa", "ldap", or a SAML provider's origin key.

    @property
    def kind(self) -> CredentialsKind:
        if self.username:
            return CredentialsKind.PASSWORD
        elif self.client_secret:
            return CredentialsKind.CLIENT
        else:
            return CredentialsKind.TOKEN

    @property
    def can_login(self) -> bool:
        """ Whether a new token can be obtained without a refresh token. """
        return self.kind is not CredentialsKind.TOKEN

    def validate(self) -> None:
        """ Check the structural validity of the credentials, without any I/O. """
        if not self.client_id:
            raise ConfigurationError("The client id must not be empty.")
        match self.kind:
            case CredentialsKind.PASSWORD:
                if self.password is None:
                    raise ConfigurationError("A username is set, but the password is not.")
            case CredentialsKind.TOKEN:
                if self.token is None:
                    raise ConfigurationError("Neither a username, nor a client secret, "
                                             "nor a token are set. Need at least one.")
                if not self.token.access_token and not self.token.refresh_token:
                    raise ConfigurationError("The token has neither an access token "
                                             "nor a refresh token. Need at least one.")


class TokenStore:
    """
    A store for the currently valid token of one OAuth client.

    There is no locking here: the store is mutated only by its owning
    OAuth client, which serialises the mutations via its single flight.
    """

    _token: Optional[Token]

    def __init__(self, __token: Optional[Token] = None) -> None:
        super().__init__()
        self._token = __token

    def __repr__(self) -> str:
        if self._token is None:
            return f'<{self.__class__.__name__}: empty>'
        return f'<{self.__class__.__name__}: expires at {self._token.expires_at}>'

    def __bool__(self) -> bool:
        return self._token is not None

    def get(self) -> Optional[Token]:
        return self._token

    def set(self, token: Token) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


def decode_claims(access_token: str) -> Dict[str, Any]:
    """
    Decode the payload of a JWT access token, without verifying it.

    The claims are used for informational purposes only (expiry, username),
    never for any security decisions. Non-JWT tokens have no claims.
    """
    parts = access_token.split('.')
    if len(parts) != 3:
        return {}
    try:
        data = base64.urlsafe_b64decode(parts[1] + '=' * (-len(parts[1]) % 4))
        claims = json.loads(data)
    except ValueError:  # incl. binascii.Error, JSONDecodeError, UnicodeDecodeError.
        return {}
    return claims if isinstance(claims, dict) else {}


def _expiry_from_claims(claims: Mapping[str, Any]) -> Optional[datetime.datetime]:
    exp = claims.get('exp')
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return datetime.datetime.fromtimestamp(exp, tz=datetime.timezone.utc)
    return None
