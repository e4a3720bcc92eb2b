"""
The main cfkit module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from cfkit._cogs.aiokits.aioflights import (
    Flights,
)
from cfkit._cogs.clients.auth import (
    APIContext,
    authorized,
)
from cfkit._cogs.clients.discovery import (
    InfoCache,
    default_cache,
)
from cfkit._cogs.clients.errors import (
    ConfigurationError,
    AuthenticationError,
    DiscoveryError,
    TransportError,
    PlatformError,
    UnauthorizedError,
    ResourceNotFoundError,
    ConflictError,
    TooManyRequestsError,
    ServerError,
    JobFailedError,
    JobTimeoutError,
    classify,
    describe,
)
from cfkit._cogs.clients.jobs import (
    extract_job_id,
)
from cfkit._cogs.clients.oauth import (
    OAuthClient,
)
from cfkit._cogs.configs.configuration import (
    ClientSettings,
    NetworkingSettings,
    AuthSettings,
    DiscoverySettings,
    PollingSettings,
)
from cfkit._cogs.configs.targets import (
    Target,
    load_target,
)
from cfkit._cogs.helpers.typedefs import (
    Logger,
    RawBody,
)
from cfkit._cogs.helpers.versions import (
    version as __version__,
)
from cfkit._cogs.structs.credentials import (
    Credentials,
    CredentialsKind,
    Token,
    TokenStore,
)
from cfkit._cogs.structs.jobs import (
    AsyncJob,
    JobState,
)
from cfkit._core.actions.loggers import (
    configure,
    LogFormat,
    TargetLogger,
)
from cfkit._core.engines.polling import (
    await_completion,
    complete,
)
from cfkit._kits.controller import (
    ControllerAPI,
    ControllerClient,
)

__all__ = [
    'configure', 'LogFormat', 'TargetLogger', 'Logger',
    'ControllerAPI', 'ControllerClient',
    'ClientSettings', 'NetworkingSettings', 'AuthSettings', 'DiscoverySettings', 'PollingSettings',
    'Target', 'load_target',
    'Credentials', 'CredentialsKind', 'Token', 'TokenStore',
    'OAuthClient', 'APIContext', 'authorized',
    'InfoCache', 'default_cache',
    'AsyncJob', 'JobState', 'extract_job_id', 'await_completion', 'complete',
    'Flights',
    'RawBody',
    'ConfigurationError', 'AuthenticationError', 'DiscoveryError', 'TransportError',
    'PlatformError', 'UnauthorizedError', 'ResourceNotFoundError', 'ConflictError',
    'TooManyRequestsError', 'ServerError', 'JobFailedError', 'JobTimeoutError',
    'classify', 'describe',
    '__version__',
]
