"""
Rudimentary type [re-]definitions shared across the codebase.

Some stdlib classes are generic only for the type-checkers, but not at runtime
(e.g. ``logging.LoggerAdapter``), so they are defined here once in a way that
works for both. The raw JSON-like payloads of the platform API are also typed
here, loosely: the client does not model the wire schema of every endpoint.
"""
import logging
from typing import TYPE_CHECKING, Any, Mapping, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = Union[logging.Logger, LoggerAdapter]

# A single resource as listed or fetched from the platform API (an app, a broker, etc).
RawBody = Mapping[str, Any]
