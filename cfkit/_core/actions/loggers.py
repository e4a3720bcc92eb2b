"""
Logging of the client's activities, with the control-plane target attached.

A single process can drive several control planes at once (e.g. a broker
registrar for many foundations). The messages of every client are therefore
marked with the target's base URL: as a prefix in the text logs, or as a
separate field in the JSON logs, so that the log parsers can filter by it.

The secrets (passwords, client secrets, tokens) are never passed to the logging
calls in the first place, so nothing is redacted here.
"""
import copy
import enum
import logging
from typing import TYPE_CHECKING, Any, MutableMapping, Optional, TextIO, Tuple, Union

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from cfkit._cogs.helpers import typedefs

logger = logging.getLogger('cfkit.targets')

# A key for the target references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'target'


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # not used for formatting, only for detection


class TargetFormatter(logging.Formatter):
    pass


class TargetTextFormatter(TargetFormatter, logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, 'cf_target'):
            record = copy.copy(record)  # shallow
            record.msg = f"[{getattr(record, 'cf_target')}] {record.msg}"
        return super().format(record)


class TargetJsonFormatter(TargetFormatter, JsonFormatter):
    def __init__(
            self,
            *args: Any,
            refkey: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        reserved_attrs = set(kwargs.pop('reserved_attrs', RESERVED_ATTRS))
        reserved_attrs |= {'cf_target'}
        kwargs['reserved_attrs'] = reserved_attrs
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self._refkey and hasattr(record, 'cf_target'):
            log_record[self._refkey] = getattr(record, 'cf_target')

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class TargetLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the control-plane target for formatting.

    Constructed once per :class:`ControllerClient` and passed to all the API
    calls of that client.
    """

    def __init__(self, *, target: str) -> None:
        super().__init__(logger, dict(cf_target=target))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra or {}, **kwargs.get('extra', {}))
        return msg, kwargs


# Used to identify and remove our own handlers on re-configuration, e.g. in CLI tests:
# the previous handlers can stream into the closed stderr interceptors of Click's runner.
if TYPE_CHECKING:
    class _CfkitStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _CfkitStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_refkey: Optional[str] = None,
) -> None:
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_refkey=log_refkey)
    handler = _CfkitStreamHandler()
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.handlers[:] = [h for h in logger.handlers if not isinstance(h, _CfkitStreamHandler)]
    logger.addHandler(handler)
    logger.setLevel(log_level)

    # Prevent the low-level logging unless in the debug mode. Keep only the client's messages.
    # For no-propagation loggers, add a dummy null handler to prevent printing the messages.
    for name in ['asyncio', 'aiohttp']:
        logger = logging.getLogger(name)
        logger.propagate = bool(debug)
        if not debug:
            logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: Union[LogFormat, str] = LogFormat.FULL,
        log_refkey: Optional[str] = None,
) -> TargetFormatter:
    match log_format:
        case LogFormat.JSON:
            return TargetJsonFormatter(refkey=log_refkey)
        case LogFormat():
            return TargetTextFormatter(log_format.value)
        case str():
            return TargetTextFormatter(log_format)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
