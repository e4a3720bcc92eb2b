import functools
import json
from typing import Any, Callable, Optional

import click

from cfkit._cogs.clients import discovery, errors
from cfkit._cogs.configs import configuration, targets
from cfkit._cogs.structs import credentials
from cfkit._core.actions import loggers
from cfkit._kits import controller, loops

# Everything the library raises on purpose; it is shown as a one-line message, not as a traceback.
EXPECTED_ERRORS = (
    errors.ConfigurationError,
    errors.AuthenticationError,
    errors.DiscoveryError,
    errors.TransportError,
    errors.PlatformError,
    errors.JobFailedError,
    errors.JobTimeoutError,
)


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey)
        return fn(*args, **kwargs)

    return wrapper


def target_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    A decorator to resolve the control-plane target in all commands the same way.

    If the URL is given explicitly (or via ``CFKIT_<COMMAND>_URL``), the target is
    made of the options. Otherwise, it is loaded from the targets file.
    """
    @click.option('--targets', 'targets_path', type=str, envvar='CFKIT_TARGETS')
    @click.option('-t', '--target', 'target_name', type=str)
    @click.option('--url', type=str)
    @click.option('-u', '--username', type=str)
    @click.option('-p', '--password', type=str)
    @click.option('--client-id', type=str, default='cf')
    @click.option('--client-secret', type=str, default='')
    @click.option('--origin', type=str)
    @click.option('--space-guid', type=str)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(targets_path: Optional[str], target_name: Optional[str],
                url: Optional[str], username: Optional[str], password: Optional[str],
                client_id: str, client_secret: str, origin: Optional[str], space_guid: Optional[str],
                *args: Any, **kwargs: Any) -> Any:
        try:
            if url:
                target = targets.Target(
                    name=url,
                    url=url,
                    space_guid=space_guid,
                    credentials=credentials.Credentials(
                        username=username,
                        password=password,
                        client_id=client_id,
                        client_secret=client_secret,
                        origin=origin,
                    ),
                )
            else:
                target = targets.load_target(targets_path, target_name)
        except errors.ConfigurationError as e:
            raise click.UsageError(str(e)) from e
        return fn(*args, target=target, **kwargs)

    return wrapper


def expected_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to render the library's errors as CLI errors, without tracebacks. """
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except EXPECTED_ERRORS as e:
            raise click.ClickException(str(e)) from e

    return wrapper


@click.version_option(prog_name='cfkit')
@click.group(name='cfkit', context_settings=dict(
    auto_envvar_prefix='CFKIT',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.argument('url')
@expected_errors
def info(url: str) -> None:
    """ Discover the authorization endpoint of a control plane. """
    cache = discovery.InfoCache(configuration.ClientSettings())
    endpoint = loops.run(cache.resolve_authorization_endpoint(url))
    click.echo(endpoint)


@main.command()
@logging_options
@target_options
@expected_errors
def login(target: targets.Target) -> None:
    """ Log in to the control plane and show the token's expiry. """
    async def _login() -> credentials.Token:
        async with _make_client(target) as client:
            return await client.login()

    token = loops.run(_login())
    who = token.username or target.credentials.username or target.credentials.client_id
    expiry = token.expires_at.isoformat() if token.expires_at is not None else 'unknown'
    click.echo(f"Logged in to {target.url} as {who}; the token expires at {expiry}.")


@main.command()
@logging_options
@target_options
@click.option('--optional', is_flag=True, help="Print null instead of failing if absent.")
@click.argument('name')
@expected_errors
def app(target: targets.Target, name: str, optional: bool) -> None:
    """ Show an application by its name. """
    async def _get() -> Any:
        async with _make_client(target) as client:
            return await client.get_application(name, required=not optional)

    click.echo(json.dumps(loops.run(_get()), indent=2, sort_keys=True))


@main.command()
@logging_options
@target_options
@click.option('-i', '--interval', type=float, default=None)
@click.option('--timeout', type=float, default=None)
@click.argument('job_id')
@expected_errors
def wait(target: targets.Target, job_id: str, interval: Optional[float], timeout: Optional[float]) -> None:
    """ Wait until an asynchronous job is complete. """
    async def _wait() -> Any:
        async with _make_client(target) as client:
            return await client.await_job(job_id, interval=interval, timeout=timeout)

    job = loops.run(_wait())
    click.echo(f"Job {job.id} is {job.state.value.lower()}.")


def _make_client(target: targets.Target) -> controller.ControllerClient:
    return controller.ControllerClient(target.url, target.credentials, space_guid=target.space_guid)
