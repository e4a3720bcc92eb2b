import functools
import logging

import click.testing
import pytest

from cfkit.cli import main


@pytest.fixture(autouse=True)
def _restore_loggers():
    """ Every command configures the logging of the whole process: revert it after every test. """
    loggers = [logging.getLogger(name) for name in [None, 'asyncio', 'aiohttp']]
    states = [(logger.level, logger.propagate, logger.handlers[:]) for logger in loggers]
    yield
    for logger, (level, propagate, handlers) in zip(loggers, states):
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers[:] = handlers


@pytest.fixture(autouse=True)
def _no_targets_file(tmp_path, monkeypatch):
    monkeypatch.setenv('CFKIT_TARGETS', str(tmp_path / 'absent.yaml'))


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def client(mocker):
    """ A fake controller client, as made by the CLI commands. """
    client = mocker.MagicMock()
    client.__aenter__.return_value = client
    client.login = mocker.AsyncMock()
    client.get_application = mocker.AsyncMock()
    client.await_job = mocker.AsyncMock()
    return client


@pytest.fixture()
def make_client(mocker, client):
    return mocker.patch('cfkit.cli._make_client', return_value=client)
