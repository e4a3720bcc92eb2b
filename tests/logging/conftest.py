import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_loggers():
    """ Configuring the logging affects the whole process: revert it after every test. """
    loggers = [logging.getLogger(name) for name in [None, 'asyncio', 'aiohttp']]
    states = [(logger.level, logger.propagate, logger.handlers[:]) for logger in loggers]
    yield
    for logger, (level, propagate, handlers) in zip(loggers, states):
        logger.setLevel(level)
        logger.propagate = propagate
        logger.handlers[:] = handlers
