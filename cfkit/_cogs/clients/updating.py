import logging
from typing import Any, Dict, Optional, cast

from cfkit._cogs.clients import api, auth, errors, fetching, jobs
from cfkit._cogs.helpers import typedefs

default_logger = logging.getLogger(__name__)


async def update_service_broker(
        name: str,
        *,
        url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    """
    Change the URL and/or the credentials of a service broker.

    The credentials are replaced as a whole: both the username & the password
    must be given, or none of them.
    """
    if (username is None) != (password is None):
        raise errors.ConfigurationError("Both the username and the password must be given, or none of them.")

    body: Dict[str, Any] = {}
    if url is not None:
        body['url'] = url
    if username is not None and password is not None:
        body['authentication'] = {
            'type': 'basic',
            'credentials': {'username': username, 'password': password},
        }
    if not body:
        logger.debug(f"Nothing to update in the service broker {name!r}.")
        return None

    broker = cast(typedefs.RawBody, await fetching.get_service_broker(name, context=context, logger=logger))
    status, headers, _ = await api.send('patch', f"/v3/service_brokers/{broker['guid']}", payload=body,
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)
