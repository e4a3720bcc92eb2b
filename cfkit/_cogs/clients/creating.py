import logging
from typing import Any, Dict, Mapping, Optional, cast

from cfkit._cogs.clients import api, auth, fetching, jobs
from cfkit._cogs.helpers import typedefs

default_logger = logging.getLogger(__name__)


async def bind_service_instance(
        app_name: str,
        instance_name: str,
        *,
        parameters: Optional[Mapping[str, Any]] = None,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    """
    Bind a service instance to an application. Return the job id if asynchronous.
    """
    app = await fetching.get_application(app_name, space_guid=space_guid, context=context, logger=logger)
    instance = await fetching.get_service_instance(instance_name, space_guid=space_guid,
                                                   context=context, logger=logger)
    body: Dict[str, Any] = {
        'type': 'app',
        'relationships': {
            'app': {'data': {'guid': cast(typedefs.RawBody, app)['guid']}},
            'service_instance': {'data': {'guid': cast(typedefs.RawBody, instance)['guid']}},
        },
    }
    if parameters:
        body['parameters'] = dict(parameters)

    status, headers, _ = await api.send('post', '/v3/service_credential_bindings', payload=body,
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)


async def create_service_broker(
        name: str,
        url: str,
        username: str,
        password: str,
        *,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    """
    Register a service broker, either platform-wide or space-scoped.
    """
    body: Dict[str, Any] = {
        'name': name,
        'url': url,
        'authentication': {
            'type': 'basic',
            'credentials': {'username': username, 'password': password},
        },
    }
    if space_guid is not None:
        body['relationships'] = {'space': {'data': {'guid': space_guid}}}

    status, headers, _ = await api.send('post', '/v3/service_brokers', payload=body,
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)
