import logging
from typing import Optional, cast

from cfkit._cogs.clients import api, auth, fetching, jobs
from cfkit._cogs.helpers import typedefs

default_logger = logging.getLogger(__name__)


async def delete_service_broker(
        name: str,
        *,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    broker = cast(typedefs.RawBody, await fetching.get_service_broker(name, context=context, logger=logger))
    status, headers, _ = await api.send('delete', f"/v3/service_brokers/{broker['guid']}",
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)


async def delete_service_instance(
        name: str,
        *,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    instance = cast(typedefs.RawBody, await fetching.get_service_instance(
        name, space_guid=space_guid, context=context, logger=logger))
    status, headers, _ = await api.send('delete', f"/v3/service_instances/{instance['guid']}",
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)


async def unbind_service_instance(
        app_name: str,
        instance_name: str,
        *,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[str]:
    """
    Unbind a service instance from an application, which must be bound to it.
    """
    app = cast(typedefs.RawBody, await fetching.get_application(
        app_name, space_guid=space_guid, context=context, logger=logger))
    instance = cast(typedefs.RawBody, await fetching.get_service_instance(
        instance_name, space_guid=space_guid, context=context, logger=logger))
    binding = cast(typedefs.RawBody, await fetching.get_service_binding(
        app['guid'], instance['guid'], context=context, logger=logger))
    status, headers, _ = await api.send('delete', f"/v3/service_credential_bindings/{binding['guid']}",
                                        context=context, logger=logger)
    return jobs.extract_job_id(status, headers)
