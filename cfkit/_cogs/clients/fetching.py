import collections.abc
import logging
from typing import Any, Mapping, Optional

from cfkit._cogs.clients import api, auth, errors
from cfkit._cogs.helpers import typedefs

default_logger = logging.getLogger(__name__)


async def get_application(
        name: str,
        *,
        required: bool = True,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[typedefs.RawBody]:
    return await find_one('/v3/apps', {'names': name},
                          what=f"application {name!r}", required=required, space_guid=space_guid,
                          context=context, logger=logger)


async def get_service_instance(
        name: str,
        *,
        required: bool = True,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[typedefs.RawBody]:
    return await find_one('/v3/service_instances', {'names': name},
                          what=f"service instance {name!r}", required=required, space_guid=space_guid,
                          context=context, logger=logger)


async def get_service_broker(
        name: str,
        *,
        required: bool = True,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[typedefs.RawBody]:
    return await find_one('/v3/service_brokers', {'names': name},
                          what=f"service broker {name!r}", required=required, space_guid=space_guid,
                          context=context, logger=logger)


async def get_service_binding(
        app_guid: str,
        instance_guid: str,
        *,
        required: bool = True,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[typedefs.RawBody]:
    return await find_one('/v3/service_credential_bindings',
                          {'app_guids': app_guid, 'service_instance_guids': instance_guid},
                          what=f"binding of the service instance {instance_guid} to the app {app_guid}",
                          required=required, context=context, logger=logger)


async def find_one(
        url: str,
        filters: Mapping[str, str],
        *,
        what: str,
        required: bool = True,
        space_guid: Optional[str] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> Optional[typedefs.RawBody]:
    """
    Find the first resource matching the filters, or fail if it is required.

    The platform reports the absent resources either as an empty list or as
    HTTP 404 (e.g. if the space is absent): both are treated the same way.
    """
    params = dict(filters)
    if space_guid is not None:
        params['space_guids'] = space_guid

    try:
        rsp = await api.get(url=url, params=params, context=context, logger=logger)
    except errors.ResourceNotFoundError:
        if required:
            raise
        return None

    resources: Any = rsp.get('resources') if isinstance(rsp, collections.abc.Mapping) else None
    if resources:
        resource: typedefs.RawBody = resources[0]
        return resource
    elif required:
        raise errors.ResourceNotFoundError(status=404, description=f"The {what} is not found.")
    else:
        logger.debug(f"The {what} is not found; skipping as optional.")
        return None
