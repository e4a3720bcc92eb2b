import collections.abc
import logging
import urllib.parse
from typing import Mapping, Optional

from cfkit._cogs.clients import api, auth, errors
from cfkit._cogs.helpers import typedefs
from cfkit._cogs.structs import jobs

default_logger = logging.getLogger(__name__)


async def get_job(
        job_id: str,
        *,
        deadline: Optional[float] = None,
        context: Optional[auth.APIContext] = None,
        logger: typedefs.Logger = default_logger,
) -> jobs.AsyncJob:
    """
    Fetch a snapshot of an asynchronous job's status.

    With a deadline (by the loop's clock), the failed requests are not retried past it.
    """
    rsp = await api.get(
        url=f'/v3/jobs/{urllib.parse.quote(job_id, safe="")}',
        deadline=deadline,
        context=context,
        logger=logger,
    )
    if not isinstance(rsp, collections.abc.Mapping):
        raise errors.TransportError(f"The status of the job {job_id} is not a JSON object.")
    return jobs.AsyncJob.from_payload(rsp)


def extract_job_id(status: int, headers: Mapping[str, str]) -> Optional[str]:
    """
    Get the job id from the response of a possibly asynchronous operation.

    The platform responds with ``202 Accepted`` and the job's URL in ``Location``
    (``.../v3/jobs/<id>``) if the operation is performed in the background.
    Any other successful response means the operation is already done.
    """
    if status != 202:
        return None
    location = headers.get('Location')
    if not location:
        return None
    path = urllib.parse.urlsplit(location).path.rstrip('/')
    parent, _, job_id = path.rpartition('/')
    if not parent.endswith('/jobs') or not job_id:
        return None
    return urllib.parse.unquote(job_id)
