"""
Asynchronous jobs of the platform, as observed by the client.

Long-running mutations (service bindings, service brokers, service instance
deletions) are executed by the platform in the background. The platform
responds with ``202 Accepted`` and a reference to a job, which is then
polled until it reaches a terminal state.

The job's state is owned by the platform. The client only has read-only
snapshots of it, one per fetch, and never modifies them.
"""
import dataclasses
import datetime
import enum
from typing import Any, Collection, Mapping, Optional, Tuple

import iso8601
from typing_extensions import NotRequired, TypedDict


class RawJobError(TypedDict, total=False):
    code: int
    title: str
    detail: str


class RawJob(TypedDict):
    guid: str
    state: str
    operation: NotRequired[str]
    errors: NotRequired[Collection[RawJobError]]
    created_at: NotRequired[str]
    updated_at: NotRequired[str]


class JobState(str, enum.Enum):
    QUEUED = 'QUEUED'
    PROCESSING = 'PROCESSING'
    COMPLETE = 'COMPLETE'
    FAILED = 'FAILED'

    @classmethod
    def parse(cls, value: object) -> "JobState":
        """
        Map the platform's job states to ours.

        The v3 API reports ``PROCESSING``, ``POLLING``, ``COMPLETE``, ``FAILED``;
        the legacy v2 API reports ``queued``, ``running``, ``finished``, ``failed``.
        Unknown states are treated as non-terminal: the job will be polled
        until it reaches a known terminal state or until the timeout.
        """
        name = str(value).upper()
        return _STATE_ALIASES.get(name, cls.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETE, JobState.FAILED)

    def can_follow(self, previous: "JobState") -> bool:
        """ Whether the transition from the previous state to this one is valid. """
        if previous.is_terminal:
            return self is previous
        if previous is JobState.PROCESSING:
            return self is not JobState.QUEUED
        return True


_STATE_ALIASES: Mapping[str, JobState] = {
    'QUEUED': JobState.QUEUED,
    'PROCESSING': JobState.PROCESSING,
    'POLLING': JobState.PROCESSING,
    'RUNNING': JobState.PROCESSING,
    'COMPLETE': JobState.COMPLETE,
    'FINISHED': JobState.COMPLETE,
    'FAILED': JobState.FAILED,
}


@dataclasses.dataclass(frozen=True)
class AsyncJob:
    id: str
    state: JobState
    operation: Optional[str] = None
    errors: Tuple[Mapping[str, Any], ...] = ()
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AsyncJob":
        """
        Parse a job's status as returned by the job status endpoint.

        Besides the v3 format (see :class:`RawJob`), the legacy v2 format with
        the ``metadata`` & ``entity`` envelope is accepted, where the failure
        is reported in the single ``error_details`` object.
        """
        if 'entity' in payload:
            metadata = payload.get('metadata') or {}
            entity = payload.get('entity') or {}
            error_details = entity.get('error_details')
            return cls(
                id=str(entity.get('guid') or metadata.get('guid')),
                state=JobState.parse(entity.get('status')),
                errors=(error_details,) if isinstance(error_details, Mapping) else (),
                created_at=_parse_time(metadata.get('created_at')),
                updated_at=_parse_time(metadata.get('updated_at')),
            )

        raw_errors = payload.get('errors') or ()
        if isinstance(payload.get('error'), Mapping):
            raw_errors = [payload['error']]
        elif isinstance(payload.get('error'), str) and payload['error']:
            raw_errors = [{'detail': payload['error']}]
        return cls(
            id=str(payload.get('guid') or payload.get('id')),
            state=JobState.parse(payload.get('state')),
            operation=payload.get('operation'),
            errors=tuple(error for error in raw_errors if isinstance(error, Mapping)),
            created_at=_parse_time(payload.get('created_at')),
            updated_at=_parse_time(payload.get('updated_at')),
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def error_detail(self) -> Optional[str]:
        """ A human-readable description of the errors, verbatim as reported. """
        details = []
        for error in self.errors:
            detail = error.get('detail') or error.get('description') or error.get('title')
            if detail:
                details.append(str(detail))
        return '; '.join(details) if details else None


def _parse_time(value: object) -> Optional[datetime.datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return iso8601.parse_date(value)
    except iso8601.ParseError:
        return None
