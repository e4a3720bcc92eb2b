"""
Single-flight execution of coroutines.

For every key, at most one call is in flight at a time. All callers that come
while the call is in flight do not start their own, but await the same one and
receive the same result (or the same exception). Once the flight lands,
the key is released, and the next caller starts a new flight.

This is used for the token exchanges (one login/refresh per OAuth client)
and for the platform discovery (one request per base URL).

The flights are tied to the event loop of the first caller. We assume that
the whole client runs in one event loop, as ``aiohttp`` sessions do anyway.
"""
import asyncio
import functools
from typing import Awaitable, Callable, Dict, Generic, Hashable, TypeVar

_K = TypeVar('_K', bound=Hashable)
_V = TypeVar('_V')


class Flights(Generic[_K, _V]):
    """
    A registry of the in-flight calls, one per key.

    The flight itself runs as a separate task, so that a cancellation of one
    of the awaiting callers does not cancel the call for all other callers.
    """

    _flights: Dict[_K, "asyncio.Future[_V]"]

    def __init__(self) -> None:
        super().__init__()
        self._flights = {}

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {list(self._flights)!r}>'

    def __len__(self) -> int:
        return len(self._flights)

    def __contains__(self, key: object) -> bool:
        return key in self._flights

    async def run(self, key: _K, fn: Callable[[], Awaitable[_V]]) -> _V:
        """
        Join the in-flight call for the key, or start a new one if there is none.

        There is no ``await`` between the check and the registration of a new
        flight, so the check-and-start is atomic for the event loop.
        """
        flight = self._flights.get(key)
        if flight is None:
            flight = asyncio.ensure_future(fn())
            self._flights[key] = flight
            flight.add_done_callback(functools.partial(self._land, key))
        return await asyncio.shield(flight)

    def _land(self, key: _K, flight: "asyncio.Future[_V]") -> None:
        # Only release our own flight, never a newer one under the same key.
        if self._flights.get(key) is flight:
            del self._flights[key]

        # The callers might be all gone (cancelled) by now. Mark the exception as retrieved,
        # so that asyncio does not complain about it: it was delivered to whoever was waiting.
        if not flight.cancelled():
            flight.exception()
