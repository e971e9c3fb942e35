import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class RequestAborted(Exception):
    """La requête sortante a été annulée via son AbortSignal."""


class AbortSignal:
    """
    Signal d'annulation passé aux appels externes (complétion, extraction).
    Une fois déclenché, il le reste.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str = ""

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "Requête annulée.") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def race(awaitable: Awaitable[T], signal: Optional[AbortSignal] = None) -> T:
    """
    Attend `awaitable`, sauf si `signal` est déclenché avant : la tâche est
    alors annulée et RequestAborted est levée.
    """
    if signal is None:
        return await awaitable
    if signal.aborted:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestAborted(signal.reason)

    call = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        call.cancel()
        waiter.cancel()
        raise

    if call in done:
        waiter.cancel()
        return call.result()

    call.cancel()
    try:
        await call
    except asyncio.CancelledError:
        pass
    raise RequestAborted(signal.reason)
