"""
Abort signals and cancellation tokens.

Each inbound request owns one AbortController. Backends bind their own
cancellation primitive to it with `bind_abort_signal`, which guarantees
the listener is removed on every exit path.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortError(Exception):
    """Raised when an awaited operation loses the race against an abort signal."""

    def __init__(self, reason: Any = None):
        super().__init__(f"Operation aborted: {reason}" if reason else "Operation aborted")
        self.reason = reason


class AbortSignal:
    """One-shot signal. Listeners fire at most once, in registration order."""

    def __init__(self):
        self._aborted = False
        self._reason: Any = None
        self._listeners: List[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Callable[[], None]):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]):
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def wait(self):
        """Wait until the signal is aborted."""
        if self._aborted:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def _fire(self, reason: Any):
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Abort listener failed")


class AbortController:
    """Owner side of an AbortSignal."""

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self, reason: Any = "aborted"):
        self.signal._fire(reason)


class CancellationToken(AbortSignal):
    """Token handed to a capability model for one or more requests."""

    @property
    def is_cancellation_requested(self) -> bool:
        return self.aborted


class CancellationTokenSource:
    def __init__(self):
        self.token = CancellationToken()

    def cancel(self):
        self.token._fire("cancelled")

    def dispose(self):
        self.token._listeners.clear()


@contextmanager
def bind_abort_signal(
    signal: Optional[AbortSignal],
    on_abort: Callable[[], None],
) -> Iterator[None]:
    """
    Forward `signal` to `on_abort` for the duration of the block.

    An already-aborted signal triggers `on_abort` immediately. The listener
    is removed when the block exits, however it exits.
    """
    if signal is None:
        yield
        return

    if signal.aborted:
        on_abort()
        yield
        return

    signal.add_listener(on_abort)
    try:
        yield
    finally:
        signal.remove_listener(on_abort)


async def race_abort(awaitable: Awaitable[T], signal: Optional[AbortSignal]) -> T:
    """
    Await `awaitable` unless `signal` aborts first.

    The losing side is cancelled. Raises AbortError when the signal wins.
    """
    if signal is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if signal.aborted:
        task.cancel()
        raise AbortError(signal.reason)

    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()
    raise AbortError(signal.reason)
