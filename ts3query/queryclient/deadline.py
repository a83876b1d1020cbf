"""Socket deadline shared by every reader and writer of a session.

asyncio streams have no deadline of their own, so the session keeps one
absolute deadline and every pending read or write runs inside a timeout
scope bound to it. Moving the deadline reschedules the scopes that are
already waiting, which is what lets a caller bound the dispatcher's read of
a response it is waiting for.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class Deadline:
    """An absolute point in loop time after which pending I/O fails.

    Supports single event loop access only.
    """

    def __init__(self) -> None:
        self._when: float | None = None
        self._scopes: set[asyncio.Timeout] = set()

    @property
    def when(self) -> float | None:
        """The deadline in loop time, or None if cleared."""
        return self._when

    def set(self, timeout: float) -> None:
        """Move the deadline to ``timeout`` seconds from now.

        :param timeout: Seconds until pending I/O fails
        """
        self._apply(asyncio.get_running_loop().time() + timeout)

    def clear(self) -> None:
        """Remove the deadline so pending I/O may wait indefinitely."""
        self._apply(None)

    def _apply(self, when: float | None) -> None:
        self._when = when
        for scope in self._scopes:
            if not scope.expired():
                scope.reschedule(when)

    @asynccontextmanager
    async def bound(self) -> AsyncIterator[None]:
        """Run the enclosed I/O under the deadline.

        :raises TimeoutError: if the deadline passes before the I/O completes
        """
        async with asyncio.timeout_at(self._when) as scope:
            self._scopes.add(scope)
            try:
                yield
            finally:
                self._scopes.discard(scope)
