"""Write-once result cell shared between the HTTP handler and the waiter."""

from __future__ import annotations

import asyncio
from typing import Optional

from loopauth.models import CallbackOutcome


class PendingCallback:
    """Holds at most one :class:`~loopauth.models.CallbackOutcome`.

    The first :meth:`resolve` wins, whether it comes from a browser
    request, a timeout, or a cancellation; every later call is a no-op.
    All access happens on one event loop, so no lock is needed.
    """

    def __init__(self) -> None:
        self._outcome: Optional[CallbackOutcome] = None
        self._resolved = asyncio.Event()

    def resolve(self, outcome: CallbackOutcome) -> bool:
        """Store *outcome* unless an outcome is already stored.

        Returns:
            ``True`` if this call resolved the callback, ``False`` if it
            had already been resolved.
        """
        if self._outcome is not None:
            return False
        self._outcome = outcome
        self._resolved.set()
        return True

    def done(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> CallbackOutcome:
        """The stored outcome.

        Raises:
            RuntimeError: If nothing has resolved the callback yet.
        """
        if self._outcome is None:
            raise RuntimeError("Callback has not been resolved")
        return self._outcome

    async def wait(self) -> CallbackOutcome:
        """Suspend until the callback is resolved and return the outcome."""
        await self._resolved.wait()
        return self.outcome
