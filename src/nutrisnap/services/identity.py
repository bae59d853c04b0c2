"""Identity tracking with ordered, non-overlapping delivery."""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from nutrisnap.domain.identity import Identity
from nutrisnap.services.remote_log import Unsubscribe

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Identity], Awaitable[None]]


@dataclass
class IdentityTracker:
    """Holds the process-wide identity and fans transitions out to listeners.

    Transitions are queued and drained by a single loop, so the handler for
    transition N+1 never starts before every handler for transition N has
    returned.
    """

    current: Identity = field(default_factory=Identity.signed_out)
    _listeners: list[IdentityListener] = field(default_factory=list, init=False)
    _pending: deque[Identity] = field(default_factory=deque, init=False)
    _draining: bool = field(default=False, init=False)

    async def on_change(self, listener: IdentityListener) -> Unsubscribe:
        """Register a listener and deliver the current identity to it."""
        self._listeners.append(listener)
        await listener(self.current)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, identity: Identity) -> None:
        """Queue an identity transition and deliver it in order."""
        self._pending.append(identity)
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending:
                next_identity = self._pending.popleft()
                self.current = next_identity
                logger.info(
                    "Identity changed: uid=%s anonymous=%s",
                    next_identity.uid,
                    next_identity.is_anonymous,
                )
                for listener in list(self._listeners):
                    await listener(next_identity)
        finally:
            self._draining = False
