# storefront/utils/session.py
import logging
from typing import Awaitable, Callable, List, Optional

from storefront.schemas.user import Identity

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Identity]], Awaitable[None]]


class SessionProvider:
    """Current identity of one device plus change notifications.

    `loading` stays True until the first `resolve`. Listeners are awaited in
    subscription order on every identity change, so by the time `resolve`
    returns every subscriber has finished reacting.
    """

    def __init__(self):
        self.identity: Optional[Identity] = None
        self.loading = True
        self._listeners: List[SessionListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def resolve(self, identity: Optional[Identity]) -> None:
        """Report the identity check result; emits only when something changed."""
        first = self.loading
        previous = self.identity
        self.loading = False
        self.identity = identity
        if not first and _same_user(previous, identity):
            return
        logger.debug(
            "Session change: %s -> %s",
            previous.user_id if previous else None,
            identity.user_id if identity else None,
        )
        await self._emit(identity)

    async def sign_in(self, identity: Identity) -> None:
        await self.resolve(identity)

    async def sign_out(self) -> None:
        await self.resolve(None)

    async def _emit(self, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            await listener(identity)


def _same_user(a: Optional[Identity], b: Optional[Identity]) -> bool:
    if a is None or b is None:
        return a is b
    return a.user_id == b.user_id
