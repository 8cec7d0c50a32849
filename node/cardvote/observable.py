import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Observable:
    """
    Owner of some authoritative in-memory state. Writers mutate through the
    owner's methods, which call ``_notify()`` once the new state is in place.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                # one broken subscriber must not block the others
                logger.exception("listener %r failed", listener)
