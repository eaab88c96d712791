# tendercost/services/state.py
import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from tendercost.schemas.user import Principal, UserProfile

logger = logging.getLogger(__name__)

S = TypeVar("S")


@dataclass(frozen=True)
class BootstrapState:
    principal: Principal | None = None
    is_bootstrapping: bool = True
    error: BaseException | None = None


@dataclass(frozen=True)
class SyncState:
    principal: Principal | None = None
    profile: UserProfile | None = None
    is_loading: bool = False
    error: BaseException | None = None


@dataclass(frozen=True)
class SessionState:
    """The tuple every consumer of the client session reads."""

    principal: Principal | None = None
    profile: UserProfile | None = None
    is_loading: bool = True
    error: BaseException | None = None


class StateHolder(Generic[S]):
    """
    Holds the latest state value and pushes replacements to listeners.

    Listeners run synchronously on the event loop, in registration order.
    A failing listener is logged and does not stop the others.
    """

    def __init__(self, initial: S):
        self._state = initial
        self._listeners: list[Callable[[S], None]] = []

    @property
    def state(self) -> S:
        return self._state

    def add_listener(self, listener: Callable[[S], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _publish(self, state: S) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")
