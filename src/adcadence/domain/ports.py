"""
Ports (interfaces) for the controller's external collaborators.

These define the contract that infrastructure adapters must implement.
Application components depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from .models import PresentationOutcome, SlotType

LoadCallback = Callable[[bool, Any], None]
PresentCallback = Callable[[PresentationOutcome], None]


class CancelToken:
    """Handle returned by Clock scheduling calls."""

    __slots__ = ("cancelled", "_on_cancel")

    def __init__(self, on_cancel: Callable[[], None] | None = None):
        self.cancelled = False
        self._on_cancel = on_cancel

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Clock(ABC):
    """
    Port for wall-clock time and delayed execution.

    Implementations:
        - AsyncioClock: wall clock driven by an asyncio event loop.
        - ManualClock: deterministic clock advanced explicitly by tests.
    """

    @abstractmethod
    def now(self) -> float:
        """Current time as epoch seconds."""

    @abstractmethod
    def schedule_once(self, delay: float, fn: Callable[[], None]) -> CancelToken:
        """Run fn once after delay seconds."""

    @abstractmethod
    def schedule_repeating(self, interval: float, fn: Callable[[], None]) -> CancelToken:
        """Run fn every interval seconds until cancelled."""

    def cancel(self, token: CancelToken | None) -> None:
        if token is not None:
            token.cancel()


class Dispatcher(ABC):
    """
    Port for marshaling work onto the owner execution context.

    Collaborator callbacks may arrive on any thread; they are posted here and
    run sequentially on the context that owns controller state.
    """

    @abstractmethod
    def post(self, fn: Callable[..., None], *args: Any) -> None:
        pass

    def wrap(self, fn: Callable[..., None]) -> Callable[..., None]:
        """Return a callable that posts fn instead of running it in place."""

        def marshaled(*args: Any) -> None:
            self.post(fn, *args)

        return marshaled


class PersistentKVStore(ABC):
    """
    Port for durable key/value storage.

    Implementations raise PersistenceError on I/O failure.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class AdNetwork(ABC):
    """
    Port for the third-party ad SDK (loader and presenter).

    Callbacks may be invoked from any thread, any number of times; the
    controller marshals and de-duplicates them.
    """

    @abstractmethod
    def load(self, slot: SlotType, ad_unit_id: str, callback: LoadCallback) -> None:
        """
        Request an ad for the slot.

        callback(success, handle_or_error) is invoked when the request settles.
        """

    @abstractmethod
    def present(self, handle: Any, host_surface: Any, callback: PresentCallback) -> None:
        """
        Display a previously loaded ad on the host surface.

        callback(outcome) reports the terminal outcome of the presentation.
        """
