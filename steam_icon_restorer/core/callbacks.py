# steam_icon_restorer/core/callbacks.py

"""
Callback dispatch between the Steam network thread and application code.

The Steam session posts events into a CallbackManager queue from whatever
thread its transport runs on. A single pump thread calls
run_wait_callbacks() in a loop and is the only place handlers execute.
Application code that needs one specific answer (login finished, product
info for one app) subscribes a handler that resolves a CompletionSignal and
waits on the signal from its own thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger("steamicons.callbacks")

__all__ = ["CallbackManager", "CompletionSignal", "Subscription"]

T = TypeVar("T")
E = TypeVar("E")


class Subscription(Generic[E]):
    """A registered handler for one event type.

    Disposing is idempotent. Subscriptions are context managers so that the
    handler is removed on every exit path of a ``with`` block.
    """

    def __init__(self, manager: CallbackManager, event_type: type[E], handler: Callable[[E], Any]) -> None:
        self.event_type = event_type
        self.handler = handler
        self._manager = manager
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Removes the handler. Calling this more than once has no effect."""
        if self._disposed:
            return
        self._disposed = True
        self._manager._remove(self)

    def __enter__(self) -> Subscription[E]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class CallbackManager:
    """Thread-safe event queue with typed subscriptions.

    ``post`` may be called from any thread. Handlers only ever run inside
    ``run_wait_callbacks``, on the thread that pumps the manager.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._handlers: dict[type, list[Subscription[Any]]] = defaultdict(list)

    def post(self, event: object) -> None:
        """Queues an event for delivery on the pump thread."""
        self._queue.put(event)

    def subscribe(self, event_type: type[E], handler: Callable[[E], Any]) -> Subscription[E]:
        """
        Registers ``handler`` for events of exactly ``event_type``.

        Args:
            event_type: The event class to listen for.
            handler: Called with each matching event, on the pump thread.

        Returns:
            Subscription: Dispose it (or use it as a context manager) to stop
            receiving events.
        """
        subscription = Subscription(self, event_type, handler)
        with self._lock:
            self._handlers[event_type].append(subscription)
        return subscription

    def subscription_count(self, event_type: type | None = None) -> int:
        """Number of live subscriptions, optionally for one event type."""
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, ()))
            return sum(len(subs) for subs in self._handlers.values())

    def _remove(self, subscription: Subscription[Any]) -> None:
        with self._lock:
            handlers = self._handlers.get(subscription.event_type)
            if handlers and subscription in handlers:
                handlers.remove(subscription)
                if not handlers:
                    del self._handlers[subscription.event_type]

    def run_wait_callbacks(self, timeout: float) -> bool:
        """
        Waits up to ``timeout`` seconds for an event, then delivers every
        queued event.

        Args:
            timeout: Maximum time to block when the queue is empty.

        Returns:
            bool: True if at least one event was delivered.
        """
        try:
            event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False

        self._dispatch(event)
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return True
            self._dispatch(event)

    def _dispatch(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))

        for subscription in handlers:
            if subscription.disposed:
                continue
            try:
                subscription.handler(event)
            except Exception:
                # A failing handler must not take the pump down with it
                logger.exception("Unhandled error in %s handler", type(event).__name__)


class CompletionSignal(Generic[T]):
    """Single-fire result slot bridging handlers and waiting code.

    The first ``try_set`` wins; later calls are ignored and return False,
    so racing handlers can all resolve the signal safely.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._value: T | None = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def try_set(self, value: T) -> bool:
        """Resolves the signal with ``value`` unless it is already resolved."""
        with self._lock:
            if self._event.is_set():
                return False
            self._value = value
            self._event.set()
            return True

    def wait(self, timeout: float | None = None) -> T:
        """
        Blocks until the signal is resolved.

        Args:
            timeout: Maximum seconds to wait, or None to wait forever.

        Returns:
            The resolved value.

        Raises:
            TimeoutError: If the signal was not resolved in time.
        """
        if not self._event.wait(timeout):
            raise TimeoutError(f"No result within {timeout} seconds")
        return self._value  # type: ignore[return-value]
