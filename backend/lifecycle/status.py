"""
Published session status (single-writer, read-only view).

Rules:
- The lifecycle manager owns the only StatusPublisher.
- Everyone else receives a StatusView: read access and subscriptions only.
- Once bound to an event loop thread, publishing from any other thread raises.
- Subscribers run synchronously, in publication order, on the owning thread.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from lifecycle.enums.status import StatusKind

from observability.logger import log_event


# =============================================================================
# Values
# =============================================================================

@dataclass(frozen=True)
class SessionStatus:
    """
    Current session status.

    message carries the failure description. It may be non-empty while
    LOADING (last attempt's failure) and FAILED; it is empty otherwise.
    """
    kind: StatusKind = StatusKind.IDLE
    message: str = ""


@dataclass(frozen=True)
class StatusSnapshot:
    """The unit of publication: status plus the loading flag."""
    status: SessionStatus = field(default_factory=SessionStatus)
    is_loading: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.kind.value,
            "message": self.status.message,
            "is_loading": self.is_loading,
        }


StatusCallback = Callable[[StatusSnapshot], None]


# =============================================================================
# Publisher (manager-owned)
# =============================================================================

class StatusPublisher:
    """
    Mutable holder of the current StatusSnapshot.

    Only the lifecycle manager calls publish(). Publishing an unchanged
    snapshot is a no-op so observers see transitions, not repeats.
    """

    def __init__(self, initial: StatusSnapshot | None = None) -> None:
        self._snapshot = initial or StatusSnapshot()
        self._subscribers: list[StatusCallback] = []
        self._owner_thread: int | None = None
        self.view = StatusView(self)

    def bind_owner_thread(self) -> None:
        """Pin publication to the calling thread (the event loop thread)."""
        self._owner_thread = threading.get_ident()

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    def assert_owner_thread(self) -> None:
        """Raise RuntimeError when called off the bound thread."""
        if (
            self._owner_thread is not None
            and threading.get_ident() != self._owner_thread
        ):
            raise RuntimeError("status published off the owning event loop thread")

    def publish(self, snapshot: StatusSnapshot) -> bool:
        """
        Replace the current snapshot and notify subscribers.

        Returns True if the snapshot changed.

        Raises:
            RuntimeError: called off the owning thread.
        """
        self.assert_owner_thread()

        if snapshot == self._snapshot:
            return False

        self._snapshot = snapshot

        for callback in tuple(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # One broken observer must not starve the others
                log_event({
                    "event_type": "STATUS_SUBSCRIBER_ERROR",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
        return True

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe


# =============================================================================
# Read-only view (handed to the presentation layer)
# =============================================================================

class StatusView:
    """
    Read-only facade over a StatusPublisher.

    Exposes the current snapshot and change subscriptions; never mutation.
    """

    def __init__(self, publisher: StatusPublisher) -> None:
        self._publisher = publisher

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._publisher.snapshot

    @property
    def status(self) -> SessionStatus:
        return self._publisher.snapshot.status

    @property
    def is_loading(self) -> bool:
        return self._publisher.snapshot.is_loading

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """
        Register a change callback.

        Returns an idempotent unsubscribe function.
        """
        return self._publisher.subscribe(callback)
