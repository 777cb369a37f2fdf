# pylint: disable=missing-module-docstring,missing-function-docstring
import threading
from typing import Any

import pytest

from lifecycle.enums.status import StatusKind
from lifecycle.status import SessionStatus, StatusPublisher, StatusSnapshot


RUNNING = StatusSnapshot(status=SessionStatus(kind=StatusKind.RUNNING))
LOADING = StatusSnapshot(status=SessionStatus(kind=StatusKind.LOADING), is_loading=True)


def test_initial_snapshot_is_idle() -> None:
    view = StatusPublisher().view

    assert view.status == SessionStatus(kind=StatusKind.IDLE, message="")
    assert view.is_loading is False


def test_publish_notifies_in_order_and_skips_repeats() -> None:
    publisher = StatusPublisher()
    seen: list[StatusSnapshot] = []
    publisher.view.subscribe(seen.append)

    assert publisher.publish(LOADING) is True
    assert publisher.publish(LOADING) is False
    assert publisher.publish(RUNNING) is True

    assert seen == [LOADING, RUNNING]
    assert publisher.view.snapshot == RUNNING


def test_unsubscribe_is_idempotent() -> None:
    publisher = StatusPublisher()
    seen: list[StatusSnapshot] = []
    unsubscribe = publisher.view.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    publisher.publish(RUNNING)

    assert not seen


def test_failing_subscriber_does_not_starve_others(
    captured_logs: list[dict[str, Any]],
) -> None:
    publisher = StatusPublisher()
    seen: list[StatusSnapshot] = []

    def broken(_snapshot: StatusSnapshot) -> None:
        raise ValueError("render failed")

    publisher.subscribe(broken)
    publisher.subscribe(seen.append)
    publisher.publish(RUNNING)

    assert seen == [RUNNING]
    assert any(e["event_type"] == "STATUS_SUBSCRIBER_ERROR" for e in captured_logs)


def test_publish_off_owner_thread_raises() -> None:
    publisher = StatusPublisher()
    publisher.bind_owner_thread()
    errors: list[BaseException] = []

    def worker() -> None:
        try:
            publisher.publish(RUNNING)
        except RuntimeError as exc:
            errors.append(exc)

    t = threading.Thread(target=worker)
    t.start()
    t.join()

    assert len(errors) == 1
    assert publisher.snapshot == StatusSnapshot()


def test_snapshot_serialises_for_the_wire() -> None:
    snapshot = StatusSnapshot(
        status=SessionStatus(kind=StatusKind.FAILED, message="exceeded retry budget"),
    )

    assert snapshot.to_dict() == {
        "status": "FAILED",
        "message": "exceeded retry budget",
        "is_loading": False,
    }


def test_view_has_no_publish() -> None:
    view = StatusPublisher().view

    with pytest.raises(AttributeError):
        view.publish(RUNNING)  # type: ignore[attr-defined]
