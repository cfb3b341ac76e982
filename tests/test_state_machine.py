import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.handoff.errors import (
    ConfirmationFailed,
    DeliveryNotFound,
    InvalidTransition,
    PersistenceFailed,
)
from src.handoff.models.domain import Coordinate, Delivery, DeliveryStatus, Stop, StopKind
from src.handoff.persistence.repository import InMemoryDeliveryRepository
from src.handoff.services.lifecycle.hooks import NotificationHook, TransitionHooks
from src.handoff.services.lifecycle.locks import DeliveryLocks
from src.handoff.services.lifecycle.state_machine import DeliveryStateMachine, can_transition


def _delivery(delivery_id: str = "d1", status: DeliveryStatus = DeliveryStatus.ASSIGNED) -> Delivery:
    return Delivery(
        id=delivery_id,
        status=status,
        pickup=Stop(delivery_id, StopKind.PICKUP, Coordinate(14.60, 120.98), "Donor St"),
        dropoff=Stop(delivery_id, StopKind.DROPOFF, Coordinate(14.65, 121.02), "Recipient Ave"),
        assigned_operator_id="op-1",
        donor_id="donor-1",
        recipient_id="recipient-1",
    )


class SteppingClock:
    def __init__(self):
        self.current = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(minutes=5)
        return self.current


def _machine(repository, **kwargs) -> DeliveryStateMachine:
    return DeliveryStateMachine(repository, clock=SteppingClock(), **kwargs)


def test_arrive_from_assigned_is_rejected_and_nothing_changes():
    repository = InMemoryDeliveryRepository([_delivery()])
    machine = _machine(repository)

    with pytest.raises(InvalidTransition) as excinfo:
        machine.arrive("d1")

    assert excinfo.value.from_status is DeliveryStatus.ASSIGNED
    assert excinfo.value.attempted is DeliveryStatus.ARRIVED
    assert repository.get_delivery("d1").status is DeliveryStatus.ASSIGNED
    assert repository.get_delivery("d1").arrived_at is None


def test_forward_path_sets_monotonic_timestamps():
    repository = InMemoryDeliveryRepository([_delivery()])
    machine = _machine(repository)

    started = machine.start("d1")
    arrived = machine.arrive(started)
    completed = machine.complete(arrived, notes="Left with guard", rating=5, feedback="Smooth")

    assert started.status is DeliveryStatus.IN_TRANSIT
    assert arrived.status is DeliveryStatus.ARRIVED
    assert completed.status is DeliveryStatus.COMPLETED
    assert completed.started_at < completed.arrived_at < completed.completed_at
    assert completed.notes == "Left with guard"
    assert completed.rating == 5
    assert repository.get_delivery("d1") == completed


def test_caller_copy_is_untouched_by_transition():
    original = _delivery()
    repository = InMemoryDeliveryRepository([original])

    _machine(repository).start(original)

    assert original.status is DeliveryStatus.ASSIGNED
    assert original.started_at is None


@pytest.mark.parametrize(
    "status",
    [DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT, DeliveryStatus.ARRIVED],
)
def test_cancel_allowed_from_any_non_terminal_state(status):
    repository = InMemoryDeliveryRepository([_delivery(status=status)])

    cancelled = _machine(repository).cancel("d1", reason="Recipient unreachable")

    assert cancelled.status is DeliveryStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "Recipient unreachable"


@pytest.mark.parametrize("status", [DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED])
def test_terminal_states_admit_no_transition(status):
    repository = InMemoryDeliveryRepository([_delivery(status=status)])
    machine = _machine(repository)

    for attempt in (machine.start, machine.arrive, machine.complete, machine.cancel):
        with pytest.raises(InvalidTransition):
            attempt("d1")
    assert repository.get_delivery("d1").status is status


def test_transition_table():
    assert can_transition(DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT)
    assert not can_transition(DeliveryStatus.IN_TRANSIT, DeliveryStatus.ASSIGNED)
    assert not can_transition(DeliveryStatus.ASSIGNED, DeliveryStatus.COMPLETED)
    assert not can_transition(DeliveryStatus.ARRIVED, DeliveryStatus.IN_TRANSIT)


def test_unknown_delivery_raises_not_found():
    with pytest.raises(DeliveryNotFound):
        _machine(InMemoryDeliveryRepository()).start("missing")


def test_out_of_range_rating_is_rejected_before_writing():
    repository = InMemoryDeliveryRepository([_delivery(status=DeliveryStatus.ARRIVED)])

    with pytest.raises(ValueError):
        _machine(repository).complete("d1", rating=6)
    assert repository.get_delivery("d1").status is DeliveryStatus.ARRIVED


def test_complete_twice_opens_one_confirmation():
    repository = InMemoryDeliveryRepository([_delivery(status=DeliveryStatus.ARRIVED)])
    machine = _machine(repository)

    machine.complete("d1")
    with pytest.raises(InvalidTransition) as excinfo:
        machine.complete("d1")

    assert excinfo.value.from_status is DeliveryStatus.COMPLETED
    confirmations = repository.confirmations()
    assert len(confirmations) == 1
    assert confirmations[0].delivery_id == "d1"
    assert confirmations[0].initiated_by_operator_id == "op-1"


def test_concurrent_completes_succeed_exactly_once():
    repository = InMemoryDeliveryRepository([_delivery(status=DeliveryStatus.ARRIVED)])
    machine = _machine(repository)
    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        try:
            machine.complete("d1")
            result = "ok"
        except InvalidTransition:
            result = "rejected"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert outcomes.count("ok") == 1
    assert outcomes.count("rejected") == 7
    assert len(repository.confirmations()) == 1


def test_lock_registry_is_empty_after_transitions():
    repository = InMemoryDeliveryRepository([_delivery(f"d{index}") for index in range(20)])
    locks = DeliveryLocks()
    machine = _machine(repository, locks=locks)

    for index in range(20):
        machine.start(f"d{index}")
        machine.arrive(f"d{index}")
        machine.complete(f"d{index}")

    assert len(repository.confirmations()) == 20
    assert len(locks) == 0


class FailingWrites(InMemoryDeliveryRepository):
    def update_delivery(self, delivery_id, fields, *, expected_status=None):
        raise ConnectionError("database unreachable")


def test_failed_write_reports_persistence_failure_and_keeps_state():
    repository = FailingWrites([_delivery(status=DeliveryStatus.IN_TRANSIT)])
    events = []
    machine = _machine(repository, hooks=TransitionHooks([events.append]))

    with pytest.raises(PersistenceFailed):
        machine.arrive("d1")

    assert repository.get_delivery("d1").status is DeliveryStatus.IN_TRANSIT
    assert events == []


class RacingWriter(InMemoryDeliveryRepository):
    """Another client cancels the delivery between our read and our write."""

    def update_delivery(self, delivery_id, fields, *, expected_status=None):
        if fields.get("status") is not DeliveryStatus.CANCELLED:
            super().update_delivery(delivery_id, {"status": DeliveryStatus.CANCELLED})
        return super().update_delivery(delivery_id, fields, expected_status=expected_status)


def test_lost_conditional_write_reports_current_status():
    repository = RacingWriter([_delivery(status=DeliveryStatus.IN_TRANSIT)])

    with pytest.raises(InvalidTransition) as excinfo:
        _machine(repository).arrive("d1")

    assert excinfo.value.from_status is DeliveryStatus.CANCELLED
    assert repository.get_delivery("d1").status is DeliveryStatus.CANCELLED


def test_failing_hook_does_not_block_others_or_roll_back(caplog):
    repository = InMemoryDeliveryRepository([_delivery()])
    seen = []

    def broken_hook(event):
        raise RuntimeError("push service down")

    hooks = TransitionHooks([broken_hook, lambda event: seen.append(event.status)])
    machine = _machine(repository, hooks=hooks)

    with caplog.at_level(logging.ERROR):
        started = machine.start("d1")

    assert started.status is DeliveryStatus.IN_TRANSIT
    assert repository.get_delivery("d1").status is DeliveryStatus.IN_TRANSIT
    assert seen == [DeliveryStatus.IN_TRANSIT]
    assert any("broken_hook" in record.getMessage() for record in caplog.records)


def test_hooks_run_only_after_successful_transition():
    repository = InMemoryDeliveryRepository([_delivery()])
    events = []
    machine = _machine(repository, hooks=TransitionHooks([events.append]))

    with pytest.raises(InvalidTransition):
        machine.complete("d1")
    machine.start("d1")

    assert len(events) == 1
    assert events[0].previous_status is DeliveryStatus.ASSIGNED
    assert events[0].delivery.status is DeliveryStatus.IN_TRANSIT


def test_notification_hook_asks_donor_and_recipient_to_confirm():
    repository = InMemoryDeliveryRepository([_delivery(status=DeliveryStatus.ARRIVED)])
    machine = _machine(repository, hooks=TransitionHooks([NotificationHook(repository)]))

    machine.complete("d1")

    recipients = sorted(note["user_id"] for note in repository.notifications)
    assert recipients == ["donor-1", "recipient-1"]
    assert all(note["type"] == "delivery_completed" for note in repository.notifications)
    assert all(note["data"]["action_required"] == "confirm_delivery" for note in repository.notifications)


def test_notification_hook_reports_cancellation():
    repository = InMemoryDeliveryRepository([_delivery()])
    machine = _machine(repository, hooks=TransitionHooks([NotificationHook(repository)]))

    machine.cancel("d1", reason="Donor withdrew")

    assert {note["type"] for note in repository.notifications} == {"delivery_cancelled"}
    assert "Donor withdrew" in repository.notifications[0]["message"]


class FlakyConfirmations(InMemoryDeliveryRepository):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail = True

    def create_confirmation_request(self, delivery_id, operator_id):
        if self.fail:
            raise ConnectionError("insert timed out")
        return super().create_confirmation_request(delivery_id, operator_id)


def test_confirmation_failure_keeps_completion_and_can_be_resumed():
    repository = FlakyConfirmations([_delivery(status=DeliveryStatus.ARRIVED)])
    machine = _machine(repository)

    with pytest.raises(ConfirmationFailed) as excinfo:
        machine.complete("d1")

    assert excinfo.value.delivery.status is DeliveryStatus.COMPLETED
    assert repository.get_delivery("d1").status is DeliveryStatus.COMPLETED
    assert repository.confirmations() == []

    repository.fail = False
    request = machine.resume_confirmation("d1")
    again = machine.resume_confirmation("d1")

    assert request.delivery_id == "d1"
    assert again == request
    assert len(repository.confirmations()) == 1


def test_resume_confirmation_requires_completed_delivery():
    repository = InMemoryDeliveryRepository([_delivery(status=DeliveryStatus.ARRIVED)])

    with pytest.raises(InvalidTransition):
        _machine(repository).resume_confirmation("d1")
