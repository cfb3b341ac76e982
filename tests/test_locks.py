import threading

from src.handoff.services.lifecycle.locks import DeliveryLocks


def test_entries_are_released_after_use():
    locks = DeliveryLocks()

    for index in range(1000):
        with locks.hold(f"d{index}"):
            assert len(locks) == 1

    assert len(locks) == 0


def test_entry_survives_while_another_thread_waits():
    locks = DeliveryLocks()
    entered = threading.Event()
    order = []

    def second():
        entered.wait(timeout=5)
        with locks.hold("d1"):
            order.append("second")

    thread = threading.Thread(target=second)
    thread.start()
    with locks.hold("d1"):
        entered.set()
        threading.Event().wait(0.05)
        order.append("first")
    thread.join(timeout=5)

    assert order == ["first", "second"]
    assert len(locks) == 0


def test_exception_inside_hold_releases_entry():
    locks = DeliveryLocks()

    try:
        with locks.hold("d1"):
            raise RuntimeError("write failed")
    except RuntimeError:
        pass

    assert len(locks) == 0
    with locks.hold("d1"):
        pass
