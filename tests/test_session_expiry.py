from timekeeping.services.session_expiry import SessionExpiredNotifier


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_burst_of_notifications_is_debounced():
    clock = FakeClock()
    notifier = SessionExpiredNotifier(debounce_seconds=2.0, clock=clock)
    calls = []
    notifier.subscribe(lambda: calls.append(clock.now))

    assert notifier.notify() is True
    clock.now += 0.5
    assert notifier.notify() is False
    clock.now += 1.0
    assert notifier.notify() is False
    clock.now += 1.0
    assert notifier.notify() is True

    assert calls == [100.0, 102.5]


def test_instances_do_not_share_debounce_state():
    clock = FakeClock()
    first = SessionExpiredNotifier(clock=clock)
    second = SessionExpiredNotifier(clock=clock)

    assert first.notify() is True
    assert second.notify() is True


def test_failing_listener_does_not_block_others():
    notifier = SessionExpiredNotifier(clock=FakeClock())
    calls = []

    def broken():
        raise RuntimeError("listener crashed")

    notifier.subscribe(broken)
    notifier.subscribe(lambda: calls.append("logout"))

    assert notifier.notify() is True
    assert calls == ["logout"]


def test_unsubscribed_listener_is_not_called():
    notifier = SessionExpiredNotifier(clock=FakeClock())
    calls = []
    listener = lambda: calls.append(True)  # noqa: E731
    notifier.subscribe(listener)
    notifier.unsubscribe(listener)

    notifier.notify()

    assert calls == []
