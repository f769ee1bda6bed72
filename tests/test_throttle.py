import pytest

from errors import Throttled
from throttle import ThrottleGate


def test_second_call_within_window_is_throttled():
    gate = ThrottleGate(10)
    gate.check_and_arm(1, now=100.0)

    with pytest.raises(Throttled) as exc_info:
        gate.check_and_arm(1, now=103.0)
    assert exc_info.value.seconds_remaining == pytest.approx(7.0)
    assert exc_info.value.seconds_remaining > 0


def test_allowed_again_after_window():
    gate = ThrottleGate(10)
    gate.check_and_arm(1, now=100.0)

    gate.check_and_arm(1, now=110.0)
    with pytest.raises(Throttled):
        gate.check_and_arm(1, now=115.0)


def test_rejected_call_does_not_extend_cooldown():
    gate = ThrottleGate(5)
    gate.check_and_arm(1, now=0.0)
    with pytest.raises(Throttled):
        gate.check_and_arm(1, now=4.0)

    gate.check_and_arm(1, now=5.0)


def test_users_are_independent():
    gate = ThrottleGate(10)
    gate.check_and_arm(1, now=0.0)

    gate.check_and_arm(2, now=1.0)
    with pytest.raises(Throttled) as exc_info:
        gate.check_and_arm(1, now=1.0)
    assert exc_info.value.seconds_remaining == pytest.approx(9.0)


def test_expired_entries_are_pruned():
    gate = ThrottleGate(10)
    for user_id in range(100):
        gate.check_and_arm(user_id, now=0.0)
    assert len(gate) == 100

    gate.check_and_arm(500, now=10.0)

    assert len(gate) == 1
