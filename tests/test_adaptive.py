import pytest

from dual_n_back.adaptive import (
    AdaptivePolicy,
    Direction,
    decide,
    propose_next_level,
)


class TestProposeNextLevel:
    @pytest.mark.parametrize("accuracy", [0.0, 0.3, 0.59, 0.6, 0.79, 0.8, 1.0])
    def test_disabled_is_identity(self, accuracy):
        for n in (1, 2, 5, 8):
            assert propose_next_level(n, accuracy, False) == n

    def test_never_below_one(self):
        assert propose_next_level(1, 0.0, True) >= 1
        assert propose_next_level(1, 0.0, True) == 1

    def test_up_hold_down(self):
        assert propose_next_level(2, 0.8, True) == 3
        assert propose_next_level(2, 0.95, True) == 3
        assert propose_next_level(2, 0.7, True) == 2
        assert propose_next_level(2, 0.6, True) == 2
        assert propose_next_level(2, 0.59, True) == 1

    def test_capped_at_max_level(self):
        assert propose_next_level(8, 1.0, True) == 8

    def test_custom_policy(self):
        policy = AdaptivePolicy(upper=0.9, lower=0.5, min_level=2, max_level=4)
        assert propose_next_level(3, 0.85, True, policy) == 3
        assert propose_next_level(3, 0.9, True, policy) == 4
        assert propose_next_level(4, 0.99, True, policy) == 4
        assert propose_next_level(2, 0.1, True, policy) == 2

    def test_invalid_policy(self):
        with pytest.raises(AssertionError):
            AdaptivePolicy(upper=0.5, lower=0.6)
        with pytest.raises(AssertionError):
            AdaptivePolicy(min_level=0)


class TestDecide:
    def test_disabled_returns_none(self):
        assert decide(3, 0.9, False) is None

    def test_messages(self):
        up = decide(2, 0.85, True)
        assert up.direction is Direction.UP and up.next == 3
        assert "increased to 3" in up.message

        down = decide(3, 0.2, True)
        assert down.direction is Direction.DOWN and down.next == 2
        assert "decreased to 2" in down.message

        at_max = decide(8, 0.9, True)
        assert at_max.direction is Direction.HOLD and at_max.next == 8
        assert "max N-Level" in at_max.message

        floor = decide(1, 0.1, True)
        assert floor.next == 1
        assert "remains at 1" in floor.message

        hold = decide(4, 0.7, True)
        assert hold.previous == hold.next == 4
        assert "maintained" in hold.message
