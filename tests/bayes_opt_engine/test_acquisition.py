import numpy as np
import pytest

from tunesearch.bayes_opt_engine import DecaySchedule, exp_decay, expected_improvement
from tunesearch.utils.exceptions import ConfigurationError


class TestDecaySchedule:

    def test_first_iteration_uses_start_value(self):
        assert DecaySchedule(start_val=0.1, limit_val=0.0, slope=0.25)(1) == pytest.approx(0.1)

    def test_trade_off_is_non_increasing_towards_limit(self):
        schedule = DecaySchedule(start_val=0.5, limit_val=0.05, slope=0.5)
        values = [schedule(i) for i in range(1, 30)]
        assert all(a >= b for a, b in zip(values, values[1:]))
        assert values[-1] == pytest.approx(0.05, abs=1e-5)

    def test_zero_slope_is_constant(self):
        schedule = DecaySchedule(start_val=0.2, limit_val=0.0, slope=0.0)
        assert schedule(1) == schedule(50) == pytest.approx(0.2)

    def test_exp_decay_formula(self):
        assert exp_decay(3, 1.0, 0.0, 1.0) == pytest.approx(np.exp(-2.0))

    def test_negative_slope_rejected(self):
        with pytest.raises(ConfigurationError, match="slope"):
            DecaySchedule(slope=-0.1)

    def test_from_dict_fills_defaults(self):
        schedule = DecaySchedule.from_dict({'slope': 1.0})
        assert schedule == DecaySchedule(start_val=0.1, limit_val=0.0, slope=1.0)


class TestExpectedImprovement:

    def test_lower_predicted_mean_is_preferred_when_minimizing(self):
        ei = expected_improvement(np.array([1.0, 2.0]), np.array([0.5, 0.5]), best=1.5)
        assert ei[0] > ei[1]

    def test_higher_predicted_mean_is_preferred_when_maximizing(self):
        ei = expected_improvement(np.array([1.0, 2.0]), np.array([0.5, 0.5]), best=1.5, direction='maximize')
        assert ei[1] > ei[0]

    def test_zero_uncertainty_gives_plain_improvement(self):
        ei = expected_improvement(np.array([1.0, 3.0]), np.array([0.0, 0.0]), best=2.0)
        assert np.allclose(ei, [1.0, 0.0])

    def test_trade_off_lowers_expected_improvement(self):
        mean, std = np.array([1.0]), np.array([0.3])
        assert expected_improvement(mean, std, 1.2, trade_off=0.5) < expected_improvement(mean, std, 1.2, trade_off=0.0)

    def test_larger_trade_off_favours_uncertain_points(self):
        # Certain small gain vs. uncertain point at the incumbent
        mean, std = np.array([0.9, 1.0]), np.array([0.01, 1.0])
        greedy = expected_improvement(mean, std, 1.0, trade_off=0.0)
        explore = expected_improvement(mean, std, 1.0, trade_off=0.5)
        assert explore[1] > explore[0]
        assert (greedy >= 0).all()

    def test_invalid_direction(self):
        with pytest.raises(ValueError, match="direction"):
            expected_improvement(np.array([1.0]), np.array([1.0]), 0.0, direction='sideways')
