"""Tests for posterior decision rules."""

import numpy as np
import pytest
from scipy import stats

from bayesoc.core.errors import InvalidParameterError
from bayesoc.stats.common.decision import (
    IntervalWidthRule,
    TailProbabilityRule,
    credible_interval,
    tail_probability,
)
from bayesoc.stats.common.posterior import BetaPosterior, DrawsPosterior, NormalPosterior


@pytest.fixture
def beta_post():
    return BetaPosterior(np.array([3.0, 12.0, 30.0]), np.array([30.0, 12.0, 3.0]))


class TestTailProbabilityRule:
    def test_default_threshold(self):
        assert TailProbabilityRule(null=0.5).cutoff == pytest.approx(0.975)
        assert TailProbabilityRule(null=0.5, alpha=0.1).cutoff == pytest.approx(0.95)
        assert TailProbabilityRule(null=0.5, threshold=0.9).cutoff == pytest.approx(0.9)

    def test_statistic_matches_beta_cdf(self, beta_post):
        rule = TailProbabilityRule(null=0.5)
        expected = stats.beta.cdf(0.5, [3, 12, 30], [30, 12, 3])
        np.testing.assert_allclose(rule.statistic(beta_post), expected)
        assert rule.evaluate(beta_post).tolist() == [True, False, False]

    def test_upper_tail(self, beta_post):
        rule = TailProbabilityRule(null=0.5, tail="upper")
        assert rule.evaluate(beta_post).tolist() == [False, False, True]

    def test_idempotent(self, beta_post):
        rule = TailProbabilityRule(null=0.4)
        np.testing.assert_array_equal(rule.evaluate(beta_post), rule.evaluate(beta_post))

    def test_draws_use_empirical_fraction(self):
        post = DrawsPosterior(draws=(np.array([0.1, 0.2, 0.3, 0.6]),), support=(0.0, 1.0))
        assert tail_probability(post, 0.5)[0] == pytest.approx(0.75)

    @pytest.mark.parametrize(
        "kwargs",
        [{"alpha": 0.0}, {"alpha": 1.0}, {"tail": "both"}, {"threshold": 1.5}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidParameterError):
            TailProbabilityRule(null=0.5, **kwargs)

    def test_payload(self):
        payload = TailProbabilityRule(null=0.3).to_payload()
        assert payload["rule"] == "tail_probability"
        assert payload["threshold"] == pytest.approx(0.975)
        assert (payload["null"], payload["tail"]) == (0.3, "lower")


class TestIntervalWidthRule:
    def test_width_matches_quantiles(self, beta_post):
        rule = IntervalWidthRule(alpha=0.05)
        a, b = [3, 12, 30], [30, 12, 3]
        expected = stats.beta.ppf(0.975, a, b) - stats.beta.ppf(0.025, a, b)
        np.testing.assert_allclose(rule.evaluate(beta_post), expected)
        assert rule.binary is False

    def test_acceptance(self):
        post = NormalPosterior(np.array([0.0, 0.0]), np.array([0.01, 1.0]))
        rule = IntervalWidthRule(max_width=0.5)
        assert rule.binary is True
        assert rule.evaluate(post).tolist() == [True, False]

    def test_credible_interval_is_central(self):
        post = NormalPosterior(np.array([1.0]), np.array([2.0]))
        lo, hi = credible_interval(post, 0.05)
        assert lo[0] == pytest.approx(1.0 - 1.959964 * 2.0, rel=1e-5)
        assert hi[0] == pytest.approx(1.0 + 1.959964 * 2.0, rel=1e-5)

    def test_rejects_non_positive_width(self):
        with pytest.raises(InvalidParameterError):
            IntervalWidthRule(max_width=0.0)
