"""
bayesoc.stats.schemes.binomial.experiments
==========================================

Experiment templates for a single-arm binary endpoint.

- `BinomialAssuranceTemplate`: fixed-sample design; the estimate is the
  assurance (sampling prior over the truth), the type I error (truth at the
  null) or the power at `null + delta`, depending on the sampling prior and
  the grid.
- `BinomialMonitoringTemplate`: the same pipeline with interim looks and
  efficacy / futility stopping.

Examples
--------
>>> from bayesoc.stats.common import BetaPrior, TailProbabilityRule
>>> from bayesoc.runtime.experiment_template import DesignPoint
>>> t = BinomialAssuranceTemplate(
...     "toy", sampling_prior=BetaPrior(2, 8), fitting_prior=BetaPrior(1, 1),
...     rule=TailProbabilityRule(null=0.5))
>>> t.truth_for(DesignPoint(n=10, delta=-0.25))
PointMass(value=0.25)
>>> look_sizes(40, (0.5, 1.0))
(20, 40)
"""

from __future__ import annotations
import logging
import math
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from bayesoc.core.components import DecisionRule, Prior
from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import InvalidParameterError
from bayesoc.runtime.experiment_template import (
    DesignPoint,
    ExperimentTemplate,
    FixedDesignTemplate,
    PointResult,
    check_rule_nulls,
)
from bayesoc.stats.common.distributions import PointMass, sample_prior
from bayesoc.stats.common.mcmc import Sampler
from bayesoc.stats.common.posterior import closed_form, with_discount
from bayesoc.stats.common.predictive import BinomialLikelihood, simulate_increments
from bayesoc.stats.schemes.binomial.monitoring import (
    EFFICACY,
    MonitoringRule,
    MonitoringState,
    run_monitoring,
)

logger = logging.getLogger(__name__)


def binomial_truth(sampling_prior: Prior, point: DesignPoint, null: Optional[float]) -> Prior:
    """
    Sampling prior in force at `point` for a response rate.

    A design point with `delta` pins the truth at ``null + delta``; otherwise
    the sampling prior itself is used. Either way the truth must live in
    [0, 1].
    """
    if point.delta is not None:
        if null is None:
            raise InvalidParameterError("delta needs a null value to shift from")
        prior: Prior = PointMass(null + point.delta)
    else:
        prior = sampling_prior
    if isinstance(prior, PointMass):
        if not (0.0 <= prior.value <= 1.0):
            raise InvalidParameterError(
                f"{point.key}: response rate {prior.value:g} outside [0, 1]"
            )
    else:
        lo, hi = prior.support
        if lo < 0.0 or hi > 1.0:
            raise InvalidParameterError(
                f"{prior.family} sampling prior with support [{lo}, {hi}] "
                "cannot generate response rates"
            )
    return prior


def look_sizes(n: int, fractions: Sequence[float]) -> Tuple[int, ...]:
    """Cumulative sample sizes of the looks of a trial with maximum size `n`."""
    if not fractions:
        raise InvalidParameterError("at least one look is required")
    fracs = [float(f) for f in fractions]
    if any(not (0.0 < f <= 1.0) for f in fracs) or fracs[-1] != 1.0:
        raise InvalidParameterError(
            f"look fractions must be in (0, 1] and end at 1, got {tuple(fracs)}"
        )
    sizes = tuple(max(1, int(math.ceil(f * n - 1e-9))) for f in fracs)
    if any(b <= a for a, b in zip(sizes, sizes[1:])):
        raise InvalidParameterError(
            f"n={n} gives non-increasing look sizes {sizes} for fractions {tuple(fracs)}"
        )
    return sizes


class BinomialAssuranceTemplate(FixedDesignTemplate):
    """
    Fixed-sample study of a response rate.

    Args:
        experiment_id: Identifier used for the run id and ledger entries
        sampling_prior: Distribution of the true response rate
        fitting_prior: Analysis prior (Beta, power prior, Beta mixture, or any
            prior together with a `sampler`)
        rule: Decision rule applied to each posterior
        null: Reference rate shifted by a design point's `delta`; defaults to
            the rule's own `null`
        sampler: Iterative sampler for non-conjugate fitting priors
    """

    def __init__(
        self,
        experiment_id: str,
        *,
        sampling_prior: Prior,
        fitting_prior: Prior,
        rule: DecisionRule,
        null: Optional[float] = None,
        sampler: Optional[Sampler] = None,
    ):
        super().__init__(
            experiment_id,
            sampling_prior=sampling_prior,
            fitting_prior=fitting_prior,
            likelihood=BinomialLikelihood(),
            rule=rule,
            sampler=sampler,
        )
        self.null = null if null is not None else getattr(rule, "null", None)

    def truth_for(self, point: DesignPoint) -> Prior:
        return binomial_truth(self.sampling_prior, point, self.null)


class BinomialMonitoringTemplate(ExperimentTemplate):
    """
    Single-arm trial with interim analyses.

    Each design point's `n` is the maximum sample size; looks happen at
    ``look_fractions`` of it. The estimate is the probability of stopping for
    efficacy; the row also carries the futility and completion probabilities,
    the expected sample size and the stopping probability at every look.
    """

    def __init__(
        self,
        experiment_id: str,
        *,
        sampling_prior: Prior,
        fitting_prior: Prior,
        rule: MonitoringRule,
        look_fractions: Sequence[float] = (0.5, 1.0),
        sampler: Optional[Sampler] = None,
    ):
        super().__init__(experiment_id)
        self.sampling_prior = sampling_prior
        self.fitting_prior = fitting_prior
        self.likelihood = BinomialLikelihood()
        self.rule = rule
        self.look_fractions = tuple(float(f) for f in look_fractions)
        self.sampler = sampler

    def configure_components(self) -> Dict[str, Any]:
        return {
            "sampling_prior": self.sampling_prior,
            "fitting_prior": self.fitting_prior,
            "likelihood": self.likelihood,
            "rule": self.rule,
        }

    def design_payload(self) -> Dict[str, Any]:
        payload = super().design_payload()
        payload["look_fractions"] = list(self.look_fractions)
        return payload

    def validate_point(self, point: DesignPoint) -> None:
        fitting = with_discount(self.fitting_prior, point.a0)
        if closed_form(fitting, self.likelihood) is None and self.sampler is None:
            raise InvalidParameterError(
                f"binomial/{fitting.family} has no closed form; inject a sampler"
            )
        check_rule_nulls(self.likelihood, self.rule)
        look_sizes(point.n, self.look_fractions)
        binomial_truth(self.sampling_prior, point, self.rule.null)

    def simulate_point(
        self,
        point: DesignPoint,
        rng: np.random.Generator,
        config: SimulationConfig,
    ) -> PointResult:
        looks = look_sizes(point.n, self.look_fractions)
        truth = binomial_truth(self.sampling_prior, point, self.rule.null)
        theta = sample_prior(truth, config.replicates, rng)
        y_cum = simulate_increments(self.likelihood, theta, looks, rng)
        outcome = run_monitoring(
            theta,
            y_cum,
            looks,
            fitting_prior=self.fitting_prior,
            likelihood=self.likelihood,
            rule=self.rule,
            a0=point.a0,
            sampler=self.sampler,
            config=config,
            rng=rng,
        )
        kept = ~outcome.excluded
        efficacy = outcome.states[kept] == EFFICACY
        metrics: Dict[str, Any] = {
            "p_efficacy": outcome.probability(MonitoringState.STOPPED_FOR_EFFICACY),
            "p_futility": outcome.probability(MonitoringState.STOPPED_FOR_FUTILITY),
            "p_completed": outcome.probability(MonitoringState.COMPLETED),
            "expected_n": outcome.expected_sample_size(),
        }
        for k, p in enumerate(outcome.stop_by_look(), start=1):
            metrics[f"p_stop_look{k}"] = p
        logger.debug("%s: looks at %s", point.key, looks)
        return PointResult.from_outcomes(
            efficacy.astype(float),
            binary=True,
            excluded=int(outcome.excluded.sum()),
            **metrics,
        )
