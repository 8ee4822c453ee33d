"""
bayesoc.stats.schemes.normal.experiments
========================================

Experiment template for a continuous endpoint with known standard deviation.

The data summary of each replicate is the sample mean; with a `NormalPrior`
fitting prior the posterior is available in closed form, any other prior
needs an injected sampler.

Examples
--------
>>> from bayesoc.stats.common import NormalPrior, TailProbabilityRule
>>> from bayesoc.runtime.experiment_template import DesignPoint
>>> t = NormalAssuranceTemplate(
...     "bp", sigma=2.0, sampling_prior=NormalPrior(-1.0, 0.5),
...     fitting_prior=NormalPrior(0.0, 10.0), rule=TailProbabilityRule(null=0.0))
>>> t.truth_for(DesignPoint(n=30, delta=-0.5))
PointMass(value=-0.5)
"""

from __future__ import annotations
from typing import Optional

from bayesoc.core.components import DecisionRule, Prior
from bayesoc.core.errors import InvalidParameterError
from bayesoc.runtime.experiment_template import DesignPoint, FixedDesignTemplate
from bayesoc.stats.common.distributions import PointMass
from bayesoc.stats.common.mcmc import Sampler
from bayesoc.stats.common.predictive import NormalLikelihood


class NormalAssuranceTemplate(FixedDesignTemplate):
    """
    Fixed-sample study of a mean with known `sigma`.

    A design point with `delta` fixes the true mean at ``null + delta``,
    where `null` defaults to the decision rule's null value.
    """

    def __init__(
        self,
        experiment_id: str,
        *,
        sigma: float,
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
            likelihood=NormalLikelihood(sigma),
            rule=rule,
            sampler=sampler,
        )
        self.null = null if null is not None else getattr(rule, "null", None)

    def truth_for(self, point: DesignPoint) -> Prior:
        if point.delta is None:
            return self.sampling_prior
        if self.null is None:
            raise InvalidParameterError("delta needs a null value to shift from")
        return PointMass(self.null + point.delta)
