"""
bayesoc.stats.common
====================

Generic, scheme-agnostic stages of the simulation pipeline.
"""

from bayesoc.stats.common.decision import IntervalWidthRule, TailProbabilityRule
from bayesoc.stats.common.distributions import (
    BetaMixturePrior,
    BetaPrior,
    NormalPrior,
    PointMass,
    PowerPrior,
    TruncatedNormalPrior,
)
from bayesoc.stats.common.predictive import BinomialLikelihood, NormalLikelihood
from bayesoc.stats.common.posterior import update

__all__ = [
    "BetaMixturePrior",
    "BetaPrior",
    "BinomialLikelihood",
    "IntervalWidthRule",
    "NormalLikelihood",
    "NormalPrior",
    "PointMass",
    "PowerPrior",
    "TailProbabilityRule",
    "TruncatedNormalPrior",
    "update",
]
