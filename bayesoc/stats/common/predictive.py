"""
bayesoc.stats.common.predictive
===============================

Predictive data generators.

Given the "true" parameters of R replicates and a trial sample size `n`,
a likelihood draws one synthetic dataset summary per replicate in a single
vectorised call, so replicates never share consumable random state.

- `BinomialLikelihood`: event counts y ~ Binomial(n, theta)
- `NormalLikelihood(sigma)`: sample means ybar ~ Normal(mu, sigma / sqrt(n))
  for a continuous endpoint with known standard deviation

Examples
--------
>>> import numpy as np
>>> rng = np.random.default_rng(3)
>>> y = BinomialLikelihood().simulate(np.full(4, 0.5), 20, rng)
>>> y.shape, bool(((0 <= y) & (y <= 20)).all())
((4,), True)
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple

import numpy as np
from scipy.stats import binom, norm

from bayesoc.core.components import FloatArray, Likelihood
from bayesoc.core.errors import InvalidParameterError


def check_sample_size(n: Any) -> int:
    """Validate a trial sample size."""
    if isinstance(n, bool) or int(n) != n or int(n) < 1:
        raise InvalidParameterError(f"sample size must be a positive integer, got {n!r}")
    return int(n)


@dataclass(frozen=True)
class BinomialLikelihood(Likelihood):
    """Binary endpoint: number of responders among `n` patients."""

    family: ClassVar[str] = "binomial"
    support: ClassVar[Tuple[float, float]] = (0.0, 1.0)

    def simulate(self, params: FloatArray, n: int, rng: np.random.Generator) -> FloatArray:
        n = check_sample_size(n)
        theta = np.asarray(params, dtype=float)
        if not np.all((theta >= 0.0) & (theta <= 1.0)):
            raise InvalidParameterError("binomial probabilities must lie in [0, 1]")
        return rng.binomial(n, theta).astype(float)

    def loglik(self, params: Any, data: Dict[str, Any]) -> FloatArray:
        return np.asarray(binom.logpmf(data["y"], data["n"], params), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {"family": self.family}


@dataclass(frozen=True)
class NormalLikelihood(Likelihood):
    """Continuous endpoint with known per-patient standard deviation `sigma`."""

    sigma: float

    family: ClassVar[str] = "normal"

    def __post_init__(self) -> None:
        sigma = float(self.sigma)
        if not (math.isfinite(sigma) and sigma > 0.0):
            raise InvalidParameterError(f"sigma must be positive and finite, got {sigma}")
        object.__setattr__(self, "sigma", sigma)

    def standard_error(self, n: int) -> float:
        return self.sigma / math.sqrt(n)

    def simulate(self, params: FloatArray, n: int, rng: np.random.Generator) -> FloatArray:
        n = check_sample_size(n)
        mu = np.asarray(params, dtype=float)
        return rng.normal(mu, self.standard_error(n))

    def loglik(self, params: Any, data: Dict[str, Any]) -> FloatArray:
        se = self.standard_error(data["n"])
        return np.asarray(norm.logpdf(data["y"], params, se), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {"family": self.family, "sigma": self.sigma}


def simulate_increments(
    likelihood: Likelihood,
    params: FloatArray,
    sizes: Tuple[int, ...],
    rng: np.random.Generator,
) -> FloatArray:
    """
    Simulate cumulative binomial data at a sequence of interim looks.

    Each look adds an independent cohort of ``sizes[k] - sizes[k-1]``
    patients drawn from the same per-replicate truth.

    Returns:
        Array of shape (R, K) with cumulative event counts
    """
    if not isinstance(likelihood, BinomialLikelihood):
        raise InvalidParameterError("interim simulation supports binomial outcomes only")
    sizes = tuple(check_sample_size(s) for s in sizes)
    if any(b <= a for a, b in zip(sizes, sizes[1:])):
        raise InvalidParameterError(f"look sizes must be strictly increasing, got {sizes}")
    cohorts = np.diff((0,) + sizes)
    theta = np.asarray(params, dtype=float)
    counts = np.column_stack(
        [likelihood.simulate(theta, int(m), rng) for m in cohorts]
    )
    return np.cumsum(counts, axis=1)
