"""
bayesoc.stats.common.posterior
==============================

Posterior updater.

`update(prior, likelihood, y, n)` combines the R simulated datasets of a
design point with the fitting prior and returns a vectorised `Posterior`.

Conjugate pairs are resolved analytically through a small dispatch table:

=====================  ====================  ==================================
fitting prior          likelihood            posterior
=====================  ====================  ==================================
`BetaPrior(a, b)`      Binomial              Beta(a + y, b + n - y)
`PowerPrior`           Binomial              Beta(a + a0*y0 + y,
                                             b + a0*(n0 - y0) + n - y)
`BetaMixturePrior`     Binomial              Beta mixture, weights updated by
                                             the beta-binomial marginal
`NormalPrior(m, s)`    Normal (known sigma)  Normal, precision weighted
=====================  ====================  ==================================

Every other pair takes the non-conjugate branch: a `ModelSpec` is built and
each replicate is sampled by the injected `Sampler`. Replicates whose
diagnostics fail are dropped and counted in `Posterior.excluded`.

Examples
--------
>>> import numpy as np
>>> from bayesoc.stats.common.distributions import BetaPrior
>>> from bayesoc.stats.common.predictive import BinomialLikelihood
>>> post = update(BetaPrior(1, 1), BinomialLikelihood(), np.array([3.0, 7.0]), 10)
>>> post.shape1.tolist(), post.shape2.tolist()
([4.0, 8.0], [8.0, 4.0])
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Type

import numpy as np
from scipy.special import logsumexp
from scipy.stats import beta as beta_dist
from scipy.stats import norm

from bayesoc.core.components import FloatArray, Likelihood, Posterior, Prior
from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import DomainError, InvalidParameterError
from bayesoc.stats.common.distributions import (
    BetaMixturePrior,
    BetaPrior,
    NormalPrior,
    PowerPrior,
    beta_mixture_log_marginal,
)
from bayesoc.stats.common.mcmc import Sampler, build_model_spec, sample_replicates
from bayesoc.stats.common.predictive import (
    BinomialLikelihood,
    NormalLikelihood,
    check_sample_size,
)

logger = logging.getLogger(__name__)


# --- Posterior summaries ---


def _check_probability(q: float) -> float:
    q = float(q)
    if not (0.0 <= q <= 1.0):
        raise DomainError(f"probability must lie in [0, 1], got {q}")
    return q


def _check_in_support(x: float, support: Tuple[float, float]) -> float:
    x = float(x)
    if not (support[0] <= x <= support[1]):
        raise DomainError(f"{x} lies outside the posterior support {support}")
    return x


def _require_finite(name: str, values: FloatArray) -> FloatArray:
    if values.size and not np.all(np.isfinite(values)):
        raise DomainError(f"{name} produced non-finite values")
    return values


@dataclass(frozen=True, eq=False)
class BetaPosterior(Posterior):
    """Independent Beta(shape1[r], shape2[r]) posteriors, one per replicate."""

    shape1: FloatArray
    shape2: FloatArray
    excluded: int = 0

    support = (0.0, 1.0)

    def __post_init__(self) -> None:
        a = np.atleast_1d(np.asarray(self.shape1, dtype=float))
        b = np.atleast_1d(np.asarray(self.shape2, dtype=float))
        if a.shape != b.shape:
            raise DomainError("shape1 and shape2 must have the same shape")
        if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b))):
            raise DomainError("degenerate Beta posterior: non-finite shape parameters")
        if np.any(a <= 0.0) or np.any(b <= 0.0):
            raise DomainError("degenerate Beta posterior: non-positive shape parameters")
        object.__setattr__(self, "shape1", a)
        object.__setattr__(self, "shape2", b)

    @property
    def size(self) -> int:
        return int(self.shape1.size)

    def cdf(self, x: float) -> FloatArray:
        x = _check_in_support(x, self.support)
        return _require_finite("beta cdf", beta_dist.cdf(x, self.shape1, self.shape2))

    def ppf(self, q: float) -> FloatArray:
        q = _check_probability(q)
        return _require_finite("beta ppf", beta_dist.ppf(q, self.shape1, self.shape2))

    def mean(self) -> FloatArray:
        return self.shape1 / (self.shape1 + self.shape2)


@dataclass(frozen=True, eq=False)
class BetaMixturePosterior(Posterior):
    """
    Beta-mixture posteriors.

    Arrays have shape (R, K): replicate by mixture component.
    """

    weights: FloatArray
    shape1: FloatArray
    shape2: FloatArray
    excluded: int = 0

    support = (0.0, 1.0)

    _BISECTION_STEPS = 60

    def __post_init__(self) -> None:
        w = np.atleast_2d(np.asarray(self.weights, dtype=float))
        a = np.atleast_2d(np.asarray(self.shape1, dtype=float))
        b = np.atleast_2d(np.asarray(self.shape2, dtype=float))
        if not (w.shape == a.shape == b.shape):
            raise DomainError("weights and shapes must share the (R, K) shape")
        if np.any(~np.isfinite(w)) or np.any(a <= 0.0) or np.any(b <= 0.0):
            raise DomainError("degenerate Beta mixture posterior")
        object.__setattr__(self, "weights", w)
        object.__setattr__(self, "shape1", a)
        object.__setattr__(self, "shape2", b)

    @property
    def size(self) -> int:
        return int(self.weights.shape[0])

    def _cdf_at(self, x: Any) -> FloatArray:
        x = np.asarray(x, dtype=float)
        if x.ndim == 1:
            x = x[:, None]
        return np.sum(self.weights * beta_dist.cdf(x, self.shape1, self.shape2), axis=1)

    def cdf(self, x: float) -> FloatArray:
        x = _check_in_support(x, self.support)
        return _require_finite("mixture cdf", self._cdf_at(x))

    def ppf(self, q: float) -> FloatArray:
        q = _check_probability(q)
        lo = np.zeros(self.size)
        hi = np.ones(self.size)
        # The mixture CDF is monotone, so bisection converges for every row.
        for _ in range(self._BISECTION_STEPS):
            mid = 0.5 * (lo + hi)
            below = self._cdf_at(mid) < q
            lo = np.where(below, mid, lo)
            hi = np.where(below, hi, mid)
        return 0.5 * (lo + hi)

    def mean(self) -> FloatArray:
        return np.sum(self.weights * self.shape1 / (self.shape1 + self.shape2), axis=1)


@dataclass(frozen=True, eq=False)
class NormalPosterior(Posterior):
    """Independent Normal(mean[r], sd[r]) posteriors."""

    loc: FloatArray
    scale: FloatArray
    excluded: int = 0

    def __post_init__(self) -> None:
        loc = np.atleast_1d(np.asarray(self.loc, dtype=float))
        scale = np.broadcast_to(np.asarray(self.scale, dtype=float), loc.shape).copy()
        if not (np.all(np.isfinite(loc)) and np.all(np.isfinite(scale))):
            raise DomainError("degenerate Normal posterior: non-finite parameters")
        if np.any(scale <= 0.0):
            raise DomainError("degenerate Normal posterior: non-positive scale")
        object.__setattr__(self, "loc", loc)
        object.__setattr__(self, "scale", scale)

    @property
    def size(self) -> int:
        return int(self.loc.size)

    def cdf(self, x: float) -> FloatArray:
        return _require_finite("normal cdf", norm.cdf(float(x), self.loc, self.scale))

    def ppf(self, q: float) -> FloatArray:
        q = _check_probability(q)
        return _require_finite("normal ppf", norm.ppf(q, self.loc, self.scale))

    def mean(self) -> FloatArray:
        return self.loc


@dataclass(frozen=True, eq=False)
class DrawsPosterior(Posterior):
    """
    Empirical posteriors from MCMC draws.

    Attributes:
        draws: One 1-D array of draws per kept replicate
        support: Parameter bounds of the sampled model
        excluded: Replicates dropped for non-convergence
        index: Original replicate index of every kept replicate
    """

    draws: Tuple[FloatArray, ...]
    support: Tuple[float, float] = (-np.inf, np.inf)
    excluded: int = 0
    index: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        draws = tuple(np.asarray(d, dtype=float).reshape(-1) for d in self.draws)
        for d in draws:
            if d.size == 0 or not np.all(np.isfinite(d)):
                raise DomainError("empty or non-finite posterior draws")
        object.__setattr__(self, "draws", draws)
        if not self.index:
            object.__setattr__(self, "index", tuple(range(len(draws))))

    @property
    def size(self) -> int:
        return len(self.draws)

    def cdf(self, x: float) -> FloatArray:
        x = _check_in_support(x, self.support)
        return np.array([np.mean(d <= x) for d in self.draws], dtype=float)

    def ppf(self, q: float) -> FloatArray:
        q = _check_probability(q)
        return np.array([np.quantile(d, q) for d in self.draws], dtype=float)

    def mean(self) -> FloatArray:
        return np.array([d.mean() for d in self.draws], dtype=float)


# --- Conjugate dispatch ---

UpdateFn = Callable[[Prior, Likelihood, FloatArray, int], Posterior]

_CONJUGATE: Dict[Tuple[Type[Prior], Type[Likelihood]], UpdateFn] = {}


def conjugate(
    prior_cls: Type[Prior], likelihood_cls: Type[Likelihood]
) -> Callable[[UpdateFn], UpdateFn]:
    """Register a closed-form update for a (prior, likelihood) pair."""

    def register(fn: UpdateFn) -> UpdateFn:
        _CONJUGATE[(prior_cls, likelihood_cls)] = fn
        return fn

    return register


def closed_form(prior: Prior, likelihood: Likelihood) -> Optional[UpdateFn]:
    """Return the registered closed-form update, or None if the pair is not conjugate."""
    for prior_cls in type(prior).__mro__:
        for lik_cls in type(likelihood).__mro__:
            fn = _CONJUGATE.get((prior_cls, lik_cls))
            if fn is not None:
                return fn
    return None


@conjugate(BetaPrior, BinomialLikelihood)
def _beta_binomial(prior: Any, likelihood: Any, y: FloatArray, n: int) -> Posterior:
    return BetaPosterior(y + prior.shape1, (n - y) + prior.shape2)


@conjugate(PowerPrior, BinomialLikelihood)
def _power_binomial(prior: Any, likelihood: Any, y: FloatArray, n: int) -> Posterior:
    return _beta_binomial(prior.effective(), likelihood, y, n)


@conjugate(BetaMixturePrior, BinomialLikelihood)
def _mixture_binomial(prior: Any, likelihood: Any, y: FloatArray, n: int) -> Posterior:
    a, b = prior.shape1, prior.shape2
    y_col = y[:, None]
    with np.errstate(divide="ignore"):
        log_w = np.log(np.asarray(prior.weights))[None, :] + beta_mixture_log_marginal(
            a, b, y_col, n
        )
    weights = np.exp(log_w - logsumexp(log_w, axis=1, keepdims=True))
    return BetaMixturePosterior(
        weights=weights,
        shape1=a[None, :] + y_col,
        shape2=b[None, :] + (n - y_col),
    )


@conjugate(NormalPrior, NormalLikelihood)
def _normal_normal(prior: Any, likelihood: Any, y: FloatArray, n: int) -> Posterior:
    prior_precision = 1.0 / prior.sd**2
    data_precision = n / likelihood.sigma**2
    precision = prior_precision + data_precision
    loc = (prior_precision * prior.mean + data_precision * y) / precision
    return NormalPosterior(loc=loc, scale=np.full_like(loc, precision**-0.5))


# --- Entry point ---


def with_discount(prior: Prior, a0: Optional[float]) -> Prior:
    """Apply a design point's discounting weight to a power prior."""
    if a0 is None:
        return prior
    if not isinstance(prior, PowerPrior):
        raise InvalidParameterError(
            f"a0 applies to power priors only, got a {prior.family} prior"
        )
    return prior.with_a0(a0)


def update(
    prior: Prior,
    likelihood: Likelihood,
    y: Sequence[float],
    n: int,
    *,
    a0: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    config: Optional[SimulationConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> Posterior:
    """
    Posterior of every simulated dataset under the fitting prior.

    Args:
        prior: Fitting prior
        likelihood: Likelihood that generated `y`
        y: Per-replicate data summaries (event counts or sample means)
        n: Trial sample size
        a0: Discounting weight overriding a power prior's own `a0`
        sampler: Iterative sampler for non-conjugate pairs
        config: Convergence policy and sampler settings
        rng: Source of per-replicate sampler seeds

    Returns:
        A `Posterior` covering all (kept) replicates

    Raises:
        InvalidParameterError: non-conjugate pair and no sampler
    """
    n = check_sample_size(n)
    y_arr = np.atleast_1d(np.asarray(y, dtype=float))
    prior = with_discount(prior, a0)

    fn = closed_form(prior, likelihood)
    if fn is not None:
        return fn(prior, likelihood, y_arr, n)

    if sampler is None:
        raise InvalidParameterError(
            f"no closed form for {likelihood.family}/{prior.family} and no sampler given"
        )
    config = config or SimulationConfig()
    rng = rng if rng is not None else np.random.default_rng()
    spec = build_model_spec(prior, likelihood)
    logger.debug("Sampling %d replicates of %s", y_arr.size, spec.family)
    draws, index, excluded = sample_replicates(sampler, spec, y_arr, n, config, rng)
    return DrawsPosterior(
        draws=tuple(draws),
        support=(spec.lower, spec.upper),
        excluded=excluded,
        index=tuple(index),
    )
