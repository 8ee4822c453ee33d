"""
bayesoc.stats.common.distributions
==================================

Prior specifications and the prior sampler.

A prior plays one of two roles in a simulation:

- **sampling prior**: generates the "true" parameter of each simulated trial
  (`sample`);
- **fitting prior**: the analyst's prior, combined with the simulated data
  (`logpdf`, or a closed-form update in `bayesoc.stats.common.posterior`).

The same classes serve both roles; nothing here is ever updated in place.

Available families
------------------
- `BetaPrior(shape1, shape2)`, also from mean and prior sample size via
  `BetaPrior.from_mean`
- `BetaMixturePrior`: finite Beta mixture (robust meta-analytic priors)
- `PowerPrior`: a Beta prior raised with discounted historical binomial data
- `TruncatedNormalPrior(mean, sd, lower=0, upper=1)`
- `NormalPrior(mean, sd)`
- `PointMass(value)`: fixed truth; sampling consumes no randomness

Examples
--------
>>> import numpy as np
>>> rng = np.random.default_rng(1)
>>> BetaPrior(2, 8).sample(5, rng).shape
(5,)
>>> BetaPrior.from_mean(0.3, float("inf"))
PointMass(value=0.3)
>>> PowerPrior(BetaPrior(1, 1), y0=12, n0=40, a0=0.5).effective()
BetaPrior(shape1=7.0, shape2=15.0)
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Tuple

import numpy as np
from scipy.special import betaln, logsumexp
from scipy.stats import beta as beta_dist
from scipy.stats import norm, truncnorm

from bayesoc.core.components import FloatArray, Prior
from bayesoc.core.errors import InvalidParameterError


def _check_positive(name: str, value: float) -> float:
    value = float(value)
    if not (math.isfinite(value) and value > 0.0):
        raise InvalidParameterError(f"{name} must be positive and finite, got {value}")
    return value


def _check_finite(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise InvalidParameterError(f"{name} must be finite, got {value}")
    return value


def _check_a0(a0: float) -> float:
    a0 = float(a0)
    if not (0.0 <= a0 <= 1.0):
        raise InvalidParameterError(f"a0 must be in [0, 1], got {a0}")
    return a0


@dataclass(frozen=True)
class PointMass(Prior):
    """Degenerate prior at `value`; every replicate shares the same truth."""

    value: float

    family: ClassVar[str] = "point_mass"

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _check_finite("value", self.value))

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        return np.full(int(size), self.value, dtype=float)

    def logpdf(self, x: Any) -> FloatArray:
        x = np.asarray(x, dtype=float)
        return np.where(x == self.value, 0.0, -np.inf)

    def to_payload(self) -> Dict[str, Any]:
        return {"family": self.family, "value": self.value}


@dataclass(frozen=True)
class BetaPrior(Prior):
    """Beta(shape1, shape2) prior on a probability."""

    shape1: float
    shape2: float

    family: ClassVar[str] = "beta"
    support: ClassVar[Tuple[float, float]] = (0.0, 1.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shape1", _check_positive("shape1", self.shape1))
        object.__setattr__(self, "shape2", _check_positive("shape2", self.shape2))

    @classmethod
    def from_mean(cls, mean: float, m: float) -> Prior:
        """
        Beta prior from its mean and prior sample size `m`.

        shape1 = mean * m, shape2 = (1 - mean) * m. An infinite `m` means no
        dispersion at all and yields `PointMass(mean)`.
        """
        mean = float(mean)
        if not (0.0 <= mean <= 1.0):
            raise InvalidParameterError(f"mean must be in [0, 1], got {mean}")
        if m == math.inf:
            return PointMass(mean)
        m = _check_positive("m", m)
        return cls(mean * m, (1.0 - mean) * m)

    @property
    def mean(self) -> float:
        return self.shape1 / (self.shape1 + self.shape2)

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        return rng.beta(self.shape1, self.shape2, size=int(size))

    def logpdf(self, x: Any) -> FloatArray:
        return np.asarray(beta_dist.logpdf(x, self.shape1, self.shape2), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {"family": self.family, "shape1": self.shape1, "shape2": self.shape2}


@dataclass(frozen=True)
class BetaMixturePrior(Prior):
    """
    Finite mixture of Beta distributions.

    The usual shape of a robustified meta-analytic predictive prior: an
    informative component fitted to historical trials plus a vague
    component with a small weight.

    Attributes:
        weights: Mixture weights (normalised on construction)
        components: One `BetaPrior` per weight
    """

    weights: Tuple[float, ...]
    components: Tuple[BetaPrior, ...]

    family: ClassVar[str] = "beta_mixture"
    support: ClassVar[Tuple[float, float]] = (0.0, 1.0)

    def __post_init__(self) -> None:
        weights = tuple(float(w) for w in self.weights)
        components = tuple(self.components)
        if not components or len(weights) != len(components):
            raise InvalidParameterError(
                "weights and components must be non-empty and of equal length"
            )
        if any(not math.isfinite(w) or w < 0.0 for w in weights) or sum(weights) <= 0:
            raise InvalidParameterError("weights must be non-negative with positive sum")
        if any(not isinstance(c, BetaPrior) for c in components):
            raise InvalidParameterError("mixture components must be BetaPrior instances")
        total = sum(weights)
        object.__setattr__(self, "weights", tuple(w / total for w in weights))
        object.__setattr__(self, "components", components)

    @classmethod
    def robust(cls, informative: BetaPrior, vague_weight: float = 0.2) -> "BetaMixturePrior":
        """Mix `informative` with a uniform Beta(1, 1) at `vague_weight`."""
        if not (0.0 <= vague_weight < 1.0):
            raise InvalidParameterError(
                f"vague_weight must be in [0, 1), got {vague_weight}"
            )
        return cls((1.0 - vague_weight, vague_weight), (informative, BetaPrior(1.0, 1.0)))

    @property
    def shape1(self) -> FloatArray:
        return np.array([c.shape1 for c in self.components])

    @property
    def shape2(self) -> FloatArray:
        return np.array([c.shape2 for c in self.components])

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        idx = rng.choice(len(self.weights), size=int(size), p=np.array(self.weights))
        return rng.beta(self.shape1[idx], self.shape2[idx])

    def logpdf(self, x: Any) -> FloatArray:
        x = np.asarray(x, dtype=float)
        parts = np.stack(
            [
                math.log(w) + beta_dist.logpdf(x, c.shape1, c.shape2) if w > 0 else np.full_like(x, -np.inf)
                for w, c in zip(self.weights, self.components)
            ]
        )
        return np.asarray(logsumexp(parts, axis=0), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "weights": list(self.weights),
            "components": [c.to_payload() for c in self.components],
        }


@dataclass(frozen=True)
class PowerPrior(Prior):
    """
    Power prior for a binomial probability.

    The likelihood of historical data (`y0` events in `n0` patients) is
    raised to the discounting weight `a0` and combined with `base`:

        pi(theta | D0, a0) ∝ L(theta | D0)^a0 * Beta(theta; a, b)
                            = Beta(a + a0*y0, b + a0*(n0 - y0))

    `a0 = 0` ignores the historical trial, `a0 = 1` pools it fully.
    """

    base: BetaPrior
    y0: int
    n0: int
    a0: float = 1.0

    family: ClassVar[str] = "power_prior"
    support: ClassVar[Tuple[float, float]] = (0.0, 1.0)

    def __post_init__(self) -> None:
        if not isinstance(self.base, BetaPrior):
            raise InvalidParameterError(
                f"power prior base must be a BetaPrior, got {type(self.base).__name__}"
            )
        if int(self.n0) < 0 or not (0 <= int(self.y0) <= int(self.n0)):
            raise InvalidParameterError(
                f"historical data must satisfy 0 <= y0 <= n0, got y0={self.y0}, n0={self.n0}"
            )
        object.__setattr__(self, "y0", int(self.y0))
        object.__setattr__(self, "n0", int(self.n0))
        object.__setattr__(self, "a0", _check_a0(self.a0))

    def with_a0(self, a0: float) -> "PowerPrior":
        return PowerPrior(self.base, self.y0, self.n0, a0)

    def effective(self) -> BetaPrior:
        """The Beta distribution this power prior reduces to."""
        return BetaPrior(
            self.base.shape1 + self.a0 * self.y0,
            self.base.shape2 + self.a0 * (self.n0 - self.y0),
        )

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        return self.effective().sample(size, rng)

    def logpdf(self, x: Any) -> FloatArray:
        return self.effective().logpdf(x)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "base": self.base.to_payload(),
            "y0": self.y0,
            "n0": self.n0,
            "a0": self.a0,
        }


@dataclass(frozen=True)
class TruncatedNormalPrior(Prior):
    """Normal(mean, sd) restricted to [lower, upper] (default the unit interval)."""

    mean: float
    sd: float
    lower: float = 0.0
    upper: float = 1.0

    family: ClassVar[str] = "truncated_normal"

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", _check_finite("mean", self.mean))
        object.__setattr__(self, "sd", _check_positive("sd", self.sd))
        if not float(self.lower) < float(self.upper):
            raise InvalidParameterError(
                f"lower must be below upper, got [{self.lower}, {self.upper}]"
            )
        object.__setattr__(self, "lower", float(self.lower))
        object.__setattr__(self, "upper", float(self.upper))
        # A window far out in one tail has zero normal mass in floating point.
        mass = norm.cdf(self.upper, self.mean, self.sd) - norm.cdf(self.lower, self.mean, self.sd)
        if not mass > 0.0:
            raise InvalidParameterError(
                "truncation window carries no probability mass for "
                f"Normal({self.mean}, {self.sd})"
            )

    @property
    def support(self) -> Tuple[float, float]:  # type: ignore[override]
        return (self.lower, self.upper)

    def _frozen(self) -> Any:
        a = (self.lower - self.mean) / self.sd
        b = (self.upper - self.mean) / self.sd
        return truncnorm(a, b, loc=self.mean, scale=self.sd)

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        return np.asarray(self._frozen().rvs(size=int(size), random_state=rng), dtype=float)

    def logpdf(self, x: Any) -> FloatArray:
        return np.asarray(self._frozen().logpdf(x), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "mean": self.mean,
            "sd": self.sd,
            "lower": self.lower,
            "upper": self.upper,
        }


@dataclass(frozen=True)
class NormalPrior(Prior):
    """Normal(mean, sd) prior on an unbounded location parameter."""

    mean: float
    sd: float

    family: ClassVar[str] = "normal"

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", _check_finite("mean", self.mean))
        object.__setattr__(self, "sd", _check_positive("sd", self.sd))

    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        return rng.normal(self.mean, self.sd, size=int(size))

    def logpdf(self, x: Any) -> FloatArray:
        return np.asarray(norm.logpdf(x, self.mean, self.sd), dtype=float)

    def to_payload(self) -> Dict[str, Any]:
        return {"family": self.family, "mean": self.mean, "sd": self.sd}


def beta_mixture_log_marginal(
    shape1: FloatArray, shape2: FloatArray, y: FloatArray, n: int
) -> FloatArray:
    """
    Log beta-binomial marginal likelihood, up to the binomial coefficient.

    Broadcasts `y` of shape (R, 1) against component shapes of shape (K,),
    returning (R, K). The omitted coefficient is common to all components,
    so it cancels when mixture weights are renormalised.
    """
    return betaln(shape1 + y, shape2 + n - y) - betaln(shape1, shape2)


def sample_prior(prior: Prior, replicates: int, rng: np.random.Generator) -> FloatArray:
    """
    Draw the "true" parameter of every replicate from a sampling prior.

    Args:
        prior: Sampling prior specification (already validated)
        replicates: Number of replicates R
        rng: Random source owned by the caller

    Returns:
        Array of R parameter values; a `PointMass` yields R copies of its value
    """
    if int(replicates) < 1:
        raise InvalidParameterError(f"replicates must be >= 1, got {replicates}")
    return prior.sample(int(replicates), rng)


_FAMILIES: Dict[str, Any] = {
    cls.family: cls
    for cls in (PointMass, BetaPrior, TruncatedNormalPrior, NormalPrior)
}


def prior_from_payload(payload: Dict[str, Any]) -> Prior:
    """Rebuild a prior from `to_payload()` output (used when replaying a ledger)."""
    data = dict(payload)
    family = data.pop("family", None)
    if family == BetaMixturePrior.family:
        return BetaMixturePrior(
            tuple(data["weights"]),
            tuple(prior_from_payload(c) for c in data["components"]),  # type: ignore[misc]
        )
    if family == PowerPrior.family:
        return PowerPrior(
            prior_from_payload(data["base"]),  # type: ignore[arg-type]
            data["y0"],
            data["n0"],
            data.get("a0", 1.0),
        )
    if family not in _FAMILIES:
        raise InvalidParameterError(f"Unknown prior family: {family!r}")
    return _FAMILIES[family](**data)
