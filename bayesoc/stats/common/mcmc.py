"""
bayesoc.stats.common.mcmc
=========================

Contract between the engine and an external iterative sampler.

The engine never implements MCMC. For prior/likelihood pairs without a
closed-form posterior it builds a `ModelSpec` (parameter name, bounds,
log-prior, log-likelihood and a declarative family tag) and hands it, with
the replicate's data and a `SamplerConfig`, to any object satisfying the
`Sampler` protocol. The sampler returns draws plus diagnostics; the engine
decides whether to trust them.

Examples
--------
>>> import numpy as np
>>> from bayesoc.core.config import SamplerConfig
>>> class Fixed:
...     def sample(self, model_spec, data, config):
...         draws = np.full((config.chains, config.draws), 0.3)
...         return SamplerResult(draws={model_spec.parameter: draws},
...                              rhat={model_spec.parameter: 1.0})
>>> isinstance(Fixed(), Sampler)
True
"""

from __future__ import annotations
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
from joblib import Parallel, delayed

from bayesoc.core.components import FloatArray, Likelihood, Prior
from bayesoc.core.config import SamplerConfig, SimulationConfig
from bayesoc.core.errors import SamplerNonConvergenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """
    Declarative description of a one-parameter posterior.

    Attributes:
        family: "<likelihood>/<prior>" tag, e.g. "binomial/truncated_normal"
        parameter: Name of the sampled parameter
        lower: Lower bound of the parameter
        upper: Upper bound of the parameter
        prior: Prior payload (`Prior.to_payload()`)
        likelihood: Likelihood payload (`Likelihood.to_payload()`)
        log_prior: Vectorised log-prior density
        log_likelihood: Vectorised log-likelihood, called as f(theta, data)
    """

    family: str
    parameter: str
    lower: float
    upper: float
    prior: Dict[str, Any]
    likelihood: Dict[str, Any]
    log_prior: Callable[[Any], FloatArray]
    log_likelihood: Callable[[Any, Dict[str, Any]], FloatArray]

    def log_density(self, theta: Any, data: Dict[str, Any]) -> FloatArray:
        """Unnormalised log-posterior; -inf outside the bounds."""
        theta = np.asarray(theta, dtype=float)
        inside = (theta >= self.lower) & (theta <= self.upper)
        with np.errstate(divide="ignore", invalid="ignore"):
            value = self.log_prior(theta) + self.log_likelihood(theta, data)
        return np.where(inside, value, -np.inf)


@dataclass(frozen=True)
class SamplerResult:
    """
    Output of one sampler run.

    Attributes:
        draws: Per parameter, an array of shape (chains, draws)
        rhat: Per parameter potential scale reduction factor
        n_divergent: Number of divergent transitions after warmup
    """

    draws: Dict[str, FloatArray]
    rhat: Dict[str, float] = field(default_factory=dict)
    n_divergent: int = 0

    def flat(self, parameter: str) -> FloatArray:
        return np.asarray(self.draws[parameter], dtype=float).reshape(-1)


@runtime_checkable
class Sampler(Protocol):
    """Anything that can draw from a `ModelSpec` posterior."""

    def sample(
        self, model_spec: ModelSpec, data: Dict[str, Any], config: SamplerConfig
    ) -> SamplerResult: ...


def build_model_spec(prior: Prior, likelihood: Likelihood) -> ModelSpec:
    """Describe the posterior of `prior` combined with `likelihood`."""
    lower = max(float(prior.support[0]), float(likelihood.support[0]))
    upper = min(float(prior.support[1]), float(likelihood.support[1]))
    return ModelSpec(
        family=f"{likelihood.family}/{prior.family}",
        parameter="theta",
        lower=lower,
        upper=upper,
        prior=prior.to_payload(),
        likelihood=likelihood.to_payload(),
        log_prior=prior.logpdf,
        log_likelihood=likelihood.loglik,
    )


def check_convergence(
    result: SamplerResult,
    config: SimulationConfig,
    parameter: str,
    replicate: Optional[int] = None,
) -> None:
    """Raise `SamplerNonConvergenceError` when diagnostics exceed the config limits."""
    rhat = result.rhat.get(parameter)
    if rhat is None or not np.isfinite(rhat) or rhat > config.max_rhat:
        raise SamplerNonConvergenceError(
            f"R-hat {rhat} exceeds {config.max_rhat}",
            rhat=rhat,
            n_divergent=result.n_divergent,
            replicate=replicate,
        )
    if result.n_divergent > config.max_divergent:
        raise SamplerNonConvergenceError(
            f"{result.n_divergent} divergent transitions (max {config.max_divergent})",
            rhat=rhat,
            n_divergent=result.n_divergent,
            replicate=replicate,
        )
    if result.flat(parameter).size == 0:
        raise SamplerNonConvergenceError(
            "sampler returned no draws", rhat=rhat, replicate=replicate
        )


def _run_one(
    sampler: Sampler,
    spec: ModelSpec,
    data: Dict[str, Any],
    sampler_config: SamplerConfig,
    config: SimulationConfig,
    replicate: int,
) -> Optional[FloatArray]:
    try:
        result = sampler.sample(spec, data, sampler_config)
        check_convergence(result, config, spec.parameter, replicate)
    except SamplerNonConvergenceError as exc:
        logger.debug("Replicate %d excluded: %s", replicate, exc)
        return None
    return result.flat(spec.parameter)


def sample_replicates(
    sampler: Sampler,
    spec: ModelSpec,
    y: FloatArray,
    n: int,
    config: SimulationConfig,
    rng: np.random.Generator,
) -> Tuple[List[FloatArray], List[int], int]:
    """
    Run the sampler once per replicate dataset.

    Replicates run through a bounded joblib pool (`config.mcmc_jobs`); each
    receives its own seed drawn from `rng`.

    Returns:
        (kept draws, indices of kept replicates, number excluded)
    """
    seeds = rng.integers(0, 2**31 - 1, size=len(y))
    jobs = (
        delayed(_run_one)(
            sampler,
            spec,
            {"y": float(y_i), "n": int(n)},
            dataclasses.replace(config.sampler, seed=int(seed)),
            config,
            i,
        )
        for i, (y_i, seed) in enumerate(zip(y, seeds))
    )
    outputs = Parallel(n_jobs=config.mcmc_jobs, prefer="threads")(jobs)
    kept = [(i, d) for i, d in enumerate(outputs) if d is not None]
    excluded = len(outputs) - len(kept)
    if excluded:
        logger.warning(
            "%d of %d replicates excluded for non-convergence (%s)",
            excluded,
            len(outputs),
            spec.family,
        )
    return [d for _, d in kept], [i for i, _ in kept], excluded
