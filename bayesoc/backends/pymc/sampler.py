"""
bayesoc.backends.pymc.sampler
=============================

`Sampler` implementation backed by PyMC (NUTS) with ArviZ diagnostics.

The adapter reads the declarative part of a `ModelSpec` (family tag and the
prior / likelihood payloads) and rebuilds the model with PyMC distributions;
the vectorised callables of the `ModelSpec` are not needed. Supported families:

- ``binomial/truncated_normal``
- ``binomial/beta``
- ``normal/normal``

Diagnostics: R-hat via `arviz.rhat` (needs at least two chains to be
finite) and the number of divergent transitions from
``sample_stats["diverging"]``.

Examples
--------
>>> from bayesoc.core.config import SimulationConfig, SamplerConfig
>>> from bayesoc.stats.common import BinomialLikelihood, TruncatedNormalPrior, update
>>> config = SimulationConfig(sampler=SamplerConfig(warmup=500, draws=500, chains=2))
>>> post = update(TruncatedNormalPrior(0.3, 0.1), BinomialLikelihood(), [7], 20,
...               sampler=PyMCSampler(), config=config)  # doctest: +SKIP
"""

from __future__ import annotations
import logging
import math
from typing import Any, Callable, Dict

import arviz as az
import pymc as pm

from bayesoc.core.config import SamplerConfig
from bayesoc.core.errors import InvalidParameterError
from bayesoc.stats.common.mcmc import ModelSpec, SamplerResult

logger = logging.getLogger(__name__)


def _binomial_truncnorm(spec: ModelSpec, data: Dict[str, Any]) -> pm.Model:
    prior = spec.prior
    with pm.Model() as model:
        theta = pm.TruncatedNormal(
            spec.parameter,
            mu=prior["mean"],
            sigma=prior["sd"],
            lower=prior["lower"],
            upper=prior["upper"],
        )
        pm.Binomial("y", n=data["n"], p=theta, observed=data["y"])
    return model


def _binomial_beta(spec: ModelSpec, data: Dict[str, Any]) -> pm.Model:
    prior = spec.prior
    with pm.Model() as model:
        theta = pm.Beta(spec.parameter, alpha=prior["shape1"], beta=prior["shape2"])
        pm.Binomial("y", n=data["n"], p=theta, observed=data["y"])
    return model


def _normal_normal(spec: ModelSpec, data: Dict[str, Any]) -> pm.Model:
    prior = spec.prior
    se = spec.likelihood["sigma"] / math.sqrt(data["n"])
    with pm.Model() as model:
        theta = pm.Normal(spec.parameter, mu=prior["mean"], sigma=prior["sd"])
        pm.Normal("ybar", mu=theta, sigma=se, observed=data["y"])
    return model


_BUILDERS: Dict[str, Callable[[ModelSpec, Dict[str, Any]], pm.Model]] = {
    "binomial/truncated_normal": _binomial_truncnorm,
    "binomial/beta": _binomial_beta,
    "normal/normal": _normal_normal,
}


class PyMCSampler:
    """
    NUTS sampling of one-parameter posteriors described by a `ModelSpec`.

    Args:
        progressbar: Show PyMC's progress bar (off by default; replicates are
            sampled by the thousand)
    """

    def __init__(self, progressbar: bool = False):
        self.progressbar = progressbar

    @staticmethod
    def supports(family: str) -> bool:
        return family in _BUILDERS

    def build(self, model_spec: ModelSpec, data: Dict[str, Any]) -> pm.Model:
        if model_spec.family not in _BUILDERS:
            raise InvalidParameterError(
                f"PyMCSampler does not support {model_spec.family!r}; "
                f"supported: {sorted(_BUILDERS)}"
            )
        return _BUILDERS[model_spec.family](model_spec, data)

    def sample(
        self, model_spec: ModelSpec, data: Dict[str, Any], config: SamplerConfig
    ) -> SamplerResult:
        model = self.build(model_spec, data)
        with model:
            idata = pm.sample(
                draws=config.draws,
                tune=config.warmup,
                chains=config.chains,
                cores=config.parallel_chains,
                random_seed=config.seed,
                progressbar=self.progressbar,
                return_inferencedata=True,
                compute_convergence_checks=False,
            )
        name = model_spec.parameter
        draws = idata.posterior[name].values
        rhat = float(az.rhat(idata, var_names=[name])[name].values)
        n_divergent = int(idata.sample_stats["diverging"].sum().values)
        logger.debug("%s: rhat=%.4f, %d divergent", model_spec.family, rhat, n_divergent)
        return SamplerResult(draws={name: draws}, rhat={name: rhat}, n_divergent=n_divergent)
