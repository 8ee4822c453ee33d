"""Shared fixtures: random sources, small run configurations, stand-in samplers."""

from typing import Any, Callable, Dict, Optional

import numpy as np
import pytest

from bayesoc.core.config import SamplerConfig, SimulationConfig
from bayesoc.stats.common.mcmc import ModelSpec, SamplerResult


class BetaDrawSampler:
    """
    Stand-in for an MCMC backend on binomial data.

    Returns exact Beta(1 + y, 1 + n - y) draws, i.e. the posterior under a
    uniform prior, with diagnostics controlled by the test.
    """

    def __init__(
        self,
        rhat: float = 1.0,
        n_divergent: int = 0,
        fail_when: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ):
        self.rhat = rhat
        self.n_divergent = n_divergent
        self.fail_when = fail_when

    def sample(
        self, model_spec: ModelSpec, data: Dict[str, Any], config: SamplerConfig
    ) -> SamplerResult:
        rng = np.random.default_rng(config.seed)
        a = 1.0 + data["y"]
        b = 1.0 + data["n"] - data["y"]
        draws = rng.beta(a, b, size=(config.chains, config.draws))
        bad = self.fail_when is not None and self.fail_when(data)
        return SamplerResult(
            draws={model_spec.parameter: draws},
            rhat={model_spec.parameter: 1.5 if bad else self.rhat},
            n_divergent=self.n_divergent,
        )


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(20240601)


@pytest.fixture
def small_config() -> SimulationConfig:
    return SimulationConfig(replicates=2000, seed=123)


@pytest.fixture
def mcmc_config() -> SimulationConfig:
    return SimulationConfig(
        replicates=60,
        seed=7,
        sampler=SamplerConfig(warmup=0, draws=200, chains=2),
    )


@pytest.fixture
def beta_sampler() -> BetaDrawSampler:
    return BetaDrawSampler()


@pytest.fixture
def make_sampler() -> Callable[..., BetaDrawSampler]:
    return BetaDrawSampler
