"""
bayesoc.core.config
===================

Run configuration.

`SimulationConfig` gathers every knob of a grid sweep that is not part of
the statistical design itself: replicate count, seed, parallelism, and the
MCMC convergence policy. `SamplerConfig` is what an injected sampler
receives.

Both are frozen and validated on construction, so an invalid configuration
fails before any replicate is simulated.

Examples
--------
>>> from bayesoc.core.config import SimulationConfig
>>> cfg = SimulationConfig.from_mapping({"replicates": 2000, "seed": 7,
...                                      "sampler": {"chains": 2}})
>>> cfg.replicates, cfg.sampler.chains
(2000, 2)
>>> cfg.replace(n_jobs=4).n_jobs
4
"""

from __future__ import annotations
import dataclasses
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from bayesoc.core.errors import InvalidParameterError


@dataclass(frozen=True, kw_only=True)
class SamplerConfig:
    """
    Configuration handed to an iterative sampler.

    Attributes:
        warmup: Warmup (tuning) iterations per chain
        draws: Retained draws per chain
        chains: Number of chains
        parallel_chains: Chains run concurrently by the sampler itself
        seed: Base seed; the engine derives one per replicate
    """

    warmup: int = 1000
    draws: int = 1000
    chains: int = 4
    parallel_chains: int = 1
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("warmup", "draws", "chains", "parallel_chains"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < (0 if name == "warmup" else 1):
                raise InvalidParameterError(f"{name} must be a positive int, got {value!r}")


@dataclass(frozen=True, kw_only=True)
class SimulationConfig:
    """
    Configuration of a grid sweep.

    Attributes:
        replicates: Simulated trials per design point
        seed: Root seed; `None` draws fresh OS entropy
        n_jobs: joblib workers across design points (-1 = all cores)
        mcmc_jobs: joblib workers for non-conjugate replicates within a point
        max_rhat: Largest acceptable potential scale reduction factor
        max_divergent: Largest acceptable number of divergent transitions
        max_excluded_fraction: Above this share of excluded replicates a
            design point is flagged unreliable
        strict: Raise instead of flagging unreliable design points
        sampler: Configuration passed to the injected sampler
    """

    replicates: int = 10000
    seed: Optional[int] = None
    n_jobs: int = 1
    mcmc_jobs: int = 1
    max_rhat: float = 1.01
    max_divergent: int = 0
    max_excluded_fraction: float = 0.1
    strict: bool = False
    sampler: SamplerConfig = field(default_factory=SamplerConfig)

    def __post_init__(self) -> None:
        if not isinstance(self.replicates, int) or self.replicates < 1:
            raise InvalidParameterError(
                f"replicates must be a positive int, got {self.replicates!r}"
            )
        if self.n_jobs == 0 or self.mcmc_jobs == 0:
            raise InvalidParameterError("n_jobs and mcmc_jobs must be non-zero")
        if not (math.isfinite(self.max_rhat) and self.max_rhat >= 1.0):
            raise InvalidParameterError(f"max_rhat must be >= 1, got {self.max_rhat}")
        if self.max_divergent < 0:
            raise InvalidParameterError("max_divergent must be non-negative")
        if not (0.0 <= self.max_excluded_fraction <= 1.0):
            raise InvalidParameterError(
                "max_excluded_fraction must be in [0, 1], "
                f"got {self.max_excluded_fraction}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SimulationConfig":
        """Build a config from a plain mapping (nested ``sampler`` mapping allowed)."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidParameterError(f"Unknown config keys: {sorted(unknown)}")
        kwargs = dict(data)
        sampler = kwargs.get("sampler")
        if isinstance(sampler, Mapping):
            kwargs["sampler"] = SamplerConfig(**sampler)
        return cls(**kwargs)

    def replace(self, **changes: Any) -> "SimulationConfig":
        """Return a copy with `changes` applied (and re-validated)."""
        return dataclasses.replace(self, **changes)
