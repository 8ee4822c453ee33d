"""
bayesoc.runtime.experiment_template
===================================

Base classes and infrastructure for experiment templates.

A template bundles everything that defines one simulation study except the
grid and the run configuration: sampling prior, likelihood, fitting prior,
decision rule. Runners sweep a template over a design grid; templates only
know how to simulate a single design point.

- `DesignPoint`, `design_grid`: the grid
- `PointResult`: the reduction of one design point's replicates
- `ExperimentTemplate`: abstract template
- `FixedDesignTemplate`: the generic fixed-sample pipeline
  (sampling prior -> data -> posterior -> rule)

Examples
--------
>>> from bayesoc.runtime.experiment_template import design_grid
>>> [p.n for p in design_grid(n=[10, 20], a0=[0.0, 1.0])]
[10, 10, 20, 20]
>>> design_grid(n=[10])[0].key
'n=10'
"""

from __future__ import annotations
import itertools
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from bayesoc.core.components import DecisionRule, FloatArray, Likelihood, Posterior, Prior
from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import InvalidParameterError
from bayesoc.core.names import DESIGN_TAG, Namespace
from bayesoc.core.traits import LedgerOps
from bayesoc.stats.common.distributions import sample_prior
from bayesoc.stats.common.mcmc import Sampler
from bayesoc.stats.common.posterior import closed_form, update, with_discount
from bayesoc.stats.common.predictive import check_sample_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DesignPoint:
    """One point of the design grid."""

    n: int
    a0: Optional[float] = None
    delta: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "n", check_sample_size(self.n))
        if self.a0 is not None:
            a0 = float(self.a0)
            if not (0.0 <= a0 <= 1.0):
                raise InvalidParameterError(f"a0 must be in [0, 1], got {a0}")
            object.__setattr__(self, "a0", a0)
        if self.delta is not None:
            delta = float(self.delta)
            if not math.isfinite(delta):
                raise InvalidParameterError(f"delta must be finite, got {delta}")
            object.__setattr__(self, "delta", delta)

    @property
    def key(self) -> str:
        parts = [f"n={self.n}"]
        if self.a0 is not None:
            parts.append(f"a0={self.a0:g}")
        if self.delta is not None:
            parts.append(f"delta={self.delta:g}")
        return ",".join(parts)

    def as_dict(self) -> Dict[str, Any]:
        return {"n": self.n, "a0": self.a0, "delta": self.delta}


def design_grid(
    *,
    n: Iterable[int],
    a0: Optional[Iterable[float]] = None,
    delta: Optional[Iterable[float]] = None,
) -> List[DesignPoint]:
    """Cartesian product of candidate values; `n` varies slowest."""
    ns = list(n)
    if not ns:
        raise InvalidParameterError("the grid needs at least one sample size")
    a0s: List[Optional[float]] = list(a0) if a0 is not None else [None]
    deltas: List[Optional[float]] = list(delta) if delta is not None else [None]
    return [
        DesignPoint(n=n_i, a0=a_i, delta=d_i)
        for n_i, a_i, d_i in itertools.product(ns, a0s, deltas)
    ]


@dataclass
class PointResult:
    """Results from the replicates of a single design point."""

    estimate: Optional[float]
    mc_se: Optional[float]
    replicates: int
    excluded: int = 0
    binary: bool = True

    # Method-specific results
    additional_metrics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_outcomes(
        cls, outcomes: FloatArray, *, binary: bool, excluded: int = 0, **metrics: Any
    ) -> "PointResult":
        """
        Reduce per-replicate outcomes to their mean and Monte Carlo standard error.

        When every replicate was excluded the result carries no estimate
        (`estimate` and `mc_se` are None) and the caller decides whether
        that is fatal.
        """
        values = np.asarray(outcomes, dtype=float)
        r = int(values.size)
        if r == 0:
            if not excluded:
                raise InvalidParameterError("no replicate outcomes to summarise")
            return cls(
                estimate=None,
                mc_se=None,
                replicates=0,
                excluded=int(excluded),
                binary=binary,
                additional_metrics=metrics,
            )
        estimate = float(values.mean())
        if binary:
            mc_se = math.sqrt(estimate * (1.0 - estimate) / r)
        else:
            mc_se = float(values.std(ddof=1)) / math.sqrt(r) if r > 1 else 0.0
        return cls(
            estimate=estimate,
            mc_se=mc_se,
            replicates=r,
            excluded=excluded,
            binary=binary,
            additional_metrics=metrics,
        )

    @property
    def excluded_fraction(self) -> float:
        total = self.replicates + self.excluded
        return self.excluded / total if total else 0.0

    def to_row(self, point: DesignPoint, reliable: bool) -> Dict[str, Any]:
        row = point.as_dict()
        row.update(
            {
                "estimate": self.estimate,
                "mc_se": self.mc_se,
                "replicates": self.replicates,
                "excluded": self.excluded,
                "reliable": reliable,
            }
        )
        row.update(self.additional_metrics)
        return row


def check_rule_nulls(likelihood: Likelihood, rule: Any) -> None:
    """Reject rule null values outside the parameter support of `likelihood`."""
    lo, hi = likelihood.support
    for name in ("null", "futility_null"):
        value = getattr(rule, name, None)
        if value is None:
            continue
        if not (lo <= float(value) <= hi):
            raise InvalidParameterError(
                f"rule {name}={value} lies outside the {likelihood.family} "
                f"parameter support [{lo}, {hi}]"
            )


class ExperimentTemplate(ABC):
    """
    Base class for portable experiment templates.

    Encapsulates all the logic for a specific type of simulation study:
    - Component configuration (priors, likelihood, decision rule)
    - Validation before any replicate runs
    - Design registration in a ledger
    - Simulation and reduction of one design point

    Users can subclass this to create portable, shareable study definitions.
    """

    def __init__(self, experiment_id: str):
        self.experiment_id = experiment_id
        self.components: Dict[str, Any] = {}
        self._is_setup = False

    @abstractmethod
    def configure_components(self) -> Dict[str, Any]:
        """Return the named pipeline components of this study."""

    @abstractmethod
    def validate_point(self, point: DesignPoint) -> None:
        """Raise `InvalidParameterError` if `point` cannot be simulated."""

    @abstractmethod
    def simulate_point(
        self,
        point: DesignPoint,
        rng: np.random.Generator,
        config: SimulationConfig,
    ) -> PointResult:
        """Simulate and reduce all replicates of one design point."""

    def setup(self, grid: Iterable[DesignPoint]) -> None:
        """Configure components and validate the whole grid (fail fast)."""
        self.components = self.configure_components()
        for point in grid:
            self.validate_point(point)
        self._is_setup = True

    def design_payload(self) -> Dict[str, Any]:
        """JSON description of the study, for ledger registration."""
        payload: Dict[str, Any] = {"template": type(self).__name__}
        for name, component in self.components.items():
            if hasattr(component, "to_payload"):
                payload[name] = component.to_payload()
        return payload

    def register_design(
        self,
        ledger: LedgerOps,
        run_id: str,
        grid: List[DesignPoint],
        config: SimulationConfig,
        **extra: Any,
    ) -> None:
        """Register the study design, grid and run configuration in the ledger."""
        payload = self.design_payload()
        payload.update(extra)
        payload.update(
            {
                "grid": [p.as_dict() for p in grid],
                "replicates": config.replicates,
                "seed": config.seed,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        ledger.write_event(
            time_index="t0",
            namespace=Namespace.DESIGN,
            kind="registered",
            run_id=run_id,
            point_key="design",
            payload_type="OCDesign",
            payload=payload,
            tag=DESIGN_TAG,
        )

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the template state."""
        return {
            "experiment_id": str(self.experiment_id),
            "status": "ready" if self._is_setup else "not_setup",
            "components": list(self.components.keys()),
        }


class FixedDesignTemplate(ExperimentTemplate):
    """
    Generic fixed-sample study.

    Per design point: draw R truths from the sampling prior, one dataset per
    truth, update the fitting prior, apply the decision rule, reduce.

    Subclasses decide how a design point maps onto the sampling prior
    (`truth_for`) and may extend validation.
    """

    def __init__(
        self,
        experiment_id: str,
        *,
        sampling_prior: Prior,
        fitting_prior: Prior,
        likelihood: Likelihood,
        rule: DecisionRule,
        sampler: Optional[Sampler] = None,
    ):
        super().__init__(experiment_id)
        self.sampling_prior = sampling_prior
        self.fitting_prior = fitting_prior
        self.likelihood = likelihood
        self.rule = rule
        self.sampler = sampler

    def configure_components(self) -> Dict[str, Any]:
        return {
            "sampling_prior": self.sampling_prior,
            "fitting_prior": self.fitting_prior,
            "likelihood": self.likelihood,
            "rule": self.rule,
        }

    def truth_for(self, point: DesignPoint) -> Prior:
        """Sampling prior in force at `point`."""
        return self.sampling_prior

    def validate_point(self, point: DesignPoint) -> None:
        fitting = with_discount(self.fitting_prior, point.a0)
        if closed_form(fitting, self.likelihood) is None and self.sampler is None:
            raise InvalidParameterError(
                f"{self.likelihood.family}/{fitting.family} has no closed form; "
                "inject a sampler"
            )
        check_rule_nulls(self.likelihood, self.rule)
        self.truth_for(point)

    def analyse(
        self,
        point: DesignPoint,
        rng: np.random.Generator,
        config: SimulationConfig,
    ) -> Posterior:
        """Simulate R datasets at `point` and return their posteriors."""
        theta = sample_prior(self.truth_for(point), config.replicates, rng)
        y = self.likelihood.simulate(theta, point.n, rng)
        return update(
            self.fitting_prior,
            self.likelihood,
            y,
            point.n,
            a0=point.a0,
            sampler=self.sampler,
            config=config,
            rng=rng,
        )

    def simulate_point(
        self,
        point: DesignPoint,
        rng: np.random.Generator,
        config: SimulationConfig,
    ) -> PointResult:
        posterior = self.analyse(point, rng, config)
        outcomes = self.rule.evaluate(posterior)
        metrics: Dict[str, Any] = {}
        if posterior.size:
            metrics["posterior_mean"] = float(np.mean(posterior.mean()))
        return PointResult.from_outcomes(
            outcomes,
            binary=bool(self.rule.binary),
            excluded=posterior.excluded,
            **metrics,
        )
