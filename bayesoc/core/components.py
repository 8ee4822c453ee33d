"""
bayesoc.core.components
=======================

Base classes for the stages of the simulation pipeline.

Component Types:
- `Prior`: a distribution specification; samples "true" parameters when used
  as a sampling prior and supplies a log-density when used as a fitting prior
- `Likelihood`: generates synthetic data given parameters and a sample size
- `Posterior`: a vectorised posterior summary, one entry per replicate
- `DecisionRule`: maps a posterior to a per-replicate outcome

Every array-valued method works on all replicates of a design point at once.
Components hold no mutable state; randomness always arrives as an explicit
`numpy.random.Generator`.

Examples
--------
>>> import numpy as np
>>> class Uniform(Prior):
...     family = "uniform"
...     def sample(self, size, rng):
...         return rng.uniform(size=size)
...     def logpdf(self, x):
...         return np.zeros_like(np.asarray(x, dtype=float))
...     def to_payload(self):
...         return {"family": self.family}
>>> Uniform().sample(3, np.random.default_rng(0)).shape
(3,)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Tuple

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float64]


class Prior(ABC):
    """
    Base class for prior specifications.

    Subclasses validate their hyperparameters on construction and raise
    `InvalidParameterError` for anything that is not a proper distribution.
    """

    family: ClassVar[str] = "generic"
    support: ClassVar[Tuple[float, float]] = (-np.inf, np.inf)

    @abstractmethod
    def sample(self, size: int, rng: np.random.Generator) -> FloatArray:
        """Draw `size` i.i.d. parameter values."""

    @abstractmethod
    def logpdf(self, x: Any) -> FloatArray:
        """Log-density at `x` (vectorised)."""

    @abstractmethod
    def to_payload(self) -> Dict[str, Any]:
        """JSON-serialisable description used for ledger registration."""


class Likelihood(ABC):
    """Base class for data-generating likelihoods."""

    family: ClassVar[str] = "generic"
    support: ClassVar[Tuple[float, float]] = (-np.inf, np.inf)

    @abstractmethod
    def simulate(self, params: FloatArray, n: int, rng: np.random.Generator) -> FloatArray:
        """Draw one synthetic dataset summary per entry of `params`."""

    @abstractmethod
    def loglik(self, params: Any, data: Dict[str, Any]) -> FloatArray:
        """Log-likelihood of one dataset at (vectorised) parameter values."""

    @abstractmethod
    def to_payload(self) -> Dict[str, Any]:
        """JSON-serialisable description used for ledger registration."""


class Posterior(ABC):
    """
    Base class for vectorised posterior summaries.

    A posterior holds one distribution per analysed replicate; `size`
    is the number of replicates it covers.
    """

    support: Tuple[float, float] = (-np.inf, np.inf)
    excluded: int = 0

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of replicates summarised."""

    @abstractmethod
    def cdf(self, x: float) -> FloatArray:
        """P(parameter <= x | data) for every replicate."""

    @abstractmethod
    def ppf(self, q: float) -> FloatArray:
        """The q-quantile for every replicate."""

    @abstractmethod
    def mean(self) -> FloatArray:
        """Posterior mean for every replicate."""


class DecisionRule(ABC):
    """
    Base class for posterior decision rules.

    `binary` rules return booleans (success / failure); scalar rules return
    a float statistic such as an interval width.
    """

    binary: ClassVar[bool] = True

    @abstractmethod
    def evaluate(self, posterior: Posterior) -> NDArray[Any]:
        """Per-replicate outcome; must be a pure function of `posterior`."""

    @abstractmethod
    def to_payload(self) -> Dict[str, Any]:
        """JSON-serialisable description used for ledger registration."""
