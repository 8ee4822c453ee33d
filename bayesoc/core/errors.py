"""
bayesoc.core.errors
===================

Error taxonomy.

- `InvalidParameterError`: malformed hyperparameters or design values.
  Raised before any replicate is simulated.
- `DomainError`: a CDF or quantile requested outside a distribution's
  support, or a numerically degenerate posterior.
- `SamplerNonConvergenceError`: an MCMC run whose diagnostics make its
  draws unreliable. Recoverable per replicate.
- `InvalidTransitionError`: an illegal move of the sequential monitoring
  state machine.
- `SweepCancelled`: cooperative cancellation of a grid sweep; carries the
  rows completed so far.
"""

from __future__ import annotations
from typing import Any, Optional


class BayesOCError(Exception):
    """Base class for all bayesoc errors."""


class InvalidParameterError(BayesOCError, ValueError):
    """Distribution hyperparameters or design values are invalid."""


class DomainError(BayesOCError, ArithmeticError):
    """Evaluation outside a distribution's support or on a degenerate posterior."""


class SamplerNonConvergenceError(BayesOCError, RuntimeError):
    """MCMC diagnostics indicate unreliable posterior draws."""

    def __init__(
        self,
        message: str,
        *,
        rhat: Optional[float] = None,
        n_divergent: Optional[int] = None,
        replicate: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.rhat = rhat
        self.n_divergent = n_divergent
        self.replicate = replicate


class InvalidTransitionError(BayesOCError, RuntimeError):
    """A monitoring state machine was asked to leave a terminal state."""


class SweepCancelled(BayesOCError):
    """The grid sweep was cancelled between design points."""

    def __init__(self, message: str, partial: Any = None) -> None:
        super().__init__(message)
        self.partial = partial


class NonConvergenceWarning(UserWarning):
    """Replicates were excluded from a design point because MCMC failed."""
