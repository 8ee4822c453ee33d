"""
bayesoc.stats.common.decision
=============================

Posterior decision rules.

- `TailProbabilityRule`: success iff P(theta < null | data) >= threshold
  (or the upper tail), default threshold 1 - alpha/2.
- `IntervalWidthRule`: width of the central 1 - alpha credible interval,
  optionally turned into the ALC acceptance `width < max_width`.

Rules are pure: evaluating the same posterior twice gives identical arrays.
Degenerate posteriors surface as `DomainError`, never as NaN.

Examples
--------
>>> import numpy as np
>>> from bayesoc.stats.common.posterior import BetaPosterior
>>> post = BetaPosterior(np.array([2.0, 30.0]), np.array([30.0, 2.0]))
>>> TailProbabilityRule(null=0.5).evaluate(post).tolist()
[True, False]
>>> IntervalWidthRule(alpha=0.05).evaluate(post).shape
(2,)
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Literal, Optional

import numpy as np
from numpy.typing import NDArray

from bayesoc.core.components import DecisionRule, FloatArray, Posterior
from bayesoc.core.errors import DomainError, InvalidParameterError

Tail = Literal["lower", "upper"]


def _check_alpha(alpha: float) -> float:
    alpha = float(alpha)
    if not (0.0 < alpha < 1.0):
        raise InvalidParameterError(f"alpha must be in (0, 1), got {alpha}")
    return alpha


def tail_probability(posterior: Posterior, null: float, tail: Tail = "lower") -> FloatArray:
    """
    P(theta < null | data) (``tail="lower"``) or P(theta > null | data).

    For continuous posteriors the two differ only by the complement.
    """
    lower = posterior.cdf(null)
    prob = lower if tail == "lower" else 1.0 - lower
    if prob.size and (np.any(prob < -1e-12) or np.any(prob > 1.0 + 1e-12)):
        raise DomainError("tail probability outside [0, 1]")
    return np.clip(prob, 0.0, 1.0)


def credible_interval(posterior: Posterior, alpha: float = 0.05) -> tuple:
    """Central 1 - alpha credible interval bounds, per replicate."""
    alpha = _check_alpha(alpha)
    return posterior.ppf(alpha / 2.0), posterior.ppf(1.0 - alpha / 2.0)


@dataclass(frozen=True)
class TailProbabilityRule(DecisionRule):
    """
    Declare success when the posterior tail probability reaches a threshold.

    Attributes:
        null: Null value of the parameter
        threshold: Posterior probability cut-off; defaults to 1 - alpha/2
        alpha: Two-sided level used for the default threshold
        tail: "lower" tests P(theta < null), "upper" tests P(theta > null)
    """

    null: float
    threshold: Optional[float] = None
    alpha: float = 0.05
    tail: Tail = "lower"

    binary: ClassVar[bool] = True

    def __post_init__(self) -> None:
        if not math.isfinite(float(self.null)):
            raise InvalidParameterError(f"null must be finite, got {self.null}")
        _check_alpha(self.alpha)
        if self.tail not in ("lower", "upper"):
            raise InvalidParameterError(f"tail must be 'lower' or 'upper', got {self.tail!r}")
        if self.threshold is not None and not (0.0 < float(self.threshold) <= 1.0):
            raise InvalidParameterError(
                f"threshold must be in (0, 1], got {self.threshold}"
            )

    @property
    def cutoff(self) -> float:
        if self.threshold is not None:
            return float(self.threshold)
        return 1.0 - self.alpha / 2.0

    def statistic(self, posterior: Posterior) -> FloatArray:
        return tail_probability(posterior, self.null, self.tail)

    def evaluate(self, posterior: Posterior) -> NDArray[Any]:
        return self.statistic(posterior) >= self.cutoff

    def to_payload(self) -> Dict[str, Any]:
        return {
            "rule": "tail_probability",
            "null": float(self.null),
            "threshold": self.cutoff,
            "tail": self.tail,
        }


@dataclass(frozen=True)
class IntervalWidthRule(DecisionRule):
    """
    Width of the central credible interval.

    Without `max_width` the rule is scalar (average length criterion);
    with it, each replicate is accepted iff its width is below `max_width`.
    """

    alpha: float = 0.05
    max_width: Optional[float] = None

    def __post_init__(self) -> None:
        _check_alpha(self.alpha)
        if self.max_width is not None and not float(self.max_width) > 0.0:
            raise InvalidParameterError(f"max_width must be positive, got {self.max_width}")

    @property
    def binary(self) -> bool:  # type: ignore[override]
        return self.max_width is not None

    def width(self, posterior: Posterior) -> FloatArray:
        lo, hi = credible_interval(posterior, self.alpha)
        width = hi - lo
        if width.size and np.any(width < 0.0):
            raise DomainError("credible interval with negative width")
        return width

    def evaluate(self, posterior: Posterior) -> NDArray[Any]:
        width = self.width(posterior)
        if self.max_width is None:
            return width
        return width < float(self.max_width)

    def to_payload(self) -> Dict[str, Any]:
        return {"rule": "interval_width", "alpha": self.alpha, "max_width": self.max_width}
