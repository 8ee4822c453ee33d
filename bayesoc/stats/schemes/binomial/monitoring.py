"""
bayesoc.stats.schemes.binomial.monitoring
=========================================

Sequential monitoring of a single-arm binary endpoint.

Every simulated trial is a small state machine:

    ACCRUING --efficacy--> STOPPED_FOR_EFFICACY
    ACCRUING --futility--> STOPPED_FOR_FUTILITY
    ACCRUING --final look, no stop--> COMPLETED
    ACCRUING --interim look, no stop--> ACCRUING

The three right-hand states are terminal. At each look the posterior of the
cumulative data is evaluated twice: efficacy iff P(theta < null) >= pp_eff,
futility iff P(theta < futility_null) <= pp_fut. When both fire at the same
look the configured `TieBreak` decides.

`TrialMonitor` is the scalar machine (one trial); `run_monitoring` applies
the same transition function to all replicates of a design point at once.

Examples
--------
>>> m = TrialMonitor(n_looks=2)
>>> m.step(efficacy=False, futility=False)
<MonitoringState.ACCRUING: 'accruing'>
>>> m.step(efficacy=True, futility=False)
<MonitoringState.STOPPED_FOR_EFFICACY: 'stopped_for_efficacy'>
>>> transition(True, True, final=False, tie_break=TieBreak.CONTINUE)
<MonitoringState.ACCRUING: 'accruing'>
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from bayesoc.core.components import FloatArray, Likelihood, Prior
from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import InvalidParameterError, InvalidTransitionError
from bayesoc.stats.common.decision import Tail, tail_probability
from bayesoc.stats.common.mcmc import Sampler
from bayesoc.stats.common.posterior import DrawsPosterior, update

logger = logging.getLogger(__name__)


class MonitoringState(str, Enum):
    """States of one monitored trial."""

    ACCRUING = "accruing"
    STOPPED_FOR_EFFICACY = "stopped_for_efficacy"
    STOPPED_FOR_FUTILITY = "stopped_for_futility"
    COMPLETED = "completed"

    @property
    def terminal(self) -> bool:
        return self is not MonitoringState.ACCRUING


class TieBreak(str, Enum):
    """What to do when efficacy and futility fire at the same look.

    - EFFICACY: stop for efficacy
    - FUTILITY: stop for futility
    - CONTINUE: ignore both and keep accruing (complete at the final look)
    """

    EFFICACY = "efficacy"
    FUTILITY = "futility"
    CONTINUE = "continue"


# Integer codes for the vectorised machine; order follows the Enum.
STATES: Tuple[MonitoringState, ...] = tuple(MonitoringState)
_CODE = {state: i for i, state in enumerate(STATES)}
ACCRUING = _CODE[MonitoringState.ACCRUING]
EFFICACY = _CODE[MonitoringState.STOPPED_FOR_EFFICACY]
FUTILITY = _CODE[MonitoringState.STOPPED_FOR_FUTILITY]
COMPLETED = _CODE[MonitoringState.COMPLETED]


def transition(
    efficacy: bool, futility: bool, *, final: bool, tie_break: TieBreak
) -> MonitoringState:
    """Next state of an accruing trial after one look."""
    if efficacy and futility:
        if tie_break is TieBreak.EFFICACY:
            return MonitoringState.STOPPED_FOR_EFFICACY
        if tie_break is TieBreak.FUTILITY:
            return MonitoringState.STOPPED_FOR_FUTILITY
    elif efficacy:
        return MonitoringState.STOPPED_FOR_EFFICACY
    elif futility:
        return MonitoringState.STOPPED_FOR_FUTILITY
    return MonitoringState.COMPLETED if final else MonitoringState.ACCRUING


def advance(
    efficacy: NDArray[np.bool_],
    futility: NDArray[np.bool_],
    *,
    final: bool,
    tie_break: TieBreak,
) -> NDArray[np.int8]:
    """Vectorised `transition` for accruing trials; returns state codes."""
    both = efficacy & futility
    if tie_break is TieBreak.EFFICACY:
        eff, fut = efficacy, futility & ~efficacy
    elif tie_break is TieBreak.FUTILITY:
        eff, fut = efficacy & ~futility, futility
    else:
        eff, fut = efficacy & ~both, futility & ~both
    rest = COMPLETED if final else ACCRUING
    out = np.full(efficacy.shape, rest, dtype=np.int8)
    out[eff] = EFFICACY
    out[fut] = FUTILITY
    return out


@dataclass
class TrialMonitor:
    """Scalar monitoring state machine for a single trial."""

    n_looks: int
    tie_break: TieBreak = TieBreak.CONTINUE
    state: MonitoringState = MonitoringState.ACCRUING
    look: int = 0
    history: List[MonitoringState] = field(default_factory=list)

    def step(self, efficacy: bool, futility: bool) -> MonitoringState:
        """Apply the decisions of the next look."""
        if self.state.terminal:
            raise InvalidTransitionError(f"trial already {self.state.value}")
        if self.look >= self.n_looks:
            raise InvalidTransitionError("no looks left")
        self.look += 1
        self.state = transition(
            efficacy, futility, final=self.look == self.n_looks, tie_break=self.tie_break
        )
        self.history.append(self.state)
        return self.state


@dataclass(frozen=True)
class MonitoringRule:
    """
    Efficacy and futility criteria applied at every look.

    Attributes:
        null: Efficacy null; efficacy iff P(theta < null) >= pp_eff
        pp_eff: Posterior probability needed to stop for efficacy
        pp_fut: Futility iff P(theta < futility_null) <= pp_fut
        futility_null: Futility reference value (defaults to `null`)
        tail: "lower" or "upper", as for `TailProbabilityRule`
        tie_break: Policy when both criteria fire at the same look
    """

    null: float
    pp_eff: float = 0.975
    pp_fut: float = 0.05
    futility_null: Optional[float] = None
    tail: Tail = "lower"
    tie_break: TieBreak = TieBreak.CONTINUE

    def __post_init__(self) -> None:
        for name in ("null", "futility_null"):
            value = getattr(self, name)
            if value is not None and not np.isfinite(float(value)):
                raise InvalidParameterError(f"{name} must be finite, got {value}")
        for name in ("pp_eff", "pp_fut"):
            value = float(getattr(self, name))
            if not (0.0 <= value <= 1.0):
                raise InvalidParameterError(f"{name} must be in [0, 1], got {value}")
        if self.tail not in ("lower", "upper"):
            raise InvalidParameterError(f"tail must be 'lower' or 'upper', got {self.tail!r}")
        object.__setattr__(self, "tie_break", TieBreak(self.tie_break))

    def triggers(self, posterior: Any) -> Tuple[NDArray[np.bool_], NDArray[np.bool_]]:
        """Efficacy and futility indicators for every replicate of `posterior`."""
        efficacy = tail_probability(posterior, self.null, self.tail) >= self.pp_eff
        ref = self.null if self.futility_null is None else self.futility_null
        futility = tail_probability(posterior, ref, self.tail) <= self.pp_fut
        return efficacy, futility

    def to_payload(self) -> Dict[str, Any]:
        return {
            "rule": "monitoring",
            "null": float(self.null),
            "pp_eff": float(self.pp_eff),
            "pp_fut": float(self.pp_fut),
            "futility_null": self.futility_null,
            "tail": self.tail,
            "tie_break": self.tie_break.value,
        }


@dataclass(frozen=True)
class MonitoringOutcome:
    """Per-replicate results of a monitored design point."""

    states: NDArray[np.int8]
    stop_look: NDArray[np.int64]
    sample_size: NDArray[np.int64]
    excluded: NDArray[np.bool_]
    looks: Tuple[int, ...]

    def _kept(self) -> NDArray[np.int8]:
        return self.states[~self.excluded]

    def probability(self, state: MonitoringState) -> float:
        kept = self._kept()
        return float(np.mean(kept == _CODE[state])) if kept.size else float("nan")

    def stop_by_look(self) -> List[float]:
        """Share of trials stopping (for either reason) at each look."""
        kept = ~self.excluded
        stopped = np.isin(self.states, (EFFICACY, FUTILITY)) & kept
        total = max(int(kept.sum()), 1)
        return [
            float(np.sum(stopped & (self.stop_look == k + 1)) / total)
            for k in range(len(self.looks))
        ]

    def expected_sample_size(self) -> float:
        kept = ~self.excluded
        return float(self.sample_size[kept].mean()) if kept.any() else float("nan")


def run_monitoring(
    theta: FloatArray,
    y_cum: FloatArray,
    looks: Sequence[int],
    *,
    fitting_prior: Prior,
    likelihood: Likelihood,
    rule: MonitoringRule,
    a0: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    config: Optional[SimulationConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> MonitoringOutcome:
    """
    Drive all replicates through the monitoring state machine.

    Args:
        theta: Per-replicate truth (only its length is used)
        y_cum: Cumulative event counts, shape (R, K)
        looks: Cumulative sample size at each of the K looks
        fitting_prior: Prior used at every look
        likelihood: Binomial likelihood
        rule: Efficacy / futility criteria and tie-break policy
        a0: Discounting weight for a power prior

    Returns:
        A `MonitoringOutcome`; replicates dropped by the sampler at any look
        are marked in `excluded` and leave the machine
    """
    r = int(np.asarray(theta).size)
    k = len(looks)
    states = np.full(r, ACCRUING, dtype=np.int8)
    stop_look = np.full(r, k, dtype=np.int64)
    excluded = np.zeros(r, dtype=bool)

    for j, n_j in enumerate(looks):
        active = np.flatnonzero((states == ACCRUING) & ~excluded)
        if active.size == 0:
            break
        posterior = update(
            fitting_prior,
            likelihood,
            y_cum[active, j],
            n_j,
            a0=a0,
            sampler=sampler,
            config=config,
            rng=rng,
        )
        if isinstance(posterior, DrawsPosterior) and posterior.excluded:
            kept = active[list(posterior.index)]
            excluded[np.setdiff1d(active, kept)] = True
            active = kept
        efficacy, futility = rule.triggers(posterior)
        new = advance(efficacy, futility, final=j == k - 1, tie_break=rule.tie_break)
        states[active] = new
        stop_look[active[new != ACCRUING]] = j + 1

    sample_size = np.asarray(looks, dtype=np.int64)[stop_look - 1]
    if excluded.any():
        logger.warning("%d monitored replicates excluded for non-convergence", int(excluded.sum()))
    return MonitoringOutcome(
        states=states,
        stop_look=stop_look,
        sample_size=sample_size,
        excluded=excluded,
        looks=tuple(int(n) for n in looks),
    )
