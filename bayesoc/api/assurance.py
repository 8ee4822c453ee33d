"""
bayesoc.api.assurance
=====================

Design-evaluation facade with trial-statistics vocabulary.

Each function builds the matching experiment template, sweeps it over the
requested sample sizes and returns the operating-characteristic table.

Examples
--------
>>> from bayesoc.api.assurance import assurance, type_one_error
>>> from bayesoc.stats.common import BetaPrior
>>> table = assurance(BetaPrior(2, 8), BetaPrior(1, 1), n=[50], null=0.5,
...                   replicates=2000, seed=3)
>>> table["estimate"][0] > 0.5
True
>>> t1e = type_one_error(BetaPrior(1, 1), n=[20, 40], null=0.5,
...                      replicates=2000, seed=3)
>>> t1e.height
2
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

import polars as pl

from bayesoc.core.components import DecisionRule, Prior
from bayesoc.core.config import SimulationConfig
from bayesoc.core.traits import LedgerOps
from bayesoc.runtime.experiment_template import FixedDesignTemplate, design_grid
from bayesoc.runtime.runners import CancellationToken, GridRunner
from bayesoc.stats.common.decision import IntervalWidthRule, Tail, TailProbabilityRule
from bayesoc.stats.common.distributions import PointMass
from bayesoc.stats.common.mcmc import Sampler
from bayesoc.stats.common.smoothing import first_crossing, smooth_table
from bayesoc.stats.schemes.binomial.experiments import (
    BinomialAssuranceTemplate,
    BinomialMonitoringTemplate,
)
from bayesoc.stats.schemes.binomial.monitoring import MonitoringRule, TieBreak
from bayesoc.stats.schemes.normal.experiments import NormalAssuranceTemplate

logger = logging.getLogger(__name__)


def _config(
    config: Optional[SimulationConfig],
    replicates: Optional[int],
    seed: Optional[int],
    n_jobs: Optional[int],
) -> SimulationConfig:
    base = config or SimulationConfig()
    changes = {
        k: v
        for k, v in (("replicates", replicates), ("seed", seed), ("n_jobs", n_jobs))
        if v is not None
    }
    return base.replace(**changes) if changes else base


def _template(
    experiment_id: str,
    sampling_prior: Prior,
    fitting_prior: Prior,
    rule: DecisionRule,
    sigma: Optional[float],
    null: Optional[float],
    sampler: Optional[Sampler],
) -> FixedDesignTemplate:
    if sigma is None:
        return BinomialAssuranceTemplate(
            experiment_id,
            sampling_prior=sampling_prior,
            fitting_prior=fitting_prior,
            rule=rule,
            null=null,
            sampler=sampler,
        )
    return NormalAssuranceTemplate(
        experiment_id,
        sigma=sigma,
        sampling_prior=sampling_prior,
        fitting_prior=fitting_prior,
        rule=rule,
        null=null,
        sampler=sampler,
    )


def assurance(
    sampling_prior: Prior,
    fitting_prior: Prior,
    n: Iterable[int],
    *,
    null: float,
    alpha: float = 0.05,
    threshold: Optional[float] = None,
    tail: Tail = "lower",
    a0: Optional[Iterable[float]] = None,
    sigma: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    replicates: Optional[int] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    ledger: Optional[LedgerOps] = None,
    cancel: Optional[CancellationToken] = None,
    experiment_id: str = "assurance",
) -> pl.DataFrame:
    """
    Probability of trial success averaged over the sampling prior.

    Parameters
    ----------
    sampling_prior : Prior
        Belief about the true parameter used to generate data
    fitting_prior : Prior
        Prior used in the analysis of every simulated trial
    n : iterable of int
        Candidate sample sizes
    null : float
        Null value of the posterior tail-probability rule
    alpha : float, default=0.05
        Two-sided level; success iff P(theta < null | data) >= 1 - alpha/2
    threshold : float, optional
        Explicit posterior-probability cut-off overriding `alpha`
    tail : {"lower", "upper"}, default="lower"
        Direction of the tail probability
    a0 : iterable of float, optional
        Discounting weights to sweep (requires a `PowerPrior` fitting prior)
    sigma : float, optional
        Known standard deviation; switches to a continuous endpoint
    sampler : Sampler, optional
        Iterative sampler for non-conjugate fitting priors
    replicates, seed, n_jobs : optional
        Shortcuts overriding the corresponding `config` fields

    Returns
    -------
    polars.DataFrame
        One row per design point with `estimate` (the assurance) and `mc_se`
    """
    rule = TailProbabilityRule(null=null, threshold=threshold, alpha=alpha, tail=tail)
    template = _template(experiment_id, sampling_prior, fitting_prior, rule, sigma, null, sampler)
    runner = GridRunner(template, _config(config, replicates, seed, n_jobs), ledger)
    return runner.run(design_grid(n=n, a0=a0), cancel)


def type_one_error(
    fitting_prior: Prior,
    n: Iterable[int],
    *,
    null: float,
    alpha: float = 0.05,
    threshold: Optional[float] = None,
    tail: Tail = "lower",
    a0: Optional[Iterable[float]] = None,
    sigma: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    replicates: Optional[int] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    ledger: Optional[LedgerOps] = None,
    cancel: Optional[CancellationToken] = None,
    experiment_id: str = "type_one_error",
) -> pl.DataFrame:
    """
    Rejection rate when the null is true.

    Data are generated at exactly ``null`` (a point-mass sampling prior), so
    `estimate` is the frequentist type I error of the Bayesian rule.

    Examples
    --------
    >>> from bayesoc.stats.common import BetaPrior, PowerPrior
    >>> prior = PowerPrior(BetaPrior(1, 1), y0=12, n0=40)
    >>> table = type_one_error(prior, n=[40], null=0.3, a0=[0.0, 1.0],
    ...                        replicates=1000, seed=1)
    >>> table["a0"].to_list()
    [0.0, 1.0]
    """
    return assurance(
        PointMass(null),
        fitting_prior,
        n,
        null=null,
        alpha=alpha,
        threshold=threshold,
        tail=tail,
        a0=a0,
        sigma=sigma,
        sampler=sampler,
        replicates=replicates,
        seed=seed,
        n_jobs=n_jobs,
        config=config,
        ledger=ledger,
        cancel=cancel,
        experiment_id=experiment_id,
    )


def power_curve(
    fitting_prior: Prior,
    n: Iterable[int],
    delta: Iterable[float],
    *,
    null: float,
    alpha: float = 0.05,
    threshold: Optional[float] = None,
    tail: Tail = "lower",
    a0: Optional[Iterable[float]] = None,
    sigma: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    replicates: Optional[int] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    ledger: Optional[LedgerOps] = None,
    cancel: Optional[CancellationToken] = None,
    experiment_id: str = "power_curve",
) -> pl.DataFrame:
    """
    Rejection rate at true values ``null + delta`` for every `delta`.

    ``delta = 0`` reproduces the type I error; the sign of the effect of
    interest follows `tail` (negative shifts for ``tail="lower"``).
    """
    rule = TailProbabilityRule(null=null, threshold=threshold, alpha=alpha, tail=tail)
    template = _template(
        experiment_id, PointMass(null), fitting_prior, rule, sigma, null, sampler
    )
    runner = GridRunner(template, _config(config, replicates, seed, n_jobs), ledger)
    return runner.run(design_grid(n=n, a0=a0, delta=delta), cancel)


@dataclass
class ALCResult:
    """Average-length-criterion sweep and the smallest adequate sample size."""

    table: pl.DataFrame
    n_required: Optional[int]
    max_width: float


def alc_sample_size(
    sampling_prior: Prior,
    fitting_prior: Prior,
    n: Iterable[int],
    *,
    max_width: float,
    alpha: float = 0.05,
    frac: float = 0.5,
    smooth: bool = True,
    sigma: Optional[float] = None,
    sampler: Optional[Sampler] = None,
    replicates: Optional[int] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    ledger: Optional[LedgerOps] = None,
    cancel: Optional[CancellationToken] = None,
    experiment_id: str = "alc",
) -> ALCResult:
    """
    Smallest sample size whose average credible-interval width is below
    `max_width` (average length criterion).

    Parameters
    ----------
    max_width : float
        Target average width of the central 1 - alpha interval
    frac : float, default=0.5
        LOWESS span used to smooth the width curve before reading the crossing
    smooth : bool, default=True
        Read the crossing off the smoothed curve rather than the raw one

    Returns
    -------
    ALCResult
        The sweep table (with a `smoothed` column when smoothing) and
        `n_required` (None if no candidate size is large enough)
    """
    rule = IntervalWidthRule(alpha=alpha)
    template = _template(experiment_id, sampling_prior, fitting_prior, rule, sigma, None, sampler)
    runner = GridRunner(template, _config(config, replicates, seed, n_jobs), ledger)
    table = runner.run(design_grid(n=n), cancel)
    column = "estimate"
    if smooth:
        table = smooth_table(table, frac=frac)
        column = "smoothed"
    n_required = first_crossing(table, max_width, column=column, below=True)
    logger.info("ALC: n_required=%s for max width %g", n_required, max_width)
    return ALCResult(table=table, n_required=n_required, max_width=float(max_width))


def sequential_monitoring(
    sampling_prior: Prior,
    fitting_prior: Prior,
    n: Iterable[int],
    *,
    null: float,
    pp_eff: float = 0.975,
    pp_fut: float = 0.05,
    futility_null: Optional[float] = None,
    look_fractions: Sequence[float] = (0.5, 1.0),
    tie_break: Union[TieBreak, str] = TieBreak.CONTINUE,
    tail: Tail = "lower",
    a0: Optional[Iterable[float]] = None,
    delta: Optional[Iterable[float]] = None,
    sampler: Optional[Sampler] = None,
    replicates: Optional[int] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    config: Optional[SimulationConfig] = None,
    ledger: Optional[LedgerOps] = None,
    cancel: Optional[CancellationToken] = None,
    experiment_id: str = "monitoring",
) -> pl.DataFrame:
    """
    Operating characteristics of a single-arm binary trial with interim looks.

    Parameters
    ----------
    n : iterable of int
        Candidate maximum sample sizes
    pp_eff, pp_fut : float
        Efficacy and futility posterior-probability thresholds
    look_fractions : sequence of float, default=(0.5, 1.0)
        Information fractions of the looks; the last must be 1
    tie_break : TieBreak or {"efficacy", "futility", "continue"}
        Policy when both criteria fire at the same look

    Returns
    -------
    polars.DataFrame
        `estimate` is P(stop for efficacy); further columns `p_futility`,
        `p_completed`, `expected_n` and `p_stop_look<k>`

    Examples
    --------
    >>> from bayesoc.stats.common import BetaPrior
    >>> table = sequential_monitoring(BetaPrior(1, 1), BetaPrior(1, 1), n=[40],
    ...                               null=0.5, replicates=500, seed=2)
    >>> {"p_efficacy", "p_futility", "expected_n"} <= set(table.columns)
    True
    """
    rule = MonitoringRule(
        null=null,
        pp_eff=pp_eff,
        pp_fut=pp_fut,
        futility_null=futility_null,
        tail=tail,
        tie_break=TieBreak(tie_break),
    )
    template = BinomialMonitoringTemplate(
        experiment_id,
        sampling_prior=sampling_prior,
        fitting_prior=fitting_prior,
        rule=rule,
        look_fractions=look_fractions,
        sampler=sampler,
    )
    runner = GridRunner(template, _config(config, replicates, seed, n_jobs), ledger)
    return runner.run(design_grid(n=n, a0=a0, delta=delta), cancel)
