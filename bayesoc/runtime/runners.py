"""
bayesoc.runtime.runners
=======================

Generic runners that sweep experiment templates over a design grid.

Runners provide the execution environment while templates define the study
logic. `GridRunner` is the aggregator: it validates the whole grid, hands
every design point an independent random stream, runs the points (optionally
in parallel through joblib), reduces each to one row of the
operating-characteristic table and writes that row once.

Examples
--------
>>> from bayesoc.core.config import SimulationConfig
>>> from bayesoc.runtime.experiment_template import design_grid
>>> from bayesoc.runtime.runners import GridRunner
>>> from bayesoc.stats.schemes.binomial.experiments import BinomialAssuranceTemplate
>>> from bayesoc.stats.common import BetaPrior, TailProbabilityRule
>>> template = BinomialAssuranceTemplate(
...     "demo", sampling_prior=BetaPrior(2, 8), fitting_prior=BetaPrior(1, 1),
...     rule=TailProbabilityRule(null=0.5))
>>> runner = GridRunner(template, SimulationConfig(replicates=500, seed=1))
>>> table = runner.run(design_grid(n=[20, 40]))
>>> table.height
2
"""

from __future__ import annotations
import logging
import threading
import uuid
import warnings
from typing import Any, Dict, List, Optional

import numpy as np
import polars as pl
from joblib import Parallel, delayed

from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import (
    NonConvergenceWarning,
    SamplerNonConvergenceError,
    SweepCancelled,
)
from bayesoc.core.names import EXCLUSION_TAG, OC_ROW_TAG, Namespace
from bayesoc.core.traits import LedgerOps
from bayesoc.runtime.experiment_template import DesignPoint, ExperimentTemplate, PointResult

logger = logging.getLogger(__name__)

_BASE_SCHEMA = {
    "n": pl.Int64,
    "a0": pl.Float64,
    "delta": pl.Float64,
    "estimate": pl.Float64,
    "mc_se": pl.Float64,
    "replicates": pl.Int64,
    "excluded": pl.Int64,
    "reliable": pl.Boolean,
}


class CancellationToken:
    """Cooperative cancellation flag, checked between design points."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _simulate_point(
    template: ExperimentTemplate,
    point: DesignPoint,
    seed: np.random.SeedSequence,
    config: SimulationConfig,
) -> PointResult:
    rng = np.random.default_rng(seed)
    return template.simulate_point(point, rng, config)


def to_table(rows: List[Dict[str, Any]]) -> pl.DataFrame:
    """Build the operating-characteristic table from reduced rows."""
    if not rows:
        return pl.DataFrame(schema=_BASE_SCHEMA)
    table = pl.DataFrame(rows, infer_schema_length=None)
    return table.with_columns(
        [pl.col(c).cast(t) for c, t in _BASE_SCHEMA.items() if c in table.columns]
    )


class GridRunner:
    """
    Sweep one template over a design grid.

    Provides the execution environment for a template with:
    - fail-fast validation of every design point
    - independent per-point random streams (`SeedSequence.spawn`), so the
      table does not depend on `n_jobs`
    - surfacing of non-convergence exclusions
    - optional ledger recording and cooperative cancellation
    """

    def __init__(
        self,
        template: ExperimentTemplate,
        config: Optional[SimulationConfig] = None,
        ledger: Optional[LedgerOps] = None,
        run_id: Optional[str] = None,
    ):
        self.template = template
        self.config = config or SimulationConfig()
        self.ledger = ledger
        self.run_id = run_id or f"{template.experiment_id}#{uuid.uuid4().hex[:8]}"
        self._tables: List[pl.DataFrame] = []

    def _reduce(self, index: int, point: DesignPoint, result: PointResult) -> Dict[str, Any]:
        """Turn one point result into a table row; the only writer of that row."""
        config = self.config
        reliable = (
            result.replicates > 0
            and result.excluded_fraction <= config.max_excluded_fraction
        )
        if result.excluded:
            message = (
                f"{point.key}: {result.excluded} of "
                f"{result.excluded + result.replicates} replicates excluded "
                "for non-convergence"
            )
            logger.warning(message)
            warnings.warn(message, NonConvergenceWarning, stacklevel=3)
            if self.ledger is not None:
                self.ledger.emit(
                    time_index=f"t{index + 1}",
                    run_id=self.run_id,
                    point_key=point.key,
                    topic="non_convergence",
                    body={
                        "excluded": result.excluded,
                        "replicates": result.replicates,
                        "reliable": reliable,
                    },
                    tag=EXCLUSION_TAG,
                )
        if not reliable:
            logger.warning(
                "%s flagged unreliable (excluded fraction %.3f > %.3f)",
                point.key,
                result.excluded_fraction,
                config.max_excluded_fraction,
            )
            if config.strict:
                raise SamplerNonConvergenceError(
                    f"{point.key}: excluded fraction {result.excluded_fraction:.3f} "
                    f"exceeds {config.max_excluded_fraction}"
                )
        row = result.to_row(point, reliable)
        if self.ledger is not None:
            self.ledger.write_event(
                time_index=f"t{index + 1}",
                namespace=Namespace.STATS,
                kind="oc_row",
                run_id=self.run_id,
                point_key=point.key,
                payload_type="OCRow",
                payload=row,
                tag=OC_ROW_TAG,
            )
        if result.estimate is not None:
            logger.debug(
                "%s -> estimate=%.4f (se %.4f)", point.key, result.estimate, result.mc_se
            )
        return row

    def run(
        self,
        grid: List[DesignPoint],
        cancel: Optional[CancellationToken] = None,
    ) -> pl.DataFrame:
        """
        Simulate every design point and return the operating-characteristic table.

        Raises:
            InvalidParameterError: before any simulation, for an invalid grid
                or template
            SweepCancelled: when `cancel` fires; `partial` holds finished rows
            SamplerNonConvergenceError: in strict mode, for unreliable points
        """
        grid = list(grid)
        self.template.setup(grid)
        root = np.random.SeedSequence(self.config.seed)
        seeds = root.spawn(len(grid))
        if self.ledger is not None:
            self.template.register_design(
                self.ledger, self.run_id, grid, self.config, entropy=str(root.entropy)
            )
        logger.info(
            "Sweeping %d design point(s) of %s with %d replicates each",
            len(grid),
            self.template.experiment_id,
            self.config.replicates,
        )

        rows: List[Dict[str, Any]] = []
        if self.config.n_jobs == 1:
            for i, (point, seed) in enumerate(zip(grid, seeds)):
                if cancel is not None and cancel.cancelled:
                    raise SweepCancelled(
                        f"cancelled after {i} of {len(grid)} design points",
                        partial=to_table(rows),
                    )
                result = _simulate_point(self.template, point, seed, self.config)
                rows.append(self._reduce(i, point, result))
        else:
            results = Parallel(n_jobs=self.config.n_jobs, return_as="generator")(
                delayed(_simulate_point)(self.template, point, seed, self.config)
                for point, seed in zip(grid, seeds)
            )
            try:
                for i, (point, result) in enumerate(zip(grid, results)):
                    rows.append(self._reduce(i, point, result))
                    if cancel is not None and cancel.cancelled and i + 1 < len(grid):
                        raise SweepCancelled(
                            f"cancelled after {i + 1} of {len(grid)} design points",
                            partial=to_table(rows),
                        )
            finally:
                results.close()

        table = to_table(rows)
        self._tables.append(table)
        logger.info("Finished %s: %d row(s)", self.run_id, table.height)
        return table

    def get_results_history(self) -> List[pl.DataFrame]:
        """Tables of all completed sweeps, oldest first."""
        return list(self._tables)


class BatchRunner:
    """
    Runner for comparing several templates on the same grid.

    Useful for mis-specification studies: one template per fitting prior,
    identical sampling prior and seed.
    """

    def __init__(
        self,
        templates: List[ExperimentTemplate],
        config: Optional[SimulationConfig] = None,
        ledger: Optional[LedgerOps] = None,
    ):
        self.templates = templates
        self.config = config or SimulationConfig()
        self.ledger = ledger

    def run(
        self, grid: List[DesignPoint], cancel: Optional[CancellationToken] = None
    ) -> pl.DataFrame:
        """Run every template and stack the tables with a `template` column."""
        tables = []
        for template in self.templates:
            table = GridRunner(template, self.config, self.ledger).run(grid, cancel)
            tables.append(
                table.with_columns(pl.lit(str(template.experiment_id)).alias("template"))
            )
        return pl.concat(tables, how="diagonal_relaxed")


# Domain name for the grid sweep.
OperatingCharacteristics = GridRunner
