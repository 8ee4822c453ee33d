"""
bayesoc.reporting.operating_characteristics
===========================================

Views over an operating-characteristic table: a wide layout with one
column per `a0` (or `delta`) value, the design points that lost replicates
to non-convergence, and the first sample size at which a curve crosses a
target.

The reporter can be built from the table a runner returned or replayed
from the `stats` events of a ledger.

Examples
--------
>>> import polars as pl
>>> from bayesoc.reporting.operating_characteristics import OCReporter
>>> table = pl.DataFrame({"n": [10, 10, 20, 20], "a0": [0.0, 1.0, 0.0, 1.0],
...                       "estimate": [0.10, 0.20, 0.30, 0.40]})
>>> OCReporter(table).wide(over="a0").columns
['n', '0.0', '1.0']
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

import polars as pl

from bayesoc.core.names import Namespace
from bayesoc.runtime.runners import to_table
from bayesoc.stats.common.smoothing import GROUP_COLUMNS, first_crossing, smooth_table

if TYPE_CHECKING:
    from bayesoc.core.traits import LedgerOps

logger = logging.getLogger(__name__)


@dataclass
class OCReporter:
    """Operating-characteristic table views."""

    table: pl.DataFrame

    @classmethod
    def from_ledger(cls, ledger: "LedgerOps", run_id: Optional[str] = None) -> "OCReporter":
        """Rebuild the table from the `oc_row` events of one run (or all runs)."""
        rows = [
            dict(row.payload)
            for row in ledger.iter_ns(namespace=Namespace.STATS, run_id=run_id, kind="oc_row")
        ]
        logger.debug("Replayed %d OC row(s) from the ledger", len(rows))
        return cls(to_table(rows))

    def _groups(self) -> List[str]:
        return [
            c
            for c in GROUP_COLUMNS
            if c in self.table.columns and self.table[c].null_count() < self.table.height
        ]

    def wide(self, column: str = "estimate", over: str = "a0") -> pl.DataFrame:
        """One row per `n`, one column per value of `over`."""
        return (
            self.table.pivot(on=over, index="n", values=column, aggregate_function="first")
            .sort("n")
        )

    def exclusion_summary(self) -> pl.DataFrame:
        """Design points with excluded replicates, worst first."""
        design = [c for c in ("n",) + GROUP_COLUMNS if c in self.table.columns]
        if "excluded" not in self.table.columns:
            return self.table.head(0).select(design)
        return (
            self.table.filter(pl.col("excluded") > 0)
            .with_columns(
                (pl.col("excluded") / (pl.col("excluded") + pl.col("replicates")))
                .alias("excluded_fraction")
            )
            .select(design + ["replicates", "excluded", "excluded_fraction", "reliable"])
            .sort("excluded_fraction", descending=True)
        )

    def unreliable(self) -> pl.DataFrame:
        """Rows flagged `reliable=False`."""
        return self.table.filter(~pl.col("reliable"))

    def crossing(
        self,
        threshold: float,
        *,
        column: str = "estimate",
        smooth: bool = True,
        frac: float = 0.5,
        below: bool = True,
    ) -> pl.DataFrame:
        """
        First sample size at which `column` crosses `threshold`, per curve.

        Args:
            threshold: Target value (e.g. a maximal interval width)
            column: Statistic read off the table
            smooth: Apply `smooth_table` first and read the smoothed curve
            frac: LOWESS span when smoothing
            below: Look for the first value below (True) or at/above the target

        Returns:
            One row per combination of non-null `a0` / `delta` with column
            ``n_cross`` (null when the curve never crosses)
        """
        groups = self._groups()
        table = self.table
        read = column
        if smooth:
            table = smooth_table(table, column=column, frac=frac, by=groups)
            read = "smoothed"
        if not groups:
            n_cross = first_crossing(table, threshold, column=read, below=below)
            return pl.DataFrame({"n_cross": [n_cross]}, schema={"n_cross": pl.Int64})
        records = []
        for key, part in table.group_by(groups, maintain_order=True):
            record = dict(zip(groups, key))
            record["n_cross"] = first_crossing(part, threshold, column=read, below=below)
            records.append(record)
        return pl.DataFrame(records).with_columns(pl.col("n_cross").cast(pl.Int64))
