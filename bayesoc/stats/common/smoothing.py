"""
bayesoc.stats.common.smoothing
==============================

Post-processing of operating-characteristic tables.

Simulated curves carry Monte Carlo noise, which makes "the first sample size
where the curve crosses a target" jumpy. `smooth_table` fits a local
polynomial regression (LOWESS) of a statistic on `n`, separately for every
combination of the other design columns, and `first_crossing` reads the
crossing point off the smoothed column.

Both are pure functions of the table; they never re-run the simulation.

Examples
--------
>>> import polars as pl
>>> table = pl.DataFrame({"n": [10, 20, 30, 40], "estimate": [0.30, 0.18, 0.12, 0.09]})
>>> first_crossing(table, 0.10, column="estimate")
40
>>> first_crossing(table, 0.5, column="estimate", below=False) is None
True
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence

import numpy as np
import polars as pl
from statsmodels.nonparametric.smoothers_lowess import lowess

from bayesoc.core.errors import InvalidParameterError

logger = logging.getLogger(__name__)

GROUP_COLUMNS = ("a0", "delta")


def _groups(table: pl.DataFrame, by: Optional[Sequence[str]]) -> List[str]:
    if by is not None:
        return list(by)
    return [c for c in GROUP_COLUMNS if c in table.columns and table[c].null_count() < table.height]


def smooth_table(
    table: pl.DataFrame,
    *,
    column: str = "estimate",
    x: str = "n",
    frac: float = 0.5,
    it: int = 0,
    by: Optional[Sequence[str]] = None,
    out: str = "smoothed",
) -> pl.DataFrame:
    """
    Add a LOWESS-smoothed copy of `column` as `out`.

    Args:
        table: Operating-characteristic table
        column: Statistic to smooth
        x: Design column to smooth along
        frac: Fraction of the points used for each local fit
        it: Robustifying iterations (0 = plain local linear fit)
        by: Columns defining separate curves; defaults to the non-null
            design columns among ``a0`` and ``delta``

    Returns:
        The table, sorted by (`by`, `x`), with the extra column
    """
    if not (0.0 < frac <= 1.0):
        raise InvalidParameterError(f"frac must be in (0, 1], got {frac}")
    for name in (column, x):
        if name not in table.columns:
            raise InvalidParameterError(f"column {name!r} not in table")
    groups = _groups(table, by)
    ordered = table.sort(groups + [x]) if groups else table.sort(x)
    parts = []
    for _, part in ordered.group_by(groups, maintain_order=True) if groups else [((), ordered)]:
        xs = part[x].cast(pl.Float64).to_numpy()
        ys = part[column].cast(pl.Float64).to_numpy()
        # rows without an estimate (every replicate excluded) stay null
        ok = np.isfinite(ys)
        fitted = np.full(ys.shape, np.nan)
        if ok.sum() < 3:
            fitted[ok] = ys[ok]
        else:
            fitted[ok] = lowess(ys[ok], xs[ok], frac=frac, it=it, return_sorted=False)
        parts.append(part.with_columns(pl.Series(out, fitted).fill_nan(None)))
    logger.debug("Smoothed %s over %s in %d curve(s)", column, x, len(parts))
    return pl.concat(parts)


def first_crossing(
    table: pl.DataFrame,
    threshold: float,
    *,
    column: str = "smoothed",
    x: str = "n",
    below: bool = True,
) -> Optional[int]:
    """
    Smallest `x` at which `column` is below (or at/above) `threshold`.

    Returns None when the curve never crosses.
    """
    if column not in table.columns:
        raise InvalidParameterError(f"column {column!r} not in table")
    cond = pl.col(column) < threshold if below else pl.col(column) >= threshold
    hits = table.filter(cond)
    if hits.height == 0:
        return None
    return int(hits[x].min())
