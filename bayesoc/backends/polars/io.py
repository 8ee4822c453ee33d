"""
bayesoc.backends.polars.io
==========================

Persistence of sweep results, for the plotting collaborator and for audit.

- `write_table` / `read_table`: one operating-characteristic table as
  Parquet or CSV, chosen by the file suffix
- `RunArchive`: one directory per run id holding its table and the ledger
  events recorded under that run

No simulation semantics live here.

Examples
--------
>>> import polars as pl
>>> from bayesoc.backends.polars.io import RunArchive
>>> table = pl.DataFrame({"n": [10, 20], "estimate": [0.02, 0.03]})
>>> archive = RunArchive("_oc_runs")  # doctest: +SKIP
>>> archive.save("t1e#1", table)  # doctest: +SKIP
>>> archive.load_table("t1e#1").equals(table)  # doctest: +SKIP
True
"""

from __future__ import annotations
import logging
import os
from typing import Callable, Dict, List, Optional, Tuple

import polars as pl

from bayesoc.backends.polars.ledger import PolarsLedger
from bayesoc.core.errors import InvalidParameterError

logger = logging.getLogger(__name__)

_Writer = Callable[[pl.DataFrame, str], None]
_Reader = Callable[[str], pl.DataFrame]

_FORMATS: Dict[str, Tuple[_Writer, _Reader]] = {
    ".parquet": (lambda df, path: df.write_parquet(path), pl.read_parquet),
    ".csv": (lambda df, path: df.write_csv(path), pl.read_csv),
}

# CSV loses the dtype of all-null design columns.
_DESIGN_DTYPES = {"n": pl.Int64, "a0": pl.Float64, "delta": pl.Float64}


def _suffix(path: str) -> str:
    suffix = os.path.splitext(path)[1].lower()
    if suffix not in _FORMATS:
        raise InvalidParameterError(
            f"unsupported table format {suffix!r}; use one of {sorted(_FORMATS)}"
        )
    return suffix


def write_table(table: pl.DataFrame, path: str) -> None:
    """Write an OC table, creating parent directories as needed."""
    path = str(path)
    writer, _ = _FORMATS[_suffix(path)]
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    writer(table, path)
    logger.debug("Wrote %d row(s) to %s", table.height, path)


def read_table(path: str) -> pl.DataFrame:
    """Read an OC table written by `write_table`."""
    path = str(path)
    _, reader = _FORMATS[_suffix(path)]
    table = reader(path)
    return table.with_columns(
        [pl.col(c).cast(t) for c, t in _DESIGN_DTYPES.items() if c in table.columns]
    )


class RunArchive:
    """
    Directory of finished sweeps, one sub-directory per run id.

    Args:
        root: Archive directory (created on first save)
        table_format: "parquet" or "csv" for the OC table; ledger events
            are always stored as Parquet to keep their UTC timestamps
    """

    TABLE = "oc_table"
    LEDGER = "ledger.parquet"

    def __init__(self, root: str, table_format: str = "parquet"):
        self.root = str(root)
        self.table_file = f"{self.TABLE}.{table_format}"
        _suffix(self.table_file)

    def _dir(self, run_id: str) -> str:
        return os.path.join(self.root, str(run_id).replace(os.sep, "_"))

    def save(
        self, run_id: str, table: pl.DataFrame, ledger: Optional[PolarsLedger] = None
    ) -> str:
        """Store `table` (and the run's ledger events); return the run directory."""
        target = self._dir(run_id)
        write_table(table, os.path.join(target, self.table_file))
        if ledger is not None:
            events = ledger.frame().filter(pl.col("run_id") == str(run_id))
            events.write_parquet(os.path.join(target, self.LEDGER))
            logger.debug("Archived %d ledger event(s) of %s", events.height, run_id)
        logger.info("Archived run %s in %s", run_id, target)
        return target

    def load_table(self, run_id: str) -> pl.DataFrame:
        return read_table(os.path.join(self._dir(run_id), self.table_file))

    def load_ledger(self, run_id: str) -> PolarsLedger:
        """Rebuild a ledger holding the archived events of `run_id`."""
        path = os.path.join(self._dir(run_id), self.LEDGER)
        if not os.path.exists(path):
            raise InvalidParameterError(f"no ledger archived for run {run_id!r}")
        ledger = PolarsLedger()
        ledger.replace_with_frame(pl.read_parquet(path))
        return ledger

    def runs(self) -> List[str]:
        """Archived run ids, sorted."""
        if not os.path.isdir(self.root):
            return []
        return sorted(
            name
            for name in os.listdir(self.root)
            if os.path.isfile(os.path.join(self.root, name, self.table_file))
        )
