"""
bayesoc.reporting.generic
=========================

A scheme-agnostic reporter that shows raw ledger events and
namespace x kind counts. Queries run through ibis (duckdb) over an
in-memory view of the ledger frame.

Examples
--------
>>> from bayesoc.backends.polars.ledger import PolarsLedger
>>> from bayesoc.core.names import Namespace
>>> from bayesoc.reporting.generic import LedgerReporter
>>> L = PolarsLedger()
>>> L.emit(time_index="t1", run_id="run#1", point_key="n=10",
...        topic="non_convergence", body={"excluded": 3})
>>> rep = LedgerReporter(L)
>>> rep.unique_namespaces()
['signals']
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List
from dataclasses import dataclass

import ibis

if TYPE_CHECKING:
    from bayesoc.backends.polars.ledger import PolarsLedger


@dataclass
class LedgerReporter:
    """
    A generic, scheme-agnostic reporter for any experiment ledger.
    Every call takes a fresh snapshot of the ledger frame.
    """

    ledger: "PolarsLedger"

    def ledger_table(self) -> Any:
        """Return the ledger as an ibis table expression."""
        return ibis.memtable(self.ledger.frame())

    def _distinct(self, column: str) -> List[str]:
        table = self.ledger_table()
        values = table.select(table[column]).distinct().to_polars()[column]
        return sorted(v for v in values.to_list() if v is not None)

    def unique_runs(self) -> List[str]:
        """List all run ids (ledger entities)."""
        return self._distinct("run_id")

    def unique_namespaces(self) -> List[str]:
        """List all unique event namespaces."""
        return self._distinct("namespace")

    def unique_kinds(self) -> List[str]:
        """List all unique event kinds."""
        return self._distinct("kind")

    def namespace_kind_counts(self) -> Any:
        """
        Return counts of events grouped by namespace and kind.

        Returns
        -------
        ibis.Table
            Table with namespace, kind, and count columns
        """
        table = self.ledger_table()
        return (
            table.group_by([table.namespace, table.kind])
            .aggregate(count=table.count())
            .order_by([table.namespace, table.kind])
        )
