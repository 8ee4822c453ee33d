"""
bayesoc.core.traits
===================

Mixin giving any `Ledger` the typed vocabulary of a simulation run.

A host implements `Ledger.append`, `Ledger.emit_signal` and
`Ledger.reader`; `LedgerOps` adds:

- `write_event()`: a record stamped with the current UTC time
- `emit()`: a signal (warning-like event) for one design point
- `latest()`, `iter_ns()`: filtered readers keyed by run id
- `points()`: the design points a run has recorded so far

Examples
--------
>>> from bayesoc.backends.polars.ledger import PolarsLedger
>>> from bayesoc.core.names import Namespace
>>> L = PolarsLedger()
>>> for n in (10, 20):
...     L.write_event(time_index=f"t{n}", namespace=Namespace.STATS, kind="oc_row",
...                   run_id="run#1", point_key=f"n={n}",
...                   payload_type="OCRow", payload={"n": n, "estimate": 0.02})
>>> L.latest(namespace=Namespace.STATS).payload["n"]
20
>>> L.points("run#1")
['n=10', 'n=20']
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bayesoc.core.ledger import Ledger, NamespaceLike, Row
from bayesoc.core.names import Namespace, PointKey, RunId, TimeIndex


def _ns(namespace: NamespaceLike) -> str:
    return namespace.value if isinstance(namespace, Namespace) else str(namespace)


class LedgerOps(Ledger):
    """Typed writers and readers on top of the abstract `Ledger`."""

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def write_event(
        self,
        *,
        time_index: Union[TimeIndex, str],
        namespace: NamespaceLike,
        kind: str,
        run_id: Union[RunId, str],
        point_key: Union[PointKey, str],
        payload_type: str,
        payload: Dict[str, Any],
        tag: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> None:
        """Append an event; `ts` defaults to now (UTC)."""
        self.append(
            time_index=str(time_index),
            ts=ts or self._now(),
            namespace=_ns(namespace),
            kind=kind,
            run_id=str(run_id),
            point_key=str(point_key),
            payload_type=payload_type,
            payload=payload,
            tag=tag,
        )

    def emit(
        self,
        *,
        time_index: Union[TimeIndex, str],
        run_id: Union[RunId, str],
        point_key: Union[PointKey, str],
        topic: str,
        body: Dict[str, Any],
        tag: str = "signal",
        namespace: NamespaceLike = Namespace.SIGNALS,
        ts: Optional[datetime] = None,
    ) -> None:
        """Append a signal about one design point."""
        self.emit_signal(
            time_index=str(time_index),
            ts=ts or self._now(),
            run_id=str(run_id),
            point_key=str(point_key),
            topic=topic,
            body=body,
            tag=tag,
            namespace=_ns(namespace),
        )

    def latest(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[Union[RunId, str]] = None,
        tag: Optional[str] = None,
    ) -> Optional[Row]:
        return self.reader().latest(
            namespace=_ns(namespace) if namespace is not None else None,
            kind=kind,
            run_id=str(run_id) if run_id else None,
            tag=tag,
        )

    def iter_ns(
        self,
        *,
        namespace: NamespaceLike,
        run_id: Optional[Union[RunId, str]] = None,
        kind: Optional[str] = None,
    ) -> Iterable[Row]:
        """Rows of one namespace in append order, optionally for one run and kind."""
        return self.reader().iter_rows(
            namespace=_ns(namespace),
            kind=kind,
            run_id=str(run_id) if run_id else None,
        )

    def points(self, run_id: Union[RunId, str]) -> List[str]:
        """Point keys with a recorded OC row for `run_id`, in sweep order."""
        return [
            row.point_key
            for row in self.iter_ns(namespace=Namespace.STATS, run_id=run_id, kind="oc_row")
        ]
