"""
bayesoc.backends.polars.ledger
==============================

In-memory ledger kept as a polars frame, with payloads stored as compact
JSON strings. Persistence lives in `bayesoc.backends.polars.io`.

Appends land in a row buffer that is folded into the frame on the next
read, so a sweep writing one event per design point does not copy the
frame on every write.

Examples
--------
>>> from bayesoc.backends.polars.ledger import PolarsLedger
>>> from bayesoc.core.names import Namespace
>>> L = PolarsLedger()
>>> L.write_event(time_index="t1", namespace=Namespace.DESIGN, kind="registered",
...               run_id="run#1", point_key="design",
...               payload_type="OCDesign", payload={"replicates": 1000}, tag="oc:design")
>>> L.reader().count(namespace=Namespace.DESIGN.value)
1
>>> L.frame().select("run_id", "point_key").row(0)
('run#1', 'design')
"""

from __future__ import annotations
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

import polars as pl

from bayesoc.core.ledger import LedgerReader, NamespaceLike, PayloadRegistry, Row
from bayesoc.core.names import Namespace
from bayesoc.core.traits import LedgerOps, _ns

logger = logging.getLogger(__name__)

SCHEMA: Dict[str, Any] = {
    "uuid": pl.Utf8,
    "time_index": pl.Utf8,
    "ts": pl.Datetime(time_unit="us", time_zone="UTC"),
    "namespace": pl.Utf8,
    "kind": pl.Utf8,
    "run_id": pl.Utf8,
    "point_key": pl.Utf8,
    "tag": pl.Utf8,
    "payload_type": pl.Utf8,
    "payload": pl.Utf8,  # JSON
}

_FILTERS = ("namespace", "kind", "run_id", "point_key", "tag")


def _row(rec: Dict[str, Any]) -> Row:
    payload = json.loads(rec["payload"]) if rec["payload"] else {}
    return Row(
        uuid=rec["uuid"],
        time_index=rec["time_index"],
        ts=rec["ts"],
        namespace=rec["namespace"],
        kind=rec["kind"],
        run_id=rec["run_id"],
        point_key=rec["point_key"],
        tag=rec["tag"],
        payload_type=rec["payload_type"],
        payload=PayloadRegistry.decode(rec["payload_type"], payload),
    )


def normalise(df: pl.DataFrame) -> pl.DataFrame:
    """Add missing ledger columns as nulls and fix column order and dtypes."""
    missing = [pl.lit(None, dtype=t).alias(c) for c, t in SCHEMA.items() if c not in df.columns]
    if missing:
        df = df.with_columns(missing)
    return df.select([pl.col(c).cast(t) for c, t in SCHEMA.items()])


class FrameReader(LedgerReader):
    """Read-only view over a snapshot of the ledger frame."""

    def __init__(self, df: pl.DataFrame) -> None:
        self.df = df

    def _filter(self, **filters: Any) -> pl.DataFrame:
        q = self.df
        for name, value in filters.items():
            if name not in _FILTERS:
                raise TypeError(f"unknown ledger filter {name!r}")
            if value is None:
                continue
            if name == "namespace":
                value = _ns(value)
            q = q.filter(pl.col(name) == str(value))
        return q

    def iter_rows(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
        point_key: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Iterator[Row]:
        q = self._filter(
            namespace=namespace, kind=kind, run_id=run_id, point_key=point_key, tag=tag
        )
        for rec in q.iter_rows(named=True):
            yield _row(rec)

    def latest(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
        point_key: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[Row]:
        q = self._filter(
            namespace=namespace, kind=kind, run_id=run_id, point_key=point_key, tag=tag
        )
        return _row(q.tail(1).row(0, named=True)) if q.height else None

    def count(self, **filters: Any) -> int:
        return self._filter(**filters).height


class PolarsLedger(LedgerOps):
    """Append-only ledger backed by a polars frame."""

    def __init__(self, df: Optional[pl.DataFrame] = None) -> None:
        self._df = normalise(df) if df is not None else pl.DataFrame(schema=SCHEMA)
        self._pending: List[Dict[str, Any]] = []

    def _flush(self) -> pl.DataFrame:
        if self._pending:
            batch = pl.DataFrame(self._pending, schema=SCHEMA)
            self._df = pl.concat([self._df, batch], how="vertical")
            logger.debug("Folded %d buffered event(s) into the ledger", len(self._pending))
            self._pending = []
        return self._df

    def append(
        self,
        *,
        time_index: str,
        ts: datetime,
        namespace: NamespaceLike,
        kind: str,
        run_id: str,
        point_key: str,
        payload_type: str,
        payload: Dict[str, Any],
        tag: Optional[str] = None,
    ) -> "PolarsLedger":
        ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
        self._pending.append(
            {
                "uuid": str(uuid.uuid4()),
                "time_index": time_index,
                "ts": ts,
                "namespace": _ns(namespace),
                "kind": kind,
                "run_id": run_id,
                "point_key": point_key,
                "tag": tag,
                "payload_type": payload_type,
                "payload": json.dumps(payload, separators=(",", ":")),
            }
        )
        return self

    def emit_signal(
        self,
        *,
        time_index: str,
        ts: datetime,
        run_id: str,
        point_key: str,
        topic: str,
        body: Dict[str, Any],
        tag: str = "signal",
        namespace: NamespaceLike = Namespace.SIGNALS,
        kind: str = "emitted",
    ) -> "PolarsLedger":
        return self.append(
            time_index=time_index,
            ts=ts,
            namespace=namespace,
            kind=kind,
            run_id=run_id,
            point_key=point_key,
            payload_type="Signal",
            payload={"topic": topic, "body": body},
            tag=tag,
        )

    def reader(self) -> FrameReader:
        return FrameReader(self._flush())

    def frame(self) -> pl.DataFrame:
        """Copy of the full ledger frame."""
        return self._flush().clone()

    def replace_with_frame(self, df: pl.DataFrame) -> None:
        """Replace the contents with `df` (schema normalised, buffer dropped)."""
        self._df = normalise(df)
        self._pending = []
