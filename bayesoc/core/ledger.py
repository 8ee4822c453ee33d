"""
bayesoc.core.ledger
===================

Backend-agnostic ledger interface.

A ledger is an append-only log of typed events. A simulation run writes its
design, one row per design point, and any warnings into it; reporters read
it back. Concrete storage lives in `bayesoc.backends`.

- `Row`: one immutable ledger record
- `LedgerReader`: read-only, filterable view
- `Ledger`: the abstract writer (`append`, `emit_signal`, `reader`)
- `PayloadRegistry`: optional decoders turning JSON payloads into objects

Examples
--------
>>> from bayesoc.core.ledger import PayloadRegistry
>>> PayloadRegistry.register("Pair", lambda d: (d["a"], d["b"]))
>>> PayloadRegistry.decode("Pair", {"a": 1, "b": 2})
(1, 2)
>>> PayloadRegistry.decode("Unregistered", {"a": 1})
{'a': 1}
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Union

from bayesoc.core.names import Namespace

# Type aliases
NamespaceLike = Union[Namespace, str]


@dataclass(frozen=True)
class Row:
    """A single ledger record; `run_id` and `point_key` locate it in a sweep."""

    uuid: str
    time_index: str
    ts: datetime
    namespace: str
    kind: str
    run_id: str
    point_key: str
    tag: Optional[str]
    payload_type: str
    payload: Any


class PayloadRegistry:
    """Registry of payload decoders keyed by `payload_type`."""

    _decoders: Dict[str, Callable[[Dict[str, Any]], Any]] = {}

    @classmethod
    def register(
        cls, payload_type: str, decoder: Callable[[Dict[str, Any]], Any]
    ) -> None:
        """Register a decoder for a payload type."""
        cls._decoders[payload_type] = decoder

    @classmethod
    def decode(cls, payload_type: str, payload: Dict[str, Any]) -> Any:
        """Decode a payload, falling back to the raw dict."""
        decoder = cls._decoders.get(payload_type)
        return decoder(payload) if decoder is not None else payload


class LedgerReader(ABC):
    """Read-only query interface over a ledger."""

    @abstractmethod
    def iter_rows(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
        point_key: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Iterator[Row]:
        """Iterate rows matching all given filters, in append order."""

    @abstractmethod
    def latest(
        self,
        *,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
        point_key: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[Row]:
        """Return the last row matching the filters, or None."""

    @abstractmethod
    def count(self, **filters: Any) -> int:
        """Count rows matching the filters."""


class Ledger(ABC):
    """Abstract append-only ledger."""

    @abstractmethod
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
    ) -> "Ledger":
        """Append one record."""

    @abstractmethod
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
    ) -> "Ledger":
        """Append a signal record (`payload_type="Signal"`)."""

    @abstractmethod
    def reader(self) -> LedgerReader:
        """Return a read-only view."""
