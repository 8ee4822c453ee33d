"""
bayesoc.core.names
==================

Typed names shared across the package.

- `Namespace`: an Enum for well-known ledger namespaces.
- `RunId`, `PointKey`, `TimeIndex`: NewType wrappers for clarity.
- Tag constants for operating-characteristic events.

Examples
--------
>>> from bayesoc.core.names import Namespace, RunId
>>> Namespace.STATS.value
'stats'
>>> rid = RunId("run#1"); isinstance(rid, str)
True
"""

from __future__ import annotations
from enum import Enum
from typing import Final, NewType


class Namespace(str, Enum):
    """Well-known ledger namespaces.

    - DESIGN: registered simulation designs (priors, rule, grid, config)
    - STATS: one aggregated row per design point
    - SIGNALS: warnings and flags (non-convergence, unreliable points)
    """

    DESIGN = "design"
    STATS = "stats"
    SIGNALS = "signals"


# Typed aliases for logical identifiers (thin wrappers over str).
RunId = NewType("RunId", str)
PointKey = NewType("PointKey", str)
TimeIndex = NewType("TimeIndex", str)

OC_ROW_TAG: Final = "oc:row"
DESIGN_TAG: Final = "oc:design"
EXCLUSION_TAG: Final = "oc:excluded"
