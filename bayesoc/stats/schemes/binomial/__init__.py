"""
bayesoc.stats.schemes.binomial
==============================

Single-arm binary endpoint: fixed-sample and sequentially monitored designs.
"""

from bayesoc.stats.schemes.binomial.experiments import (
    BinomialAssuranceTemplate,
    BinomialMonitoringTemplate,
)
from bayesoc.stats.schemes.binomial.monitoring import (
    MonitoringRule,
    MonitoringState,
    TieBreak,
    TrialMonitor,
)

__all__ = [
    "BinomialAssuranceTemplate",
    "BinomialMonitoringTemplate",
    "MonitoringRule",
    "MonitoringState",
    "TieBreak",
    "TrialMonitor",
]
