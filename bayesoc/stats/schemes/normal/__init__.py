"""
bayesoc.stats.schemes.normal
============================

Continuous endpoint with known standard deviation.
"""

from bayesoc.stats.schemes.normal.experiments import NormalAssuranceTemplate

__all__ = ["NormalAssuranceTemplate"]
