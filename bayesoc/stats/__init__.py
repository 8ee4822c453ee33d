"""
Statistical building blocks for operating-characteristic simulation.

1. **Common** (bayesoc.stats.common):
   Generic stages of the pipeline: prior specifications and sampling,
   predictive data generation, posterior updating (closed form or via an
   injected sampler), decision rules, and table smoothing.

2. **Schemes** (bayesoc.stats.schemes):
   Problem-specific experiment templates composing the common stages:
   single-arm binary endpoints (fixed and sequentially monitored designs)
   and continuous endpoints with known variance.

Example:
--------
>>> # Generic stage
>>> from bayesoc.stats.common.distributions import BetaPrior
>>> prior = BetaPrior(2, 8)

>>> # Scheme-specific template
>>> from bayesoc.stats.schemes.binomial.experiments import BinomialAssuranceTemplate
"""
