"""
bayesoc.backends
================

Concrete storage and sampler backends.

- `bayesoc.backends.polars`: in-memory ledger and frame sinks/sources.
- `bayesoc.backends.pymc`: optional MCMC adapter (extra ``mcmc``).
"""
