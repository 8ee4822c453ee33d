"""
Optional PyMC adapter for the non-conjugate posterior branch.

Importing `bayesoc.backends.pymc.sampler` requires the ``mcmc`` extra
(``pymc`` and ``arviz``).
"""
