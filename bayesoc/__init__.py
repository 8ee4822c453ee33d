"""
bayesoc: operating characteristics of Bayesian trial designs by simulation.

Bayesian designs that borrow historical information (power priors,
informative Beta priors, sequential monitoring rules) are judged by their
*operating characteristics*: Type I error, power, assurance, expected
interval width. bayesoc computes them with one pipeline:

    sampling prior -> predictive data -> posterior under a fitting prior
    -> posterior decision rule -> aggregation over replicates and a design grid

The sampling prior (what generates the truth) and the fitting prior (what the
analyst uses) are separate objects, so prior-data conflict and
mis-specification studies are the default rather than an afterthought.
Conjugate pairs are updated in closed form and vectorised over replicates;
everything else is handed to an injected MCMC sampler.

Every sweep may write into an append-only ledger (design registration,
per-design-point rows, non-convergence signals) so that a run can be
audited and replayed.

Example
-------
>>> import bayesoc
>>> assert hasattr(bayesoc, "core")
>>> assert hasattr(bayesoc, "stats")
"""

import logging

from bayesoc import core, stats
from bayesoc.__version__ import __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["core", "stats", "__version__"]
