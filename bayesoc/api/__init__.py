"""
bayesoc.api - Design-Evaluation Facade
======================================

Off-the-shelf entry points organised by the question a trial statistician
asks, rather than by the internal pipeline stages.

Examples
--------
>>> from bayesoc.api.assurance import alc_sample_size
>>> from bayesoc.stats.common import BetaPrior
>>> result = alc_sample_size(BetaPrior(2, 8), BetaPrior(1, 1), n=range(20, 201, 20),
...                          max_width=0.2, replicates=500, seed=5)
>>> result.n_required is not None
True

Unified Interface
-----------------
All functionality lives in `bayesoc.api.assurance`:
- `assurance()`: success probability averaged over a sampling prior
- `type_one_error()`: rejection rate with the truth at the null
- `power_curve()`: rejection rate at shifted truths
- `alc_sample_size()`: average length criterion for credible intervals
- `sequential_monitoring()`: interim looks with efficacy / futility stopping

The facade delegates to `bayesoc.stats.schemes` for the templates and to
`bayesoc.runtime` for the sweep.
"""
