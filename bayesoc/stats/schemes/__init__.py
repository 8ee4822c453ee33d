"""
Scheme-specific experiment templates.

Each scheme composes the generic stages of `bayesoc.stats.common` into
`ExperimentTemplate` subclasses that the runtime sweeps over a design grid:

- `binomial`: single-arm binary endpoint, fixed and monitored designs
- `normal`: continuous endpoint with known standard deviation
"""
