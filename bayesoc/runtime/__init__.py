"""
bayesoc.runtime
===============

Runtime environment for executing simulation studies.

This namespace contains the execution infrastructure that sweeps experiment
templates over design grids.

Key Components
--------------
- `ExperimentTemplate`: Base class for all study definitions
- `DesignPoint` / `design_grid`: the grid being swept
- `PointResult`: reduction of one design point's replicates
- `GridRunner`: the aggregator producing the operating-characteristic table
- `BatchRunner`: several templates on one grid

Examples
--------
>>> from bayesoc.runtime.experiment_template import ExperimentTemplate, design_grid
>>> from bayesoc.runtime.runners import GridRunner
>>> grid = design_grid(n=range(10, 101, 10))
>>> len(grid)
10
"""
