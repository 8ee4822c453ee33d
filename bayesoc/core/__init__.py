"""
bayesoc.core
============

Scheme-agnostic building blocks: typed names, errors, configuration, the
append-only ledger interface and the pipeline stage base classes.
"""
