"""Tests for the sequential monitoring state machine and template."""

import numpy as np
import pytest

from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import InvalidParameterError, InvalidTransitionError
from bayesoc.runtime.experiment_template import design_grid
from bayesoc.runtime.runners import GridRunner
from bayesoc.stats.common import BetaPrior, BinomialLikelihood, PointMass, TruncatedNormalPrior
from bayesoc.stats.schemes.binomial.experiments import BinomialMonitoringTemplate, look_sizes
from bayesoc.stats.schemes.binomial.monitoring import (
    COMPLETED,
    EFFICACY,
    FUTILITY,
    MonitoringRule,
    MonitoringState,
    TieBreak,
    TrialMonitor,
    advance,
    run_monitoring,
    transition,
)


class TestTransition:
    @pytest.mark.parametrize(
        "tie_break, final, expected",
        [
            (TieBreak.EFFICACY, False, MonitoringState.STOPPED_FOR_EFFICACY),
            (TieBreak.FUTILITY, False, MonitoringState.STOPPED_FOR_FUTILITY),
            (TieBreak.CONTINUE, False, MonitoringState.ACCRUING),
            (TieBreak.CONTINUE, True, MonitoringState.COMPLETED),
        ],
    )
    def test_simultaneous_triggers(self, tie_break, final, expected):
        assert transition(True, True, final=final, tie_break=tie_break) is expected

    def test_single_triggers(self):
        kw = {"final": False, "tie_break": TieBreak.CONTINUE}
        assert transition(True, False, **kw) is MonitoringState.STOPPED_FOR_EFFICACY
        assert transition(False, True, **kw) is MonitoringState.STOPPED_FOR_FUTILITY
        assert transition(False, False, **kw) is MonitoringState.ACCRUING

    @pytest.mark.parametrize("tie_break", list(TieBreak))
    @pytest.mark.parametrize("final", [False, True])
    def test_vectorised_matches_scalar(self, tie_break, final):
        eff = np.array([True, True, False, False])
        fut = np.array([True, False, True, False])
        codes = advance(eff, fut, final=final, tie_break=tie_break)
        states = list(MonitoringState)
        scalar = [
            transition(bool(e), bool(f), final=final, tie_break=tie_break)
            for e, f in zip(eff, fut)
        ]
        assert [states[c] for c in codes] == scalar


class TestTrialMonitor:
    def test_runs_to_completion(self):
        m = TrialMonitor(n_looks=3)
        for _ in range(3):
            m.step(efficacy=False, futility=False)
        assert m.state is MonitoringState.COMPLETED
        assert m.history[-1] is MonitoringState.COMPLETED
        assert m.state.terminal

    def test_terminal_states_reject_transitions(self):
        m = TrialMonitor(n_looks=3, tie_break=TieBreak.FUTILITY)
        assert m.step(efficacy=True, futility=True) is MonitoringState.STOPPED_FOR_FUTILITY
        with pytest.raises(InvalidTransitionError):
            m.step(efficacy=False, futility=False)


class TestMonitoringRule:
    def test_invalid_threshold(self):
        with pytest.raises(InvalidParameterError):
            MonitoringRule(null=0.5, pp_eff=1.2)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"null": float("nan")},
            {"null": float("inf")},
            {"null": 0.5, "futility_null": float("nan")},
        ],
    )
    def test_non_finite_nulls(self, kwargs):
        with pytest.raises(InvalidParameterError, match="finite"):
            MonitoringRule(**kwargs)

    def test_tie_break_from_string(self):
        assert MonitoringRule(null=0.5, tie_break="efficacy").tie_break is TieBreak.EFFICACY

    def test_payload(self):
        payload = MonitoringRule(null=0.3, futility_null=0.2).to_payload()
        assert payload["tie_break"] == "continue"
        assert payload["futility_null"] == 0.2


class TestRunMonitoring:
    def _run(self, rule, theta, looks=(20, 40), seed=0):
        from bayesoc.stats.common.predictive import simulate_increments

        rng = np.random.default_rng(seed)
        theta = np.full(4_000, theta)
        y = simulate_increments(BinomialLikelihood(), theta, looks, rng)
        return run_monitoring(
            theta,
            y,
            looks,
            fitting_prior=BetaPrior(1, 1),
            likelihood=BinomialLikelihood(),
            rule=rule,
        )

    def test_probabilities_sum_to_one(self):
        outcome = self._run(MonitoringRule(null=0.5), 0.35)
        total = sum(outcome.probability(s) for s in MonitoringState)
        assert total == pytest.approx(1.0)
        assert outcome.probability(MonitoringState.ACCRUING) == 0.0

    def test_stopping_looks_and_sample_size(self):
        outcome = self._run(MonitoringRule(null=0.5), 0.2)
        stopped = np.isin(outcome.states, (EFFICACY, FUTILITY))
        assert np.all(outcome.sample_size[outcome.stop_look == 1] == 20)
        assert np.all(outcome.sample_size[~stopped] == 40)
        assert 20 <= outcome.expected_sample_size() <= 40
        assert sum(outcome.stop_by_look()) == pytest.approx(
            1.0 - outcome.probability(MonitoringState.COMPLETED)
        )

    def test_tie_break_changes_outcomes(self):
        # Futility reference below the efficacy null: both criteria fire near theta = 0.3.
        base = {"null": 0.5, "pp_eff": 0.9, "pp_fut": 0.5, "futility_null": 0.2}
        eff = self._run(MonitoringRule(**base, tie_break=TieBreak.EFFICACY), 0.3)
        fut = self._run(MonitoringRule(**base, tie_break=TieBreak.FUTILITY), 0.3)
        cont = self._run(MonitoringRule(**base, tie_break=TieBreak.CONTINUE), 0.3)
        assert eff.probability(MonitoringState.STOPPED_FOR_EFFICACY) > fut.probability(
            MonitoringState.STOPPED_FOR_EFFICACY
        )
        assert fut.probability(MonitoringState.STOPPED_FOR_FUTILITY) > eff.probability(
            MonitoringState.STOPPED_FOR_FUTILITY
        )
        assert cont.probability(MonitoringState.COMPLETED) > 0.0

    def test_completed_only_after_final_look(self):
        rule = MonitoringRule(null=0.5, pp_eff=1.0, pp_fut=0.0)
        outcome = self._run(rule, 0.4)
        assert np.all(outcome.states == COMPLETED)
        assert np.all(outcome.stop_look == 2)


class TestMonitoringTemplate:
    def test_look_sizes(self):
        assert look_sizes(100, (0.25, 0.5, 1.0)) == (25, 50, 100)
        with pytest.raises(InvalidParameterError):
            look_sizes(100, (0.5, 0.9))
        with pytest.raises(InvalidParameterError):
            look_sizes(2, (0.1, 0.2, 1.0))

    def test_sweep_columns(self):
        template = BinomialMonitoringTemplate(
            "mon",
            sampling_prior=PointMass(0.5),
            fitting_prior=BetaPrior(1, 1),
            rule=MonitoringRule(null=0.5, pp_fut=0.1),
            look_fractions=(1 / 3, 2 / 3, 1.0),
        )
        table = GridRunner(template, SimulationConfig(replicates=2_000, seed=3)).run(
            design_grid(n=[30, 60])
        )
        assert table.height == 2
        for col in ("p_efficacy", "p_futility", "p_completed", "expected_n", "p_stop_look3"):
            assert col in table.columns
        totals = table["p_efficacy"] + table["p_futility"] + table["p_completed"]
        assert np.allclose(totals.to_numpy(), 1.0)
        assert (table["estimate"] == table["p_efficacy"]).all()
        assert (table["expected_n"] <= table["n"]).all()

    @pytest.mark.parametrize(
        "rule",
        [MonitoringRule(null=1.5), MonitoringRule(null=0.5, futility_null=-0.2)],
    )
    def test_null_outside_rate_support(self, rule):
        template = BinomialMonitoringTemplate(
            "mon", sampling_prior=BetaPrior(2, 8), fitting_prior=BetaPrior(1, 1), rule=rule
        )
        runner = GridRunner(template, SimulationConfig(replicates=100, seed=0))
        with pytest.raises(InvalidParameterError, match="support"):
            runner.run(design_grid(n=[20, 40]))
        assert runner.get_results_history() == []

    def test_delta_shifts_truth(self):
        template = BinomialMonitoringTemplate(
            "mon",
            sampling_prior=PointMass(0.5),
            fitting_prior=BetaPrior(1, 1),
            rule=MonitoringRule(null=0.5),
        )
        table = GridRunner(template, SimulationConfig(replicates=2_000, seed=3)).run(
            design_grid(n=[60], delta=[0.0, -0.25])
        )
        at_null, shifted = table["p_efficacy"].to_list()
        assert shifted > at_null

    def test_non_conjugate_monitoring(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["y"] == 3.0)
        template = BinomialMonitoringTemplate(
            "mon-mcmc",
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=TruncatedNormalPrior(0.3, 0.2),
            rule=MonitoringRule(null=0.5),
            sampler=sampler,
        )
        config = mcmc_config.replace(max_excluded_fraction=1.0)
        table = GridRunner(template, config).run(design_grid(n=[20]))
        row = table.row(0, named=True)
        assert row["replicates"] + row["excluded"] == config.replicates
        assert row["excluded"] > 0
