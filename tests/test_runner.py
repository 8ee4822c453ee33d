"""End-to-end tests of the grid sweep."""

import numpy as np
import polars as pl
import pytest
from polars.testing import assert_frame_equal
from scipy import stats

from bayesoc.backends.polars.ledger import PolarsLedger
from bayesoc.core.config import SimulationConfig
from bayesoc.core.errors import (
    InvalidParameterError,
    NonConvergenceWarning,
    SamplerNonConvergenceError,
    SweepCancelled,
)
from bayesoc.core.names import Namespace
from bayesoc.reporting.operating_characteristics import OCReporter
from bayesoc.runtime.experiment_template import DesignPoint, PointResult, design_grid
from bayesoc.runtime.runners import BatchRunner, CancellationToken, GridRunner, to_table
from bayesoc.stats.common import (
    BetaPrior,
    IntervalWidthRule,
    NormalPrior,
    PointMass,
    PowerPrior,
    TailProbabilityRule,
    TruncatedNormalPrior,
)
from bayesoc.stats.common.smoothing import first_crossing, smooth_table
from bayesoc.stats.schemes.binomial.experiments import BinomialAssuranceTemplate
from bayesoc.stats.schemes.normal.experiments import NormalAssuranceTemplate


def exact_success_probability(n, sampling, null=0.5, cutoff=0.975):
    """Success probability of the Beta(1, 1) tail rule by enumerating outcomes."""
    y = np.arange(n + 1)
    success = stats.beta.cdf(null, y + 1, n - y + 1) >= cutoff
    if isinstance(sampling, PointMass):
        pmf = stats.binom.pmf(y, n, sampling.value)
    else:
        pmf = stats.betabinom.pmf(y, n, sampling.shape1, sampling.shape2)
    return float(np.sum(pmf * success))


def tail_template(sampling_prior, experiment_id="t"):
    return BinomialAssuranceTemplate(
        experiment_id,
        sampling_prior=sampling_prior,
        fitting_prior=BetaPrior(1, 1),
        rule=TailProbabilityRule(null=0.5),
    )


class CancellingTemplate(BinomialAssuranceTemplate):
    """Cancels its token while simulating the first design point."""

    def __init__(self, token, **kwargs):
        super().__init__("cancel", **kwargs)
        self.token = token

    def simulate_point(self, point, rng, config):
        self.token.cancel()
        return super().simulate_point(point, rng, config)


class TestScenarios:
    def test_assurance_matches_enumeration(self):
        sampling = BetaPrior(2, 8)
        config = SimulationConfig(replicates=20_000, seed=11)
        table = GridRunner(tail_template(sampling), config).run(design_grid(n=[100]))
        row = table.row(0, named=True)
        exact = exact_success_probability(100, sampling)
        assert abs(row["estimate"] - exact) < 4 * row["mc_se"] + 1e-3
        assert row["mc_se"] == pytest.approx(
            np.sqrt(row["estimate"] * (1 - row["estimate"]) / 20_000)
        )

    def test_type_one_error_near_nominal(self):
        config = SimulationConfig(replicates=20_000, seed=5)
        grid = design_grid(n=range(10, 101, 10))
        table = GridRunner(tail_template(PointMass(0.5)), config).run(grid)
        assert table.height == 10
        for row in table.iter_rows(named=True):
            exact = exact_success_probability(row["n"], PointMass(0.5))
            assert abs(row["estimate"] - exact) < 4 * row["mc_se"] + 1e-3
        assert table["estimate"].max() < 0.045

    def test_alc_width_decreases_and_crossing_is_reproducible(self):
        template = BinomialAssuranceTemplate(
            "alc",
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=BetaPrior(1, 1),
            rule=IntervalWidthRule(alpha=0.05),
        )
        config = SimulationConfig(replicates=2_000, seed=99)
        grid = design_grid(n=range(50, 451, 50))

        first = GridRunner(template, config).run(grid)
        widths = first["estimate"].to_numpy()
        assert np.all(np.diff(widths) <= 0)
        # Scalar outcomes use the sample standard deviation.
        assert (first["mc_se"] > 0).all()

        second = GridRunner(template, config).run(grid)
        n_a = first_crossing(smooth_table(first), 0.10)
        n_b = first_crossing(smooth_table(second), 0.10)
        assert n_a is not None
        assert n_a == n_b

    def test_normal_endpoint_type_one_error(self):
        template = NormalAssuranceTemplate(
            "normal",
            sigma=2.0,
            sampling_prior=PointMass(0.0),
            fitting_prior=NormalPrior(0.0, 1000.0),
            rule=TailProbabilityRule(null=0.0),
        )
        config = SimulationConfig(replicates=20_000, seed=2)
        row = GridRunner(template, config).run(design_grid(n=[30])).row(0, named=True)
        assert abs(row["estimate"] - 0.025) < 4 * row["mc_se"] + 2e-3


class TestDesign:
    def test_power_increases_with_n(self):
        template = tail_template(BetaPrior(2, 8))
        config = SimulationConfig(replicates=5_000, seed=1)
        grid = design_grid(n=[10, 40], delta=[-0.3])
        table = GridRunner(template, config).run(grid)
        assert table["delta"].to_list() == [-0.3, -0.3]
        low, high = table["estimate"].to_list()
        assert high > low

    def test_power_non_decreasing_over_n_grid(self):
        # Discreteness of the binomial allows small dips between adjacent sizes.
        template = tail_template(PointMass(0.3))
        grid = design_grid(n=range(10, 101, 10))
        runs = [
            GridRunner(template, SimulationConfig(replicates=2_000, seed=seed)).run(grid)
            for seed in range(5)
        ]
        power = np.mean([t["estimate"].to_numpy() for t in runs], axis=0)
        mc_se = np.sqrt(power * (1 - power) / (5 * 2_000))
        steps = np.diff(power)
        tolerance = 3 * np.sqrt(mc_se[1:] ** 2 + mc_se[:-1] ** 2) + 0.02
        assert np.all(steps > -tolerance)
        assert power[-1] > power[0] + 0.5
        exact = [exact_success_probability(n, PointMass(0.3)) for n in range(10, 101, 10)]
        assert np.allclose(power, exact, atol=0.03)

    def test_power_prior_discounting(self):
        # History says 0.2 while the truth is at the null, so borrowing inflates rejections.
        template = BinomialAssuranceTemplate(
            "borrow",
            sampling_prior=PointMass(0.5),
            fitting_prior=PowerPrior(BetaPrior(1, 1), y0=20, n0=100),
            rule=TailProbabilityRule(null=0.5),
        )
        config = SimulationConfig(replicates=5_000, seed=4)
        table = GridRunner(template, config).run(design_grid(n=[40], a0=[0.0, 1.0]))
        no_borrow, full_borrow = table["estimate"].to_list()
        assert full_borrow > no_borrow

    @pytest.mark.parametrize(
        "grid",
        [
            design_grid(n=[20], delta=[0.7]),
            design_grid(n=[20], a0=[0.5]),
        ],
    )
    def test_invalid_grid_fails_before_simulation(self, grid):
        with pytest.raises(InvalidParameterError):
            GridRunner(tail_template(BetaPrior(2, 8)), SimulationConfig(replicates=10)).run(grid)

    def test_non_conjugate_without_sampler_fails_fast(self):
        template = BinomialAssuranceTemplate(
            "nc",
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=TruncatedNormalPrior(0.3, 0.1),
            rule=TailProbabilityRule(null=0.5),
        )
        with pytest.raises(InvalidParameterError):
            GridRunner(template, SimulationConfig(replicates=10)).run(design_grid(n=[20]))

    @pytest.mark.parametrize("null", [1.5, -0.1])
    def test_rule_null_outside_rate_support(self, null):
        template = BinomialAssuranceTemplate(
            "null",
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=BetaPrior(1, 1),
            rule=TailProbabilityRule(null=null),
        )
        ledger = PolarsLedger()
        runner = GridRunner(template, SimulationConfig(replicates=10), ledger=ledger)
        with pytest.raises(InvalidParameterError, match="support"):
            runner.run(design_grid(n=[20, 40]))
        assert ledger.reader().count() == 0

    def test_design_point_validation(self):
        with pytest.raises(InvalidParameterError):
            DesignPoint(n=0)
        with pytest.raises(InvalidParameterError):
            DesignPoint(n=10, a0=1.5)
        assert DesignPoint(n=10, a0=0.5, delta=-0.1).key == "n=10,a0=0.5,delta=-0.1"


class TestExecution:
    def test_results_independent_of_n_jobs(self):
        template = tail_template(BetaPrior(2, 8))
        grid = design_grid(n=[20, 40, 60])
        serial = GridRunner(template, SimulationConfig(replicates=1_000, seed=8)).run(grid)
        parallel = GridRunner(
            template, SimulationConfig(replicates=1_000, seed=8, n_jobs=2)
        ).run(grid)
        assert_frame_equal(serial, parallel)

    def test_same_seed_same_table(self):
        template = tail_template(BetaPrior(2, 8))
        config = SimulationConfig(replicates=500, seed=3)
        a = GridRunner(template, config).run(design_grid(n=[20, 40]))
        b = GridRunner(template, config).run(design_grid(n=[20, 40]))
        assert_frame_equal(a, b)

    def test_cancel_before_start(self):
        token = CancellationToken()
        token.cancel()
        runner = GridRunner(tail_template(BetaPrior(2, 8)), SimulationConfig(replicates=10))
        with pytest.raises(SweepCancelled) as info:
            runner.run(design_grid(n=[10, 20]), cancel=token)
        assert info.value.partial.height == 0

    def test_cancel_mid_sweep_keeps_finished_rows(self):
        token = CancellationToken()
        template = CancellingTemplate(
            token,
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=BetaPrior(1, 1),
            rule=TailProbabilityRule(null=0.5),
        )
        runner = GridRunner(template, SimulationConfig(replicates=100, seed=1))
        with pytest.raises(SweepCancelled) as info:
            runner.run(design_grid(n=[10, 20, 30]), cancel=token)
        assert info.value.partial["n"].to_list() == [10]

    def test_batch_runner_stacks_templates(self):
        templates = [tail_template(BetaPrior(2, 8), "a"), tail_template(PointMass(0.5), "b")]
        table = BatchRunner(templates, SimulationConfig(replicates=200, seed=1)).run(
            design_grid(n=[10, 20])
        )
        assert table.height == 4
        assert table["template"].to_list() == ["a", "a", "b", "b"]

    def test_results_history(self):
        runner = GridRunner(tail_template(BetaPrior(2, 8)), SimulationConfig(replicates=50))
        runner.run(design_grid(n=[10]))
        runner.run(design_grid(n=[10, 20]))
        assert [t.height for t in runner.get_results_history()] == [1, 2]

    def test_empty_table_schema(self):
        table = to_table([])
        assert table.height == 0
        assert {"n", "estimate", "mc_se", "reliable"} <= set(table.columns)


class TestLedger:
    def test_rows_and_design_are_recorded(self):
        ledger = PolarsLedger()
        runner = GridRunner(
            tail_template(BetaPrior(2, 8)),
            SimulationConfig(replicates=200, seed=1),
            ledger=ledger,
            run_id="run#1",
        )
        table = runner.run(design_grid(n=[10, 20, 30]))

        reader = ledger.reader()
        assert reader.count(namespace=Namespace.DESIGN.value) == 1
        assert reader.count(namespace=Namespace.STATS.value, kind="oc_row") == 3
        design = ledger.latest(namespace=Namespace.DESIGN, run_id="run#1")
        assert design is not None
        assert design.payload["replicates"] == 200
        assert design.payload["fitting_prior"] == {"family": "beta", "shape1": 1.0, "shape2": 1.0}

        replayed = OCReporter.from_ledger(ledger, run_id="run#1").table
        assert replayed["estimate"].to_list() == table["estimate"].to_list()


class TestNonConvergence:
    def _template(self, sampler):
        return BinomialAssuranceTemplate(
            "mcmc",
            sampling_prior=BetaPrior(2, 8),
            fitting_prior=TruncatedNormalPrior(0.3, 0.2),
            rule=TailProbabilityRule(null=0.5),
            sampler=sampler,
        )

    def test_clean_sampler(self, beta_sampler, mcmc_config):
        table = GridRunner(self._template(beta_sampler), mcmc_config).run(design_grid(n=[10]))
        row = table.row(0, named=True)
        assert row["excluded"] == 0
        assert row["replicates"] == mcmc_config.replicates
        assert row["reliable"] is True

    def test_exclusions_are_flagged(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["y"] % 2 == 1)
        ledger = PolarsLedger()
        runner = GridRunner(self._template(sampler), mcmc_config, ledger=ledger)
        with pytest.warns(NonConvergenceWarning):
            table = runner.run(design_grid(n=[10]))
        row = table.row(0, named=True)
        assert row["excluded"] > 0
        assert row["excluded"] + row["replicates"] == mcmc_config.replicates
        assert row["reliable"] is False
        signal = ledger.latest(namespace=Namespace.SIGNALS)
        assert signal is not None
        assert signal.tag == "oc:excluded"
        assert signal.payload["topic"] == "non_convergence"

    def test_strict_mode_raises(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["y"] % 2 == 1)
        config = mcmc_config.replace(strict=True)
        with pytest.warns(NonConvergenceWarning):
            with pytest.raises(SamplerNonConvergenceError):
                GridRunner(self._template(sampler), config).run(design_grid(n=[10]))

    def test_all_excluded_result_has_no_estimate(self):
        result = PointResult.from_outcomes(np.array([]), binary=True, excluded=5)
        assert result.estimate is None
        assert result.mc_se is None
        assert result.replicates == 0
        assert result.excluded_fraction == 1.0
        with pytest.raises(InvalidParameterError):
            PointResult.from_outcomes(np.array([]), binary=True)

    def test_point_with_every_replicate_excluded(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["n"] == 20)
        ledger = PolarsLedger()
        runner = GridRunner(self._template(sampler), mcmc_config, ledger=ledger)
        with pytest.warns(NonConvergenceWarning, match="n=20"):
            table = runner.run(design_grid(n=[10, 20, 30]))
        assert table["n"].to_list() == [10, 20, 30]
        assert table["reliable"].to_list() == [True, False, True]
        row = table.row(1, named=True)
        assert row["estimate"] is None
        assert row["mc_se"] is None
        assert row["replicates"] == 0
        assert row["excluded"] == mcmc_config.replicates
        assert table["estimate"].null_count() == 1
        signal = ledger.latest(namespace=Namespace.SIGNALS)
        assert signal is not None
        assert signal.point_key == "n=20"
        assert signal.payload["body"]["reliable"] is False

    def test_every_replicate_excluded_is_unreliable_at_any_tolerance(
        self, make_sampler, mcmc_config
    ):
        sampler = make_sampler(fail_when=lambda data: True)
        config = mcmc_config.replace(max_excluded_fraction=1.0)
        with pytest.warns(NonConvergenceWarning):
            table = GridRunner(self._template(sampler), config).run(design_grid(n=[10]))
        assert table["reliable"].to_list() == [False]

    def test_every_replicate_excluded_strict(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["n"] == 20)
        config = mcmc_config.replace(strict=True)
        with pytest.warns(NonConvergenceWarning):
            with pytest.raises(SamplerNonConvergenceError, match="n=20"):
                GridRunner(self._template(sampler), config).run(design_grid(n=[10, 20, 30]))

    def test_smoothing_skips_points_without_estimate(self, make_sampler, mcmc_config):
        sampler = make_sampler(fail_when=lambda data: data["n"] == 20)
        with pytest.warns(NonConvergenceWarning):
            table = GridRunner(self._template(sampler), mcmc_config).run(
                design_grid(n=[10, 20, 30, 40])
            )
        smoothed = smooth_table(table, frac=1.0)
        assert smoothed["smoothed"].null_count() == 1
        assert smoothed.filter(pl.col("n") == 20)["smoothed"].to_list() == [None]
