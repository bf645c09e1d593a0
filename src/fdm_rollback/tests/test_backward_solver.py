"""Tests for the time-stepping driver and the backward solver."""

from types import SimpleNamespace

import numpy as np
import pytest

from fdm_rollback.exceptions import UnsupportedFeatureError, ValidationError
from fdm_rollback.finite_differences import backward_solver
from fdm_rollback.finite_differences.backward_solver import FdmBackwardSolver, make_evolver
from fdm_rollback.finite_differences.boundary import FdmDirichletBoundary
from fdm_rollback.finite_differences.inner_value import FdmLogInnerValue
from fdm_rollback.finite_differences.model import FiniteDifferenceModel
from fdm_rollback.finite_differences.operators import FdmBlackScholesOp
from fdm_rollback.finite_differences.schemes import ImplicitEulerScheme
from fdm_rollback.finite_differences.step_conditions import FdmStepConditionComposite
from fdm_rollback.enums import BoundarySide
from fdm_rollback.params import FdmSchemeDesc

from fdm_rollback.tests.helpers import RecordingCondition, RecordingEvolver


# ---------------------------------------------------------------------------
# FiniteDifferenceModel
# ---------------------------------------------------------------------------


class TestFiniteDifferenceModel:
    def test_every_stopping_time_is_hit(self):
        stops = [0.33, 0.5, 0.77, 0.05]
        evolver = RecordingEvolver()
        condition = RecordingCondition()
        FiniteDifferenceModel(evolver, stops).rollback(np.zeros(3), 1.0, 0.0, 10, condition)

        for s in stops:
            assert s in condition.times
        assert condition.times == sorted(condition.times, reverse=True)
        assert condition.times[-1] == 0.0
        assert sum(step_dt for _, step_dt in evolver.steps) == pytest.approx(1.0)

    def test_partial_steps_land_on_stopping_time(self):
        evolver = RecordingEvolver()
        FiniteDifferenceModel(evolver, [0.33]).rollback(np.zeros(3), 1.0, 0.0, 10, RecordingCondition())
        starts = [t for t, _ in evolver.steps]
        assert 0.33 in starts
        # the 0.4 -> 0.3 step is split into 0.4 -> 0.33 -> 0.3
        assert len(evolver.steps) == 11

    def test_condition_applied_at_start_when_last_stop_equals_from(self):
        condition = RecordingCondition()
        FiniteDifferenceModel(RecordingEvolver(), [0.2, 1.0]).rollback(
            np.zeros(2), 1.0, 0.0, 4, condition
        )
        assert condition.times[0] == 1.0

    def test_start_application_can_be_skipped(self):
        condition = RecordingCondition()
        FiniteDifferenceModel(RecordingEvolver(), [0.2, 1.0]).rollback(
            np.zeros(2), 1.0, 0.0, 4, condition, apply_at_start=False
        )
        assert condition.times.count(1.0) == 0
        assert condition.times.count(0.2) == 1

    def test_zero_steps_leaves_grid_unchanged(self):
        values = np.arange(4.0)
        evolver = RecordingEvolver()
        out = FiniteDifferenceModel(evolver, [0.5]).rollback(values, 1.0, 0.0, 0, RecordingCondition())
        np.testing.assert_array_equal(out, np.arange(4.0))
        assert evolver.steps == []


# ---------------------------------------------------------------------------
# FdmBackwardSolver
# ---------------------------------------------------------------------------


def _bs_setup(process, log_mesher, payoff, stopping_times=()):
    op = FdmBlackScholesOp(log_mesher, process, payoff.strike)
    calc = FdmLogInnerValue(payoff, log_mesher, 0)
    condition = RecordingCondition()
    composite = FdmStepConditionComposite([list(stopping_times)], [condition])
    values = calc.avg_inner_values(1.0)
    return op, composite, condition, values


class TestBackwardSolver:
    @pytest.mark.parametrize(
        "from_time, to_time, steps, damping, match",
        [
            (0.0, 1.0, 10, 0, "must be greater"),
            (1.0, 1.0, 10, 0, "must be greater"),
            (1.0, 0.0, -1, 0, "non-negative"),
            (1.0, 0.0, 10, -2, "non-negative"),
            (1.0, 0.0, 0, 0, "at least one time step"),
        ],
    )
    def test_invalid_arguments_raise(self, process, log_mesher, call_payoff, from_time, to_time, steps, damping, match):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        solver = FdmBackwardSolver(op, [], composite, FdmSchemeDesc.douglas())
        with pytest.raises(ValidationError, match=match):
            solver.rollback(values, from_time, to_time, steps, damping)

    def test_grid_size_mismatch_raises(self, process, log_mesher, call_payoff):
        op, composite, _, _ = _bs_setup(process, log_mesher, call_payoff)
        solver = FdmBackwardSolver(op, [], composite, FdmSchemeDesc.douglas())
        with pytest.raises(ValidationError, match="does not match mesh size"):
            solver.rollback(np.zeros(5), 1.0, 0.0, 10, 0)

    def test_unknown_scheme_type_raises(self, process, log_mesher):
        op = FdmBlackScholesOp(log_mesher, process, 100.0)
        with pytest.raises(UnsupportedFeatureError, match="Unknown scheme type"):
            make_evolver(SimpleNamespace(type="leapfrog", theta=0.5, mu=0.0), op)

    def test_rollback_mutates_grid_in_place(self, process, log_mesher, call_payoff):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        before = values.copy()
        out = FdmBackwardSolver(op, [], composite, FdmSchemeDesc.douglas()).rollback(values, 1.0, 0.0, 20, 0)
        assert out is values
        assert not np.allclose(values, before)

    def test_deterministic(self, process, log_mesher, call_payoff):
        results = []
        for _ in range(2):
            op, composite, _, values = _bs_setup(process, log_mesher, call_payoff, [0.3])
            FdmBackwardSolver(op, [], composite, FdmSchemeDesc.hundsdorfer()).rollback(values, 1.0, 0.0, 25, 3)
            results.append(values)
        np.testing.assert_array_equal(results[0], results[1])

    def test_stopping_times_hit_once_in_both_phases(self, process, log_mesher, call_payoff):
        damping_to = 1.0 - 1.0 * 2 / 10
        # 0.93 falls in the damping phase, off every grid point; damping_to ends it
        stops = [0.93, damping_to, 0.41]
        op, composite, condition, values = _bs_setup(process, log_mesher, call_payoff, stops)
        FdmBackwardSolver(op, [], composite, FdmSchemeDesc.douglas()).rollback(values, 1.0, 0.0, 8, 2)
        for s in stops:
            assert condition.times.count(s) == 1

    def test_dirichlet_boundary_is_enforced(self, process, log_mesher, call_payoff):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        bc = FdmDirichletBoundary(log_mesher, 0.0, 0, BoundarySide.LOWER)
        values[0] = 5.0
        FdmBackwardSolver(op, [bc], composite, FdmSchemeDesc.douglas()).rollback(values, 1.0, 0.0, 10, 0)
        assert values[0] == 0.0


class TestDamping:
    @pytest.fixture()
    def implicit_spy(self, monkeypatch):
        calls = []

        class SpyImplicitEuler(ImplicitEulerScheme):
            def step(self, a, t, theta=1.0):
                calls.append(t)
                return super().step(a, t, theta)

        monkeypatch.setattr(backward_solver, "ImplicitEulerScheme", SpyImplicitEuler)
        return calls

    def test_damping_phase_uses_implicit_euler_up_to_damping_to(self, implicit_spy, process, log_mesher, call_payoff):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        FdmBackwardSolver(op, [], composite, FdmSchemeDesc.douglas()).rollback(values, 1.0, 0.0, 5, 3)
        # damping_to = 1 - 1 * 3 / 8
        assert implicit_spy == pytest.approx([1.0, 0.875, 0.75])

    def test_no_damping_phase_without_damping_steps(self, implicit_spy, process, log_mesher, call_payoff):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        FdmBackwardSolver(op, [], composite, FdmSchemeDesc.craig_sneyd()).rollback(values, 1.0, 0.0, 5, 0)
        assert implicit_spy == []

    def test_implicit_euler_runs_all_steps_in_one_phase(self, implicit_spy, process, log_mesher, call_payoff):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        FdmBackwardSolver(op, [], composite, FdmSchemeDesc.implicit_euler()).rollback(values, 1.0, 0.0, 5, 3)
        assert implicit_spy == pytest.approx([1.0 - k / 8.0 for k in range(8)])

    @pytest.mark.parametrize("desc", [FdmSchemeDesc.tr_bdf2(), FdmSchemeDesc.explicit_euler()])
    def test_other_schemes_are_damped_too(self, implicit_spy, process, log_mesher, call_payoff, desc):
        op, composite, _, values = _bs_setup(process, log_mesher, call_payoff)
        FdmBackwardSolver(op, [], composite, desc).rollback(values, 1.0, 0.0, 100, 2)
        assert len(implicit_spy) == 2
