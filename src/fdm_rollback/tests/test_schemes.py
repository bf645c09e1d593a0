"""Tests for the time-step evolvers."""

import numpy as np
import pytest
from scipy.sparse import identity
from scipy.sparse.linalg import spsolve

from fdm_rollback.analytic import black_scholes_price
from fdm_rollback.enums import KrylovSolverType, OptionType
from fdm_rollback.exceptions import ValidationError
from fdm_rollback.finite_differences.backward_solver import FdmBackwardSolver
from fdm_rollback.finite_differences.boundary import FdmDirichletBoundary
from fdm_rollback.finite_differences.inner_value import FdmLogInnerValue
from fdm_rollback.finite_differences.meshers import FdmMesher, FdmMesherComposite, Uniform1dMesher
from fdm_rollback.finite_differences.operators import (
    FdmBlackScholesOp,
    FdmLinearOpComposite,
    SecondDerivativeOp,
)
from fdm_rollback.finite_differences.schemes import (
    DouglasScheme,
    ImplicitEulerScheme,
    TimeStepEvolver,
    TrBDF2Scheme,
    CraigSneydScheme,
)
from fdm_rollback.finite_differences.step_conditions import FdmStepConditionComposite
from fdm_rollback.params import FdmSchemeDesc


class HeatOp2D(FdmLinearOpComposite):
    """Sum of one diffusion operator per direction, time independent."""

    def __init__(self, mesher):
        self.mesher = mesher
        self.maps = [SecondDerivativeOp(d, mesher).mult(0.1) for d in range(2)]

    def size(self):
        return 2

    def set_time(self, t1, t2):
        pass

    def apply(self, r):
        return self.maps[0].apply(r) + self.maps[1].apply(r)

    def apply_mixed(self, r):
        return np.zeros_like(r)

    def apply_direction(self, direction, r):
        return self.maps[direction].apply(r)

    def solve_splitting(self, direction, r, s):
        return self.maps[direction].solve_splitting(r, s)

    def to_matrix_decomp(self):
        return [m.to_matrix() for m in self.maps]


@pytest.fixture()
def heat_op():
    mesher = FdmMesherComposite(Uniform1dMesher(0.0, 1.0, 12), Uniform1dMesher(0.0, 1.0, 9))
    return HeatOp2D(mesher)


def _bump(mesher):
    x, y = mesher.locations(0), mesher.locations(1)
    return np.exp(-20.0 * ((x - 0.5) ** 2 + (y - 0.4) ** 2))


def test_implicit_euler_iterative_solve_matches_direct(heat_op):
    a = _bump(heat_op.mesher)
    evolver = ImplicitEulerScheme(heat_op, [], rel_tol=1e-12)
    evolver.set_step(0.01)
    x = evolver.step(a, 0.5)

    n = a.size
    expected = spsolve((identity(n) - 0.01 * heat_op.to_matrix()).tocsc(), a)
    np.testing.assert_allclose(x, expected, rtol=1e-8, atol=1e-10)
    assert evolver.number_of_iterations() > 0


def test_tr_bdf2_iterative_solve_counts_iterations(heat_op):
    a = _bump(heat_op.mesher)
    desc = FdmSchemeDesc.craig_sneyd()
    evolver = TrBDF2Scheme(
        FdmSchemeDesc.tr_bdf2().theta, heat_op, CraigSneydScheme(desc.theta, desc.mu, heat_op)
    )
    evolver.set_step(0.01)
    x = evolver.step(a, 0.5)
    assert np.all(np.isfinite(x))
    assert evolver.number_of_iterations() > 0
    # diffusion smooths the peak
    assert x.max() < a.max()


def test_implicit_euler_gmres_matches_direct(heat_op):
    a = _bump(heat_op.mesher)
    evolver = ImplicitEulerScheme(heat_op, [], rel_tol=1e-10, solver_type=KrylovSolverType.GMRES)
    evolver.set_step(0.01)
    x = evolver.step(a, 0.5)

    n = a.size
    expected = spsolve((identity(n) - 0.01 * heat_op.to_matrix()).tocsc(), a)
    np.testing.assert_allclose(x, expected, rtol=1e-6, atol=1e-8)
    assert evolver.number_of_iterations() > 0


def test_tr_bdf2_gmres_agrees_with_bicgstab(heat_op):
    a = _bump(heat_op.mesher)
    desc = FdmSchemeDesc.craig_sneyd()
    results = []
    for solver_type in KrylovSolverType:
        evolver = TrBDF2Scheme(
            FdmSchemeDesc.tr_bdf2().theta,
            heat_op,
            CraigSneydScheme(desc.theta, desc.mu, heat_op),
            rel_tol=1e-10,
            solver_type=solver_type,
        )
        evolver.set_step(0.01)
        results.append(evolver.step(a, 0.5))
        assert evolver.number_of_iterations() > 0
    np.testing.assert_allclose(results[0], results[1], rtol=1e-6, atol=1e-8)


def test_interfaces_cannot_be_instantiated(heat_op):
    with pytest.raises(TypeError):
        TimeStepEvolver(heat_op)
    with pytest.raises(TypeError):
        FdmLinearOpComposite()
    with pytest.raises(TypeError):
        FdmMesher(heat_op.mesher.layout)


def test_douglas_splitting_close_to_implicit_euler(heat_op):
    a = _bump(heat_op.mesher)
    douglas = DouglasScheme(1.0, heat_op)
    implicit = ImplicitEulerScheme(heat_op)
    douglas.set_step(1e-3)
    implicit.set_step(1e-3)
    np.testing.assert_allclose(douglas.step(a, 0.5), implicit.step(a, 0.5), atol=1e-4)


def test_step_towards_negative_time_raises(heat_op):
    evolver = DouglasScheme(0.5, heat_op)
    evolver.set_step(0.1)
    with pytest.raises(ValidationError, match="negative time"):
        evolver.step(np.zeros(heat_op.mesher.layout.size), 0.05)


def test_step_before_set_step_raises(heat_op):
    with pytest.raises(ValidationError, match="set_step"):
        ImplicitEulerScheme(heat_op).step(np.zeros(heat_op.mesher.layout.size), 0.5)


@pytest.mark.parametrize(
    "desc",
    [
        FdmSchemeDesc.douglas(),
        FdmSchemeDesc.implicit_euler(),
        FdmSchemeDesc.explicit_euler(),
        FdmSchemeDesc.crank_nicolson(),
        FdmSchemeDesc.method_of_lines(),
        FdmSchemeDesc.tr_bdf2(),
        FdmSchemeDesc.craig_sneyd(),
        FdmSchemeDesc.modified_craig_sneyd(),
        FdmSchemeDesc.hundsdorfer(),
        FdmSchemeDesc.modified_hundsdorfer(),
    ],
    ids=lambda d: f"{d.type.value}-{d.theta:.3f}",
)
def test_every_scheme_converges_to_black_scholes(desc, process, log_mesher, call_payoff):
    op = FdmBlackScholesOp(log_mesher, process, call_payoff.strike)
    calc = FdmLogInnerValue(call_payoff, log_mesher, 0)
    values = calc.avg_inner_values(1.0)
    FdmBackwardSolver(op, [], FdmStepConditionComposite(), desc).rollback(values, 1.0, 0.0, 100, 0)

    centre = log_mesher.layout.size // 2
    expected = black_scholes_price(
        spot=100.0,
        strike=100.0,
        time_to_maturity=1.0,
        volatility=0.2,
        risk_free_rate=0.05,
        option_type=OptionType.CALL,
    )
    assert values[centre] == pytest.approx(expected, rel=1e-2)


def test_method_of_lines_respects_dirichlet_boundary(process, log_mesher, call_payoff):
    op = FdmBlackScholesOp(log_mesher, process, call_payoff.strike)
    values = FdmLogInnerValue(call_payoff, log_mesher, 0).avg_inner_values(1.0)
    bc = FdmDirichletBoundary(log_mesher, 0.0, 0, "lower")
    FdmBackwardSolver(op, [bc], FdmStepConditionComposite(), FdmSchemeDesc.method_of_lines()).rollback(
        values, 1.0, 0.0, 10, 0
    )
    assert values[0] == 0.0
