"""Tests of the Newton solver.

The solver is driven by a scripted model, which reports a prescribed sequence of
residual norms and converges at a prescribed iteration. This allows checking the
termination logic, the iteration counters and the relaxation of the updates without
assembling any physical system.

"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pytest

import resflow as rf
from resflow.numerics.nonlinear.convergence_check import ConvergenceStatus
from resflow.numerics.nonlinear.nonlinear_solvers import (
    NewtonSolver,
    NewtonStepReport,
    RelaxType,
    SolverParameters,
    detect_newton_oscillations,
    stabilize_newton,
)


class ScriptedModel:
    """Model with prescribed residual norms and convergence.

    Parameters:
        converge_at: Iteration at which the model reports convergence. None means
            never.
        norms: Residual norms reported by each assembly. The last entry is repeated.
        num_phases: Number of phases.
        linear_iterations: Linear iterations reported for each solve.
        size: Number of primary variables.

    """

    def __init__(
        self,
        converge_at: Optional[int],
        norms: Optional[list] = None,
        num_phases: int = 2,
        linear_iterations: int = 2,
        size: int = 3,
        terminal_output: bool = False,
    ):
        self.converge_at = converge_at
        self.norms = norms
        self._num_phases = num_phases
        self.linear_iterations = linear_iterations
        self.size = size
        self.terminal_output = terminal_output

        self.calls: list = []
        self.applied_updates: list[np.ndarray] = []
        self.num_assemblies = 0
        self.num_solves = 0

    def prepare_step(self, dt, reservoir_state, well_state):
        self.calls.append("prepare_step")
        self.num_assemblies = 0
        self.num_solves = 0

    def assemble(self, reservoir_state, well_state, initial_assembly):
        self.calls.append(("assemble", initial_assembly))
        self.num_assemblies += 1

    def compute_residual_norms(self):
        if self.norms is None:
            return [1.0 / self.num_assemblies] * self._num_phases
        return list(self.norms[min(self.num_assemblies, len(self.norms)) - 1])

    def get_convergence(self, dt, iteration):
        return self.converge_at is not None and iteration >= self.converge_at

    def solve_jacobian_system(self):
        self.num_solves += 1
        # Updates that differ between iterations, to expose the SOR blending
        return self.num_solves * np.ones(self.size)

    def update_state(self, dx, reservoir_state, well_state):
        self.applied_updates.append(dx.copy())
        reservoir_state -= dx

    def after_step(self, dt, reservoir_state, well_state):
        self.calls.append("after_step")

    def size_non_linear(self):
        return self.size

    def num_phases(self):
        return self._num_phases

    def terminal_output_enabled(self):
        return self.terminal_output

    def linear_iterations_last_solve(self):
        return self.linear_iterations


def _step(solver: NewtonSolver, size: int = 3) -> tuple[NewtonStepReport, np.ndarray]:
    state = np.zeros(size)
    report = solver.step(1.0, state, None)
    return report, state


class TestTermination:
    def test_converged_initial_state_respects_min_iter(self):
        model = ScriptedModel(converge_at=0)
        solver = NewtonSolver(SolverParameters(min_iter=1), model)
        report, _ = _step(solver)

        assert report.status == ConvergenceStatus.CONVERGED
        assert report.newton_iterations == 1
        assert len(report.residual_norms_history) == 2
        assert solver.newton_iterations_last_step == 1

    def test_no_iterations_with_zero_min_iter(self):
        model = ScriptedModel(converge_at=0)
        solver = NewtonSolver(SolverParameters(min_iter=0), model)
        report, state = _step(solver)

        assert report.status.is_converged()
        assert report.newton_iterations == 0
        assert report.linear_iterations == 0
        assert np.allclose(state, 0)
        assert model.calls == ["prepare_step", ("assemble", True), "after_step"]

    def test_iteration_and_linear_counts(self):
        model = ScriptedModel(converge_at=3, linear_iterations=4)
        solver = NewtonSolver(None, model)
        report, state = _step(solver)

        assert not report.needs_restart
        assert report.newton_iterations == 3
        assert report.linear_iterations == 12
        assert len(report.residual_norms_history) == 4
        assert solver.newton_iterations == 3
        assert solver.linear_iterations == 12
        assert solver.newton_iterations_last_step == 3
        assert solver.linear_iterations_last_step == 12
        # Updates 1, 2 and 3 applied without relaxation
        assert np.allclose(state, -6)

    def test_call_sequence(self):
        model = ScriptedModel(converge_at=1)
        solver = NewtonSolver(None, model)
        _step(solver)
        assert model.calls == [
            "prepare_step",
            ("assemble", True),
            ("assemble", False),
            "after_step",
        ]

    def test_counters_accumulate(self):
        model = ScriptedModel(converge_at=2, linear_iterations=1)
        solver = NewtonSolver(None, model)
        _step(solver)
        model.converge_at = 3
        _step(solver)

        assert solver.newton_iterations == 5
        assert solver.linear_iterations == 5
        assert solver.newton_iterations_last_step == 3
        assert solver.linear_iterations_last_step == 3

    def test_not_converged(self):
        model = ScriptedModel(converge_at=1)
        solver = NewtonSolver(SolverParameters(max_iter=4), model)
        _step(solver)

        model.converge_at = None
        report, _ = _step(solver)

        assert report.status == ConvergenceStatus.NOT_CONVERGED
        assert report.needs_restart
        assert report.newton_iterations == 4
        assert report.linear_iterations == 8
        assert len(report.residual_norms_history) == 5
        # Counters keep the values of the converged step
        assert solver.newton_iterations == 1
        assert solver.linear_iterations == 2
        assert solver.newton_iterations_last_step == 1
        assert solver.linear_iterations_last_step == 2
        # No post-step actions for a failed step
        assert model.calls[-1] != "after_step"

    def test_failure_is_logged(self, caplog):
        model = ScriptedModel(converge_at=None, terminal_output=True)
        solver = NewtonSolver(SolverParameters(max_iter=2), model)
        with caplog.at_level(logging.WARNING):
            _step(solver)
        assert "Failed to compute converged solution in 2 iterations" in caplog.text


class TestRelaxation:
    # Two phases alternating between two norm levels, oscillating from the third
    # assembly on.
    oscillating_norms = [[1.0, 1.0], [2.0, 2.0]] * 5

    def test_dampening(self):
        model = ScriptedModel(converge_at=4, norms=self.oscillating_norms)
        solver = NewtonSolver(SolverParameters(relax_type=RelaxType.DAMPEN), model)
        _step(solver)

        factors = [dx[0] / (k + 1) for k, dx in enumerate(model.applied_updates)]
        assert np.allclose(factors, [1.0, 1.0, 0.9, 0.8])

    def test_relaxation_factor_is_clamped(self):
        model = ScriptedModel(converge_at=5, norms=self.oscillating_norms)
        params = SolverParameters(relax_max=0.5, relax_increment=0.3)
        solver = NewtonSolver(params, model)
        _step(solver)

        factors = [dx[0] / (k + 1) for k, dx in enumerate(model.applied_updates)]
        assert np.allclose(factors, [1.0, 1.0, 0.7, 0.5, 0.5])

    def test_sor(self):
        model = ScriptedModel(converge_at=4, norms=self.oscillating_norms)
        solver = NewtonSolver(SolverParameters(relax_type=RelaxType.SOR), model)
        _step(solver)

        updates = [dx[0] for dx in model.applied_updates]
        # Third update: 0.9 * 3 + 0.1 * 2, fourth: 0.8 * 4 + 0.2 * 3
        assert np.allclose(updates, [1.0, 2.0, 2.9, 3.8])

    def test_single_oscillating_phase_is_not_relaxed(self):
        norms = [[1.0, 1.0], [2.0, 0.5], [1.0, 0.25], [2.0, 0.125]]
        model = ScriptedModel(converge_at=3, norms=norms)
        solver = NewtonSolver(None, model)
        _step(solver)

        factors = [dx[0] / (k + 1) for k, dx in enumerate(model.applied_updates)]
        assert np.allclose(factors, 1.0)


class TestDetectOscillations:
    @staticmethod
    def _history(F2, F1, F0):
        return [F2, F1, F0]

    def test_too_short_history(self):
        history = [[1.0, 1.0], [2.0, 2.0]]
        assert detect_newton_oscillations(history, 1, 0.2, 2) == (False, False)
        assert detect_newton_oscillations(history[:1], 0, 0.2, 2) == (False, False)

    @pytest.mark.parametrize(
        "tol, known",
        [
            # d1 = |F0 - F2| / F0 = 0.25 and d2 = |F0 - F1| / F0 = 0.5
            (0.25, False),
            (0.5, False),
            (0.3, True),
        ],
    )
    def test_threshold_boundaries(self, tol, known):
        history = self._history([0.75, 0.75], [0.5, 0.5], [1.0, 1.0])
        oscillate, _ = detect_newton_oscillations(history, 2, tol, 2)
        assert oscillate == known

    def test_more_than_one_phase_required(self):
        history = self._history([1.0, 1.0], [2.0, 1.0], [1.0, 1.0])
        oscillate, _ = detect_newton_oscillations(history, 2, 0.2, 2)
        assert not oscillate

        history = self._history([1.0, 1.0, 1.0], [2.0, 2.0, 1.0], [1.0, 1.0, 1.0])
        oscillate, _ = detect_newton_oscillations(history, 2, 0.2, 3)
        assert oscillate

    def test_only_first_phases_inspected(self):
        history = self._history([1.0, 1.0, 1.0], [2.0, 1.0, 2.0], [1.0, 1.0, 1.0])
        assert detect_newton_oscillations(history, 2, 0.2, 3)[0]
        assert not detect_newton_oscillations(history, 2, 0.2, 2)[0]

    def test_stagnation(self):
        history = self._history([1.0, 1.0], [1.0, 1.0], [0.5, 0.5])
        _, stagnate = detect_newton_oscillations(history, 2, 0.2, 2)
        assert stagnate

        history = self._history([1.0, 1.0], [1.0, 0.5], [0.5, 0.5])
        _, stagnate = detect_newton_oscillations(history, 2, 0.2, 2)
        assert not stagnate

    def test_zero_norms(self):
        history = self._history([0.0, 0.0], [0.0, 0.0], [0.0, 0.0])
        oscillate, stagnate = detect_newton_oscillations(history, 2, 0.2, 2)
        assert not oscillate
        assert stagnate


class TestStabilize:
    @pytest.mark.parametrize("relax_type", [RelaxType.DAMPEN, RelaxType.SOR])
    def test_identity_for_unit_omega(self, relax_type):
        dx = np.array([0.1, 2.0 / 3.0])
        dx_old = np.array([5.0, 5.0])
        new_dx, new_dx_old = stabilize_newton(dx, dx_old, 1.0, relax_type)
        assert np.array_equal(new_dx, dx)
        assert np.array_equal(new_dx_old, dx)

    @pytest.mark.parametrize("relax_type", [RelaxType.DAMPEN, RelaxType.SOR])
    def test_stored_update_is_independent(self, relax_type):
        """Modifying the returned update in place leaves the stored update intact."""
        dx = np.array([1.0, 2.0])
        new_dx, new_dx_old = stabilize_newton(dx, np.zeros(2), 1.0, relax_type)
        new_dx *= 0.5
        assert np.allclose(new_dx_old, [1.0, 2.0])

    def test_dampen(self):
        dx = np.array([1.0, 2.0])
        new_dx, new_dx_old = stabilize_newton(dx, np.zeros(2), 0.5, RelaxType.DAMPEN)
        assert np.allclose(new_dx, [0.5, 1.0])
        assert np.allclose(new_dx_old, dx)

    @pytest.mark.parametrize("omega", [0.5, 0.75])
    def test_sor(self, omega):
        dx = np.array([1.0, 2.0])
        dx_old = np.array([3.0, -2.0])
        new_dx, new_dx_old = stabilize_newton(dx, dx_old, omega, RelaxType.SOR)
        assert np.allclose(new_dx, omega * dx + (1 - omega) * dx_old)
        assert np.allclose(new_dx_old, dx)


class TestSolverParameters:
    def test_defaults(self):
        params = SolverParameters()
        assert params.relax_type == RelaxType.DAMPEN
        assert params.relax_max == 0.5
        assert params.relax_increment == 0.1
        assert params.relax_rel_tol == 0.2
        assert params.max_iter == 15
        assert params.min_iter == 1

    def test_from_params_with_strings(self):
        params = SolverParameters.from_params(
            {"relax_type": "SOR", "max_iter": "7", "relax_max": "0.3"}
        )
        assert params.relax_type == RelaxType.SOR
        assert params.max_iter == 7
        assert params.relax_max == 0.3
        assert params.min_iter == 1

    def test_unknown_relax_type(self):
        with pytest.raises(ValueError):
            SolverParameters.from_params({"relax_type": "linesearch"})
        with pytest.raises(ValueError):
            RelaxType.from_str("none")

    def test_from_config(self, monkeypatch):
        monkeypatch.setitem(
            rf.config, "newton", {"relax_type": "dampen", "min_iter": "0"}
        )
        params = SolverParameters.from_config()
        assert params.relax_type == RelaxType.DAMPEN
        assert params.min_iter == 0

    def test_solver_accessors(self):
        params = SolverParameters(relax_type=RelaxType.SOR, max_iter=3)
        solver = NewtonSolver(params, ScriptedModel(converge_at=0))
        assert solver.relax_type() == RelaxType.SOR
        assert solver.max_iter() == 3
        assert solver.min_iter() == 1
        assert solver.relax_max() == 0.5
        assert solver.relax_increment() == 0.1
        assert solver.relax_rel_tol() == 0.2
