import numpy as np
import pytest

from targeter.core.config import TargeterConfig
from targeter.core.constants import SECONDS_PER_DAY
from targeter.core.errors import (
    CorrectionIneffective, FrameError, InvalidVariable, MaxIterationsReached,
    NoThrusterAvailable, UnderdeterminedProblem
)
from targeter.core.types import (
    FrameType, Objective, StateParameter, Variable, Vary
)
from targeter.maneuvers.differential_correction import Targeter, clamp_correction
from targeter.maneuvers.jacobian import DualStmJacobian

DT_S = 100.0


def _epochs(state):
    return state.epoch_mjd_tt, state.epoch_mjd_tt + DT_S / SECONDS_PER_DAY


def test_linear_problem_converges_in_one_iteration(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal + 10.0, tolerance=1e-3)]
    variables = [Variable(Vary.VELOCITY_X, perturbation=1e-6)]

    sol = Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert sol.iterations == 1
    assert np.isclose(sol.correction[0], 0.1, atol=1e-6)
    assert abs(sol.achieved_errors[0]) <= objectives[0].tolerance
    assert np.isclose(sol.achieved_state.position[0], x_nominal + 10.0, atol=1e-3)
    assert sol.maneuver is None
    assert not sol.is_finite_burn


def test_corrected_state_reconverges_immediately(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [
        Objective(StateParameter.X, 7050.0, tolerance=1e-3),
        Objective(StateParameter.Y, 800.0, tolerance=1e-3),
    ]
    targeter = Targeter.delta_v(linear_prop, objectives)
    sol = targeter.run(leo_state, corr_epoch, ach_epoch)
    again = targeter.run(sol.corrected_state, corr_epoch, ach_epoch)

    assert again.iterations <= 1
    for obj, err in zip(again.achieved_objectives, again.achieved_errors):
        assert abs(err) <= obj.tolerance


def test_convergent_errors_within_tolerance(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [
        Objective(StateParameter.X, 7010.0, tolerance=1e-4),
        Objective(StateParameter.Z, 380.0, tolerance=1e-4),
        Objective(StateParameter.VY, leo_state.velocity[1] + 0.05, tolerance=1e-7),
    ]
    sol = Targeter.delta_v(linear_prop, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert len(sol.achieved_errors) == 3
    for obj, err in zip(objectives, sol.achieved_errors):
        assert abs(err) <= obj.tolerance


def test_no_objectives_raises_before_propagation(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    targeter = Targeter.delta_v(linear_prop, [])
    with pytest.raises(UnderdeterminedProblem):
        targeter.run(leo_state, corr_epoch + 1.0, ach_epoch)
    assert linear_prop.calls.count == 0


def test_invalid_variable_raises_before_propagation(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    variables = [Variable(Vary.VELOCITY_X, min_value=1.0, max_value=-1.0)]
    objectives = [Objective(StateParameter.X, 7000.0)]
    with pytest.raises(InvalidVariable):
        Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)
    assert linear_prop.calls.count == 0


def test_position_variable_in_local_frame_rejected(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [Objective(StateParameter.X, 7000.0)]
    targeter = Targeter.delta_r(linear_prop, objectives, correction_frame=FrameType.VNC)
    with pytest.raises(InvalidVariable) as excinfo:
        targeter.run(leo_state, corr_epoch, ach_epoch)
    assert isinstance(excinfo.value, FrameError)
    assert linear_prop.calls.count == 0


def test_position_variable_in_inertial_frame_accepted(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal + 0.2, tolerance=1e-3)]

    sol = Targeter.delta_r(linear_prop, objectives, correction_frame=FrameType.ECI_J2000).run(
        leo_state, corr_epoch, ach_epoch
    )

    assert sol.iterations == 1
    assert np.allclose(sol.correction, [0.2, 0.0, 0.0], atol=1e-6)
    assert np.isclose(sol.corrected_state.position[0], leo_state.position[0] + 0.2, atol=1e-6)


def test_finite_burn_without_thruster(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    variables = [Variable.from_vary(Vary.MNVR_ALPHA), Variable.from_vary(Vary.DURATION)]
    objectives = [Objective(StateParameter.X, 7000.0)]
    with pytest.raises(NoThrusterAvailable):
        Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch + 1.0, ach_epoch)
    assert linear_prop.calls.count == 0


def test_unreachable_objective_is_ineffective(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    # Y at the achievement epoch does not depend on VX
    objectives = [Objective(StateParameter.Y, 1234.0, tolerance=1e-3)]
    variables = [Variable.from_vary(Vary.VELOCITY_X)]
    with pytest.raises(CorrectionIneffective):
        Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)
    # Nominal + Jacobian trial, then the second nominal detects the stagnation
    assert linear_prop.calls.count == 3


def test_max_iterations_reached(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [Objective(StateParameter.X, 7100.0, tolerance=1e-3)]
    variables = [Variable.from_vary(Vary.VELOCITY_X)]
    config = TargeterConfig(max_iterations=0)
    with pytest.raises(MaxIterationsReached) as excinfo:
        Targeter(linear_prop, variables, objectives, config=config).run(
            leo_state, corr_epoch, ach_epoch
        )
    assert excinfo.value.iterations == 0
    assert excinfo.value.last_error_norm > 0.0


def test_steps_are_clamped(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    # Needs 0.3 km/s but at most 0.1 km/s per iteration
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal + 30.0, tolerance=1e-3)]
    variables = [Variable(Vary.VELOCITY_X, perturbation=1e-6, max_step=0.1)]

    sol = Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert sol.iterations == 3
    assert np.isclose(sol.correction[0], 0.3, atol=1e-6)


def test_clamp_correction_bounds():
    rng = np.random.default_rng(7)
    variables = [
        Variable(Vary.VELOCITY_X, max_step=0.5, min_value=-5.0, max_value=5.0),
        Variable(Vary.VELOCITY_Y, max_step=-2.0, min_value=-0.1, max_value=1.0),
        Variable(Vary.DURATION, max_step=60.0, min_value=0.0, max_value=600.0),
    ]
    for _ in range(50):
        delta = rng.normal(scale=10.0, size=3)
        clamped = clamp_correction(delta, variables)
        for var, val in zip(variables, clamped):
            assert -abs(var.max_step) <= val <= abs(var.max_step)
            assert var.min_value <= val <= var.max_value


def test_clamp_applies_max_step_then_bounds():
    var = Variable(Vary.VELOCITY_X, max_step=0.5, min_value=-0.2, max_value=5.0)
    assert clamp_correction(np.array([-3.0]), [var])[0] == -0.2
    assert clamp_correction(np.array([3.0]), [var])[0] == 0.5
    assert clamp_correction(np.array([0.1]), [var])[0] == 0.1


def test_initial_guess_counts_in_total_correction(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal + 10.0, tolerance=1e-3)]
    variables = [Variable(Vary.VELOCITY_X, initial_guess=0.1, perturbation=1e-6)]

    sol = Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert sol.iterations == 0
    assert np.isclose(sol.correction[0], 0.1)
    assert np.isclose(sol.corrected_state.velocity[0], leo_state.velocity[0] + 0.1)


def test_vnc_velocity_correction(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    v_hat = leo_state.velocity / np.linalg.norm(leo_state.velocity)
    target = leo_state.position + (leo_state.velocity + 0.02 * v_hat) * DT_S
    objectives = [
        Objective(p, target[k], tolerance=1e-4)
        for k, p in enumerate((StateParameter.X, StateParameter.Y, StateParameter.Z))
    ]

    sol = Targeter.vnc(linear_prop, objectives).run(leo_state, corr_epoch, ach_epoch)

    # Pure along-track correction: [dv_V, dv_N, dv_C]
    assert np.allclose(sol.correction, [0.02, 0.0, 0.0], atol=1e-6)
    assert np.allclose(sol.corrected_state.velocity, leo_state.velocity + 0.02 * v_hat, atol=1e-6)


def test_run_in_frame_matches_vnc_constructor(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [Objective(StateParameter.RMAG, 7100.0, tolerance=1e-3)]
    inertial = Targeter.delta_v(linear_prop, objectives)
    sol = inertial.run_in_frame(leo_state, corr_epoch, ach_epoch, FrameType.VNC)
    ref = Targeter.vnc(linear_prop, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert inertial.correction_frame is None
    assert np.allclose(sol.correction, ref.correction)


def test_stm_jacobian_gives_same_solution(linear_prop, leo_state):
    corr_epoch, ach_epoch = _epochs(leo_state)
    objectives = [
        Objective(StateParameter.X, 7050.0, tolerance=1e-4),
        Objective(StateParameter.RMAG, 7100.0, tolerance=1e-4),
    ]
    fd = Targeter.delta_v(linear_prop, objectives).run(leo_state, corr_epoch, ach_epoch)
    stm = Targeter.delta_v(linear_prop, objectives, jacobian=DualStmJacobian()).run(
        leo_state, corr_epoch, ach_epoch
    )
    assert np.allclose(fd.achieved_state.position, stm.achieved_state.position, atol=1e-3)


def test_finite_burn_target_uses_default_maneuver(linear_prop, leo_state, thruster):
    leo_state.thruster = thruster
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal, tolerance=1e-3)]
    variables = [Variable.from_vary(Vary.MNVR_ALPHA, initial_guess=0.3)]

    sol = Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert sol.is_finite_burn
    assert sol.iterations == 0
    assert sol.maneuver.start_mjd_tt == corr_epoch
    assert np.isclose(sol.maneuver.duration_s, 5.0)
    assert sol.maneuver.frame is FrameType.RCN
    assert sol.maneuver.alpha.c == 0.3
    # Finite burn targets do not change the state at the correction epoch
    assert np.allclose(sol.corrected_state.state_vector, leo_state.state_vector)


def test_finite_burn_propagation_phases(linear_prop, leo_state, thruster):
    leo_state.thruster = thruster
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal, tolerance=1e-3)]
    variables = [Variable.from_vary(Vary.DURATION, initial_guess=15.0)]

    Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    modes = [mode.name for mode, _ in linear_prop.log]
    assert modes == ["COAST", "THRUST", "COAST"]
    # The duration guess sets the burn length; the thrust arc step is clamped to it
    assert np.isclose(linear_prop.log[1][1], 15.0)
    assert linear_prop.max_step_s == 300.0


def test_str_lists_objectives_and_variables(linear_prop):
    targeter = Targeter.vnc(linear_prop, [Objective(StateParameter.SMA, 7100.0)])
    text = str(targeter)
    assert "VNC" in text
    assert "SMA" in text
    assert "VELOCITY_Z" in text
    assert Targeter.vnc.__doc__


def test_duration_guess_sets_burn_length(linear_prop, leo_state, thruster):
    leo_state.thruster = thruster
    corr_epoch, ach_epoch = _epochs(leo_state)
    x_nominal = leo_state.position[0] + leo_state.velocity[0] * DT_S
    objectives = [Objective(StateParameter.X, x_nominal, tolerance=1e-3)]
    variables = [Variable.from_vary(Vary.DURATION, initial_guess=30.0)]

    sol = Targeter(linear_prop, variables, objectives).run(leo_state, corr_epoch, ach_epoch)

    assert sol.iterations == 0
    assert sol.maneuver.start_mjd_tt == corr_epoch
    assert np.isclose(sol.maneuver.duration_s, 30.0, atol=1e-5)
