"""End-to-end targeting with the numerical propagator."""

import numpy as np
import pytest

from targeter.astrodynamics.dynamics import SpacecraftDynamics
from targeter.astrodynamics.propagator import Propagator
from targeter.core.config import ForceModelConfig, TargeterConfig
from targeter.core.constants import SECONDS_PER_DAY
from targeter.core.types import FrameType, Objective, StateParameter
from targeter.maneuvers.differential_correction import Targeter
from targeter.maneuvers.jacobian import DualStmJacobian

DV_TRUE = np.array([0.01, 0.02, -0.005])
CARTESIAN_POSITION = (StateParameter.X, StateParameter.Y, StateParameter.Z)


@pytest.fixture
def two_body():
    return Propagator(SpacecraftDynamics(ForceModelConfig(enable_j2=False)))


def _position_objectives(state):
    return [Objective(p, state.value(p), tolerance=1e-4) for p in CARTESIAN_POSITION]


def test_recover_impulse_from_terminal_position(two_body, eccentric_state):
    corr_epoch = eccentric_state.epoch_mjd_tt
    ach_epoch = corr_epoch + 1200.0 / SECONDS_PER_DAY
    target = two_body.until_epoch(eccentric_state.with_dv(DV_TRUE), ach_epoch)

    config = TargeterConfig(max_iterations=20)
    sol = Targeter.delta_v(two_body, _position_objectives(target), config=config).run(
        eccentric_state, corr_epoch, ach_epoch
    )

    assert np.allclose(sol.correction, DV_TRUE, atol=1e-6)
    assert np.allclose(sol.achieved_state.position, target.position, atol=1e-4)
    assert sol.computation_dur_s > 0.0
    assert "converged" in str(sol)


def test_stm_jacobian_recovers_the_same_impulse(two_body, eccentric_state):
    corr_epoch = eccentric_state.epoch_mjd_tt
    ach_epoch = corr_epoch + 1200.0 / SECONDS_PER_DAY
    target = two_body.until_epoch(eccentric_state.with_dv(DV_TRUE), ach_epoch)

    sol = Targeter.delta_v(two_body, _position_objectives(target),
                           jacobian=DualStmJacobian()).run(eccentric_state, corr_epoch, ach_epoch)

    assert np.allclose(sol.correction, DV_TRUE, atol=1e-6)


def test_correction_epoch_after_initial_state(two_body, eccentric_state):
    corr_epoch = eccentric_state.epoch_mjd_tt + 300.0 / SECONDS_PER_DAY
    ach_epoch = corr_epoch + 900.0 / SECONDS_PER_DAY
    at_corr = two_body.until_epoch(eccentric_state, corr_epoch)
    target = two_body.until_epoch(at_corr.with_dv(DV_TRUE), ach_epoch)

    sol = Targeter.delta_v(two_body, _position_objectives(target)).run(
        eccentric_state, corr_epoch, ach_epoch
    )

    assert sol.corrected_state.epoch_mjd_tt == corr_epoch
    assert np.allclose(sol.corrected_state.velocity, at_corr.velocity + DV_TRUE, atol=1e-6)


def test_raise_semi_major_axis_along_track(two_body, leo_state):
    corr_epoch = leo_state.epoch_mjd_tt
    ach_epoch = corr_epoch + 600.0 / SECONDS_PER_DAY
    objectives = [Objective(StateParameter.SMA, 7100.0, tolerance=1e-3)]

    sol = Targeter.vnc(two_body, objectives).run(leo_state, corr_epoch, ach_epoch)

    # Minimum-norm Δv for an energy change is along the velocity
    assert sol.correction[0] > 0.0
    assert np.allclose(sol.correction[1:], 0.0, atol=1e-6)
    assert sol.corrected_state.value(StateParameter.SMA) == pytest.approx(7100.0, abs=1e-2)

    again = Targeter.vnc(two_body, objectives).run(sol.corrected_state, corr_epoch, ach_epoch)
    assert again.iterations <= 1


def test_local_frame_correction_is_rotated(two_body, leo_state):
    corr_epoch = leo_state.epoch_mjd_tt
    ach_epoch = corr_epoch + 900.0 / SECONDS_PER_DAY
    dcm = leo_state.dcm_from_frame(FrameType.RIC)
    dv_ric = np.array([0.001, 0.004, -0.002])
    target = two_body.until_epoch(leo_state.with_dv(dcm @ dv_ric), ach_epoch)

    sol = Targeter.in_frame(two_body, _position_objectives(target), FrameType.RIC).run(
        leo_state, corr_epoch, ach_epoch
    )

    assert np.allclose(sol.correction, dv_ric, atol=1e-6)


def test_local_frame_corrected_state_flies_to_achieved_state(two_body, leo_state):
    corr_epoch = leo_state.epoch_mjd_tt
    ach_epoch = corr_epoch + 900.0 / SECONDS_PER_DAY
    dcm = leo_state.dcm_from_frame(FrameType.VNC)
    target = two_body.until_epoch(leo_state.with_dv(dcm @ np.array([0.3, 0.2, -0.25])), ach_epoch)
    objectives = [Objective(p, target.value(p), tolerance=1e-3) for p in CARTESIAN_POSITION]

    sol = Targeter.vnc(two_body, objectives).run(leo_state, corr_epoch, ach_epoch)

    # Several iterations, each rotated at a different VNC frame
    assert sol.iterations >= 2
    reflown = two_body.until_epoch(sol.corrected_state, ach_epoch)
    assert np.allclose(reflown.position, sol.achieved_state.position, atol=1e-6)
    assert np.allclose(reflown.position, target.position, atol=1e-3)
