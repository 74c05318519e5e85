import threading

import numpy as np
import pytest

from targeter.core.constants import DEG2RAD, MU_EARTH, SECONDS_PER_DAY
from targeter.core.types import SpacecraftState, ThrusterModel

EPOCH = 60000.0


class CallCounter:
    """Thread-safe propagation counter shared between clones."""

    def __init__(self):
        self._lock = threading.Lock()
        self.count = 0

    def increment(self):
        with self._lock:
            self.count += 1


class LinearDynamics:
    def __init__(self, control=None):
        self.control = control

    def with_control(self, maneuver):
        return LinearDynamics(maneuver)


class LinearPropagator:
    """Free particle: r_f = r + v dt, v_f = v.

    Records the mode and max step of every call so tests can inspect the
    phases of a finite-burn propagation.
    """

    def __init__(self, calls=None, max_step_s=300.0, log=None):
        self.dynamics = LinearDynamics()
        self.max_step_s = max_step_s
        self.calls = calls if calls is not None else CallCounter()
        self.log = log if log is not None else []

    def propagate(self, state, until_epoch_mjd_tt, with_trajectory=False, with_stm=False):
        self.calls.increment()
        self.log.append((state.mode, self.max_step_s))
        dt = (until_epoch_mjd_tt - state.epoch_mjd_tt) * SECONDS_PER_DAY
        final = state.with_state_vector(
            np.concatenate([state.position + state.velocity * dt, state.velocity])
        )
        final.epoch_mjd_tt = until_epoch_mjd_tt
        if with_stm:
            stm = np.eye(6)
            stm[0:3, 3:6] = dt * np.eye(3)
            final.stm = stm
        return final, None

    def clone(self):
        new = LinearPropagator(self.calls, self.max_step_s, self.log)
        new.dynamics = self.dynamics
        return new


def state_from_elements(a, e, inc, raan, aop, ta, mu=MU_EARTH, epoch=EPOCH, **kwargs):
    """Cartesian state from classical elements (angles in radians)."""
    p = a * (1.0 - e ** 2)
    r_pf = p / (1.0 + e * np.cos(ta)) * np.array([np.cos(ta), np.sin(ta), 0.0])
    v_pf = np.sqrt(mu / p) * np.array([-np.sin(ta), e + np.cos(ta), 0.0])

    def rot3(x):
        c, s = np.cos(x), np.sin(x)
        return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])

    def rot1(x):
        c, s = np.cos(x), np.sin(x)
        return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])

    q = rot3(raan) @ rot1(inc) @ rot3(aop)
    return SpacecraftState(epoch, q @ r_pf, q @ v_pf, mu=mu, **kwargs)


@pytest.fixture
def linear_prop():
    return LinearPropagator()


@pytest.fixture
def leo_state():
    """Circular 7000 km orbit inclined by 30 degrees."""
    vc = np.sqrt(MU_EARTH / 7000.0)
    inc = 30.0 * DEG2RAD
    return SpacecraftState(
        EPOCH,
        np.array([7000.0, 0.0, 0.0]),
        np.array([0.0, vc * np.cos(inc), vc * np.sin(inc)]),
    )


@pytest.fixture
def eccentric_state():
    return state_from_elements(8000.0, 0.1, 40.0 * DEG2RAD, 60.0 * DEG2RAD,
                               30.0 * DEG2RAD, 50.0 * DEG2RAD)


@pytest.fixture
def thruster():
    return ThrusterModel(thrust_n=500.0, isp_s=300.0)
