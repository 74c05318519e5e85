"""
Maneuver model and correction application rules.

A finite burn is a time window over which the thruster fires at a constant
throttle along a direction steered by two quadratic polynomials:
    alpha(t): in-plane angle
    beta(t):  out-of-plane angle
with t the time since the start of the burn in seconds. The direction in the
maneuver frame is
    u = [sin(alpha) cos(beta), cos(alpha) cos(beta), sin(beta)]

The same application rule is used for initial guesses, Jacobian
perturbations and Newton corrections, so that all three act on the state and
maneuver identically.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field, replace

from ..core.constants import SECONDS_PER_DAY, EPOCH_NOOP_S
from ..core.types import FrameType, SpacecraftState, Variable, Vary, VaryTarget
from ..core.frames import dcm_local_to_inertial


@dataclass(frozen=True)
class QuadraticPolynomial:
    """a·t² + b·t + c"""
    a: float = 0.0
    b: float = 0.0
    c: float = 0.0

    def eval(self, t: float) -> float:
        return (self.a * t + self.b) * t + self.c

    def deriv(self, t: float) -> float:
        return 2.0 * self.a * t + self.b

    @property
    def coefficients(self) -> tuple[float, float, float]:
        """Coefficients ordered by increasing power: (c, b, a)."""
        return self.c, self.b, self.a

    def add_val_in_order(self, value: float, order: int) -> QuadraticPolynomial:
        """New polynomial with `value` added to the coefficient of t**order."""
        if order == 0:
            return replace(self, c=self.c + value)
        if order == 1:
            return replace(self, b=self.b + value)
        if order == 2:
            return replace(self, a=self.a + value)
        raise ValueError(f"a quadratic has no term of order {order}")

    def __str__(self) -> str:
        return f"{self.a:.6e} t^2 + {self.b:.6e} t + {self.c:.6e}"


def unit_vector_from_plane_angles(alpha: float, beta: float) -> np.ndarray:
    """Unit vector from in-plane and out-of-plane angles [rad]."""
    return np.array([
        np.sin(alpha) * np.cos(beta),
        np.cos(alpha) * np.cos(beta),
        np.sin(beta),
    ])


def plane_angles_from_unit_vector(u: np.ndarray) -> tuple[float, float]:
    """Inverse of unit_vector_from_plane_angles, returns (alpha, beta) [rad]."""
    u = u / np.linalg.norm(u)
    return float(np.arctan2(u[0], u[1])), float(np.arcsin(np.clip(u[2], -1.0, 1.0)))


@dataclass(frozen=True)
class ManeuverModel:
    """Time-windowed finite burn.

    Attributes:
        start_mjd_tt: Ignition epoch [MJD TT].
        end_mjd_tt: Cutoff epoch [MJD TT], never before the start.
        thrust_level: Throttle in [0, 1].
        alpha: In-plane steering angle polynomial [rad].
        beta: Out-of-plane steering angle polynomial [rad].
        frame: Frame the steering angles are expressed in.
    """
    start_mjd_tt: float
    end_mjd_tt: float
    thrust_level: float = 1.0
    alpha: QuadraticPolynomial = field(default_factory=QuadraticPolynomial)
    beta: QuadraticPolynomial = field(default_factory=QuadraticPolynomial)
    frame: FrameType = FrameType.RCN

    def __post_init__(self):
        if self.end_mjd_tt < self.start_mjd_tt:
            raise ValueError("maneuver ends before it starts")
        if not 0.0 <= self.thrust_level <= 1.0:
            raise ValueError(f"thrust level must be in [0, 1], got {self.thrust_level}")

    @classmethod
    def from_duration(cls, start_mjd_tt: float, duration_s: float, **kwargs) -> ManeuverModel:
        return cls(start_mjd_tt, start_mjd_tt + max(duration_s, 0.0) / SECONDS_PER_DAY, **kwargs)

    @property
    def duration_s(self) -> float:
        return (self.end_mjd_tt - self.start_mjd_tt) * SECONDS_PER_DAY

    def elapsed_s(self, epoch_mjd_tt: float) -> float:
        """Seconds since ignition."""
        return (epoch_mjd_tt - self.start_mjd_tt) * SECONDS_PER_DAY

    def is_active(self, epoch_mjd_tt: float) -> bool:
        return self.start_mjd_tt <= epoch_mjd_tt <= self.end_mjd_tt

    def direction(self, epoch_mjd_tt: float) -> np.ndarray:
        """Thrust unit vector in the maneuver frame."""
        t = self.elapsed_s(epoch_mjd_tt)
        return unit_vector_from_plane_angles(self.alpha.eval(t), self.beta.eval(t))

    def vector(self, r: np.ndarray, v: np.ndarray, epoch_mjd_tt: float) -> np.ndarray:
        """Thrust unit vector in the inertial frame."""
        u = self.direction(epoch_mjd_tt)
        if self.frame is FrameType.ECI_J2000:
            return u
        return dcm_local_to_inertial(r, v, self.frame) @ u

    # Window edits always keep end = start + duration with a non-negative duration.

    def shift_start(self, dt_s: float) -> ManeuverModel:
        """Move the window, keeping its duration."""
        start = self.start_mjd_tt + dt_s / SECONDS_PER_DAY
        return replace(self, start_mjd_tt=start,
                       end_mjd_tt=start + self.duration_s / SECONDS_PER_DAY)

    def with_duration(self, duration_s: float) -> ManeuverModel:
        """Set the burn length, keeping its start."""
        return replace(self, end_mjd_tt=self.start_mjd_tt + max(duration_s, 0.0) / SECONDS_PER_DAY)

    def change_duration(self, dt_s: float) -> ManeuverModel:
        """Lengthen (or shorten) the burn, keeping its start."""
        return self.with_duration(self.duration_s + dt_s)

    def __str__(self) -> str:
        return (f"Maneuver [{self.start_mjd_tt:.9f} -> {self.end_mjd_tt:.9f} MJD TT] "
                f"({self.duration_s:.3f} s, thrust {self.thrust_level * 100:.1f}%) "
                f"in {self.frame.name}: alpha = {self.alpha}, beta = {self.beta}")


def apply_maneuver_correction(mnvr: ManeuverModel, component: Vary, amount: float,
                              epoch_noop_s: float = EPOCH_NOOP_S) -> ManeuverModel:
    """Apply a correction of a maneuver variable.

    Epoch corrections smaller than epoch_noop_s are ignored.
    """
    target = component.target
    if component.is_epoch and abs(amount) <= epoch_noop_s:
        return mnvr

    if target is VaryTarget.START:
        return mnvr.shift_start(amount)
    if target in (VaryTarget.END, VaryTarget.DURATION):
        return mnvr.change_duration(amount)
    if target is VaryTarget.ALPHA:
        return replace(mnvr, alpha=mnvr.alpha.add_val_in_order(amount, component.vec_index))
    if target is VaryTarget.BETA:
        return replace(mnvr, beta=mnvr.beta.add_val_in_order(amount, component.vec_index))
    raise ValueError(f"{component.name} is not a maneuver variable")


def apply_state_correction(state: SpacecraftState, correction: np.ndarray,
                           frame: FrameType | None = None) -> SpacecraftState:
    """Apply a 6-vector correction to a copy of a state.

    Without a frame the correction is added to the Cartesian components. With
    a local frame only the velocity part is used, rotated to inertial with
    the DCM evaluated at the state being corrected.
    """
    correction = np.asarray(correction, dtype=float)
    if frame is None or frame is FrameType.ECI_J2000:
        return state.with_state_vector(state.state_vector + correction)
    dv = state.dcm_from_frame(frame) @ correction[3:6]
    return state.with_dv(dv)


def apply_variable(state: SpacecraftState, mnvr: ManeuverModel, var: Variable,
                   amount: float, frame: FrameType | None = None,
                   epoch_noop_s: float = EPOCH_NOOP_S
                   ) -> tuple[SpacecraftState, ManeuverModel]:
    """Apply `amount` of one variable to copies of the state and maneuver."""
    if var.component.is_finite_burn:
        return state, apply_maneuver_correction(mnvr, var.component, amount, epoch_noop_s)
    correction = np.zeros(6)
    correction[var.component.vec_index] = amount
    return apply_state_correction(state, correction, frame), mnvr
