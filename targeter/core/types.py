"""
Foundational data types for the targeter.

All state, variable, objective and solution data flows through these
dataclasses.
Convention:
    - Distances: km
    - Time: seconds (integration, durations), MJD TT (epochs)
    - Velocity: km/s
    - Mass: kg
    - Angles: radians
    - Thrust: Newtons
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional, TYPE_CHECKING

from .constants import G0, MU_EARTH, SECONDS_PER_DAY, DEG2RAD
from .errors import InvalidVariable, StateError

if TYPE_CHECKING:
    from ..maneuvers.guidance import ManeuverModel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FrameType(Enum):
    """Reference frame identifiers."""
    ECI_J2000 = auto()
    RIC = auto()        # Radial / In-track / Cross-track (LVLH)
    RCN = auto()        # Radial / Cross-track / Normal
    VNC = auto()        # Velocity / Normal / Co-normal

    @property
    def is_local(self) -> bool:
        """Whether the frame is attached to the orbit of the spacecraft."""
        return self is not FrameType.ECI_J2000


class GuidanceMode(Enum):
    """Whether the spacecraft follows its control law or coasts."""
    COAST = auto()
    THRUST = auto()


class VaryTarget(Enum):
    """Where a variable acts: the state vector or a maneuver field."""
    STATE = auto()
    ALPHA = auto()
    BETA = auto()
    START = auto()
    END = auto()
    DURATION = auto()


class Vary(Enum):
    """Closed set of variable components."""
    POSITION_X = auto()
    POSITION_Y = auto()
    POSITION_Z = auto()
    VELOCITY_X = auto()
    VELOCITY_Y = auto()
    VELOCITY_Z = auto()
    START_EPOCH = auto()
    END_EPOCH = auto()
    DURATION = auto()
    MNVR_ALPHA = auto()
    MNVR_ALPHA_DOT = auto()
    MNVR_ALPHA_DDOT = auto()
    MNVR_BETA = auto()
    MNVR_BETA_DOT = auto()
    MNVR_BETA_DDOT = auto()

    @property
    def target(self) -> VaryTarget:
        return VARY_TABLE[self][0]

    @property
    def vec_index(self) -> int:
        """Index in the 6-vector for state components, polynomial order for
        steering coefficients, 0 for epochs."""
        return VARY_TABLE[self][1]

    @property
    def is_finite_burn(self) -> bool:
        return self.target is not VaryTarget.STATE

    @property
    def is_position(self) -> bool:
        return self.target is VaryTarget.STATE and self.vec_index < 3

    @property
    def is_epoch(self) -> bool:
        return self.target in (VaryTarget.START, VaryTarget.END, VaryTarget.DURATION)


# Tag -> (what it perturbs, index within it)
VARY_TABLE: dict[Vary, tuple[VaryTarget, int]] = {
    Vary.POSITION_X: (VaryTarget.STATE, 0),
    Vary.POSITION_Y: (VaryTarget.STATE, 1),
    Vary.POSITION_Z: (VaryTarget.STATE, 2),
    Vary.VELOCITY_X: (VaryTarget.STATE, 3),
    Vary.VELOCITY_Y: (VaryTarget.STATE, 4),
    Vary.VELOCITY_Z: (VaryTarget.STATE, 5),
    Vary.START_EPOCH: (VaryTarget.START, 0),
    Vary.END_EPOCH: (VaryTarget.END, 0),
    Vary.DURATION: (VaryTarget.DURATION, 0),
    Vary.MNVR_ALPHA: (VaryTarget.ALPHA, 0),
    Vary.MNVR_ALPHA_DOT: (VaryTarget.ALPHA, 1),
    Vary.MNVR_ALPHA_DDOT: (VaryTarget.ALPHA, 2),
    Vary.MNVR_BETA: (VaryTarget.BETA, 0),
    Vary.MNVR_BETA_DOT: (VaryTarget.BETA, 1),
    Vary.MNVR_BETA_DDOT: (VaryTarget.BETA, 2),
}


class StateParameter(Enum):
    """Closed set of parameters that can be read from a terminal state."""
    X = auto()
    Y = auto()
    Z = auto()
    VX = auto()
    VY = auto()
    VZ = auto()
    RMAG = auto()
    VMAG = auto()
    SMA = auto()
    ECC = auto()
    INC = auto()
    RAAN = auto()
    AOP = auto()
    TA = auto()
    ENERGY = auto()
    HMAG = auto()
    PERIAPSIS = auto()
    APOAPSIS = auto()
    C3 = auto()
    BDOTR = auto()
    BDOTT = auto()
    BLTOF = auto()

    @property
    def is_b_plane(self) -> bool:
        return self in (StateParameter.BDOTR, StateParameter.BDOTT, StateParameter.BLTOF)

    @property
    def is_cartesian(self) -> bool:
        return self in CARTESIAN_INDEX

    @property
    def default_tolerance(self) -> float:
        return DEFAULT_TOLERANCE[self]


CARTESIAN_INDEX: dict[StateParameter, int] = {
    StateParameter.X: 0,
    StateParameter.Y: 1,
    StateParameter.Z: 2,
    StateParameter.VX: 3,
    StateParameter.VY: 4,
    StateParameter.VZ: 5,
}

DEFAULT_TOLERANCE: dict[StateParameter, float] = {
    StateParameter.X: 1e-3,             # km
    StateParameter.Y: 1e-3,
    StateParameter.Z: 1e-3,
    StateParameter.VX: 1e-6,            # km/s
    StateParameter.VY: 1e-6,
    StateParameter.VZ: 1e-6,
    StateParameter.RMAG: 1e-3,
    StateParameter.VMAG: 1e-6,
    StateParameter.SMA: 1e-3,
    StateParameter.ECC: 5e-5,
    StateParameter.INC: 1e-4 * DEG2RAD,
    StateParameter.RAAN: 1e-4 * DEG2RAD,
    StateParameter.AOP: 1e-4 * DEG2RAD,
    StateParameter.TA: 1e-4 * DEG2RAD,
    StateParameter.ENERGY: 1e-6,        # km²/s²
    StateParameter.HMAG: 1e-3,          # km²/s
    StateParameter.PERIAPSIS: 1e-3,
    StateParameter.APOAPSIS: 1e-3,
    StateParameter.C3: 1e-6,
    StateParameter.BDOTR: 1e-3,
    StateParameter.BDOTT: 1e-3,
    StateParameter.BLTOF: 1e-3,         # s
}


# ---------------------------------------------------------------------------
# Spacecraft State
# ---------------------------------------------------------------------------

@dataclass
class ThrusterModel:
    """Thruster performance parameters.

    Attributes:
        thrust_n: Nominal thrust [Newtons].
        isp_s: Specific impulse [seconds].
    """
    thrust_n: float
    isp_s: float

    @property
    def exhaust_velocity_m_s(self) -> float:
        """Effective exhaust velocity [m/s]."""
        return self.isp_s * G0

    @property
    def mass_flow_rate(self) -> float:
        """Propellant mass flow rate at full thrust [kg/s]."""
        return self.thrust_n / self.exhaust_velocity_m_s


@dataclass
class SpacecraftState:
    """Inertial state of a spacecraft at a given epoch.

    Attributes:
        epoch_mjd_tt: Modified Julian Date in Terrestrial Time.
        position: Inertial position vector [km], shape (3,).
        velocity: Inertial velocity vector [km/s], shape (3,).
        mass: Spacecraft wet mass [kg].
        thruster: Thruster model, None for a spacecraft that cannot burn.
        mode: Guidance mode, THRUST only while a maneuver is flown.
        mu: Gravitational parameter of the central body [km³/s²].
        stm: State transition matrix from the propagation start, shape (6,6),
            only set when propagated with the STM.
    """
    epoch_mjd_tt: float
    position: np.ndarray        # (3,) km
    velocity: np.ndarray        # (3,) km/s
    mass: float = 1000.0        # kg
    thruster: Optional[ThrusterModel] = None
    mode: GuidanceMode = GuidanceMode.COAST
    mu: float = MU_EARTH
    stm: Optional[np.ndarray] = None

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float)
        self.velocity = np.asarray(self.velocity, dtype=float)

    @property
    def state_vector(self) -> np.ndarray:
        """Combined [r, v] state vector, shape (6,)."""
        return np.concatenate([self.position, self.velocity])

    @state_vector.setter
    def state_vector(self, rv: np.ndarray):
        self.position = np.array(rv[:3], dtype=float)
        self.velocity = np.array(rv[3:6], dtype=float)

    def copy(self) -> SpacecraftState:
        """Independent copy; the thruster model is shared."""
        return replace(
            self,
            position=self.position.copy(),
            velocity=self.velocity.copy(),
            stm=None if self.stm is None else self.stm.copy(),
        )

    def with_state_vector(self, rv: np.ndarray) -> SpacecraftState:
        new = self.copy()
        new.state_vector = rv
        return new

    def with_dv(self, dv_km_s: np.ndarray) -> SpacecraftState:
        """Copy with an instantaneous inertial Δv applied."""
        new = self.copy()
        new.velocity = new.velocity + np.asarray(dv_km_s, dtype=float)
        return new

    def with_guidance_mode(self, mode: GuidanceMode) -> SpacecraftState:
        new = self.copy()
        new.mode = mode
        return new

    def dcm_from_frame(self, frame: FrameType) -> np.ndarray:
        """Rotation from a local orbital frame to the inertial frame."""
        from .frames import dcm_local_to_inertial
        return dcm_local_to_inertial(self.position, self.velocity, frame)

    def value(self, param: StateParameter) -> float:
        """Value of a raw or derived parameter of this state."""
        if param.is_cartesian:
            return float(self.state_vector[CARTESIAN_INDEX[param]])
        from ..astrodynamics.orbit_dual import OrbitDual, BPlane
        dual = OrbitDual.from_state(self)
        if param.is_b_plane:
            return BPlane.from_dual(dual).partial_for(param).real
        return dual.partial_for(param).real

    def set_value(self, param: StateParameter, val: float) -> None:
        """Set a Cartesian component in place."""
        if not param.is_cartesian:
            raise StateError(f"{param.name} cannot be set directly on a Cartesian state")
        rv = self.state_vector
        rv[CARTESIAN_INDEX[param]] = val
        self.state_vector = rv

    def __str__(self) -> str:
        r, v = self.position, self.velocity
        return (f"[MJD TT {self.epoch_mjd_tt:.9f}] "
                f"r = [{r[0]:.6f}, {r[1]:.6f}, {r[2]:.6f}] km  "
                f"v = [{v[0]:.9f}, {v[1]:.9f}, {v[2]:.9f}] km/s  "
                f"m = {self.mass:.3f} kg ({self.mode.name})")


# ---------------------------------------------------------------------------
# Propagation Results
# ---------------------------------------------------------------------------

@dataclass
class PropagationResult:
    """Output of a numerical propagation.

    Attributes:
        epochs: Time history of epochs [MJD TT], shape (N,).
        states: State vectors [x,y,z,vx,vy,vz] over time, shape (N, 6).
        masses: Mass history [kg], shape (N,).
        epoch_ref_mjd_tt: Epoch at which integration time is zero.
        dense_output: List of (t_start_s, t_end_s, OdeSolution) per segment,
            times in seconds since epoch_ref_mjd_tt. Empty if unavailable.
    """
    epochs: np.ndarray              # (N,)
    states: np.ndarray              # (N, 6)
    masses: np.ndarray              # (N,)
    epoch_ref_mjd_tt: float = 0.0
    dense_output: list = field(default_factory=list)

    @property
    def positions(self) -> np.ndarray:
        """Position history, shape (N, 3)."""
        return self.states[:, :3]

    @property
    def velocities(self) -> np.ndarray:
        """Velocity history, shape (N, 3)."""
        return self.states[:, 3:6]

    def state_at(self, epoch_mjd_tt: float) -> np.ndarray:
        """Interpolate state at an arbitrary epoch.

        Uses dense output if available, otherwise linear interpolation.
        """
        lo, hi = min(self.epochs[0], self.epochs[-1]), max(self.epochs[0], self.epochs[-1])
        if epoch_mjd_tt < lo or epoch_mjd_tt > hi:
            raise ValueError(
                f"epoch {epoch_mjd_tt} outside of trajectory span [{lo}, {hi}]"
            )

        t = (epoch_mjd_tt - self.epoch_ref_mjd_tt) * SECONDS_PER_DAY
        for t0, t1, sol in self.dense_output:
            if min(t0, t1) <= t <= max(t0, t1):
                return np.asarray(sol(t))[:6]

        order = np.argsort(self.epochs)
        return np.array([
            np.interp(epoch_mjd_tt, self.epochs[order], self.states[order, k])
            for k in range(6)
        ])


# ---------------------------------------------------------------------------
# Variables and Objectives
# ---------------------------------------------------------------------------

# (perturbation, max_step, min_value, max_value) per variable family
_VARY_DEFAULTS: dict[VaryTarget, tuple[float, float, float, float]] = {
    VaryTarget.STATE: (1e-4, 0.5, -5.0, 5.0),
    VaryTarget.ALPHA: (1e-4, 0.1, -np.pi, np.pi),
    VaryTarget.BETA: (1e-4, 0.1, -np.pi, np.pi),
    VaryTarget.START: (0.5, 60.0, -600.0, 600.0),
    VaryTarget.END: (0.5, 60.0, -600.0, 600.0),
    VaryTarget.DURATION: (0.5, 60.0, -600.0, 600.0),
}


@dataclass
class Variable:
    """Bounded free parameter adjusted by the differential corrector.

    Attributes:
        component: What this variable changes.
        initial_guess: Value applied before the first iteration.
        perturbation: Finite-difference step used to build the Jacobian.
        max_step: Largest correction applied in one iteration (absolute).
        min_value: Lower bound of the correction applied in one iteration.
        max_value: Upper bound of the correction applied in one iteration.
    """
    component: Vary
    initial_guess: float = 0.0
    perturbation: float = 1e-4
    max_step: float = 0.5
    min_value: float = -5.0
    max_value: float = 5.0

    @classmethod
    def from_vary(cls, component: Vary, **overrides) -> Variable:
        """Variable with the default perturbation and bounds of its family."""
        pert, max_step, min_value, max_value = _VARY_DEFAULTS[component.target]
        kwargs = dict(
            perturbation=pert, max_step=max_step,
            min_value=min_value, max_value=max_value
        )
        kwargs.update(overrides)
        return cls(component=component, **kwargs)

    def with_initial_guess(self, guess: float) -> Variable:
        return replace(self, initial_guess=guess)

    def valid(self) -> None:
        """Raise InvalidVariable if the bounds or perturbation are inconsistent."""
        values = (self.initial_guess, self.perturbation, self.max_step,
                  self.min_value, self.max_value)
        if not all(np.isfinite(v) for v in values):
            raise InvalidVariable(f"{self.component.name}: all fields must be finite")
        if self.perturbation == 0.0:
            raise InvalidVariable(f"{self.component.name}: perturbation must be non zero")
        if self.min_value > self.max_value:
            raise InvalidVariable(
                f"{self.component.name}: min value {self.min_value} "
                f"is greater than max value {self.max_value}"
            )

    def __str__(self) -> str:
        return (f"Variable {self.component.name}: guess = {self.initial_guess}, "
                f"perturbation = {self.perturbation}, max step = {self.max_step}, "
                f"bounds = [{self.min_value}, {self.max_value}]")


@dataclass
class Objective:
    """Desired terminal value of a state parameter.

    The scaled error is multiplicative_factor * (desired - achieved) + additive_factor.
    """
    parameter: StateParameter
    desired_value: float
    tolerance: float = 1e-3
    multiplicative_factor: float = 1.0
    additive_factor: float = 0.0

    def __post_init__(self):
        if not self.tolerance > 0.0:
            raise ValueError(f"{self.parameter.name}: tolerance must be positive, got {self.tolerance}")

    @classmethod
    def new(cls, parameter: StateParameter, desired_value: float) -> Objective:
        """Objective with the default tolerance of its parameter."""
        return cls(parameter, desired_value, parameter.default_tolerance)

    @classmethod
    def within_tolerance(cls, parameter: StateParameter, desired_value: float,
                         tolerance: float) -> Objective:
        return cls(parameter, desired_value, tolerance)

    def assess(self, achieved: float) -> tuple[bool, float]:
        """Return whether the objective is met and the scaled error."""
        error = self.multiplicative_factor * (self.desired_value - achieved) + self.additive_factor
        return abs(error) <= self.tolerance, error

    def __str__(self) -> str:
        return f"Objective {self.parameter.name} = {self.desired_value} (± {self.tolerance})"


# ---------------------------------------------------------------------------
# Targeting Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TargeterSolution:
    """Converged output of the differential corrector.

    Attributes:
        corrected_state: State at the correction epoch with the total
            correction applied.
        achieved_state: Terminal state at the achievement epoch.
        correction: Total correction per variable, shape (n_var,).
        achieved_errors: Scaled error per objective, shape (n_obj,).
        iterations: Iterations used to converge.
        computation_dur_s: Wall time of the run [seconds].
        variables: Variables used.
        achieved_objectives: Objectives achieved.
        maneuver: Converged maneuver for finite-burn targets, else None.
    """
    corrected_state: SpacecraftState
    achieved_state: SpacecraftState
    correction: np.ndarray
    achieved_errors: np.ndarray
    iterations: int
    computation_dur_s: float
    variables: tuple[Variable, ...]
    achieved_objectives: tuple[Objective, ...]
    maneuver: Optional[ManeuverModel] = None

    @property
    def is_finite_burn(self) -> bool:
        return self.maneuver is not None

    def __str__(self) -> str:
        lines = [f"Targeter solution converged in {self.iterations} iteration(s) "
                 f"({self.computation_dur_s:.3f} s)"]
        for var, corr in zip(self.variables, self.correction):
            lines.append(f"\tCorrection {var.component.name}: {corr:.9e}")
        for obj, err in zip(self.achieved_objectives, self.achieved_errors):
            lines.append(f"\t{obj.parameter.name}: desired = {obj.desired_value}, "
                         f"scaled error = {err:.9e} (tol {obj.tolerance})")
        if self.maneuver is not None:
            lines.append(f"\t{self.maneuver}")
        return "\n".join(lines)


@dataclass
class FiniteBurnResult:
    """Result of impulsive-to-finite burn conversion.

    Attributes:
        maneuver: Finite burn reproducing the impulsive Δv.
        solution: Targeter solution the maneuver was taken from.
        dv_impulsive_km_s: Magnitude of the impulsive Δv [km/s].
        duration_s: Burn duration [seconds].
        mass_consumed_kg: Propellant consumed over the burn [kg].
    """
    maneuver: ManeuverModel
    solution: TargeterSolution
    dv_impulsive_km_s: float
    duration_s: float
    mass_consumed_kg: float
