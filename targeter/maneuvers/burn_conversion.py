"""
Impulsive-to-finite burn conversion.

Workflow:
    1. Size the burn from the rocket equation and center it on the impulse
    2. Point it along the impulsive Δv, expressed in the RCN frame
    3. Propagate the post-impulse state to an epoch after the burn: this
       is the state the finite burn must reach
    4. Re-correct the steering polynomials, start epoch and duration with
       the Targeter until the finite burn reaches that state
"""

from __future__ import annotations

import numpy as np
from typing import Optional

from ..core.config import SimConfig
from ..core.constants import SECONDS_PER_DAY
from ..core.errors import NoThrusterAvailable
from ..core.log_config import logger
from ..core.types import (
    FiniteBurnResult, FrameType, Objective, SpacecraftState, StateParameter,
    Variable, Vary
)
from ..astrodynamics.propagator import PropagatorLike
from .differential_correction import Targeter
from .guidance import ManeuverModel, QuadraticPolynomial, plane_angles_from_unit_vector

_STEERING = (
    Vary.MNVR_ALPHA, Vary.MNVR_ALPHA_DOT, Vary.MNVR_ALPHA_DDOT,
    Vary.MNVR_BETA, Vary.MNVR_BETA_DOT, Vary.MNVR_BETA_DDOT,
)
_POSITION_PARAMS = (StateParameter.X, StateParameter.Y, StateParameter.Z)
_VELOCITY_PARAMS = (StateParameter.VX, StateParameter.VY, StateParameter.VZ)


def burn_duration_s(dv_km_s: float, mass_kg: float, thrust_n: float, ve_m_s: float) -> float:
    """Burn duration delivering `dv_km_s` at constant thrust (rocket equation)."""
    return (ve_m_s * mass_kg / thrust_n) * (1.0 - np.exp(-dv_km_s * 1e3 / ve_m_s))


class BurnConverter:
    """Converts an impulsive Δv into an equivalent finite burn.

    Attributes:
        propagator: Numerical propagator.
        config: Simulation configuration; its targeter section drives the
            re-correction.
        position_tol_km: Tolerance on the reached position.
        velocity_tol_km_s: Tolerance on the reached velocity.
    """

    def __init__(self, propagator: PropagatorLike, config: Optional[SimConfig] = None,
                 position_tol_km: float = 1e-3, velocity_tol_km_s: float = 1e-5):
        """Initialize the burn converter.

        Args:
            propagator: Configured propagator.
            config: Simulation configuration. Defaults to SimConfig().
            position_tol_km: Position tolerance of the re-correction [km].
            velocity_tol_km_s: Velocity tolerance of the re-correction [km/s].
        """
        self.propagator = propagator
        self.config = config if config is not None else SimConfig()
        self.position_tol_km = position_tol_km
        self.velocity_tol_km_s = velocity_tol_km_s

    def initial_guess(self, spacecraft: SpacecraftState, dv_eci: np.ndarray) -> ManeuverModel:
        """Finite burn centered on the impulse, along the Δv.

        Args:
            spacecraft: Spacecraft at the impulse epoch, before the Δv.
            dv_eci: Impulsive Δv [km/s], shape (3,).

        Raises:
            NoThrusterAvailable: if the spacecraft has no thruster.
        """
        thruster = spacecraft.thruster
        if thruster is None:
            raise NoThrusterAvailable()

        dv_eci = np.asarray(dv_eci, dtype=float)
        dv_mag = float(np.linalg.norm(dv_eci))
        if dv_mag > 0.0:
            u_eci = dv_eci / dv_mag
        else:
            logger.warning("Zero Δv given to burn conversion, pointing along the velocity")
            u_eci = spacecraft.velocity / np.linalg.norm(spacecraft.velocity)

        u_rcn = spacecraft.dcm_from_frame(FrameType.RCN).T @ u_eci
        alpha, beta = plane_angles_from_unit_vector(u_rcn)

        duration_s = burn_duration_s(dv_mag, spacecraft.mass, thruster.thrust_n,
                                     thruster.exhaust_velocity_m_s)
        start = spacecraft.epoch_mjd_tt - 0.5 * duration_s / SECONDS_PER_DAY
        return ManeuverModel.from_duration(
            start, duration_s,
            alpha=QuadraticPolynomial(c=alpha),
            beta=QuadraticPolynomial(c=beta),
            frame=FrameType.RCN,
        )

    def convert_impulsive(self, spacecraft: SpacecraftState,
                          dv_eci: np.ndarray) -> FiniteBurnResult:
        """Find the finite burn reaching the same state as an impulsive Δv.

        Args:
            spacecraft: Spacecraft at the impulse epoch, before the Δv.
            dv_eci: Impulsive Δv [km/s], shape (3,).

        Returns:
            FiniteBurnResult with the converged maneuver.

        Raises:
            NoThrusterAvailable: if the spacecraft has no thruster.
            TargetingError: if the re-correction fails.
        """
        mnvr = self.initial_guess(spacecraft, dv_eci)
        logger.info("Initial finite burn guess: %s", mnvr)

        # The window is padded by one burn duration on each side of the impulse
        pad_days = max(mnvr.duration_s, 1.0) / SECONDS_PER_DAY
        impulse_epoch = spacecraft.epoch_mjd_tt
        correction_epoch = impulse_epoch - pad_days
        achievement_epoch = impulse_epoch + pad_days

        desired, _ = self.propagator.propagate(spacecraft.with_dv(dv_eci), achievement_epoch)
        logger.debug("Desired post-burn state: %s", desired)

        objectives = [
            Objective.within_tolerance(p, desired.value(p), self.position_tol_km)
            for p in _POSITION_PARAMS
        ] + [
            Objective.within_tolerance(p, desired.value(p), self.velocity_tol_km_s)
            for p in _VELOCITY_PARAMS
        ]
        variables = [Variable.from_vary(v) for v in _STEERING]
        variables += [Variable.from_vary(Vary.START_EPOCH),
                      Variable.from_vary(Vary.DURATION, initial_guess=mnvr.duration_s)]

        targeter = Targeter(self.propagator, variables, objectives,
                            config=self.config.targeter, maneuver=mnvr)
        sol = targeter.run(spacecraft, correction_epoch, achievement_epoch)

        dv_mag = float(np.linalg.norm(dv_eci))
        result = FiniteBurnResult(
            maneuver=sol.maneuver,
            solution=sol,
            dv_impulsive_km_s=dv_mag,
            duration_s=sol.maneuver.duration_s,
            mass_consumed_kg=spacecraft.mass - sol.achieved_state.mass,
        )
        logger.info("Finite burn: %s (%.3f kg consumed)", result.maneuver, result.mass_consumed_kg)
        return result
