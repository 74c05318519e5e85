"""
Equations of motion assembler.

Constructs the state derivative vector for numerical integration:
    y = [x, y, z, vx, vy, vz, mass]                    (7 elements)
    y = [x, y, z, vx, vy, vz, mass, Phi_11, ..., Phi_66]  (43 elements, with STM)

The STM variational equations are integrated alongside the state when
requested:
    dPhi/dt = A(t) * Phi
where A(t) is the 6x6 Jacobian of the equations of motion.

During finite burns, thrust acceleration and mass depletion are included.
"""

from __future__ import annotations

import numpy as np
from ..core.config import ForceModelConfig
from ..core.constants import G0, SECONDS_PER_DAY
from .gravity import combined_gravity

N_STATE = 7
N_STATE_STM = 43


def eom_full(t: float, y: np.ndarray,
             force_model: ForceModelConfig,
             thrust_func=None
             ) -> np.ndarray:
    """Equations of motion, with the STM variational equations if y carries it.

    Args:
        t: Integration time [seconds since the reference epoch].
        y: State vector, shape (7,) or (43,).
            y[0:3]  = position [km]
            y[3:6]  = velocity [km/s]
            y[6]    = mass [kg]
            y[7:43] = STM elements (row-major 6x6), optional
        force_model: Force model configuration.
        thrust_func: Optional callable(t, y) -> (thrust_accel_km_s2, mass_flow_kg_s).
            None during coast arcs.

    Returns:
        dy_dt: Time derivative of the state, same shape as y.
    """
    r = y[0:3]
    v = y[3:6]

    a_total, da_dr = combined_gravity(r, force_model)

    dm_dt = 0.0
    if thrust_func is not None:
        a_thrust, mdot = thrust_func(t, y)
        a_total = a_total + a_thrust
        dm_dt = mdot  # negative value (mass decreasing)
        # The thrust Jacobian w.r.t. position and velocity is neglected in
        # the variational equations.

    dy_dt = np.zeros_like(y)
    dy_dt[0:3] = v                  # dr/dt = v
    dy_dt[3:6] = a_total            # dv/dt = a
    dy_dt[6] = dm_dt                # dm/dt

    if y.shape[0] == N_STATE_STM:
        # A = [[  0_3x3,   I_3x3  ],
        #      [da/dr_3x3,  0_3x3  ]]
        A = np.zeros((6, 6))
        A[0:3, 3:6] = np.eye(3)
        A[3:6, 0:3] = da_dr
        stm = y[7:43].reshape(6, 6)
        dy_dt[7:43] = (A @ stm).flatten()

    return dy_dt


def make_thrust_func(maneuver, thruster, epoch_ref_mjd_tt: float):
    """Create a thrust function for use in eom_full during finite burns.

    Args:
        maneuver: ManeuverModel flown.
        thruster: ThrusterModel of the spacecraft.
        epoch_ref_mjd_tt: Reference epoch for time conversion.

    Returns:
        Callable(t, y) -> (a_thrust_km_s2, mdot_kg_s), zero outside the burn window.
    """
    t_start_s = (maneuver.start_mjd_tt - epoch_ref_mjd_tt) * SECONDS_PER_DAY
    t_end_s = (maneuver.end_mjd_tt - epoch_ref_mjd_tt) * SECONDS_PER_DAY
    thrust_n = maneuver.thrust_level * thruster.thrust_n
    mdot = -thrust_n / (thruster.isp_s * G0)  # kg/s (negative)

    def thrust_func(t, y):
        if t < t_start_s or t > t_end_s:
            return np.zeros(3), 0.0

        mass = y[6]
        if mass <= 0:
            return np.zeros(3), 0.0

        epoch = epoch_ref_mjd_tt + t / SECONDS_PER_DAY
        direction = maneuver.vector(y[0:3], y[3:6], epoch)

        # Thrust acceleration: T/m, converted from N/kg = m/s² to km/s²
        a_thrust = (thrust_n / mass) * direction / 1000.0
        return a_thrust, mdot

    return thrust_func
