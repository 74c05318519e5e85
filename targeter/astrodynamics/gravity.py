"""
Gravitational acceleration models.

Each function returns the acceleration vector AND its Jacobian (da/dr)
for STM integration. The Jacobian is the 3x3 matrix of partial derivatives
of acceleration with respect to position.

References:
    Montenbruck & Gill, "Satellite Orbits", Ch. 3
    Vallado, "Fundamentals of Astrodynamics and Applications", Ch. 8
"""

from __future__ import annotations

import numpy as np
from ..core.config import ForceModelConfig


def two_body(r: np.ndarray, mu: float) -> tuple[np.ndarray, np.ndarray]:
    """Central body point-mass gravitational acceleration.

    Args:
        r: Position vector [km], shape (3,).
        mu: Gravitational parameter [km^3/s^2].

    Returns:
        a: Acceleration vector [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
    """
    r_mag = np.linalg.norm(r)
    r3 = r_mag ** 3

    a = -mu * r / r3
    da_dr = -mu / r3 * (np.eye(3) - 3.0 * np.outer(r, r) / r_mag ** 2)

    return a, da_dr


def zonal_j2(r: np.ndarray, mu: float, re: float, j2: float
             ) -> tuple[np.ndarray, np.ndarray]:
    """J2 zonal harmonic perturbation acceleration and analytical Jacobian.

    Uses the Cartesian form:
        a_i = -(3/2)*mu*J2*re^2 * r_i / r^5 * f_i
    where f_xy = (5*z^2/r^2 - 1), f_z = (5*z^2/r^2 - 3).

    Args:
        r: Inertial position [km], shape (3,).
        mu: Gravitational parameter [km^3/s^2].
        re: Equatorial radius [km].
        j2: J2 coefficient.

    Returns:
        a: Perturbation acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
    """
    z = r[2]
    r_mag = np.linalg.norm(r)
    r2 = r_mag ** 2
    r5 = r_mag ** 5
    r7 = r_mag ** 7
    S = z ** 2 / r2  # sin^2(latitude)

    k = 1.5 * mu * j2 * re ** 2
    f = np.array([5.0 * S - 1.0, 5.0 * S - 1.0, 5.0 * S - 3.0])

    a = -k * r * f / r5

    # dS/dr = (-2 z^2 x, -2 z^2 y, 2 z (r^2 - z^2)) / r^4
    dS = np.array([-2.0 * z ** 2 * r[0], -2.0 * z ** 2 * r[1], 2.0 * z * (r2 - z ** 2)]) / r2 ** 2

    da_dr = -k * (
        np.diag(f) / r5
        - 5.0 * np.outer(r * f, r) / r7
        + 5.0 * np.outer(r, dS) / r5
    )

    return a, da_dr


def combined_gravity(r: np.ndarray, force_model: ForceModelConfig
                     ) -> tuple[np.ndarray, np.ndarray]:
    """Total gravitational acceleration and Jacobian for the enabled models.

    Args:
        r: Inertial position [km], shape (3,).
        force_model: Force model configuration.

    Returns:
        a: Acceleration [km/s^2], shape (3,).
        da_dr: Jacobian da/dr, shape (3,3).
    """
    a, da_dr = two_body(r, force_model.mu)

    if force_model.enable_j2:
        a_j2, da_dr_j2 = zonal_j2(r, force_model.mu, force_model.radius, force_model.j2)
        a = a + a_j2
        da_dr = da_dr + da_dr_j2

    return a, da_dr
