"""
Local orbital frame transformations.

Provides direction cosine matrices between the inertial frame and the
frames attached to the orbit of the spacecraft:
    - RIC / LVLH (radial, in-track, cross-track)
    - RCN (radial, cross-track, normal)
    - VNC (velocity, normal, co-normal)

Corrections expressed in a local frame are rotated into inertial components
with the local-to-inertial DCM evaluated at the state being corrected.
"""

from __future__ import annotations

import numpy as np

from .errors import FrameError
from .types import FrameType


def _unit(vec: np.ndarray, name: str) -> np.ndarray:
    mag = np.linalg.norm(vec)
    if not np.isfinite(mag) or mag < 1e-12:
        raise FrameError(f"cannot build local frame: {name} vector is degenerate")
    return vec / mag


def eci_to_lvlh(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Construct LVLH (RIC) frame rotation matrix from an inertial state.

    Frame definition:
        R-hat: radial outward (r / |r|)
        C-hat: orbit normal  (r × v / |r × v|), cross-track
        I-hat: completes right-hand triad (C × R), approximately along-track

    Args:
        r: Inertial position vector [km], shape (3,).
        v: Inertial velocity vector [km/s], shape (3,).

    Returns:
        3x3 rotation matrix, v_LVLH = R · v_ECI.
    """
    r_hat = _unit(r, "position")
    c_hat = _unit(np.cross(r, v), "angular momentum")
    i_hat = np.cross(c_hat, r_hat)

    # Rows are the LVLH unit vectors expressed in ECI
    return np.array([r_hat, i_hat, c_hat])


def eci_to_rcn(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotation matrix from inertial to RCN, v_RCN = R · v_ECI.

    R-hat is radial, N-hat the orbit normal, C-hat = N × R.
    """
    r_hat = _unit(r, "position")
    n_hat = _unit(np.cross(r, v), "angular momentum")
    c_hat = np.cross(n_hat, r_hat)
    return np.array([r_hat, c_hat, n_hat])


def eci_to_vnc(r: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotation matrix from inertial to VNC, v_VNC = R · v_ECI.

    V-hat is along the velocity, N-hat the orbit normal, C-hat = V × N.
    """
    v_hat = _unit(v, "velocity")
    n_hat = _unit(np.cross(r, v), "angular momentum")
    c_hat = np.cross(v_hat, n_hat)
    return np.array([v_hat, n_hat, c_hat])


_INERTIAL_TO_LOCAL = {
    FrameType.RIC: eci_to_lvlh,
    FrameType.RCN: eci_to_rcn,
    FrameType.VNC: eci_to_vnc,
}


def dcm_local_to_inertial(r: np.ndarray, v: np.ndarray, frame: FrameType) -> np.ndarray:
    """Direction cosine matrix from a local orbital frame to inertial.

    Args:
        r: Inertial position [km], shape (3,).
        v: Inertial velocity [km/s], shape (3,).
        frame: Local frame.

    Returns:
        3x3 matrix such that v_ECI = DCM · v_local.

    Raises:
        FrameError: if the frame is not a local orbital frame or the state
            does not define one.
    """
    try:
        builder = _INERTIAL_TO_LOCAL[frame]
    except KeyError:
        raise FrameError(f"{frame.name} is not a local orbital frame") from None
    return builder(r, v).T
