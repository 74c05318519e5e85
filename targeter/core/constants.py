"""
Physical, time and numerical constants.

Sources:
    - EGM2008 for the J2 coefficient
    - IAU 2012 for astronomical constants
    - IERS conventions for Earth parameters
"""

import numpy as np

# ---------------------------------------------------------------------------
# Mathematical constants
# ---------------------------------------------------------------------------
TWO_PI = 2.0 * np.pi
DEG2RAD = np.pi / 180.0

# ---------------------------------------------------------------------------
# Time constants
# ---------------------------------------------------------------------------
SECONDS_PER_DAY = 86400.0

# ---------------------------------------------------------------------------
# Earth parameters
# ---------------------------------------------------------------------------
MU_EARTH = 398600.4418                  # Gravitational parameter [km³/s²]
R_EARTH = 6378.137                      # Equatorial radius [km]
J2 = 1.08262668355e-3                   # Unnormalized, EGM2008

# ---------------------------------------------------------------------------
# Propulsion
# ---------------------------------------------------------------------------
G0 = 9.80665                            # Standard gravitational acceleration [m/s²]

# ---------------------------------------------------------------------------
# Targeting numerics
# ---------------------------------------------------------------------------
STAGNATION_TOL = 1e-10                  # |Δ‖error‖| below which a correction is ineffective
EPOCH_NOOP_S = 1e-3                     # Epoch corrections below 1 ms are ignored [s]
DEFAULT_BURN_S = 5.0                    # Default maneuver window for finite-burn targets [s]
PINV_RCOND = 1e-15                      # Relative singular value cut-off for the pseudo-inverse
