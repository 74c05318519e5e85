"""
Spacecraft Trajectory Targeting
===============================
Boundary-value targeting (differential correction) of spacecraft
trajectories: bounded variables at a correction epoch are adjusted until
the trajectory propagated to an achievement epoch meets a set of objectives.

Architecture:
    - Numerical ECI propagation (two-body + J2) with mass and STM integration
    - Finite burns with quadratic steering polynomials in local frames
    - Orbital and B-plane parameters with exact partials via dual numbers
    - Newton-Raphson corrector with finite-difference or STM Jacobians,
      pseudo-inverse steps and per-variable clamping
    - Impulsive-to-finite burn conversion with re-correction
"""

__version__ = "0.1.0"
