"""
Targeting configuration.

Central configuration object with the force model, integrator settings and
differential corrector policy.
"""

from dataclasses import dataclass, field
from typing import Optional

from .constants import (
    MU_EARTH, R_EARTH, J2, STAGNATION_TOL, EPOCH_NOOP_S, DEFAULT_BURN_S
)


@dataclass
class ForceModelConfig:
    """Force model configuration.

    Shared by reference between every propagator clone; the targeter never
    mutates it.
    """
    mu: float = MU_EARTH            # Central body GM [km³/s²]
    radius: float = R_EARTH         # Central body equatorial radius [km]
    enable_j2: bool = True
    j2: float = J2

    def describe(self) -> str:
        """Human-readable description of active force models."""
        models = ["Two-body"]
        if self.enable_j2: models.append("J2")
        return " + ".join(models)


@dataclass
class IntegratorConfig:
    """Numerical integrator configuration.

    Uses scipy's DOP853 (8th-order Dormand-Prince) by default.
    Tight tolerances are required for accurate STM integration and for
    finite-difference Jacobians.
    """
    method: str = "DOP853"
    rtol: float = 1e-12
    atol: float = 1e-12
    max_step_s: float = 300.0       # Maximum step size [seconds]
    dense_output: bool = False      # Keep dense output for trajectory interpolation


@dataclass
class TargeterConfig:
    """Differential corrector policy.

    Attributes:
        max_iterations: Newton iterations before giving up.
        n_workers: Worker threads for the perturbation trials of one
            Jacobian row. None lets the executor choose; 1 runs sequentially.
        stagnation_tol: Minimum change of the error-vector norm between two
            iterations.
        epoch_noop_s: Epoch corrections smaller than this are ignored [s].
        default_burn_s: Duration of the default maneuver window [s].
    """
    max_iterations: int = 100
    n_workers: Optional[int] = None
    stagnation_tol: float = STAGNATION_TOL
    epoch_noop_s: float = EPOCH_NOOP_S
    default_burn_s: float = DEFAULT_BURN_S


@dataclass
class SimConfig:
    """Top-level configuration."""
    force_model: ForceModelConfig = field(default_factory=ForceModelConfig)
    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    targeter: TargeterConfig = field(default_factory=TargeterConfig)
