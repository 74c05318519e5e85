"""
Spacecraft dynamics configuration.

A SpacecraftDynamics bundles the force model with an optional control
(the maneuver being flown). It is immutable: attaching a control returns a
new configuration that still references the same force model, so that
concurrent perturbation trials can each fly their own maneuver without
copying the force model.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from ..core.config import ForceModelConfig
from ..core.types import GuidanceMode, SpacecraftState
from .eom import make_thrust_func


@dataclass(frozen=True)
class SpacecraftDynamics:
    """Force model plus optional maneuver.

    Attributes:
        force_model: Force model configuration, shared by reference.
        control: Maneuver flown while the spacecraft is in THRUST mode.
    """
    force_model: ForceModelConfig = field(default_factory=ForceModelConfig)
    control: Optional[object] = None

    def with_control(self, maneuver) -> SpacecraftDynamics:
        """New dynamics flying `maneuver`, sharing this force model."""
        return replace(self, control=maneuver)

    def thrust_func(self, state: SpacecraftState, epoch_ref_mjd_tt: float):
        """Thrust function for a propagation starting from `state`, or None."""
        if self.control is None or state.mode is not GuidanceMode.THRUST:
            return None
        if state.thruster is None:
            return None
        return make_thrust_func(self.control, state.thruster, epoch_ref_mjd_tt)

    def describe(self) -> str:
        desc = self.force_model.describe()
        if self.control is not None:
            desc += f" with {self.control}"
        return desc
