"""
Numerical orbit propagator.

Wraps scipy.integrate.solve_ivp (DOP853) with:
    - Mass integration and optional STM integration
    - Finite burns through the control attached to the dynamics
    - Dense output for interpolation
    - Cheap clones sharing the force model, for parallel perturbation trials
"""

from __future__ import annotations

import numpy as np
from contextlib import contextmanager
from dataclasses import replace
from scipy.integrate import solve_ivp
from typing import Optional, Protocol

from ..core.config import IntegratorConfig, SimConfig
from ..core.constants import SECONDS_PER_DAY
from ..core.errors import PropagationError
from ..core.log_config import logger
from ..core.types import GuidanceMode, PropagationResult, SpacecraftState
from .dynamics import SpacecraftDynamics
from .eom import N_STATE, N_STATE_STM, eom_full


class PropagatorLike(Protocol):
    """What the targeter needs from a propagator."""
    dynamics: SpacecraftDynamics
    max_step_s: float

    def propagate(self, state: SpacecraftState, until_epoch_mjd_tt: float,
                  with_trajectory: bool = False
                  ) -> tuple[SpacecraftState, Optional[PropagationResult]]: ...

    def clone(self) -> PropagatorLike: ...


class Propagator:
    """Numerical orbit propagator.

    Integrates position, velocity and mass (and the 6x6 STM on request)
    using an adaptive 8th-order Dormand-Prince method.

    Attributes:
        dynamics: Force model and attached control, immutable and shared.
        options: Integrator options, owned by this instance.
    """

    def __init__(self, dynamics: Optional[SpacecraftDynamics] = None,
                 options: Optional[IntegratorConfig] = None):
        """Initialize the propagator.

        Args:
            dynamics: Spacecraft dynamics. Defaults to two-body + J2.
            options: Integrator options. Defaults to IntegratorConfig().
        """
        self.dynamics = dynamics if dynamics is not None else SpacecraftDynamics()
        self.options = options if options is not None else IntegratorConfig()

    @classmethod
    def from_config(cls, config: SimConfig) -> Propagator:
        return cls(SpacecraftDynamics(config.force_model), replace(config.integrator))

    @property
    def max_step_s(self) -> float:
        return self.options.max_step_s

    @max_step_s.setter
    def max_step_s(self, value: float):
        self.options.max_step_s = value

    def clone(self) -> Propagator:
        """Independent propagator: options are copied, the dynamics shared."""
        return Propagator(self.dynamics, replace(self.options))

    def propagate(self,
                  state: SpacecraftState,
                  until_epoch_mjd_tt: float,
                  with_trajectory: bool = False,
                  with_stm: bool = False
                  ) -> tuple[SpacecraftState, Optional[PropagationResult]]:
        """Propagate a state to an epoch, forward or backward.

        Args:
            state: Initial state.
            until_epoch_mjd_tt: Final epoch [MJD TT].
            with_trajectory: Also return the time history with dense output.
            with_stm: Integrate the STM; the final state carries it.

        Returns:
            Final state and, if requested, the PropagationResult.

        Raises:
            PropagationError: if the integrator fails.
        """
        epoch_ref = state.epoch_mjd_tt
        duration_s = (until_epoch_mjd_tt - epoch_ref) * SECONDS_PER_DAY

        y0 = np.concatenate([state.state_vector, [state.mass]])
        if with_stm:
            y0 = np.concatenate([y0, np.eye(6).flatten()])

        if abs(duration_s) < 1e-9:
            final = self._final_state(state, y0, until_epoch_mjd_tt, with_stm)
            traj = None
            if with_trajectory:
                traj = PropagationResult(
                    epochs=np.array([epoch_ref]),
                    states=state.state_vector[np.newaxis, :],
                    masses=np.array([state.mass]),
                    epoch_ref_mjd_tt=epoch_ref,
                )
            return final, traj

        thrust_func = self.dynamics.thrust_func(state, epoch_ref)
        force_model = self.dynamics.force_model

        def rhs(t, y):
            return eom_full(t, y, force_model, thrust_func=thrust_func)

        dense = with_trajectory or self.options.dense_output
        result = solve_ivp(
            rhs,
            t_span=(0.0, duration_s),
            y0=y0,
            method=self.options.method,
            rtol=self.options.rtol,
            atol=self.options.atol,
            max_step=self.options.max_step_s,
            dense_output=dense,
        )

        if not result.success:
            raise PropagationError(
                f"Integration failed: {result.message} "
                f"(from {epoch_ref:.9f} to {until_epoch_mjd_tt:.9f} MJD TT)"
            )

        final = self._final_state(state, result.y[:, -1], until_epoch_mjd_tt, with_stm)

        traj = None
        if with_trajectory:
            traj = PropagationResult(
                epochs=epoch_ref + result.t / SECONDS_PER_DAY,
                states=result.y[0:6].T.copy(),
                masses=result.y[6].copy(),
                epoch_ref_mjd_tt=epoch_ref,
                dense_output=[(0.0, duration_s, result.sol)] if result.sol is not None else [],
            )

        return final, traj

    def until_epoch(self, state: SpacecraftState, epoch_mjd_tt: float) -> SpacecraftState:
        return self.propagate(state, epoch_mjd_tt)[0]

    def for_duration(self, state: SpacecraftState, duration_s: float) -> SpacecraftState:
        return self.propagate(state, state.epoch_mjd_tt + duration_s / SECONDS_PER_DAY)[0]

    @staticmethod
    def _final_state(state, y, epoch, with_stm):
        final = state.with_state_vector(y[0:6])
        final.epoch_mjd_tt = epoch
        final.mass = float(y[N_STATE - 1])
        final.stm = y[N_STATE:N_STATE_STM].reshape(6, 6).copy() if with_stm else None
        return final


@contextmanager
def max_step_override(propagator: PropagatorLike, max_step_s: float):
    """Temporarily clamp the maximum step of a propagator.

    The previous value is restored on every exit path.
    """
    saved = propagator.max_step_s
    propagator.max_step_s = max_step_s
    try:
        yield propagator
    finally:
        propagator.max_step_s = saved


def propagate_with_maneuver(propagator: PropagatorLike,
                            state: SpacecraftState,
                            maneuver,
                            until_epoch_mjd_tt: float,
                            finite_burn: bool) -> SpacecraftState:
    """Fly a state to an epoch, through the maneuver window for finite burns.

    Finite burns are propagated in three phases on a clone of the
    propagator: coast to ignition, thrust across the window with the
    maximum step clamped to the burn duration so that no step straddles
    ignition or cutoff, then coast to the final epoch.
    """
    if not finite_burn:
        return propagator.propagate(state, until_epoch_mjd_tt)[0]

    prop = propagator.clone()
    pre_mnvr, _ = prop.propagate(
        state.with_guidance_mode(GuidanceMode.COAST), maneuver.start_mjd_tt
    )
    logger.debug("Ignition: %s", pre_mnvr)

    prop.dynamics = prop.dynamics.with_control(maneuver)
    duration_s = maneuver.duration_s
    max_step_s = min(duration_s, prop.max_step_s) if duration_s > 0.0 else prop.max_step_s
    with max_step_override(prop, max_step_s):
        post_mnvr, _ = prop.propagate(
            pre_mnvr.with_guidance_mode(GuidanceMode.THRUST), maneuver.end_mjd_tt
        )
    logger.debug("Cutoff: %s", post_mnvr)

    final, _ = prop.propagate(
        post_mnvr.with_guidance_mode(GuidanceMode.COAST), until_epoch_mjd_tt
    )
    return final
