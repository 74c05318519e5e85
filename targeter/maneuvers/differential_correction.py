"""
Differential correction via finite-difference Newton-Raphson.

The Targeter adjusts a set of bounded variables (state components at the
correction epoch, or the timing and steering of a finite burn) so that the
trajectory propagated to the achievement epoch meets every objective within
its tolerance.

Each iteration:
    1. Propagate the trial to the achievement epoch
    2. Evaluate the objectives and their scaled errors
    3. Estimate the Jacobian d(achieved)/d(variables)
    4. delta = pinv(J) · e, clamped per variable
    5. Apply delta to the trial state and maneuver

The problem may be over- or under-determined; the pseudo-inverse gives the
minimum-norm least-squares step.
"""

from __future__ import annotations

import time
import numpy as np
from typing import Optional, Sequence

from ..core.config import TargeterConfig
from ..core.errors import (
    CorrectionIneffective, InvalidFrameVariable, MaxIterationsReached,
    NoThrusterAvailable, UnderdeterminedProblem
)
from ..core.log_config import logger
from ..core.types import (
    FrameType, Objective, SpacecraftState, TargeterSolution, Variable, Vary, VaryTarget
)
from ..astrodynamics.propagator import PropagatorLike
from .guidance import ManeuverModel, apply_maneuver_correction, apply_state_correction
from .jacobian import FiniteDifferenceJacobian, JacobianEstimator, TargetingProblem
from .linear_solver import pseudo_inverse

_VELOCITY = (Vary.VELOCITY_X, Vary.VELOCITY_Y, Vary.VELOCITY_Z)
_POSITION = (Vary.POSITION_X, Vary.POSITION_Y, Vary.POSITION_Z)


def clamp_correction(delta: np.ndarray, variables: Sequence[Variable]) -> np.ndarray:
    """Clamp each component to [-|max_step|, |max_step|], then to [min_value, max_value]."""
    clamped = np.array(delta, dtype=float)
    for i, var in enumerate(variables):
        step = abs(var.max_step)
        clamped[i] = min(max(clamped[i], -step), step)
        clamped[i] = min(max(clamped[i], var.min_value), var.max_value)
    return clamped


class Targeter:
    """Differential corrector.

    Attributes:
        propagator: Propagator used for the nominal trajectory; trials run
            on clones of it.
        variables: Free parameters.
        objectives: Desired terminal values.
        correction_frame: Local frame the velocity variables are expressed in,
            None for inertial.
        config: Iteration limits and thresholds.
        jacobian: Jacobian estimation strategy.
        maneuver: Template of the finite burn, None for the default burn at
            the correction epoch.
    """

    def __init__(self,
                 propagator: PropagatorLike,
                 variables: Sequence[Variable],
                 objectives: Sequence[Objective],
                 correction_frame: Optional[FrameType] = None,
                 config: Optional[TargeterConfig] = None,
                 jacobian: Optional[JacobianEstimator] = None,
                 maneuver: Optional[ManeuverModel] = None):
        self.propagator = propagator
        self.variables = list(variables)
        self.objectives = list(objectives)
        self.correction_frame = correction_frame
        self.config = config if config is not None else TargeterConfig()
        self.jacobian = (jacobian if jacobian is not None
                         else FiniteDifferenceJacobian(self.config.n_workers))
        self.maneuver = maneuver

    # Constructors for the usual impulsive problems

    @classmethod
    def delta_v(cls, propagator: PropagatorLike, objectives: Sequence[Objective],
                **kwargs) -> Targeter:
        """Vary the three inertial velocity components."""
        return cls(propagator, [Variable.from_vary(v) for v in _VELOCITY], objectives, **kwargs)

    @classmethod
    def delta_r(cls, propagator: PropagatorLike, objectives: Sequence[Objective],
                **kwargs) -> Targeter:
        """Vary the three inertial position components."""
        return cls(propagator, [Variable.from_vary(v) for v in _POSITION], objectives, **kwargs)

    @classmethod
    def in_frame(cls, propagator: PropagatorLike, objectives: Sequence[Objective],
                 frame: FrameType, **kwargs) -> Targeter:
        """Vary the three velocity components expressed in a local frame."""
        return cls(propagator, [Variable.from_vary(v) for v in _VELOCITY], objectives,
                   correction_frame=frame, **kwargs)

    @classmethod
    def vnc(cls, propagator: PropagatorLike, objectives: Sequence[Objective],
            **kwargs) -> Targeter:
        """Vary the three velocity components expressed in VNC."""
        return cls.in_frame(propagator, objectives, FrameType.VNC, **kwargs)

    # Validation

    def _validate(self, initial_state: SpacecraftState) -> bool:
        """Check the problem before any propagation.

        Returns:
            Whether this is a finite burn target.
        """
        if not self.objectives:
            logger.error("Targeter has no objectives")
            raise UnderdeterminedProblem()

        finite_burn = False
        for var in self.variables:
            var.valid()
            frame = self.correction_frame
            if frame is not None and frame.is_local and var.component.is_position:
                msg = (f"Variable is in frame {frame.name} but that frame "
                       f"cannot be used for a {var.component.name} correction")
                logger.error(msg)
                raise InvalidFrameVariable(msg)
            if var.component.is_finite_burn:
                if initial_state.thruster is None:
                    logger.error("Finite burn target but no thruster on %s", initial_state)
                    raise NoThrusterAvailable()
                finite_burn = True
        return finite_burn

    def _default_maneuver(self, correction_epoch_mjd_tt: float) -> ManeuverModel:
        if self.maneuver is not None:
            return self.maneuver
        return ManeuverModel.from_duration(correction_epoch_mjd_tt, self.config.default_burn_s)

    def _state_correction(self, amounts: np.ndarray) -> np.ndarray:
        """6-vector of the state variable amounts."""
        correction = np.zeros(6)
        for var, amount in zip(self.variables, amounts):
            if not var.component.is_finite_burn:
                correction[var.component.vec_index] += amount
        return correction

    def _apply(self, xi: SpacecraftState, mnvr: ManeuverModel, amounts: np.ndarray
               ) -> tuple[SpacecraftState, ManeuverModel]:
        """Apply one amount per variable to the trial state and maneuver."""
        for var, amount in zip(self.variables, amounts):
            if var.component.is_finite_burn:
                mnvr = apply_maneuver_correction(mnvr, var.component, amount,
                                                 self.config.epoch_noop_s)
        xi = apply_state_correction(xi, self._state_correction(amounts), self.correction_frame)
        return xi, mnvr

    def _apply_guesses(self, xi: SpacecraftState, mnvr: ManeuverModel, guesses: np.ndarray
                       ) -> tuple[SpacecraftState, ManeuverModel]:
        """Apply the initial guesses. A duration guess sets the burn length."""
        amounts = np.array(guesses, dtype=float)
        for i, var in enumerate(self.variables):
            if var.component.target is VaryTarget.DURATION:
                mnvr = mnvr.with_duration(amounts[i])
                amounts[i] = 0.0
        return self._apply(xi, mnvr, amounts)

    # Main loop

    def run(self,
            initial_state: SpacecraftState,
            correction_epoch_mjd_tt: float,
            achievement_epoch_mjd_tt: float) -> TargeterSolution:
        """Solve the targeting problem.

        Args:
            initial_state: State at or before the correction epoch.
            correction_epoch_mjd_tt: Epoch at which the variables act [MJD TT].
            achievement_epoch_mjd_tt: Epoch at which the objectives are
                evaluated [MJD TT].

        Returns:
            Converged TargeterSolution.

        Raises:
            UnderdeterminedProblem: no objectives.
            InvalidVariable: a variable has inconsistent bounds.
            InvalidFrameVariable: a position variable with a local correction
                frame (both an InvalidVariable and a FrameError).
            NoThrusterAvailable: finite burn target without a thruster.
            CorrectionIneffective: the error norm stopped changing.
            SingularJacobian: the Jacobian could not be inverted.
            MaxIterationsReached: no convergence within the iteration limit.
        """
        finite_burn = self._validate(initial_state)
        start = time.perf_counter()

        if initial_state.epoch_mjd_tt == correction_epoch_mjd_tt:
            xi_start = initial_state.copy()
        else:
            xi_start, _ = self.propagator.propagate(initial_state, correction_epoch_mjd_tt)
        logger.debug("initial_state = %s", initial_state)
        logger.debug("xi_start = %s", xi_start)

        guesses = np.array([var.initial_guess for var in self.variables])
        xi, mnvr = self._apply_guesses(xi_start, self._default_maneuver(correction_epoch_mjd_tt),
                                       guesses)
        if finite_burn:
            logger.info("Initial maneuver guess: %s", mnvr)
        total_correction = guesses.copy()

        problem = TargetingProblem(
            propagator=self.propagator,
            variables=tuple(self.variables),
            objectives=tuple(self.objectives),
            achievement_epoch_mjd_tt=achievement_epoch_mjd_tt,
            correction_frame=self.correction_frame,
            finite_burn=finite_burn,
            epoch_noop_s=self.config.epoch_noop_s,
        )

        max_iter = self.config.max_iterations
        prev_err_norm = np.inf
        it = 0
        while True:
            if finite_burn:
                logger.info("#%d %s", it, mnvr)
            xf = problem.fly(xi, mnvr)

            achieved = problem.achieved_values(xf)
            assessed = [obj.assess(val) for obj, val in zip(self.objectives, achieved)]
            errors = np.array([err for _, err in assessed])
            converged = all(ok for ok, _ in assessed)

            logger.info("Targeter -- Iteration #%d -- %.9f MJD TT", it, achievement_epoch_mjd_tt)
            for obj, val, err in zip(self.objectives, achieved, errors):
                logger.info("\t%s: achieved = %.9g\t desired = %.9g\t scaled error = %.9g",
                            obj.parameter.name, val, obj.desired_value, err)

            if converged:
                # xi carries every inertial correction applied so far
                sol = TargeterSolution(
                    corrected_state=xi,
                    achieved_state=xf,
                    correction=total_correction,
                    achieved_errors=errors,
                    iterations=it,
                    computation_dur_s=time.perf_counter() - start,
                    variables=tuple(self.variables),
                    achieved_objectives=tuple(self.objectives),
                    maneuver=mnvr if finite_burn else None,
                )
                logger.info("Targeter -- CONVERGED in %d iteration%s", it, "" if it == 1 else "s")
                return sol

            err_norm = float(np.linalg.norm(errors))
            if it >= max_iter:
                raise MaxIterationsReached(
                    f"Failed after {max_iter} iterations: error norm {err_norm:.6e}\n{self}",
                    iterations=max_iter, last_error_norm=err_norm,
                )
            if abs(err_norm - prev_err_norm) < self.config.stagnation_tol:
                logger.error("No change in objective errors (norm %.6e)", err_norm)
                raise CorrectionIneffective("No change in objective errors")
            prev_err_norm = err_norm

            jac = self.jacobian.estimate(problem, xi, mnvr, achieved)
            # Sensitivities of the scaled errors
            jac = jac * np.array([obj.multiplicative_factor for obj in self.objectives])[:, np.newaxis]
            logger.debug("Jacobian %s", jac)
            jac_inv = pseudo_inverse(jac)
            logger.debug("Inverse Jacobian %s", jac_inv)

            raw = jac_inv @ errors
            delta = clamp_correction(raw, self.variables)
            logger.debug("Error vector: %s\nRaw correction: %s", errors, raw)
            for i, var in enumerate(self.variables):
                frame = f" in {self.correction_frame.name}" if self.correction_frame else ""
                logger.debug("Correction %s%s (element %d): %s", var.component.name, frame, i, delta[i])

            xi, mnvr = self._apply(xi, mnvr, delta)
            total_correction = total_correction + delta
            logger.debug("Total correction: %s", total_correction)
            it += 1

    def run_in_frame(self,
                     initial_state: SpacecraftState,
                     correction_epoch_mjd_tt: float,
                     achievement_epoch_mjd_tt: float,
                     frame: FrameType) -> TargeterSolution:
        """Run with the velocity variables expressed in `frame`."""
        targeter = Targeter(self.propagator, self.variables, self.objectives,
                            correction_frame=frame, config=self.config,
                            jacobian=self.jacobian, maneuver=self.maneuver)
        return targeter.run(initial_state, correction_epoch_mjd_tt, achievement_epoch_mjd_tt)

    def __str__(self) -> str:
        lines = ["Targeter:"]
        frame = self.correction_frame.name if self.correction_frame else "inertial"
        lines.append(f"\tCorrection frame: {frame}")
        for obj in self.objectives:
            lines.append(f"\t{obj}")
        for var in self.variables:
            lines.append(f"\t{var}")
        return "\n".join(lines)
