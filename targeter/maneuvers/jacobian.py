"""
Jacobian estimators.

The sensitivity matrix J[i, j] = d(achieved value of objective i) / d(variable j)
is estimated either by finite differences, re-propagating one trial per
variable on its own propagator clone, or analytically from the STM and the
dual partials of the terminal parameters.

Finite differences are the general method: they work for finite burns,
epoch variables and any objective. The STM method needs a single
propagation but only applies to impulsive state variables.
"""

from __future__ import annotations

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from ..astrodynamics.orbit_dual import evaluate_with_partials
from ..astrodynamics.propagator import PropagatorLike, propagate_with_maneuver
from ..core.constants import EPOCH_NOOP_S
from ..core.log_config import logger
from ..core.types import FrameType, Objective, SpacecraftState, Variable
from .guidance import ManeuverModel, apply_variable


@dataclass(frozen=True)
class TargetingProblem:
    """Everything a trial needs to fly and evaluate a trajectory.

    Shared read-only between the control thread and the trials.
    """
    propagator: PropagatorLike
    variables: tuple[Variable, ...]
    objectives: tuple[Objective, ...]
    achievement_epoch_mjd_tt: float
    correction_frame: Optional[FrameType] = None
    finite_burn: bool = False
    epoch_noop_s: float = EPOCH_NOOP_S

    def fly(self, state: SpacecraftState, mnvr: ManeuverModel,
            propagator: Optional[PropagatorLike] = None) -> SpacecraftState:
        """Propagate a trial from the correction epoch to the achievement epoch."""
        prop = propagator if propagator is not None else self.propagator
        return propagate_with_maneuver(prop, state, mnvr,
                                       self.achievement_epoch_mjd_tt, self.finite_burn)

    def achieved_values(self, state: SpacecraftState,
                        objectives: Optional[Sequence[Objective]] = None) -> np.ndarray:
        objectives = self.objectives if objectives is None else objectives
        partials = evaluate_with_partials(state, [obj.parameter for obj in objectives])
        return np.array([p.real for p in partials])


class JacobianEstimator:
    """Base class for sensitivity matrix estimators."""

    def estimate(self, problem: TargetingProblem, xi: SpacecraftState,
                 mnvr: ManeuverModel, achieved: np.ndarray) -> np.ndarray:
        """Sensitivity matrix at the current trial.

        Args:
            problem: Problem definition.
            xi: Trial state at the correction epoch.
            mnvr: Trial maneuver.
            achieved: Achieved value of each objective, shape (n_obj,).

        Returns:
            J, shape (n_obj, n_var).
        """
        raise NotImplementedError


class FiniteDifferenceJacobian(JacobianEstimator):
    """Forward differences, one re-propagation per (objective, variable).

    Rows are computed one after the other; within a row the variable trials
    run in parallel and the row is complete when all of them have returned.
    The first failing trial aborts the estimate with its own exception.

    Attributes:
        n_workers: Thread pool size. 1 runs the trials sequentially, None
            uses the executor default.
    """

    def __init__(self, n_workers: Optional[int] = None):
        self.n_workers = n_workers

    @staticmethod
    def _trial(problem: TargetingProblem, xi: SpacecraftState, mnvr: ManeuverModel,
               var: Variable, obj: Objective, achieved_value: float) -> float:
        state, trial_mnvr = apply_variable(xi, mnvr, var, var.perturbation,
                                           problem.correction_frame, problem.epoch_noop_s)
        xf = problem.fly(state, trial_mnvr, problem.propagator.clone())
        perturbed = problem.achieved_values(xf, (obj,))[0]
        return (perturbed - achieved_value) / var.perturbation

    def estimate(self, problem, xi, mnvr, achieved):
        n_obj, n_var = len(problem.objectives), len(problem.variables)
        jac = np.zeros((n_obj, n_var))

        if self.n_workers == 1:
            for i, obj in enumerate(problem.objectives):
                for j, var in enumerate(problem.variables):
                    jac[i, j] = self._trial(problem, xi, mnvr, var, obj, achieved[i])
            return jac

        with ThreadPoolExecutor(max_workers=self.n_workers) as pool:
            for i, obj in enumerate(problem.objectives):
                futures = [
                    pool.submit(self._trial, problem, xi, mnvr, var, obj, achieved[i])
                    for var in problem.variables
                ]
                jac[i, :] = [f.result() for f in futures]
        return jac


class DualStmJacobian(JacobianEstimator):
    """Sensitivities from one STM propagation and the dual partials.

        J = d(obj)/d(x_f) · Phi(t_f, t_c) · d(x_c)/d(var)

    d(x_c)/d(var) is a unit vector for inertial variables and a column of
    the local-to-inertial DCM for velocity variables in a local frame.
    Finite-burn problems fall back to finite differences.
    """

    def __init__(self, fallback: Optional[JacobianEstimator] = None):
        self.fallback = fallback if fallback is not None else FiniteDifferenceJacobian()

    def estimate(self, problem, xi, mnvr, achieved):
        if problem.finite_burn:
            logger.debug("Finite burn target: STM Jacobian falls back to finite differences")
            return self.fallback.estimate(problem, xi, mnvr, achieved)

        xf, _ = problem.propagator.clone().propagate(
            xi, problem.achievement_epoch_mjd_tt, with_stm=True
        )
        partials = evaluate_with_partials(xf, [obj.parameter for obj in problem.objectives])
        dobj_dxf = np.array([p.dual for p in partials])

        frame = problem.correction_frame
        local = frame is not None and frame.is_local
        dcm = xi.dcm_from_frame(frame) if local else None
        dxc_dvar = np.zeros((6, len(problem.variables)))
        for j, var in enumerate(problem.variables):
            k = var.component.vec_index
            if local:
                dxc_dvar[3:6, j] = dcm[:, k - 3]
            else:
                dxc_dvar[k, j] = 1.0

        return dobj_dxf @ xf.stm @ dxc_dvar
