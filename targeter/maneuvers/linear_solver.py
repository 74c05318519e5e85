"""
Linear solve of the Newton step.

The sensitivity matrix is rarely square and is often rank deficient, so the
correction is the minimum-norm least-squares solution obtained from the
Moore-Penrose pseudo-inverse:

    delta = pinv(J) · e
"""

from __future__ import annotations

import numpy as np

from ..core.constants import PINV_RCOND
from ..core.errors import SingularJacobian


def pseudo_inverse(jac: np.ndarray, rcond: float = PINV_RCOND) -> np.ndarray:
    """Moore-Penrose pseudo-inverse of an (n_obj, n_var) matrix.

    Args:
        jac: Sensitivity matrix.
        rcond: Singular values below rcond * largest singular value are zeroed.

    Returns:
        (n_var, n_obj) pseudo-inverse. All zeros for an all-zero matrix.

    Raises:
        SingularJacobian: if the matrix has non-finite entries or the SVD fails.
    """
    jac = np.atleast_2d(np.asarray(jac, dtype=float))
    if not np.all(np.isfinite(jac)):
        raise SingularJacobian(f"Jacobian has non-finite entries:\n{jac}")
    try:
        return np.linalg.pinv(jac, rcond=rcond)
    except np.linalg.LinAlgError as exc:
        raise SingularJacobian(f"pseudo-inverse failed: {exc}") from exc


def least_squares_correction(jac: np.ndarray, error: np.ndarray,
                             rcond: float = PINV_RCOND) -> np.ndarray:
    """Minimum-norm correction for the scaled error vector, shape (n_var,)."""
    return pseudo_inverse(jac, rcond) @ np.asarray(error, dtype=float)
