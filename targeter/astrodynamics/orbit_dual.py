"""
Orbital parameters with their partials.

OrbitDual seeds the six Cartesian components of a state as dual numbers, so
every derived parameter carries its exact gradient with respect to the
terminal Cartesian state:

    value(param) = OrbitDual.from_state(state).partial_for(param).real
    d value / d x = OrbitDual.from_state(state).partial_for(param).dual

BPlane builds the hyperbolic approach geometry (B·R, B·T and the linearized
time of flight to periapsis) from an OrbitDual, with the same partials.

References:
    - Vallado, "Fundamentals of Astrodynamics and Applications", Ch. 2
    - Kizner, "A method of describing miss distances for lunar and
      interplanetary trajectories", 1961
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from typing import Callable

from ..core.constants import TWO_PI
from ..core.errors import StateError
from ..core.types import SpacecraftState, StateParameter
from . import dual as dm
from .dual import Dual

# Below this, the node line and the eccentricity vector are undefined.
_SINGULAR_TOL = 1e-11


@dataclass
class OrbitDual:
    """Cartesian state as dual numbers.

    Attributes:
        r: Position [km], three Duals.
        v: Velocity [km/s], three Duals.
        mu: Gravitational parameter [km³/s²].
    """
    r: list
    v: list
    mu: float

    @classmethod
    def from_state(cls, state: SpacecraftState) -> OrbitDual:
        return cls.from_vector(state.state_vector, state.mu)

    @classmethod
    def from_vector(cls, rv: np.ndarray, mu: float) -> OrbitDual:
        seeds = [Dual.seed(rv[k], k) for k in range(6)]
        return cls(r=seeds[0:3], v=seeds[3:6], mu=mu)

    # Basic quantities

    @property
    def rmag(self) -> Dual:
        return dm.norm(self.r)

    @property
    def vmag(self) -> Dual:
        return dm.norm(self.v)

    @property
    def hvec(self) -> list:
        return dm.cross(self.r, self.v)

    @property
    def hmag(self) -> Dual:
        return dm.norm(self.hvec)

    @property
    def energy(self) -> Dual:
        """Specific mechanical energy [km²/s²]."""
        return dm.dot(self.v, self.v) * 0.5 - self.mu / self.rmag

    @property
    def c3(self) -> Dual:
        return self.energy * 2.0

    @property
    def sma(self) -> Dual:
        """Semi-major axis [km], negative for hyperbolas."""
        energy = self.energy
        if energy.real == 0.0:
            raise StateError("semi-major axis is undefined on a parabolic orbit")
        return -self.mu / (energy * 2.0)

    @property
    def evec(self) -> list:
        """Eccentricity vector: ((v² - μ/r) r - (r·v) v) / μ"""
        rmag = self.rmag
        k = dm.dot(self.v, self.v) - self.mu / rmag
        rv = dm.dot(self.r, self.v)
        return [(k * ri - rv * vi) / self.mu for ri, vi in zip(self.r, self.v)]

    @property
    def ecc(self) -> Dual:
        return dm.norm(self.evec)

    @property
    def periapsis(self) -> Dual:
        return self.sma * (1.0 - self.ecc)

    @property
    def apoapsis(self) -> Dual:
        return self.sma * (1.0 + self.ecc)

    # Angles

    @property
    def inc(self) -> Dual:
        h = self.hvec
        return dm.arccos(h[2] / dm.norm(h))

    def _node(self) -> list:
        h = self.hvec
        return [-h[1], h[0], Dual(0.0)]

    @property
    def raan(self) -> Dual:
        n = self._node()
        nmag = dm.norm(n)
        if nmag.real < _SINGULAR_TOL:
            raise StateError("RAAN is undefined on an equatorial orbit")
        raan = dm.arccos(n[0] / nmag)
        if n[1].real < 0.0:
            raan = TWO_PI - raan
        return raan

    @property
    def aop(self) -> Dual:
        n = self._node()
        nmag = dm.norm(n)
        e = self.evec
        ecc = dm.norm(e)
        if nmag.real < _SINGULAR_TOL or ecc.real < _SINGULAR_TOL:
            raise StateError("argument of periapsis is undefined on an equatorial or circular orbit")
        aop = dm.arccos(dm.dot(n, e) / (nmag * ecc))
        if e[2].real < 0.0:
            aop = TWO_PI - aop
        return aop

    @property
    def ta(self) -> Dual:
        e = self.evec
        ecc = dm.norm(e)
        if ecc.real < _SINGULAR_TOL:
            raise StateError("true anomaly is undefined on a circular orbit")
        ta = dm.arccos(dm.dot(e, self.r) / (ecc * self.rmag))
        if dm.dot(self.r, self.v).real < 0.0:
            ta = TWO_PI - ta
        return ta

    def partial_for(self, param: StateParameter) -> Dual:
        """Value of `param` with its partials w.r.t. the Cartesian state.

        Raises:
            StateError: for B-plane parameters (use BPlane) or undefined angles.
        """
        try:
            accessor = _ORBIT_ACCESSORS[param]
        except KeyError:
            raise StateError(f"{param.name} is not an orbital parameter, use the B-plane") from None
        return accessor(self)


_ORBIT_ACCESSORS: dict[StateParameter, Callable[[OrbitDual], Dual]] = {
    StateParameter.X: lambda o: o.r[0],
    StateParameter.Y: lambda o: o.r[1],
    StateParameter.Z: lambda o: o.r[2],
    StateParameter.VX: lambda o: o.v[0],
    StateParameter.VY: lambda o: o.v[1],
    StateParameter.VZ: lambda o: o.v[2],
    StateParameter.RMAG: lambda o: o.rmag,
    StateParameter.VMAG: lambda o: o.vmag,
    StateParameter.SMA: lambda o: o.sma,
    StateParameter.ECC: lambda o: o.ecc,
    StateParameter.INC: lambda o: o.inc,
    StateParameter.RAAN: lambda o: o.raan,
    StateParameter.AOP: lambda o: o.aop,
    StateParameter.TA: lambda o: o.ta,
    StateParameter.ENERGY: lambda o: o.energy,
    StateParameter.HMAG: lambda o: o.hmag,
    StateParameter.PERIAPSIS: lambda o: o.periapsis,
    StateParameter.APOAPSIS: lambda o: o.apoapsis,
    StateParameter.C3: lambda o: o.c3,
}


@dataclass
class BPlane:
    """B-plane of a hyperbolic approach.

    The frame is S (incoming asymptote), T = S × Ẑ normalized, R = S × T.

    Attributes:
        b_t: B·T [km].
        b_r: B·R [km].
        ltof_s: Linearized time of flight to periapsis [s].
        s_hat, t_hat, r_hat: Unit vectors of the B-plane frame, real parts.
    """
    b_t: Dual
    b_r: Dual
    ltof_s: Dual
    s_hat: np.ndarray
    t_hat: np.ndarray
    r_hat: np.ndarray

    @classmethod
    def from_dual(cls, orbit: OrbitDual) -> BPlane:
        """Build the B-plane of a hyperbolic orbit.

        Raises:
            StateError: if the orbit is not hyperbolic.
        """
        e_vec = orbit.evec
        ecc = dm.norm(e_vec)
        if ecc.real <= 1.0:
            raise StateError(f"B-plane requires a hyperbolic orbit (ecc = {ecc.real:.6f})")

        h_vec = orbit.hvec
        e_hat = dm.scale(e_vec, 1.0 / ecc)
        h_hat = dm.scale(h_vec, 1.0 / dm.norm(h_vec))
        n_hat = dm.cross(h_hat, e_hat)

        inv_e = 1.0 / ecc
        sin_half = dm.sqrt(1.0 - inv_e * inv_e)
        s_hat = dm.add(dm.scale(e_hat, inv_e), dm.scale(n_hat, sin_half))

        a_abs = -orbit.sma
        b_semi = a_abs * dm.sqrt(ecc * ecc - 1.0)
        b_vec = dm.scale(dm.add(dm.scale(e_hat, sin_half), dm.scale(n_hat, -inv_e)), b_semi)

        t_vec = dm.cross(s_hat, [Dual(0.0), Dual(0.0), Dual(1.0)])
        t_norm = dm.norm(t_vec)
        if t_norm.real < _SINGULAR_TOL:
            raise StateError("incoming asymptote is parallel to the Z axis, B-plane T axis undefined")
        t_hat = dm.scale(t_vec, 1.0 / t_norm)
        r_hat = dm.cross(s_hat, t_hat)

        # Hyperbolic anomaly from r·v = e sqrt(μ|a|) sinh(F)
        sinh_f = dm.dot(orbit.r, orbit.v) / (ecc * dm.sqrt(a_abs * orbit.mu))
        f_anom = dm.asinh(sinh_f)
        mean_anom = ecc * dm.sinh(f_anom) - f_anom
        mean_motion = dm.sqrt(orbit.mu / (a_abs * a_abs * a_abs))
        ltof_s = -mean_anom / mean_motion

        return cls(
            b_t=dm.dot(b_vec, t_hat),
            b_r=dm.dot(b_vec, r_hat),
            ltof_s=ltof_s,
            s_hat=dm.real_vector(s_hat),
            t_hat=dm.real_vector(t_hat),
            r_hat=dm.real_vector(r_hat),
        )

    @classmethod
    def from_state(cls, state: SpacecraftState) -> BPlane:
        return cls.from_dual(OrbitDual.from_state(state))

    @property
    def b_dot_t(self) -> float:
        return self.b_t.real

    @property
    def b_dot_r(self) -> float:
        return self.b_r.real

    @property
    def b_mag(self) -> float:
        return float(np.hypot(self.b_t.real, self.b_r.real))

    @property
    def theta(self) -> float:
        """B-plane angle measured from T towards R [rad]."""
        return float(np.arctan2(self.b_r.real, self.b_t.real))

    def partial_for(self, param: StateParameter) -> Dual:
        if param is StateParameter.BDOTT:
            return self.b_t
        if param is StateParameter.BDOTR:
            return self.b_r
        if param is StateParameter.BLTOF:
            return self.ltof_s
        raise StateError(f"{param.name} is not a B-plane parameter")

    def __str__(self) -> str:
        return (f"B-plane: B·T = {self.b_t.real:.3f} km, B·R = {self.b_r.real:.3f} km, "
                f"LTOF = {self.ltof_s.real:.3f} s")


def evaluate_with_partials(state: SpacecraftState, params) -> list[Dual]:
    """Dual value of each parameter, building the B-plane at most once."""
    orbit = OrbitDual.from_state(state)
    bplane = None
    values = []
    for param in params:
        if param.is_b_plane:
            if bplane is None:
                bplane = BPlane.from_dual(orbit)
            values.append(bplane.partial_for(param))
        else:
            values.append(orbit.partial_for(param))
    return values
