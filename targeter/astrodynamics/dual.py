"""
Forward-mode dual numbers.

A Dual carries a real value and its gradient with respect to a fixed set of
seeds (here the six Cartesian components of a state). Arithmetic and the
elementary functions below propagate the gradient by the chain rule, so any
orbital parameter built from a dual state comes with its exact partials.
"""

from __future__ import annotations

import numpy as np

N_SEEDS = 6


class Dual:
    """Real value with its gradient.

    Attributes:
        real: Value.
        dual: Partials with respect to the seeds, shape (N_SEEDS,).
    """

    __slots__ = ("real", "dual")

    def __init__(self, real: float, dual=None):
        self.real = float(real)
        self.dual = np.zeros(N_SEEDS) if dual is None else np.asarray(dual, dtype=float)

    @classmethod
    def seed(cls, real: float, index: int) -> Dual:
        """Independent variable: unit partial on its own seed."""
        d = np.zeros(N_SEEDS)
        d[index] = 1.0
        return cls(real, d)

    # Arithmetic

    def __add__(self, other):
        if isinstance(other, Dual):
            return Dual(self.real + other.real, self.dual + other.dual)
        return Dual(self.real + other, self.dual)

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, Dual):
            return Dual(self.real - other.real, self.dual - other.dual)
        return Dual(self.real - other, self.dual)

    def __rsub__(self, other):
        return Dual(other - self.real, -self.dual)

    def __neg__(self):
        return Dual(-self.real, -self.dual)

    def __mul__(self, other):
        if isinstance(other, Dual):
            return Dual(self.real * other.real,
                        self.dual * other.real + self.real * other.dual)
        return Dual(self.real * other, self.dual * other)

    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, Dual):
            return Dual(self.real / other.real,
                        (self.dual * other.real - self.real * other.dual) / other.real ** 2)
        return Dual(self.real / other, self.dual / other)

    def __rtruediv__(self, other):
        return Dual(other / self.real, -other * self.dual / self.real ** 2)

    def __pow__(self, exponent: float):
        return Dual(self.real ** exponent,
                    exponent * self.real ** (exponent - 1) * self.dual)

    def __repr__(self) -> str:
        return f"Dual({self.real!r}, {self.dual!r})"


def _real(x) -> float:
    return x.real if isinstance(x, Dual) else float(x)


def _lift(x) -> Dual:
    return x if isinstance(x, Dual) else Dual(x)


def sqrt(x: Dual) -> Dual:
    s = np.sqrt(x.real)
    return Dual(s, x.dual / (2.0 * s) if s > 0.0 else np.zeros(N_SEEDS))


def sin(x: Dual) -> Dual:
    return Dual(np.sin(x.real), np.cos(x.real) * x.dual)


def cos(x: Dual) -> Dual:
    return Dual(np.cos(x.real), -np.sin(x.real) * x.dual)


def sinh(x: Dual) -> Dual:
    return Dual(np.sinh(x.real), np.cosh(x.real) * x.dual)


def asinh(x: Dual) -> Dual:
    return Dual(np.arcsinh(x.real), x.dual / np.sqrt(1.0 + x.real ** 2))


def arccos(x: Dual) -> Dual:
    """Inverse cosine, clipped to [-1, 1]; the partials vanish at the poles."""
    c = float(np.clip(x.real, -1.0, 1.0))
    denom = np.sqrt(1.0 - c ** 2)
    if denom < 1e-15:
        return Dual(np.arccos(c))
    return Dual(np.arccos(c), -x.dual / denom)


def arcsin(x: Dual) -> Dual:
    c = float(np.clip(x.real, -1.0, 1.0))
    denom = np.sqrt(1.0 - c ** 2)
    if denom < 1e-15:
        return Dual(np.arcsin(c))
    return Dual(np.arcsin(c), x.dual / denom)


# 3-vectors of duals are plain lists

def dot(a, b) -> Dual:
    return _lift(a[0] * b[0] + a[1] * b[1] + a[2] * b[2])


def cross(a, b) -> list:
    return [
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    ]


def norm(a) -> Dual:
    return sqrt(dot(a, a))


def scale(a, k) -> list:
    return [ai * k for ai in a]


def add(a, b) -> list:
    return [ai + bi for ai, bi in zip(a, b)]


def real_vector(a) -> np.ndarray:
    return np.array([_real(ai) for ai in a])
