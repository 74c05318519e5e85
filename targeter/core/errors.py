"""
Exceptions raised by the targeter and its collaborators.

Every targeting failure is terminal for the current run. Nothing is retried
automatically: the caller decides whether to relax tolerances, change the
variables, or try another initial guess.
"""


class TargetingError(Exception):
    """Base exception for targeting failures.

    Args:
        message: The error message.
    """

    def __init__(self, message: str):
        super().__init__(message)


class UnderdeterminedProblem(TargetingError):
    """Raised when no objectives are provided."""

    def __init__(self, message: str = "no objectives provided"):
        super().__init__(message)


class InvalidVariable(TargetingError):
    """Raised when a variable has inconsistent bounds or perturbation."""


class NoThrusterAvailable(TargetingError):
    """Raised when a finite burn is targeted on a spacecraft without thruster."""

    def __init__(self, message: str = "finite burn requested but no thruster is configured"):
        super().__init__(message)


class FrameError(TargetingError):
    """Raised when a correction frame is ill-defined for a component."""


class InvalidFrameVariable(InvalidVariable, FrameError):
    """Raised when a position variable is declared with a local correction frame."""


class SingularJacobian(TargetingError):
    """Raised when the pseudo-inverse of the Jacobian cannot be computed."""


class CorrectionIneffective(TargetingError):
    """Raised when a correction no longer changes the objective errors."""


class MaxIterationsReached(TargetingError):
    """Raised when the iteration budget is exhausted.

    Attributes:
        iterations: Number of iterations performed.
        last_error_norm: Norm of the last error vector.
    """

    def __init__(self, message: str, iterations: int, last_error_norm: float):
        super().__init__(message)
        self.iterations = iterations
        self.last_error_norm = last_error_norm


class StateError(TargetingError):
    """Raised when a state parameter cannot be computed or set."""


class PropagationError(RuntimeError):
    """Raised when numerical integration fails."""
