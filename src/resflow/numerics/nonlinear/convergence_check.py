"""Convergence status of nonlinear solves."""

from enum import Enum


class ConvergenceStatus(Enum):
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"

    def __str__(self):
        return self.value

    @classmethod
    def from_str(cls, status_str: str):
        """Convert a string to a ConvergenceStatus."""
        return cls[status_str.upper()]

    def is_converged(self) -> bool:
        """Check if the status indicates convergence."""
        return self == ConvergenceStatus.CONVERGED

    def is_not_converged(self) -> bool:
        """Check if the status indicates that the step must be restarted."""
        return self == ConvergenceStatus.NOT_CONVERGED
