"""Status codes and exceptions for the evacuation CA simulation."""

from enum import Enum


class FunctionStatus(Enum):
    """Outcome of floor field combination."""
    FAILURE = 0
    SUCCESS = 1
    INACCESSIBLE_EXIT = 2


class SimulationError(Exception):
    """Base class for simulation errors."""


class AllocationFailure(SimulationError):
    """Memory could not be obtained for a grid or registry. Aborts the run."""


class InvalidExitGeometry(SimulationError, ValueError):
    """Exit cell is out of bounds, off the border, duplicated or non-adjacent."""


class ConflictSetOverflow(SimulationError):
    """Conflict set could not be built. Aborts the current run only."""
