"""State snapshot and result dataclasses for the evacuation CA simulation."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np

from ..errors import FunctionStatus
from .grid import Location


@dataclass(frozen=True)
class PedestrianSnapshot:
    """Immutable snapshot of a pedestrian's state at a given timestep."""
    pedestrian_id: int
    row: int
    col: int
    state: str  # "undecided", "moving", "stopped", "blocked"
    in_panic: bool


@dataclass
class SimulationState:
    """Complete snapshot of simulation state at a given timestep."""
    step: int
    pedestrians: List[PedestrianSnapshot]
    grid_occupancy: np.ndarray  # Copy of occupancy grid
    moves: List[Tuple[int, Location, Location]]  # (id, from, to) accepted this step
    conflicts: int
    metrics: Dict[str, float]


@dataclass
class RunResult:
    """Outcome of one simulation run."""
    seed: int
    timesteps: Optional[int]  # None when the run was aborted
    failed: bool = False


@dataclass
class SetResult:
    """Outcome of one simulation set (exit configuration)."""
    index: int
    exits: List[List[Location]]
    status: Optional[FunctionStatus]  # None when the exit geometry was rejected
    runs: List[RunResult] = field(default_factory=list)
    heatmap: Optional[np.ndarray] = None
    error: Optional[str] = None

    @property
    def simulated(self) -> bool:
        return self.status is FunctionStatus.SUCCESS

    def timestep_counts(self) -> List[int]:
        return [run.timesteps for run in self.runs if run.timesteps is not None]
