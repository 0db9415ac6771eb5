"""Movement proposals, panic policies and movement restrictions."""

import logging
import numpy as np
from scipy.ndimage import convolve
from typing import List, Optional

from .grid import GridMap, Location, Neighborhood, neighbors
from .pedestrian import Pedestrian, PedestrianRegistry

logger = logging.getLogger(__name__)

# Floor field values closer than this are considered equal
FIELD_TOLERANCE = 1e-9


class TieBreak:
    """Chooses among candidate cells with the same floor field value."""

    def choose(self, options: List[Location], rng: np.random.Generator) -> Location:
        raise NotImplementedError


class RandomTieBreak(TieBreak):
    """Uniform random choice among ties (default)."""

    def choose(self, options, rng):
        if len(options) == 1:
            return options[0]
        return options[int(rng.integers(len(options)))]


class FirstTieBreak(TieBreak):
    """First tie in canonical neighbour order; never touches the generator."""

    def choose(self, options, rng):
        return options[0]


class PanicPolicy:
    """Decides when a calm pedestrian starts panicking."""

    def prepare(self, grid: GridMap) -> None:
        """Called once per timestep before any should_panic call."""

    def should_panic(self, pedestrian: Pedestrian, rng: np.random.Generator) -> bool:
        raise NotImplementedError


class NoPanic(PanicPolicy):

    def should_panic(self, pedestrian, rng):
        return False


class ProbabilisticPanic(PanicPolicy):
    """Each calm pedestrian panics with a fixed probability per timestep."""

    def __init__(self, probability: float):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Panic probability must be in [0, 1], got {probability}")
        self.probability = probability

    def should_panic(self, pedestrian, rng):
        return bool(rng.random() < self.probability)


class DensityPanic(PanicPolicy):
    """
    Panic triggered by local crowding.

    Density is the fraction of walkable cells in the 3x3 neighbourhood
    (excluding the pedestrian's own cell) that are occupied. Once it reaches
    the threshold the pedestrian panics with the given probability.
    """

    def __init__(self, threshold: float, probability: float = 1.0):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Density threshold must be in [0, 1], got {threshold}")
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Panic probability must be in [0, 1], got {probability}")
        self.threshold = threshold
        self.probability = probability
        self.kernel = np.ones((3, 3), dtype=np.float64)
        self.density: Optional[np.ndarray] = None

    def prepare(self, grid):
        occupied = (grid.occupancy != 0).astype(np.float64)
        walkable = grid.walkable_mask().astype(np.float64)
        near_occupied = convolve(occupied, self.kernel, mode='constant', cval=0.0) - occupied
        near_walkable = convolve(walkable, self.kernel, mode='constant', cval=0.0) - walkable
        self.density = np.divide(near_occupied, near_walkable,
                                 out=np.zeros_like(near_occupied),
                                 where=near_walkable > 0)

    def should_panic(self, pedestrian, rng):
        if self.density is None or self.density[pedestrian.position] < self.threshold:
            return False
        return bool(rng.random() < self.probability)


class MovementEvaluator:
    """
    Proposes a target cell for every pedestrian.

    Candidates are the free walkable neighbours of the pedestrian plus its own
    cell. Occupancy is read as it was at the start of the timestep, so no
    proposal depends on a move made in the same timestep.
    """

    def __init__(self, grid: GridMap,
                 neighborhood: Neighborhood = Neighborhood.VON_NEUMANN,
                 diagonal_cost: float = 1.5,
                 tie_break: Optional[TieBreak] = None):
        self.grid = grid
        self.neighborhood = neighborhood
        self.diagonal_cost = diagonal_cost
        self.tie_break = tie_break or RandomTieBreak()
        self._walkable: Optional[np.ndarray] = None

    def candidates(self, pedestrian: Pedestrian,
                   floor_field: Optional[np.ndarray] = None,
                   exclude_lateral: bool = False) -> List[Location]:
        if self._walkable is None:
            self._walkable = self.grid.walkable_mask()
        position = pedestrian.position

        options = []
        for cell, _ in neighbors(position, self._walkable, self.neighborhood,
                                 self.diagonal_cost):
            if self.grid.occupancy[cell] != 0:
                continue
            if exclude_lateral and not self._is_forward(position, cell, floor_field):
                continue
            options.append(cell)
        options.append(position)
        return options

    @staticmethod
    def _is_forward(position: Location, cell: Location, floor_field: np.ndarray) -> bool:
        return floor_field[cell] < floor_field[position] - FIELD_TOLERANCE

    def _rational_choice(self, options, floor_field, rng) -> Location:
        values = [floor_field[cell] for cell in options]
        best = min(values)
        ties = [cell for cell, value in zip(options, values)
                if value <= best + FIELD_TOLERANCE]
        return self.tie_break.choose(ties, rng)

    @staticmethod
    def _panic_choice(options, rng) -> Location:
        return options[int(rng.integers(len(options)))]

    def propose(self, pedestrian: Pedestrian, floor_field: np.ndarray,
                rng: np.random.Generator, exclude_lateral: bool = False) -> Location:
        """Compute and store the pedestrian's proposal for this timestep."""
        options = self.candidates(pedestrian, floor_field, exclude_lateral)
        if pedestrian.in_panic:
            target = self._panic_choice(options, rng)
        else:
            target = self._rational_choice(options, floor_field, rng)
        pedestrian.propose(target)
        return target

    def evaluate_movements(self, registry: PedestrianRegistry,
                           floor_field: np.ndarray, rng: np.random.Generator) -> None:
        self._walkable = self.grid.walkable_mask()
        for pedestrian in registry:
            self.propose(pedestrian, floor_field, rng)

    def determine_panic(self, registry: PedestrianRegistry, policy: PanicPolicy,
                        floor_field: np.ndarray, rng: np.random.Generator) -> int:
        """Let the policy panic calm pedestrians; redraw their proposals."""
        policy.prepare(self.grid)
        newly_panicked = 0
        for pedestrian in registry:
            if pedestrian.in_panic:
                continue
            if policy.should_panic(pedestrian, rng):
                pedestrian.persistent.in_panic = True
                self.propose(pedestrian, floor_field, rng)
                newly_panicked += 1
        if newly_panicked:
            logger.debug("%d pedestrians started panicking", newly_panicked)
        return newly_panicked

    def is_lateral(self, pedestrian: Pedestrian, floor_field: np.ndarray) -> bool:
        """True for a move that does not bring the pedestrian closer to an exit."""
        return (pedestrian.wants_to_move and
                not self._is_forward(pedestrian.position, pedestrian.transient.target,
                                     floor_field))

    def block_lateral_movement(self, registry: PedestrianRegistry,
                               floor_field: np.ndarray, rng: np.random.Generator) -> int:
        """Recompute lateral proposals with lateral candidates removed."""
        blocked = 0
        for pedestrian in registry:
            if not self.is_lateral(pedestrian, floor_field):
                continue
            target = self.propose(pedestrian, floor_field, rng, exclude_lateral=True)
            if target == pedestrian.position:
                pedestrian.block()
                blocked += 1
        return blocked

    def block_crossing_movement(self, registry: PedestrianRegistry,
                                rng: np.random.Generator) -> int:
        """Deny one of every two diagonal moves crossing inside a 2x2 block."""
        movers = {p.position: p for p in registry if p.wants_to_move}
        blocked = 0
        for pedestrian in registry:
            if not pedestrian.wants_to_move:
                continue
            (r, c), (tr, tc) = pedestrian.position, pedestrian.transient.target
            if abs(tr - r) != 1 or abs(tc - c) != 1:
                continue

            # The crossing diagonal joins the two other corners of the block
            for start, end in (((r, tc), (tr, c)), ((tr, c), (r, tc))):
                other = movers.get(start)
                if other is None or not other.wants_to_move:
                    continue
                if other.transient.target != end:
                    continue
                loser = (pedestrian, other)[int(rng.integers(2))]
                loser.block()
                blocked += 1
                break
        return blocked
