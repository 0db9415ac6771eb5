"""Pedestrians and the pedestrian registry."""

import logging
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .grid import GridMap, Location

logger = logging.getLogger(__name__)


class MovementState(Enum):
    """Outcome of the current timestep for a pedestrian."""
    UNDECIDED = "undecided"
    MOVING = "moving"
    STOPPED = "stopped"    # chose to stay
    BLOCKED = "blocked"    # lost a conflict or was denied by a restriction


@dataclass
class PersistentState:
    """State carried across timesteps; reset between simulation runs."""
    in_panic: bool = False

    def reset(self) -> None:
        self.in_panic = False


@dataclass
class TransientState:
    """State valid for a single timestep."""
    target: Optional[Location] = None
    movement: MovementState = MovementState.UNDECIDED

    def reset(self) -> None:
        self.target = None
        self.movement = MovementState.UNDECIDED


class Pedestrian:
    """Individual pedestrian occupying one grid cell."""

    def __init__(self, pedestrian_id: int, position: Location):
        self.id = pedestrian_id
        self.position = position
        self.initial_position = position
        self.persistent = PersistentState()
        self.transient = TransientState()
        self.steps_taken = 0
        self.exited = False

    @property
    def in_panic(self) -> bool:
        return self.persistent.in_panic

    @property
    def wants_to_move(self) -> bool:
        target = self.transient.target
        return target is not None and target != self.position

    def propose(self, target: Location) -> None:
        self.transient.target = target
        if target == self.position:
            self.transient.movement = MovementState.STOPPED
        else:
            self.transient.movement = MovementState.MOVING

    def block(self) -> None:
        """Revert the proposal to staying in place."""
        self.transient.target = self.position
        self.transient.movement = MovementState.BLOCKED

    def __repr__(self) -> str:
        return (f"Pedestrian(id={self.id}, pos={self.position}, "
                f"state={self.transient.movement.value}, panic={self.in_panic})")


class PedestrianRegistry:
    """
    Owns the live pedestrians of a run and keeps the occupancy layer in sync
    on insertion and removal.

    Iteration is always in ascending id order so that random draws happen in
    a reproducible order.
    """

    def __init__(self, grid: GridMap):
        self.grid = grid
        self._live: Dict[int, Pedestrian] = {}
        self._initial: List[Location] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._live)

    def __iter__(self) -> Iterator[Pedestrian]:
        return iter([self._live[key] for key in sorted(self._live)])

    @property
    def pedestrians(self) -> List[Pedestrian]:
        return list(self)

    def is_environment_empty(self) -> bool:
        return not self._live

    def insert(self, location: Location) -> Pedestrian:
        """Place a new pedestrian on a free floor cell."""
        r, c = int(location[0]), int(location[1])
        if (not self.grid.in_bounds(r, c)
                or self.grid.walls[r, c] or self.grid.exits[r, c]):
            raise ValueError(f"Cannot place a pedestrian on non-floor cell {(r, c)}")
        if self.grid.is_occupied(r, c):
            raise ValueError(f"Cell {(r, c)} is already occupied")

        pedestrian = Pedestrian(self._next_id, (r, c))
        self._next_id += 1
        self._live[pedestrian.id] = pedestrian
        self._initial.append((r, c))
        self.grid.place_pedestrian(pedestrian.id, r, c)
        return pedestrian

    def insert_at_random(self, count: int, rng: np.random.Generator) -> List[Pedestrian]:
        """Insert count pedestrians on distinct free floor cells."""
        free = self.grid.floor_mask() & (self.grid.occupancy == 0)
        rows, cols = np.nonzero(free)
        if count > len(rows):
            raise ValueError(
                f"Cannot insert {count} pedestrians: only {len(rows)} free floor cells")
        chosen = rng.choice(len(rows), size=count, replace=False)
        return [self.insert((int(rows[i]), int(cols[i]))) for i in chosen]

    def remove(self, pedestrian: Pedestrian) -> None:
        """Remove a pedestrian that reached an exit."""
        del self._live[pedestrian.id]
        pedestrian.exited = True
        if self.grid.occupancy[pedestrian.position] == pedestrian.id:
            self.grid.remove_pedestrian(*pedestrian.position)

    def clear(self) -> None:
        """Drop every pedestrian, including the remembered initial placement."""
        for pedestrian in self._live.values():
            self.grid.remove_pedestrian(*pedestrian.position)
        self._live = {}
        self._initial = []
        self._next_id = 1

    def reset_to_initial(self) -> None:
        """Reinsert every pedestrian ever inserted at its initial position."""
        initial = list(self._initial)
        self.clear()
        self.grid.reset_occupancy()
        for location in initial:
            self.insert(location)

    def reset_transient_state(self) -> None:
        for pedestrian in self._live.values():
            pedestrian.transient.reset()

    def reset_panic(self) -> None:
        for pedestrian in self._live.values():
            pedestrian.persistent.reset()
