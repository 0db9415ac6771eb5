"""Exit registry for the evacuation CA simulation."""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from ..errors import AllocationFailure, FunctionStatus, InvalidExitGeometry
from .floor_field import FloorFieldEngine
from .grid import GridMap, Location

logger = logging.getLogger(__name__)


@dataclass
class Exit:
    """One physical exit occupying contiguous boundary cells."""
    id: int
    coordinates: List[Location] = field(default_factory=list)
    floor_field: Optional[np.ndarray] = None  # None = stale, needs building

    @property
    def width(self) -> int:
        return len(self.coordinates)


class ExitsSet:
    """
    Owns the exits of one simulation set and their combined floor field.

    Per-exit fields are only rebuilt when the exit changed, so exits can be
    registered or expanded incrementally.
    """

    def __init__(self, grid: GridMap, engine: FloorFieldEngine):
        self.grid = grid
        self.engine = engine
        self.exits: List[Exit] = []
        self.final_floor_field: Optional[np.ndarray] = None

    @property
    def num_exits(self) -> int:
        return len(self.exits)

    def __len__(self) -> int:
        return len(self.exits)

    def __iter__(self) -> Iterator[Exit]:
        return iter(self.exits)

    def _check_location(self, location: Location) -> None:
        r, c = location
        if not self.grid.in_bounds(r, c):
            raise InvalidExitGeometry(f"Exit cell {location} is outside the environment")
        if not self.grid.is_border(r, c):
            raise InvalidExitGeometry(
                f"Exit cell {location} is not on the environment boundary")
        if self.grid.exits[r, c]:
            raise InvalidExitGeometry(f"Cell {location} already belongs to an exit")

    def add_new_exit(self, location: Location) -> Exit:
        """Register a new exit whose boundary is the single given cell."""
        location = (int(location[0]), int(location[1]))
        self._check_location(location)
        try:
            exit = Exit(id=len(self.exits) + 1, coordinates=[location])
        except MemoryError as exc:
            raise AllocationFailure("Could not allocate a new exit") from exc

        self.exits.append(exit)
        self.grid.exits[location] = True
        self.final_floor_field = None
        logger.debug("Exit %d created at %s", exit.id, location)
        return exit

    def expand_exit(self, exit: Exit, location: Location) -> None:
        """Append a cell orthogonally adjacent to the exit's current boundary."""
        location = (int(location[0]), int(location[1]))
        self._check_location(location)
        r, c = location
        adjacent = any(abs(r - er) + abs(c - ec) == 1 for er, ec in exit.coordinates)
        if not adjacent:
            raise InvalidExitGeometry(
                f"Cell {location} is not adjacent to exit {exit.id}")

        exit.coordinates.append(location)
        exit.floor_field = None
        self.grid.exits[location] = True
        self.final_floor_field = None

    def add_exit(self, cells: Sequence[Location]) -> Exit:
        """Register a multi-cell exit: first cell creates it, the rest expand it."""
        if not cells:
            raise InvalidExitGeometry("An exit needs at least one cell")
        exit = self.add_new_exit(cells[0])
        for cell in cells[1:]:
            self.expand_exit(exit, cell)
        return exit

    def calculate_final_floor_field(self) -> FunctionStatus:
        """Build stale exit fields and combine all of them into the final field."""
        try:
            for exit in self.exits:
                if exit.floor_field is None:
                    exit.floor_field = self.engine.build_exit_field(exit, self.grid)
        except MemoryError:
            logger.error("Out of memory while building exit floor fields")
            return FunctionStatus.FAILURE

        combined, status = self.engine.combine(self.exits, self.grid)
        self.final_floor_field = combined
        return status

    def is_exit_cell(self, location: Location) -> bool:
        return self.grid.is_exit(*location)

    def deallocate_exits(self) -> None:
        """Release every exit and the combined field. Safe when already empty."""
        for exit in self.exits:
            exit.floor_field = None
        self.exits = []
        self.final_floor_field = None
        self.grid.exits.fill(False)
