"""Floor field construction and combination for the evacuation CA simulation."""

import heapq
import logging
import numpy as np
from collections import defaultdict
from typing import Dict, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from ..errors import FunctionStatus
from .grid import GridMap, Location, Neighborhood, neighbors

if TYPE_CHECKING:
    from .exits import Exit

logger = logging.getLogger(__name__)

# Keeps every first step from an exit strictly positive, even in a Moore
# neighbourhood where a cell can touch three boundary cells.
MAX_WIDTH_ATTRACTION = 0.25


class FloorFieldEngine:
    """
    Pre-computes distance fields guiding pedestrians toward exits.

    Lower value = closer to an exit. Exit boundary cells hold 0 and cells
    that cannot reach the exit without crossing a wall hold np.inf.
    """

    def __init__(self, neighborhood: Neighborhood = Neighborhood.VON_NEUMANN,
                 diagonal_cost: float = 1.5,
                 width_attraction: float = 0.0):
        if diagonal_cost <= 0:
            raise ValueError(f"diagonal_cost must be positive, got {diagonal_cost}")
        if not 0.0 <= width_attraction < MAX_WIDTH_ATTRACTION:
            raise ValueError(
                f"width_attraction must be in [0, {MAX_WIDTH_ATTRACTION}), "
                f"got {width_attraction}")
        self.neighborhood = neighborhood
        self.diagonal_cost = diagonal_cost
        self.width_attraction = width_attraction

    def _width_discounts(self, boundary: Set[Location],
                         walkable: np.ndarray) -> Dict[Location, float]:
        """Discount for cells adjacent to more than one boundary cell."""
        touching: Dict[Location, int] = defaultdict(int)
        for cell in boundary:
            for neighbor, _ in neighbors(cell, walkable, self.neighborhood,
                                         self.diagonal_cost):
                if neighbor not in boundary:
                    touching[neighbor] += 1
        return {cell: self.width_attraction * (count - 1)
                for cell, count in touching.items() if count > 1}

    def build_exit_field(self, exit: "Exit", grid: GridMap) -> np.ndarray:
        """
        Compute the floor field of a single exit.

        Multi-source Dijkstra from all boundary cells over floor cells and the
        exit's own cells. With a von Neumann neighbourhood every step costs 1
        and this is a plain breadth-first distance.
        """
        field = np.full(grid.shape, np.inf)

        # Other exits' doorways stay closed: each field depends only on the
        # layout and on this exit's cells.
        walkable = ~grid.walls
        boundary = set(exit.coordinates)
        heap = []
        for cell in exit.coordinates:
            walkable[cell] = True
            field[cell] = 0.0
            heap.append((0.0, cell))
        heapq.heapify(heap)

        discounts = (self._width_discounts(boundary, walkable)
                     if self.width_attraction > 0 else {})

        while heap:
            dist, cell = heapq.heappop(heap)
            if dist > field[cell]:
                continue
            from_boundary = cell in boundary
            for neighbor, cost in neighbors(cell, walkable, self.neighborhood,
                                            self.diagonal_cost):
                if from_boundary:
                    cost -= discounts.get(neighbor, 0.0)
                candidate = dist + cost
                if candidate < field[neighbor]:
                    field[neighbor] = candidate
                    heapq.heappush(heap, (candidate, neighbor))

        reachable = int(np.count_nonzero(np.isfinite(field)))
        logger.debug("Exit %d floor field reaches %d cells", exit.id, reachable)
        return field

    def combine(self, exits: Sequence["Exit"],
                grid: GridMap) -> Tuple[Optional[np.ndarray], FunctionStatus]:
        """
        Combine the exits' fields into the final floor field (cell-wise minimum).

        Returns INACCESSIBLE_EXIT when a walkable cell cannot reach any exit or
        an exit cannot be reached from any walkable cell, FAILURE when memory
        runs out, SUCCESS otherwise.
        """
        if not exits:
            logger.warning("No exits registered; every cell is inaccessible")
            return None, FunctionStatus.INACCESSIBLE_EXIT

        for exit in exits:
            if exit.floor_field is None:
                raise ValueError(f"Exit {exit.id} floor field has not been built")

        try:
            combined = np.full(grid.shape, np.inf)
            for exit in exits:
                np.minimum(combined, exit.floor_field, out=combined)
        except MemoryError:
            logger.error("Out of memory while combining %d floor fields", len(exits))
            return None, FunctionStatus.FAILURE

        unreachable = grid.walkable_mask() & ~np.isfinite(combined)
        if np.any(unreachable):
            logger.warning("%d walkable cells cannot reach any exit",
                           int(np.count_nonzero(unreachable)))
            return combined, FunctionStatus.INACCESSIBLE_EXIT

        for exit in exits:
            if np.count_nonzero(np.isfinite(exit.floor_field)) <= exit.width:
                logger.warning("Exit %d is walled in", exit.id)
                return combined, FunctionStatus.INACCESSIBLE_EXIT

        return combined, FunctionStatus.SUCCESS
