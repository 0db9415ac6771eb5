"""Grid map management for the evacuation CA simulation."""

import numpy as np
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Set, Tuple

# (row, col); arrays are indexed [row, col]
Location = Tuple[int, int]

WALL_CHAR = '#'
FLOOR_CHAR = '.'
EXIT_CHAR = '_'
PEDESTRIAN_CHAR = 'P'

ORTHOGONAL_OFFSETS = [(-1, 0), (0, -1), (0, 1), (1, 0)]
DIAGONAL_OFFSETS = [(-1, -1), (-1, 1), (1, -1), (1, 1)]


class Neighborhood(Enum):
    """Cell connectivity used by the floor field and by movement."""
    VON_NEUMANN = "von_neumann"
    MOORE = "moore"


def neighbors(location: Location, walkable: np.ndarray,
              neighborhood: Neighborhood = Neighborhood.VON_NEUMANN,
              diagonal_cost: float = 1.5) -> Iterator[Tuple[Location, float]]:
    """
    Yield (cell, step_cost) for every walkable neighbour of location.

    Orthogonal neighbours come first, then diagonal ones, always in the same
    order. A diagonal step is only allowed when both orthogonal cells it cuts
    past are walkable.
    """
    rows, cols = walkable.shape
    r, c = location

    for dr, dc in ORTHOGONAL_OFFSETS:
        nr, nc = r + dr, c + dc
        if 0 <= nr < rows and 0 <= nc < cols and walkable[nr, nc]:
            yield (nr, nc), 1.0

    if neighborhood is Neighborhood.MOORE:
        for dr, dc in DIAGONAL_OFFSETS:
            nr, nc = r + dr, c + dc
            if not (0 <= nr < rows and 0 <= nc < cols) or not walkable[nr, nc]:
                continue
            if walkable[r, nc] and walkable[nr, c]:
                yield (nr, nc), diagonal_cost


class GridMap:
    """
    Manages the 2D evacuation environment with multiple data layers.

    All layers share the shape (rows, cols) fixed at construction.
    """

    def __init__(self, rows: int, cols: int):
        if rows <= 0 or cols <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {rows}x{cols}")
        self.rows = rows
        self.cols = cols

        # Boolean mask: True = wall or obstacle (impassable)
        self.walls = np.zeros((rows, cols), dtype=bool)

        # Boolean mask: True = boundary cell of a registered exit
        self.exits = np.zeros((rows, cols), dtype=bool)

        # Occupancy: 0 = empty, positive int = pedestrian id
        self.occupancy = np.zeros((rows, cols), dtype=np.int32)

        # Visit counts accumulated over the runs of one simulation set
        self.heatmap = np.zeros((rows, cols), dtype=np.int64)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    def add_wall_rectangle(self, row: int, col: int, height: int, width: int) -> None:
        """Mark rectangular region as wall."""
        # Clamp to grid boundaries
        row_end = min(row + height, self.rows)
        col_end = min(col + width, self.cols)
        row = max(0, row)
        col = max(0, col)
        self.walls[row:row_end, col:col_end] = True

    def add_wall_points(self, coords: Iterable[Location]) -> None:
        """Mark specific cells as walls."""
        for r, c in coords:
            if self.in_bounds(r, c):
                self.walls[r, c] = True

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def is_border(self, row: int, col: int) -> bool:
        """True if the cell touches the outside of the environment."""
        return (self.in_bounds(row, col) and
                (row in (0, self.rows - 1) or col in (0, self.cols - 1)))

    def is_walkable(self, row: int, col: int) -> bool:
        """Check if cell is within bounds and either floor or an exit."""
        if not self.in_bounds(row, col):
            return False
        return bool(self.exits[row, col] or not self.walls[row, col])

    def is_exit(self, row: int, col: int) -> bool:
        return self.in_bounds(row, col) and bool(self.exits[row, col])

    def is_occupied(self, row: int, col: int) -> bool:
        """Check if cell contains a pedestrian."""
        if not self.in_bounds(row, col):
            return True  # Out of bounds treated as occupied
        return self.occupancy[row, col] != 0

    def walkable_mask(self) -> np.ndarray:
        return ~self.walls | self.exits

    def floor_mask(self) -> np.ndarray:
        """Walkable cells that are not exits (where pedestrians may be placed)."""
        return ~self.walls & ~self.exits

    def place_pedestrian(self, pedestrian_id: int, row: int, col: int) -> None:
        if self.in_bounds(row, col):
            self.occupancy[row, col] = pedestrian_id

    def remove_pedestrian(self, row: int, col: int) -> None:
        if self.in_bounds(row, col):
            self.occupancy[row, col] = 0

    def rebuild_occupancy(self, pedestrians: Iterable) -> None:
        """Rewrite the occupancy layer in full from pedestrian positions."""
        self.occupancy.fill(0)
        for pedestrian in pedestrians:
            self.occupancy[pedestrian.position] = pedestrian.id

    def record_visits(self, locations: Iterable[Location]) -> None:
        for r, c in locations:
            self.heatmap[r, c] += 1

    def reset_occupancy(self) -> None:
        self.occupancy.fill(0)

    def reset_heatmap(self) -> None:
        self.heatmap.fill(0)

    def get_occupied_positions(self) -> Set[Location]:
        """Return set of all occupied cell positions."""
        rs, cs = np.where(self.occupancy != 0)
        return {(int(r), int(c)) for r, c in zip(rs, cs)}


@dataclass
class Layout:
    """Environment parsed from a map: grid, exit groups and static pedestrians."""
    grid: GridMap
    exits: List[List[Location]] = field(default_factory=list)
    pedestrians: List[Location] = field(default_factory=list)


def _group_exit_cells(cells: List[Location]) -> List[List[Location]]:
    """Split exit cells into orthogonally contiguous groups, in reading order."""
    remaining = set(cells)
    groups = []
    for start in sorted(cells):
        if start not in remaining:
            continue
        remaining.discard(start)
        group = []
        queue = deque([start])
        while queue:
            r, c = queue.popleft()
            group.append((r, c))
            for dr, dc in ORTHOGONAL_OFFSETS:
                cell = (r + dr, c + dc)
                if cell in remaining:
                    remaining.discard(cell)
                    queue.append(cell)
        groups.append(group)
    return groups


def load_layout(text: str) -> Layout:
    """
    Parse an ASCII environment map.

    '#' wall, '.' floor, '_' exit, 'P' pedestrian standing on floor.
    Exit cells are stored as walls in the grid; they only become walkable
    once registered with an ExitsSet.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError("Environment layout is empty")

    width = len(lines[0])
    for index, line in enumerate(lines):
        if len(line) != width:
            raise ValueError(
                f"Layout row {index} has width {len(line)}, expected {width}")

    grid = GridMap(len(lines), width)
    exit_cells = []
    pedestrians = []
    for r, line in enumerate(lines):
        for c, char in enumerate(line):
            if char == WALL_CHAR:
                grid.walls[r, c] = True
            elif char == EXIT_CHAR:
                grid.walls[r, c] = True
                exit_cells.append((r, c))
            elif char == PEDESTRIAN_CHAR:
                pedestrians.append((r, c))
            elif char != FLOOR_CHAR:
                raise ValueError(f"Unknown layout character {char!r} at ({r}, {c})")

    return Layout(grid=grid, exits=_group_exit_cells(exit_cells),
                  pedestrians=pedestrians)


def generate_room(rows: int, cols: int) -> Layout:
    """Auto-generate an open rectangular room with no walls."""
    return Layout(grid=GridMap(rows, cols))
