"""Timestep engine for the evacuation CA."""

import logging
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .conflict import CellConflict, ConflictResolver
from .grid import GridMap, Location
from .movement import MovementEvaluator, NoPanic, PanicPolicy
from .pedestrian import Pedestrian, PedestrianRegistry
from .state import PedestrianSnapshot, SimulationState

logger = logging.getLogger(__name__)


@dataclass
class EngineOptions:
    allow_lateral_movement: bool = True
    allow_crossing_movement: bool = True
    reset_panic_each_timestep: bool = False


class SimulationEngine:
    """
    Runs one simulation run, one synchronous timestep at a time.

    Every timestep goes through the same phases in the same order:
    1. Evaluate movements (proposals from the final floor field)
    2. Determine panic
    3. Block lateral / crossing movement (optional)
    4. Conflict solving
    5. Apply movement, removing pedestrians that reached an exit
    6. Update occupancy and heatmap grids
    7. Reset per-timestep state
    """

    def __init__(self, grid: GridMap, registry: PedestrianRegistry,
                 floor_field: np.ndarray, evaluator: MovementEvaluator,
                 resolver: ConflictResolver, rng: np.random.Generator,
                 panic_policy: Optional[PanicPolicy] = None,
                 options: Optional[EngineOptions] = None):
        if floor_field.shape != grid.shape:
            raise ValueError(
                f"Floor field shape {floor_field.shape} does not match grid {grid.shape}")
        self.grid = grid
        self.registry = registry
        self.floor_field = floor_field
        self.evaluator = evaluator
        self.resolver = resolver
        self.rng = rng
        self.panic_policy = panic_policy or NoPanic()
        self.options = options or EngineOptions()

        self.current_step = 0
        self.evacuated_count = 0

    def step(self) -> SimulationState:
        """Execute one discrete timestep and return its snapshot."""
        self.current_step += 1

        # Phase 1: Proposals, all read from the same occupancy
        self.evaluator.evaluate_movements(self.registry, self.floor_field, self.rng)

        # Phase 2: Panic
        self.evaluator.determine_panic(self.registry, self.panic_policy,
                                       self.floor_field, self.rng)

        # Phase 3: Movement restrictions
        if not self.options.allow_lateral_movement:
            self.evaluator.block_lateral_movement(self.registry, self.floor_field, self.rng)
        if not self.options.allow_crossing_movement:
            self.evaluator.block_crossing_movement(self.registry, self.rng)

        # Phase 4: Conflicts
        conflicts = self.resolver.solve(self.registry, self.floor_field, self.rng)

        # Phase 5: Apply
        moves, exited = self._apply_movement()

        # Phase 6: Grids
        self.grid.rebuild_occupancy(self.registry)

        state = self._create_state_snapshot(moves, conflicts, exited)

        # Phase 7: Reset
        self.registry.reset_transient_state()
        if self.options.reset_panic_each_timestep:
            self.registry.reset_panic()

        logger.debug("Timestep %d: %d moves, %d conflicts, %d evacuated, %d remaining",
                     self.current_step, len(moves), len(conflicts), len(exited),
                     len(self.registry))
        return state

    def _apply_movement(self) -> Tuple[List[Tuple[int, Location, Location]],
                                       List[Pedestrian]]:
        moves = []
        exited = []
        visited = []
        for pedestrian in self.registry:
            old_pos = pedestrian.position
            new_pos = pedestrian.transient.target or old_pos
            if new_pos != old_pos:
                pedestrian.position = new_pos
                pedestrian.steps_taken += 1
                moves.append((pedestrian.id, old_pos, new_pos))
            visited.append(new_pos)

            if self.grid.is_exit(*new_pos):
                exited.append(pedestrian)

        for pedestrian in exited:
            self.registry.remove(pedestrian)
        self.evacuated_count += len(exited)
        self.grid.record_visits(visited)
        return moves, exited

    def _create_state_snapshot(self, moves, conflicts: List[CellConflict],
                               exited: List[Pedestrian]) -> SimulationState:
        """Create immutable snapshot of current simulation state."""
        pedestrian_snapshots = [
            PedestrianSnapshot(
                pedestrian_id=p.id,
                row=p.position[0],
                col=p.position[1],
                state=p.transient.movement.value,
                in_panic=p.in_panic
            )
            for p in self.registry
        ]

        remaining = len(self.registry)
        walkable_cells = int(np.count_nonzero(self.grid.walkable_mask()))

        metrics = {
            'density': remaining / walkable_cells if walkable_cells > 0 else 0,
            'evacuated': self.evacuated_count,
            'evacuated_this_step': len(exited),
            'remaining': remaining,
            'in_panic': sum(1 for p in self.registry if p.in_panic),
            'throughput': self.evacuated_count / max(1, self.current_step),
        }

        return SimulationState(
            step=self.current_step,
            pedestrians=pedestrian_snapshots,
            grid_occupancy=self.grid.occupancy.copy(),
            moves=moves,
            conflicts=len(conflicts),
            metrics=metrics
        )

    def snapshot(self) -> SimulationState:
        """Snapshot of the current state without advancing (timestep 0 frame)."""
        return self._create_state_snapshot([], [], [])

    def is_finished(self) -> bool:
        """A run ends only when every pedestrian has left the environment."""
        return self.registry.is_environment_empty()
