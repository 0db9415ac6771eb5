"""Simulation set and run orchestration."""

import logging
import numpy as np
from typing import Callable, List, Optional, Sequence, TYPE_CHECKING

from ..errors import (AllocationFailure, ConflictSetOverflow, FunctionStatus,
                      InvalidExitGeometry)
from .conflict import ConflictResolver, ConflictWeighting, FloorFieldWeighting, UniformWeighting
from .engine import EngineOptions, SimulationEngine
from .exits import ExitsSet
from .floor_field import FloorFieldEngine
from .grid import Layout, Location
from .movement import (DensityPanic, FirstTieBreak, MovementEvaluator, NoPanic,
                       PanicPolicy, ProbabilisticPanic, RandomTieBreak, TieBreak)
from .pedestrian import PedestrianRegistry
from .state import RunResult, SetResult, SimulationState

if TYPE_CHECKING:
    from ..config import SimulationConfig

logger = logging.getLogger(__name__)

StepCallback = Callable[[int, int, SimulationState], None]


class SimulationRunner:
    """
    Drives every simulation set and every run of the configuration.

    The grid, the exits and the pedestrian registry are owned here for the
    whole invocation; exits are released after each simulation set and the
    heatmap is reset when a new set starts.
    """

    def __init__(self, config: "SimulationConfig", layout: Layout,
                 on_step: Optional[StepCallback] = None):
        self.config = config
        self.layout = layout
        self.grid = layout.grid
        self.on_step = on_step
        self.seed = config.seed

        ff = config.floor_field
        self.field_engine = FloorFieldEngine(ff.neighborhood, ff.diagonal_cost,
                                             ff.width_attraction)
        self.exits_set = ExitsSet(self.grid, self.field_engine)
        self.registry = PedestrianRegistry(self.grid)
        self.evaluator = MovementEvaluator(self.grid, ff.neighborhood, ff.diagonal_cost,
                                           self._build_tie_break())
        self.resolver = ConflictResolver(self._build_conflict_weighting())
        self.panic_policy = self._build_panic_policy()
        self.options = EngineOptions(
            allow_lateral_movement=config.movement.allow_lateral_movement,
            allow_crossing_movement=config.movement.allow_crossing_movement,
            reset_panic_each_timestep=config.panic.reset_each_timestep
        )

        self.static_pedestrians = config.pedestrians == 0
        if self.static_pedestrians:
            if not layout.pedestrians:
                raise ValueError(
                    "No pedestrians: set simulation.pedestrians or place 'P' in the layout")
            for location in layout.pedestrians:
                self.registry.insert(location)

    def _build_tie_break(self) -> TieBreak:
        if self.config.movement.tie_break == "first":
            return FirstTieBreak()
        return RandomTieBreak()

    def _build_conflict_weighting(self) -> ConflictWeighting:
        if self.config.conflict.weighting == "floor_field":
            return FloorFieldWeighting(self.config.conflict.strength)
        return UniformWeighting()

    def _build_panic_policy(self) -> PanicPolicy:
        panic = self.config.panic
        if panic.policy == "probabilistic" and panic.probability:
            return ProbabilisticPanic(panic.probability)
        if panic.policy == "density":
            # Without a probability, reaching the threshold always panics
            probability = 1.0 if panic.probability is None else panic.probability
            return DensityPanic(panic.density_threshold, probability)
        return NoPanic()

    def simulation_sets(self) -> List[List[List[Location]]]:
        """Explicit sets from the configuration, or the layout's static exits."""
        if self.config.simulation_sets:
            return self.config.simulation_sets
        if not self.layout.exits:
            logger.warning("The layout has no exits and no simulation sets are configured")
        return [self.layout.exits]

    def run(self) -> List[SetResult]:
        return [self.run_set(index, exits)
                for index, exits in enumerate(self.simulation_sets())]

    def run_set(self, index: int, exits: Sequence[Sequence[Location]]) -> SetResult:
        """Register the set's exits, build the floor field and run every simulation."""
        exits = [[(int(r), int(c)) for r, c in cells] for cells in exits]
        self.exits_set.deallocate_exits()
        self.grid.reset_heatmap()

        try:
            for cells in exits:
                self.exits_set.add_exit(cells)
            if self.static_pedestrians:
                for location in self.layout.pedestrians:
                    if self.grid.is_exit(*location):
                        raise InvalidExitGeometry(
                            f"Exit cell {location} is where a pedestrian starts")
        except InvalidExitGeometry as exc:
            logger.error("Simulation set %d rejected: %s", index, exc)
            self.exits_set.deallocate_exits()
            return SetResult(index=index, exits=exits, status=None, error=str(exc))

        status = self.exits_set.calculate_final_floor_field()
        if status is FunctionStatus.FAILURE:
            self.exits_set.deallocate_exits()
            raise AllocationFailure(f"Could not build the floor field of set {index}")
        if status is FunctionStatus.INACCESSIBLE_EXIT:
            logger.warning("Simulation set %d skipped: at least one exit is inaccessible",
                           index)
            self.exits_set.deallocate_exits()
            return SetResult(index=index, exits=exits, status=status)

        runs = [self.run_simulation(index, run_index)
                for run_index in range(self.config.num_simulations)]
        heatmap = self.grid.heatmap.copy()
        self.exits_set.deallocate_exits()
        return SetResult(index=index, exits=exits, status=status, runs=runs,
                         heatmap=heatmap)

    def _place_pedestrians(self, rng: np.random.Generator) -> None:
        if self.static_pedestrians:
            self.registry.reset_to_initial()
        else:
            self.registry.clear()
            self.grid.reset_occupancy()
            self.registry.insert_at_random(self.config.pedestrians, rng)

    def run_simulation(self, set_index: int, run_index: int) -> RunResult:
        """Run until the environment is empty. The seed advances after every run."""
        if self.exits_set.final_floor_field is None:
            raise ValueError("Floor field must be calculated before running a simulation")

        seed = self.seed
        self.seed += 1
        rng = np.random.default_rng(seed)
        self._place_pedestrians(rng)

        engine = SimulationEngine(self.grid, self.registry,
                                  self.exits_set.final_floor_field,
                                  self.evaluator, self.resolver, rng,
                                  self.panic_policy, self.options)
        if self.on_step:
            self.on_step(set_index, run_index, engine.snapshot())

        try:
            while not engine.is_finished():
                state = engine.step()
                if self.on_step:
                    self.on_step(set_index, run_index, state)
        except ConflictSetOverflow as exc:
            logger.error("Run %d of set %d aborted at timestep %d: %s",
                         run_index, set_index, engine.current_step, exc)
            result = RunResult(seed=seed, timesteps=None, failed=True)
        else:
            logger.info("Run %d of set %d finished in %d timesteps (seed %d)",
                        run_index, set_index, engine.current_step, seed)
            result = RunResult(seed=seed, timesteps=engine.current_step)
        finally:
            if not self.static_pedestrians:
                self.registry.clear()
            self.grid.reset_occupancy()
        return result
