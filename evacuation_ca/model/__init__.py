"""Model package for the evacuation CA simulation."""

from .state import PedestrianSnapshot, SimulationState, RunResult, SetResult
from .grid import GridMap, Layout, Neighborhood, load_layout, generate_room
from .floor_field import FloorFieldEngine
from .exits import Exit, ExitsSet
from .pedestrian import Pedestrian, PedestrianRegistry, MovementState
from .movement import (MovementEvaluator, RandomTieBreak, FirstTieBreak,
                       NoPanic, ProbabilisticPanic, DensityPanic)
from .conflict import CellConflict, ConflictResolver, UniformWeighting, FloorFieldWeighting
from .engine import EngineOptions, SimulationEngine
from .runner import SimulationRunner

__all__ = [
    'PedestrianSnapshot',
    'SimulationState',
    'RunResult',
    'SetResult',
    'GridMap',
    'Layout',
    'Neighborhood',
    'load_layout',
    'generate_room',
    'FloorFieldEngine',
    'Exit',
    'ExitsSet',
    'Pedestrian',
    'PedestrianRegistry',
    'MovementState',
    'MovementEvaluator',
    'RandomTieBreak',
    'FirstTieBreak',
    'NoPanic',
    'ProbabilisticPanic',
    'DensityPanic',
    'CellConflict',
    'ConflictResolver',
    'UniformWeighting',
    'FloorFieldWeighting',
    'EngineOptions',
    'SimulationEngine',
    'SimulationRunner',
]
