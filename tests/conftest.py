"""Shared fixtures for the evacuation CA tests."""

import numpy as np
import pytest

from evacuation_ca.errors import FunctionStatus
from evacuation_ca.model.conflict import ConflictResolver
from evacuation_ca.model.engine import SimulationEngine
from evacuation_ca.model.exits import ExitsSet
from evacuation_ca.model.floor_field import FloorFieldEngine
from evacuation_ca.model.grid import Neighborhood, load_layout
from evacuation_ca.model.movement import MovementEvaluator
from evacuation_ca.model.pedestrian import PedestrianRegistry

OPEN_ROOM = """
_....
.....
.....
.....
....P
"""

# Two pedestrians share a single free cell in front of the exit
SHARED_CELL = """
#_###
P.P##
#####
"""

# Right half cannot reach the exit on the left
SPLIT_ROOM = """
_..#...
...#...
..P#.P.
"""


@pytest.fixture
def open_room_text():
    return OPEN_ROOM


@pytest.fixture
def shared_cell_text():
    return SHARED_CELL


@pytest.fixture
def split_room_text():
    return SPLIT_ROOM


@pytest.fixture
def open_room():
    return load_layout(OPEN_ROOM)


@pytest.fixture
def make_exits():
    """Build an ExitsSet for a layout, registering the given (or layout) exits."""
    def _make(layout, exits=None, neighborhood=Neighborhood.VON_NEUMANN,
              width_attraction=0.0):
        engine = FloorFieldEngine(neighborhood, width_attraction=width_attraction)
        exits_set = ExitsSet(layout.grid, engine)
        for cells in (exits if exits is not None else layout.exits):
            exits_set.add_exit(cells)
        return exits_set
    return _make


@pytest.fixture
def make_engine(make_exits):
    """Build a ready-to-step SimulationEngine from a layout string."""
    def _make(layout_text, seed=0, exits=None, random_pedestrians=0,
              neighborhood=Neighborhood.VON_NEUMANN, tie_break=None,
              panic_policy=None, weighting=None, options=None):
        layout = load_layout(layout_text)
        exits_set = make_exits(layout, exits, neighborhood)
        assert exits_set.calculate_final_floor_field() is FunctionStatus.SUCCESS

        rng = np.random.default_rng(seed)
        registry = PedestrianRegistry(layout.grid)
        for location in layout.pedestrians:
            registry.insert(location)
        if random_pedestrians:
            registry.insert_at_random(random_pedestrians, rng)

        evaluator = MovementEvaluator(layout.grid, neighborhood, tie_break=tie_break)
        resolver = ConflictResolver(weighting)
        return SimulationEngine(layout.grid, registry, exits_set.final_floor_field,
                                evaluator, resolver, rng, panic_policy, options)
    return _make
