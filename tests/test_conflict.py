"""
Tests for conflict identification and resolution.
"""

import numpy as np
import pytest

from evacuation_ca.errors import ConflictSetOverflow
from evacuation_ca.model.conflict import (ConflictResolver, FloorFieldWeighting,
                                          UniformWeighting)
from evacuation_ca.model.grid import GridMap
from evacuation_ca.model.pedestrian import MovementState, PedestrianRegistry


@pytest.fixture
def crowd():
    """Four pedestrians around the centre of a 3x3 room, all proposing it."""
    grid = GridMap(3, 3)
    registry = PedestrianRegistry(grid)
    for cell in [(0, 1), (1, 0), (1, 2), (2, 1)]:
        registry.insert(cell).propose((1, 1))
    return registry


def test_identify_conflicts(crowd):
    resolver = ConflictResolver()
    conflicts = resolver.identify_conflicts(crowd)
    assert len(conflicts) == 1
    assert conflicts[0].target == (1, 1)
    assert [p.id for p in conflicts[0].contenders] == [1, 2, 3, 4]
    assert conflicts[0].winner is None


def test_single_proposer_is_not_a_conflict():
    grid = GridMap(3, 3)
    registry = PedestrianRegistry(grid)
    registry.insert((0, 0)).propose((0, 1))
    registry.insert((2, 2)).propose((2, 1))
    registry.insert((1, 1)).propose((1, 1))
    assert ConflictResolver().identify_conflicts(registry) == []


def test_conflicts_sorted_by_target():
    grid = GridMap(3, 4)
    registry = PedestrianRegistry(grid)
    registry.insert((2, 2)).propose((2, 3))
    registry.insert((1, 3)).propose((2, 3))
    registry.insert((0, 0)).propose((0, 1))
    registry.insert((1, 1)).propose((0, 1))
    targets = [c.target for c in ConflictResolver().identify_conflicts(registry)]
    assert targets == [(0, 1), (2, 3)]


def test_exactly_one_winner(crowd):
    resolver = ConflictResolver(UniformWeighting())
    field = np.zeros((3, 3))
    for seed in range(20):
        for pedestrian in crowd:
            pedestrian.propose((1, 1))
        conflicts = resolver.solve(crowd, field, np.random.default_rng(seed))

        winners = [p for p in crowd if p.transient.movement is MovementState.MOVING]
        losers = [p for p in crowd if p.transient.movement is MovementState.BLOCKED]
        assert len(winners) == 1
        assert winners == [conflicts[0].winner]
        assert winners[0].transient.target == (1, 1)
        assert len(losers) == 3
        assert all(p.transient.target == p.position for p in losers)


def test_resolution_is_reproducible(crowd):
    resolver = ConflictResolver()
    field = np.zeros((3, 3))
    winners = []
    for _ in range(2):
        for pedestrian in crowd:
            pedestrian.propose((1, 1))
        conflicts = resolver.solve(crowd, field, np.random.default_rng(99))
        winners.append(conflicts[0].winner.id)
    assert winners[0] == winners[1]


def test_floor_field_weighting_favours_closer_contender(crowd):
    field = np.full((3, 3), 60.0)
    field[2, 1] = 0.0
    resolver = ConflictResolver(FloorFieldWeighting(strength=1.0))
    for seed in range(10):
        for pedestrian in crowd:
            pedestrian.propose((1, 1))
        conflicts = resolver.solve(crowd, field, np.random.default_rng(seed))
        assert conflicts[0].winner.position == (2, 1)


def test_floor_field_weights():
    grid = GridMap(1, 3)
    registry = PedestrianRegistry(grid)
    contenders = [registry.insert((0, 0)), registry.insert((0, 2))]
    field = np.array([[2.0, 0.0, 3.0]])
    weights = FloorFieldWeighting(strength=0.5).weights(contenders, field)
    assert weights[0] == pytest.approx(1.0)
    assert weights[1] == pytest.approx(np.exp(-0.5))

    with pytest.raises(ValueError):
        FloorFieldWeighting(strength=-1.0)


def test_memory_error_reported_as_overflow():
    class Exhausted:
        def __iter__(self):
            raise MemoryError

    with pytest.raises(ConflictSetOverflow):
        ConflictResolver().identify_conflicts(Exhausted())
