"""
Tests for movement proposals, panic policies and movement restrictions.
"""

import numpy as np
import pytest

from evacuation_ca.model.grid import GridMap, Neighborhood
from evacuation_ca.model.movement import (DensityPanic, FirstTieBreak, MovementEvaluator,
                                          NoPanic, ProbabilisticPanic, RandomTieBreak)
from evacuation_ca.model.pedestrian import MovementState, PedestrianRegistry


@pytest.fixture
def room():
    grid = GridMap(3, 3)
    return grid, PedestrianRegistry(grid)


def manhattan_field(rows, cols):
    r, c = np.indices((rows, cols))
    return (r + c).astype(np.float64)


def test_rational_proposal_picks_lowest_field(room):
    grid, registry = room
    pedestrian = registry.insert((1, 2))
    field = manhattan_field(3, 3)
    field[0, 2] = 10.0

    evaluator = MovementEvaluator(grid, tie_break=FirstTieBreak())
    evaluator.evaluate_movements(registry, field, np.random.default_rng(0))
    assert pedestrian.transient.target == (1, 1)
    assert pedestrian.transient.movement is MovementState.MOVING


def test_occupied_cells_are_not_candidates(room):
    grid, registry = room
    mover = registry.insert((1, 1))
    registry.insert((0, 1))
    registry.insert((1, 0))

    evaluator = MovementEvaluator(grid)
    assert evaluator.candidates(mover) == [(1, 2), (2, 1), (1, 1)]

    evaluator.evaluate_movements(registry, manhattan_field(3, 3), np.random.default_rng(0))
    assert mover.transient.target == (1, 1)
    assert mover.transient.movement is MovementState.STOPPED


def test_random_tie_break_is_reproducible():
    field = manhattan_field(3, 3)
    choices = []
    for _ in range(2):
        registry = PedestrianRegistry(GridMap(3, 3))
        pedestrian = registry.insert((2, 2))
        evaluator = MovementEvaluator(registry.grid, tie_break=RandomTieBreak())
        rng = np.random.default_rng(11)
        trajectory = []
        for _ in range(5):
            evaluator.propose(pedestrian, field, rng)
            trajectory.append(pedestrian.transient.target)
        choices.append(trajectory)
    assert choices[0] == choices[1]
    assert set(choices[0]) <= {(1, 2), (2, 1)}


def test_first_tie_break_uses_canonical_order(room):
    grid, registry = room
    pedestrian = registry.insert((2, 2))
    evaluator = MovementEvaluator(grid, tie_break=FirstTieBreak())
    evaluator.propose(pedestrian, manhattan_field(3, 3), np.random.default_rng(0))
    # Up comes before left in the neighbour order
    assert pedestrian.transient.target == (1, 2)


def test_panicked_pedestrian_moves_at_random():
    grid = GridMap(5, 5)
    registry = PedestrianRegistry(grid)
    pedestrian = registry.insert((2, 2))
    pedestrian.persistent.in_panic = True
    evaluator = MovementEvaluator(grid, tie_break=FirstTieBreak())

    rng = np.random.default_rng(5)
    targets = set()
    for _ in range(200):
        targets.add(evaluator.propose(pedestrian, manhattan_field(5, 5), rng))
    assert targets == {(1, 2), (2, 1), (2, 3), (3, 2), (2, 2)}


def test_determine_panic_redraws_proposal_and_persists(room):
    grid, registry = room
    pedestrian = registry.insert((2, 2))
    evaluator = MovementEvaluator(grid)
    field = manhattan_field(3, 3)
    rng = np.random.default_rng(0)

    evaluator.evaluate_movements(registry, field, rng)
    assert evaluator.determine_panic(registry, ProbabilisticPanic(1.0), field, rng) == 1
    assert pedestrian.in_panic
    assert pedestrian.transient.target in evaluator.candidates(pedestrian)

    registry.reset_transient_state()
    assert pedestrian.in_panic
    # Already panicking pedestrians are not counted again
    assert evaluator.determine_panic(registry, ProbabilisticPanic(1.0), field, rng) == 0


def test_no_panic_policy(room):
    grid, registry = room
    registry.insert((2, 2))
    evaluator = MovementEvaluator(grid)
    count = evaluator.determine_panic(registry, NoPanic(), manhattan_field(3, 3),
                                      np.random.default_rng(0))
    assert count == 0
    assert not any(p.in_panic for p in registry)


def test_probabilistic_panic_validates_probability():
    with pytest.raises(ValueError):
        ProbabilisticPanic(1.5)


def test_density_panic_only_in_crowds():
    grid = GridMap(5, 5)
    registry = PedestrianRegistry(grid)
    crowded = registry.insert((1, 1))
    for cell in [(0, 0), (0, 1), (0, 2), (1, 0), (1, 2), (2, 0), (2, 1), (2, 2)]:
        registry.insert(cell)
    alone = registry.insert((4, 4))

    policy = DensityPanic(threshold=0.9, probability=1.0)
    policy.prepare(grid)
    rng = np.random.default_rng(0)
    assert policy.density[1, 1] == pytest.approx(1.0)
    assert policy.should_panic(crowded, rng)
    assert not policy.should_panic(alone, rng)


def lateral_setup():
    """Pedestrian at (1, 1) on a flat field; the only better cell is occupied."""
    grid = GridMap(3, 3)
    registry = PedestrianRegistry(grid)
    walker = registry.insert((1, 1))
    registry.insert((0, 1))
    field = np.ones((3, 3))
    field[0, 1] = 0.0
    return grid, registry, walker, field


def test_lateral_move_allowed_by_default():
    grid, registry, walker, field = lateral_setup()
    evaluator = MovementEvaluator(grid, tie_break=FirstTieBreak())
    evaluator.evaluate_movements(registry, field, np.random.default_rng(0))
    assert walker.transient.target == (1, 0)
    assert evaluator.is_lateral(walker, field)


def test_block_lateral_movement():
    grid, registry, walker, field = lateral_setup()
    evaluator = MovementEvaluator(grid, tie_break=FirstTieBreak())
    rng = np.random.default_rng(0)
    evaluator.evaluate_movements(registry, field, rng)

    assert evaluator.block_lateral_movement(registry, field, rng) == 1
    assert walker.transient.target == (1, 1)
    assert walker.transient.movement is MovementState.BLOCKED


def test_block_lateral_keeps_forward_moves():
    grid = GridMap(3, 3)
    registry = PedestrianRegistry(grid)
    walker = registry.insert((2, 2))
    field = manhattan_field(3, 3)
    evaluator = MovementEvaluator(grid)
    rng = np.random.default_rng(0)
    evaluator.evaluate_movements(registry, field, rng)
    target = walker.transient.target

    assert evaluator.block_lateral_movement(registry, field, rng) == 0
    assert walker.transient.target == target


def test_block_crossing_movement():
    grid = GridMap(2, 2)
    registry = PedestrianRegistry(grid)
    a = registry.insert((0, 0))
    b = registry.insert((0, 1))
    a.propose((1, 1))
    b.propose((1, 0))

    evaluator = MovementEvaluator(grid, Neighborhood.MOORE)
    assert evaluator.block_crossing_movement(registry, np.random.default_rng(4)) == 1
    outcomes = sorted([a.transient.movement.value, b.transient.movement.value])
    assert outcomes == ['blocked', 'moving']


def test_parallel_diagonals_do_not_cross():
    grid = GridMap(2, 3)
    registry = PedestrianRegistry(grid)
    a = registry.insert((0, 0))
    b = registry.insert((0, 1))
    a.propose((1, 1))
    b.propose((1, 2))

    evaluator = MovementEvaluator(grid, Neighborhood.MOORE)
    assert evaluator.block_crossing_movement(registry, np.random.default_rng(0)) == 0
    assert a.wants_to_move and b.wants_to_move
