"""Conflict detection and resolution between pedestrians."""

import logging
import numpy as np
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..errors import ConflictSetOverflow
from .grid import Location
from .pedestrian import Pedestrian

logger = logging.getLogger(__name__)


@dataclass
class CellConflict:
    """A cell proposed by two or more pedestrians in the same timestep."""
    target: Location
    contenders: List[Pedestrian] = field(default_factory=list)
    winner: Optional[Pedestrian] = None


class ConflictWeighting:
    """Relative chance of each contender winning a conflict."""

    def weights(self, contenders: List[Pedestrian], floor_field: np.ndarray) -> np.ndarray:
        raise NotImplementedError


class UniformWeighting(ConflictWeighting):

    def weights(self, contenders, floor_field):
        return np.ones(len(contenders), dtype=np.float64)


class FloorFieldWeighting(ConflictWeighting):
    """
    Favour contenders standing closer to an exit.

    weight_i = exp(-strength * (S_i - S_min)), S_i being the floor field value
    at the contender's current cell.
    """

    def __init__(self, strength: float = 1.0):
        if strength < 0:
            raise ValueError(f"Conflict weighting strength must be >= 0, got {strength}")
        self.strength = strength

    def weights(self, contenders, floor_field):
        values = np.array([floor_field[p.position] for p in contenders], dtype=np.float64)
        return np.exp(-self.strength * (values - values.min()))


class ConflictResolver:
    """
    Grants each contested cell to exactly one pedestrian.

    A single synchronous round: losers stay where they are for this timestep
    and are not offered another target.
    """

    def __init__(self, weighting: Optional[ConflictWeighting] = None):
        self.weighting = weighting or UniformWeighting()

    def identify_conflicts(self, pedestrians: Iterable[Pedestrian]) -> List[CellConflict]:
        """Group moving pedestrians by target; keep targets with 2+ contenders."""
        try:
            by_target: Dict[Location, List[Pedestrian]] = defaultdict(list)
            for pedestrian in pedestrians:
                if pedestrian.wants_to_move:
                    by_target[pedestrian.transient.target].append(pedestrian)

            return [
                CellConflict(target=target,
                             contenders=sorted(competing, key=lambda p: p.id))
                for target, competing in sorted(by_target.items())
                if len(competing) >= 2
            ]
        except MemoryError as exc:
            raise ConflictSetOverflow("Out of memory while building the conflict set") from exc

    def resolve(self, conflicts: List[CellConflict], floor_field: np.ndarray,
                rng: np.random.Generator) -> None:
        for conflict in conflicts:
            contenders = conflict.contenders
            weights = self.weighting.weights(contenders, floor_field)
            probs = weights / weights.sum()

            # Weighted random choice
            winner = contenders[int(rng.choice(len(contenders), p=probs))]
            conflict.winner = winner
            for pedestrian in contenders:
                if pedestrian is not winner:
                    pedestrian.block()

            logger.debug("Conflict at %s: %d contenders, pedestrian %d wins",
                         conflict.target, len(contenders), winner.id)

    def solve(self, pedestrians: Iterable[Pedestrian], floor_field: np.ndarray,
              rng: np.random.Generator) -> List[CellConflict]:
        conflicts = self.identify_conflicts(pedestrians)
        self.resolve(conflicts, floor_field, rng)
        return conflicts
