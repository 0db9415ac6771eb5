"""Configuration dataclasses and YAML loader for the evacuation CA simulation."""

from dataclasses import dataclass, field
from typing import List, Tuple, Dict, Any, Optional
from pathlib import Path
import yaml

from .model.grid import Layout, Location, Neighborhood, generate_room, load_layout

ExitCells = List[Location]


@dataclass
class WallSpec:
    wall_type: str  # "rectangle" or "points"
    data: Dict[str, Any]


@dataclass
class EnvironmentConfig:
    layout: Optional[str] = None          # ASCII map
    rows: Optional[int] = None            # generated open room
    cols: Optional[int] = None
    walls: List[WallSpec] = field(default_factory=list)


@dataclass
class FloorFieldConfig:
    neighborhood: Neighborhood = Neighborhood.VON_NEUMANN
    diagonal_cost: float = 1.5
    width_attraction: float = 0.0


@dataclass
class MovementConfig:
    tie_break: str = "random"  # "random" or "first"
    allow_lateral_movement: bool = True
    allow_crossing_movement: bool = True


@dataclass
class PanicConfig:
    policy: str = "none"  # "none", "probabilistic" or "density"
    probability: Optional[float] = None  # None = policy default
    density_threshold: float = 0.5
    reset_each_timestep: bool = False


@dataclass
class ConflictConfig:
    weighting: str = "uniform"  # "uniform" or "floor_field"
    strength: float = 1.0


@dataclass
class SimulationConfig:
    environment: EnvironmentConfig
    num_simulations: int = 1
    seed: int = 0
    pedestrians: int = 0  # 0 = static placement from the layout
    simulation_sets: List[List[ExitCells]] = field(default_factory=list)
    floor_field: FloorFieldConfig = field(default_factory=FloorFieldConfig)
    movement: MovementConfig = field(default_factory=MovementConfig)
    panic: PanicConfig = field(default_factory=PanicConfig)
    conflict: ConflictConfig = field(default_factory=ConflictConfig)

    # Export flags (can be overridden by CLI)
    csv_enabled: bool = True
    heatmap_enabled: bool = False
    gif_enabled: bool = False
    frames_enabled: bool = False  # text grid after every timestep
    quiet: bool = False
    out_dir: Path = field(default_factory=lambda: Path("./output"))

    def __post_init__(self):
        if self.num_simulations < 1:
            raise ValueError(f"num_simulations must be >= 1, got {self.num_simulations}")
        if self.pedestrians < 0:
            raise ValueError(f"pedestrians must be >= 0, got {self.pedestrians}")
        if self.movement.tie_break not in ("random", "first"):
            raise ValueError(f"Unknown tie break: {self.movement.tie_break}")
        if self.panic.policy not in ("none", "probabilistic", "density"):
            raise ValueError(f"Unknown panic policy: {self.panic.policy}")
        if self.conflict.weighting not in ("uniform", "floor_field"):
            raise ValueError(f"Unknown conflict weighting: {self.conflict.weighting}")

    def build_layout(self) -> Layout:
        """Create the environment: parsed map or generated room, plus extra walls."""
        env = self.environment
        if env.layout:
            layout = load_layout(env.layout)
        elif env.rows and env.cols:
            layout = generate_room(env.rows, env.cols)
        else:
            raise ValueError("Environment needs either a layout or rows and cols")

        for wall_spec in env.walls:
            if wall_spec.wall_type == "rectangle":
                layout.grid.add_wall_rectangle(
                    wall_spec.data['row'], wall_spec.data['col'],
                    wall_spec.data['height'], wall_spec.data['width']
                )
            elif wall_spec.wall_type == "points":
                layout.grid.add_wall_points(wall_spec.data['coords'])
        return layout


def _parse_walls(walls_raw: List[Dict]) -> List[WallSpec]:
    """Parse wall specifications from raw YAML data."""
    walls = []
    for w in walls_raw:
        wall_type = w.get('type', 'rectangle')
        if wall_type == 'rectangle':
            data = {
                'row': w['row'],
                'col': w['col'],
                'width': w['width'],
                'height': w['height']
            }
        elif wall_type == 'points':
            data = {'coords': [tuple(c) for c in w['coords']]}
        else:
            raise ValueError(f"Unknown wall type: {wall_type}")
        walls.append(WallSpec(wall_type=wall_type, data=data))
    return walls


def _parse_simulation_sets(sets_raw: List) -> List[List[ExitCells]]:
    """Each set is a list of exits, each exit a list of [row, col] cells."""
    sets = []
    for set_raw in sets_raw:
        exits_raw = set_raw['exits'] if isinstance(set_raw, dict) else set_raw
        sets.append([[(int(r), int(c)) for r, c in exit_raw] for exit_raw in exits_raw])
    return sets


def config_from_dict(raw: Dict[str, Any]) -> SimulationConfig:
    """Build a SimulationConfig from already parsed YAML data."""
    env_raw = raw.get('environment', {})
    generate_raw = env_raw.get('generate', {})
    environment = EnvironmentConfig(
        layout=env_raw.get('layout'),
        rows=generate_raw.get('rows'),
        cols=generate_raw.get('cols'),
        walls=_parse_walls(env_raw.get('walls', []))
    )

    ff_raw = raw.get('floor_field', {})
    floor_field = FloorFieldConfig(
        neighborhood=Neighborhood(ff_raw.get('neighborhood', 'von_neumann')),
        diagonal_cost=ff_raw.get('diagonal_cost', 1.5),
        width_attraction=ff_raw.get('width_attraction', 0.0)
    )

    mv_raw = raw.get('movement', {})
    movement = MovementConfig(
        tie_break=mv_raw.get('tie_break', 'random'),
        allow_lateral_movement=mv_raw.get('allow_lateral_movement', True),
        allow_crossing_movement=mv_raw.get('allow_crossing_movement', True)
    )

    panic_raw = raw.get('panic', {})
    panic = PanicConfig(
        policy=panic_raw.get('policy', 'none'),
        probability=panic_raw.get('probability'),
        density_threshold=panic_raw.get('density_threshold', 0.5),
        reset_each_timestep=panic_raw.get('reset_each_timestep', False)
    )

    conflict_raw = raw.get('conflict', {})
    conflict = ConflictConfig(
        weighting=conflict_raw.get('weighting', 'uniform'),
        strength=conflict_raw.get('strength', 1.0)
    )

    sim_raw = raw.get('simulation', {})

    # Parse export config (optional)
    export_raw = raw.get('export', {})

    return SimulationConfig(
        environment=environment,
        num_simulations=sim_raw.get('num_simulations', 1),
        seed=sim_raw.get('seed', 0),
        pedestrians=sim_raw.get('pedestrians', 0),
        simulation_sets=_parse_simulation_sets(sim_raw.get('simulation_sets', [])),
        floor_field=floor_field,
        movement=movement,
        panic=panic,
        conflict=conflict,
        csv_enabled=export_raw.get('csv', True),
        heatmap_enabled=export_raw.get('heatmap', False),
        gif_enabled=export_raw.get('gif', False),
        frames_enabled=export_raw.get('frames', False)
    )


def load_config(config_path: Path) -> SimulationConfig:
    """Load and validate YAML configuration file."""
    with open(config_path) as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} is not a mapping")
    return config_from_dict(raw)
