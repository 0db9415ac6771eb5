"""Summary report and text grids for the evacuation CA simulation."""

import numpy as np
from typing import List, Optional, Sequence, TYPE_CHECKING
from pathlib import Path

from ..model.grid import EXIT_CHAR, FLOOR_CHAR, PEDESTRIAN_CHAR, WALL_CHAR

if TYPE_CHECKING:
    from ..model.grid import GridMap, Location
    from ..model.state import SetResult


def format_occupancy(grid: "GridMap",
                     exits: Optional[Sequence[Sequence["Location"]]] = None) -> str:
    """Text frame of the environment with pedestrians, one row per line."""
    exit_cells = {tuple(cell) for cells in (exits or []) for cell in cells}
    lines = []
    for r in range(grid.rows):
        row = []
        for c in range(grid.cols):
            if grid.occupancy[r, c]:
                row.append(PEDESTRIAN_CHAR)
            elif grid.exits[r, c] or (r, c) in exit_cells:
                row.append(EXIT_CHAR)
            elif grid.walls[r, c]:
                row.append(WALL_CHAR)
            else:
                row.append(FLOOR_CHAR)
        lines.append("".join(row))
    return "\n".join(lines)


def format_heatmap(heatmap: np.ndarray) -> str:
    """Visit counts as right-aligned columns."""
    width = max(1, len(str(int(heatmap.max())))) if heatmap.size else 1
    return "\n".join(" ".join(f"{int(v):>{width}d}" for v in row) for row in heatmap)


class Reporter:
    """Generates summary statistics and formatted text report."""

    def __init__(self, config_path: str, seed: int):
        self.config_path = config_path
        self.seed = seed
        self.results: List["SetResult"] = []

    def update(self, result: "SetResult") -> None:
        """Accumulate the result of one simulation set."""
        self.results.append(result)

    def execution_status(self, total_sets: int) -> str:
        done = len(self.results)
        return f"Simulation set {done}/{total_sets} done"

    def generate_summary(self, output_dir: Optional[Path],
                         csv_enabled: bool,
                         heatmap_enabled: bool,
                         gif_enabled: bool) -> str:
        """Returns formatted text report."""
        simulated = [r for r in self.results if r.simulated]
        skipped = [r for r in self.results if not r.simulated]
        counts = [t for r in simulated for t in r.timestep_counts()]
        failed_runs = sum(1 for r in simulated for run in r.runs if run.failed)

        # Build report
        lines = [
            "",
            "=" * 80,
            "                 EVACUATION FLOOR FIELD CA SIMULATION REPORT",
            "=" * 80,
            f"Configuration: {self.config_path}",
            f"First Seed: {self.seed}",
            "",
            "SIMULATION SETS",
            "-" * 40,
            f"Sets Simulated:        {len(simulated)}",
            f"Sets Skipped:          {len(skipped)}",
            f"Runs Completed:        {len(counts)}",
            f"Runs Aborted:          {failed_runs}",
        ]

        if counts:
            lines += [
                f"Mean Timesteps:        {np.mean(counts):.2f}",
                f"Min / Max Timesteps:   {min(counts)} / {max(counts)}",
            ]

        if skipped:
            lines += ["", "SKIPPED SETS", "-" * 40]
            for result in skipped:
                reason = (result.error if result.status is None
                          else "at least one exit is inaccessible")
                lines.append(f"Set {result.index}: {reason}")

        lines += ["", "PER SET", "-" * 40]
        for result in simulated:
            set_counts = result.timestep_counts()
            summary = " ".join(str(t) for t in set_counts) or "-"
            lines.append(f"Set {result.index} ({len(result.exits)} exits): {summary}")

        if output_dir is not None:
            lines += ["", "OUTPUT FILES", "-" * 40]

            # Output file paths
            if csv_enabled:
                lines.append(f"CSV Log:    {output_dir / 'timesteps.csv'}")
            else:
                lines.append("CSV Log:    (disabled)")

            if heatmap_enabled:
                lines.append(f"Heatmaps:   {output_dir / 'heatmap_set_<n>.png'}")
            else:
                lines.append("Heatmaps:   (disabled)")

            if gif_enabled:
                lines.append(f"Animation:  {output_dir / 'simulation.gif'}")
            else:
                lines.append("Animation:  (disabled)")

        lines.append("=" * 80)

        return "\n".join(lines)
