"""Visualization and export for the evacuation CA simulation."""

import numpy as np
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend
import matplotlib.pyplot as plt
from matplotlib.colors import to_rgb
from pathlib import Path
from typing import List, Optional, Sequence, TYPE_CHECKING
from PIL import Image
import io

from ..model.grid import Location

if TYPE_CHECKING:
    from ..model.grid import GridMap
    from ..model.state import SetResult, SimulationState


class Visualizer:
    """
    Generates visual outputs using matplotlib.

    Supports:
    - Heatmap PNG per simulation set
    - Occupancy frames compiled into an animated GIF
    """

    # Color scheme
    COLORS = {
        'wall': '#2C3E50',      # Dark blue-gray
        'floor': '#ECF0F1',     # Light gray
        'exit': '#F39C12',      # Orange
        'calm': '#3498DB',      # Blue
        'panic': '#E74C3C',     # Red
    }

    def __init__(self, grid: "GridMap"):
        self.grid = grid
        self.frames: List[Image.Image] = []

    def _exit_mask(self, exits: Optional[Sequence[Sequence[Location]]]) -> np.ndarray:
        if exits is None:
            return self.grid.exits.copy()
        mask = np.zeros(self.grid.shape, dtype=bool)
        for cells in exits:
            for r, c in cells:
                mask[r, c] = True
        return mask

    def _base_image(self, exits=None) -> np.ndarray:
        """Floor, walls and exits as an RGB array."""
        base = np.ones((self.grid.rows, self.grid.cols, 3))
        base[:, :] = to_rgb(self.COLORS['floor'])
        base[self.grid.walls] = to_rgb(self.COLORS['wall'])
        base[self._exit_mask(exits)] = to_rgb(self.COLORS['exit'])
        return base

    def _figure_size(self):
        aspect = self.grid.cols / self.grid.rows
        fig_height = 6
        return (max(6, fig_height * aspect), fig_height)

    def _create_figure(self, state: "SimulationState", title: str = "") -> plt.Figure:
        """Create matplotlib figure for an occupancy frame."""
        fig, ax = plt.subplots(figsize=self._figure_size())
        ax.imshow(self._base_image(), origin='upper', aspect='equal')

        for pedestrian in state.pedestrians:
            color = self.COLORS['panic'] if pedestrian.in_panic else self.COLORS['calm']
            ax.plot(pedestrian.col, pedestrian.row, 'o', color=color,
                    markersize=5, markeredgecolor='white', markeredgewidth=0.3)

        ax.set_title(f'{title}Timestep {state.step} | '
                     f'Remaining: {len(state.pedestrians)}')
        ax.set_xlabel('Column')
        ax.set_ylabel('Row')
        plt.tight_layout()
        return fig

    def buffer_frame(self, state: "SimulationState", title: str = "") -> None:
        """Store frame for GIF generation."""
        fig = self._create_figure(state, title)

        # Convert to PIL Image
        buf = io.BytesIO()
        fig.savefig(buf, format='png', dpi=80)
        buf.seek(0)
        img = Image.open(buf).copy()
        self.frames.append(img)
        buf.close()
        plt.close(fig)

    def save_heatmap(self, result: "SetResult", output_path: Path) -> None:
        """Save the accumulated visit counts of a simulation set as PNG."""
        if result.heatmap is None:
            return
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        fig, ax = plt.subplots(figsize=self._figure_size())
        exit_mask = self._exit_mask(result.exits)
        masked = np.ma.masked_where(self.grid.walls & ~exit_mask, result.heatmap)
        title = f'Simulation set {result.index} | {len(result.runs)} runs'
        ax.imshow(self._base_image(result.exits), origin='upper', aspect='equal')
        image = ax.imshow(masked, origin='upper', aspect='equal', cmap='inferno')
        fig.colorbar(image, ax=ax, label='Visits')
        ax.set_title(title)
        ax.set_xlabel('Column')
        ax.set_ylabel('Row')
        plt.tight_layout()
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    def generate_gif(self, output_path: Path, fps: int = 10) -> None:
        """Compile buffered frames into animated GIF."""
        if not self.frames:
            return

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        duration = int(1000 / fps)  # milliseconds per frame

        self.frames[0].save(
            output_path,
            save_all=True,
            append_images=self.frames[1:],
            duration=duration,
            loop=0
        )

    def clear_frames(self) -> None:
        """Clear buffered frames."""
        self.frames.clear()
