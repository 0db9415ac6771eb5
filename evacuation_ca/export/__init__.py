"""I/O package for the evacuation CA simulation."""

from .csv_writer import CSVWriter
from .visualizer import Visualizer
from .reporter import Reporter, format_heatmap, format_occupancy

__all__ = ['CSVWriter', 'Visualizer', 'Reporter', 'format_heatmap', 'format_occupancy']
