#!/usr/bin/env python3
"""
Evacuation Floor Field Cellular Automaton

A pedestrian evacuation simulator: pedestrians follow a distance-to-exit
floor field, move synchronously and compete for contested cells.

Usage:
    evacuation-ca --config configs/room.yaml [options]

Examples:
    evacuation-ca --config configs/room.yaml
    evacuation-ca --config configs/two_exits.yaml --simulations 20 --heatmap
    evacuation-ca --config configs/room.yaml --gif --out-dir results/
    evacuation-ca --config configs/room.yaml --seed 42 --quiet
    evacuation-ca --config configs/room.yaml --frames
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import load_config
from .errors import AllocationFailure
from .model.runner import SimulationRunner
from .export.csv_writer import CSVWriter
from .export.visualizer import Visualizer
from .export.reporter import Reporter, format_heatmap, format_occupancy


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Evacuation Floor Field Cellular Automaton',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    evacuation-ca --config configs/room.yaml
    evacuation-ca --config configs/two_exits.yaml --simulations 20 --heatmap
    evacuation-ca --config configs/room.yaml --gif --out-dir results/
    evacuation-ca --config configs/room.yaml --seed 42 --quiet
    evacuation-ca --config configs/room.yaml --frames
        """
    )

    # Required arguments
    parser.add_argument('--config', type=Path, required=True,
                        help='Path to YAML configuration file')

    # Optional overrides
    parser.add_argument('--simulations', type=int, default=None,
                        help='Override number of runs per simulation set')
    parser.add_argument('--pedestrians', type=int, default=None,
                        help='Insert this many pedestrians at random (0 = layout placement)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed of the first run; incremented after every run')
    parser.add_argument('--out-dir', type=Path, default=Path('./output'),
                        help='Output directory for exports (default: ./output)')

    # Export toggles
    parser.add_argument('--csv', dest='csv', action='store_true', default=None,
                        help='Enable CSV export of timestep counts (default)')
    parser.add_argument('--no-csv', dest='csv', action='store_false',
                        help='Disable CSV export')

    parser.add_argument('--heatmap', action='store_true', default=False,
                        help='Save and print a visit heatmap per simulation set')
    parser.add_argument('--gif', action='store_true', default=False,
                        help='Enable GIF animation export of the first run')
    parser.add_argument('--frames', action='store_true', default=False,
                        help='Print the pedestrian grid after every timestep of every run')

    parser.add_argument('--quiet', action='store_true', default=False,
                        help='Suppress stdout output')
    parser.add_argument('--debug', action='store_true', default=False,
                        help='Log every timestep and conflict')

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"Error: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except (ValueError, KeyError, TypeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.simulations is not None:
        config.num_simulations = args.simulations
    if args.pedestrians is not None:
        config.pedestrians = args.pedestrians
    if args.csv is not None:
        config.csv_enabled = args.csv
    if args.heatmap:
        config.heatmap_enabled = True
    if args.gif:
        config.gif_enabled = True
    if args.frames:
        config.frames_enabled = True
    config.quiet = args.quiet
    if args.seed is not None:
        config.seed = args.seed
    config.out_dir = args.out_dir

    try:
        layout = config.build_layout()
    except (ValueError, KeyError) as e:
        print(f"Error building environment: {e}", file=sys.stderr)
        return 1

    if not config.quiet:
        print(f"Initializing simulation...")
        print(f"  Grid: {layout.grid.rows}x{layout.grid.cols}")
        print(f"  Runs per set: {config.num_simulations}")

    visualizer = Visualizer(layout.grid)
    animated_set = []

    print_frames = config.frames_enabled and not config.quiet

    def on_step(set_index, run_index, state):
        if print_frames:
            print(f"\nSet {set_index} | Run {run_index} | Timestep {state.step}")
            print(format_occupancy(layout.grid))

        # Animate the first run of the first simulated set only
        if not config.gif_enabled or run_index != 0:
            return
        if not animated_set:
            animated_set.append(set_index)
        if animated_set[0] == set_index:
            visualizer.buffer_frame(state, title=f'Set {set_index} | ')

    try:
        runner = SimulationRunner(
            config, layout,
            on_step=on_step if config.gif_enabled or print_frames else None)
        simulation_sets = runner.simulation_sets()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Initialize exporters
    csv_writer = None
    if config.csv_enabled:
        csv_writer = CSVWriter(config.out_dir / 'timesteps.csv')
        csv_writer.open()

    reporter = Reporter(str(args.config), config.seed)

    if not config.quiet:
        print(f"  Simulation sets: {len(simulation_sets)}")
        print(format_occupancy(layout.grid, layout.exits))
        print(f"\nRunning simulations...")

    try:
        for index, exits in enumerate(simulation_sets):
            result = runner.run_set(index, exits)
            reporter.update(result)

            if csv_writer:
                csv_writer.append(result)

            if config.heatmap_enabled and result.simulated:
                visualizer.save_heatmap(result, config.out_dir / f'heatmap_set_{index}.png')
                if not config.quiet:
                    print(f"\nHeatmap of set {index}:")
                    print(format_heatmap(result.heatmap))

            if not config.quiet:
                print(f"  {reporter.execution_status(len(simulation_sets))}")

    except AllocationFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        if not config.quiet:
            print("\nSimulation interrupted by user.")
    finally:
        if csv_writer:
            csv_writer.close()

    if config.gif_enabled:
        gif_path = config.out_dir / 'simulation.gif'
        if not config.quiet:
            print(f"Generating GIF ({len(visualizer.frames)} frames)...")
        visualizer.generate_gif(gif_path, fps=4)

    # Print summary report
    if not config.quiet:
        report = reporter.generate_summary(
            config.out_dir,
            config.csv_enabled,
            config.heatmap_enabled,
            config.gif_enabled
        )
        print(report)

    return 0


if __name__ == '__main__':
    sys.exit(main())
