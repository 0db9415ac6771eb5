"""CSV export of timestep counts for the evacuation CA simulation."""

import csv
from pathlib import Path
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..model.state import SetResult


class CSVWriter:
    """
    Exports one row per simulation run.

    Output format:
        simulation_set,run,seed,status,timesteps
        0,0,42,success,17
        1,,,inaccessible_exit,
        ...
    """

    FIELDNAMES = ['simulation_set', 'run', 'seed', 'status', 'timesteps']

    def __init__(self, output_path: Path):
        self.output_path = Path(output_path)
        self.file: Optional[object] = None
        self.writer: Optional[csv.DictWriter] = None
        self._is_open = False

    def open(self) -> None:
        """Initialize file and write header."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.file = open(self.output_path, 'w', newline='')
        self.writer = csv.DictWriter(self.file, fieldnames=self.FIELDNAMES)
        self.writer.writeheader()
        self._is_open = True

    def append(self, result: "SetResult") -> None:
        """Write the rows of one simulation set."""
        if not self._is_open:
            self.open()

        if not result.simulated:
            status = result.status.name.lower() if result.status else 'invalid_exit_geometry'
            self.writer.writerow({'simulation_set': result.index, 'run': '',
                                  'seed': '', 'status': status, 'timesteps': ''})
        for run_index, run in enumerate(result.runs):
            self.writer.writerow({
                'simulation_set': result.index,
                'run': run_index,
                'seed': run.seed,
                'status': 'failed' if run.failed else 'success',
                'timesteps': '' if run.timesteps is None else run.timesteps,
            })
        self.file.flush()  # Ensure data is written

    def close(self) -> None:
        """Close file handle."""
        if self.file:
            self.file.close()
            self.file = None
            self.writer = None
            self._is_open = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
