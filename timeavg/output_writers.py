# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

from pathlib import Path

import h5py as h5
import numpy as np
import torch

from .utils import get_logger
from .windowed_time_average import (
    fetch_output,
    output_averaging_schedule,
    time_average_outputs,
)

log = get_logger(__name__)


def _to_numpy(value) -> np.ndarray:
    if torch.is_tensor(value):
        return value.detach().cpu().numpy()
    return np.asarray(value)


class HDF5Writer:
    """Append outputs to an HDF5 file whenever `schedule` actuates.

    Each output is stored as a dataset in the `timeseries` group with one row per
    write, next to the `time` and `iteration` of each write. With an averaging
    schedule, the outputs are time-averaged and written at the end of each window.
    """

    def __init__(
        self,
        model,
        outputs: dict,
        *,
        filename: Path,
        schedule,
        overwrite_existing: bool = False,
    ):
        self.filename = Path(filename)
        self.schedule, self.outputs = time_average_outputs(schedule, outputs, model)

        self.filename.parent.mkdir(parents=True, exist_ok=True)
        if overwrite_existing and self.filename.is_file():
            log.info(f"Overwriting existing output file {self.filename}")
            self.filename.unlink()

    def __call__(self, model) -> bool:
        return self.schedule(model)

    def initialize(self, model):
        self.schedule.initialize(model.clock)

    def advance_time_averages(self, model):
        for output in self.outputs.values():
            schedule = output_averaging_schedule(output)
            if schedule is not None and schedule.should_actuate(model.clock):
                output.advance(model)

    def write_output(self, model):
        clock = model.clock
        row = {"time": np.array(clock.time), "iteration": np.array(clock.iteration)}
        for name, output in self.outputs.items():
            row[name] = _to_numpy(fetch_output(output, model))

        with h5.File(self.filename, "a") as f:
            group = f.require_group("timeseries")

            n_prev_writes = group.attrs.get("n_writes", 0)
            for name, value in row.items():
                if name not in group:
                    backfill = n_prev_writes > 0
                    if backfill and not np.issubdtype(value.dtype, np.floating):
                        # Rows of earlier writes are filled with NaN
                        value = value.astype(np.float64)
                    # Create a resizeable dataset with one row per chunk
                    dataset = group.create_dataset(
                        name,
                        shape=(n_prev_writes + 1, *value.shape),
                        dtype=value.dtype,
                        chunks=(1, *value.shape),
                        maxshape=(None, *value.shape),
                        fillvalue=np.nan if backfill else None,
                    )
                    schedule = output_averaging_schedule(self.outputs.get(name))
                    if schedule is not None:
                        dataset.attrs["time_average"] = str(schedule)
                else:
                    dataset = group[name]
                    if dataset.shape[0] < n_prev_writes + 1:
                        dataset.resize(n_prev_writes + 1, axis=0)
                dataset[n_prev_writes] = value

            group.attrs["n_writes"] = n_prev_writes + 1

    def __repr__(self):
        return (
            f"HDF5Writer(filename={self.filename}, schedule={self.schedule}, "
            f"outputs={list(self.outputs)})"
        )


def load_timeseries(filename: Path) -> dict[str, np.ndarray]:
    """Load all rows written by an `HDF5Writer`."""

    with h5.File(filename, "r") as f:
        group = f["timeseries"]
        n_writes = group.attrs.get("n_writes", 0)
        return {name: np.array(dataset[:n_writes]) for name, dataset in group.items()}
