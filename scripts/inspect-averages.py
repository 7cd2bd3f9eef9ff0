#!/usr/bin/env python

# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import argparse
from pathlib import Path

import h5py as h5
import numpy as np

from timeavg.output_writers import load_timeseries
from timeavg.units import prettytime


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--skip-initial", action="store_true", help="Skip the first row")
    parser.add_argument("file", help="Output file of an HDF5Writer")
    args = parser.parse_args()

    file = Path(args.file)
    data = load_timeseries(file)
    with h5.File(file, "r") as f:
        schedules = {
            name: dataset.attrs.get("time_average")
            for name, dataset in f["timeseries"].items()
        }

    names = [name for name in data if name not in ("time", "iteration")]
    for name in names:
        if schedules[name] is not None:
            print(f"{name}: averaged on {schedules[name]}")

    start = 1 if args.skip_initial else 0
    for i in range(start, len(data["time"])):
        t, iteration = data["time"][i], data["iteration"][i]
        values = ", ".join(
            f"{name}={np.mean(data[name][i]):.4g}" for name in names
        )
        print(f"{prettytime(t):>16} (iteration {iteration:>6}): {values}")


if __name__ == "__main__":
    main()
