# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

from pathlib import Path

from omegaconf import DictConfig
from pytimeparse import parse as timeparse

from .output_writers import HDF5Writer
from .schedules import (
    AveragedSpecifiedTimes,
    AveragedTimeInterval,
    IterationInterval,
    SpecifiedTimes,
    TimeInterval,
)
from .simulation import Simulation


def parse_duration(value) -> float:
    """Parse a duration in seconds, e.g. `3600`, `"10 minutes"` or `"4 days"`."""
    if isinstance(value, str):
        seconds = timeparse(value)
        if seconds is None:
            raise RuntimeError(f"Unknown duration {value}")
        return float(seconds)
    else:
        return float(value)


def parse_times(times) -> list[float]:
    if isinstance(times, str):
        times = times.split(",")
    return [parse_duration(t) for t in times]


def instantiate_schedule(config: DictConfig):
    stride = config.get("stride", 1)
    window = config.get("window")
    if window is not None:
        window = parse_duration(window)

    match config.name:
        case "time-interval":
            return TimeInterval(parse_duration(config.interval))
        case "iteration-interval":
            return IterationInterval(config.interval, offset=config.get("offset", 0))
        case "specified-times":
            return SpecifiedTimes(parse_times(config.times))
        case "averaged-time-interval":
            return AveragedTimeInterval(
                parse_duration(config.interval), window=window, stride=stride
            )
        case "averaged-specified-times":
            return AveragedSpecifiedTimes(
                parse_times(config.times), window=window, stride=stride
            )
        case _:
            raise RuntimeError(f"Unknown schedule {config.name}")


def instantiate_output_writer(config: DictConfig, model, outputs: dict):
    names = config.get("outputs")
    if names is None:
        selected = outputs
    else:
        if isinstance(names, str):
            names = names.split(",")
        for name in names:
            if name not in outputs:
                raise RuntimeError(f"Unknown output {name}")
        selected = {name: outputs[name] for name in names}

    return HDF5Writer(
        model,
        selected,
        filename=Path(config.filename),
        schedule=instantiate_schedule(config.schedule),
        overwrite_existing=config.get("overwrite_existing", False),
    )


def instantiate_simulation(config: DictConfig, model, outputs: dict):
    stop_time = config.get("stop_time")
    simulation = Simulation(
        model,
        dt=parse_duration(config.dt),
        stop_time=None if stop_time is None else parse_duration(stop_time),
        stop_iteration=config.get("stop_iteration"),
        progress=config.get("progress", False),
    )

    for name, writer_config in (config.get("output_writers") or {}).items():
        simulation.output_writers[name] = instantiate_output_writer(
            writer_config, model, outputs
        )

    return simulation
