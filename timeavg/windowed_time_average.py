# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import warnings
from dataclasses import dataclass

import numpy as np
import torch

from .schedules import AveragedSpecifiedTimes, AveragedTimeInterval, AveragingSchedule
from .units import prettytime
from .utils import get_logger

log = get_logger(__name__)


class DegenerateWindowWarning(UserWarning):
    """Sampling every `stride` iterations can drift from the intended sample times."""


class PrematureReadWarning(UserWarning):
    """A time average was read before its window closed."""


@dataclass
class TimeAverageResult:
    value: np.ndarray | torch.Tensor
    # False while a window is still collecting or before the first window has closed
    complete: bool


def fetch_output(output, model):
    """Evaluate an output on `model`.

    Outputs are either callables of the model or plain values.
    """
    if callable(output):
        output = output(model)
    if isinstance(output, TimeAverageResult):
        return output.value
    return output


def _snapshot(output):
    """Allocate a floating point buffer that holds a copy of `output`."""
    if torch.is_tensor(output):
        result = output.detach().clone()
        if not result.is_floating_point():
            result = result.to(torch.get_default_dtype())
        return result
    else:
        result = np.array(output, copy=True)
        if not np.issubdtype(result.dtype, np.floating):
            result = result.astype(np.float64)
        return result


def _like(x, result):
    """Convert `x` into the array type of `result`."""
    if torch.is_tensor(result):
        return torch.as_tensor(x, dtype=result.dtype, device=result.device)
    elif torch.is_tensor(x):
        return x.detach().cpu().numpy().astype(result.dtype, copy=False)
    else:
        return np.asarray(x, dtype=result.dtype)


class WindowedTimeAverage:
    """Running time-average of `operand` over the windows of an averaging schedule.

    During each window, the operand is sampled every `schedule.stride` iterations and at
    the end of the window. The average is a left Riemann sum

        <a> = 1/T ∫_{t - T}^{t} a dt

    where `t` is the end of the window and `T` its length. The sum is folded into
    `result` with each sample so that no separate integral needs to be kept.

    `operand` is a function of the model returning a scalar, numpy array or tensor, or
    a fixed value if `fetch_operand` is `False`. The accumulator works on a copy of
    `schedule` so that several averages can share one schedule template.
    """

    def __init__(
        self,
        operand,
        model=None,
        *,
        schedule: AveragingSchedule,
        fetch_operand: bool = True,
    ):
        if not isinstance(schedule, (AveragedTimeInterval, AveragedSpecifiedTimes)):
            raise TypeError(f"Cannot time-average on schedule {schedule}")

        self.operand = operand
        self.fetch_operand = fetch_operand
        self.schedule = schedule.copy()

        # The initial snapshot is a placeholder until the first window closes
        if fetch_operand:
            self.result = _snapshot(fetch_output(operand, model))
        else:
            self.result = _snapshot(operand)

        self.window_start_time = 0.0
        self.window_start_iteration = 0
        self.previous_collection_time = 0.0

        if self.stride > 1:
            warnings.warn(
                f"Averaging every {self.stride} iterations on {self.schedule} samples by "
                "iteration count but weights by time. With a variable time step the "
                "samples can drift away from evenly spaced times.",
                DegenerateWindowWarning,
                stacklevel=2,
            )

    @property
    def stride(self) -> int:
        return self.schedule.stride

    @property
    def collecting(self) -> bool:
        return self.schedule.collecting

    def _integrand(self, model):
        if self.fetch_operand:
            return fetch_output(self.operand, model)
        else:
            return self.operand

    def accumulate_result(self, clock, integrand):
        """Fold one sample of the operand into the running average."""

        dt = clock.time - self.previous_collection_time
        T_current = clock.time - self.window_start_time
        T_previous = self.previous_collection_time - self.window_start_time

        # A sample exactly at the start of the window has no weight in a left Riemann
        # sum
        if T_current > 0:
            integrand = _like(integrand, self.result)
            self.result[...] = (self.result * T_previous + integrand * dt) / T_current

        self.previous_collection_time = clock.time

    def _begin_window(self, clock):
        self.result[...] = 0

        self.schedule.collecting = True
        self.window_start_time = self.schedule.window_start_time()
        self.previous_collection_time = self.window_start_time
        self.window_start_iteration = clock.iteration - 1

        log.debug(
            f"Opening averaging window at {prettytime(self.window_start_time)} "
            f"(iteration {clock.iteration})"
        )

    def advance(self, model):
        """Advance the average by one simulation step.

        Call this exactly once per step, after the clock has been advanced.
        """
        clock = model.clock
        schedule = self.schedule

        if clock.iteration == 0 or schedule.outside_window(clock):
            return

        if not schedule.collecting:
            self._begin_window(clock)

        if schedule.end_of_window(clock):
            self.accumulate_result(clock, self._integrand(model))
            schedule.actuate()

            log.debug(
                f"Closed averaging window "
                f"[{prettytime(self.window_start_time)}, {prettytime(clock.time)}]"
            )
            if schedule.exhausted:
                log.debug(f"{schedule} has no windows left")
        elif (clock.iteration - self.window_start_iteration) % self.stride == 0:
            self.accumulate_result(clock, self._integrand(model))
        else:
            # Off stride
            pass

    # So that it can be run like any other diagnostic
    run_diagnostic = advance

    def fetch(self, model) -> TimeAverageResult:
        """Return the current average.

        The result is only a complete average right after a window closed. In the
        middle of a window it is the average over the part of the window seen so far.
        """
        if self.schedule.collecting and model.clock.iteration > 0:
            warnings.warn(
                "Returning a WindowedTimeAverage before the collection period is complete.",
                PrematureReadWarning,
                stacklevel=2,
            )

        if self.stride > 1:
            warnings.warn(
                "WindowedTimeAverage can be erroneous when stride > 1 and either the time "
                "step is variable or there are floating point rounding errors in times, "
                "both of which decouple the clock time (used for writing output) from "
                "the iteration number (used for the stride).",
                DegenerateWindowWarning,
                stacklevel=2,
            )

        complete = not self.schedule.collecting and self.schedule.completed_windows > 0
        return TimeAverageResult(self.result, complete)

    def __call__(self, model) -> TimeAverageResult:
        return self.fetch(model)

    def __repr__(self):
        shape = tuple(self.result.shape)
        return f"WindowedTimeAverage(schedule={self.schedule}, shape={shape})"


def output_averaging_schedule(output) -> AveragingSchedule | None:
    if isinstance(output, WindowedTimeAverage):
        return output.schedule
    return None


def time_average_outputs(schedule, outputs: dict, model):
    """Wrap each output in a `WindowedTimeAverage` if `schedule` is an averaging schedule.

    Returns the schedule on which the outputs should be written and the (wrapped)
    outputs. Each average gets its own copy of the schedule.
    """
    match schedule:
        case AveragedTimeInterval() | AveragedSpecifiedTimes():
            averaged_outputs = {
                name: WindowedTimeAverage(output, model, schedule=schedule)
                for name, output in outputs.items()
            }
            return schedule.write_schedule(), averaged_outputs
        case _:
            return schedule, outputs
