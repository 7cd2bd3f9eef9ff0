# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import math
from typing import Callable

from tqdm import tqdm

from .schedules import ConfigurationError
from .units import prettytime
from .utils import get_logger

log = get_logger(__name__)


class Simulation:
    """Step a model forward and run its diagnostics and output writers after each step.

    `model` needs a `clock`. If it has a `time_step(dt)` method, that is responsible for
    advancing the clock, otherwise the simulation ticks the clock itself. `dt` is either
    a fixed time step or a function of the clock for variable time steps.
    """

    def __init__(
        self,
        model,
        *,
        dt: float | Callable,
        stop_time: float | None = None,
        stop_iteration: int | None = None,
        progress: bool = False,
    ):
        if stop_time is None and stop_iteration is None:
            raise ConfigurationError("Simulation needs a stop_time or a stop_iteration")

        self.model = model
        self.dt = dt
        self.stop_time = stop_time
        self.stop_iteration = stop_iteration
        self.progress = progress

        self.diagnostics = {}
        self.output_writers = {}

    @property
    def clock(self):
        return self.model.clock

    def stopped(self) -> bool:
        if self.stop_time is not None and self.clock.time >= self.stop_time:
            return True
        if (
            self.stop_iteration is not None
            and self.clock.iteration >= self.stop_iteration
        ):
            return True
        return False

    def next_dt(self) -> float:
        dt = self.dt(self.clock) if callable(self.dt) else self.dt
        if self.stop_time is not None:
            # Land exactly on the stop time
            dt = min(dt, self.stop_time - self.clock.time)
        return dt

    def time_step(self):
        model = self.model
        dt = self.next_dt()
        if hasattr(model, "time_step"):
            model.time_step(dt)
        else:
            model.clock.tick(dt)

        # Diagnostics and averages see the state after the clock has ticked and before
        # anything is written for this step
        for diagnostic in self.diagnostics.values():
            diagnostic.run_diagnostic(model)
        for writer in self.output_writers.values():
            writer.advance_time_averages(model)
        for writer in self.output_writers.values():
            if writer(model):
                writer.write_output(model)

    def _expected_iterations(self) -> int | None:
        n = []
        if self.stop_iteration is not None:
            n.append(self.stop_iteration - self.clock.iteration)
        if self.stop_time is not None and not callable(self.dt):
            n.append(math.ceil((self.stop_time - self.clock.time) / self.dt))
        return max(min(n), 0) if len(n) > 0 else None

    def run(self):
        model = self.model

        for writer in self.output_writers.values():
            writer.initialize(model)
        if self.clock.iteration == 0:
            # Record the initial state
            for writer in self.output_writers.values():
                writer.write_output(model)

        log.info(f"Running simulation from {self.clock}")
        with tqdm(total=self._expected_iterations(), disable=not self.progress) as pbar:
            while not self.stopped():
                self.time_step()
                pbar.update()

        log.info(f"Simulation stopped at {prettytime(self.clock.time)}")
