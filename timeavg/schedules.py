# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

from dataclasses import dataclass

from .units import prettytime


class ConfigurationError(ValueError):
    """A schedule was constructed with parameters that can never work."""


def _validate_stride(stride):
    if not isinstance(stride, int) or stride < 1:
        raise ConfigurationError(
            f"Averaging stride must be a positive integer, got {stride}"
        )


def _sorted_times(times) -> tuple[float, ...]:
    times = tuple(sorted(float(t) for t in times))
    for a, b in zip(times, times[1:]):
        if a == b:
            raise ConfigurationError(f"Time {a} is specified more than once")
    return times


#####
##### Schedules that decide when outputs are written
#####


@dataclass
class TimeInterval:
    """Actuate every `interval` units of simulation time."""

    interval: float
    first_actuation_time: float = 0.0
    actuations: int = 0

    def __post_init__(self):
        self.interval = float(self.interval)
        if self.interval <= 0:
            raise ConfigurationError(f"Interval must be positive, got {self.interval}")

    def next_actuation_time(self) -> float:
        return self.first_actuation_time + (self.actuations + 1) * self.interval

    def initialize(self, clock):
        self.first_actuation_time = clock.time
        self.actuations = 0

    def __call__(self, model) -> bool:
        t = model.clock.time
        if t >= self.next_actuation_time():
            # Catch up if the time step jumped over several actuation times
            n = int((t - self.first_actuation_time) // self.interval)
            self.actuations = max(n, self.actuations + 1)
            return True
        else:
            return False

    def __str__(self):
        return f"TimeInterval({prettytime(self.interval)})"


@dataclass
class IterationInterval:
    """Actuate every `interval` iterations."""

    interval: int
    offset: int = 0

    def __post_init__(self):
        if not isinstance(self.interval, int) or self.interval < 1:
            raise ConfigurationError(
                f"Iteration interval must be a positive integer, got {self.interval}"
            )

    def initialize(self, clock):
        pass

    def __call__(self, model) -> bool:
        return (model.clock.iteration - self.offset) % self.interval == 0

    def __str__(self):
        return f"IterationInterval({self.interval})"


@dataclass
class SpecifiedTimes:
    """Actuate once at each of the given times."""

    times: tuple[float, ...]
    next_index: int = 0

    def __post_init__(self):
        self.times = _sorted_times(self.times)

    def next_time(self) -> float | None:
        if self.next_index >= len(self.times):
            return None
        return self.times[self.next_index]

    def initialize(self, clock):
        pass

    def __call__(self, model) -> bool:
        t = model.clock.time
        next_time = self.next_time()
        if next_time is None or t < next_time:
            return False

        # Skip all times that have passed since the last actuation
        while self.next_index < len(self.times) and self.times[self.next_index] <= t:
            self.next_index += 1
        return True

    def __str__(self):
        return f"SpecifiedTimes({', '.join(prettytime(t) for t in self.times)})"


#####
##### Schedules for time-averaged outputs
#####


@dataclass
class AveragedTimeInterval:
    """Periodic time-averaging of outputs.

    The average of an output is collected over the trailing `window` before each
    actuation time, and the actuation times recur every `interval`. The actuation
    time is the end of the window and also the time at which the average is written.

    During a window, outputs are sampled every `stride` iterations. A larger `stride`
    is cheaper but less accurate.
    """

    interval: float
    window: float | None = None
    stride: int = 1
    first_actuation_time: float = 0.0
    actuations: int = 0
    collecting: bool = False

    def __post_init__(self):
        self.interval = float(self.interval)
        self.window = self.interval if self.window is None else float(self.window)

        if self.interval <= 0:
            raise ConfigurationError(
                f"Output interval must be positive, got {self.interval}"
            )
        if self.window <= 0:
            raise ConfigurationError(
                f"Averaging window must be positive, got {self.window}"
            )
        if self.window > self.interval:
            raise ConfigurationError(
                f"Averaging window {self.window} is greater than the output interval "
                f"{self.interval}."
            )
        _validate_stride(self.stride)

    def next_actuation_time(self) -> float:
        # The next actuation is the end of the pending window
        return self.first_actuation_time + (self.actuations + 1) * self.interval

    def window_start_time(self) -> float:
        return self.next_actuation_time() - self.window

    @property
    def completed_windows(self) -> int:
        return self.actuations

    @property
    def exhausted(self) -> bool:
        return False

    def should_actuate(self, clock) -> bool:
        return self.collecting or clock.time > self.window_start_time()

    def outside_window(self, clock) -> bool:
        return clock.time <= self.window_start_time()

    def end_of_window(self, clock) -> bool:
        return clock.time >= self.next_actuation_time()

    def actuate(self):
        self.collecting = False
        self.actuations += 1

    def __call__(self, model) -> bool:
        return self.should_actuate(model.clock)

    def copy(self) -> "AveragedTimeInterval":
        """Copy the configuration and start a fresh timeline."""
        return AveragedTimeInterval(self.interval, window=self.window, stride=self.stride)

    def write_schedule(self) -> TimeInterval:
        return TimeInterval(self.interval)

    def __str__(self):
        return (
            f"AveragedTimeInterval(window={prettytime(self.window)}, "
            f"stride={self.stride}, interval={prettytime(self.interval)})"
        )


@dataclass
class AveragedSpecifiedTimes:
    """Time-averaging over the windows that precede each of the given times."""

    times: tuple[float, ...]
    window: float
    stride: int = 1
    next_index: int = 0
    collecting: bool = False

    def __post_init__(self):
        self.times = _sorted_times(self.times)
        self.window = float(self.window)

        if self.window <= 0:
            raise ConfigurationError(
                f"Averaging window must be positive, got {self.window}"
            )
        _validate_stride(self.stride)

    def next_time(self) -> float | None:
        if self.next_index >= len(self.times):
            return None
        return self.times[self.next_index]

    def next_actuation_time(self) -> float:
        next_time = self.next_time()
        return float("inf") if next_time is None else next_time

    def window_start_time(self) -> float:
        return self.next_actuation_time() - self.window

    @property
    def completed_windows(self) -> int:
        return self.next_index

    @property
    def exhausted(self) -> bool:
        return self.next_index >= len(self.times)

    def should_actuate(self, clock) -> bool:
        next_time = self.next_time()
        if next_time is None:
            return False
        return self.collecting or clock.time >= next_time - self.window

    def outside_window(self, clock) -> bool:
        next_time = self.next_time()
        if next_time is None:
            return True
        return clock.time < next_time - self.window

    def end_of_window(self, clock) -> bool:
        next_time = self.next_time()
        if next_time is None:
            return True
        return clock.time >= next_time

    def actuate(self):
        self.collecting = False
        self.next_index += 1

    def __call__(self, model) -> bool:
        return self.should_actuate(model.clock)

    def copy(self) -> "AveragedSpecifiedTimes":
        """Copy the configuration and start a fresh timeline."""
        return AveragedSpecifiedTimes(self.times, window=self.window, stride=self.stride)

    def write_schedule(self) -> SpecifiedTimes:
        return SpecifiedTimes(self.times)

    def __str__(self):
        times = ", ".join(prettytime(t) for t in self.times)
        return (
            f"AveragedSpecifiedTimes(window={prettytime(self.window)}, "
            f"stride={self.stride}, times=[{times}])"
        )


AveragingSchedule = AveragedTimeInterval | AveragedSpecifiedTimes
Schedule = TimeInterval | IterationInterval | SpecifiedTimes | AveragingSchedule
