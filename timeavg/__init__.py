# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

from .clock import Clock
from .output_writers import HDF5Writer, load_timeseries
from .schedules import (
    AveragedSpecifiedTimes,
    AveragedTimeInterval,
    ConfigurationError,
    IterationInterval,
    SpecifiedTimes,
    TimeInterval,
)
from .simulation import Simulation
from .windowed_time_average import (
    DegenerateWindowWarning,
    PrematureReadWarning,
    TimeAverageResult,
    WindowedTimeAverage,
    time_average_outputs,
)
