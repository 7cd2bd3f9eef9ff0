# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

from dataclasses import dataclass

from .units import prettytime


@dataclass
class Clock:
    """Simulation time and iteration count.

    Both only ever increase. The time step may change between iterations, so there is
    no fixed relation between them.
    """

    time: float = 0.0
    iteration: int = 0
    last_dt: float = float("inf")

    def tick(self, dt: float):
        assert dt >= 0, f"Cannot step the clock backwards by {dt}"
        self.time += dt
        self.iteration += 1
        self.last_dt = dt

    def __str__(self):
        return f"Clock(time={prettytime(self.time)}, iteration={self.iteration})"
