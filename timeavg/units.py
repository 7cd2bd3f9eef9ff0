# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import math

second = 1.0
minute = 60 * second
hour = 60 * minute
day = 24 * hour


def _pretty_units(value: float, units: str):
    if float(value).is_integer():
        value = int(value)
        if value == 1 and units in ("seconds", "minutes", "hours", "days"):
            units = units.removesuffix("s")
        return f"{value} {units}"
    else:
        return f"{value:.3f} {units}"


def prettytime(t: float, longform: bool = True) -> str:
    """Format a duration `t` in seconds with the largest unit that fits.

    `prettytime(2 * day)` is "2 days", `prettytime(90)` is "1.500 minutes".
    """
    s = "seconds" if longform else "s"

    if t == 0:
        return f"0 {s}"
    if not math.isfinite(t):
        return f"{t} {s}"
    if abs(t) < 1e-9:
        return f"{t:.3e} {s}"

    match abs(t):
        case x if x < 1e-6:
            value, units = t * 1e9, "ns"
        case x if x < 1e-3:
            value, units = t * 1e6, "μs"
        case x if x < 1:
            value, units = t * 1e3, "ms"
        case x if x < minute:
            value, units = t, s
        case x if x < hour:
            value, units = t / minute, "minutes" if longform else "min"
        case x if x < day:
            value, units = t / hour, "hours" if longform else "hr"
        case _:
            value, units = t / day, "days" if longform else "d"

    return _pretty_units(value, units)
