#!/usr/bin/env python

# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import logging
import math
import warnings

import hydra
import numpy as np
from omegaconf import DictConfig, OmegaConf

from timeavg.clock import Clock
from timeavg.config import instantiate_simulation, parse_duration
from timeavg.utils import get_logger
from timeavg.windowed_time_average import DegenerateWindowWarning


def resolve_eval(expr):
    """Resolve an arbitrary expression in OmegaConf interpolations."""
    # We trust our own configuration, so just eval the expression
    return eval(expr, {}, {"math": math})


OmegaConf.register_new_resolver("eval", resolve_eval)


log = get_logger(__name__)


class TravelingWave:
    """A periodic wave advected through a 1D domain with a jittery time step.

    This stands in for a real model to exercise the averaging machinery: the time
    average of `u` over a full period vanishes, while the average of `energy`, the
    squared amplitude at the left edge of the domain, is 1/2.
    """

    def __init__(self, *, n: int, speed: float, dt_jitter: float, seed: int):
        self.clock = Clock()
        self.x = np.linspace(0.0, 1.0, n, endpoint=False)
        self.speed = speed
        self.dt_jitter = dt_jitter
        self.rng = np.random.default_rng(seed)
        self.u = np.sin(2 * np.pi * self.x)

    def time_step(self, dt: float):
        if self.dt_jitter > 0:
            dt = dt * (1 + self.dt_jitter * self.rng.uniform(-1, 1))
        self.clock.tick(dt)
        self.u = np.sin(2 * np.pi * (self.x - self.speed * self.clock.time))

    @property
    def energy(self):
        return self.u[0] ** 2


@hydra.main(config_path="config", config_name="simulate", version_base=None)
def main(config: DictConfig):
    OmegaConf.resolve(config)
    log.info(f"Configuration\n{OmegaConf.to_yaml(config)}")

    if not config.get("warn_stride", True):
        warnings.filterwarnings("ignore", category=DegenerateWindowWarning)

    model = TravelingWave(
        n=config.model.n,
        speed=1.0 / parse_duration(config.model.period),
        dt_jitter=config.model.dt_jitter,
        seed=config.seed,
    )
    outputs = {
        "u": lambda model: model.u,
        "energy": lambda model: model.energy,
    }

    simulation = instantiate_simulation(config.simulation, model, outputs)
    for name, writer in simulation.output_writers.items():
        log.info(f"Output writer {name}: {writer}")

    simulation.run()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
