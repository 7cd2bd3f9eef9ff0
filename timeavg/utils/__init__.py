# SPDX-FileCopyrightText: © 2024 Marten Lienen <m.lienen@tum.de> & Technical University of Munich
#
# SPDX-License-Identifier: MIT

import logging

from pytorch_lightning.utilities import rank_zero_only


def get_logger(name=__name__, level=None) -> logging.Logger:
    """Initialize a multi-process-safe python command line logger.

    Without a `level`, the logger inherits its level from its parents, so that all of
    the package's logging can be configured on the `timeavg` logger.
    """

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)

    # Only the rank-zero process should log, otherwise every line would be duplicated
    # once per process
    for level in ("debug", "info", "warning", "error", "exception", "fatal", "critical"):
        setattr(logger, level, rank_zero_only(getattr(logger, level)))

    return logger
