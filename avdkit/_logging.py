# SPDX-License-Identifier: MIT
from __future__ import annotations

import logging
import sys

###############################################################################
# Logging
###############################################################################
# Child loggers (avdkit.process, avdkit.emulator, ...) propagate here.
logger = logging.getLogger("avdkit")
if not logger.handlers:
    _h = logging.StreamHandler(sys.stdout)
    _h.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s – %(message)s")
    )
    logger.addHandler(_h)
logger.setLevel(logging.INFO)
