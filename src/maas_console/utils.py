# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"). You
# may not use this file except in compliance with the License. A copy of
# the License is located at
#
#     http://aws.amazon.com/apache2.0/
#
# or in the "license" file accompanying this file. This file is
# distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF
# ANY KIND, either express or implied. See the License for the specific
# language governing permissions and limitations under the License.
"""Shared helpers for maas-console modules."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER = "maas_console"


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Return a named logger with a single stream handler attached.

    Repeated calls for the same name reuse the existing handler instead of
    stacking duplicates. Module loggers inherit their level from the
    package logger, which defaults to INFO.

    Args:
        name: Logger name, normally the calling module's ``__name__``.
        level: Explicit level for this logger; None inherits the package level.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)
    if level is not None:
        logger.setLevel(level)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.level == logging.NOTSET:
        package_logger.setLevel(logging.INFO)
    return logger


def set_logging_level(level: int, name: str = PACKAGE_LOGGER) -> None:
    """Set the level of a logger; module loggers of the package inherit it."""
    logging.getLogger(name).setLevel(level)
