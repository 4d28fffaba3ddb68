# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
from enum import Enum
from typing import Optional


class LogLevel(Enum):
    """
    Enum class mapping the logging levels to numeric values.
    """

    ERROR = 40
    WARNING = 30
    INFO = 20
    DEBUG_UPDATES = 16
    DEBUG_SAMPLER = 14
    DEBUG_GRAPH = 12


def get_bayesgraph_logger(
    console_level: LogLevel = LogLevel.WARNING,
    file_level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level.value)

    logger = logging.getLogger("bayesgraph")
    logger.handlers.clear()
    logger.addHandler(console_handler)
    if log_file is None:
        logger.setLevel(console_level.value)
        return logger

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(file_level.value)
    logger.setLevel(
        file_level.value
        if file_level.value < console_level.value
        else console_level.value
    )
    logger.addHandler(file_handler)
    return logger
