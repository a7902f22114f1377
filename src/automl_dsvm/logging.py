#  -------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  -------------------------------------------------------------------------------------------
"""
Console logging for the automl-dsvm runner: a single stdout handler with UTC timestamps, and banners around the
slow steps of a remote AutoML job, like provisioning the VM or waiting for the iterations.
"""
import logging
import sys
import time
from contextlib import contextmanager
from typing import Generator, Optional, Union

from automl_dsvm.utils import check_is_any_of

logging_stdout_handler: Optional[logging.StreamHandler] = None
logger = logging.getLogger(__name__)


def logging_to_stdout(log_level: Union[int, str] = logging.INFO) -> None:
    """
    Sends all log output of the runner, and of the AzureML SDK loggers, to stdout. Each line is prefixed with a UTC
    timestamp and the level, so that the log of a long AutoML job can be matched against the run history in AzureML.

    :param log_level: Messages at or above this level are written. Either a number, or a level name like "DEBUG".
    """
    log_level = standardize_log_level(log_level)
    logger = logging.getLogger()
    # The runner can be invoked several times in the same process (for example, submit followed by status in a
    # notebook). Only ever add one handler, otherwise every line is logged repeatedly.
    global logging_stdout_handler
    if not logging_stdout_handler:
        print("Setting up logging to stdout.")
        # At startup, logging has one handler set, that writes to stderr, with a log level of 0 (logging.NOTSET)
        if len(logger.handlers) == 1:
            logger.removeHandler(logger.handlers[0])
        logging_stdout_handler = logging.StreamHandler(stream=sys.stdout)
        _add_formatter(logging_stdout_handler)
        logger.addHandler(logging_stdout_handler)
    print(f"Setting logging level to {log_level}")
    logging_stdout_handler.setLevel(log_level)
    logger.setLevel(log_level)


def standardize_log_level(log_level: Union[int, str]) -> int:
    """
    Converts a level name like "info" or "DEBUG" to the numeric level. This is used both for the console log and
    for the verbosity that is sent to AutoML.

    :param log_level: A numeric level, or a level name in any casing.
    :return: The numeric level.
    :raises ValueError: If the name is not a known logging level.
    """
    if isinstance(log_level, str):
        log_level = log_level.upper()
        check_is_any_of("log_level", log_level, logging._nameToLevel.keys())
        return logging._nameToLevel[log_level]
    return log_level


def _add_formatter(handler: logging.StreamHandler) -> None:
    """Log lines look like "2024-03-01T10:00:00Z INFO     Submitting AutoML run"."""
    formatter = logging.Formatter(fmt="%(asctime)s %(levelname)-8s %(message)s", datefmt="%Y-%m-%dT%H:%M:%SZ")
    # noinspection PyTypeHints
    formatter.converter = time.gmtime  # type: ignore
    handler.setFormatter(formatter)


def format_time_from_seconds(time_in_seconds: float) -> str:
    """Formats the length of a logging section in the largest sensible unit, with 2 decimals: "1.50 hours",
    "2.50 minutes" or "3.50 seconds".
    """
    if time_in_seconds >= 3600:
        time_expr = f"{time_in_seconds / 3600:0.2f} hours"
    elif time_in_seconds >= 60:
        time_expr = f"{time_in_seconds / 60:0.2f} minutes"
    else:
        time_expr = f"{time_in_seconds:0.2f} seconds"
    return time_expr


def format_duration_hms(time_in_seconds: Optional[float]) -> str:
    """Formats a duration as H:MM:SS, the way the AutoML console output shows iteration durations.
    Fractions of a second are dropped. Returns an empty string for a missing duration.

    :param time_in_seconds: duration in seconds, or None if the duration is not known (yet).
    :return: The formatted duration, e.g. "0:02:36".
    """
    if time_in_seconds is None:
        return ""
    total = int(time_in_seconds)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


@contextmanager
def logging_section(gerund: str) -> Generator:
    """
    Writes "**** STARTING: ..." and "**** FINISHED: ..." banners around a step of the AutoML workflow, with the time
    the step took. Usage:
    with logging_section("provisioning the compute target"):
       provision_or_attach(workspace, settings)

    :param gerund: What happens in this step, e.g. "uploading the training data".
    """
    from time import time

    logger.info("")
    msg = f"**** STARTING: {gerund} "
    logger.info(msg + (100 - len(msg)) * "*")
    logger.info("")
    start_time = time()
    yield
    elapsed = time() - start_time
    logger.info("")
    time_expr = format_time_from_seconds(elapsed)
    msg = f"**** FINISHED: {gerund} after {time_expr} "
    logger.info(msg + (100 - len(msg)) * "*")
    logger.info("")
