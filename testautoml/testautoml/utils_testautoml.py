#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Test utility functions for tests in the package.
"""
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, List, Optional
from unittest.mock import MagicMock

from automl_dsvm.submission import PROPERTY_ALGORITHM, PROPERTY_ITERATION, PROPERTY_PREPROCESSOR

PRIMARY_METRIC = "AUC_weighted"
EXPERIMENT_NAME = "automl-remote-dsvm"
PARENT_RUN_ID = "AutoML_0f1e2d3c"


def automl_root() -> Path:
    """
    Gets the root folder of the repository.
    """
    return Path(__file__).parent.parent.parent


@contextmanager
def change_working_directory(path_or_str: Path) -> Generator:
    """
    Context manager for changing the current working directory
    """
    new_path = Path(path_or_str).expanduser()
    old_path = Path.cwd()
    os.chdir(new_path)
    yield
    os.chdir(old_path)


def mock_child_run(
    iteration: int,
    score: Optional[float] = None,
    status: str = "Completed",
    duration_seconds: Optional[int] = 36,
    preprocessor: str = "MaxAbsScaler",
    algorithm: str = "LightGBM",
) -> MagicMock:
    """
    Creates a mock for a child run of an AutoML parent run, with the properties and details that AutoML sets.
    """
    child = MagicMock()
    child.id = f"{PARENT_RUN_ID}_{iteration}"
    child.properties = {
        PROPERTY_ITERATION: str(iteration),
        PROPERTY_PREPROCESSOR: preprocessor,
        PROPERTY_ALGORITHM: algorithm,
    }
    details: Dict[str, str] = {"status": status, "startTimeUtc": "2019-01-10T10:00:00.000Z"}
    if duration_seconds is not None:
        minutes, seconds = divmod(duration_seconds, 60)
        details["endTimeUtc"] = f"2019-01-10T10:{minutes:02d}:{seconds:02d}.000Z"
    child.get_details.return_value = details
    child.get_status.return_value = status
    child.get_metrics.return_value = {} if score is None else {PRIMARY_METRIC: score}
    return child


def mock_setup_run() -> MagicMock:
    """Creates a mock for the setup child run that AutoML starts before the iterations."""
    child = MagicMock()
    child.id = f"{PARENT_RUN_ID}_setup"
    child.properties = {}
    return child


def mock_parent_run(children: List[MagicMock], status: str = "Completed") -> MagicMock:
    """Creates a mock for an AutoML parent run with the given child runs."""
    run = MagicMock()
    run.id = PARENT_RUN_ID
    run.experiment.name = EXPERIMENT_NAME
    run.get_children.side_effect = lambda: iter(children)
    run.get_status.return_value = status
    return run
