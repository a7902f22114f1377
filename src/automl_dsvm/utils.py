#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Utility functions for locating the AzureML workspace and for naming and recovering runs.
"""
import logging
import os
import re
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple, Union

import param
from azureml.core import Run, Workspace

from automl_dsvm.argparsing import EXPERIMENT_RUN_SEPARATOR, get_overridable_parameters
from automl_dsvm.auth import get_authentication, get_secret_from_environment

logger = logging.getLogger(__name__)

# Environment variables used for workspace selection
ENV_RESOURCE_GROUP = "AUTOML_RESOURCE_GROUP"
ENV_SUBSCRIPTION_ID = "AUTOML_SUBSCRIPTION_ID"
ENV_WORKSPACE_NAME = "AUTOML_WORKSPACE_NAME"

# Overrides the experiment name given on the commandline, in particular in builds
ENV_EXPERIMENT_NAME = "AUTOML_EXPERIMENT_NAME"

WORKSPACE_CONFIG_JSON = "config.json"
RUN_RECOVERY_FILE = "most_recent_run.txt"

PathOrString = Union[Path, str]


class GenericConfig(param.Parameterized):
    def __init__(self, should_validate: bool = True, throw_if_unknown_param: bool = False, **params: Any):
        """
        Base class for the compute and AutoML job settings. Values for readonly, constant or private fields are
        rejected, so that a commandline or a notebook cannot silently change them.

        :param should_validate: If True, run validate() once all values are set.
        :param throw_if_unknown_param: If True, reject values for fields that the settings class does not have.
        :param params: Field values to set.
        """
        legal_params = get_overridable_parameters(self)
        current_param_names = type(self).param.objects(instance=False).keys()
        illegal = [k for k in params if (k in current_param_names) and (k not in legal_params)]
        if illegal:
            raise ValueError(
                "The following parameters cannot be overridden as they are either "
                f"readonly, constant, or private members : {illegal}"
            )
        if throw_if_unknown_param:
            unknown = [k for k in params if k not in current_param_names]
            if unknown:
                raise ValueError(f"The following parameters do not exist: {unknown}")
        super().__init__(**{k: v for k, v in params.items() if k in legal_params})
        if should_validate:
            self.validate()

    def validate(self) -> None:
        """Checks combinations of fields that param bounds cannot express. Raises ValueError on a conflict."""
        pass


def find_file_in_parent_folders(
    file_name: str, stop_at_path: List[Path], start_at_path: Optional[Path] = None
) -> Optional[Path]:
    """Walks up from start_at_path, or the current working directory, looking for a file like config.json. The
    walk ends at the filesystem root or at any folder in stop_at_path.

    :return: The path of the file, or None if it was not found.
    """
    start_at = start_at_path or Path.cwd()
    while True:
        logger.debug(f"Searching for file {file_name} in {start_at}")
        expected = start_at / file_name
        if expected.is_file():
            return expected
        if start_at.parent == start_at or start_at in stop_at_path:
            return None
        start_at = start_at.parent


def find_file_in_parent_to_pythonpath(file_name: str) -> Optional[Path]:
    """Like find_file_in_parent_folders, but does not search above any folder on the PYTHONPATH."""
    pythonpaths: List[Path] = []
    if "PYTHONPATH" in os.environ:
        pythonpaths = [Path(path_string) for path_string in os.environ["PYTHONPATH"].split(os.pathsep)]
    return find_file_in_parent_folders(file_name=file_name, stop_at_path=pythonpaths)


def resolve_workspace_config_path(workspace_config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Picks the workspace config file for the runner. The --workspace_config_path argument wins, otherwise a
    config.json in the current folder or above is used.

    :param workspace_config_path: The config file given on the commandline, if any.
    :return: The config file, or None if there is none. The workspace is then read from environment variables.
    :raises FileNotFoundError: If the config file given on the commandline does not exist.
    """
    if workspace_config_path is None:
        logger.info(
            f"Trying to locate the workspace config file '{WORKSPACE_CONFIG_JSON}' in the current folder "
            "and its parent folders"
        )
        result = find_file_in_parent_to_pythonpath(WORKSPACE_CONFIG_JSON)
        if result:
            logger.info(f"Using the workspace config file {str(result.absolute())}")
        else:
            logger.debug("No workspace config file found")
        return result
    if not workspace_config_path.is_file():
        raise FileNotFoundError(f"Workspace config file does not exist: {workspace_config_path}")
    return workspace_config_path


def get_workspace(aml_workspace: Optional[Workspace] = None, workspace_config_path: Optional[Path] = None) -> Workspace:
    """
    Returns the AzureML workspace that the AutoML experiments run in, trying these sources in order:

      1. If a Workspace object has been provided in the `aml_workspace` argument, return that.

      2. If a path to a Workspace config file has been provided, load the workspace according to that config file.

      3. If a Workspace config file is present in the current working directory or one of its parents, load the
        workspace according to that config file.

      4. If 3 environment variables are found, use them to identify the workspace (`AUTOML_RESOURCE_GROUP`,
        `AUTOML_SUBSCRIPTION_ID`, `AUTOML_WORKSPACE_NAME`)

    If none of the above succeeds, an exception is raised.

    :param aml_workspace: If provided this is returned as the AzureML Workspace.
    :param workspace_config_path: If not provided with an AzureML Workspace, then load one given the information in this
        config
    :return: An AzureML workspace.
    :raises ValueError: If none of the available options for accessing the workspace succeeds.
    :raises FileNotFoundError: If the workspace config file is given in `workspace_config_path`, but is not present.
    """
    if aml_workspace:
        return aml_workspace

    workspace_config_path = resolve_workspace_config_path(workspace_config_path)
    auth = get_authentication()
    if workspace_config_path is not None:
        workspace = Workspace.from_config(path=str(workspace_config_path), auth=auth)
        logger.info(
            f"Logged into AzureML workspace {workspace.name} as specified in config file {workspace_config_path}"
        )
        return workspace

    logger.info("Trying to load the environment variables that define the workspace.")
    workspace_name = get_secret_from_environment(ENV_WORKSPACE_NAME, allow_missing=True)
    subscription_id = get_secret_from_environment(ENV_SUBSCRIPTION_ID, allow_missing=True)
    resource_group = get_secret_from_environment(ENV_RESOURCE_GROUP, allow_missing=True)
    if bool(workspace_name) and bool(subscription_id) and bool(resource_group):
        workspace = Workspace.get(
            name=workspace_name, auth=auth, subscription_id=subscription_id, resource_group=resource_group
        )
        logger.info(f"Logged into AzureML workspace {workspace.name} as specified by environment variables")
        return workspace

    raise ValueError(
        "Tried all ways of identifying the workspace, but failed. Please provide a workspace config "
        f"file {WORKSPACE_CONFIG_JSON} or set the environment variables {ENV_RESOURCE_GROUP}, "
        f"{ENV_SUBSCRIPTION_ID}, and {ENV_WORKSPACE_NAME}."
    )


def create_run_recovery_id(run: Run) -> str:
    """Returns "experiment:run_id" for an AutoML parent run. This is the format of the --run argument."""
    return str(run.experiment.name + EXPERIMENT_RUN_SEPARATOR + run.id)


def split_recovery_id(id_str: str) -> Tuple[str, str]:
    """
    Splits the value of the --run argument into experiment name and run ID. Both "digits:AutoML_1234_abcde12" and a
    bare ID like digits_remote_1612345678 are accepted. For a bare ID, the experiment name is everything before the
    trailing numeric part and the optional hex suffix.

    :param id_str: The run ID, surrounding whitespace is ignored.
    :return: A tuple of experiment name and run ID.
    """
    stripped = id_str.strip()
    components = stripped.split(EXPERIMENT_RUN_SEPARATOR)
    if len(components) > 2:
        raise ValueError(f"recovery_id must be in the format: 'experiment_name:run_id', but got: {id_str}")
    elif len(components) == 2:
        experiment_name, run_id = components
        if not experiment_name or not run_id:
            raise ValueError(f"recovery_id must contain both an experiment name and a run ID, but got: {id_str}")
        return experiment_name, run_id
    else:
        recovery_id_regex = r"^(\w+)_\d+_[0-9a-f]+$|^(\w+)_\d+$"
        match = re.match(recovery_id_regex, stripped)
        if not match:
            raise ValueError(f"The recovery ID was not in the expected format: {id_str}")
        return (match.group(1) or match.group(2)), stripped


def to_azure_friendly_string(x: Optional[str]) -> Optional[str]:
    """
    Given a string, ensure it can be used in Azure by replacing everything apart from a-z, A-Z, 0-9, - or _ with _,
    and replace multiple _ with a single _.

    :param x: Optional string to be converted.
    :return: Converted string, if one supplied. None otherwise.
    """
    if x is None:
        return x
    return re.sub("_+", "_", re.sub(r"[^\w-]+", "_", x))


def check_is_any_of(message: str, actual: Optional[str], valid: Iterable[Optional[str]]) -> None:
    """
    Raises a ValueError that lists the allowed values, if actual is not one of them. Used for metric names and
    logging levels.
    """
    valid = list(valid)
    if actual not in valid:
        all_valid = ", ".join(["<None>" if v is None else v for v in valid])
        raise ValueError("{} must be one of [{}], but got: {}".format(message, all_valid, actual))


def write_run_recovery_file(run: Run, recovery_file: Optional[Path] = None) -> Path:
    """
    Writes the recovery ID of the given run to a file, so that later invocations can find the run without the
    user having to copy the run ID.

    :param run: The AzureML run to save as a recovery checkpoint.
    :param recovery_file: The file to write. Defaults to most_recent_run.txt in the current working directory.
    :return: The path of the file that was written.
    """
    recovery_file = recovery_file or Path(RUN_RECOVERY_FILE)
    if recovery_file.exists():
        recovery_file.unlink()
    recovery_file.write_text(create_run_recovery_id(run))
    return recovery_file


def get_most_recent_run_id(run_recovery_file: Path) -> str:
    """
    Reads the recovery ID of the AutoML run that was submitted last, so that status, cancel and best can be used
    without a --run argument.

    :param run_recovery_file: The file written by write_run_recovery_file.
    :return: The recovery ID, in the format "experiment:run_id".
    """
    if not run_recovery_file.is_file():
        raise FileNotFoundError(f"No such file: {run_recovery_file}")
    run_id = run_recovery_file.read_text().strip()
    logger.info(f"Read this run ID from file: {run_id}.")
    return run_id
