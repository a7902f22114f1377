#!/usr/bin/env python3
#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Commandline entry point for running AutoML on a remote VM. All settings of the compute target, the AutoML job and
the run selection can be given as --name=value arguments, for example:

    automl-dsvm --compute_name=mydsvm --iterations=20 --max_concurrent_iterations=1 --wait
    automl-dsvm --action=status
    automl-dsvm --action=cancel --iteration=3
    automl-dsvm --action=explain --run=automl-remote-dsvm:AutoML_0123
"""
import logging
import sys
from pathlib import Path
from typing import List, Optional

import param
from azureml.core import Workspace
from azureml.train.automl.run import AutoMLRun

from automl_dsvm.argparsing import parse_args_and_update_config
from automl_dsvm.automl_config import AutoMLJobSettings, create_automl_config, validate_concurrency
from automl_dsvm.compute import (
    ComputeSettings,
    get_vm_cores,
    is_attach_mode,
    max_useful_concurrency,
    provision_or_attach,
    release_compute_target,
)
from automl_dsvm.data_script import (
    WEIGHT_COLUMN,
    data_to_dataframe,
    load_data_callback,
    register_training_dataset,
    validation_data_to_dataframe,
    write_data_script,
)
from automl_dsvm.logging import logging_section, logging_to_stdout
from automl_dsvm.package_setup import automl_dsvm_package_setup
from automl_dsvm.results import (
    download_best_model,
    get_best_child_run,
    get_best_run_and_model,
    get_feature_importance,
    write_results_report,
)
from automl_dsvm.submission import (
    cancel_iteration,
    cancel_run,
    effective_experiment_name,
    fetch_automl_run,
    format_summary_header,
    format_summary_row,
    get_iteration_summary,
    get_most_recent_automl_run,
    submit_automl_run,
    wait_for_automl_completion,
)
from automl_dsvm.utils import RUN_RECOVERY_FILE, get_workspace, to_azure_friendly_string

logger = logging.getLogger(__name__)

ACTION_SUBMIT = "submit"
ACTION_STATUS = "status"
ACTION_CANCEL = "cancel"
ACTION_BEST = "best"
ACTION_EXPLAIN = "explain"
ACTION_RELEASE = "release"


class AutoMLRemoteConfig(ComputeSettings, AutoMLJobSettings):
    """
    All settings for the automl-dsvm commandline tool: The compute target, the AutoML job, and the selection of an
    existing run for the actions that work on runs.
    """

    action: str = param.Selector(
        default=ACTION_SUBMIT,
        objects=[ACTION_SUBMIT, ACTION_STATUS, ACTION_CANCEL, ACTION_BEST, ACTION_EXPLAIN, ACTION_RELEASE],
        doc="What to do: submit a new AutoML run, show the iterations of a run, cancel a run or one of its "
        "iterations, download the best model, show the feature importance, or release the compute target.",
    )
    experiment_name: str = param.String(
        default="automl-remote-dsvm", doc="The AzureML experiment that the AutoML run is submitted to"
    )
    data_script: Optional[Path] = param.ClassSelector(
        class_=Path,
        default=None,
        allow_None=True,
        doc="A Python file with a function get_data() that returns the training data. If not given, the scikit-learn "
        "digits dataset is used.",
    )
    dataset_name: Optional[str] = param.String(
        default=None,
        allow_None=True,
        doc="The name under which the training data is registered. Defaults to <experiment_name>_training",
    )
    datastore_name: Optional[str] = param.String(
        default=None, allow_None=True, doc="The datastore for the training data. Defaults to the workspace default."
    )
    wait: bool = param.Boolean(
        default=False, doc="If True, wait for the AutoML run to finish, printing the iterations as they complete"
    )
    run: Optional[str] = param.String(
        default=None,
        allow_None=True,
        doc="The run to work on, either as experiment_name:run_id or as run_id. If not given, the run ID is read "
        f"from {RUN_RECOVERY_FILE}",
    )
    latest_run_file: Path = param.ClassSelector(
        class_=Path, default=Path(RUN_RECOVERY_FILE), doc="The file that stores the ID of the most recent run"
    )
    iteration: Optional[int] = param.Integer(
        default=None, allow_None=True, doc="The iteration to cancel, or to retrieve instead of the best one"
    )
    metric: Optional[str] = param.String(
        default=None,
        allow_None=True,
        doc="The metric by which to choose the best iteration. Defaults to the primary metric.",
    )
    top_k: int = param.Integer(default=10, bounds=(1, None), doc="The number of features to show for 'explain'")
    output_folder: Path = param.ClassSelector(
        class_=Path, default=Path("outputs"), doc="The folder for downloaded models and result reports"
    )
    workspace_config_path: Optional[Path] = param.ClassSelector(
        class_=Path,
        default=None,
        allow_None=True,
        doc="Path to config.json where the workspace is defined. If not provided, the code will try to locate a "
        "config.json file in the current working directory and its parents.",
    )
    log_level: str = param.String(default="INFO", doc="The logging level for the console output")

    def validate(self) -> None:
        ComputeSettings.validate(self)
        AutoMLJobSettings.validate(self)
        if self.iteration is not None and self.metric is not None:
            raise ValueError("Only one of iteration and metric can be given")


def check_cores_per_iteration(workspace: Workspace, config: AutoMLRemoteConfig) -> None:
    """Raises a ValueError if each iteration should use more cores than a provisioned VM has."""
    if is_attach_mode(config) or config.max_cores_per_iteration == -1:
        return
    cores = get_vm_cores(workspace, config.vm_size)
    if cores is not None and config.max_cores_per_iteration > cores:
        raise ValueError(
            f"max_cores_per_iteration is {config.max_cores_per_iteration}, but VM size {config.vm_size} only has "
            f"{cores} cores"
        )


def submit(workspace: Workspace, config: AutoMLRemoteConfig) -> AutoMLRun:
    """
    Runs the whole submission workflow: Get the compute target, register the training data that the data script
    returns, and submit the AutoML job. If config.wait is set, wait for the job to finish and show the best model.

    :param workspace: The AzureML workspace.
    :param config: The settings for compute target and AutoML job.
    :return: The submitted AutoML run.
    """
    validate_concurrency(config, max_useful_concurrency(config))
    check_cores_per_iteration(workspace, config)
    with logging_section("provisioning or attaching the compute target"):
        compute_target = provision_or_attach(workspace, config)

    experiment_name = effective_experiment_name(config.experiment_name)
    with logging_section("registering the training data"):
        script = write_data_script(config.project_folder, config.data_script)
        data = load_data_callback(script)()
        training_frame = data_to_dataframe(data, label_column=config.label_column_name)
        validation_frame = validation_data_to_dataframe(data, label_column=config.label_column_name)
        dataset_name = config.dataset_name or f"{experiment_name}_training"
        training_data = register_training_dataset(workspace, training_frame, dataset_name, config.datastore_name)
        validation_data = None
        if validation_frame is not None:
            validation_data = register_training_dataset(
                workspace, validation_frame, f"{dataset_name}_validation", config.datastore_name
            )

    weight_column_name = WEIGHT_COLUMN if WEIGHT_COLUMN in training_frame.columns else None
    automl_config = create_automl_config(
        config, compute_target, training_data, validation_data=validation_data, weight_column_name=weight_column_name
    )
    tags = {
        "compute_target": config.compute_name,
        "data_script": str(script),
        "commandline_args": " ".join(sys.argv[1:]),
    }
    run = submit_automl_run(workspace, experiment_name, automl_config, tags=tags, recovery_file=config.latest_run_file)
    if config.wait:
        with logging_section("waiting for the AutoML iterations"):
            wait_for_automl_completion(run, config.primary_metric)
        show_best(run, config)
    return run


def get_run_from_config(workspace: Workspace, config: AutoMLRemoteConfig) -> AutoMLRun:
    if config.run:
        return fetch_automl_run(workspace, config.run)
    return get_most_recent_automl_run(workspace, config.latest_run_file)


def show_status(run: AutoMLRun, config: AutoMLRemoteConfig) -> None:
    summary = get_iteration_summary(run, config.primary_metric)
    print(f"AutoML run {run.id} has status {run.get_status()}, {len(summary)} iteration(s) started")
    print(format_summary_header())
    for _, row in summary.iterrows():
        print(format_summary_row(row))


def show_best(run: AutoMLRun, config: AutoMLRemoteConfig) -> None:
    """Prints the best iteration of a run, downloads its model, and writes the iteration table to a report."""
    best_run, fitted_model = get_best_run_and_model(run, metric=config.metric, iteration=config.iteration)
    metric = config.metric or config.primary_metric
    print(f"Best run: {best_run.id}, {metric} = {best_run.get_metrics().get(metric)}")
    if fitted_model is None:
        logger.warning(
            "The fitted model could not be loaded locally, this requires the azureml-train-automl-runtime package. "
            "Use the downloaded model file instead."
        )
    else:
        print(f"Fitted model: {fitted_model}")
    model_folder = config.output_folder / str(to_azure_friendly_string(run.id))
    model_file = download_best_model(best_run, model_folder)
    print(f"Model file: {model_file}")
    summary = get_iteration_summary(run, config.primary_metric)
    write_results_report(config.output_folder, summary, None, best_run.id)


def show_explanation(run: AutoMLRun, config: AutoMLRemoteConfig) -> None:
    """Prints the most important features of the best iteration of a run, and writes them to a report."""
    best_run = get_best_child_run(run, metric=config.metric)
    importance = get_feature_importance(best_run, raw=True)
    print(f"Feature importance for run {best_run.id}:")
    print(importance.head(config.top_k).to_string())
    summary = get_iteration_summary(run, config.primary_metric)
    write_results_report(config.output_folder, summary, importance, best_run.id)


def run_action(workspace: Workspace, config: AutoMLRemoteConfig) -> None:
    """Executes the action that is chosen in the config."""
    if config.action == ACTION_SUBMIT:
        submit(workspace, config)
    elif config.action == ACTION_RELEASE:
        release_compute_target(workspace, config.compute_name)
    else:
        run = get_run_from_config(workspace, config)
        if config.action == ACTION_STATUS:
            show_status(run, config)
        elif config.action == ACTION_CANCEL:
            if config.iteration is None:
                cancel_run(run)
            else:
                cancel_iteration(run, config.iteration)
        elif config.action == ACTION_BEST:
            show_best(run, config)
        elif config.action == ACTION_EXPLAIN:
            show_explanation(run, config)
        else:
            raise ValueError(f"Unknown action: {config.action}")


def main(args: Optional[List[str]] = None) -> None:
    config = AutoMLRemoteConfig()
    config = parse_args_and_update_config(config, sys.argv[1:] if args is None else args)
    logging_to_stdout(config.log_level)
    automl_dsvm_package_setup()
    workspace = get_workspace(workspace_config_path=config.workspace_config_path)
    run_action(workspace, config)


if __name__ == "__main__":  # pragma: no cover
    main()
