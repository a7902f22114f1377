#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Submitting AutoML runs, observing their iterations while they execute on the remote VM, and cancelling them.
"""
import logging
import math
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

import pandas as pd
from azureml.core import Experiment, Run, Workspace
from azureml.train.automl import AutoMLConfig
from azureml.train.automl.run import AutoMLRun

from automl_dsvm.argparsing import EXPERIMENT_RUN_SEPARATOR
from automl_dsvm.automl_config import is_metric_minimized
from automl_dsvm.logging import format_duration_hms
from automl_dsvm.utils import (
    ENV_EXPERIMENT_NAME,
    RUN_RECOVERY_FILE,
    get_most_recent_run_id,
    split_recovery_id,
    to_azure_friendly_string,
    write_run_recovery_file,
)

logger = logging.getLogger(__name__)

RUN_STATUS_COMPLETED = "Completed"
RUN_STATUS_FAILED = "Failed"
RUN_STATUS_CANCELED = "Canceled"
TERMINAL_RUN_STATUSES = {RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, RUN_STATUS_CANCELED}

# Properties that AutoML sets on each child run
PROPERTY_ITERATION = "iteration"
PROPERTY_PREPROCESSOR = "run_preprocessor"
PROPERTY_ALGORITHM = "run_algorithm"

COLUMN_ITERATION = "ITERATION"
COLUMN_PIPELINE = "PIPELINE"
COLUMN_DURATION = "DURATION"
COLUMN_METRIC = "METRIC"
COLUMN_BEST = "BEST"
SUMMARY_COLUMNS = [COLUMN_ITERATION, COLUMN_PIPELINE, COLUMN_DURATION, COLUMN_METRIC, COLUMN_BEST]

DEFAULT_POLL_INTERVAL_SECONDS = 30


def effective_experiment_name(experiment_name: Optional[str]) -> str:
    """Choose the experiment name to use for the run. If provided in the environment variable AUTOML_EXPERIMENT_NAME,
    then use that. Otherwise, use the argument `experiment_name`.

    :param experiment_name: The name of the AzureML experiment in which the run should be submitted.
    :return: The effective experiment name to use, cleaned so that it only contains characters that Azure accepts.
    """
    value_from_env = os.environ.get(ENV_EXPERIMENT_NAME, "")
    raw_value = value_from_env or experiment_name
    if not raw_value:
        raise ValueError(f"No experiment name provided, and the environment variable {ENV_EXPERIMENT_NAME} is not set.")
    cleaned_value = to_azure_friendly_string(raw_value)
    assert cleaned_value is not None, "Expecting an actual string"
    return cleaned_value


def submit_automl_run(
    workspace: Workspace,
    experiment_name: str,
    automl_config: AutoMLConfig,
    tags: Optional[Dict[str, str]] = None,
    wait_for_completion: bool = False,
    show_output: bool = False,
    recovery_file: Optional[Path] = None,
) -> AutoMLRun:
    """
    Submits an AutoML job to an experiment. The iterations of the job run asynchronously on the compute target that
    is given in the AutoML config.

    :param workspace: The AzureML workspace to use.
    :param experiment_name: The name of the experiment that will be used or created.
    :param automl_config: The AutoML configuration to submit.
    :param tags: A dictionary of string key/value pairs, that will be added as metadata to the run.
    :param wait_for_completion: If False (the default) return after the run is submitted, otherwise wait for
        all iterations to finish.
    :param show_output: If wait_for_completion is True, this parameter indicates whether to show the progress of the
        iterations on sys.stdout.
    :param recovery_file: The file that receives the recovery ID of the new run. Defaults to most_recent_run.txt in
        the current working directory.
    :return: The AutoML parent run.
    """
    experiment = Experiment(workspace=workspace, name=effective_experiment_name(experiment_name))
    run = experiment.submit(automl_config, show_output=False)
    if tags:
        run.set_tags(tags)
    recovery_file = write_run_recovery_file(run, recovery_file)

    # These need to be 'print' not 'logger.info' so that the user always sees them
    print("\n==============================================================================")
    print(f"Successfully queued AutoML run {run.id} in experiment {run.experiment.name}")
    print(f"Experiment name and run ID are available in file {recovery_file}")
    print(f"Experiment URL: {run.experiment.get_portal_url()}")
    print(f"Run URL: {run.get_portal_url()}")
    print("==============================================================================\n")
    if wait_for_completion:
        print("Waiting for the completion of the AutoML run.")
        run.wait_for_completion(show_output=show_output)
        status = run.get_status()
        if status != RUN_STATUS_COMPLETED:
            raise ValueError(f"AutoML run {run.id} in experiment {run.experiment.name} finished with status {status}")
        print("AutoML run completed.")
    return run


@dataclass
class IterationRecord:
    """
    Stores the outcome of one AutoML iteration, that is, one child run of the AutoML parent run.
    """

    iteration: int
    pipeline: str
    duration: Optional[float]
    score: Optional[float]
    status: str


def _duration_seconds(details: Dict) -> Optional[float]:
    start = details.get("startTimeUtc")
    end = details.get("endTimeUtc")
    if not start or not end:
        return None
    return (pd.Timestamp(end) - pd.Timestamp(start)).total_seconds()


def _scalar_metric(value: object) -> Optional[float]:
    # Metrics that are logged repeatedly come back as a list of values
    if isinstance(value, list):
        value = value[-1] if value else None
    if value is None:
        return None
    return float(value)  # type: ignore


def iteration_record(child: Run, primary_metric: str) -> IterationRecord:
    """
    Reads the iteration number, pipeline, duration, score and status of an AutoML child run.

    :param child: A child run of an AutoML parent run.
    :param primary_metric: The metric that the AutoML run optimizes.
    :return: The iteration record.
    :raises ValueError: If the child run is not an AutoML iteration.
    """
    properties = child.properties or {}
    if PROPERTY_ITERATION not in properties:
        raise ValueError(f"Run {child.id} is not an AutoML iteration, it has no '{PROPERTY_ITERATION}' property")
    pipeline = " ".join(
        part for part in (properties.get(PROPERTY_PREPROCESSOR), properties.get(PROPERTY_ALGORITHM)) if part
    )
    details = child.get_details()
    return IterationRecord(
        iteration=int(properties[PROPERTY_ITERATION]),
        pipeline=pipeline,
        duration=_duration_seconds(details),
        score=_scalar_metric(child.get_metrics().get(primary_metric)),
        status=details.get("status") or child.get_status(),
    )


def get_iteration_records(run: Run, primary_metric: str) -> List[IterationRecord]:
    """
    Gets the records for all iterations of an AutoML run that have been started so far. Child runs that are not
    iterations (for example the setup run) are skipped.

    :param run: The AutoML parent run.
    :param primary_metric: The metric that the AutoML run optimizes.
    :return: A list of iteration records, sorted by iteration.
    """
    records = [
        iteration_record(child, primary_metric)
        for child in run.get_children()
        if PROPERTY_ITERATION in (child.properties or {})
    ]
    return sorted(records, key=lambda r: r.iteration)


def summarize_iterations(records: Iterable[IterationRecord], primary_metric: str) -> pd.DataFrame:
    """
    Creates a table of AutoML iterations, in the form that the AutoML console output uses. The BEST column holds the
    best score up to and including each iteration.

    :param records: The iteration records.
    :param primary_metric: The metric that the AutoML run optimizes. This determines whether larger or smaller scores
        are better.
    :return: A data frame with columns ITERATION, PIPELINE, DURATION, METRIC, BEST, sorted by iteration.
    """
    sorted_records = sorted(records, key=lambda r: r.iteration)
    summary = pd.DataFrame(
        {
            COLUMN_ITERATION: [r.iteration for r in sorted_records],
            COLUMN_PIPELINE: [r.pipeline for r in sorted_records],
            COLUMN_DURATION: [format_duration_hms(r.duration) for r in sorted_records],
            COLUMN_METRIC: pd.Series([r.score for r in sorted_records], dtype=float),
        },
        columns=SUMMARY_COLUMNS[:-1],
    )
    scores = summary[COLUMN_METRIC]
    running_best = scores.cummin() if is_metric_minimized(primary_metric) else scores.cummax()
    # cummax/cummin leave NaN at iterations without a score, use the best of the previous iterations there
    summary[COLUMN_BEST] = running_best.ffill()
    return summary


def get_iteration_summary(run: Run, primary_metric: str) -> pd.DataFrame:
    """Gets the table of iterations of an AutoML run that is still running or has finished."""
    return summarize_iterations(get_iteration_records(run, primary_metric), primary_metric)


def _format_score(value: float) -> str:
    return "" if value is None or math.isnan(value) else f"{value:.4f}"


def format_summary_header() -> str:
    return f"{COLUMN_ITERATION:>9}   {COLUMN_PIPELINE:<40} {COLUMN_DURATION:>10} {COLUMN_METRIC:>10} {COLUMN_BEST:>10}"


def format_summary_row(row: pd.Series) -> str:
    """Formats one row of the iteration summary as a line of text, aligned with format_summary_header."""
    return (
        f"{int(row[COLUMN_ITERATION]):>9}   {row[COLUMN_PIPELINE]:<40} {row[COLUMN_DURATION]:>10} "
        f"{_format_score(row[COLUMN_METRIC]):>10} {_format_score(row[COLUMN_BEST]):>10}"
    )


def wait_for_automl_completion(
    run: Run,
    primary_metric: str,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    print_fn: Callable[[str], None] = print,
) -> pd.DataFrame:
    """
    Waits until an AutoML run has finished, printing each iteration once it has finished. If the run did not
    complete successfully, a ValueError is raised.

    :param run: The AutoML parent run.
    :param primary_metric: The metric that the AutoML run optimizes.
    :param poll_interval_seconds: The time between two status queries.
    :param print_fn: The function that receives the lines of the progress table.
    :return: The summary of all iterations, after the run has finished.
    :raises ValueError: If the run did not complete successfully (any status other than Completed)
    """
    printed: Set[int] = set()
    print_fn(format_summary_header())
    while True:
        # Read the status first, so that the last round of records covers all iterations of a finished run.
        status = run.get_status()
        records = [r for r in get_iteration_records(run, primary_metric) if r.status in TERMINAL_RUN_STATUSES]
        summary = summarize_iterations(records, primary_metric)
        for _, row in summary.iterrows():
            iteration = int(row[COLUMN_ITERATION])
            if iteration not in printed:
                print_fn(format_summary_row(row))
                printed.add(iteration)
        if status in TERMINAL_RUN_STATUSES:
            break
        time.sleep(poll_interval_seconds)
    if status != RUN_STATUS_COMPLETED:
        raise ValueError(f'AutoML run "{run.id}" finished with status "{status}"')
    return summary


def cancel_iteration(run: Run, iteration: int) -> bool:
    """
    Cancels a single iteration of an AutoML run. The other iterations continue.

    :param run: The AutoML parent run.
    :param iteration: The number of the iteration to cancel.
    :return: True if the iteration was cancelled, False if it had finished already.
    :raises ValueError: If the run has no iteration with the given number.
    """
    for child in run.get_children():
        if str((child.properties or {}).get(PROPERTY_ITERATION)) == str(iteration):
            status = child.get_status()
            if status in TERMINAL_RUN_STATUSES:
                logger.info(f"Iteration {iteration} of run {run.id} has finished with status {status} already.")
                return False
            logger.info(f"Cancelling iteration {iteration} of run {run.id}")
            child.cancel()
            return True
    raise ValueError(f"Run {run.id} has no iteration {iteration}")


def cancel_run(run: Run) -> None:
    """Cancels an AutoML run including all of its iterations."""
    logger.info(f"Cancelling AutoML run {run.id}")
    run.cancel()


def fetch_automl_run(workspace: Workspace, run_recovery_id: str) -> AutoMLRun:
    """
    Finds an existing AutoML run. The run can be specified either in the experiment_name:run_id format, or just the
    run_id.

    :param workspace: The AzureML workspace to search.
    :param run_recovery_id: The run to find.
    :return: The AutoML parent run.
    """
    if EXPERIMENT_RUN_SEPARATOR in run_recovery_id:
        experiment_name, run_id = split_recovery_id(run_recovery_id)
        experiment = Experiment(workspace, experiment_name)
    else:
        run_id = run_recovery_id.strip()
        experiment = workspace.get_run(run_id).experiment
    run = AutoMLRun(experiment, run_id)
    logger.info(f"Fetched AutoML run {run_id} from experiment {experiment.name}.")
    return run


def get_most_recent_automl_run(workspace: Workspace, run_recovery_file: Optional[Path] = None) -> AutoMLRun:
    """
    Gets the AutoML run that was submitted last from this folder, as recorded in the run recovery file.

    :param workspace: The AzureML workspace.
    :param run_recovery_file: The path of the run recovery file. Defaults to most_recent_run.txt in the current
        working directory.
    :return: The AutoML parent run.
    """
    run_recovery_id = get_most_recent_run_id(run_recovery_file or Path(RUN_RECOVERY_FILE))
    return fetch_automl_run(workspace, run_recovery_id)
