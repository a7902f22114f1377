#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Retrieving the best model of a finished AutoML run, and the feature importance that explains it.
"""
import logging
from pathlib import Path
from typing import Any, Optional, Tuple

import pandas as pd
from azureml.core import Run
from azureml.interpret import ExplanationClient
from azureml.train.automl.run import AutoMLRun

from automl_dsvm.utils import to_azure_friendly_string

logger = logging.getLogger(__name__)

MODEL_FILE_IN_RUN = "outputs/model.pkl"
MODEL_FILE_NAME = "model.pkl"
ITERATIONS_CSV = "iterations.csv"
FEATURE_IMPORTANCE_CSV = "feature_importance.csv"


def get_best_run_and_model(
    run: AutoMLRun, metric: Optional[str] = None, iteration: Optional[int] = None
) -> Tuple[Run, Any]:
    """
    Gets the best iteration of an AutoML run and its fitted model. By default, "best" refers to the primary metric of
    the run. Alternatively, the best iteration for a different metric, or a specific iteration, can be chosen.

    :param run: The AutoML parent run.
    :param metric: The metric by which to choose the best iteration.
    :param iteration: The iteration to retrieve. Can't be used together with metric.
    :return: A tuple of the child run of the chosen iteration and its fitted model.
    """
    if metric is not None and iteration is not None:
        raise ValueError("Only one of metric and iteration can be given")
    output_args = {}
    if metric is not None:
        output_args["metric"] = metric
    if iteration is not None:
        output_args["iteration"] = iteration
    best_run, fitted_model = run.get_output(**output_args)
    logger.info(f"Selected run {best_run.id} of AutoML run {run.id}")
    return best_run, fitted_model


def get_best_child_run(run: AutoMLRun, metric: Optional[str] = None) -> Run:
    """
    Gets the child run of the best iteration, without downloading and unpickling its model. This works without the
    AutoML training packages installed locally.

    :param run: The AutoML parent run.
    :param metric: The metric by which to choose the best iteration. Defaults to the primary metric of the run.
    :return: The child run of the best iteration.
    """
    best_run = run.get_best_child(metric=metric) if metric is not None else run.get_best_child()
    logger.info(f"Best iteration of AutoML run {run.id} is run {best_run.id}")
    return best_run


def download_best_model(best_run: Run, output_folder: Path, overwrite: bool = False) -> Path:
    """Downloads the pickled model of an AutoML iteration, unless the model file exists already.

    :param best_run: The child run whose model should be downloaded.
    :param output_folder: The folder to download to.
    :param overwrite: Whether to force the download even if the file already exists locally.
    :return: Local path to the downloaded model file.
    """
    output_file = output_folder / MODEL_FILE_NAME
    if not overwrite and output_file.exists():
        logger.info(f"Model file already exists at {output_file}")
    else:
        output_folder.mkdir(exist_ok=True, parents=True)
        best_run.download_file(name=MODEL_FILE_IN_RUN, output_file_path=str(output_file))
        logger.info(f"Model of run {best_run.id} is downloaded to {output_file}")
    return output_file


def get_feature_importance(run: Run, raw: bool = True, top_k: Optional[int] = None) -> pd.Series:
    """
    Gets the global feature importance that AutoML computed for the model of a run.

    :param run: The run that holds the model explanation, usually the best iteration.
    :param raw: If True, get the importance of the raw input features. If False, get the importance of the features
        after AutoML preprocessing.
    :param top_k: If given, only return the k most important features.
    :return: A series that maps from feature name to importance, sorted by descending importance.
    :raises ValueError: If the run has no model explanation.
    """
    client = ExplanationClient.from_run(run)
    explanation = client.download_model_explanation(raw=raw)
    if explanation is None:
        raise ValueError(
            f"Run {run.id} has no model explanation. Submit the AutoML job with model_explainability=True."
        )
    importance = pd.Series(explanation.get_feature_importance_dict(), dtype=float)
    importance = importance.sort_values(ascending=False)
    if top_k is not None:
        importance = importance.head(top_k)
    return importance


def write_results_report(
    output_folder: Path, summary: pd.DataFrame, importance: Optional[pd.Series], best_run_id: str
) -> Path:
    """
    Writes the iteration table and the feature importance to CSV files, in a subfolder of output_folder that is
    named after the best run.

    :param output_folder: The folder in which the report folder is created.
    :param summary: The iteration summary, as returned by get_iteration_summary.
    :param importance: The feature importance, or None if not available.
    :param best_run_id: The ID of the best run.
    :return: The folder that holds the report files.
    """
    report_folder = output_folder / str(to_azure_friendly_string(best_run_id))
    report_folder.mkdir(exist_ok=True, parents=True)
    summary.to_csv(report_folder / ITERATIONS_CSV, index=False)
    if importance is not None:
        importance.rename("importance").rename_axis("feature").to_csv(report_folder / FEATURE_IMPORTANCE_CSV)
    logger.info(f"Results report written to {report_folder}")
    return report_folder
