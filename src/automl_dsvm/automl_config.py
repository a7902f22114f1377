#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Settings for an AutoML job on a remote VM, and their translation into the AutoMLConfig object of the AzureML SDK.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import param
from azureml.automl.core.forecasting_parameters import ForecastingParameters
from azureml.core.compute import ComputeTarget
from azureml.data import TabularDataset
from azureml.train.automl import AutoMLConfig

from automl_dsvm.logging import standardize_log_level
from automl_dsvm.utils import GenericConfig, check_is_any_of

logger = logging.getLogger(__name__)

TASK_CLASSIFICATION = "classification"
TASK_REGRESSION = "regression"
TASK_FORECASTING = "forecasting"

CLASSIFICATION_METRICS = [
    "accuracy",
    "AUC_weighted",
    "average_precision_score_weighted",
    "norm_macro_recall",
    "precision_score_weighted",
]
REGRESSION_METRICS = [
    "spearman_correlation",
    "normalized_root_mean_squared_error",
    "r2_score",
    "normalized_mean_absolute_error",
]

METRICS_PER_TASK = {
    TASK_CLASSIFICATION: CLASSIFICATION_METRICS,
    TASK_REGRESSION: REGRESSION_METRICS,
    TASK_FORECASTING: REGRESSION_METRICS,
}

DEFAULT_DEBUG_LOG = "automl_errors.log"


def is_metric_minimized(metric: str) -> bool:
    """Returns True if smaller values of the metric are better. This holds for all the error metrics."""
    return "error" in metric.lower()


class AutoMLJobSettings(GenericConfig):
    task: str = param.Selector(
        default=TASK_CLASSIFICATION,
        objects=[TASK_CLASSIFICATION, TASK_REGRESSION, TASK_FORECASTING],
        doc="The type of machine learning problem to solve",
    )
    primary_metric: str = param.String(
        default="AUC_weighted", doc="The metric that AutoML optimizes when selecting the best model"
    )
    iterations: int = param.Integer(default=20, bounds=(1, None), doc="The number of pipelines to try")
    iteration_timeout_minutes: int = param.Integer(
        default=60, bounds=(1, None), doc="Maximum time in minutes that each iteration can run"
    )
    experiment_timeout_hours: Optional[float] = param.Number(
        default=None,
        allow_None=True,
        bounds=(0.25, None),
        doc="Maximum time in hours for all iterations together. If not set, the AzureML default applies.",
    )
    n_cross_validations: int = param.Integer(
        default=5, bounds=(0, None), doc="The number of cross validation splits. Use 0 for a separate validation set."
    )
    max_concurrent_iterations: int = param.Integer(
        default=1,
        bounds=(1, None),
        doc="Maximum number of iterations that run in parallel. This must not exceed the number of VMs, or the "
        "number of cores of an attached VM.",
    )
    max_cores_per_iteration: int = param.Integer(
        default=-1, doc="Maximum number of cores that each iteration can use. -1 means all cores."
    )
    preprocess: bool = param.Boolean(
        default=False, doc="If True, AutoML scales, normalizes and imputes the data before training."
    )
    enable_early_stopping: bool = param.Boolean(
        default=False, doc="If True, stop the experiment when the score stops improving"
    )
    model_explainability: bool = param.Boolean(
        default=True, doc="If True, compute feature importance for the best model"
    )
    blocked_models: List[str] = param.List(
        default=[], item_type=str, doc="Comma separated list of algorithms that AutoML should not try"
    )
    verbosity: str = param.String(default="INFO", doc="Logging level of the AutoML SDK on the remote VM")
    label_column_name: str = param.String(default="label", doc="The name of the column that holds the labels")
    project_folder: Path = param.ClassSelector(
        class_=Path,
        default=Path("automl_remote_dsvm"),
        doc="The local folder that holds the data script and the debug log",
    )
    debug_log: str = param.String(default=DEFAULT_DEBUG_LOG, doc="The file that AutoML writes debug messages to")
    time_column_name: Optional[str] = param.String(
        default=None, allow_None=True, doc="The column that holds the timestamps. Required for forecasting."
    )
    forecast_horizon: Optional[int] = param.Integer(
        default=None,
        allow_None=True,
        bounds=(1, None),
        doc="The number of periods to forecast. If not set, the AzureML default applies.",
    )

    def validate(self) -> None:
        check_is_any_of(f"primary_metric for task {self.task}", self.primary_metric, METRICS_PER_TASK[self.task])
        if self.n_cross_validations == 1:
            raise ValueError("n_cross_validations must be 0 or at least 2, but got 1")
        if self.max_cores_per_iteration == 0 or self.max_cores_per_iteration < -1:
            raise ValueError(
                f"max_cores_per_iteration must be -1 or a positive number, but got {self.max_cores_per_iteration}"
            )
        if self.max_concurrent_iterations > self.iterations:
            raise ValueError(
                f"max_concurrent_iterations ({self.max_concurrent_iterations}) must not be larger than "
                f"iterations ({self.iterations})"
            )
        if not self.label_column_name:
            raise ValueError("label_column_name must not be empty")
        if self.task == TASK_FORECASTING:
            if not self.time_column_name:
                raise ValueError("time_column_name must be set for a forecasting task")
        elif self.time_column_name is not None or self.forecast_horizon is not None:
            raise ValueError(
                f"time_column_name and forecast_horizon can only be used for forecasting, but the task is {self.task}"
            )
        standardize_log_level(self.verbosity)

    @property
    def featurization(self) -> str:
        return "auto" if self.preprocess else "off"


def validate_concurrency(settings: AutoMLJobSettings, limit: Optional[int]) -> None:
    """
    Checks that the number of concurrent iterations can be served by the compute target. Each concurrent
    iteration needs its own node, or its own core on an attached VM.

    :param settings: The AutoML job settings.
    :param limit: The maximum number of concurrent iterations that the compute target supports, or None if not
        known.
    :raises ValueError: If the job settings ask for more concurrent iterations than the limit.
    """
    if limit is None:
        logger.debug("The concurrency limit of the compute target is not known, skipping the check.")
        return
    if settings.max_concurrent_iterations > limit:
        raise ValueError(
            f"max_concurrent_iterations is {settings.max_concurrent_iterations}, but the compute target can only run "
            f"{limit} iteration(s) in parallel"
        )


def create_automl_config(
    settings: AutoMLJobSettings,
    compute_target: ComputeTarget,
    training_data: TabularDataset,
    validation_data: Optional[TabularDataset] = None,
    weight_column_name: Optional[str] = None,
) -> AutoMLConfig:
    """
    Creates the AutoML configuration that is submitted to the experiment.

    :param settings: The AutoML job settings.
    :param compute_target: The compute target that the iterations run on.
    :param training_data: The registered training dataset, containing features and the label column.
    :param validation_data: An optional validation dataset. Cross validation is switched off when it is given.
    :param weight_column_name: The column of the training data that holds sample weights, if any.
    :return: The AutoML configuration.
    """
    n_cross_validations = settings.n_cross_validations
    if validation_data is not None and n_cross_validations:
        logger.info("A validation dataset is given, switching off cross validation.")
        n_cross_validations = None
    elif not n_cross_validations:
        n_cross_validations = None
    automl_args = {
        "task": settings.task,
        "primary_metric": settings.primary_metric,
        "compute_target": compute_target,
        "training_data": training_data,
        "label_column_name": settings.label_column_name,
        "iterations": settings.iterations,
        "iteration_timeout_minutes": settings.iteration_timeout_minutes,
        "n_cross_validations": n_cross_validations,
        "max_concurrent_iterations": settings.max_concurrent_iterations,
        "max_cores_per_iteration": settings.max_cores_per_iteration,
        "featurization": settings.featurization,
        "enable_early_stopping": settings.enable_early_stopping,
        "model_explainability": settings.model_explainability,
        "verbosity": standardize_log_level(settings.verbosity),
        "debug_log": settings.debug_log,
        "path": str(settings.project_folder),
    }
    if settings.experiment_timeout_hours is not None:
        automl_args["experiment_timeout_hours"] = settings.experiment_timeout_hours
    if validation_data is not None:
        automl_args["validation_data"] = validation_data
    if weight_column_name:
        automl_args["weight_column_name"] = weight_column_name
    if settings.blocked_models:
        automl_args["blocked_models"] = settings.blocked_models
    if settings.task == TASK_FORECASTING:
        forecasting_args: Dict[str, Any] = {"time_column_name": settings.time_column_name}
        if settings.forecast_horizon is not None:
            forecasting_args["forecast_horizon"] = settings.forecast_horizon
        automl_args["forecasting_parameters"] = ForecastingParameters(**forecasting_args)
    logger.info(
        f"AutoML {settings.task} job with {settings.iterations} iterations, optimizing {settings.primary_metric}, "
        f"{settings.max_concurrent_iterations} iteration(s) in parallel"
    )
    return AutoMLConfig(**automl_args)
