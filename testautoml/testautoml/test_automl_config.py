#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from automl_dsvm.automl_config import (
    CLASSIFICATION_METRICS,
    REGRESSION_METRICS,
    AutoMLJobSettings,
    create_automl_config,
    is_metric_minimized,
    validate_concurrency,
)


@pytest.mark.fast
def test_job_settings_defaults() -> None:
    settings = AutoMLJobSettings()
    assert settings.task == "classification"
    assert settings.primary_metric == "AUC_weighted"
    assert settings.iterations == 20
    assert settings.n_cross_validations == 5
    assert settings.max_concurrent_iterations == 1
    assert settings.max_cores_per_iteration == -1
    assert settings.featurization == "off"
    assert AutoMLJobSettings(preprocess=True).featurization == "auto"
    assert settings.model_explainability
    assert settings.debug_log == "automl_errors.log"


@pytest.mark.parametrize("metric", CLASSIFICATION_METRICS)
@pytest.mark.fast
def test_classification_metrics(metric: str) -> None:
    AutoMLJobSettings(task="classification", primary_metric=metric)
    with pytest.raises(ValueError, match="primary_metric for task regression must be one of"):
        AutoMLJobSettings(task="regression", primary_metric=metric)


@pytest.mark.parametrize("metric", REGRESSION_METRICS)
@pytest.mark.fast
def test_regression_metrics(metric: str) -> None:
    AutoMLJobSettings(task="regression", primary_metric=metric)
    AutoMLJobSettings(task="forecasting", primary_metric=metric, time_column_name="date")
    with pytest.raises(ValueError, match="primary_metric for task classification must be one of"):
        AutoMLJobSettings(task="classification", primary_metric=metric)


@pytest.mark.fast
def test_job_settings_validation() -> None:
    with pytest.raises(ValueError, match="n_cross_validations must be 0 or at least 2"):
        AutoMLJobSettings(n_cross_validations=1)
    AutoMLJobSettings(n_cross_validations=0)
    with pytest.raises(ValueError, match="max_cores_per_iteration must be -1 or a positive number"):
        AutoMLJobSettings(max_cores_per_iteration=0)
    with pytest.raises(ValueError, match="max_cores_per_iteration must be -1 or a positive number"):
        AutoMLJobSettings(max_cores_per_iteration=-2)
    with pytest.raises(ValueError, match="must not be larger than iterations"):
        AutoMLJobSettings(iterations=2, max_concurrent_iterations=3)
    with pytest.raises(ValueError, match="log_level must be one of"):
        AutoMLJobSettings(verbosity="chatty")
    with pytest.raises(ValueError, match="label_column_name must not be empty"):
        AutoMLJobSettings(label_column_name="")


@pytest.mark.fast
def test_is_metric_minimized() -> None:
    assert is_metric_minimized("normalized_root_mean_squared_error")
    assert is_metric_minimized("normalized_mean_absolute_error")
    assert not is_metric_minimized("AUC_weighted")
    assert not is_metric_minimized("r2_score")


@pytest.mark.fast
def test_validate_concurrency() -> None:
    settings = AutoMLJobSettings(max_concurrent_iterations=4)
    validate_concurrency(settings, None)
    validate_concurrency(settings, 4)
    with pytest.raises(ValueError, match="can only run 2 iteration"):
        validate_concurrency(settings, 2)


@pytest.mark.fast
@patch("automl_dsvm.automl_config.AutoMLConfig")
def test_create_automl_config(mock_automl_config: MagicMock) -> None:
    settings = AutoMLJobSettings(
        iterations=10,
        iteration_timeout_minutes=20,
        max_concurrent_iterations=2,
        project_folder=Path("my_project"),
        verbosity="debug",
    )
    compute_target = MagicMock()
    training_data = MagicMock()
    result = create_automl_config(settings, compute_target, training_data)
    assert result == mock_automl_config.return_value
    mock_automl_config.assert_called_once_with(
        task="classification",
        primary_metric="AUC_weighted",
        compute_target=compute_target,
        training_data=training_data,
        label_column_name="label",
        iterations=10,
        iteration_timeout_minutes=20,
        n_cross_validations=5,
        max_concurrent_iterations=2,
        max_cores_per_iteration=-1,
        featurization="off",
        enable_early_stopping=False,
        model_explainability=True,
        verbosity=logging.DEBUG,
        debug_log="automl_errors.log",
        path="my_project",
    )


@pytest.mark.fast
@patch("automl_dsvm.automl_config.AutoMLConfig")
def test_create_automl_config_optional_args(mock_automl_config: MagicMock) -> None:
    settings = AutoMLJobSettings(
        experiment_timeout_hours=1.5, blocked_models=["KNN", "LinearSVM"], preprocess=True
    )
    validation_data = MagicMock()
    create_automl_config(
        settings, MagicMock(), MagicMock(), validation_data=validation_data, weight_column_name="sample_weight"
    )
    kwargs = mock_automl_config.call_args.kwargs
    # Cross validation and a separate validation set are mutually exclusive
    assert kwargs["n_cross_validations"] is None
    assert kwargs["validation_data"] == validation_data
    assert kwargs["weight_column_name"] == "sample_weight"
    assert kwargs["experiment_timeout_hours"] == 1.5
    assert kwargs["blocked_models"] == ["KNN", "LinearSVM"]
    assert kwargs["featurization"] == "auto"


@pytest.mark.fast
def test_forecasting_settings_validation() -> None:
    with pytest.raises(ValueError, match="time_column_name must be set for a forecasting task"):
        AutoMLJobSettings(task="forecasting", primary_metric="r2_score")
    with pytest.raises(ValueError, match="can only be used for forecasting"):
        AutoMLJobSettings(time_column_name="date")
    with pytest.raises(ValueError, match="can only be used for forecasting"):
        AutoMLJobSettings(task="regression", primary_metric="r2_score", forecast_horizon=7)
    settings = AutoMLJobSettings(task="forecasting", primary_metric="r2_score", time_column_name="date")
    assert settings.forecast_horizon is None


@pytest.mark.fast
@patch("automl_dsvm.automl_config.ForecastingParameters")
@patch("automl_dsvm.automl_config.AutoMLConfig")
def test_create_automl_config_forecasting(mock_automl_config: MagicMock, mock_forecasting: MagicMock) -> None:
    settings = AutoMLJobSettings(
        task="forecasting",
        primary_metric="normalized_root_mean_squared_error",
        time_column_name="date",
        forecast_horizon=14,
    )
    create_automl_config(settings, MagicMock(), MagicMock())
    mock_forecasting.assert_called_once_with(time_column_name="date", forecast_horizon=14)
    kwargs = mock_automl_config.call_args.kwargs
    assert kwargs["task"] == "forecasting"
    assert kwargs["forecasting_parameters"] == mock_forecasting.return_value

    mock_forecasting.reset_mock()
    settings.forecast_horizon = None
    create_automl_config(settings, MagicMock(), MagicMock())
    mock_forecasting.assert_called_once_with(time_column_name="date")


@pytest.mark.fast
@patch("automl_dsvm.automl_config.ForecastingParameters")
@patch("automl_dsvm.automl_config.AutoMLConfig")
def test_create_automl_config_without_forecasting(
    mock_automl_config: MagicMock, mock_forecasting: MagicMock
) -> None:
    create_automl_config(AutoMLJobSettings(task="regression", primary_metric="r2_score"), MagicMock(), MagicMock())
    mock_forecasting.assert_not_called()
    assert "forecasting_parameters" not in mock_automl_config.call_args.kwargs
