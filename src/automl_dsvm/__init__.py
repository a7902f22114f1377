#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------

from automl_dsvm.automl_config import AutoMLJobSettings, create_automl_config, validate_concurrency
from automl_dsvm.compute import (
    ComputeSettings,
    attach_remote_vm,
    get_or_create_compute_target,
    provision_or_attach,
    release_compute_target,
)
from automl_dsvm.data_script import data_to_dataframe, load_data_callback, register_training_dataset, write_data_script
from automl_dsvm.package_setup import automl_dsvm_package_setup, set_logging_levels
from automl_dsvm.results import (
    download_best_model,
    get_best_run_and_model,
    get_feature_importance,
    write_results_report,
)
from automl_dsvm.submission import (
    cancel_iteration,
    cancel_run,
    fetch_automl_run,
    get_iteration_summary,
    submit_automl_run,
    wait_for_automl_completion,
)
from automl_dsvm.utils import get_workspace, split_recovery_id

__all__ = [
    "AutoMLJobSettings",
    "ComputeSettings",
    "attach_remote_vm",
    "automl_dsvm_package_setup",
    "cancel_iteration",
    "cancel_run",
    "create_automl_config",
    "data_to_dataframe",
    "download_best_model",
    "fetch_automl_run",
    "get_best_run_and_model",
    "get_feature_importance",
    "get_iteration_summary",
    "get_or_create_compute_target",
    "get_workspace",
    "load_data_callback",
    "provision_or_attach",
    "register_training_dataset",
    "release_compute_target",
    "set_logging_levels",
    "split_recovery_id",
    "submit_automl_run",
    "validate_concurrency",
    "wait_for_automl_completion",
    "write_data_script",
    "write_results_report",
]
