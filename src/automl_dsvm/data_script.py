#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
The data-loading callback of a remote AutoML run. The callback is a Python file with a function `get_data()` that
returns a dictionary with the features in "X" and the labels in "y". Optionally, the dictionary can contain
"X_valid" and "y_valid" for a separate validation set, "sample_weight" with one weight per training sample, and
"columns" with the feature names.

The callback is executed on the submitting machine, and its result is registered as a tabular dataset in the
workspace, from where the remote VM reads it.
"""
import importlib.util
import logging
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd
from azureml.core import Dataset, Datastore, Workspace
from azureml.data import TabularDataset

logger = logging.getLogger(__name__)

DATA_SCRIPT_NAME = "get_data.py"
GET_DATA_FUNCTION = "get_data"
EXAMPLE_DATA_SCRIPT = Path(__file__).parent / "examples" / DATA_SCRIPT_NAME

KEY_FEATURES = "X"
KEY_LABELS = "y"
KEY_VALIDATION_FEATURES = "X_valid"
KEY_VALIDATION_LABELS = "y_valid"
KEY_SAMPLE_WEIGHT = "sample_weight"
KEY_COLUMNS = "columns"

DEFAULT_LABEL_COLUMN = "label"
WEIGHT_COLUMN = "sample_weight"
# Folder in the datastore below which all training data is uploaded
DATASTORE_FOLDER = "automl_dsvm"


def write_data_script(project_folder: Path, source: Optional[Path] = None) -> Path:
    """
    Copies the data-loading callback into the project folder, creating the folder if needed. The project folder
    holds everything that belongs to one AutoML experiment.

    :param project_folder: The folder to copy the script to.
    :param source: The script that defines `get_data()`. If not given, the digits example that ships with this
        package is used.
    :return: The path of the data script in the project folder.
    """
    source = source or EXAMPLE_DATA_SCRIPT
    if not source.is_file():
        raise FileNotFoundError(f"Data script does not exist: {source}")
    project_folder.mkdir(parents=True, exist_ok=True)
    target = project_folder / DATA_SCRIPT_NAME
    if source.resolve() != target.resolve():
        shutil.copyfile(source, target)
    logger.info(f"Data script {source} is available as {target}")
    return target


def load_data_callback(script_path: Path) -> Callable[[], Dict[str, Any]]:
    """
    Imports the data script as a module and returns its `get_data` function.

    :param script_path: The path to the data script.
    :return: The `get_data` function of the script.
    :raises FileNotFoundError: If the script does not exist.
    :raises ValueError: If the script does not define a callable `get_data`.
    """
    if not script_path.is_file():
        raise FileNotFoundError(f"Data script does not exist: {script_path}")
    spec = importlib.util.spec_from_file_location(f"automl_data_script_{script_path.stem}", str(script_path))
    if spec is None or spec.loader is None:
        raise ValueError(f"Unable to load {script_path} as a Python module")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    get_data = getattr(module, GET_DATA_FUNCTION, None)
    if get_data is None or not callable(get_data):
        raise ValueError(f"The data script {script_path} must define a function {GET_DATA_FUNCTION}()")
    return get_data


def _to_frame(features: Any, labels: Any, columns: Optional[List[str]], label_column: str) -> pd.DataFrame:
    if isinstance(features, pd.DataFrame):
        frame = features.reset_index(drop=True).copy()
        if columns is not None:
            frame.columns = columns
        # Parquet upload of the registered dataset needs string column names
        frame.columns = frame.columns.map(str)
    else:
        array = np.asarray(features)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise ValueError(f"Features must be 1 or 2 dimensional, but got shape {array.shape}")
        names = columns if columns is not None else [f"feature_{i}" for i in range(array.shape[1])]
        if len(names) != array.shape[1]:
            raise ValueError(f"Got {len(names)} column names, but the features have {array.shape[1]} columns")
        frame = pd.DataFrame(array, columns=names)
    label_values = np.asarray(labels).ravel()
    if len(label_values) != len(frame):
        raise ValueError(f"Features have {len(frame)} rows, but there are {len(label_values)} labels")
    if label_column in frame.columns:
        raise ValueError(f"The label column name '{label_column}' clashes with a feature of the same name")
    frame[label_column] = label_values
    return frame


def data_to_dataframe(data: Dict[str, Any], label_column: str = DEFAULT_LABEL_COLUMN) -> pd.DataFrame:
    """
    Converts the training part of the result of `get_data()` into a single data frame. The labels are stored in the
    last column, or the second last if sample weights are given.

    :param data: The dictionary returned by the data-loading callback.
    :param label_column: The name of the column that holds the labels.
    :return: A data frame with features, labels, and optionally sample weights.
    """
    if not isinstance(data, dict):
        raise ValueError(f"{GET_DATA_FUNCTION}() must return a dictionary, but returned {type(data).__name__}")
    missing = [key for key in (KEY_FEATURES, KEY_LABELS) if data.get(key) is None]
    if missing:
        raise ValueError(f"The result of {GET_DATA_FUNCTION}() is missing the key(s) {missing}")
    frame = _to_frame(data[KEY_FEATURES], data[KEY_LABELS], data.get(KEY_COLUMNS), label_column)
    weights = data.get(KEY_SAMPLE_WEIGHT)
    if weights is not None:
        weight_values = np.asarray(weights).ravel()
        if len(weight_values) != len(frame):
            raise ValueError(f"There are {len(frame)} training samples, but {len(weight_values)} sample weights")
        if WEIGHT_COLUMN in frame.columns:
            raise ValueError(f"The column name '{WEIGHT_COLUMN}' is reserved for sample weights")
        frame[WEIGHT_COLUMN] = weight_values
    return frame


def validation_data_to_dataframe(
    data: Dict[str, Any], label_column: str = DEFAULT_LABEL_COLUMN
) -> Optional[pd.DataFrame]:
    """
    Converts the validation part of the result of `get_data()` into a data frame.

    :param data: The dictionary returned by the data-loading callback.
    :param label_column: The name of the column that holds the labels.
    :return: A data frame with features and labels, or None if the callback did not return validation data.
    """
    features = data.get(KEY_VALIDATION_FEATURES)
    labels = data.get(KEY_VALIDATION_LABELS)
    if features is None and labels is None:
        return None
    if features is None or labels is None:
        raise ValueError(
            f"Validation data must have both '{KEY_VALIDATION_FEATURES}' and '{KEY_VALIDATION_LABELS}', or neither"
        )
    return _to_frame(features, labels, data.get(KEY_COLUMNS), label_column)


def register_training_dataset(
    workspace: Workspace, frame: pd.DataFrame, dataset_name: str, datastore_name: Optional[str] = None
) -> TabularDataset:
    """
    Uploads a data frame to a datastore and registers it as a tabular dataset, so that the remote VM can read it.
    If a dataset of the same name exists already, a new version is created.

    :param workspace: The AzureML workspace to register the dataset in.
    :param frame: The data to upload.
    :param dataset_name: The name under which the dataset is registered.
    :param datastore_name: The datastore to upload to. If not given, use the default datastore of the workspace.
    :return: The registered dataset.
    """
    datastore = Datastore.get(workspace, datastore_name) if datastore_name else workspace.get_default_datastore()
    logger.info(
        f"Uploading {len(frame)} rows x {len(frame.columns)} columns to datastore {datastore.name}, "
        f"registering as dataset '{dataset_name}'"
    )
    return Dataset.Tabular.register_pandas_dataframe(
        dataframe=frame,
        target=(datastore, f"{DATASTORE_FOLDER}/{dataset_name}"),
        name=dataset_name,
        show_progress=False,
    )
