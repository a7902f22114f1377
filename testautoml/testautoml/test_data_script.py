#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from automl_dsvm.data_script import (
    DATA_SCRIPT_NAME,
    DATASTORE_FOLDER,
    EXAMPLE_DATA_SCRIPT,
    WEIGHT_COLUMN,
    data_to_dataframe,
    load_data_callback,
    register_training_dataset,
    validation_data_to_dataframe,
    write_data_script,
)


@pytest.mark.fast
def test_write_example_data_script(tmp_path: Path) -> None:
    project_folder = tmp_path / "project"
    script = write_data_script(project_folder)
    assert script == project_folder / DATA_SCRIPT_NAME
    assert script.read_text() == EXAMPLE_DATA_SCRIPT.read_text()
    # Writing again, with the script itself as the source, leaves the file unchanged
    assert write_data_script(project_folder, script) == script
    assert script.read_text() == EXAMPLE_DATA_SCRIPT.read_text()


@pytest.mark.fast
def test_write_data_script_missing_source(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Data script does not exist"):
        write_data_script(tmp_path, tmp_path / "nothing.py")


@pytest.mark.fast
def test_load_data_callback(tmp_path: Path) -> None:
    script = tmp_path / "my_data.py"
    script.write_text("def get_data():\n    return {'X': [[1, 2], [3, 4]], 'y': [0, 1]}\n")
    get_data = load_data_callback(script)
    assert get_data() == {"X": [[1, 2], [3, 4]], "y": [0, 1]}


@pytest.mark.fast
def test_load_data_callback_fails(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_data_callback(tmp_path / "missing.py")
    no_function = tmp_path / "no_function.py"
    no_function.write_text("get_data = 42\n")
    with pytest.raises(ValueError, match="must define a function get_data"):
        load_data_callback(no_function)


@pytest.mark.fast
def test_example_data_script() -> None:
    """The bundled example holds out the first 10 samples of the digits dataset."""
    data = load_data_callback(EXAMPLE_DATA_SCRIPT)()
    assert data["X"].shape == (1787, 64)
    assert data["y"].shape == (1787,)
    frame = data_to_dataframe(data)
    assert frame.shape == (1787, 65)
    assert list(frame.columns)[-1] == "label"


@pytest.mark.fast
def test_data_to_dataframe() -> None:
    data = {"X": np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]]), "y": np.array([[0], [1], [0]])}
    frame = data_to_dataframe(data, label_column="target")
    assert list(frame.columns) == ["feature_0", "feature_1", "target"]
    assert frame["target"].tolist() == [0, 1, 0]
    assert frame["feature_1"].tolist() == [2.0, 4.0, 6.0]


@pytest.mark.fast
def test_data_to_dataframe_with_columns_and_weights() -> None:
    data = {
        "X": [[1, 2], [3, 4]],
        "y": [1, 0],
        "columns": ["age", "height"],
        "sample_weight": [0.5, 2.0],
    }
    frame = data_to_dataframe(data)
    assert list(frame.columns) == ["age", "height", "label", WEIGHT_COLUMN]
    assert frame[WEIGHT_COLUMN].tolist() == [0.5, 2.0]


@pytest.mark.fast
def test_data_to_dataframe_from_dataframe() -> None:
    features = pd.DataFrame({"a": [1, 2], "b": [3, 4]}, index=[10, 11])
    frame = data_to_dataframe({"X": features, "y": pd.Series([1, 0], index=[10, 11])})
    assert list(frame.columns) == ["a", "b", "label"]
    assert frame["label"].tolist() == [1, 0]
    assert list(frame.index) == [0, 1]


@pytest.mark.fast
def test_data_to_dataframe_from_dataframe_without_column_names() -> None:
    # A frame built from an array has integer column names, which cannot be written to parquet
    features = pd.DataFrame(np.array([[1.0, 2.0], [3.0, 4.0]]))
    frame = data_to_dataframe({"X": features, "y": [0, 1]})
    assert list(frame.columns) == ["0", "1", "label"]
    assert all(isinstance(column, str) for column in frame.columns)


@pytest.mark.fast
def test_data_to_dataframe_fails() -> None:
    with pytest.raises(ValueError, match="must return a dictionary"):
        data_to_dataframe([1, 2])  # type: ignore
    with pytest.raises(ValueError, match="missing the key"):
        data_to_dataframe({"X": [[1]]})
    with pytest.raises(ValueError, match="there are 1 labels"):
        data_to_dataframe({"X": [[1], [2]], "y": [1]})
    with pytest.raises(ValueError, match="clashes with a feature"):
        data_to_dataframe({"X": [[1]], "y": [1], "columns": ["label"]})
    with pytest.raises(ValueError, match="Got 1 column names"):
        data_to_dataframe({"X": [[1, 2]], "y": [1], "columns": ["a"]})
    with pytest.raises(ValueError, match="sample weights"):
        data_to_dataframe({"X": [[1], [2]], "y": [1, 0], "sample_weight": [1.0]})
    with pytest.raises(ValueError, match="1 or 2 dimensional"):
        data_to_dataframe({"X": np.zeros((2, 2, 2)), "y": [1, 0]})


@pytest.mark.fast
def test_validation_data_to_dataframe() -> None:
    assert validation_data_to_dataframe({"X": [[1]], "y": [1]}) is None
    frame = validation_data_to_dataframe({"X": [[1]], "y": [1], "X_valid": [[2], [3]], "y_valid": [0, 1]})
    assert frame is not None
    assert list(frame.columns) == ["feature_0", "label"]
    assert len(frame) == 2
    with pytest.raises(ValueError, match="or neither"):
        validation_data_to_dataframe({"X_valid": [[2]]})


@pytest.mark.fast
@patch("automl_dsvm.data_script.Dataset")
def test_register_training_dataset(mock_dataset: MagicMock) -> None:
    workspace = MagicMock()
    frame = pd.DataFrame({"feature_0": [1, 2], "label": [0, 1]})
    result = register_training_dataset(workspace, frame, "digits_training")
    assert result == mock_dataset.Tabular.register_pandas_dataframe.return_value
    mock_dataset.Tabular.register_pandas_dataframe.assert_called_once_with(
        dataframe=frame,
        target=(workspace.get_default_datastore.return_value, f"{DATASTORE_FOLDER}/digits_training"),
        name="digits_training",
        show_progress=False,
    )
    with patch("automl_dsvm.data_script.Datastore") as mock_datastore:
        register_training_dataset(workspace, frame, "digits_training", datastore_name="mystore")
        mock_datastore.get.assert_called_once_with(workspace, "mystore")
