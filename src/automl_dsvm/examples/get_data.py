#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Example data-loading callback for a remote AutoML run: Classify the handwritten digits from scikit-learn.
The first 10 samples are held out, so that they can be used to try out the best model after training.
"""
from typing import Any, Dict

from sklearn import datasets

NUM_HELD_OUT = 10


def get_data() -> Dict[str, Any]:
    digits = datasets.load_digits()
    X_digits = digits.data[NUM_HELD_OUT:, :]
    y_digits = digits.target[NUM_HELD_OUT:]
    return {"X": X_digits, "y": y_digits}
