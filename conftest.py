#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
import sys
from pathlib import Path


root = Path(__file__).parent
for folder in [root / "src", root / "testautoml"]:
    if str(folder) not in sys.path:
        print(f"Adding to sys.path for running automl-dsvm: {folder}")
        sys.path.insert(0, str(folder))
