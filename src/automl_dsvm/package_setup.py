#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Process-wide setup that the automl-dsvm runner and the tests call once at startup.
"""
import logging
import warnings
from typing import Dict


def set_logging_levels(levels: Dict[str, int]) -> None:
    """
    :param levels: Maps the name of a logger, usually the top-level package of a library, to its new level.
    """
    for module, level in levels.items():
        logging.getLogger(module).setLevel(level)


def automl_dsvm_package_setup() -> None:
    """
    Reduces the logging level for the libraries that are particularly talkative while a remote AutoML run is
    being provisioned and monitored. When running in DEBUG mode, we want diagnostics about the compute target and
    the iterations, but not every HTTP request that the AzureML SDK sends while polling.
    """
    module_levels = {
        # The adal package creates a logging.info line each time it gets an authentication token, avoid that.
        "adal-python": logging.WARNING,
        # Azure core prints full HTTP requests even in INFO mode
        "azure": logging.WARNING,
        "azureml": logging.INFO,
        # Uploading the training data prints one line per file chunk at INFO level.
        "azureml.data": logging.WARNING,
        # The AutoML client logs its own telemetry on every status poll.
        "azureml.train.automl": logging.WARNING,
        "msal": logging.INFO,
        "msrest": logging.INFO,
        "urllib3": logging.INFO,
    }
    set_logging_levels(module_levels)
    # Raised inside the authentication libraries on every token refresh
    warnings.filterwarnings("ignore", category=DeprecationWarning, module="jwt")
