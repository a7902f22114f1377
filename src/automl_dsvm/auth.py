#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Authentication against the AzureML workspace that hosts the AutoML experiments, and access to the secrets that
are passed in via AUTOML_ environment variables.
"""
import logging
import os
from typing import Optional, Union

from azureml.core.authentication import (
    AzureCliAuthentication,
    InteractiveLoginAuthentication,
    ServicePrincipalAuthentication,
)
from azureml.exceptions import AuthenticationException

logger = logging.getLogger(__name__)

# Environment variables used for authentication
ENV_SERVICE_PRINCIPAL_ID = "AUTOML_SERVICE_PRINCIPAL_ID"
ENV_SERVICE_PRINCIPAL_PASSWORD = "AUTOML_SERVICE_PRINCIPAL_PASSWORD"
ENV_TENANT_ID = "AUTOML_TENANT_ID"

# This is an environment variable that is set by GitHub Actions, for checking if the code is running in GitHub
ENV_GITHUB_ACTIONS = "GITHUB_ACTIONS"

# The scope for the access tokens that are requested from Azure
ACCESS_TOKEN_SCOPE = "https://management.azure.com/.default"

AuthenticationType = Union[AzureCliAuthentication, InteractiveLoginAuthentication, ServicePrincipalAuthentication]


def get_secret_from_environment(name: str, allow_missing: bool = False) -> Optional[str]:
    """
    Reads a secret, like a service principal password or the admin password of the DSVM, from the environment.
    Secrets are never accepted on the commandline, because the commandline is stored in the run tags.

    :param name: The name of the environment variable, case insensitive.
    :param allow_missing: If True, return None for a missing or empty variable. If False, raise a ValueError.
    :return: The secret, or None if it is missing and allow_missing is True.
    """
    name = name.upper()
    value = os.environ.get(name, None)
    if not value and not allow_missing:
        raise ValueError(f"There is no value stored for the secret named '{name}'")
    return value


def get_authentication() -> AuthenticationType:
    """
    Chooses how the runner logs into the workspace. Service principal credentials in the AUTOML_SERVICE_PRINCIPAL_*
    and AUTOML_TENANT_ID variables take precedence, which is what unattended builds use. Otherwise an existing
    "az login" session is used, and as a last resort an interactive browser login.

    :return: The authentication object that is passed to Workspace.get.
    """
    service_principal_id = get_secret_from_environment(ENV_SERVICE_PRINCIPAL_ID, allow_missing=True)
    tenant_id = get_secret_from_environment(ENV_TENANT_ID, allow_missing=True)
    service_principal_password = get_secret_from_environment(ENV_SERVICE_PRINCIPAL_PASSWORD, allow_missing=True)
    if service_principal_id and tenant_id and service_principal_password:
        logger.warning(
            "The use of Service Principal credentials is discouraged because of the risk of password "
            "compromise. Consider switching to OpenID Connect authentication."
        )
        logger.info(
            "Found environment variables for Service Principal authentication: First characters of App ID "
            f"are {service_principal_id[:8]}... in tenant {tenant_id[:8]}..."
        )
        return ServicePrincipalAuthentication(
            tenant_id=tenant_id,
            service_principal_id=service_principal_id,
            service_principal_password=service_principal_password,
        )
    try:
        logger.debug("Trying to authenticate using Azure CLI")
        auth = AzureCliAuthentication()
        _ = auth.get_token(ACCESS_TOKEN_SCOPE)
        logger.info("Successfully started AzureCLI authentication.")
        return auth
    except AuthenticationException as ex:
        # There is nobody to complete an interactive login on a GitHub agent. Surface the CLI problem instead.
        if os.getenv(ENV_GITHUB_ACTIONS, "") == "true":
            raise AuthenticationException("AzureCLI authentication must be set up when running in GitHub") from ex

    logger.info(
        "Using interactive login to Azure. To use Service Principal authentication, set the environment "
        f"variables {ENV_SERVICE_PRINCIPAL_ID}, {ENV_SERVICE_PRINCIPAL_PASSWORD}, and {ENV_TENANT_ID}. "
        "For Azure CLI authentication, log in using 'az login' and ensure that the subscription is set."
    )
    return InteractiveLoginAuthentication()
