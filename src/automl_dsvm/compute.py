#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------
"""
Provisioning of the remote virtual machine that AutoML iterations run on. A compute target is either a managed VM
that AzureML creates on demand, or an existing Data Science VM that is attached via SSH.
"""
import logging
import re
from pathlib import Path
from typing import Optional

import param
from azureml.core import Workspace
from azureml.core.compute import AmlCompute, ComputeTarget, RemoteCompute
from azureml.core.compute_target import ComputeTargetException

from automl_dsvm.auth import get_secret_from_environment
from automl_dsvm.utils import GenericConfig

logger = logging.getLogger(__name__)

# Secrets for attaching an existing VM. These are never read from the commandline.
ENV_DSVM_PASSWORD = "AUTOML_DSVM_PASSWORD"
ENV_DSVM_KEY_PASSPHRASE = "AUTOML_DSVM_KEY_PASSPHRASE"

DEFAULT_VM_SIZE = "Standard_D2_v2"
COMPUTE_NAME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9-]{1,15}$"

# Value of ComputeTarget.type for VMs that are attached via SSH
REMOTE_VM_COMPUTE_TYPE = "VirtualMachine"


class ComputeSettings(GenericConfig):
    compute_name: str = param.String(default="mydsvm", doc="The name of the compute target in the AzureML workspace")
    vm_size: str = param.String(
        default=DEFAULT_VM_SIZE, doc="The VM size to use when a new compute target needs to be provisioned"
    )
    vm_priority: str = param.Selector(
        default="dedicated", objects=["dedicated", "lowpriority"], doc="The priority of provisioned VMs"
    )
    min_nodes: int = param.Integer(default=0, bounds=(0, None), doc="Minimum number of VMs kept alive")
    max_nodes: int = param.Integer(
        default=1, bounds=(1, None), doc="Maximum number of VMs. Each VM runs one AutoML iteration at a time."
    )
    idle_seconds_before_scaledown: int = param.Integer(
        default=1800, bounds=(0, None), doc="Idle time after which provisioned VMs are released"
    )
    remote_address: Optional[str] = param.String(
        default=None,
        allow_None=True,
        doc="Public IP address or DNS name of an existing VM to attach. If this or remote_resource_id is set, the "
        "VM is attached instead of provisioned.",
    )
    remote_resource_id: Optional[str] = param.String(
        default=None, allow_None=True, doc="Azure resource ID of an existing VM to attach"
    )
    ssh_port: int = param.Integer(default=22, doc="SSH port of the VM to attach")
    username: Optional[str] = param.String(default=None, allow_None=True, doc="SSH user name on the VM to attach")
    private_key_file: Optional[Path] = param.ClassSelector(
        class_=Path,
        default=None,
        allow_None=True,
        doc=f"SSH private key for the VM to attach. If not given, the password is read from {ENV_DSVM_PASSWORD}",
    )

    def validate(self) -> None:
        if not re.match(COMPUTE_NAME_PATTERN, self.compute_name or ""):
            raise ValueError(
                f"Invalid compute_name '{self.compute_name}': The name must be 2 to 16 characters long, start with a "
                "letter, and only contain letters, digits and hyphens."
            )
        if self.min_nodes > self.max_nodes:
            raise ValueError(f"min_nodes ({self.min_nodes}) must not be larger than max_nodes ({self.max_nodes})")
        if not 1 <= self.ssh_port <= 65535:
            raise ValueError(f"ssh_port must be between 1 and 65535, but got {self.ssh_port}")
        if is_attach_mode(self) and not self.username:
            raise ValueError("To attach an existing VM, a username must be given.")


def is_attach_mode(settings: ComputeSettings) -> bool:
    """Returns True if the settings describe an existing VM that should be attached, rather than a VM that should
    be provisioned."""
    return bool(settings.remote_address) or bool(settings.remote_resource_id)


def _find_compute_target(workspace: Workspace, compute_name: str) -> Optional[ComputeTarget]:
    """
    Looks up a compute target by name. Only the "not found" error of the SDK is interpreted as the target being
    absent, all other errors (authentication, network) are raised.

    :param workspace: The AzureML workspace to search.
    :param compute_name: The name of the compute target.
    :return: The compute target, or None if there is no compute target of that name.
    """
    try:
        return ComputeTarget(workspace=workspace, name=compute_name)
    except ComputeTargetException:
        logger.debug(f"Compute target '{compute_name}' does not exist in workspace {workspace.name}")
        return None


def get_or_create_compute_target(
    workspace: Workspace, settings: ComputeSettings, show_output: bool = True
) -> ComputeTarget:
    """
    Returns the compute target of the given name if it exists already. Otherwise, provisions a new managed VM
    and waits until provisioning has finished.

    :param workspace: The AzureML workspace in which the compute target lives.
    :param settings: The compute settings, giving name, VM size and scaling limits.
    :param show_output: If True, print the provisioning progress to stdout.
    :return: The existing or newly created compute target.
    """
    existing = _find_compute_target(workspace, settings.compute_name)
    if existing is not None:
        logger.info(f"Found existing compute target '{settings.compute_name}' of type {existing.type}, using it.")
        return existing
    logger.info(
        f"Creating compute target '{settings.compute_name}' with VM size {settings.vm_size}, "
        f"up to {settings.max_nodes} node(s). This can take several minutes."
    )
    provisioning_config = AmlCompute.provisioning_configuration(
        vm_size=settings.vm_size,
        vm_priority=settings.vm_priority,
        min_nodes=settings.min_nodes,
        max_nodes=settings.max_nodes,
        idle_seconds_before_scaledown=settings.idle_seconds_before_scaledown,
    )
    compute_target = ComputeTarget.create(workspace, settings.compute_name, provisioning_config)
    compute_target.wait_for_completion(show_output=show_output)
    logger.info(f"Compute target '{settings.compute_name}' is ready.")
    return compute_target


def attach_remote_vm(workspace: Workspace, settings: ComputeSettings, show_output: bool = True) -> ComputeTarget:
    """
    Attaches an existing virtual machine (for example a Data Science VM) to the workspace via SSH. If a compute target
    of the same name is attached already, that is returned instead.

    :param workspace: The AzureML workspace to attach the VM to.
    :param settings: The compute settings, giving address or resource ID, SSH port, username and key file.
    :param show_output: If True, print the progress of the attach operation to stdout.
    :return: The attached compute target.
    :raises ValueError: If neither a password nor a private key file are available.
    """
    existing = _find_compute_target(workspace, settings.compute_name)
    if existing is not None:
        logger.info(f"Compute target '{settings.compute_name}' is attached already, using it.")
        return existing
    password = get_secret_from_environment(ENV_DSVM_PASSWORD, allow_missing=True)
    if settings.private_key_file is None and not password:
        raise ValueError(
            f"To attach the VM, either provide a private_key_file or set the environment variable {ENV_DSVM_PASSWORD}"
        )
    if settings.private_key_file is not None and not settings.private_key_file.is_file():
        raise FileNotFoundError(f"SSH private key file does not exist: {settings.private_key_file}")
    attach_args = {
        "ssh_port": settings.ssh_port,
        "username": settings.username,
    }
    if settings.remote_resource_id:
        attach_args["resource_id"] = settings.remote_resource_id
    else:
        attach_args["address"] = settings.remote_address
    if settings.private_key_file is not None:
        attach_args["private_key_file"] = str(settings.private_key_file)
        passphrase = get_secret_from_environment(ENV_DSVM_KEY_PASSPHRASE, allow_missing=True)
        if passphrase:
            attach_args["private_key_passphrase"] = passphrase
    else:
        attach_args["password"] = password
    target_description = settings.remote_resource_id or f"{settings.remote_address}:{settings.ssh_port}"
    logger.info(f"Attaching VM {target_description} as compute target '{settings.compute_name}'")
    attach_config = RemoteCompute.attach_configuration(**attach_args)
    compute_target = ComputeTarget.attach(workspace, settings.compute_name, attach_config)
    compute_target.wait_for_completion(show_output=show_output)
    return compute_target


def provision_or_attach(workspace: Workspace, settings: ComputeSettings, show_output: bool = True) -> ComputeTarget:
    """
    Gets the compute target that AutoML iterations should run on, attaching an existing VM or provisioning a new one
    depending on the settings.
    """
    if is_attach_mode(settings):
        return attach_remote_vm(workspace, settings, show_output=show_output)
    return get_or_create_compute_target(workspace, settings, show_output=show_output)


def get_vm_cores(workspace: Workspace, vm_size: str) -> Optional[int]:
    """
    Looks up the number of virtual CPUs of a VM size in the workspace region.

    :param workspace: The AzureML workspace, which determines the region.
    :param vm_size: The VM size, for example "Standard_D2_v2". Matching is case insensitive.
    :return: The number of vCPUs, or None if the VM size is not available in the region.
    """
    for size in AmlCompute.supported_vmsizes(workspace=workspace):
        if size["name"].lower() == vm_size.lower():
            return int(size["vCPUs"])
    logger.warning(f"VM size {vm_size} is not available in the region of workspace {workspace.name}")
    return None


def max_useful_concurrency(settings: ComputeSettings) -> Optional[int]:
    """
    Gets the maximum number of AutoML iterations that can run in parallel on the compute target. A managed
    compute target runs one iteration per node. For an attached VM, the limit is the number of cores, which is not
    known here.

    :param settings: The compute settings.
    :return: The maximum number of concurrent iterations, or None if unknown.
    """
    if is_attach_mode(settings):
        return None
    return settings.max_nodes


def release_compute_target(workspace: Workspace, compute_name: str) -> bool:
    """
    Releases a compute target: A managed compute target is deleted, an attached VM is detached (the VM itself
    keeps running and is not deleted).

    :param workspace: The AzureML workspace that holds the compute target.
    :param compute_name: The name of the compute target.
    :return: True if the compute target was found and released, False if it did not exist.
    """
    compute_target = _find_compute_target(workspace, compute_name)
    if compute_target is None:
        logger.info(f"Compute target '{compute_name}' does not exist, nothing to release.")
        return False
    if compute_target.type == REMOTE_VM_COMPUTE_TYPE:
        logger.info(f"Detaching VM '{compute_name}' from the workspace")
        compute_target.detach()
    else:
        logger.info(f"Deleting compute target '{compute_name}'")
        compute_target.delete()
    return True
