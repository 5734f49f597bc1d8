"""
Explicit retry policy wrapped around IndexProvisioner.provision.

The provisioner itself makes exactly one attempt; repeating it is safe because a
second attempt against an existing index classifies as AlreadyExists.
"""
import logging
import time
from typing import Callable

from .models import ProvisioningResult, ProvisioningStatus, VectorStoreDescriptor
from .utils import log_with_context, setup_logging
from .vector_store import IndexProvisioner


def is_retryable(result: ProvisioningResult) -> bool:
    """Transport failures, throttling, server errors and an unreachable secret store are retried."""
    return result.status is ProvisioningStatus.FAILED and result.retryable


def provision_with_retry(
    provisioner: IndexProvisioner,
    descriptor: VectorStoreDescriptor,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep
) -> ProvisioningResult:
    """
    Provision with exponential backoff between retryable failures.

    Args:
        provisioner: Index provisioner making single attempts
        descriptor: Vector store descriptor
        max_attempts: Total number of attempts (1 disables retries)
        base_delay: Delay before the second attempt, doubled each time
        sleep: Sleep function

    Returns:
        Result of the last attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    logger = setup_logging(__name__)
    result = provisioner.provision(descriptor)

    for attempt in range(1, max_attempts):
        if not is_retryable(result):
            break

        # Exponential backoff
        wait_time = base_delay * 2 ** (attempt - 1)
        log_with_context(
            logger, logging.WARNING,
            f"Provisioning attempt {attempt}/{max_attempts} failed, retrying in {wait_time} seconds",
            index_name=descriptor.index_name,
            error_type=result.error_type,
            status_code=result.status_code
        )
        sleep(wait_time)
        result = provisioner.provision(descriptor)

    return result
