"""
Create Pinecone index function for AWS Lambda.
Invoked directly (or through API Gateway) and as the on-event handler of a
CloudFormation custom resource.
"""
import json
import logging
from typing import Dict, Any, Optional

from pinecone_provisioning.config import ProvisionerSettings, load_settings
from pinecone_provisioning.models import ProvisioningResult, VectorStoreDescriptor
from pinecone_provisioning.retry import provision_with_retry
from pinecone_provisioning.utils import (
    InvalidDescriptor,
    InvalidSettings,
    ProvisioningFailed,
    SecretsManagerStore,
    error_response,
    log_with_context,
    setup_logging,
)
from pinecone_provisioning.vector_store import IndexProvisioner


RESPONSE_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-api-key"
}


def build_provisioner(settings: ProvisionerSettings, secret_store=None, session=None) -> IndexProvisioner:
    """
    Wire an IndexProvisioner from settings.

    Args:
        settings: Loaded settings
        secret_store: Secret store override (defaults to Secrets Manager)
        session: HTTP session override

    Returns:
        IndexProvisioner instance
    """
    return IndexProvisioner(
        secret_store=secret_store or SecretsManagerStore(region=settings.aws_region),
        session=session,
        timeout=(settings.connect_timeout, settings.request_timeout),
        provider_domain=settings.provider_domain
    )


def run_provisioning(
    descriptor: VectorStoreDescriptor,
    settings: ProvisionerSettings,
    provisioner: IndexProvisioner
) -> ProvisioningResult:
    """Provision once, or through the retry policy when more than one attempt is configured."""
    if settings.max_attempts > 1:
        return provision_with_retry(
            provisioner,
            descriptor,
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay
        )
    return provisioner.provision(descriptor)


def _json_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": RESPONSE_HEADERS,
        "body": json.dumps(body)
    }


def handle_api_request(
    descriptor: VectorStoreDescriptor,
    result: ProvisioningResult
) -> Dict[str, Any]:
    """Map a provisioning result to an API Gateway style response."""
    if result.succeeded:
        return _json_response(200, {
            "message": "Pinecone index creation initiated",
            "status": result.status.value,
            "indexName": result.index_name,
            "environment": descriptor.environment
        })

    return _json_response(500, {
        "message": "Failed to create Pinecone index",
        "status": result.status.value,
        "indexName": result.index_name,
        "detail": result.detail
    })


def handle_custom_resource(
    event: Dict[str, Any],
    descriptor: VectorStoreDescriptor,
    settings: ProvisionerSettings,
    provisioner: Optional[IndexProvisioner] = None
) -> Dict[str, Any]:
    """
    Custom resource on-event handler.

    Create and Update provision the index; Delete leaves it in place.

    Raises:
        ProvisioningFailed: If the index could not be provisioned
    """
    if event["RequestType"] == "Delete":
        return {"PhysicalResourceId": event.get("PhysicalResourceId") or descriptor.index_name}

    result = run_provisioning(descriptor, settings, provisioner or build_provisioner(settings))
    if not result.succeeded:
        raise ProvisioningFailed(f"Failed to create Pinecone index {result.index_name}: {result.detail}")

    data = descriptor.outputs()
    data["PineconeIndexStatus"] = result.status.value
    return {
        "PhysicalResourceId": descriptor.index_name,
        "Data": data
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda handler for index provisioning.

    Args:
        event: Direct invocation, API Gateway, or custom resource event
        context: Lambda context

    Returns:
        API Gateway response, or custom resource response data
    """
    event = event or {}
    is_custom_resource = "RequestType" in event

    try:
        settings = load_settings()
    except InvalidSettings as e:
        if event.get("RequestType") == "Delete":
            return {"PhysicalResourceId": event.get("PhysicalResourceId") or "pinecone-index"}
        if is_custom_resource:
            raise
        return _json_response(500, error_response(e, "create_index configuration"))

    logger = setup_logging(__name__, settings.log_level_value)

    log_with_context(
        logger, logging.INFO,
        "Received create index request",
        request_id=getattr(context, "aws_request_id", "unknown"),
        request_type=event.get("RequestType", "Invoke")
    )

    # Teardown is not managed here; stack deletion must not depend on configuration
    if event.get("RequestType") == "Delete":
        return {"PhysicalResourceId": event.get("PhysicalResourceId") or settings.index_name or "pinecone-index"}

    try:
        descriptor = settings.descriptor()
    except InvalidDescriptor as e:
        if is_custom_resource:
            raise
        return _json_response(500, error_response(e, "create_index configuration"))

    if is_custom_resource:
        return handle_custom_resource(event, descriptor, settings)

    result = run_provisioning(descriptor, settings, build_provisioner(settings))

    log_with_context(
        logger, logging.INFO if result.succeeded else logging.ERROR,
        "Create index request completed",
        index_name=result.index_name,
        status=result.status.value,
        status_code=result.status_code
    )

    return handle_api_request(descriptor, result)
