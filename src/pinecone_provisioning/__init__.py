"""
Pinecone index provisioning for the Bedrock agent knowledge base.
"""
from .models import (
    IndexSpec,
    ProvisioningResult,
    ProvisioningStatus,
    VectorStoreDescriptor,
)
from .retry import provision_with_retry
from .utils import (
    ApiFailure,
    CredentialMalformed,
    CredentialUnavailable,
    InvalidDescriptor,
    InvalidSettings,
    ProvisioningError,
    ProvisioningFailed,
    SecretsManagerStore,
)
from .vector_store import IndexProvisioner, classify_response, controller_endpoint

__all__ = [
    "ApiFailure",
    "CredentialMalformed",
    "CredentialUnavailable",
    "IndexProvisioner",
    "IndexSpec",
    "InvalidDescriptor",
    "InvalidSettings",
    "ProvisioningError",
    "ProvisioningFailed",
    "ProvisioningResult",
    "ProvisioningStatus",
    "SecretsManagerStore",
    "VectorStoreDescriptor",
    "classify_response",
    "controller_endpoint",
    "provision_with_retry",
]
