"""
Pydantic models for the vector store descriptor, index spec, and provisioning results.
"""
from enum import Enum
from typing import Dict, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from .utils import InvalidDescriptor, ProvisioningError


# Pinecone index names: lowercase alphanumerics and hyphens, alphanumeric at both ends
INDEX_NAME_PATTERN = r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$"
INDEX_NAME_MAX_LENGTH = 45

# Output width of text-embedding-ada-002
EMBEDDING_DIMENSION = 1536
SIMILARITY_METRIC = "cosine"


def describe_validation_error(error: ValidationError) -> str:
    """Summarize a ValidationError by field and error type, without echoing input values."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "payload"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class VectorStoreDescriptor(BaseModel):
    """
    Immutable identity of the Pinecone index to provision.

    Carries a reference to the API key secret, never the key itself.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    index_name: str = Field(
        ...,
        min_length=1,
        max_length=INDEX_NAME_MAX_LENGTH,
        pattern=INDEX_NAME_PATTERN,
        description="Name of the Pinecone index"
    )
    environment: str = Field(..., min_length=1, description="Pinecone environment, e.g. us-west1-gcp")
    credential_ref: str = Field(..., min_length=1, description="ARN or name of the API key secret")

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise InvalidDescriptor(
                f"Invalid vector store descriptor: {describe_validation_error(e)}"
            ) from e

    def outputs(self) -> Dict[str, str]:
        """Non-secret values exported to downstream components."""
        return {
            "PineconeIndexName": self.index_name,
            "PineconeEnvironment": self.environment,
            "PineconeApiKeySecretArn": self.credential_ref,
        }


class IndexSpec(BaseModel):
    """Fixed provisioning parameters; must match the embedding model writing to the index."""
    model_config = ConfigDict(frozen=True)

    dimension: int = Field(EMBEDDING_DIMENSION, gt=0, description="Vector dimensionality")
    metric: Literal["cosine", "euclidean", "dotproduct"] = Field(
        SIMILARITY_METRIC, description="Similarity metric"
    )


class PineconeCredential(BaseModel):
    """Parsed Pinecone API key secret."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: SecretStr = Field(..., alias="apiKey")

    @field_validator("api_key")
    @classmethod
    def _not_blank(cls, value: SecretStr) -> SecretStr:
        raw = value.get_secret_value()
        if not raw.strip():
            raise ValueError("apiKey must not be empty")
        # Header values cannot carry these; requests would echo the key in its error
        if raw != raw.strip() or any(ord(char) < 32 or ord(char) == 127 for char in raw):
            raise ValueError("apiKey must not contain whitespace padding or control characters")
        return value


class ProvisioningStatus(str, Enum):
    CREATED = "Created"
    ALREADY_EXISTS = "AlreadyExists"
    FAILED = "Failed"


class ProvisioningResult(BaseModel):
    """Outcome of a single provisioning attempt."""
    status: ProvisioningStatus = Field(..., description="Created, AlreadyExists or Failed")
    index_name: str = Field(..., description="Index name echoed from the descriptor")
    detail: str = Field("", description="Confirmation message or error diagnostic")
    error_type: Optional[str] = Field(None, description="Error class name when the attempt failed")
    status_code: Optional[int] = Field(None, description="HTTP status returned by the control plane")
    retryable: bool = Field(False, description="Whether repeating the attempt may succeed")

    @model_validator(mode="after")
    def _failed_requires_detail(self):
        if self.status is ProvisioningStatus.FAILED and not self.detail.strip():
            raise ValueError("a Failed result must carry a non-empty detail")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status is not ProvisioningStatus.FAILED

    @classmethod
    def failed(cls, index_name: str, error: ProvisioningError, detail: str) -> "ProvisioningResult":
        return cls(
            status=ProvisioningStatus.FAILED,
            index_name=index_name,
            detail=detail or type(error).__name__,
            error_type=type(error).__name__,
            status_code=getattr(error, "status_code", None),
            retryable=error.retryable,
        )
