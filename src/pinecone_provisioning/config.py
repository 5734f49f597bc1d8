"""
Runtime configuration read from the process environment (and a local .env file).
"""
import logging
import os
from typing import Optional
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .models import VectorStoreDescriptor, describe_validation_error
from .utils import InvalidSettings


# Settings field -> environment variable
ENVIRONMENT_VARIABLES = {
    "index_name": "PINECONE_INDEX_NAME",
    "environment": "PINECONE_ENVIRONMENT",
    "credential_ref": "PINECONE_API_KEY_SECRET_ARN",
    "provider_domain": "PINECONE_PROVIDER_DOMAIN",
    "connect_timeout": "PINECONE_CONNECT_TIMEOUT",
    "request_timeout": "PINECONE_REQUEST_TIMEOUT",
    "max_attempts": "PROVISION_MAX_ATTEMPTS",
    "retry_base_delay": "PROVISION_RETRY_BASE_DELAY",
    "aws_region": "AWS_REGION",
    "log_level": "LOG_LEVEL",
}


class ProvisionerSettings(BaseModel):
    """Settings for the create-index Lambda and local runs."""
    index_name: str = Field("", description="PINECONE_INDEX_NAME")
    environment: str = Field("", description="PINECONE_ENVIRONMENT")
    credential_ref: str = Field("", description="PINECONE_API_KEY_SECRET_ARN")
    provider_domain: str = Field("pinecone.io", min_length=1)
    connect_timeout: float = Field(5.0, gt=0, allow_inf_nan=False)
    request_timeout: float = Field(30.0, gt=0, allow_inf_nan=False)
    max_attempts: int = Field(1, ge=1)
    retry_base_delay: float = Field(1.0, ge=0, allow_inf_nan=False)
    aws_region: Optional[str] = None
    log_level: str = "INFO"

    def descriptor(self) -> VectorStoreDescriptor:
        """
        Build the vector store descriptor from these settings.

        Raises:
            InvalidDescriptor: If any of the index settings is missing or malformed
        """
        return VectorStoreDescriptor(
            index_name=self.index_name,
            environment=self.environment,
            credential_ref=self.credential_ref
        )

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)


def load_settings() -> ProvisionerSettings:
    """
    Load settings from environment variables, falling back to a .env file for local development.

    Unset variables keep their defaults; set ones are parsed by the model.

    Returns:
        ProvisionerSettings instance

    Raises:
        InvalidSettings: If a variable cannot be parsed or is out of range
    """
    load_dotenv()

    values = {}
    for field, variable in ENVIRONMENT_VARIABLES.items():
        value = os.getenv(variable)
        if value is not None:
            values[field] = value
    if not values.get("aws_region"):
        values.pop("aws_region", None)

    try:
        return ProvisionerSettings(**values)
    except ValidationError as e:
        fields = ", ".join(
            ENVIRONMENT_VARIABLES.get(str(item["loc"][0]), str(item["loc"][0])) for item in e.errors() if item["loc"]
        )
        raise InvalidSettings(
            f"Invalid configuration in {fields or 'environment'}: {describe_validation_error(e)}"
        ) from e
