"""
Shared utility functions for logging, error handling, and AWS Secrets Manager access.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError


# Configure structured logging
def setup_logging(name: str = __name__, level: int = logging.INFO) -> logging.Logger:
    """
    Setup structured logging with JSON format.

    Args:
        name: Logger name
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


def log_with_context(logger: logging.Logger, level: int, message: str, **kwargs):
    """
    Log message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level
        message: Log message
        **kwargs: Additional context fields
    """
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(
        logger.name, level, '', 0, message, (), None
    )
    record.extra_fields = kwargs
    logger.handle(record)


def mask_reference(reference: str, keep: int = 20) -> str:
    """Shorten a secret reference for log output."""
    return reference[:keep] + "..." if len(reference) > keep else reference


def redact(text: str, secret: Optional[str], placeholder: str = "***") -> str:
    """
    Remove every occurrence of a secret value from text, raw or repr-escaped.

    Args:
        text: Text that may contain the secret
        secret: Secret value to scrub (no-op when empty)
        placeholder: Replacement string

    Returns:
        Text with the secret replaced
    """
    if not secret:
        return text
    text = text.replace(secret, placeholder)
    escaped = repr(secret)[1:-1]
    if escaped != secret:
        text = text.replace(escaped, placeholder)
    return text


# Error hierarchy
class ProvisioningError(Exception):
    """Base exception for index provisioning errors."""

    @property
    def retryable(self) -> bool:
        return False


class InvalidDescriptor(ProvisioningError):
    """The vector store descriptor handed over by the resource graph is malformed."""
    pass


class InvalidSettings(ProvisioningError):
    """A configuration value from the environment could not be parsed."""
    pass


class CredentialUnavailable(ProvisioningError):
    """The secret store could not be reached or the reference did not resolve."""

    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    UNREACHABLE = "unreachable"

    def __init__(self, message: str, reason: str = UNREACHABLE):
        super().__init__(message)
        self.reason = reason

    @property
    def retryable(self) -> bool:
        return self.reason == self.UNREACHABLE


class CredentialMalformed(ProvisioningError):
    """The resolved secret payload is not an object with an API key."""
    pass


class ApiFailure(ProvisioningError):
    """
    The control plane rejected the request or could not be reached.

    A missing status code means the failure happened at the transport level.
    """

    MAX_BODY_LENGTH = 1024
    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    def __init__(self, status_code: Optional[int], body: str):
        self.status_code = status_code
        self.body = (body or "")[:self.MAX_BODY_LENGTH]
        if status_code is None:
            message = f"Transport failure: {self.body or 'no response'}"
        else:
            message = f"Control plane returned HTTP {status_code}: {self.body or '<empty body>'}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code in self.RETRYABLE_STATUS_CODES


class ProvisioningFailed(ProvisioningError):
    """Raised at the custom resource boundary so CloudFormation marks the resource failed."""
    pass


def error_response(e: Exception, context: str = "") -> Dict[str, Any]:
    """
    Build a standardized error payload and log it.

    Args:
        e: Exception instance
        context: Additional context about where error occurred

    Returns:
        Standardized error response dictionary
    """
    logger = setup_logging(__name__)

    payload = {
        'error': True,
        'error_type': type(e).__name__,
        'message': str(e),
        'context': context,
        'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
    }

    log_with_context(
        logger, logging.ERROR,
        f"Error in {context}: {e}",
        error_type=type(e).__name__,
        context=context
    )

    return payload


# AWS Secrets Manager functions
def get_secrets_manager_client(
    region: Optional[str] = None,
    connect_timeout: float = 5,
    read_timeout: float = 10
):
    """
    Get AWS Secrets Manager client with bounded timeouts.

    Args:
        region: AWS region (None uses the default resolution chain)
        connect_timeout: Seconds to wait for a connection
        read_timeout: Seconds to wait for a response

    Returns:
        Secrets Manager client
    """
    config = Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={'max_attempts': 2, 'mode': 'standard'}
    )
    return boto3.client('secretsmanager', region_name=region, config=config)


class SecretsManagerStore:
    """
    Secret store backed by AWS Secrets Manager.

    Only the raw ``SecretString`` is returned; parsing it into a credential is
    the caller's job.
    """

    _NOT_FOUND_CODES = {'ResourceNotFoundException'}
    _DENIED_CODES = {'AccessDeniedException', 'AccessDenied', 'UnrecognizedClientException'}

    def __init__(self, client=None, region: Optional[str] = None):
        self.logger = setup_logging(__name__)
        self.client = client or get_secrets_manager_client(region)

    def get_secret_string(self, credential_ref: str) -> str:
        """
        Retrieve a secret value from AWS Secrets Manager.

        Args:
            credential_ref: ARN or name of the secret

        Returns:
            Secret value as string

        Raises:
            CredentialUnavailable: If the secret is missing, denied, or the store is unreachable
            CredentialMalformed: If the secret has no string value
        """
        try:
            response = self.client.get_secret_value(SecretId=credential_ref)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code in self._NOT_FOUND_CODES:
                reason = CredentialUnavailable.NOT_FOUND
            elif error_code in self._DENIED_CODES:
                reason = CredentialUnavailable.ACCESS_DENIED
            else:
                reason = CredentialUnavailable.UNREACHABLE
            log_with_context(
                self.logger, logging.ERROR,
                f"Failed to retrieve secret: {error_code}",
                secret_ref=mask_reference(credential_ref),
                error_code=error_code,
                reason=reason
            )
            raise CredentialUnavailable(
                f"Secret {mask_reference(credential_ref)} could not be retrieved ({error_code})",
                reason=reason
            ) from e
        except BotoCoreError as e:
            log_with_context(
                self.logger, logging.ERROR,
                f"Secrets Manager unreachable: {type(e).__name__}",
                secret_ref=mask_reference(credential_ref)
            )
            raise CredentialUnavailable(
                f"Secrets Manager unreachable: {type(e).__name__}",
                reason=CredentialUnavailable.UNREACHABLE
            ) from e

        secret_value = response.get('SecretString')
        if not secret_value:
            raise CredentialMalformed(
                f"Secret {mask_reference(credential_ref)} has no string value"
            )

        log_with_context(
            self.logger, logging.INFO,
            "Successfully retrieved secret",
            secret_ref=mask_reference(credential_ref)
        )

        return secret_value
