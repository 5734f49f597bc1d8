"""
Pinecone index provisioning against the control plane API.
Resolves the API key from the secret store, issues a single create-index request,
and classifies the response into a ProvisioningResult.
"""
import logging
import math
import re
from typing import Optional, Protocol, Tuple, Union
import requests
from pydantic import ValidationError

from .models import (
    IndexSpec,
    PineconeCredential,
    ProvisioningResult,
    ProvisioningStatus,
    VectorStoreDescriptor,
    describe_validation_error,
)
from .utils import (
    ApiFailure,
    CredentialMalformed,
    ProvisioningError,
    log_with_context,
    mask_reference,
    redact,
    setup_logging,
)


DEFAULT_PROVIDER_DOMAIN = "pinecone.io"
CONTROLLER_URL_TEMPLATE = "https://controller.{environment}.{domain}"
DEFAULT_TIMEOUT = (5.0, 30.0)

# Duplicate-name responses are not guaranteed to use 409, so the body is checked too
_ALREADY_EXISTS_PATTERN = re.compile(r"already[\s_-]*exists", re.IGNORECASE)

Timeout = Union[float, Tuple[float, float]]


class SecretStore(Protocol):
    def get_secret_string(self, credential_ref: str) -> str:
        ...


def controller_endpoint(
    environment: str,
    domain: str = DEFAULT_PROVIDER_DOMAIN,
    template: str = CONTROLLER_URL_TEMPLATE
) -> str:
    """
    Control plane base URL for a Pinecone environment.

    Args:
        environment: Pinecone environment, e.g. us-west1-gcp
        domain: Provider domain
        template: URL template with {environment} and {domain} placeholders

    Returns:
        Base URL without trailing slash
    """
    return template.format(environment=environment, domain=domain).rstrip("/")


def is_conflict(status_code: int, body: str) -> bool:
    """True if the response says an index with this name already exists."""
    if status_code == 409:
        return True
    return 400 <= status_code < 500 and bool(_ALREADY_EXISTS_PATTERN.search(body or ""))


def classify_response(status_code: int, body: str) -> ProvisioningStatus:
    """
    Map a control plane response to a provisioning status.

    Args:
        status_code: HTTP status code
        body: Response body text

    Returns:
        CREATED or ALREADY_EXISTS

    Raises:
        ApiFailure: For every other response
    """
    if status_code == 201:
        return ProvisioningStatus.CREATED
    if is_conflict(status_code, body):
        return ProvisioningStatus.ALREADY_EXISTS
    raise ApiFailure(status_code, body)


def _validate_timeout(timeout: Timeout) -> Timeout:
    values = timeout if isinstance(timeout, tuple) else (timeout,)
    if not values or any(value is None or not math.isfinite(value) or value <= 0 for value in values):
        raise ValueError(f"HTTP timeout must be finite and positive, got {timeout!r}")
    return timeout


class IndexProvisioner:
    """
    Creates a Pinecone index through the control plane, one attempt per call.

    Stateless between calls; the secret store and HTTP session are injected.
    """

    def __init__(
        self,
        secret_store: SecretStore,
        session: Optional[requests.Session] = None,
        timeout: Timeout = DEFAULT_TIMEOUT,
        provider_domain: str = DEFAULT_PROVIDER_DOMAIN,
        index_spec: Optional[IndexSpec] = None,
        controller_url_template: str = CONTROLLER_URL_TEMPLATE
    ):
        """
        Initialize the provisioner.

        Args:
            secret_store: Store resolving credential references to secret strings
            session: HTTP session used for control plane calls
            timeout: Request timeout in seconds, or a (connect, read) tuple
            provider_domain: Domain of the control plane host
            index_spec: Dimension and metric of the index (defaults to 1536 / cosine)
            controller_url_template: Template for the control plane base URL
        """
        self.logger = setup_logging(__name__)
        self.secret_store = secret_store
        self.session = session or requests.Session()
        self.timeout = _validate_timeout(timeout)
        self.provider_domain = provider_domain
        self.index_spec = index_spec or IndexSpec()
        self.controller_url_template = controller_url_template

    def resolve_credential(self, credential_ref: str) -> PineconeCredential:
        """
        Resolve a credential reference into the Pinecone API key.

        Raises:
            CredentialUnavailable: If the secret store fails
            CredentialMalformed: If the payload is not an object with an apiKey
        """
        secret_string = self.secret_store.get_secret_string(credential_ref)
        try:
            return PineconeCredential.model_validate_json(secret_string)
        except ValidationError as e:
            raise CredentialMalformed(
                f"Secret {mask_reference(credential_ref)} is not a valid Pinecone credential "
                f"({describe_validation_error(e)})"
            ) from e

    def create_index_request(self, descriptor: VectorStoreDescriptor, api_key: str) -> requests.Request:
        """Build the create-index request for a descriptor."""
        base_url = controller_endpoint(
            descriptor.environment, self.provider_domain, self.controller_url_template
        )
        return requests.Request(
            "POST",
            f"{base_url}/databases",
            headers={
                "Api-Key": api_key,
                "Content-Type": "application/json",
            },
            json={
                "name": descriptor.index_name,
                "dimension": self.index_spec.dimension,
                "metric": self.index_spec.metric,
            }
        )

    def _send(self, request: requests.Request) -> requests.Response:
        try:
            return self.session.send(self.session.prepare_request(request), timeout=self.timeout)
        except requests.exceptions.InvalidHeader as e:
            # The message quotes the offending header value
            raise ApiFailure(None, "InvalidHeader: request headers were rejected by the HTTP client") from e
        except requests.RequestException as e:
            raise ApiFailure(None, f"{type(e).__name__}: {e}") from e

    def provision(self, descriptor: VectorStoreDescriptor) -> ProvisioningResult:
        """
        Create the index described by the descriptor.

        Credential and control plane failures are returned as a Failed result,
        never raised.

        Args:
            descriptor: Validated vector store descriptor

        Returns:
            ProvisioningResult with status Created, AlreadyExists or Failed
        """
        index_name = descriptor.index_name
        api_key = None
        stage = "NotStarted"

        try:
            api_key = self.resolve_credential(descriptor.credential_ref).api_key.get_secret_value()
            stage = "CredentialResolved"
            log_with_context(
                self.logger, logging.DEBUG,
                "Credential resolved",
                index_name=index_name,
                secret_ref=mask_reference(descriptor.credential_ref)
            )

            request = self.create_index_request(descriptor, api_key)
            stage = "RequestSent"
            log_with_context(
                self.logger, logging.INFO,
                f"Creating Pinecone index: {index_name}",
                url=request.url,
                dimension=self.index_spec.dimension,
                metric=self.index_spec.metric
            )
            response = self._send(request)
            status = classify_response(response.status_code, response.text)

        except ProvisioningError as e:
            detail = redact(str(e), api_key)
            log_with_context(
                self.logger, logging.ERROR,
                f"Failed to create Pinecone index {index_name}: {detail}",
                index_name=index_name,
                environment=descriptor.environment,
                stage=stage,
                error_type=type(e).__name__,
                status_code=getattr(e, "status_code", None)
            )
            return ProvisioningResult.failed(index_name, e, detail)

        if status is ProvisioningStatus.CREATED:
            detail = f"Pinecone index creation initiated: {index_name}"
        else:
            detail = f"Pinecone index already exists: {index_name}"

        log_with_context(
            self.logger, logging.INFO,
            detail,
            index_name=index_name,
            environment=descriptor.environment,
            status=status.value,
            status_code=response.status_code
        )

        return ProvisioningResult(
            status=status,
            index_name=index_name,
            detail=detail,
            status_code=response.status_code
        )
