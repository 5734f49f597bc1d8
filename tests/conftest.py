"""Shared fixtures: stub secret store and stub control plane transport."""

import json
import os

import pytest
import requests
from requests.adapters import BaseAdapter

from pinecone_provisioning.models import VectorStoreDescriptor
from pinecone_provisioning.utils import CredentialUnavailable
from pinecone_provisioning.vector_store import IndexProvisioner

# Keep boto3 from looking for real configuration during tests
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

API_KEY = "pc-test-key-7f3a9b"


class StubSecretStore:
    def __init__(self, secrets=None, error=None):
        self.secrets = secrets or {}
        self.error = error
        self.calls = []

    def get_secret_string(self, credential_ref):
        self.calls.append(credential_ref)
        if self.error is not None:
            raise self.error
        if credential_ref not in self.secrets:
            raise CredentialUnavailable(f"Secret {credential_ref} not found", reason=CredentialUnavailable.NOT_FOUND)
        return self.secrets[credential_ref]


class StubControlPlane(BaseAdapter):
    """
    requests transport adapter standing in for the Pinecone control plane.

    Scripted responses are served first: (status, body) tuples or exceptions to raise.
    Once exhausted it behaves like the real API: 201 for a new name, 409 for a known one.
    """

    def __init__(self, responses=None, existing=()):
        super().__init__()
        self.responses = list(responses or [])
        self.indexes = set(existing)
        self.requests = []
        self.timeouts = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        self.timeouts.append(timeout)

        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, Exception):
                raise item
            status_code, body = item
        else:
            name = json.loads(request.body)["name"]
            if name in self.indexes:
                status_code, body = 409, '{"message":"already exists"}'
            else:
                self.indexes.add(name)
                status_code, body = 201, "{}"

        response = requests.Response()
        response.status_code = status_code
        response._content = body.encode("utf-8")
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


def session_for(adapter):
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


@pytest.fixture
def descriptor():
    return VectorStoreDescriptor(
        index_name="bedrock-kb-index",
        environment="us-west1-gcp",
        credential_ref="secret-1",
    )


@pytest.fixture
def secret_store():
    return StubSecretStore({"secret-1": json.dumps({"apiKey": API_KEY})})


@pytest.fixture
def control_plane():
    return StubControlPlane()


@pytest.fixture
def provisioner(secret_store, control_plane):
    return IndexProvisioner(secret_store=secret_store, session=session_for(control_plane))
