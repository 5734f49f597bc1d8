"""Tests for the create-index Lambda handler."""

import json
from types import SimpleNamespace

import pytest

import handler
from conftest import API_KEY, StubControlPlane, session_for
from pinecone_provisioning.utils import InvalidSettings, ProvisioningFailed
from pinecone_provisioning.vector_store import IndexProvisioner

CONTEXT = SimpleNamespace(aws_request_id="req-123")


@pytest.fixture(autouse=True)
def lambda_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PINECONE_INDEX_NAME", "bedrock-kb-index")
    monkeypatch.setenv("PINECONE_ENVIRONMENT", "us-west1-gcp")
    monkeypatch.setenv("PINECONE_API_KEY_SECRET_ARN", "secret-1")
    monkeypatch.delenv("PROVISION_MAX_ATTEMPTS", raising=False)


@pytest.fixture
def built(monkeypatch, secret_store):
    """Route build_provisioner to stub collaborators and record its calls."""
    state = SimpleNamespace(control_plane=StubControlPlane(), calls=0)

    def build(settings, secret_store_override=None, session=None):
        state.calls += 1
        return IndexProvisioner(
            secret_store,
            session=session_for(state.control_plane),
            timeout=(settings.connect_timeout, settings.request_timeout),
        )

    monkeypatch.setattr(handler, "build_provisioner", build)
    return state


class TestDirectInvocation:
    def test_created(self, built):
        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body == {
            "message": "Pinecone index creation initiated",
            "status": "Created",
            "indexName": "bedrock-kb-index",
            "environment": "us-west1-gcp",
        }

    def test_redeploy_reports_already_exists(self, built):
        built.control_plane.indexes.add("bedrock-kb-index")

        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["status"] == "AlreadyExists"

    def test_failure_returns_500_without_key(self, built):
        built.control_plane.responses.append((401, f"bad key {API_KEY}"))

        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body["status"] == "Failed"
        assert "401" in body["detail"]
        assert API_KEY not in response["body"]

    def test_completion_logged_at_error_on_failure(self, built, capsys):
        built.control_plane.responses.append((500, "internal"))

        handler.lambda_handler({}, CONTEXT)

        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
        completed = [line for line in lines if line["message"] == "Create index request completed"]
        assert [line["level"] for line in completed] == ["ERROR"]

    def test_invalid_descriptor_fails_before_any_call(self, built, monkeypatch):
        monkeypatch.setenv("PINECONE_INDEX_NAME", "")

        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body["error_type"] == "InvalidDescriptor"
        assert built.calls == 0
        assert built.control_plane.requests == []

    @pytest.mark.parametrize("value", ["abc", "inf"])
    def test_unparseable_setting_returns_500(self, built, monkeypatch, value):
        monkeypatch.setenv("PINECONE_REQUEST_TIMEOUT", value)

        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 500
        body = json.loads(response["body"])
        assert body["error_type"] == "InvalidSettings"
        assert "PINECONE_REQUEST_TIMEOUT" in body["message"]
        assert built.calls == 0

    def test_retry_policy_enabled_by_settings(self, built, monkeypatch):
        monkeypatch.setenv("PROVISION_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("PROVISION_RETRY_BASE_DELAY", "0")
        built.control_plane.responses.append((503, "busy"))

        response = handler.lambda_handler({}, CONTEXT)

        assert response["statusCode"] == 200
        assert len(built.control_plane.requests) == 2


class TestCustomResource:
    def test_create_returns_outputs(self, built):
        response = handler.lambda_handler({"RequestType": "Create", "ResourceProperties": {}}, CONTEXT)

        assert response["PhysicalResourceId"] == "bedrock-kb-index"
        assert response["Data"] == {
            "PineconeIndexName": "bedrock-kb-index",
            "PineconeEnvironment": "us-west1-gcp",
            "PineconeApiKeySecretArn": "secret-1",
            "PineconeIndexStatus": "Created",
        }

    def test_update_against_existing_index(self, built):
        built.control_plane.indexes.add("bedrock-kb-index")

        response = handler.lambda_handler(
            {"RequestType": "Update", "PhysicalResourceId": "bedrock-kb-index"}, CONTEXT
        )

        assert response["Data"]["PineconeIndexStatus"] == "AlreadyExists"

    def test_failure_raises(self, built):
        built.control_plane.responses.append((500, "internal"))

        with pytest.raises(ProvisioningFailed, match="500"):
            handler.lambda_handler({"RequestType": "Create"}, CONTEXT)

    def test_delete_is_a_no_op(self, built):
        response = handler.lambda_handler(
            {"RequestType": "Delete", "PhysicalResourceId": "bedrock-kb-index"}, CONTEXT
        )

        assert response == {"PhysicalResourceId": "bedrock-kb-index"}
        assert built.calls == 0

    def test_create_with_unparseable_setting_raises(self, built, monkeypatch):
        monkeypatch.setenv("PROVISION_MAX_ATTEMPTS", "many")

        with pytest.raises(InvalidSettings):
            handler.lambda_handler({"RequestType": "Create"}, CONTEXT)
        assert built.calls == 0

    def test_delete_ignores_broken_configuration(self, built, monkeypatch):
        monkeypatch.setenv("PINECONE_INDEX_NAME", "Not_Valid")

        response = handler.lambda_handler(
            {"RequestType": "Delete", "PhysicalResourceId": "bedrock-kb-index"}, CONTEXT
        )

        assert response == {"PhysicalResourceId": "bedrock-kb-index"}

    def test_delete_ignores_unparseable_settings(self, built, monkeypatch):
        monkeypatch.setenv("PINECONE_CONNECT_TIMEOUT", "soon")

        response = handler.lambda_handler(
            {"RequestType": "Delete", "PhysicalResourceId": "bedrock-kb-index"}, CONTEXT
        )

        assert response == {"PhysicalResourceId": "bedrock-kb-index"}


def test_build_provisioner_uses_settings(secret_store):
    settings = handler.load_settings().model_copy(
        update={"connect_timeout": 2.0, "request_timeout": 9.0, "provider_domain": "example.test"}
    )

    provisioner = handler.build_provisioner(settings, secret_store=secret_store)

    assert provisioner.secret_store is secret_store
    assert provisioner.timeout == (2.0, 9.0)
    assert provisioner.provider_domain == "example.test"
