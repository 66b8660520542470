"""
Pytest configuration and shared fixtures for testing.
"""

import json

import boto3
import pytest
from moto import mock_aws

from tfstate_index.core.aws_client import AWSClient
from tfstate_index.core.config import BackendConfig, FetchOptions, S3Backend

REGION = "us-east-1"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def mock_aws_environment(aws_credentials):
    """Create a mocked AWS environment."""
    with mock_aws():
        yield


@pytest.fixture
def s3_client(mock_aws_environment):
    """Create a boto3 S3 client for setting up test buckets."""
    return boto3.client("s3", region_name=REGION)


@pytest.fixture
def make_state():
    """Factory building a version 4 state document from resource entries."""

    def _make(*resources):
        return {
            "version": 4,
            "terraform_version": "1.5.7",
            "serial": 3,
            "lineage": "2c8b4f4e-0000-0000-0000-000000000000",
            "outputs": {},
            "resources": list(resources),
        }

    return _make


@pytest.fixture
def make_resource():
    """Factory building a managed v4 resource with one current instance per attribute set."""

    def _make(resource_type, name, *attribute_sets, module=None, mode="managed"):
        resource = {
            "mode": mode,
            "type": resource_type,
            "name": name,
            "provider": 'provider["registry.terraform.io/hashicorp/aws"]',
            "instances": [
                {"schema_version": 0, "attributes": attributes}
                for attributes in attribute_sets
            ],
        }
        if module:
            resource["module"] = module
        return resource

    return _make


@pytest.fixture
def instance_state(make_state, make_resource):
    """State managing a single EC2 instance i-123."""
    return make_state(
        make_resource(
            "aws_instance",
            "web",
            {"id": "i-123", "arn": "arn:aws:ec2:us-east-1:123456789012:instance/i-123"},
        )
    )


@pytest.fixture
def make_bucket(s3_client):
    """Factory creating a bucket and uploading JSON documents to it."""

    def _make(bucket, objects):
        s3_client.create_bucket(Bucket=bucket)
        for key, document in objects.items():
            body = document if isinstance(document, (str, bytes)) else json.dumps(document)
            s3_client.put_object(Bucket=bucket, Key=key, Body=body)
        return bucket

    return _make


@pytest.fixture
def counting_factory():
    """Client factory recording which buckets it built clients for."""

    class CountingFactory:
        def __init__(self):
            self.buckets = []

        def __call__(self, backend):
            self.buckets.append(backend.bucket)
            return AWSClient.for_backend(backend)

    return CountingFactory()


@pytest.fixture
def make_config(tmp_path):
    """Factory building a BackendConfig rooted in a temporary cache directory."""

    def _make(backends, **options):
        return BackendConfig(
            destination=str(tmp_path / "cache"),
            options=FetchOptions(**options),
            s3=[
                S3Backend(bucket=bucket, keys=list(keys), region=REGION)
                for bucket, keys in backends
            ],
        )

    return _make
