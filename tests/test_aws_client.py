"""
Tests for the AWS Client module.
"""

from tfstate_index.core.aws_client import AWSClient
from tfstate_index.core.config import S3Backend


class TestAWSClient:
    """Tests for AWSClient class."""

    def test_client_initialization(self, mock_aws_environment):
        """Test basic client initialization."""
        client = AWSClient(region="us-east-1")
        assert client.region == "us-east-1"
        assert client.role_arn is None
        assert client.session_name == "tfstate-index"

    def test_empty_settings_become_none(self):
        """Test that empty strings from the configuration are treated as unset."""
        client = AWSClient(region="", role_arn="", external_id="")
        assert client.region is None
        assert client.role_arn is None
        assert client.external_id is None

    def test_for_backend(self):
        backend = S3Backend(
            bucket="tf-state",
            keys=["terraform.tfstate"],
            region="eu-west-1",
            role_arn="arn:aws:iam::123456789012:role/state-reader",
            external_id="shared",
            session_name="indexer",
        )

        client = AWSClient.for_backend(backend, max_retries=5)

        assert client.region == "eu-west-1"
        assert client.role_arn == "arn:aws:iam::123456789012:role/state-reader"
        assert client.external_id == "shared"
        assert client.session_name == "indexer"
        assert client.max_retries == 5

    def test_get_s3_client(self, mock_aws_environment):
        """Test getting S3 client."""
        client = AWSClient(region="us-east-1")
        s3 = client.get_s3_client()
        assert s3 is not None
        # Clients are cached
        assert client.get_s3_client() is s3

    def test_validate_credentials(self, mock_aws_environment):
        """Test credential validation returns the caller ARN."""
        client = AWSClient(region="us-east-1")
        assert client.validate_credentials().startswith("arn:aws:")

    def test_assume_role(self, mock_aws_environment):
        """Test that a configured role is assumed before building clients."""
        client = AWSClient(
            region="us-east-1",
            role_arn="arn:aws:iam::123456789012:role/state-reader",
            session_name="indexer",
        )

        identity = client.get_caller_identity()

        assert "assumed-role/state-reader/indexer" in identity["Arn"]

    def test_retry_config(self, mock_aws_environment):
        """Test that retry configuration is applied."""
        client = AWSClient(region="us-east-1", max_retries=5, timeout=60)
        assert client.max_retries == 5
        assert client.timeout == 60

