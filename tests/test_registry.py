"""
Tests for the backend registry.
"""

import json
import os

import pytest

from tfstate_index.backends.registry import BackendRegistry
from tfstate_index.core.config import BackendConfig, S3Backend
from tfstate_index.core.exceptions import ConfigurationError, FetchError


@pytest.fixture
def ec2_state(make_state, make_resource):
    """Factory for a state managing the given instance ids."""

    def _make(*instance_ids):
        return make_state(
            make_resource(
                "aws_instance",
                "web",
                *[
                    {"id": iid, "arn": f"arn:aws:ec2:us-east-1:123456789012:instance/{iid}"}
                    for iid in instance_ids
                ],
            )
        )

    return _make


class TestPull:
    """Tests for BackendRegistry.pull."""

    def test_invalid_config_strict(self, tmp_path):
        config = BackendConfig(destination=str(tmp_path / "cache"), s3=[])
        registry = BackendRegistry(config)

        with pytest.raises(ConfigurationError):
            registry.pull()
        assert not (tmp_path / "cache").exists()

    def test_invalid_config_lenient(self, tmp_path, counting_factory):
        """Test that a non-strict registry skips an invalid configuration."""
        config = BackendConfig(destination="", s3=[S3Backend(bucket="b", keys=["k"])])
        registry = BackendRegistry(config, client_factory=counting_factory, strict=False)

        assert registry.pull() == []
        assert registry.state_filenames == {}
        assert counting_factory.buckets == []

    def test_null_options_get_defaults(self, make_bucket, make_config, ec2_state):
        make_bucket("tf-a", {"terraform.tfstate": ec2_state("i-1")})
        config = make_config([("tf-a", ["terraform.tfstate"])])
        config.options = None

        BackendRegistry(config).pull()

        assert config.options is not None
        assert config.options.overwrite is False

    def test_map_in_configuration_order(self, make_bucket, make_config, ec2_state):
        make_bucket("tf-a", {"net.tfstate": ec2_state("i-1"), "app.tfstate": ec2_state("i-2")})
        make_bucket("tf-b", {"db.tfstate": ec2_state("i-3")})
        config = make_config([("tf-a", ["net.tfstate", "app.tfstate"]), ("tf-b", ["db.tfstate"])])
        registry = BackendRegistry(config)

        results = registry.pull()

        assert [r.bucket for r in results] == ["tf-a", "tf-b"]
        assert list(registry.state_filenames.values()) == [
            "arn:aws:s3:::tf-a/net.tfstate",
            "arn:aws:s3:::tf-a/app.tfstate",
            "arn:aws:s3:::tf-b/db.tfstate",
        ]
        assert all(os.path.exists(path) for path in registry.state_filenames)

    def test_second_pull_downloads_nothing(
        self, make_bucket, make_config, ec2_state, counting_factory
    ):
        make_bucket("tf-a", {"terraform.tfstate": ec2_state("i-1")})
        config = make_config([("tf-a", ["terraform.tfstate"])])
        BackendRegistry(config).pull()

        registry = BackendRegistry(config, client_factory=counting_factory)
        results = registry.pull()

        assert results[0].downloaded == []
        assert counting_factory.buckets == []
        assert len(registry.state_filenames) == 1

    def test_fail_fast(self, make_bucket, make_config, ec2_state, counting_factory):
        """Test that a failing backend stops the pull before later backends."""
        make_bucket("tf-a", {"a.tfstate": ec2_state("i-1")})
        make_bucket("tf-c", {"c.tfstate": ec2_state("i-3")})
        config = make_config(
            [("tf-a", ["a.tfstate"]), ("tf-b", ["b.tfstate"]), ("tf-c", ["c.tfstate"])]
        )
        registry = BackendRegistry(config, client_factory=counting_factory)

        with pytest.raises(FetchError) as exc_info:
            registry.pull()

        assert exc_info.value.bucket == "tf-b"
        assert counting_factory.buckets == ["tf-a", "tf-b"]
        fetcher = registry._fetcher(config.s3[0])
        assert os.path.exists(fetcher.local_path("a.tfstate")[1])
        assert not os.path.exists(registry._fetcher(config.s3[2]).local_path("c.tfstate")[1])

    def test_credential_failure_names_backend(self, tmp_path, monkeypatch):
        """Test that a role assumption failure identifies the failing backend."""
        for name in (
            "AWS_ACCESS_KEY_ID",
            "AWS_SECRET_ACCESS_KEY",
            "AWS_SESSION_TOKEN",
            "AWS_SECURITY_TOKEN",
            "AWS_PROFILE",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "missing-config"))
        monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "missing-credentials"))
        monkeypatch.setenv("AWS_EC2_METADATA_DISABLED", "true")
        config = BackendConfig(
            destination=str(tmp_path / "cache"),
            s3=[
                S3Backend(
                    bucket="tf-b",
                    keys=["b.tfstate"],
                    region="us-east-1",
                    role_arn="arn:aws:iam::123456789012:role/state-reader",
                )
            ],
        )

        with pytest.raises(FetchError) as exc_info:
            BackendRegistry(config).pull()

        assert exc_info.value.bucket == "tf-b"
        assert not os.path.exists(tmp_path / "cache" / "tf-b" / "b.tfstate")

    def test_concurrent_merge_order(self, make_bucket, make_config, ec2_state):
        make_bucket("tf-a", {"a.tfstate": ec2_state("i-1")})
        make_bucket("tf-b", {"b.tfstate": ec2_state("i-2")})
        make_bucket("tf-c", {"c.tfstate": ec2_state("i-3")})
        config = make_config(
            [("tf-a", ["a.tfstate"]), ("tf-b", ["b.tfstate"]), ("tf-c", ["c.tfstate"])]
        )
        registry = BackendRegistry(config, max_workers=3)

        results = registry.pull()

        assert [r.bucket for r in results] == ["tf-a", "tf-b", "tf-c"]
        assert list(registry.state_filenames.values()) == [
            "arn:aws:s3:::tf-a/a.tfstate",
            "arn:aws:s3:::tf-b/b.tfstate",
            "arn:aws:s3:::tf-c/c.tfstate",
        ]

    def test_concurrent_failure(self, make_bucket, make_config, ec2_state):
        make_bucket("tf-a", {"a.tfstate": ec2_state("i-1")})
        config = make_config([("tf-a", ["a.tfstate"]), ("tf-missing", ["b.tfstate"])])
        registry = BackendRegistry(config, max_workers=2)

        with pytest.raises(FetchError) as exc_info:
            registry.pull()
        assert exc_info.value.bucket == "tf-missing"


class TestLoad:
    """Tests for BackendRegistry.load."""

    def test_corrupt_file_skipped(self, make_bucket, make_config, ec2_state):
        """Test that one undecodable file does not prevent indexing the rest."""
        make_bucket(
            "tf-a",
            {
                "one.tfstate": ec2_state("i-1"),
                "two.tfstate": ec2_state("i-2", "i-3"),
                "broken.tfstate": "{not json",
                "three.tfstate": ec2_state("i-4"),
            },
        )
        config = make_config(
            [("tf-a", ["one.tfstate", "two.tfstate", "broken.tfstate", "three.tfstate"])]
        )
        registry = BackendRegistry(config)
        registry.pull()

        result = registry.load()

        assert result.skipped_count == 1
        assert len(result.files_loaded) == 3
        assert sorted(result.index) == ["i-1", "i-2", "i-3", "i-4"]
        [skipped] = result.skipped_files
        assert skipped.endswith("broken.tfstate")

    def test_malformed_structure_skipped(self, make_config, ec2_state, make_resource, make_state):
        """Test that structurally invalid documents are skipped, not fatal."""
        config = make_config([("tf-a", ["good.tfstate", "module.tfstate", "nested.tfstate"])])
        registry = BackendRegistry(config)
        fetcher = registry._fetcher(config.s3[0])
        bad_module = make_resource("aws_vpc", "main", {"id": "vpc-1", "arn": "arn:aws:ec2:::vpc/vpc-1"})
        bad_module["module"] = {"x": 1}
        contents = {
            "good.tfstate": json.dumps(ec2_state("i-1")),
            "module.tfstate": json.dumps(make_state(bad_module)),
            "nested.tfstate": "[" * 100000,
        }
        for key, body in contents.items():
            local_dir, path = fetcher.local_path(key)
            os.makedirs(local_dir, exist_ok=True)
            with open(path, "w") as f:
                f.write(body)
        registry.map_cache()

        result = registry.load()

        assert result.skipped_count == 2
        assert list(result.index) == ["i-1"]

    def test_later_backend_wins(self, make_bucket, make_config, ec2_state):
        make_bucket("tf-a", {"terraform.tfstate": ec2_state("i-123")})
        make_bucket("tf-b", {"terraform.tfstate": ec2_state("i-123")})
        config = make_config([("tf-a", ["terraform.tfstate"]), ("tf-b", ["terraform.tfstate"])])

        result = BackendRegistry(config).build_index()

        assert result.index.lookup("i-123") == "arn:aws:s3:::tf-b/terraform.tfstate"
        assert result.collisions == 1
        assert result.to_dict()["collisions"] == 1

    def test_load_without_pull_is_empty(self, make_config):
        registry = BackendRegistry(make_config([("tf-a", ["terraform.tfstate"])]))

        result = registry.load()

        assert len(result.index) == 0
        assert result.files_loaded == []


class TestMapCache:
    """Tests for indexing an existing cache without pulling."""

    def test_map_cache_reports_missing_files(self, make_config, ec2_state):
        config = make_config([("tf-a", ["present.tfstate", "absent.tfstate"])])
        registry = BackendRegistry(config)
        _, present = registry._fetcher(config.s3[0]).local_path("present.tfstate")
        os.makedirs(os.path.dirname(present))
        with open(present, "w") as f:
            json.dump(ec2_state("i-1"), f)

        filenames = registry.map_cache()
        result = registry.load()

        assert len(filenames) == 2
        assert result.index.lookup("i-1") == "arn:aws:s3:::tf-a/present.tfstate"
        assert result.skipped_count == 1


class TestCheckCredentials:
    """Tests for checking backend credentials before a pull."""

    def test_identities_per_backend(self, tmp_path, mock_aws_environment):
        config = BackendConfig(
            destination=str(tmp_path / "cache"),
            s3=[
                S3Backend(bucket="tf-a", keys=["a.tfstate"], region="us-east-1"),
                S3Backend(
                    bucket="tf-b",
                    keys=["b.tfstate"],
                    region="us-east-1",
                    role_arn="arn:aws:iam::123456789012:role/state-reader",
                    session_name="indexer",
                ),
            ],
        )

        identities = BackendRegistry(config).check_credentials()

        assert list(identities) == ["tf-a", "tf-b"]
        assert "assumed-role/state-reader/indexer" in identities["tf-b"]
        assert not (tmp_path / "cache").exists()

    def test_failure_names_backend(self, tmp_path):
        def rejecting_factory(backend):
            class Rejecting:
                def validate_credentials(self):
                    raise FetchError("AWS credentials not found")

            return Rejecting()

        config = BackendConfig(
            destination=str(tmp_path / "cache"),
            s3=[S3Backend(bucket="tf-b", keys=["b.tfstate"], region="us-east-1")],
        )

        with pytest.raises(FetchError) as exc_info:
            BackendRegistry(config, client_factory=rejecting_factory).check_credentials()
        assert exc_info.value.bucket == "tf-b"
