"""
tfstate-index: Terraform Remote State Indexer
=============================================

Downloads Terraform state files from S3 backends, decodes them, and builds
an index answering "which state file manages resource X?".

Modules
-------
core
    Configuration, AWS client, exceptions and logging
backends
    S3 fetcher and the backend registry driving pull/load
state
    State decoder and resource index
reporters
    Output formatters (CLI, JSON)

Example
-------
>>> from tfstate_index import BackendConfig, BackendRegistry
>>>
>>> registry = BackendRegistry(BackendConfig.from_file("backends.json"))
>>> registry.pull()
>>> result = registry.load()
>>> result.index.lookup("vpc-0a1b2c3d")
'arn:aws:s3:::tf-state-prod/network/terraform.tfstate'

Notes
-----
Requires AWS credentials configured via:
- Environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)
- AWS credentials file (~/.aws/credentials)
- IAM role (when running on AWS infrastructure)

Cross-account backends set ``role_arn`` in their configuration.
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Public API
from tfstate_index.backends.registry import BackendRegistry
from tfstate_index.core.config import BackendConfig
from tfstate_index.core.exceptions import (
    ConfigurationError,
    DecodeError,
    FetchError,
    TfStateIndexError,
)
from tfstate_index.state.index import LoadResult, ResourceIndex

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Core classes
    "BackendConfig",
    "BackendRegistry",
    "LoadResult",
    "ResourceIndex",
    # Exceptions
    "TfStateIndexError",
    "ConfigurationError",
    "FetchError",
    "DecodeError",
]
