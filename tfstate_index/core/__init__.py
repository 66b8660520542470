"""
Core Infrastructure Components
==============================

This module provides the foundational components for tfstate-index:

- :class:`BackendConfig` - Declarative backend configuration
- :class:`AWSClient` - boto3 session and client factory per backend
- Exception hierarchy for error handling

Classes
-------
BackendConfig
    Destination, fetch options and S3 backends.
S3Backend
    One bucket and the state object keys to fetch from it.
FetchOptions
    Path substitutions and overwrite policy.
Substitution
    Literal find-and-replace rule for object keys.
AWSClient
    boto3 wrapper with retry settings and optional role assumption.

Exceptions
----------
TfStateIndexError
    Base exception for all tfstate-index errors.
ConfigurationError
    Raised when the configuration is invalid.
FetchError
    Raised when state objects cannot be retrieved.
DecodeError
    Raised when a state document is malformed.

See Also
--------
tfstate_index.backends : Fetching and orchestration.
tfstate_index.state : Decoding and indexing.
"""

from tfstate_index.core.aws_client import AWSClient
from tfstate_index.core.config import BackendConfig, FetchOptions, S3Backend, Substitution
from tfstate_index.core.exceptions import (
    ConfigurationError,
    DecodeError,
    FetchError,
    TfStateIndexError,
)

__all__ = [
    # Client
    "AWSClient",
    # Configuration
    "BackendConfig",
    "FetchOptions",
    "S3Backend",
    "Substitution",
    # Exceptions
    "TfStateIndexError",
    "ConfigurationError",
    "FetchError",
    "DecodeError",
]
