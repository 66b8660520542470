"""
State Backends
==============

Fetching Terraform state from remote backends and orchestrating the
pull/load sequence.

Classes
-------
BackendRegistry
    Validates the configuration, pulls every backend, loads the index.
S3Fetcher
    Downloads the state objects of one S3 backend.
FetchResult
    Local-to-remote map and per-key outcome of one backend fetch.

Example
-------
>>> from tfstate_index.backends import BackendRegistry
>>> from tfstate_index.core import BackendConfig
>>>
>>> registry = BackendRegistry(BackendConfig.from_file("backends.json"))
>>> result = registry.build_index()
"""

from tfstate_index.backends.registry import BackendRegistry
from tfstate_index.backends.s3_fetcher import FetchResult, S3Fetcher

__all__ = [
    "BackendRegistry",
    "FetchResult",
    "S3Fetcher",
]
