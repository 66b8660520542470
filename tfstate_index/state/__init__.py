"""
Terraform State
===============

Decoding state documents and indexing the resources they manage.

Classes
-------
ResourceDescriptor
    One managed resource instance (id, arn).
ResourceIndex
    Resource id → owning state file mapping.
IndexBuilder
    Folds descriptors into an index, last write wins.
LoadResult
    An index plus the state files that were skipped.

Functions
---------
decode_state
    Decode a state document from a stream.
load_state_file
    Decode the state file at a local path.
"""

from tfstate_index.state.decoder import (
    DEFAULT_ARNLESS_RESOURCE_TYPES,
    ResourceDescriptor,
    decode_state,
    load_state_file,
)
from tfstate_index.state.index import IndexBuilder, LoadResult, ResourceIndex

__all__ = [
    "DEFAULT_ARNLESS_RESOURCE_TYPES",
    "ResourceDescriptor",
    "decode_state",
    "load_state_file",
    "IndexBuilder",
    "LoadResult",
    "ResourceIndex",
]
