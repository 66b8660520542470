"""
Resource Index Module
=====================

Folds decoded resource descriptors into a mapping from resource id to the
state file (``arn:aws:s3:::bucket/key``) that manages it.

Classes
-------
ResourceIndex
    Ordered id → owning backend reference mapping.
IndexBuilder
    Accumulates descriptors, last write wins.
LoadResult
    An index plus the state files that could not be decoded.

Example
-------
>>> builder = IndexBuilder()
>>> builder.add(descriptors_a, "arn:aws:s3:::state/a.tfstate")
>>> builder.add(descriptors_b, "arn:aws:s3:::state/b.tfstate")
>>> index = builder.build()
>>> index.lookup("i-0123456789abcdef0")
'arn:aws:s3:::state/b.tfstate'
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from tfstate_index.state.decoder import ResourceDescriptor

# Module logger
logger = logging.getLogger(__name__)

MANAGED_BY_KEY = "managed_by"


class ResourceIndex:
    """
    Mapping from resource id to the reference of its owning state file.

    Iteration follows insertion order of each id's first appearance.
    """

    def __init__(self, entries: Optional[Dict[str, str]] = None) -> None:
        self._entries: Dict[str, str] = dict(entries or {})

    def lookup(self, resource_id: str) -> Optional[str]:
        """Return the owning backend reference of ``resource_id``, if managed."""
        return self._entries.get(resource_id)

    def is_managed(self, resource_id: str) -> bool:
        return resource_id in self._entries

    def items(self) -> Iterable[Tuple[str, str]]:
        return self._entries.items()

    def owners(self) -> Dict[str, int]:
        """Count of indexed resources per owning state file."""
        counts: Dict[str, int] = {}
        for owner in self._entries.values():
            counts[owner] = counts.get(owner, 0) + 1
        return counts

    def annotate(
        self,
        resources: Iterable[Dict[str, Any]],
        id_key: str = "id",
    ) -> List[Dict[str, Any]]:
        """
        Tag discovered resources with the state file that manages them.

        Each input dictionary is copied and given a ``managed_by`` key,
        ``None`` for resources no state file manages.

        Example
        -------
        >>> index.annotate([{"id": "i-123"}, {"id": "i-999"}])
        [{'id': 'i-123', 'managed_by': 'arn:aws:s3:::state/a.tfstate'},
         {'id': 'i-999', 'managed_by': None}]
        """
        annotated = []
        for resource in resources:
            copy = dict(resource)
            copy[MANAGED_BY_KEY] = self.lookup(resource.get(id_key))
            annotated.append(copy)
        return annotated

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._entries

    def __getitem__(self, resource_id: str) -> str:
        return self._entries[resource_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResourceIndex):
            return self._entries == other._entries
        if isinstance(other, dict):
            return self._entries == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ResourceIndex(resources={len(self._entries)})"


class IndexBuilder:
    """
    Accumulates descriptors into a :class:`ResourceIndex`.

    Callers add state files in backend configuration order. An id seen
    again overwrites the earlier owner.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self.overwritten = 0

    def add(self, descriptors: Iterable[ResourceDescriptor], owner: str) -> int:
        """
        Record every descriptor as owned by ``owner``.

        Returns
        -------
        int
            Number of descriptors added.
        """
        count = 0
        for descriptor in descriptors:
            previous = self._entries.get(descriptor.unique_id)
            if previous is not None and previous != owner:
                logger.debug(
                    "%s is managed by both %s and %s, keeping the latter",
                    descriptor.unique_id,
                    previous,
                    owner,
                )
                self.overwritten += 1
            self._entries[descriptor.unique_id] = owner
            count += 1
        return count

    def build(self) -> ResourceIndex:
        return ResourceIndex(self._entries)


@dataclass
class LoadResult:
    """
    Outcome of loading every pulled state file.

    Parameters
    ----------
    index : ResourceIndex
        The aggregated index.
    files_loaded : list of str
        Local paths decoded successfully.
    skipped_files : dict
        Local path → error message for files that failed to decode.
        Their resources are missing from the index.
    collisions : int
        Resource ids claimed by more than one state file. The later file
        in configuration order owns them.
    """

    index: ResourceIndex = field(default_factory=ResourceIndex)
    files_loaded: List[str] = field(default_factory=list)
    skipped_files: Dict[str, str] = field(default_factory=dict)
    collisions: int = 0
    load_time: datetime = field(default_factory=datetime.utcnow)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_files)

    @property
    def is_complete(self) -> bool:
        """True when no state file was skipped."""
        return not self.skipped_files

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resources": self.index.to_dict(),
            "resource_count": len(self.index),
            "files_loaded": list(self.files_loaded),
            "skipped_files": dict(self.skipped_files),
            "collisions": self.collisions,
            "load_time": self.load_time.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"LoadResult(resources={len(self.index)}, "
            f"loaded={len(self.files_loaded)}, "
            f"skipped={self.skipped_count})"
        )
