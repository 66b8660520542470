"""
Backend Registry Module
=======================

Drives the two-phase pull/load sequence over every configured backend.

``pull()`` downloads the state files of each backend into the local cache
and builds the local-to-remote map. ``load()`` decodes every mapped file
and folds the resources into a :class:`ResourceIndex`.

Error policy
------------
Pull is fail-fast: the first backend that fails aborts the pull and its
:class:`FetchError` propagates. Load is fail-soft: a state file that fails
to decode is logged, reported in :attr:`LoadResult.skipped_files` and
contributes nothing.

Classes
-------
BackendRegistry
    Holds the configuration and orchestrates fetch then decode.

Example
-------
>>> from tfstate_index.backends import BackendRegistry
>>> from tfstate_index.core.config import BackendConfig
>>>
>>> registry = BackendRegistry(BackendConfig.from_file("backends.json"))
>>> registry.pull()
>>> result = registry.load()
>>> print(f"{len(result.index)} managed resources, {result.skipped_count} files skipped")
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from boto3.s3.transfer import TransferConfig

from tfstate_index.backends.s3_fetcher import ClientFactory, FetchResult, S3Fetcher
from tfstate_index.core.aws_client import AWSClient
from tfstate_index.core.config import BackendConfig, FetchOptions, S3Backend
from tfstate_index.core.exceptions import ConfigurationError, DecodeError, FetchError
from tfstate_index.state.decoder import load_state_file
from tfstate_index.state.index import IndexBuilder, LoadResult

# Module logger
logger = logging.getLogger(__name__)


class BackendRegistry:
    """
    Orchestrates pulling and indexing Terraform state across S3 backends.

    Parameters
    ----------
    config : BackendConfig
        Destination, fetch options and backends.
    client_factory : callable, optional
        Builds the AWS client of a backend. Defaults to
        :meth:`AWSClient.for_backend`.
    strict : bool, default=True
        When True, ``pull()`` raises :class:`ConfigurationError` on an
        invalid configuration. When False, it logs a warning and returns
        without fetching anything.
    max_workers : int, default=1
        Number of backends fetched concurrently. Results are merged in
        configuration order whatever the completion order.
    transfer_config : TransferConfig, optional
        s3transfer settings forwarded to each fetcher.

    Attributes
    ----------
    state_filenames : dict
        Local path → ``arn:aws:s3:::bucket/key`` of the last pull, in
        configuration order.

    Examples
    --------
    Pull, then index:

    >>> registry = BackendRegistry(config)
    >>> registry.pull()
    >>> index = registry.load().index

    Fetch backends in parallel:

    >>> registry = BackendRegistry(config, max_workers=4)
    >>> result = registry.build_index()
    """

    def __init__(
        self,
        config: BackendConfig,
        client_factory: Optional[ClientFactory] = None,
        strict: bool = True,
        max_workers: int = 1,
        transfer_config: Optional[TransferConfig] = None,
    ) -> None:
        self.config = config
        self.client_factory = client_factory or AWSClient.for_backend
        self.strict = strict
        self.max_workers = max(1, max_workers)
        self.transfer_config = transfer_config
        self.state_filenames: Dict[str, str] = {}

    @property
    def options(self) -> FetchOptions:
        return self.config.options or FetchOptions()

    def validate(self) -> None:
        """
        Validate the configuration, filling in default fetch options.

        Raises
        ------
        ConfigurationError
            If the destination is unset or no backend is configured.
        """
        self.config.validate()

    def check_credentials(self) -> Dict[str, str]:
        """
        Confirm every backend's credentials and role before pulling.

        Returns
        -------
        dict
            Bucket → ARN of the identity it is accessed as, in
            configuration order.

        Raises
        ------
        FetchError
            For the first backend whose credentials or role are rejected.
        """
        self.validate()
        identities: Dict[str, str] = {}
        for backend in self.config.s3:
            try:
                identities[backend.bucket] = self.client_factory(backend).validate_credentials()
            except FetchError as e:
                if e.bucket is not None:
                    raise
                raise FetchError(
                    f"Credential check failed for {backend.bucket}: {e.message}",
                    bucket=backend.bucket,
                    details=dict(e.details),
                ) from e
        return identities

    def _fetcher(self, backend: S3Backend) -> S3Fetcher:
        return S3Fetcher(
            backend,
            destination=self.config.destination,
            options=self.options,
            client_factory=self.client_factory,
            transfer_config=self.transfer_config,
        )

    def pull(self, cancel_event: Optional[threading.Event] = None) -> List[FetchResult]:
        """
        Fetch the state files of every backend.

        Parameters
        ----------
        cancel_event : threading.Event, optional
            Aborts in-flight transfers when set.

        Returns
        -------
        list of FetchResult
            One result per backend, in configuration order. Empty when a
            non-strict registry skipped an invalid configuration.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid and ``strict`` is True.
        FetchError
            For the first failing backend in configuration order.
        """
        try:
            self.validate()
        except ConfigurationError as e:
            if self.strict:
                raise
            logger.warning("Skipping pull, invalid configuration: %s", e)
            return []

        self.state_filenames = {}
        backends = self.config.s3
        logger.info("Pulling state from %d backend(s)", len(backends))

        if self.max_workers == 1 or len(backends) == 1:
            results = []
            for backend in backends:
                result = self._fetcher(backend).fetch(cancel_event)
                self.state_filenames.update(result.filenames)
                results.append(result)
        else:
            results = self._pull_concurrently(backends, cancel_event)

        logger.info("Pulled %d state file(s)", len(self.state_filenames))
        return results

    def _pull_concurrently(
        self,
        backends: List[S3Backend],
        cancel_event: Optional[threading.Event],
    ) -> List[FetchResult]:
        """
        Fetch backends on a thread pool.

        Backends not yet started when one fails are cancelled. The error
        raised is the one of the failing backend that comes first in
        configuration order, and maps are merged in that same order.
        """
        results: Dict[int, FetchResult] = {}
        errors: Dict[int, FetchError] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self._fetcher(backend).fetch, cancel_event): position
                for position, backend in enumerate(backends)
            }
            for future in as_completed(futures):
                position = futures[future]
                if future.cancelled():
                    continue
                try:
                    results[position] = future.result()
                except FetchError as e:
                    logger.error("Backend %s failed: %s", backends[position].bucket, e)
                    errors[position] = e
                    for pending in futures:
                        pending.cancel()

        for position in range(len(backends)):
            if position in errors:
                raise errors[position]
            if position in results:
                self.state_filenames.update(results[position].filenames)

        return [results[position] for position in sorted(results)]

    def map_cache(self) -> Dict[str, str]:
        """
        Build the local-to-remote map from configuration alone.

        Nothing is downloaded. Paths whose file is missing from the cache
        are still mapped, and ``load()`` reports them as skipped.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid.
        """
        self.validate()
        self.state_filenames = {}
        for backend in self.config.s3:
            fetcher = self._fetcher(backend)
            for key in backend.keys:
                _, path = fetcher.local_path(key)
                self.state_filenames[path] = backend.remote_reference(key)
        return self.state_filenames

    def load(self) -> LoadResult:
        """
        Decode every pulled state file into a resource index.

        Files are processed in configuration order, so when two state
        files manage the same id the later backend wins.

        Returns
        -------
        LoadResult
            The index and the files that were skipped.
        """
        builder = IndexBuilder()
        result = LoadResult()
        arnless = self.options.arnless_resource_types

        for filename, owner in self.state_filenames.items():
            try:
                descriptors = load_state_file(filename, arnless_types=arnless)
            except DecodeError as e:
                logger.warning("Skipping %s (%s): %s", filename, owner, e.message)
                result.skipped_files[filename] = e.message
                continue
            builder.add(descriptors, owner)
            result.files_loaded.append(filename)

        result.index = builder.build()
        result.collisions = builder.overwritten
        logger.info(
            "Indexed %d resource(s) from %d state file(s), %d skipped",
            len(result.index),
            len(result.files_loaded),
            result.skipped_count,
        )
        return result

    def build_index(self, cancel_event: Optional[threading.Event] = None) -> LoadResult:
        """Pull every backend, then load the index."""
        self.pull(cancel_event)
        return self.load()

    def __repr__(self) -> str:
        return (
            f"BackendRegistry(destination='{self.config.destination}', "
            f"backends={len(self.config.s3)}, "
            f"max_workers={self.max_workers})"
        )
