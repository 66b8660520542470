"""
S3 Fetcher Module
=================

Materializes a backend's state objects onto local disk.

For every configured key the fetcher rewrites the key with the configured
path substitutions, derives the local destination
``{destination}/{bucket}/{dir}/{file}``, records which S3 object backs that
path, and queues a download unless the file already exists and overwrite
is disabled. All queued keys are then retrieved in one batch through an
s3transfer manager, which runs the transfers concurrently over a shared
connection pool.

Classes
-------
FetchResult
    Files mapped and downloaded for one backend.
S3Fetcher
    Fetches the state objects of one S3 backend.

Example
-------
>>> from tfstate_index.backends.s3_fetcher import S3Fetcher
>>>
>>> fetcher = S3Fetcher(backend, destination="./cache", options=options)
>>> result = fetcher.fetch()
>>> for local_path, remote in result.filenames.items():
...     print(local_path, "<-", remote)

Notes
-----
When a batch fails or is cancelled, the local files of transfers that did
not complete are deleted so a later pull without overwrite fetches them
again. Files of other backends are never touched.
"""

from __future__ import annotations

import logging
import os
import posixpath
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from boto3.s3.transfer import TransferConfig, create_transfer_manager

from tfstate_index.core.aws_client import AWSClient
from tfstate_index.core.config import FetchOptions, S3Backend
from tfstate_index.core.exceptions import FetchError

# Module logger
logger = logging.getLogger(__name__)

ClientFactory = Callable[[S3Backend], AWSClient]

DEFAULT_POLL_INTERVAL = 0.1


@dataclass
class FetchResult:
    """
    Result of fetching one backend.

    Attributes
    ----------
    bucket : str
        The backend's bucket.
    filenames : dict
        Local path → ``arn:aws:s3:::bucket/key`` for every configured key,
        downloaded or not.
    downloaded : list of str
        Keys retrieved from S3 during this fetch.
    skipped : list of str
        Keys whose local file already existed.
    """

    bucket: str
    filenames: Dict[str, str] = field(default_factory=dict)
    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "filenames": dict(self.filenames),
            "downloaded": list(self.downloaded),
            "skipped": list(self.skipped),
        }


@dataclass
class _Transfer:
    key: str
    path: str
    fileobj: IO[bytes]
    future: Any = None


def _succeeded(future: Any) -> bool:
    if future is None or not future.done():
        return False
    try:
        future.result()
    except Exception:
        return False
    return True


class S3Fetcher:
    """
    Fetches the state objects of a single S3 backend.

    Parameters
    ----------
    backend : S3Backend
        Bucket, keys and connection settings.
    destination : str
        Local cache root.
    options : FetchOptions, optional
        Path substitutions and overwrite policy. Defaults apply when None.
    client_factory : callable, optional
        Builds the :class:`AWSClient` for the backend. Only called when at
        least one object needs downloading.
    transfer_config : TransferConfig, optional
        s3transfer settings (concurrency, part sizes).
    poll_interval : float, default=0.1
        Seconds between cancellation checks while a batch is running.
    """

    def __init__(
        self,
        backend: S3Backend,
        destination: str,
        options: Optional[FetchOptions] = None,
        client_factory: Optional[ClientFactory] = None,
        transfer_config: Optional[TransferConfig] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.backend = backend
        self.destination = destination
        self.options = options or FetchOptions()
        self.client_factory = client_factory or AWSClient.for_backend
        self.transfer_config = transfer_config or TransferConfig()
        self.poll_interval = poll_interval

    def local_path(self, key: str) -> Tuple[str, str]:
        """
        Compute the local directory and file path for ``key``.

        Example
        -------
        >>> fetcher.local_path("env:/prod/network/terraform.tfstate")
        ('cache/bucket/env:/prod/network', 'cache/bucket/env:/prod/network/terraform.tfstate')
        """
        transformed = self.options.rewrite(key)
        directory, filename = posixpath.split(transformed)
        local_dir = os.path.join(self.destination, self.backend.bucket, directory.lstrip("/"))
        return local_dir, os.path.join(local_dir, filename)

    def fetch(self, cancel_event: Optional[threading.Event] = None) -> FetchResult:
        """
        Map every configured key to a local file and download what is missing.

        Parameters
        ----------
        cancel_event : threading.Event, optional
            When set during the batch, in-flight transfers are cancelled
            and :class:`FetchError` is raised.

        Returns
        -------
        FetchResult
            The local-to-remote map and per-key outcome.

        Raises
        ------
        FetchError
            On directory creation, file open, or download failure.
        """
        bucket = self.backend.bucket
        result = FetchResult(bucket=bucket)

        with ExitStack() as stack:
            transfers: List[_Transfer] = []
            for key in self.backend.keys:
                local_dir, path = self.local_path(key)
                try:
                    os.makedirs(local_dir, exist_ok=True)
                except OSError as e:
                    raise FetchError(
                        f"Unable to create directory {local_dir}: {e}",
                        bucket=bucket,
                        key=key,
                    ) from e

                result.filenames[path] = self.backend.remote_reference(key)

                if os.path.exists(path) and not self.options.overwrite:
                    logger.debug("%s already exists, skipping s3://%s/%s", path, bucket, key)
                    result.skipped.append(key)
                    continue

                try:
                    fileobj = stack.enter_context(open(path, "wb"))
                except OSError as e:
                    self._discard(transfers)
                    raise FetchError(
                        f"Unable to open {path} for writing: {e}",
                        bucket=bucket,
                        key=key,
                    ) from e
                transfers.append(_Transfer(key=key, path=path, fileobj=fileobj))

            if transfers:
                logger.info("Downloading %d state file(s) from %s", len(transfers), bucket)
                self._download(transfers, cancel_event)
                result.downloaded = [t.key for t in transfers]

        logger.debug(
            "Fetched %s: %d downloaded, %d skipped",
            bucket,
            len(result.downloaded),
            len(result.skipped),
        )
        return result

    def _download(
        self,
        transfers: List[_Transfer],
        cancel_event: Optional[threading.Event],
    ) -> None:
        """Run one batched retrieval covering every queued transfer."""
        bucket = self.backend.bucket
        try:
            try:
                client = self.client_factory(self.backend).get_s3_client()
            except FetchError as e:
                if e.bucket is not None:
                    raise
                raise FetchError(
                    f"Unable to connect to {bucket}: {e.message}",
                    bucket=bucket,
                    details=dict(e.details),
                ) from e
            with create_transfer_manager(client, self.transfer_config) as manager:
                for transfer in transfers:
                    transfer.future = manager.download(bucket, transfer.key, transfer.fileobj)

                if cancel_event is not None:
                    self._wait(transfers, cancel_event)

                for transfer in transfers:
                    try:
                        transfer.future.result()
                    except Exception as e:
                        raise FetchError(
                            f"Failed to download s3://{bucket}/{transfer.key}: {e}",
                            bucket=bucket,
                            key=transfer.key,
                        ) from e
        except BaseException:
            self._discard(transfers)
            raise

    def _wait(self, transfers: List[_Transfer], cancel_event: threading.Event) -> None:
        while not all(t.future.done() for t in transfers):
            if cancel_event.wait(self.poll_interval):
                raise FetchError(
                    f"Fetch from {self.backend.bucket} was cancelled",
                    bucket=self.backend.bucket,
                )

    def _discard(self, transfers: List[_Transfer]) -> None:
        """Remove local files whose transfer did not complete."""
        for transfer in transfers:
            if _succeeded(transfer.future):
                continue
            transfer.fileobj.close()
            try:
                os.remove(transfer.path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Unable to remove partial file %s: %s", transfer.path, e)
            else:
                logger.debug("Removed incomplete file %s", transfer.path)

    def __repr__(self) -> str:
        return (
            f"S3Fetcher(bucket='{self.backend.bucket}', "
            f"keys={len(self.backend.keys)}, "
            f"overwrite={self.options.overwrite})"
        )
