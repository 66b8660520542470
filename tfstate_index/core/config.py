"""
Backend Configuration Module
============================

Declarative configuration for the state backends to pull and index.

The configuration is a JSON document::

    {
      "destination": "./.tfstate-cache",
      "options": {
        "path_substitutions": [{"old": "env:/", "new": ""}],
        "overwrite": false,
        "arnless_resource_types": ["aws_ssm_parameter"]
      },
      "s3": [
        {
          "bucket": "tf-state-prod",
          "keys": ["network/terraform.tfstate"],
          "region": "eu-west-1",
          "role_arn": "arn:aws:iam::123456789012:role/state-reader",
          "external_id": "abc",
          "session_name": "tfstate-index"
        }
      ]
    }

Classes
-------
Substitution
    A literal find-and-replace rule for object keys.
FetchOptions
    Path rewriting and overwrite policy shared by every backend.
S3Backend
    One S3 bucket and the state object keys to fetch from it.
BackendConfig
    The full configuration: destination root, options and backends.

Example
-------
>>> from tfstate_index.core.config import BackendConfig
>>>
>>> config = BackendConfig.from_file("backends.json")
>>> config.validate()
>>> for backend in config.s3:
...     print(backend.bucket, len(backend.keys))
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from tfstate_index.core.exceptions import ConfigurationError

# Module logger
logger = logging.getLogger(__name__)

S3_ARN_FORMAT = "arn:aws:s3:::{bucket}/{key}"


def _expect(value: Any, expected: type, field_name: str) -> Any:
    """Return ``value`` if it has the expected type, else raise."""
    if not isinstance(value, expected):
        raise ConfigurationError(
            f"Field '{field_name}' must be of type {expected.__name__}, "
            f"got {type(value).__name__}",
            field=field_name,
        )
    return value


def _expect_str_list(value: Any, field_name: str) -> List[str]:
    items = _expect(value, list, field_name)
    for item in items:
        _expect(item, str, field_name)
    return list(items)


@dataclass(frozen=True)
class Substitution:
    """A literal (non-regex) substring replacement applied to object keys."""

    old: str
    new: str

    def apply(self, value: str) -> str:
        """Replace every occurrence of ``old`` with ``new``."""
        return value.replace(self.old, self.new)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Substitution:
        _expect(data, dict, "options.path_substitutions")
        return cls(
            old=_expect(data.get("old", ""), str, "options.path_substitutions.old"),
            new=_expect(data.get("new", ""), str, "options.path_substitutions.new"),
        )


@dataclass
class FetchOptions:
    """
    Options shared by every backend during a fetch pass.

    Parameters
    ----------
    path_substitutions : list of Substitution
        Applied in order to each object key before the local path is
        derived from it.
    overwrite : bool, default=False
        When False, objects whose local file already exists are not
        downloaded again.
    arnless_resource_types : list of str
        Extra resource types kept by the decoder even when they carry no
        ``arn`` attribute.
    """

    path_substitutions: List[Substitution] = field(default_factory=list)
    overwrite: bool = False
    arnless_resource_types: List[str] = field(default_factory=list)

    def rewrite(self, key: str) -> str:
        """
        Apply every path substitution to ``key``, in configured order.

        Example
        -------
        >>> options = FetchOptions(path_substitutions=[
        ...     Substitution("/", "_"), Substitution("_v2", ""),
        ... ])
        >>> options.rewrite("a/b_v2")
        'a_b'
        """
        transformed = key
        for substitution in self.path_substitutions:
            transformed = substitution.apply(transformed)
        return transformed

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FetchOptions:
        _expect(data, dict, "options")
        substitutions = _expect(
            data.get("path_substitutions") or [], list, "options.path_substitutions"
        )
        return cls(
            path_substitutions=[Substitution.from_dict(s) for s in substitutions],
            overwrite=_expect(data.get("overwrite", False), bool, "options.overwrite"),
            arnless_resource_types=_expect_str_list(
                data.get("arnless_resource_types") or [],
                "options.arnless_resource_types",
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path_substitutions": [
                {"old": s.old, "new": s.new} for s in self.path_substitutions
            ],
            "overwrite": self.overwrite,
            "arnless_resource_types": list(self.arnless_resource_types),
        }


@dataclass
class S3Backend:
    """
    An S3 bucket holding Terraform state objects.

    The role, external id and session name are only used to build the
    boto3 session for this backend.
    """

    bucket: str
    keys: List[str] = field(default_factory=list)
    region: str = ""
    role_arn: str = ""
    external_id: str = ""
    session_name: str = ""

    def remote_reference(self, key: str) -> str:
        """Return the canonical ``arn:aws:s3:::bucket/key`` of an object."""
        return S3_ARN_FORMAT.format(bucket=self.bucket, key=key)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> S3Backend:
        _expect(data, dict, "s3")
        return cls(
            bucket=_expect(data.get("bucket", ""), str, "s3.bucket"),
            keys=_expect_str_list(data.get("keys") or [], "s3.keys"),
            region=_expect(data.get("region") or "", str, "s3.region"),
            role_arn=_expect(data.get("role_arn") or "", str, "s3.role_arn"),
            external_id=_expect(data.get("external_id") or "", str, "s3.external_id"),
            session_name=_expect(
                data.get("session_name") or "", str, "s3.session_name"
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "keys": list(self.keys),
            "region": self.region,
            "role_arn": self.role_arn,
            "external_id": self.external_id,
            "session_name": self.session_name,
        }


@dataclass
class BackendConfig:
    """
    Full configuration of a pull/index run.

    Parameters
    ----------
    destination : str
        Local root directory state files are downloaded into.
    options : FetchOptions, optional
        Fetch options. ``validate()`` substitutes defaults when unset.
    s3 : list of S3Backend
        Backends in priority order: when two backends manage the same
        resource id, the later one wins in the index.
    """

    destination: str = ""
    options: Optional[FetchOptions] = field(default_factory=FetchOptions)
    s3: List[S3Backend] = field(default_factory=list)

    def validate(self) -> None:
        """
        Check required fields and fill in default options.

        Raises
        ------
        ConfigurationError
            If the destination is empty, no backend is configured, or a
            backend lacks a bucket or keys.
        """
        if not self.destination:
            raise ConfigurationError("Destination field is empty", field="destination")

        if not self.s3:
            raise ConfigurationError("s3 field is empty", field="s3")

        for position, backend in enumerate(self.s3):
            if not backend.bucket:
                raise ConfigurationError(
                    f"Backend #{position} has an empty bucket",
                    field="s3.bucket",
                )
            if not backend.keys:
                raise ConfigurationError(
                    f"Backend '{backend.bucket}' has no keys",
                    field="s3.keys",
                    details={"bucket": backend.bucket},
                )

        if self.options is None:
            logger.debug("No fetch options configured, using defaults")
            self.options = FetchOptions()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BackendConfig:
        """
        Build a configuration from a decoded JSON document.

        An absent ``options`` key yields default options. An explicit
        ``null`` leaves them unset until ``validate()``.
        """
        _expect(data, dict, "<root>")
        if "options" not in data:
            options: Optional[FetchOptions] = FetchOptions()
        elif data["options"] is None:
            options = None
        else:
            options = FetchOptions.from_dict(data["options"])

        backends = _expect(data.get("s3") or [], list, "s3")
        return cls(
            destination=_expect(data.get("destination") or "", str, "destination"),
            options=options,
            s3=[S3Backend.from_dict(b) for b in backends],
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> BackendConfig:
        """
        Load a configuration from a JSON file.

        Raises
        ------
        ConfigurationError
            If the file cannot be read or is not valid JSON.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Unable to read configuration file: {e}",
                details={"path": str(path)},
            ) from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Configuration file is not valid JSON: {e}",
                details={"path": str(path)},
            ) from e

        config = cls.from_dict(data)
        logger.debug(
            "Loaded configuration from %s with %d backend(s)", path, len(config.s3)
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "destination": self.destination,
            "options": self.options.to_dict() if self.options else None,
            "s3": [b.to_dict() for b in self.s3],
        }
