"""
Custom Exceptions for tfstate-index
===================================

This module defines the exception hierarchy used throughout the
application for consistent error handling and reporting.

Exception Hierarchy
-------------------
::

    TfStateIndexError (base)
    ├── ConfigurationError
    ├── FetchError
    └── DecodeError

Propagation
-----------
- :class:`ConfigurationError` is raised before any fetch happens.
- :class:`FetchError` aborts a pull at the first failing backend.
- :class:`DecodeError` aborts the decode of a single state file. The
  registry records it and moves on to the next file.

Example
-------
>>> from tfstate_index.core.exceptions import FetchError, TfStateIndexError
>>>
>>> try:
...     registry.pull()
... except FetchError as e:
...     print(f"Backend {e.bucket} failed: {e}")
... except TfStateIndexError as e:
...     print(f"Error: {e}")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TfStateIndexError(Exception):
    """
    Base exception for all tfstate-index errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    details : dict, optional
        Additional context about the error.

    Attributes
    ----------
    message : str
        The error message.
    details : dict
        Additional error details.

    Example
    -------
    >>> raise TfStateIndexError("Something went wrong", details={"code": 500})
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns
        -------
        dict
            Dictionary representation of the error.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(TfStateIndexError):
    """
    Raised when the backend configuration is missing a required field
    or carries a value of the wrong shape.

    Parameters
    ----------
    message : str
        Human-readable error message.
    field : str, optional
        Name of the offending configuration field.
    details : dict, optional
        Additional context about the error.

    Example
    -------
    >>> raise ConfigurationError("Destination field is empty", field="destination")
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.field = field
        full_details = details or {}
        if field:
            full_details["field"] = field
        super().__init__(message, full_details)


class FetchError(TfStateIndexError):
    """
    Raised when a backend's state objects cannot be retrieved.

    Covers S3 failures during the batched download as well as local
    filesystem failures (directory creation, file open).

    Parameters
    ----------
    message : str
        Human-readable error message.
    bucket : str, optional
        The S3 bucket of the failing backend.
    key : str, optional
        The object key being fetched when the failure occurred.
    details : dict, optional
        Additional context about the error.

    Example
    -------
    >>> raise FetchError(
    ...     "Failed to download state objects",
    ...     bucket="tf-state-prod",
    ...     key="network/terraform.tfstate",
    ... )
    """

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        full_details = details or {}
        if bucket:
            full_details["bucket"] = bucket
        if key:
            full_details["key"] = key
        super().__init__(message, full_details)


class DecodeError(TfStateIndexError):
    """
    Raised when a state document or one of its attribute blobs is malformed.

    Parameters
    ----------
    message : str
        Human-readable error message.
    path : str, optional
        Local path of the state file being decoded.
    address : str, optional
        Terraform address of the resource being decoded.
    details : dict, optional
        Additional context about the error.

    Example
    -------
    >>> raise DecodeError(
    ...     "Resource has no 'id' attribute",
    ...     address="module.vpc.aws_vpc.main",
    ... )
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.path = path
        self.address = address
        full_details = details or {}
        if path:
            full_details["path"] = path
        if address:
            full_details["address"] = address
        super().__init__(message, full_details)
