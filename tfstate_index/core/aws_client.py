"""
AWS Client Module
=================

Provides a wrapper around boto3 for building the session and S3 client of
a state backend, with retry configuration, optional cross-account role
assumption, and credential validation.

Classes
-------
AWSClient
    Session and client factory for one backend.

Example
-------
>>> from tfstate_index.core.aws_client import AWSClient
>>>
>>> client = AWSClient(region="eu-west-1")
>>> s3 = client.get_s3_client()
>>>
>>> # Cross-account backend
>>> client = AWSClient(
...     region="eu-west-1",
...     role_arn="arn:aws:iam::123456789012:role/state-reader",
...     external_id="shared-secret",
... )
>>> client.validate_credentials()
'arn:aws:sts::123456789012:assumed-role/state-reader/tfstate-index'

Notes
-----
Sessions and clients are created lazily on first access and cached for
subsequent calls.

See Also
--------
boto3 : AWS SDK for Python
botocore : Low-level AWS client library
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    NoRegionError,
    ProfileNotFound,
)

from tfstate_index.core.config import S3Backend
from tfstate_index.core.exceptions import ConfigurationError, FetchError

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "tfstate-index"


class AWSClient:
    """
    boto3 session and client factory for a single backend.

    Parameters
    ----------
    region : str, optional
        AWS region to connect to. Falls back to the environment's default
        region when empty.
    role_arn : str, optional
        Role to assume before talking to the backend.
    external_id : str, optional
        External id passed to ``AssumeRole``.
    session_name : str, optional
        Role session name passed to ``AssumeRole``.
    max_retries : int, default=3
        Maximum number of attempts for failed API calls.
    timeout : int, default=30
        Connect and read timeout in seconds.

    Raises
    ------
    ConfigurationError
        If the environment's profile or the region cannot be resolved.
    FetchError
        If credentials are missing or the role cannot be assumed.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        role_arn: Optional[str] = None,
        external_id: Optional[str] = None,
        session_name: Optional[str] = None,
        max_retries: int = 3,
        timeout: int = 30,
    ) -> None:
        self.region = region or None
        self.role_arn = role_arn or None
        self.external_id = external_id or None
        self.session_name = session_name or DEFAULT_SESSION_NAME
        self.max_retries = max_retries
        self.timeout = timeout

        self._session: Optional[boto3.Session] = None
        self._clients: dict[str, Any] = {}
        self._config = self._create_config()

        logger.debug(
            "Initialized AWSClient (region=%s, role_arn=%s)", self.region, self.role_arn
        )

    @classmethod
    def for_backend(cls, backend: S3Backend, **kwargs: Any) -> AWSClient:
        """
        Create a client from a backend's connection settings.

        Example
        -------
        >>> client = AWSClient.for_backend(config.s3[0], max_retries=5)
        """
        return cls(
            region=backend.region,
            role_arn=backend.role_arn,
            external_id=backend.external_id,
            session_name=backend.session_name,
            **kwargs,
        )

    def _create_config(self) -> Config:
        return Config(
            retries={
                "max_attempts": self.max_retries,
                "mode": "adaptive",
            },
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
        )

    @property
    def session(self) -> boto3.Session:
        """Get or create the boto3 session (lazy initialization)."""
        if self._session is None:
            base = self._create_base_session()
            self._session = self._assume_role(base) if self.role_arn else base
        return self._session

    def _create_base_session(self) -> boto3.Session:
        try:
            session_kwargs = {}
            if self.region:
                session_kwargs["region_name"] = self.region
            session = boto3.Session(**session_kwargs)
            logger.debug("Created boto3 session for region %s", self.region)
            return session

        except ProfileNotFound as e:
            raise ConfigurationError(
                f"AWS profile not found: {e}",
                field="profile",
                details={"hint": "Check ~/.aws/credentials for available profiles"},
            ) from e

    def _assume_role(self, base: boto3.Session) -> boto3.Session:
        """
        Exchange the base session for temporary role credentials.

        Returns
        -------
        boto3.Session
            Session signed with the assumed role's credentials.
        """
        params = {
            "RoleArn": self.role_arn,
            "RoleSessionName": self.session_name,
        }
        if self.external_id:
            params["ExternalId"] = self.external_id

        try:
            sts = base.client("sts", config=self._config)
            response = sts.assume_role(**params)
        except NoCredentialsError as e:
            raise FetchError(
                "AWS credentials not found",
                details={"hint": "Configure credentials before assuming a role"},
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise FetchError(
                f"Failed to assume role {self.role_arn}: {e}",
                details={"role_arn": self.role_arn},
            ) from e

        credentials = response["Credentials"]
        logger.info("Assumed role %s", self.role_arn)
        return boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=base.region_name,
        )

    def _get_client(self, service_name: str) -> Any:
        """
        Get or create a cached boto3 client for ``service_name``.

        Raises
        ------
        ConfigurationError
            If no region can be resolved.
        FetchError
            If the client cannot be created.
        """
        if service_name in self._clients:
            return self._clients[service_name]

        try:
            client = self.session.client(service_name, config=self._config)
        except NoRegionError as e:
            raise ConfigurationError(
                "Invalid or missing region",
                field="s3.region",
                details={"hint": "Specify a region like 'us-east-1'"},
            ) from e
        except (BotoCoreError, ValueError) as e:
            raise FetchError(f"Failed to create {service_name} client: {e}") from e

        self._clients[service_name] = client
        logger.debug("Created %s client for %s", service_name, self.region)
        return client

    def get_s3_client(self) -> Any:
        """
        Get the S3 client.

        Returns
        -------
        S3.Client
            Boto3 S3 client.
        """
        return self._get_client("s3")

    def get_sts_client(self) -> Any:
        return self._get_client("sts")

    def get_caller_identity(self) -> dict[str, str]:
        """
        Get the caller identity of this client's credentials.

        Raises
        ------
        FetchError
            If the call fails or credentials are missing.
        """
        try:
            return self.get_sts_client().get_caller_identity()
        except NoCredentialsError as e:
            raise FetchError(
                "AWS credentials not found",
                details={
                    "hint": (
                        "Configure credentials using 'aws configure' or set "
                        "AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY"
                    ),
                },
            ) from e
        except (ClientError, BotoCoreError) as e:
            raise FetchError(f"Failed to get caller identity: {e}") from e

    def validate_credentials(self) -> str:
        """
        Validate credentials (and role assumption) by calling STS
        GetCallerIdentity.

        Returns
        -------
        str
            ARN of the identity the backend is accessed as.
        """
        identity = self.get_caller_identity()
        logger.info("Credentials validated for %s", identity["Arn"])
        return identity["Arn"]

    def __repr__(self) -> str:
        return (
            f"AWSClient(region={self.region!r}, "
            f"role_arn={self.role_arn!r}, "
            f"max_retries={self.max_retries})"
        )
