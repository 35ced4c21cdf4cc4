# src/motion_sync/config.py
"""
Configuration for the motion-sync pipeline.

This module centralizes all configuration, loading endpoints and credentials
from environment variables and providing typed dataclasses for use throughout
the application.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from motion_sync.exceptions import ConfigError


def _get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = os.environ.get(name, default)
    if not value:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def _get_optional_env_var(name: str) -> Optional[str]:
    """Returns the value of an environment variable, or None if unset or empty."""
    return os.environ.get(name) or None


@dataclass(frozen=True)
class SourceConfig:
    """
    Represents the configuration for the source S3-compatible bucket.

    Static credentials are optional. When neither key is given the default
    botocore credential chain is used (environment, profile, instance role).

    Attributes:
        bucket (str): The bucket name.
        region (str): The AWS region.
        endpoint_url (str, optional): A non-AWS S3 endpoint URL.
        access_key_id (str, optional): The access key ID.
        secret_access_key (str, optional): The secret access key.
    """

    bucket: str
    region: str
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.access_key_id is None) != (self.secret_access_key is None):
            raise ConfigError(
                "Source credentials need both an access key ID and a secret "
                "access key, or neither."
            )

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Returns:
            Dict[str, str]: A dictionary of client parameters, without unset entries.
        """
        params: Dict[str, Optional[str]] = {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": self.region,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the application's operational parameters.

    Attributes:
        status_file (Path): JSON file holding every uploaded object's record.
        tick_interval_s (float): Cadence of status reconciliation passes.
        chunk_size (int): Size of the chunks read from the source stream.
    """

    status_file: Path = field(default_factory=lambda: Path("status.json"))
    tick_interval_s: float = 10.0
    chunk_size: int = 1024 * 1024


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        endpoint_url (str): Base URL of the Motion blob endpoint. Uploads are
            POSTed here and status is read from `{endpoint_url}/{id}/status`.
        source (SourceConfig): Configuration for the source bucket.
        app (AppConfig): General application settings.
    """

    endpoint_url: str = field(
        default_factory=lambda: _get_env_var("MOTION_SYNC_ENDPOINT_URL").rstrip("/")
    )
    source: SourceConfig = field(
        default_factory=lambda: SourceConfig(
            bucket=_get_env_var("MOTION_SYNC_SOURCE_BUCKET"),
            region=_get_env_var("MOTION_SYNC_SOURCE_REGION", "us-east-1"),
            endpoint_url=_get_optional_env_var("MOTION_SYNC_SOURCE_ENDPOINT_URL"),
            access_key_id=_get_optional_env_var("MOTION_SYNC_SOURCE_ACCESS_KEY_ID"),
            secret_access_key=_get_optional_env_var(
                "MOTION_SYNC_SOURCE_SECRET_ACCESS_KEY"
            ),
        )
    )
    app: AppConfig = field(default_factory=AppConfig)
