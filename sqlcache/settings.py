"""Connection settings model.

Settings can be built directly, read from environment variables, or resolved
from an AWS Secrets Manager secret (optionally with an RDS IAM auth token as
password).
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Mapping, Optional, cast

import boto3
from pydantic import BaseModel, Field, field_validator

from .drivers import DEFAULT_POOL_MAX_SIZE
from .exceptions import SettingsError

ENV_PREFIX = "SQLCACHE_"
_TRUE_VALUES = ("1", "true", "yes", "on")


class ConnectionSettings(BaseModel):
    """Validated inputs for ``StatementExecutor``.

    Attributes:
        dsn: Driver specific connection string.
        user: Database user.
        password: Database password.
        pool: Request a pooled connection from the driver.
        pool_max_size: Maximum connections held by the driver pool.
        cache: Enable the statement cache right after connecting.
    """

    dsn: str = Field(...)
    user: str = Field("")
    password: str = Field("", repr=False)
    pool: bool = False
    pool_max_size: int = Field(DEFAULT_POOL_MAX_SIZE, ge=1)
    cache: bool = False

    model_config = {
        "validate_assignment": True,
    }

    @field_validator("dsn")
    @classmethod
    def validate_dsn(cls, v: str) -> str:
        """Require a non-blank DSN with a scheme prefix."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("DSN cannot be blank.")
        if ":" not in stripped:
            raise ValueError("DSN must start with a driver scheme such as 'sqlite:' or 'pgsql:'.")
        return stripped

    @classmethod
    def from_env(
        cls, prefix: str = ENV_PREFIX, environ: Optional[Mapping[str, str]] = None
    ) -> ConnectionSettings:
        """Read settings from ``<prefix>DSN``, ``USER``, ``PASSWORD``, ``POOL``,
        ``POOL_MAX_SIZE`` and ``CACHE``.

        Raises:
            SettingsError: If the DSN variable is missing.
        """
        env = os.environ if environ is None else environ
        dsn = env.get(f"{prefix}DSN")
        if not dsn:
            raise SettingsError(f"Environment variable {prefix}DSN is not set")

        values: Dict[str, Any] = {
            "dsn": dsn,
            "user": env.get(f"{prefix}USER", ""),
            "password": env.get(f"{prefix}PASSWORD", ""),
            "pool": env.get(f"{prefix}POOL", "").strip().lower() in _TRUE_VALUES,
            "cache": env.get(f"{prefix}CACHE", "").strip().lower() in _TRUE_VALUES,
        }
        max_size = env.get(f"{prefix}POOL_MAX_SIZE")
        if max_size:
            values["pool_max_size"] = max_size
        return cls(**values)

    @classmethod
    def from_secret(
        cls,
        secret_id: str,
        region_name: str,
        *,
        iam_auth: bool = False,
        pool: bool = False,
        cache: bool = False,
    ) -> ConnectionSettings:
        """Resolve PostgreSQL settings from an AWS Secrets Manager secret.

        The secret must be a JSON object with ``host``, ``port``, ``dbname`` and
        ``username``; ``password`` is required unless ``iam_auth`` is set, in which
        case an RDS auth token is generated instead.

        Raises:
            SettingsError: If the secret is not valid JSON or lacks a key.
        """
        sm_client = boto3.client("secretsmanager", region_name=region_name)
        secret = sm_client.get_secret_value(SecretId=secret_id)
        try:
            config = cast(Dict[str, Any], json.loads(cast(str, secret["SecretString"])))
            host = str(config["host"])
            port = int(config["port"])
            dbname = str(config["dbname"])
            username = str(config["username"])
        except (KeyError, ValueError, TypeError) as exc:
            raise SettingsError(f"Secret '{secret_id}' is missing connection details: {exc}") from exc

        if iam_auth:
            rds = boto3.client("rds", region_name=region_name)
            password = rds.generate_db_auth_token(
                DBHostname=host,
                Port=port,
                DBUsername=username,
                Region=region_name,
            )
            dsn = f"pgsql:host={host};port={port};dbname={dbname};sslmode=require"
        else:
            if "password" not in config:
                raise SettingsError(f"Secret '{secret_id}' has no password")
            password = str(config["password"])
            dsn = f"pgsql:host={host};port={port};dbname={dbname}"

        return cls(
            dsn=dsn,
            user=username,
            password=password,
            pool=pool,
            cache=cache,
        )
