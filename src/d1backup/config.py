"""Configuration: frozen Config resolved from arguments or the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from d1backup.errors import ConfigurationError
from d1backup.pipeline import DEFAULT_KEY_PREFIX
from d1backup.policy import PollPolicy

load_dotenv()

# Field name -> environment variable consulted when the field is None.
_ENV_VARS: dict[str, str] = {
    "account_id": "ACCOUNT_ID",
    "api_token": "API_TOKEN",
    "db_id": "DB_ID",
    "bucket": "BACKUP_BUCKET",
    "endpoint_url": "BACKUP_ENDPOINT_URL",
    "access_key_id": "AWS_ACCESS_KEY_ID",
    "secret_access_key": "AWS_SECRET_ACCESS_KEY",
}

_REQUIRED = ("account_id", "api_token", "db_id")


@dataclass(frozen=True)
class Config:
    """Immutable configuration for one backup run.

    Unset fields are resolved from environment variables (a ``.env`` file is
    loaded on import). Cloudflare credentials and the database id are
    required; the bucket settings only matter for the default S3 sink.

    Example:
        config = Config(db_id="0f1e...")
        # account id and token come from ACCOUNT_ID and API_TOKEN
    """

    account_id: str | None = None
    api_token: str | None = None
    db_id: str | None = None
    bucket: str | None = None
    #: R2 endpoints look like ``https://<account>.r2.cloudflarestorage.com``.
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    poll: PollPolicy = field(default_factory=PollPolicy)

    def __post_init__(self) -> None:
        """Resolve unset fields from the environment and validate."""
        for name, env_var in _ENV_VARS.items():
            if getattr(self, name) is None:
                object.__setattr__(self, name, os.environ.get(env_var) or None)

        for name in _REQUIRED:
            if not getattr(self, name):
                env_var = _ENV_VARS[name]
                raise ConfigurationError(
                    f"{name} is required",
                    hint=f"Set {env_var} environment variable or pass {name}=...",
                )

        if not self.key_prefix:
            raise ConfigurationError(
                "key_prefix must not be empty",
                hint="Backups are listed by prefix; use e.g. 'db-backup-'.",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(account_id={self.account_id!r}, db_id={self.db_id!r}, "
            f"api_token={'[REDACTED]' if self.api_token else None}, "
            f"bucket={self.bucket!r}, endpoint_url={self.endpoint_url!r}, "
            f"secret_access_key={'[REDACTED]' if self.secret_access_key else None})"
        )

    __repr__ = __str__
