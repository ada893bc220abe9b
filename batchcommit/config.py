"""
Service configuration.

All settings come from the process environment. Required variables are
checked together so a misconfigured deployment reports every missing key at
once.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from batchcommit.exceptions import ConfigurationError
from batchcommit.signers import AppKeySigner
from batchcommit.types.git import CommitIdentity

DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_ASSET_BUCKET = "site-assets"

REQUIRED_ENV = (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "GITHUB_APP_ID",
)


def _int_env(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None


def _float_env(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None


@dataclass
class Settings:
    """Resolved service configuration. Secrets are kept out of ``repr``."""

    supabase_url: str
    service_role_key: str = field(repr=False)
    app_id: str
    private_key_pem: str = field(repr=False)
    github_api_url: str = DEFAULT_GITHUB_API_URL
    asset_bucket: str = DEFAULT_ASSET_BUCKET
    http_timeout: float = 30.0
    commit_max_attempts: int = 3
    commit_attempt_timeout: float = 120.0
    blob_concurrency: int = 4
    identity: CommitIdentity = field(default_factory=CommitIdentity)
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Load settings from environment variables.

        Environment variables:
            SUPABASE_URL: Row/object store base URL (required)
            SUPABASE_SERVICE_ROLE_KEY: Service credential for the store (required)
            GITHUB_APP_ID: Application id (required)
            GITHUB_APP_PRIVATE_KEY: PEM text, ``\\n`` escapes allowed (required
                unless GITHUB_APP_PRIVATE_KEY_PATH is set)
            GITHUB_APP_PRIVATE_KEY_PATH: Path to the PEM file
            GITHUB_API_URL: Host API base URL (default: https://api.github.com)
            ASSET_BUCKET: Storage bucket holding staged assets (default: site-assets)
            HTTP_TIMEOUT: Per-request timeout in seconds (default: 30)
            COMMIT_MAX_ATTEMPTS: Commit attempts per batch (default: 3)
            COMMIT_ATTEMPT_TIMEOUT: Seconds allowed per attempt (default: 120)
            BLOB_CONCURRENCY: Blob uploads in flight, clamped to 1..8 (default: 4)
            COMMIT_BOT_NAME / COMMIT_BOT_EMAIL: Commit author identity
            LOG_LEVEL: Logging level name (default: INFO)

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If required variables are missing or invalid
        """
        env = os.environ if environ is None else environ

        missing = [key for key in REQUIRED_ENV if not env.get(key)]
        key_path = env.get("GITHUB_APP_PRIVATE_KEY_PATH")
        if not env.get("GITHUB_APP_PRIVATE_KEY") and not key_path:
            missing.append("GITHUB_APP_PRIVATE_KEY")
        if missing:
            raise ConfigurationError(f"Missing environment variables: {', '.join(missing)}")

        private_key_pem = env.get("GITHUB_APP_PRIVATE_KEY") or ""
        if not private_key_pem:
            try:
                with open(key_path, encoding="utf-8") as f:  # type: ignore[arg-type]
                    private_key_pem = f.read()
            except OSError as e:
                raise ConfigurationError(f"Cannot read GITHUB_APP_PRIVATE_KEY_PATH: {e}") from e

        level_name = env.get("LOG_LEVEL", "INFO").upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            raise ConfigurationError(f"Invalid LOG_LEVEL: {level_name}")

        max_attempts = _int_env(env, "COMMIT_MAX_ATTEMPTS", 3)
        if max_attempts < 1:
            raise ConfigurationError("COMMIT_MAX_ATTEMPTS must be at least 1")

        attempt_timeout = _float_env(env, "COMMIT_ATTEMPT_TIMEOUT", 120.0)
        if attempt_timeout <= 0:
            raise ConfigurationError("COMMIT_ATTEMPT_TIMEOUT must be positive")

        defaults = CommitIdentity()
        return cls(
            supabase_url=env["SUPABASE_URL"].rstrip("/"),
            service_role_key=env["SUPABASE_SERVICE_ROLE_KEY"],
            app_id=env["GITHUB_APP_ID"],
            private_key_pem=private_key_pem,
            github_api_url=env.get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL,
            asset_bucket=env.get("ASSET_BUCKET") or DEFAULT_ASSET_BUCKET,
            http_timeout=_float_env(env, "HTTP_TIMEOUT", 30.0),
            commit_max_attempts=max_attempts,
            commit_attempt_timeout=attempt_timeout,
            blob_concurrency=max(1, min(_int_env(env, "BLOB_CONCURRENCY", 4), 8)),
            identity=CommitIdentity(
                name=env.get("COMMIT_BOT_NAME") or defaults.name,
                email=env.get("COMMIT_BOT_EMAIL") or defaults.email,
            ),
            log_level=log_level,
        )

    def signer(self) -> AppKeySigner:
        """Load the application's signing key.

        Raises:
            CredentialError: If the key is malformed
        """
        return AppKeySigner.from_pem(self.private_key_pem)
