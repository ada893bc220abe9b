"""Installation and credential data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class InstallationToken:
    """An ephemeral installation-scoped access token.

    Never persisted; only ``expires_at`` is cached on the site as a hint.
    """

    token: str = field(repr=False)
    expires_at: datetime
    installation_id: int
    permissions: dict[str, str] = field(default_factory=dict)
    repository_selection: str | None = None

    @property
    def expires_at_iso(self) -> str:
        return self.expires_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def is_expired(self, buffer_seconds: int = 60, now: datetime | None = None) -> bool:
        """True if the token expires within ``buffer_seconds``."""
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds() <= buffer_seconds


@dataclass
class Installation:
    """An installation of the application on an account."""

    installation_id: int
    account_login: str | None
    app_slug: str | None
    target_type: str | None
    suspended_at: datetime | None = None

    @property
    def suspended(self) -> bool:
        return self.suspended_at is not None
