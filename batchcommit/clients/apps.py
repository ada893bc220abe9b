"""Application authentication resource client."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from batchcommit.types.installations import Installation, InstallationToken

if TYPE_CHECKING:
    from batchcommit.transport import HTTPTransport


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse the host's ISO 8601 timestamps ("2024-01-01T00:00:00Z")."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _parse_installation(data: dict[str, Any]) -> Installation:
    account = data.get("account") or {}
    return Installation(
        installation_id=int(data["id"]),
        account_login=account.get("login"),
        app_slug=data.get("app_slug"),
        target_type=data.get("target_type"),
        suspended_at=parse_timestamp(data.get("suspended_at")),
    )


class AppsClient:
    """Client for the host's app-auth endpoints.

    Every call is authenticated with a freshly signed application assertion
    supplied by the caller, never with an installation token.
    """

    def __init__(self, transport: "HTTPTransport") -> None:
        """
        Initialize the apps client.

        Args:
            transport: HTTP transport for the Git host API
        """
        self.transport = transport

    async def create_installation_token(
        self,
        installation_id: int,
        app_jwt: str,
        repositories: list[str] | None = None,
        permissions: dict[str, str] | None = None,
    ) -> InstallationToken:
        """
        Exchange an application assertion for an installation access token.

        Args:
            installation_id: Target installation
            app_jwt: Signed application assertion
            repositories: Optional repository names to scope the token to
            permissions: Optional permission subset to request

        Returns:
            InstallationToken with the token value and its expiry

        Raises:
            APIError: On any host error; never retried automatically
        """
        body: dict[str, Any] = {}
        if repositories:
            body["repositories"] = repositories
        if permissions:
            body["permissions"] = permissions

        data = await self.transport.request_json(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            token=app_jwt,
            json=body,
            retry=False,
        )

        return InstallationToken(
            token=data["token"],
            expires_at=parse_timestamp(data["expires_at"]),  # type: ignore[arg-type]
            installation_id=installation_id,
            permissions=data.get("permissions", {}),
            repository_selection=data.get("repository_selection"),
        )

    async def get_installation(self, installation_id: int, app_jwt: str) -> Installation:
        """
        Get installation metadata.

        Raises:
            ResourceNotFoundError: If the installation does not exist
        """
        data = await self.transport.request_json(
            "GET",
            f"/app/installations/{installation_id}",
            token=app_jwt,
            retry=False,
        )
        return _parse_installation(data)
