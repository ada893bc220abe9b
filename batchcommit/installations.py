"""
Installation sync.

Links a site to an installation of the application: proves the installation
can mint a token right now, then records the installation and repository
details on the site together with the token's expiry hint.
"""

from dataclasses import dataclass
from typing import Any

from batchcommit.credentials import CredentialBroker
from batchcommit.exceptions import ValidationError
from batchcommit.logging import get_logger
from batchcommit.store import BatchStore

logger = get_logger("installations")


@dataclass
class InstallationSyncRequest:
    """Site-to-installation link submitted after the app is installed."""

    site_id: str
    installation_id: int
    repo_full_name: str
    default_branch: str = "main"
    app_slug: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallationSyncRequest":
        """
        Build a request from a camelCase JSON body.

        Raises:
            ValidationError: If a required field is missing or mistyped
        """
        missing = [key for key in ("siteId", "installationId", "repoFullName") if not data.get(key)]
        if missing:
            raise ValidationError(
                "INVALID_REQUEST",
                "Missing required fields",
                {"missing": missing},
            )

        installation_id = data["installationId"]
        if isinstance(installation_id, str) and installation_id.isdigit():
            installation_id = int(installation_id)
        if isinstance(installation_id, bool) or not isinstance(installation_id, int) or installation_id <= 0:
            raise ValidationError("INVALID_REQUEST", "installationId must be a positive integer")

        repo_full_name = data["repoFullName"]
        if not isinstance(repo_full_name, str) or repo_full_name.count("/") != 1:
            raise ValidationError("INVALID_REQUEST", "repoFullName must look like owner/repo")

        default_branch = data.get("defaultBranch") or "main"
        if not isinstance(default_branch, str):
            raise ValidationError("INVALID_REQUEST", "defaultBranch must be a string")

        return cls(
            site_id=str(data["siteId"]),
            installation_id=installation_id,
            repo_full_name=repo_full_name,
            default_branch=default_branch,
            app_slug=data.get("githubAppSlug"),
        )


@dataclass
class InstallationSyncResult:
    site_id: str
    installation_id: int
    expires_at: str


class InstallationSync:
    """Records an installation on a site after proving it can mint a token."""

    def __init__(self, store: BatchStore, broker: CredentialBroker) -> None:
        self.store = store
        self.broker = broker

    async def sync(self, request: InstallationSyncRequest) -> InstallationSyncResult:
        """
        Mint a token for the installation and update the site.

        Raises:
            CredentialError: If the installation cannot mint a token
            NotFoundError: If the site does not exist
        """
        token = await self.broker.mint(request.installation_id)

        fields: dict[str, Any] = {
            "github_installation_id": request.installation_id,
            "repo_full_name": request.repo_full_name,
            "default_branch": request.default_branch,
        }
        if request.app_slug:
            fields["github_app_slug"] = request.app_slug

        await self.store.update_site(
            request.site_id,
            fields=fields,
            settings_patch={"latestInstallationTokenExpiry": token.expires_at_iso},
        )
        logger.info(
            "Site %s linked to installation %s (%s)",
            request.site_id,
            request.installation_id,
            request.repo_full_name,
        )
        return InstallationSyncResult(
            site_id=request.site_id,
            installation_id=request.installation_id,
            expires_at=token.expires_at_iso,
        )
