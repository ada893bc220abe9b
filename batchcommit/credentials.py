"""
Credential broker.

Mints short-lived installation tokens from the application's durable identity
(app id + RSA key). Every call mints a fresh token: there is no cache, so two
concurrent commits on the same installation never share or race on a token.
"""

from datetime import datetime, timezone
from typing import Protocol

from batchcommit.exceptions import APIError, CredentialError
from batchcommit.logging import get_logger, log_credential_operation
from batchcommit.signers import AppKeySigner
from batchcommit.signing import build_app_jwt
from batchcommit.types.installations import Installation, InstallationToken

logger = get_logger("credentials")


class AppsAPI(Protocol):
    """The part of the host client the broker depends on."""

    async def create_installation_token(
        self, installation_id: int, app_jwt: str
    ) -> InstallationToken: ...

    async def get_installation(self, installation_id: int, app_jwt: str) -> Installation: ...


def _validate_installation_id(installation_id: object) -> int:
    # bool is an int subclass; True must not mint for installation 1
    if isinstance(installation_id, bool) or not isinstance(installation_id, int) or installation_id <= 0:
        raise CredentialError(
            "INVALID_INSTALLATION",
            f"Installation id must be a positive integer, got {installation_id!r}",
        )
    return installation_id


def _credential_error(error: APIError, installation_id: int, action: str) -> CredentialError:
    if error.status_code == 404:
        code = "INSTALLATION_NOT_FOUND"
    elif error.status_code in (401, 403):
        code = "INSTALLATION_UNAUTHORIZED"
    else:
        code = "TOKEN_MINT_FAILED"
    return CredentialError(
        code,
        f"Could not {action} for installation {installation_id}: {error.message}",
        installation_id=installation_id,
        host_status=error.status_code,
        host_body=error.body,
    )


class CredentialBroker:
    """
    Mints installation-scoped access tokens.

    Example:
        ```python
        broker = CredentialBroker(app_id="12345", signer=signer, apps=host.apps)
        token = await broker.mint(987654)
        git = host.git("owner/repo", token.token)
        ```
    """

    def __init__(self, app_id: str, signer: AppKeySigner, apps: AppsAPI) -> None:
        """
        Initialize the broker.

        Args:
            app_id: Application id issued by the remote host
            signer: The application's RSA signer
            apps: App-auth API (``GitHostClient.apps`` or a fake)
        """
        self.app_id = str(app_id)
        self.signer = signer
        self._apps = apps

    async def mint(self, installation_id: int) -> InstallationToken:
        """
        Mint a fresh installation token.

        Args:
            installation_id: A positive id of an active installation

        Returns:
            InstallationToken (value + expiry)

        Raises:
            CredentialError: If the id is invalid, the installation is missing
                or revoked, or the signing key is malformed. Carries the
                host's error body. Never retried.
        """
        installation_id = _validate_installation_id(installation_id)
        app_jwt = build_app_jwt(self.app_id, self.signer)

        try:
            token = await self._apps.create_installation_token(installation_id, app_jwt)
        except APIError as e:
            logger.warning(
                "Token mint failed for installation %s (status %s, code %s)",
                installation_id,
                e.status_code,
                e.code,
            )
            raise _credential_error(e, installation_id, "mint an access token") from e

        if token.expires_at <= datetime.now(timezone.utc):
            raise CredentialError(
                "TOKEN_ALREADY_EXPIRED",
                f"Host issued an already expired token for installation {installation_id}",
                installation_id=installation_id,
            )

        log_credential_operation(
            "mint_installation_token", self.app_id, installation_id, token.expires_at_iso
        )
        return token

    async def verify_installation(self, installation_id: int) -> Installation:
        """
        Check that an installation exists and is not suspended.

        Raises:
            CredentialError: If the installation is missing, suspended or the
                application cannot authenticate
        """
        installation_id = _validate_installation_id(installation_id)
        app_jwt = build_app_jwt(self.app_id, self.signer)

        try:
            installation = await self._apps.get_installation(installation_id, app_jwt)
        except APIError as e:
            raise _credential_error(e, installation_id, "look up the installation") from e

        if installation.suspended:
            raise CredentialError(
                "INSTALLATION_SUSPENDED",
                f"Installation {installation_id} is suspended",
                installation_id=installation_id,
            )

        log_credential_operation("verify_installation", self.app_id, installation_id)
        return installation
