"""
Application assertion generation for batchcommit.

Implements the app-level authentication step: claims -> RS256 JWT signed with
the application key. The assertion is only ever exchanged for an
installation token and is never logged.
"""

import time

import jwt

from batchcommit.exceptions import CredentialError
from batchcommit.logging import log_credential_operation
from batchcommit.signers import AppKeySigner

# The host rejects assertions valid for longer than ten minutes
MAX_ASSERTION_TTL = 600
# iat is backdated to absorb clock drift between us and the host
CLOCK_SKEW_SECONDS = 60


def build_app_jwt(
    app_id: str,
    signer: AppKeySigner,
    ttl_seconds: int = MAX_ASSERTION_TTL,
    now: int | None = None,
) -> str:
    """
    Build a signed application assertion.

    The signing process:
    1. Backdate ``iat`` by the allowed clock skew
    2. Cap the validity window at the host maximum
    3. Set ``iss`` to the application id
    4. Sign with RS256 using the application key

    Args:
        app_id: Application id issued by the remote host
        signer: The application's RSA signer
        ttl_seconds: Requested validity window (capped at 600 seconds)
        now: Current unix time (for tests)

    Returns:
        Compact JWT string

    Raises:
        CredentialError: If the window is invalid or signing fails
    """
    if ttl_seconds < 1:
        raise CredentialError("INVALID_ASSERTION", "Assertion lifetime must be at least 1 second")

    ttl_seconds = min(ttl_seconds, MAX_ASSERTION_TTL)
    issued = int(time.time()) if now is None else now

    payload = {
        "iat": issued - CLOCK_SKEW_SECONDS,
        "exp": issued + ttl_seconds - CLOCK_SKEW_SECONDS,
        "iss": str(app_id),
    }

    try:
        token = jwt.encode(payload, signer.private_key, algorithm="RS256")
    except jwt.PyJWTError as e:
        raise CredentialError("MALFORMED_SIGNING_KEY", f"Failed to sign application assertion: {e}") from e

    log_credential_operation("sign_app_jwt", str(app_id))
    return token


def decode_app_jwt(token: str, public_key_pem: str, app_id: str) -> dict:
    """
    Verify and decode an application assertion.

    Useful for tests and for fake hosts that need to check who is calling.

    Raises:
        jwt.PyJWTError: If the signature, issuer or validity window is wrong
    """
    return jwt.decode(
        token,
        public_key_pem,
        algorithms=["RS256"],
        issuer=str(app_id),
        options={"require": ["iat", "exp", "iss"]},
        leeway=CLOCK_SKEW_SECONDS,
    )
