"""batchcommit exception classes."""

from typing import Any


class BatchCommitError(Exception):
    """Base exception for all batchcommit errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe description of the error for response bodies."""
        return {"code": self.code, "message": self.message, **self.details}


class ConfigurationError(BatchCommitError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


class ValidationError(BatchCommitError):
    """Raised on malformed commit requests. No state is changed."""

    pass


class NotFoundError(BatchCommitError):
    """Raised when a batch (or site) row does not exist."""

    pass


class ConflictError(BatchCommitError):
    """Raised when a batch is not open or another process won the claim."""

    def __init__(
        self,
        code: str,
        message: str,
        current_state: str | None = None,
    ) -> None:
        details = {"currentState": current_state} if current_state else None
        super().__init__(code, message, details)
        self.current_state = current_state


class IllegalTransitionError(BatchCommitError, ValueError):
    """Raised when a batch state transition is not in the transition table."""

    def __init__(self, source: str, target: str) -> None:
        super().__init__(
            "ILLEGAL_TRANSITION",
            f"Batch cannot move from '{source}' to '{target}'",
            {"from": source, "to": target},
        )


class CredentialError(BatchCommitError):
    """Raised when an installation token cannot be minted.

    Never retried automatically: revoked or suspended installations need a
    human to re-authorize the application.
    """

    def __init__(
        self,
        code: str,
        message: str,
        installation_id: int | None = None,
        host_status: int | None = None,
        host_body: Any = None,
    ) -> None:
        details: dict[str, Any] = {}
        if installation_id is not None:
            details["installationId"] = installation_id
        if host_status is not None:
            details["hostStatus"] = host_status
        if host_body is not None:
            details["hostBody"] = host_body
        super().__init__(code, message, details)
        self.installation_id = installation_id
        self.host_status = host_status
        self.host_body = host_body


class AssetIntegrityError(BatchCommitError):
    """Raised when staged content is missing, corrupt or cannot be placed."""

    def __init__(
        self,
        code: str,
        message: str,
        storage_path: str | None = None,
        repo_path: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if storage_path is not None:
            details["storagePath"] = storage_path
        if repo_path is not None:
            details["repoPath"] = repo_path
        super().__init__(code, message, details)
        self.storage_path = storage_path
        self.repo_path = repo_path


class ConcurrentUpdateError(BatchCommitError):
    """Raised when the branch moved between the head read and the ref update."""

    def __init__(
        self,
        message: str,
        branch: str,
        expected_sha: str,
        actual_sha: str | None = None,
        attempts: int | None = None,
    ) -> None:
        details: dict[str, Any] = {"branch": branch, "expectedSha": expected_sha}
        if actual_sha is not None:
            details["actualSha"] = actual_sha
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__("CONCURRENT_UPDATE", message, details)
        self.branch = branch
        self.expected_sha = expected_sha
        self.actual_sha = actual_sha
        self.attempts = attempts


class InternalError(BatchCommitError):
    """Raised on bookkeeping failures that need manual reconciliation."""

    def __init__(
        self,
        code: str,
        message: str,
        commit_sha: str | None = None,
    ) -> None:
        details = {"commitSha": commit_sha} if commit_sha else None
        super().__init__(code, message, details)
        self.commit_sha = commit_sha


# ============================================================================
# Remote API errors (row store, object store, Git host)
# ============================================================================


class APIError(BatchCommitError):
    """Raised when a remote HTTP API answers with an error status."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        request_id: str | None = None,
        body: Any = None,
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status"] = status_code
        if request_id is not None:
            details["requestId"] = request_id
        super().__init__(code, message, details)
        self.status_code = status_code
        self.request_id = request_id
        self.body = body


class AuthenticationError(APIError):
    """Raised on 401 responses."""

    pass


class AuthorizationError(APIError):
    """Raised on 403 responses."""

    pass


class ResourceNotFoundError(APIError):
    """Raised on 404 responses."""

    pass


class ResourceConflictError(APIError):
    """Raised on 409 responses."""

    pass


class UnprocessableError(APIError):
    """Raised on 422 responses (e.g. a ref update that is not a fast forward)."""

    pass


class RateLimitedError(APIError):
    """Raised when rate limited."""

    def __init__(
        self,
        code: str,
        message: str,
        retry_after: int,
        status_code: int | None = 429,
        request_id: str | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(code, message, status_code, request_id, body)
        self.retry_after = retry_after


class BadRequestError(APIError):
    """Raised on any other 4xx response."""

    pass


class ServerError(APIError):
    """Raised on server errors (5xx) and exhausted connection retries."""

    pass


class RequestTimeoutError(APIError):
    """Raised when a remote call or a commit attempt exceeds its time bound."""

    pass
