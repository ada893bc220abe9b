"""
HTTP routes.

Commit trigger:
    POST /batches/<batch_id>/commit   {"batchId": "<uuid>", "dryRun": false}
    POST /commit-batch                {"batchId": "<uuid>", "dryRun": false}

Installation sync:
    POST /installations/sync          {"siteId", "installationId", "repoFullName", ...}

The services are looked up on ``current_app.config`` so the blueprint can be
mounted on an app wired with real clients or with in-memory fakes.
"""

import json
import uuid
from typing import Any

from quart import Blueprint, Response, current_app, jsonify, request

from batchcommit.exceptions import (
    BatchCommitError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from batchcommit.installations import InstallationSyncRequest
from batchcommit.logging import get_logger

logger = get_logger("routes")

ORCHESTRATOR_KEY = "BATCHCOMMIT_ORCHESTRATOR"
INSTALLATION_SYNC_KEY = "BATCHCOMMIT_INSTALLATION_SYNC"

commit_bp = Blueprint("batchcommit", __name__)


class BatchResponse:
    """Response bodies for the commit trigger."""

    @staticmethod
    def accepted(batch_id: str, commit_sha: str | None) -> tuple[Response, int]:
        body: dict[str, Any] = {"status": "accepted", "batchId": batch_id}
        if commit_sha:
            body["commitSha"] = commit_sha
        return jsonify(body), 202

    @staticmethod
    def dry_run(batch_id: str) -> tuple[Response, int]:
        return jsonify({"status": "accepted", "message": "Dry run acknowledged", "batchId": batch_id}), 202

    @staticmethod
    def error(
        message: str,
        status: int,
        details: Any = None,
        batch_id: str | None = None,
    ) -> tuple[Response, int]:
        body: dict[str, Any] = {"status": "error", "message": message}
        if details is not None:
            body["details"] = details
        if batch_id is not None:
            body["batchId"] = batch_id
        return jsonify(body), status


def status_for(error: BatchCommitError) -> int:
    """Map an error onto the HTTP status of the commit trigger."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    return 500


async def _read_json_object(required: bool) -> dict[str, Any]:
    raw = await request.get_data(as_text=True)
    if not raw.strip():
        if required:
            raise ValidationError("INVALID_REQUEST", "Request body is required")
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError("INVALID_REQUEST", "Request body must be valid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("INVALID_REQUEST", "Request body must be a JSON object")
    return data


def _parse_commit_request(data: dict[str, Any], path_batch_id: str | None) -> tuple[str, bool]:
    body_batch_id = data.get("batchId")
    if path_batch_id is not None and body_batch_id is not None and body_batch_id != path_batch_id:
        raise ValidationError("INVALID_REQUEST", "batchId in body does not match the URL")

    batch_id = path_batch_id if path_batch_id is not None else body_batch_id
    if not batch_id:
        raise ValidationError("INVALID_REQUEST", "batchId is required")
    if not isinstance(batch_id, str):
        raise ValidationError("INVALID_REQUEST", "batchId must be a string")
    try:
        uuid.UUID(batch_id)
    except ValueError:
        raise ValidationError("INVALID_REQUEST", f"batchId is not a UUID: {batch_id}") from None

    dry_run = data.get("dryRun", False)
    if not isinstance(dry_run, bool):
        raise ValidationError("INVALID_REQUEST", "dryRun must be a boolean")
    return batch_id, dry_run


async def _handle_commit(path_batch_id: str | None) -> tuple[Response, int]:
    batch_id = path_batch_id
    try:
        data = await _read_json_object(required=path_batch_id is None)
        batch_id, dry_run = _parse_commit_request(data, path_batch_id)

        orchestrator = current_app.config[ORCHESTRATOR_KEY]
        outcome = await orchestrator.commit(batch_id, dry_run=dry_run)
    except BatchCommitError as e:
        status = status_for(e)
        if status >= 500:
            logger.error("Commit of batch %s failed: %s", batch_id, e)
        else:
            logger.info("Commit of batch %s rejected (%d): %s", batch_id, status, e)
        return BatchResponse.error(e.message, status, e.to_dict(), batch_id)
    except Exception as e:
        logger.exception("Unexpected error committing batch %s", batch_id)
        return BatchResponse.error(
            "Unexpected error",
            500,
            {"code": "UNEXPECTED_ERROR", "message": str(e) or type(e).__name__},
            batch_id,
        )

    if outcome.dry_run:
        return BatchResponse.dry_run(batch_id)
    return BatchResponse.accepted(batch_id, outcome.commit_sha)


@commit_bp.route("/batches/<batch_id>/commit", methods=["POST"])
async def commit_batch(batch_id: str):
    """
    Publish a batch as one commit.

    Returns:
        202: {status: "accepted", batchId, commitSha} or the dry-run acknowledgement
        400: Malformed body or batch id
        404: Batch not found
        409: Batch is not open
        500: Failure after the claim; the batch is left failed
    """
    return await _handle_commit(batch_id)


@commit_bp.route("/commit-batch", methods=["POST"])
async def commit_batch_legacy():
    """Same as ``/batches/<batch_id>/commit`` with the id taken from the body."""
    return await _handle_commit(None)


@commit_bp.route("/installations/sync", methods=["POST"])
async def sync_installation():
    """
    Link a site to an installation.

    Returns:
        200: {ok: true, expiresAt}
        400: Malformed JSON or missing siteId/installationId/repoFullName
        500: {error, details}
    """
    try:
        data = await _read_json_object(required=True)
        sync_request = InstallationSyncRequest.from_dict(data)
    except ValidationError as e:
        return jsonify({"error": e.message, "details": e.details or None}), 400

    try:
        result = await current_app.config[INSTALLATION_SYNC_KEY].sync(sync_request)
    except BatchCommitError as e:
        logger.error("Installation sync for site %s failed: %s", sync_request.site_id, e)
        return jsonify({"error": "Installation sync failed", "details": e.to_dict()}), 500
    except Exception as e:
        logger.exception("Unexpected error syncing installation for site %s", sync_request.site_id)
        return (
            jsonify(
                {
                    "error": "Installation sync failed",
                    "details": {"code": "UNEXPECTED_ERROR", "message": str(e) or type(e).__name__},
                }
            ),
            500,
        )

    return jsonify({"ok": True, "expiresAt": result.expires_at}), 200


@commit_bp.app_errorhandler(405)
async def method_not_allowed(error: Exception):
    if request.path.startswith("/installations/"):
        return jsonify({"error": "Method not allowed"}), 405
    return BatchResponse.error("Method not allowed", 405)
