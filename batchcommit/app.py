"""
Application factory.

Wires the production collaborators (row store, blob store, remote host) from
Settings, or accepts pre-built services for tests.
"""

import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from quart import Quart

from batchcommit.assets import AssetResolver, SupabaseBlobStore
from batchcommit.client import GitHostClient
from batchcommit.config import Settings
from batchcommit.credentials import CredentialBroker
from batchcommit.installations import InstallationSync
from batchcommit.logging import configure_logging, get_logger
from batchcommit.orchestrator import BatchCommitOrchestrator, OrchestratorConfig
from batchcommit.routes import INSTALLATION_SYNC_KEY, ORCHESTRATOR_KEY, commit_bp
from batchcommit.store import PostgrestBatchStore

logger = get_logger("app")


@dataclass
class Services:
    orchestrator: BatchCommitOrchestrator
    installation_sync: InstallationSync
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)


def build_services(settings: Settings) -> Services:
    """
    Build the production service graph.

    Raises:
        CredentialError: If the application key is malformed
    """
    host = GitHostClient(base_url=settings.github_api_url, timeout=settings.http_timeout)
    store = PostgrestBatchStore.connect(
        settings.supabase_url,
        settings.service_role_key,
        timeout=settings.http_timeout,
    )
    blobs = SupabaseBlobStore.connect(
        settings.supabase_url,
        settings.service_role_key,
        settings.asset_bucket,
        timeout=settings.http_timeout,
    )

    broker = CredentialBroker(settings.app_id, settings.signer(), host.apps)
    orchestrator = BatchCommitOrchestrator(
        store,
        AssetResolver(store, blobs),
        broker,
        host,
        OrchestratorConfig(
            max_attempts=settings.commit_max_attempts,
            attempt_timeout=settings.commit_attempt_timeout,
            blob_concurrency=settings.blob_concurrency,
            identity=settings.identity,
        ),
    )
    return Services(
        orchestrator=orchestrator,
        installation_sync=InstallationSync(store, broker),
        closers=[host.close, store.close, blobs.close],
    )


def create_app(
    orchestrator: BatchCommitOrchestrator | None = None,
    installation_sync: InstallationSync | None = None,
    settings: Settings | None = None,
) -> Quart:
    """
    Create the Quart application.

    Args:
        orchestrator: Pre-built orchestrator (skips wiring from settings)
        installation_sync: Pre-built installation sync service
        settings: Settings to wire from (default: Settings.from_env())

    Raises:
        ConfigurationError: If services must be wired and the environment is incomplete
    """
    app = Quart(__name__)

    closers: list[Callable[[], Awaitable[None]]] = []
    if orchestrator is None or installation_sync is None:
        settings = settings or Settings.from_env()
        configure_logging(level=settings.log_level)
        services = build_services(settings)
        orchestrator = orchestrator or services.orchestrator
        installation_sync = installation_sync or services.installation_sync
        closers = services.closers

    app.config[ORCHESTRATOR_KEY] = orchestrator
    app.config[INSTALLATION_SYNC_KEY] = installation_sync
    app.register_blueprint(commit_bp)

    @app.after_serving
    async def close_clients() -> None:
        for close in closers:
            await close()
        logger.info("Remote clients closed")

    return app


def main() -> None:
    """Console entry point: serve the app from environment settings."""
    app = create_app()
    app.run(host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))
