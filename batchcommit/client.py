"""
batchcommit remote host client.

Provides the injectable entry point to the Git host API. One instance is
constructed explicitly (usually from Settings) and handed to the components
that need it; tests hand in a fake with the same surface instead.
"""

from typing import Any

import httpx

from batchcommit.clients import AppsClient, GitDataClient
from batchcommit.transport import HTTPTransport, RetryConfig


class GitHostClient:
    """
    Client for the remote Git host.

    Aggregates the resource clients around a single transport.

    Example:
        ```python
        from batchcommit.client import GitHostClient

        async with GitHostClient() as host:
            token = await host.apps.create_installation_token(123, app_jwt)
            git = host.git("owner/repo", token.token)
            ref = await git.get_ref("main")
        ```
    """

    DEFAULT_BASE_URL = "https://api.github.com"
    DEFAULT_TIMEOUT = 30.0
    API_VERSION = "2022-11-28"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the host client.

        Args:
            base_url: Base URL for API requests (default: https://api.github.com)
            timeout: Request timeout in seconds (default: 30.0)
            retry_config: Configuration for retry behavior (optional)
            http_client: Pre-built httpx client (optional, for tests)
        """
        self.base_url = base_url
        self.timeout = timeout

        self._transport = HTTPTransport(
            base_url=base_url,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": self.API_VERSION,
            },
            timeout=timeout,
            retry_config=retry_config,
            client=http_client,
        )

        self.apps = AppsClient(self._transport)

    def git(self, repo_full_name: str, token: str) -> GitDataClient:
        """Return a Git data client for one repository, scoped by ``token``."""
        return GitDataClient(self._transport, repo_full_name, token)

    @property
    def transport(self) -> HTTPTransport:
        """Get the underlying HTTP transport (for advanced use cases)."""
        return self._transport

    async def close(self) -> None:
        """Close the client and release resources."""
        await self._transport.close()

    async def __aenter__(self) -> "GitHostClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
