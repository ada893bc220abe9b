"""
Tests for environment configuration and the application factory.

Feature: batchcommit
"""

import logging

import pytest

from batchcommit.app import build_services, create_app
from batchcommit.config import Settings
from batchcommit.exceptions import ConfigurationError
from batchcommit.signers import AppKeySigner


@pytest.fixture
def environ(app_signer: AppKeySigner) -> dict[str, str]:
    return {
        "SUPABASE_URL": "https://project.supabase.co/",
        "SUPABASE_SERVICE_ROLE_KEY": "service-role-secret",
        "GITHUB_APP_ID": "12345",
        "GITHUB_APP_PRIVATE_KEY": app_signer.private_key_pem().replace("\n", "\\n"),
    }


class TestFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self, environ) -> None:
        settings = Settings.from_env(environ)

        assert settings.supabase_url == "https://project.supabase.co"
        assert settings.app_id == "12345"
        assert settings.github_api_url == "https://api.github.com"
        assert settings.asset_bucket == "site-assets"
        assert settings.commit_max_attempts == 3
        assert settings.commit_attempt_timeout == 120.0
        assert settings.blob_concurrency == 4
        assert settings.log_level == logging.INFO

    def test_reports_every_missing_variable(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.from_env({"GITHUB_APP_ID": "12345"})

        message = exc_info.value.message
        assert "SUPABASE_URL" in message
        assert "SUPABASE_SERVICE_ROLE_KEY" in message
        assert "GITHUB_APP_PRIVATE_KEY" in message
        assert "GITHUB_APP_ID" not in message

    def test_private_key_from_path(self, environ, app_signer, tmp_path) -> None:
        key_file = tmp_path / "app.pem"
        key_file.write_text(app_signer.private_key_pem())
        del environ["GITHUB_APP_PRIVATE_KEY"]
        environ["GITHUB_APP_PRIVATE_KEY_PATH"] = str(key_file)

        settings = Settings.from_env(environ)

        assert settings.signer().public_key_pem() == app_signer.public_key_pem()

    def test_unreadable_key_path(self, environ, tmp_path) -> None:
        del environ["GITHUB_APP_PRIVATE_KEY"]
        environ["GITHUB_APP_PRIVATE_KEY_PATH"] = str(tmp_path / "missing.pem")

        with pytest.raises(ConfigurationError):
            Settings.from_env(environ)

    def test_escaped_key_loads(self, environ, app_signer) -> None:
        settings = Settings.from_env(environ)

        assert settings.signer().public_key_pem() == app_signer.public_key_pem()

    def test_overrides(self, environ) -> None:
        environ.update(
            {
                "GITHUB_API_URL": "https://ghe.example.com/api/v3",
                "ASSET_BUCKET": "staging",
                "COMMIT_MAX_ATTEMPTS": "5",
                "COMMIT_ATTEMPT_TIMEOUT": "30",
                "COMMIT_BOT_NAME": "publisher",
                "COMMIT_BOT_EMAIL": "publisher@example.com",
                "LOG_LEVEL": "debug",
            }
        )

        settings = Settings.from_env(environ)

        assert settings.github_api_url == "https://ghe.example.com/api/v3"
        assert settings.asset_bucket == "staging"
        assert settings.commit_max_attempts == 5
        assert settings.commit_attempt_timeout == 30.0
        assert settings.identity.name == "publisher"
        assert settings.identity.email == "publisher@example.com"
        assert settings.log_level == logging.DEBUG

    @pytest.mark.parametrize(("raw", "expected"), [("0", 1), ("3", 3), ("50", 8)])
    def test_blob_concurrency_clamped(self, environ, raw, expected) -> None:
        environ["BLOB_CONCURRENCY"] = raw

        assert Settings.from_env(environ).blob_concurrency == expected

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("COMMIT_MAX_ATTEMPTS", "0"),
            ("COMMIT_MAX_ATTEMPTS", "three"),
            ("COMMIT_ATTEMPT_TIMEOUT", "0"),
            ("HTTP_TIMEOUT", "soon"),
            ("LOG_LEVEL", "LOUD"),
        ],
    )
    def test_invalid_values(self, environ, key, value) -> None:
        environ[key] = value

        with pytest.raises(ConfigurationError):
            Settings.from_env(environ)

    def test_repr_hides_secrets(self, environ) -> None:
        text = repr(Settings.from_env(environ))

        assert "service-role-secret" not in text
        assert "PRIVATE KEY" not in text
        assert "12345" in text


class TestAppFactory:
    """Tests for wiring the application from settings."""

    @pytest.mark.asyncio
    async def test_build_services(self, environ) -> None:
        services = build_services(Settings.from_env(environ))

        config = services.orchestrator.config
        assert config.max_attempts == 3
        assert config.blob_concurrency == 4
        assert services.orchestrator.broker.app_id == "12345"
        assert len(services.closers) == 3

        for close in services.closers:
            await close()

    def test_create_app_from_settings(self, environ) -> None:
        app = create_app(settings=Settings.from_env(environ))

        rules = {rule.rule for rule in app.url_map.iter_rules()}
        assert "/batches/<batch_id>/commit" in rules
        assert "/commit-batch" in rules
        assert "/installations/sync" in rules

    def test_create_app_without_environment(self, monkeypatch) -> None:
        for key in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY", "GITHUB_APP_ID", "GITHUB_APP_PRIVATE_KEY"):
            monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv("GITHUB_APP_PRIVATE_KEY_PATH", raising=False)

        with pytest.raises(ConfigurationError):
            create_app()
