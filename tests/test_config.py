import pytest

from app.core.config import ENV_DEVELOPMENT, ENV_PRODUCTION, Settings
from app.core.errors import ConfigurationError
from app.main import create_app


def test_from_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db.example.com/starlight")
    monkeypatch.setenv("REVENUECAT_WEBHOOK_SECRET", " secret ")
    monkeypatch.setenv("WEBHOOK_TEST_MODE", "no")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("RUN_MIGRATIONS", "0")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    settings = Settings.from_env()

    assert settings.is_production
    assert settings.database_url == "postgresql://u:p@db.example.com/starlight"
    assert settings.revenuecat_webhook_secret == "secret"
    assert settings.webhook_test_mode is False
    assert settings.store_timeout_seconds == 2.5
    assert settings.run_migrations is False
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    settings.validate()


def test_production_requires_a_webhook_secret():
    with pytest.raises(ConfigurationError):
        Settings(app_env=ENV_PRODUCTION).validate()


def test_production_forbids_test_mode():
    with pytest.raises(ConfigurationError):
        Settings(app_env=ENV_PRODUCTION, revenuecat_webhook_secret="s", webhook_test_mode=True).validate()


def test_development_may_run_without_a_secret():
    Settings(app_env=ENV_DEVELOPMENT, webhook_test_mode=True).validate()


def test_create_app_refuses_a_misconfigured_production_process(tmp_path):
    settings = Settings(app_env=ENV_PRODUCTION, database_url=f"sqlite:///{tmp_path / 'x.db'}")
    with pytest.raises(ConfigurationError):
        create_app(settings)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgres://u:p@db.example.com:5432/starlight", "postgresql://u:p@db.example.com:5432/starlight"),
        ("postgresql://u:p@db.example.com/starlight", "postgresql://u:p@db.example.com/starlight"),
        ("sqlite:///./starlight.db", "sqlite:///./starlight.db"),
    ],
)
def test_database_url_normalization_keeps_the_host(monkeypatch, url, expected):
    monkeypatch.setenv("DATABASE_URL", url)
    assert Settings.from_env().database_url == expected
