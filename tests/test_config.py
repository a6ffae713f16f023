"""
Configuration and CORS tests.
"""

import pytest
from pydantic import ValidationError
from starlette.testclient import TestClient

from taskhook.api.deps import validate_auth_config
from taskhook.config import Environment, Settings, settings
from taskhook.main import app


def test_cors_no_wildcard_with_credentials():
    """allow_origins=["*"] together with credentials must never be configured."""
    assert settings.cors_allow_credentials is True
    assert settings.cors_allowed_origins != ["*"]
    assert isinstance(settings.cors_allowed_origins, list)
    assert len(settings.cors_allowed_origins) > 0


def test_cors_explicit_methods_and_headers():
    assert settings.cors_allowed_methods != ["*"]
    assert settings.cors_allowed_headers != ["*"]

    assert "PATCH" in settings.cors_allowed_methods
    assert "DELETE" in settings.cors_allowed_methods
    assert "X-User-ID" in settings.cors_allowed_headers
    assert "Authorization" in settings.cors_allowed_headers


def test_cors_configuration_in_app():
    assert any("CORSMiddleware" in str(m) for m in app.user_middleware)


def test_cors_preflight_request():
    client = TestClient(app)

    response = client.options(
        "/v1/health",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_cors_rejects_unauthorized_origin():
    client = TestClient(app)

    response = client.get("/v1/health", headers={"Origin": "https://evil.com"})

    assert response.headers.get("access-control-allow-origin") != "https://evil.com"


def test_dispatch_defaults():
    config = Settings(allow_insecure_dev=True)

    assert config.dispatch_interval_seconds == 60
    assert config.session_dispatch_interval_seconds == 60
    assert config.webhook_timeout_seconds == 10.0


def test_postgres_url_rewritten_to_async_driver():
    config = Settings(
        allow_insecure_dev=True,
        database_url="postgresql://u:p@localhost/taskhook",
    )
    assert config.database_url == "postgresql+asyncpg://u:p@localhost/taskhook"


def test_unsupported_database_url_rejected():
    with pytest.raises(ValidationError):
        Settings(allow_insecure_dev=True, database_url="mysql://u:p@localhost/taskhook")


@pytest.mark.parametrize("port", [0, 70000])
def test_port_out_of_range_rejected(port):
    with pytest.raises(ValidationError):
        Settings(allow_insecure_dev=True, port=port)


def test_interval_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(allow_insecure_dev=True, dispatch_interval_seconds=0)


def test_api_key_required_in_production():
    with pytest.raises(ValidationError):
        Settings(env=Environment.PRODUCTION, allow_insecure_dev=False, api_key=None)

    config = Settings(env=Environment.PRODUCTION, allow_insecure_dev=False, api_key="k")
    assert config.api_key == "k"


def test_api_key_required_without_insecure_dev():
    with pytest.raises(ValidationError):
        Settings(env=Environment.DEVELOPMENT, allow_insecure_dev=False, api_key=None)


def test_insecure_dev_refused_outside_development(monkeypatch):
    monkeypatch.setattr(settings, "env", Environment.PRODUCTION)
    monkeypatch.setattr(settings, "allow_insecure_dev", True)

    with pytest.raises(RuntimeError, match="only permitted in development"):
        validate_auth_config()


def test_missing_api_key_refused(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "api_key", None)

    with pytest.raises(RuntimeError, match="TASKHOOK_API_KEY is required"):
        validate_auth_config()
