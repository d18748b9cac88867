"""
Tests for the application factory and production start-up checks.
"""

import pytest

from app import create_app
from app.config import ProductionConfig


class TestCreateApp:
    """Config selection and JSON error bodies."""

    def test_unknown_config(self):
        with pytest.raises(ValueError, match="Unknown config 'staging'"):
            create_app("staging")

    def test_unknown_route_is_json(self, client):
        response = client.get("/no-such-page")
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found."}

    def test_wrong_method_is_json(self, client):
        response = client.delete("/health")
        assert response.status_code == 405
        assert response.get_json() == {"error": "Method not allowed."}


class TestProductionSecrets:
    """``validate_production_secrets`` blocks unsafe deployments."""

    def test_placeholder_key_and_no_smtp(self):
        with pytest.raises(RuntimeError) as excinfo:
            ProductionConfig.validate_production_secrets(
                {"SECRET_KEY": "dev-secret-change-me", "SMTP_HOST": ""}
            )
        message = str(excinfo.value)
        assert "SECRET_KEY" in message
        assert "SMTP_HOST" in message

    def test_soft_requirements_only_warn(self, caplog):
        ProductionConfig.validate_production_secrets(
            {"SECRET_KEY": "a" * 64, "SMTP_HOST": "smtp.example.com"}
        )
        assert "SMS_GATEWAY_URL is empty" in caplog.text
        assert "AZURE_CLIENT_ID is empty" in caplog.text
