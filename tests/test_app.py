"""Tests for the FastAPI application factory."""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from topupbot import configure_fastapi_app
from topupbot.config import AppConfig

API_KEY = "admin-test-key"


@pytest.fixture
def app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    """Provide an application config pointing at temporary files."""
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "rcon_servers": {
                    "main": {
                        "host": "127.0.0.1",
                        "port": 27020,
                        "password": "secret-password",
                        "display_name": "Main Server",
                        "enabled": True,
                    },
                },
                "donation_categories": {
                    "points": [{"id": "points_500", "name": "500", "points": 500}],
                },
            },
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("CONFIG_PATH", str(config_path))
    monkeypatch.setenv("DB_PATH", str(tmp_path / "data" / "topupbot.db"))
    monkeypatch.setenv("ADMIN_API_KEY", API_KEY)
    return AppConfig()


def test_lifespan_wires_manager_and_delivery_log(app_config: AppConfig) -> None:
    """Test that startup loads the endpoints and creates the database."""
    app = configure_fastapi_app(app_config)

    with TestClient(app) as client:
        assert client.get("/").json() == "Top-up RCON Delivery API"

        configuration = client.get(
            "/admin/configuration",
            headers={"X-API-Key": API_KEY},
        ).json()
        assert configuration["initialized"] is True
        assert [e["key"] for e in configuration["endpoints"]] == ["main"]

        recent = client.get("/admin/donations/recent", headers={"X-API-Key": API_KEY})
        assert recent.json() == []

    assert Path(app_config.db_path).exists()


def test_reload_with_malformed_servers_keeps_endpoints_and_catalog(
    app_config: AppConfig,
) -> None:
    """Test that a reload failing on the servers section changes nothing."""
    app = configure_fastapi_app(app_config)
    headers = {"X-API-Key": API_KEY}

    with TestClient(app) as client:
        Path(app_config.config_path).write_text(
            json.dumps(
                {
                    "rcon_servers": [{"host": "127.0.0.1", "port": 27020}],
                    "donation_categories": {
                        "points": [{"id": "points_900", "name": "900", "points": 900}],
                    },
                },
            ),
            encoding="utf-8",
        )

        response = client.post("/admin/reload", headers=headers)

        assert response.status_code == 500  # noqa: PLR2004
        assert "rcon_servers" in response.json()["detail"]

        configuration = client.get("/admin/configuration", headers=headers).json()
        assert [e["key"] for e in configuration["endpoints"]] == ["main"]

        delivery = client.post(
            "/admin/donations/deliver",
            headers=headers,
            json={
                "ticket_id": "T-900",
                "discord_id": "1234",
                "discord_username": "donor",
                "player_id": "76561190000000001",
                "category": "points",
                "item_id": "points_900",
            },
        )
        assert delivery.status_code == 502  # noqa: PLR2004
        assert "not found" in delivery.json()["detail"]["error"]
