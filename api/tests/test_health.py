import pytest
from fastapi.testclient import TestClient

from fuelwatch.core.config import get_settings
from fuelwatch.main import app


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root_reports_service_name() -> None:
    client = TestClient(app)
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"]


def test_startup_fails_without_supabase_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FW_SUPABASE_URL", raising=False)
    monkeypatch.delenv("FW_SUPABASE_ANON_KEY", raising=False)
    get_settings.cache_clear()

    with pytest.raises(RuntimeError, match="FW_SUPABASE_URL"):
        with TestClient(app):
            pass

    get_settings.cache_clear()
