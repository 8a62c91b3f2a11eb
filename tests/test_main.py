import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from permits import main
from permits.exceptions import DependencyUnavailable
from permits.settings import Settings, app_settings


def test_routes_registered():
    paths = {route.path for route in main.app.routes}

    assert {
        "/api/export/docx",
        "/api/export/docx-to-pdf",
        "/api/export/application-docs",
        "/api/export/clearance-template",
        "/api/admin/users",
        "/api/admin/business-applications",
        "/api/admin/business-applications/{id}",
        "/api/admin/clearance-applications",
        "/api/treasury/fees",
        "/api/treasury/fees/{application_id}",
        "/api/health",
    } <= paths


@pytest.mark.parametrize("url_string", [app_settings.frontend_url])
def test_valid_frontend_url(url_string):
    url = httpx.URL(url_string)

    assert url.scheme and url.host


def test_unexpected_error(context):
    app = FastAPI()
    main.register_exception_handlers(app)
    app.state.context = context

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    response = TestClient(app, raise_server_exceptions=False).get("/boom")

    assert response.status_code == 500
    assert response.json() == {"detail": "An unexpected error occurred"}


def test_startup_without_firebase(monkeypatch):
    monkeypatch.setattr(main, "app_settings", Settings(firebase_database_url=""))
    app = FastAPI(lifespan=main.lifespan)

    with pytest.raises(DependencyUnavailable):
        with TestClient(app):
            pass
