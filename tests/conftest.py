import json
import time
from typing import Any, Callable, Generator

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from permits import main
from permits.auth import ISSUER_PREFIX, TokenVerifier
from permits.cache import PreviewCache
from permits.context import Context
from permits.converter import Backend, Converter
from permits.documents import TemplateLoader
from permits.settings import Settings
from tests import TEMPLATES_DIR, FakeDatabase, FakeIdentity, FakeRedis, blank_pdf

PROJECT_ID = "test-project"
KEY_ID = "test-key"
CONVERTER_URL = "http://converter.test"
ADMIN_UID = "admin-uid"
TREASURY_UID = "treasury-uid"
TREASURY_EMAIL = "treasurer@example.com"


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signing_keys(private_key) -> dict[str, jwt.PyJWK]:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": KEY_ID, "alg": "RS256", "use": "sig"})
    return {KEY_ID: jwt.PyJWK(jwk)}


@pytest.fixture(scope="session")
def make_token(private_key) -> Callable[..., str]:
    def inner(uid: str, email: str = "", **claims: Any) -> str:
        now = int(time.time())
        payload = {
            "sub": uid,
            "email": email,
            "aud": PROJECT_ID,
            "iss": f"{ISSUER_PREFIX}{PROJECT_ID}",
            "iat": now,
            "exp": now + 3600,
            **claims,
        }
        return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": KEY_ID})

    return inner


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase(
        {
            "admins": {ADMIN_UID: True},
            "users": {"webapp": {"treasury": {"-treasurer": {"email": TREASURY_EMAIL, "uid": TREASURY_UID}}}},
        }
    )


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def redis_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def converter_responses() -> list[httpx.Response]:
    """
    Responses of the converter, in order. Once exhausted, the converter returns a one-page PDF.
    """
    return []


@pytest.fixture
def requests_log() -> list[httpx.Request]:
    return []


@pytest.fixture
def transport(converter_responses, requests_log) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests_log.append(request)
        if request.url.path.endswith("/convert/docx-to-pdf"):
            if converter_responses:
                return converter_responses.pop(0)
            return httpx.Response(200, content=blank_pdf(), headers={"Content-Type": "application/pdf"})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        firebase_project_id=PROJECT_ID,
        templates_dir=TEMPLATES_DIR,
        converter_service_url=CONVERTER_URL,
        converter_same_origin_path="",
        converter_local_url="",
        redis_url="redis://cache.test:6379",
    )


@pytest.fixture
def context(settings, database, identity, redis_client, transport, signing_keys) -> Context:
    client = httpx.AsyncClient(transport=transport)
    return Context(
        settings=settings,
        database=database,
        identity=identity,
        verifier=TokenVerifier("https://keys.test/jwks", PROJECT_ID, client, keys=dict(signing_keys)),
        cache=PreviewCache(settings.cache_url, settings.preview_cache_ttl, client_factory=lambda url: redis_client),
        converter=Converter([Backend("configured", CONVERTER_URL)], client),
        templates=TemplateLoader(settings.templates_dir, client),
        client=client,
    )


@pytest.fixture
def app(context) -> FastAPI:
    app = FastAPI(lifespan=main.lifespan)
    main.include_routers(app)
    main.register_exception_handlers(app)
    app.state.context = context
    return app


@pytest.fixture
def client(app) -> Generator[TestClient, Any, None]:
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_header(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(ADMIN_UID, 'admin@example.com')}"}


@pytest.fixture
def treasury_header(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(TREASURY_UID, TREASURY_EMAIL.upper())}"}


@pytest.fixture
def staff_header(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('staff-uid', 'staff@example.com')}"}
