"""
Fixtures for the HTTP surface.

The app runs against an in-memory document store, the in-memory auth
double and a fakeredis local store, through FastAPI's TestClient.
"""

import httpx
import pytest
from fakeredis import aioredis as fakeredis
from fastapi.testclient import TestClient

from api.main import create_app
from api.runtime import ClientRuntime
from linkup.firebase.storage import FirebaseBlobStore
from linkup.localstore.store import LocalStore
from linkup.session.gate import IdentityGate


class FakeStorageEndpoint:
    """Accepts every resumable upload and hands back a fixed download token."""

    def __init__(self):
        self.uploads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("X-Goog-Upload-Command") == "start":
            self.uploads.append(request.url.params["name"])
            return httpx.Response(200, headers={"X-Goog-Upload-URL": "https://storage.test/session"})
        return httpx.Response(200, json={"name": self.uploads[-1], "downloadTokens": "tok"})


@pytest.fixture
def storage_endpoint():
    return FakeStorageEndpoint()


@pytest.fixture
def runtime(auth_client, document_store, storage_endpoint):
    def blob_store_factory(id_token):
        return FirebaseBlobStore(
            "linkup-chat.appspot.com",
            base_url="https://storage.test/v0",
            id_token=id_token,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(storage_endpoint)),
        )

    gate = IdentityGate(auth_client, lambda id_token: document_store)
    return ClientRuntime(gate, LocalStore(fakeredis.FakeRedis(decode_responses=True)), blob_store_factory)


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime=runtime)) as test_client:
        yield test_client
        test_client.post("/api/v1/session/sign-out")


@pytest.fixture
def register(client):
    """Sign up through the API, leaving that user signed in."""
    def _register(email, name, password="secret1"):
        client.post("/api/v1/session/sign-out")
        response = client.post(
            "/api/v1/session/sign-up",
            json={"email": email, "password": password, "display_name": name},
        )
        assert response.status_code == 201, response.text
        return response.json()["user"]
    return _register


@pytest.fixture
def sign_in(client):
    def _sign_in(email, password="secret1"):
        client.post("/api/v1/session/sign-out")
        response = client.post("/api/v1/session/sign-in", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["user"]
    return _sign_in
