import pytest
import requests
from fastapi.testclient import TestClient

from pedagochat.api.deps import get_repo
from pedagochat.api.main import create_app
from pedagochat.config import Settings
from pedagochat.services.api_client import PersistenceState, SessionApiClient
from pedagochat.services.json_store import JsonSessionRepository
from pedagochat.services.local_storage import LocalStorage


class _Response:
    """requests-like view of an httpx response."""

    def __init__(self, resp):
        self._resp = resp
        self.status_code = resp.status_code
        self.ok = resp.status_code < 400

    def json(self):
        return self._resp.json()

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class AppHttp:
    """Routes SessionApiClient traffic into the FastAPI app; can simulate an outage."""

    def __init__(self, client: TestClient):
        self.client = client
        self.down = False
        self.calls = []

    def _call(self, method, url, **kwargs):
        self.calls.append((method, url))
        if self.down:
            raise requests.ConnectionError("server unreachable")
        kwargs.pop("timeout", None)
        return _Response(self.client.request(method, url, **kwargs))

    def get(self, url, **kwargs):
        return self._call("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._call("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self._call("PUT", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._call("DELETE", url, **kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "db.json"),
        dist_path=str(tmp_path / "dist"),
        local_storage_path=str(tmp_path / "local.json"),
        api_key="test-key",
        openrouter_api_key="",
        answer_language="French",
    )


@pytest.fixture
def repo(settings):
    return JsonSessionRepository(settings.db_path)


@pytest.fixture
def app(settings, repo):
    app = create_app(settings)
    app.dependency_overrides[get_repo] = lambda: repo
    return app


@pytest.fixture
def api(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def http(api):
    return AppHttp(api)


@pytest.fixture
def storage(settings):
    return LocalStorage(settings.local_storage_path)


@pytest.fixture
def client(http, storage):
    return SessionApiClient("http://testserver/api", storage, state=PersistenceState(), http=http)
