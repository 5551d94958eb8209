import json

import pytest
from fastapi.testclient import TestClient

from drcrop.app import create_app
from drcrop.config import Settings
from drcrop.database.connection import Database
from drcrop.dependencies import get_webhook_client
from drcrop.services.storage import SqlStorage

LATE_BLIGHT = {
    "Diagnosis": "Late Blight",
    "Severity": "Severe infection on lower leaves",
    "Organic Treatment": ["Remove infected leaves", "Spray neem oil (e.g., weekly) with care"],
    "Chemical Treatment": "Apply a copper-based fungicide every 7-10 days",
}


class FakeWebhook:
    """Stands in for the diagnosis webhook; returns ``body`` or raises ``error``."""

    def __init__(self):
        self.body = json.dumps([{"output": LATE_BLIGHT}])
        self.error = None
        self.calls = []

    def analyze_image(self, image_bytes, content_type, filename="image.jpg"):
        self.calls.append({"size": len(image_bytes), "content_type": content_type, "filename": filename})
        if self.error is not None:
            raise self.error
        return self.body


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'drcrop.db'}",
        secret_key="test-secret",
        webhook_url="http://webhook.test/analyze",
        upload_dir=str(tmp_path / "uploads"),
        frontend_dir=str(tmp_path / "no-frontend"),
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.open()
    yield db
    db.close()


@pytest.fixture
def storage(database):
    return SqlStorage(database)


@pytest.fixture
def fake_webhook():
    return FakeWebhook()


@pytest.fixture
def app(settings, fake_webhook):
    application = create_app(settings)
    application.dependency_overrides[get_webhook_client] = lambda: fake_webhook
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register(client, username="farmer", password="s3cret-pass"):
    response = client.post("/api/auth/register", json={"username": username, "password": password})
    assert response.status_code == 201, response.text
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


def upload(client, headers, content=b"\x89PNG\r\n\x1a\nfake-leaf", content_type="image/png", filename="leaf.png"):
    return client.post(
        "/api/analyze",
        files={"image": (filename, content, content_type)},
        headers=headers,
    )
