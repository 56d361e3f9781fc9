import os
import tempfile

# Must be set before app.main / db.database are imported
_DB_DIR = tempfile.mkdtemp(prefix="chat-session-api-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test_kv.db"
os.environ["APP_PASSWORD"] = "s3cret-pass"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import UpstreamError
from app.kv_store import SqlKVStore
from app.model_catalog import ModelCatalog, ModelSpec
from db.database import SessionLocal, engine
from db.models import Base, KVEntry

Base.metadata.create_all(bind=engine)

PASSWORD = "s3cret-pass"
TEXT_MODEL = "@cf/meta/llama-3.1-8b-instruct"
IMAGE_MODEL = "@cf/black-forest-labs/flux-1-schnell"
SUMMARY_MODEL = "@cf/meta/llama-2-7b-chat-int8"


class FakeInference:
    """Records every call; answers deterministically."""

    def __init__(self):
        self.calls = []
        self.fail_summary = False
        self.fail_chat = False

    def run(self, model_id, prompt=None, messages=None, modality="text"):
        self.calls.append(
            {"model": model_id, "prompt": prompt, "messages": messages, "modality": modality}
        )
        if modality == "image":
            return {"image_b64": "aW1hZ2UtYnl0ZXM="}
        if messages is not None:
            if self.fail_chat:
                raise UpstreamError("model overloaded")
            return {"response": f"echo: {messages[-1]['content']}"}
        if self.fail_summary:
            raise UpstreamError("summarizer down")
        return {"response": "  Friendly greeting chat  "}

    @property
    def chat_calls(self):
        return [c for c in self.calls if c["messages"] is not None]

    @property
    def summary_calls(self):
        return [c for c in self.calls if c["prompt"] is not None and c["modality"] == "text"]


@pytest.fixture(autouse=True)
def clean_store():
    yield
    db = SessionLocal()
    try:
        db.query(KVEntry).delete()
        db.commit()
    finally:
        db.close()


@pytest.fixture
def store():
    db = SessionLocal()
    try:
        yield SqlKVStore(db)
    finally:
        db.close()


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def catalog():
    return ModelCatalog([
        ModelSpec(id=TEXT_MODEL, name="Llama 3.1 8B", type="text"),
        ModelSpec(id=SUMMARY_MODEL, type="text"),
        ModelSpec(id=IMAGE_MODEL, name="FLUX", type="image"),
    ])


@pytest.fixture
def settings():
    return Settings(app_password=PASSWORD, summary_model=SUMMARY_MODEL, ai_model=TEXT_MODEL)


@pytest.fixture
def app(fake_inference, settings):
    from app.main import app as fastapi_app, get_inference_provider, get_settings

    fastapi_app.dependency_overrides[get_inference_provider] = lambda: (lambda: fake_inference)
    fastapi_app.dependency_overrides[get_settings] = lambda: settings
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_client(client):
    response = client.post("/authenticate", json={"password": PASSWORD})
    assert response.status_code == 200
    return client
