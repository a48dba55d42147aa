import logging

import pytest
from fastapi.testclient import TestClient

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from shared.stores.BlobStoreSQLite import BlobStoreSQLite
from shared.stores.ConversationStore import ConversationStore
from shared.stores.Database import Database
from shared.stores.DocumentStore import DocumentStore
from tests.fakes import FakeEmbedClient, FakeLLMClient, FakeVectorIndex


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("rag_chat.tests")))


@pytest.fixture
async def database(tmp_path, helper_config):
    db = Database(helper_config, path=str(tmp_path / "test.db"))
    await db.boot()
    yield db
    await db.close()


@pytest.fixture
def document_store(helper_config, database) -> DocumentStore:
    return DocumentStore(helper_config, database, BlobStoreSQLite(helper_config, database))


@pytest.fixture
def conversation_store(helper_config, database) -> ConversationStore:
    return ConversationStore(helper_config, database)


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def api_env(monkeypatch, tmp_path):
    """Environment for app tests: relaxed rate limits, no retry sleeps."""
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    monkeypatch.setenv("RATE_LIMIT_FLOOD_MIN_INTERVAL", "0")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "10000")
    monkeypatch.setenv("LLM_RETRY_BACKOFF", "0")


@pytest.fixture
def app(api_env, tmp_path, embed_client, vector_index, llm_client):
    from server.api_server import create_app

    return create_app(
        embed_client=embed_client,
        rag_client=vector_index,
        llm_client=llm_client,
        database_path=str(tmp_path / "api.db"),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
