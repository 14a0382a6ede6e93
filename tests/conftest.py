from __future__ import annotations

import os
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest


_TEST_ROOT = Path(tempfile.mkdtemp(prefix="tague_test_"))
_DB_PATH = _TEST_ROOT / "tague_test.db"

os.environ["TAGUE_DB_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["TAGUE_AUTH_JWT_SECRET"] = "test-secret"
os.environ["TAGUE_RATE_LIMIT_ENABLED"] = "0"
os.environ["TAGUE_STORE_RETRY_BACKOFF_MS"] = "0"


@pytest.fixture(scope="session")
def seeded_db() -> None:
    from tague_api.db import Base, engine

    import tague_api.models  # noqa: F401

    Base.metadata.create_all(engine)


@pytest.fixture()
def uid():
    """Unique id factory; every test writes into the same database."""

    def _make(prefix: str) -> str:
        return f"{prefix}_{uuid4().hex[:10]}"

    return _make


@pytest.fixture()
def store(seeded_db):
    from tague_api.docstore import SqlDocumentStore

    return SqlDocumentStore()


@pytest.fixture()
def make_engine(seeded_db):
    from tague_api.docstore import SqlDocumentStore
    from tague_api.engine import Engine

    def _make(store=None, **kwargs):
        return Engine(store or SqlDocumentStore(), **kwargs)

    return _make


@pytest.fixture()
def seed(store):
    """Helpers that write accounts and posts straight into the store."""
    import asyncio

    from tague_api.schemas import ACCOUNTS, POSTS, Account, Post

    class _Seed:
        def account(self, account_id: str, *, is_private: bool = False) -> Account:
            account = Account(id=account_id, display_name=account_id, is_private=is_private)
            asyncio.run(store.set_document(ACCOUNTS, account.id, account.to_doc()))
            return account

        def post(self, post_id: str, *, author_id: str) -> Post:
            post = Post(id=post_id, author_id=author_id, caption=f"caption {post_id}")
            asyncio.run(store.set_document(POSTS, post.id, post.to_doc()))
            return post

    return _Seed()


@pytest.fixture()
def api_client(seeded_db):
    from fastapi.testclient import TestClient

    from tague_api.main import app

    return TestClient(app)


@pytest.fixture()
def auth_headers(api_client):
    def _headers(account_id: str) -> dict[str, str]:
        resp = api_client.post("/api/auth/token", json={"account_id": account_id})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _headers
