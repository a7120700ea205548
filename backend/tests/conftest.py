import os
import asyncio
import tempfile

# Point the application at a throwaway sqlite database before core.config is imported
_TEST_DB_DIR = tempfile.mkdtemp(prefix="markup-store-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["FAST_TEST_MODE"] = "true"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from core import models  # noqa: F401
from core.database import engine, AsyncSessionLocal, Base
from main import app


async def _reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def db_session():
    await _reset_schema()
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def client():
    asyncio.run(_reset_schema())
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_comment():
    def _make(index=1, content="Looks good", user="alice", **extra):
        comment = {"index": index, "content": content, "user": user}
        comment.update(extra)
        return comment
    return _make


@pytest.fixture
def make_thread(make_comment):
    def _make(name="Homepage", comments=None, **extra):
        thread = {
            "threadName": name,
            "imageIndex": 1,
            "imagePath": f"https://cdn.example.com/{name.lower()}.png",
            "imageFilename": f"{name.lower()}.png",
            "comments": comments if comments is not None else [make_comment()],
        }
        thread.update(extra)
        return thread
    return _make
