import asyncio
import os

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Required setting; must be in place before the app modules read the config.
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

from repocraft import config, llm
from repocraft.database import Base
from repocraft.models import FileTreeEntry

SMALL_TREE = [
    {"path": "src/index.ts", "type": "blob", "sha": "a1"},
    {"path": "node_modules/x/y.js", "type": "blob", "sha": "a2"},
    {"path": "package.json", "type": "blob", "sha": "a3"},
    {"path": "README.md", "type": "blob", "sha": "a4"},
    {"path": "test.spec.ts", "type": "blob", "sha": "a5"},
]

LARGE_TREE_WITH_JUNK = [
    {"path": "README.md", "type": "blob", "sha": "b1"},
    {"path": "package.json", "type": "blob", "sha": "b2"},
    {"path": "package-lock.json", "type": "blob", "sha": "b3"},
    {"path": "src/index.ts", "type": "blob", "sha": "b4"},
    {"path": "src/components/App.tsx", "type": "blob", "sha": "b5"},
    {"path": "src/components/Header.tsx", "type": "blob", "sha": "b6"},
    {"path": "src/components/Header.test.tsx", "type": "blob", "sha": "b7"},
    {"path": "node_modules/lodash/index.js", "type": "blob", "sha": "b8"},
    {"path": "dist/bundle.min.js", "type": "blob", "sha": "b9"},
    {"path": ".git/config", "type": "blob", "sha": "b10"},
    {"path": ".env", "type": "blob", "sha": "b11"},
    {"path": ".env.example", "type": "blob", "sha": "b12"},
    {"path": "assets/logo.png", "type": "blob", "sha": "b13"},
    {"path": "assets/logo.svg", "type": "blob", "sha": "b14"},
    {"path": ".github/workflows/ci.yml", "type": "blob", "sha": "b15"},
    {"path": "Dockerfile", "type": "blob", "sha": "b16"},
    {"path": "Makefile", "type": "blob", "sha": "b17"},
    {"path": "docs/guide.md", "type": "blob", "sha": "b18"},
    {"path": "scripts/release.sh", "type": "blob", "sha": "b19"},
    # Tree entry (directory), never selected
    {"path": "src/components", "type": "tree", "sha": "b20"},
]

SAMPLE_FILE_CONTENTS = {
    "package.json": '{"name": "demo", "dependencies": {"react": "^18.0.0"}}',
    "src/index.ts": "import { App } from './App';\nrender(App);\n",
    "src/lib/graph.ts": "export function dijkstra() {}\n",
}


def make_tree(raw: list[dict]) -> list[FileTreeEntry]:
    return [FileTreeEntry.model_validate(e) for e in raw]


@pytest.fixture(autouse=True)
def fresh_config():
    config.get_config.cache_clear()
    llm._get_client.cache_clear()
    yield
    config.get_config.cache_clear()
    llm._get_client.cache_clear()


@pytest.fixture
def small_tree():
    return make_tree(SMALL_TREE)


@pytest.fixture
def large_tree():
    return make_tree(LARGE_TREE_WITH_JUNK)


@pytest.fixture
def sample_contents():
    return dict(SAMPLE_FILE_CONTENTS)


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite database with all tables, one per test.

    NullPool keeps connections from outliving the event loop that opened
    them, so the same factory works in async tests and behind TestClient.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def _create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_tables())
    yield async_sessionmaker(engine, expire_on_commit=False)
