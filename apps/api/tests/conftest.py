import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-with-at-least-24-characters")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH_MEMORY_COST", "1024")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from database import Base, get_db  # noqa: E402
from main import app  # noqa: E402
from models.content import Content  # noqa: E402
from models.project import Project  # noqa: E402
from models.user import User  # noqa: E402
from services.kv_store import InMemoryKeyValueStore  # noqa: E402
from share_test_utils import ADMIN_USER_ID, VIEWER_USER_ID, FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store(clock):
    store = InMemoryKeyValueStore(clock=clock)
    previous = getattr(app.state, "kv_store", None)
    app.state.kv_store = store
    yield store
    app.state.kv_store = previous


@pytest_asyncio.fixture
async def share_client(tmp_path, kv_store):
    db_path = tmp_path / "share_portal.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        session.add_all(
            [
                User(id=ADMIN_USER_ID, email="admin@example.com", role="ADMIN"),
                User(id=VIEWER_USER_ID, email="user@example.com", role="USER"),
            ]
        )
        session.add_all(
            [
                Project(id="project-a", title="Project A", description="Spring campaign"),
                Project(id="project-b", title="Project B", description="Summer campaign"),
                Project(id="project-c", title="Project C", description="Year-end campaign"),
            ]
        )
        session.add_all(
            [
                Content(
                    id="file-a-late",
                    project_id="project-a",
                    title="A final",
                    file_url="/files/a-final.pdf",
                    file_type="application/pdf",
                    thumbnail_url="/thumbs/a-late.jpg",
                    file_type_flag="FINAL_MANUSCRIPT",
                    created_at=datetime(2024, 3, 2, tzinfo=timezone.utc),
                ),
                Content(
                    id="file-a-early",
                    project_id="project-a",
                    title="A draft",
                    file_url="/files/a-draft.pdf",
                    file_type="application/pdf",
                    thumbnail_url="/thumbs/a-early.jpg",
                    file_type_flag="PROPOSAL_DRAFT",
                    created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
                ),
                Content(
                    id="file-b-1",
                    project_id="project-b",
                    title="B draft",
                    file_url="/files/b.pdf",
                    thumbnail_url="/thumbs/b.jpg",
                    file_type_flag="PROPOSAL_DRAFT",
                    created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
                ),
            ]
        )
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()

