"""Test configuration."""
import os
import tempfile
from collections.abc import AsyncIterator, Callable, Iterator
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# --- Default environment, set before the settings are first read
os.environ.setdefault("DATABASE_URL", "sqlite:///./deliverhub_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DH_ENV", "test")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("STORAGE_ROOT", str(Path(tempfile.gettempdir()) / "deliverhub-test-storage"))

from deliverhub.main import app  # noqa: E402
from deliverhub.config import get_settings  # noqa: E402
from deliverhub.core.actors import Actor  # noqa: E402
from deliverhub.db import get_db  # noqa: E402
from deliverhub.models import ApiKey, ApiScope, Milestone, MilestoneStatus, Project, User  # noqa: E402
from deliverhub.services.file_validation import IncomingFile  # noqa: E402
from deliverhub.services.object_store import LocalObjectStore  # noqa: E402
from deliverhub.services.rate_limit import RateLimiter  # noqa: E402
from deliverhub.utils.apikey import gen_client_token, hash_key  # noqa: E402

DB_PATH = Path("./deliverhub_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh DB file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)


# pysqlite defers BEGIN on its own; emitting it explicitly lets the SAVEPOINTs
# used by the per-test session nest inside the outer transaction.
@event.listens_for(engine, "connect")
def _disable_pysqlite_begin(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False,
                                   future=True, expire_on_commit=False)

# --- (2) Schema comes from Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Session whose commits and rollbacks stay inside one outer transaction."""

    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def object_store(tmp_path: Path) -> LocalObjectStore:
    store = LocalObjectStore(
        tmp_path / "storage",
        secret_key=os.environ["SECRET_KEY"],
        public_base_url="http://test",
    )
    app.state.object_store = store
    return store


@pytest.fixture(autouse=True)
def rate_limiter() -> RateLimiter:
    limiter = RateLimiter.from_settings(get_settings())
    app.state.rate_limiter = limiter
    return limiter


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# --- Actors -----------------------------------------------------------------

@pytest.fixture
def make_freelancer(db_session: Session) -> Callable[..., tuple[User, dict[str, str]]]:
    """Factory creating a freelancer plus an API key; returns (user, auth headers)."""

    def _factory(scope: ApiScope = ApiScope.freelancer, is_active: bool = True) -> tuple[User, dict[str, str]]:
        user = User(
            username=f"freelancer-{uuid4().hex[:8]}",
            email=f"freelancer-{uuid4().hex[:8]}@example.com",
        )
        db_session.add(user)
        db_session.flush()

        token = f"dh_test.{uuid4().hex}"
        db_session.add(
            ApiKey(
                name=f"key-{uuid4().hex}",
                prefix="dh_test",
                key_hash=hash_key(token),
                scope=scope,
                user_id=user.id,
                is_active=is_active,
            )
        )
        db_session.commit()
        return user, {"Authorization": f"Bearer {token}"}

    return _factory


@pytest.fixture
def freelancer(make_freelancer) -> tuple[User, dict[str, str]]:
    return make_freelancer()


@pytest.fixture
def freelancer_actor(freelancer) -> Actor:
    return Actor.freelancer(freelancer[0].id)


@pytest.fixture
def freelancer_headers(freelancer) -> dict[str, str]:
    return freelancer[1]


@pytest.fixture
def make_project(db_session: Session) -> Callable[[User], Project]:
    def _factory(owner: User) -> Project:
        project = Project(
            owner_id=owner.id,
            name=f"project-{uuid4().hex[:6]}",
            client_email="client@example.com",
            client_access_token=gen_client_token(),
        )
        db_session.add(project)
        db_session.commit()
        return project

    return _factory


@pytest.fixture
def project(make_project, freelancer) -> Project:
    return make_project(freelancer[0])


@pytest.fixture
def client_actor(project: Project) -> Actor:
    return Actor.client(project.id)


@pytest.fixture
def client_headers(project: Project) -> dict[str, str]:
    return {"X-Client-Token": project.client_access_token}


@pytest.fixture
def make_milestone(db_session: Session, project: Project) -> Callable[..., Milestone]:
    def _factory(status: MilestoneStatus = MilestoneStatus.PENDING, **fields) -> Milestone:
        milestone = Milestone(
            project_id=fields.pop("project_id", project.id),
            title=fields.pop("title", "Milestone"),
            price=fields.pop("price", Decimal("250.00")),
            status=status,
            **fields,
        )
        db_session.add(milestone)
        db_session.commit()
        db_session.refresh(milestone)
        return milestone

    return _factory


# --- Files ------------------------------------------------------------------

def _encode_image(fmt: str, size: tuple[int, int] = (64, 48)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, (200, 120, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _encode_image("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _encode_image("JPEG")


@pytest.fixture
def pdf_bytes() -> bytes:
    buffer = BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=(300, 200))
    sheet.drawString(40, 100, "Final artwork")
    sheet.showPage()
    sheet.drawString(40, 100, "Page two")
    sheet.showPage()
    sheet.save()
    return buffer.getvalue()


@pytest.fixture
def make_upload() -> Callable[..., IncomingFile]:
    def _factory(data: bytes, filename: str = "receipt.png", content_type: str = "image/png") -> IncomingFile:
        return IncomingFile(filename=filename, content_type=content_type, data=data)

    return _factory
