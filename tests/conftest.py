import sys
from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from duesledger.config import Base  # noqa: E402
import duesledger.config as app_config  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from duesledger.models import models as _all_models  # noqa: E402,F401
from duesledger.models.ledger import Member  # noqa: E402
from duesledger.models.models import Member as MemberRow  # noqa: E402
from duesledger.services.ledger_store import (  # noqa: E402
    InMemoryLedgerStore,
    InMemoryMemberDirectory,
    SqlLedgerStore,
    SqlMemberDirectory,
)
from duesledger.services.periods import Clock  # noqa: E402

LIMA = ZoneInfo("America/Lima")


@pytest.fixture(autouse=True)
def _fast_retries(monkeypatch):
    """Retries back off for real in production; tests should not sleep."""
    monkeypatch.setattr(app_config.settings, "write_retry_wait_seconds", 0, raising=False)
    monkeypatch.setattr(app_config.settings, "store_retry_wait_seconds", 0, raising=False)


@pytest.fixture
def make_clock() -> Callable[..., Clock]:
    def _make(year: int, month: int, day: int, hour: int = 10) -> Clock:
        moment = datetime(year, month, day, hour, 0, tzinfo=LIMA)
        return lambda: moment

    return _make


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def directory() -> InMemoryMemberDirectory:
    return InMemoryMemberDirectory(
        [Member("A"), Member("B"), Member("C"), Member("X", active=False)]
    )


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "ledger.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    try:
        yield SessionLocal
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sql_store(session_factory) -> SqlLedgerStore:
    return SqlLedgerStore(session_factory)


@pytest.fixture
def sql_directory(session_factory) -> SqlMemberDirectory:
    with session_factory() as session:
        session.add_all(
            [
                MemberRow(id="A", display_name="Unit A", is_active=True),
                MemberRow(id="B", display_name="Unit B", is_active=True),
                MemberRow(id="C", display_name="Unit C", is_active=True),
                MemberRow(id="X", display_name="Sold unit", is_active=False),
            ]
        )
        session.commit()
    return SqlMemberDirectory(session_factory)
