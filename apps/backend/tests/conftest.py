from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from typing import Any, Callable, Generator

import pytest

# Point the application settings at a throwaway SQLite file before the package
# is imported anywhere, so the app lifespan never touches a real database.
_fd, _TEST_DB_PATH = tempfile.mkstemp(prefix="ledger_test_", suffix=".sqlite3")
os.close(_fd)
os.environ["LEDGER_DATABASE_URL"] = f"sqlite:///{_TEST_DB_PATH}"
os.environ["LEDGER_SEED_DEFAULTS"] = "false"
os.environ["LEDGER_SCHEDULER_INTERVAL_SECONDS"] = "0"

from ledger import models  # noqa: E402
from ledger.core.database import Base, Store, build_engine, get_db  # noqa: E402
from ledger.main import app  # noqa: E402
from ledger.schemas import AccountCreate  # noqa: E402
from ledger.services.account_locks import AccountLockRegistry  # noqa: E402
from ledger.services.account_service import AccountService  # noqa: E402
from ledger.services.category_service import CategoryService  # noqa: E402
from ledger.services.ledger_service import LedgerService  # noqa: E402
from ledger.services.scheduler import RecurringScheduler  # noqa: E402
from ledger.services.settings_service import SettingsService  # noqa: E402


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    yield os.environ["LEDGER_DATABASE_URL"]
    try:
        os.remove(_TEST_DB_PATH)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = build_engine(test_db_url, timeout=10)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def store(engine) -> Store:
    return Store.from_engine(engine)


@pytest.fixture(scope="function")
def db_session(store: Store, engine) -> Generator[Any, Any, Any]:
    session = store.new_session()
    # every test starts from the default categories and the settings row
    CategoryService(session).ensure_defaults()
    SettingsService(session).get()

    try:
        yield session
    finally:
        session.close()
        # children first, so foreign keys stay enforced
        with engine.begin() as conn:
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())


@pytest.fixture()
def locks() -> AccountLockRegistry:
    return AccountLockRegistry()


@pytest.fixture()
def ledger(db_session, locks) -> LedgerService:
    return LedgerService(db_session, locks, timeout=5)


@pytest.fixture()
def scheduler(store, locks) -> RecurringScheduler:
    return RecurringScheduler.from_store(store, locks, timeout=5)


@pytest.fixture()
def make_account(db_session) -> Callable[..., models.Account]:
    def _make(name: str, opening: str | int = 0, type: models.AccountType = models.AccountType.BANK) -> models.Account:
        return AccountService(db_session).create(
            AccountCreate(name=name, type=type, opening_balance=Decimal(str(opening)))
        )

    return _make


@pytest.fixture()
def category(db_session) -> Callable[[str], models.Category]:
    def _get(name: str) -> models.Category:
        return next(c for c in CategoryService(db_session).get_all() if c.name == name)

    return _get


@pytest.fixture()
def balance(db_session) -> Callable[[int], Decimal]:
    """Fresh read of an account's stored balance."""
    def _read(account_id: int) -> Decimal:
        db_session.expire_all()
        return Decimal(db_session.get(models.Account, account_id).balance)

    return _read


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        # requests share one session; drop rows other sessions may have changed
        db_session.expire_all()
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
