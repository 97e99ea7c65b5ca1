"""
Pytest fixtures for the ERP kernel test suite.

Provides:
- A session-scoped engine and schema, per-test sessions isolated by
  transaction rollback
- Real-commit sessions for concurrency tests (PostgreSQL only)
- Configuration, chart of accounts and item / contract factories

Environment Variables:
- DATABASE_URL: SQLAlchemy URL.  Defaults to in-memory SQLite; set a
  PostgreSQL URL to run the ``postgres``-marked concurrency tests.
"""

import json
import logging
import os
import threading
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from erp_config import get_active_config, seed_chart_of_accounts
from erp_kernel.db.base import Base
from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from erp_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from erp_kernel.models.inventory import Item, ItemClass
from erp_kernel.services.journal_poster import JournalPoster
from erp_modules.contracts import ContractService, RecurringBillingScheduler, RefillItemSpec
from erp_modules.inventory import InventoryService
from erp_modules.production import ProductionService
from erp_modules.sales import SalesService
from erp_services.layer_store import InventoryLayerStore
from erp_services.sync_auditor import SyncAuditor

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    """Skip PostgreSQL-only tests when running against SQLite."""
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture erp_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, journal_poster):
            journal_poster.post(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("erp_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables created ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False, pool_size=10, max_overflow=10)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session; immutability listeners stay active."""
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables(allow_non_sqlite=True)


def _truncate_all_tables(engine):
    """Delete every row; used only after real-commit concurrency tests."""
    table_names = [t.name for t in reversed(Base.metadata.sorted_tables)]
    if table_names:
        with engine.connect() as conn:
            conn.execute(text("TRUNCATE " + ", ".join(table_names) + " CASCADE"))
            conn.commit()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection.  Any
    ``session.commit()`` made by a service releases a savepoint; the outer
    transaction is rolled back at teardown, undoing everything the test did.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Session factory with real commits for concurrent threads.

    On teardown, every session handed out is rolled back and closed, then
    all tables are truncated.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()
    _truncate_all_tables(db_engine)


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Configuration fixtures
# =============================================================================


@pytest.fixture(scope="session")
def erp_config():
    """The default configuration set."""
    return get_active_config()


@pytest.fixture
def chart_of_accounts(session, erp_config, test_actor_id):
    """Seed and commit the configured chart of accounts; returns code -> Account.

    Committing releases the test savepoint, so a service rollback later in
    the test keeps the accounts.
    """
    accounts = seed_chart_of_accounts(session, erp_config, test_actor_id)
    session.commit()
    return {account.code: account for account in accounts}


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def layer_store(session, deterministic_clock) -> InventoryLayerStore:
    return InventoryLayerStore(session, deterministic_clock)


@pytest.fixture
def journal_poster(session, deterministic_clock) -> JournalPoster:
    return JournalPoster(session, deterministic_clock)


@pytest.fixture
def sync_auditor(session, deterministic_clock, erp_config) -> SyncAuditor:
    return SyncAuditor(session, deterministic_clock, erp_config.sync.health_threshold)


@pytest.fixture
def inventory_service(session, erp_config, deterministic_clock, chart_of_accounts):
    return InventoryService(session, erp_config, deterministic_clock)


@pytest.fixture
def production_service(session, erp_config, deterministic_clock, chart_of_accounts):
    return ProductionService(session, erp_config, deterministic_clock)


@pytest.fixture
def sales_service(session, erp_config, deterministic_clock, chart_of_accounts):
    return SalesService(session, erp_config, deterministic_clock)


@pytest.fixture
def contract_service(session, erp_config, deterministic_clock, chart_of_accounts):
    return ContractService(session, erp_config, deterministic_clock)


@pytest.fixture
def scheduler(session, erp_config, deterministic_clock, chart_of_accounts):
    return RecurringBillingScheduler(session, erp_config, deterministic_clock)


# =============================================================================
# Factory fixtures
# =============================================================================


@pytest.fixture
def create_item(session: Session, test_actor_id: UUID):
    """Factory fixture for committed items with an empty cache."""

    def _create_item(
        sku: str | None = None,
        item_class: ItemClass = ItemClass.RAW_MATERIAL,
        name: str | None = None,
        asset_account_code: str | None = None,
    ) -> Item:
        sku = sku or f"SKU-{uuid4().hex[:8].upper()}"
        item = Item(
            sku=sku,
            name=name or f"Test item {sku}",
            item_class=ItemClass(item_class).value,
            asset_account_code=asset_account_code,
            unit_of_measure="EA",
            qty_on_hand=Decimal("0"),
            avg_cost=0,
            is_active=True,
            created_by_id=test_actor_id,
        )
        session.add(item)
        session.commit()
        return item

    return _create_item


@pytest.fixture
def create_contract(contract_service, create_item, test_actor_id):
    """Factory fixture for service contracts with one refill item by default.

    Default refill: 2 x 150000 at 12% tax (gross 300000, tax 36000).
    """

    def _create_contract(
        start_date: date = date(2024, 1, 15),
        billing_frequency_months: int = 1,
        refill_items: list[RefillItemSpec] | None = None,
        end_date: date | None = None,
        customer_id: UUID | None = None,
    ):
        if refill_items is None:
            item = create_item(item_class=ItemClass.FINISHED_GOOD)
            refill_items = [
                RefillItemSpec(
                    item_id=item.id,
                    quantity_per_cycle=Decimal("2"),
                    contract_unit_price=150000,
                    tax_rate_bp=1200,
                    description="Monthly fruit box refill",
                )
            ]
        return contract_service.create_contract(
            customer_id=customer_id or uuid4(),
            start_date=start_date,
            billing_frequency_months=billing_frequency_months,
            refill_items=refill_items,
            actor_id=test_actor_id,
            end_date=end_date,
        )

    return _create_contract
