from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
import duesledger.config as app_config
from duesledger.models.ledger import Charge
from duesledger.services.ledger_store import SqlLedgerStore
import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker


def _alembic_config() -> Config:
    config = Config(str(Path("duesledger/alembic.ini")))
    config.set_main_option("script_location", "duesledger/migrations")
    return config


def test_baseline_migration_creates_ledger_schema(tmp_path, monkeypatch):
    db_path = tmp_path / "migrations.db"
    db_url = f"sqlite:///{db_path}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)

    command.upgrade(_alembic_config(), "head")

    engine = sa.create_engine(db_url)
    try:
        inspector = sa.inspect(engine)
        tables = set(inspector.get_table_names())
        assert {
            "members",
            "billing_settings",
            "ledger_charges",
            "ledger_payments",
            "period_closures",
            "period_generations",
            "audit_logs",
        } <= tables
        constraints = {item["name"] for item in inspector.get_unique_constraints("ledger_charges")}
        assert "uq_ledger_charges_period_member" in constraints

        store = SqlLedgerStore(sessionmaker(bind=engine))
        now = datetime(2025, 3, 1, tzinfo=timezone.utc)
        assert store.create_charge(Charge.new("c-1", "A", "2025-03", Decimal("50"), now)) is True
        assert store.create_charge(Charge.new("c-2", "A", "2025-03", Decimal("50"), now)) is False
    finally:
        engine.dispose()


def test_downgrade_removes_ledger_tables(tmp_path, monkeypatch):
    db_path = tmp_path / "downgrade.db"
    db_url = f"sqlite:///{db_path}"
    monkeypatch.setattr(app_config.settings, "database_url", db_url, raising=False)
    config = _alembic_config()

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = sa.create_engine(db_url)
    try:
        tables = set(sa.inspect(engine).get_table_names())
        assert "ledger_charges" not in tables
        assert "audit_logs" not in tables
    finally:
        engine.dispose()
