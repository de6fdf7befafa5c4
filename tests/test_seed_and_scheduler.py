from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

import scheduler
from database import Base
from fx_rates import RateTable, RateTableStore, static_rate_table
from models import Account, Team, TeamMember, TeamRole, Transaction
from seed import seed_database


def test_seed_reconciles_balances_and_is_idempotent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        demo = seed_database(session, today=date(2025, 3, 20))
        assert demo is not None
        assert seed_database(session) is None

        balances = {
            a.name: a.balance
            for a in session.scalars(select(Account).where(Account.user_id == demo.id))
        }
        assert balances["Checking Account"] == pytest.approx(9249.25)
        assert balances["Savings Account"] == 12000
        assert balances["Credit Card"] == pytest.approx(-959.05)
        assert len(session.scalars(select(Transaction)).all()) == 11

        team = session.scalar(select(Team))
        owner_rows = session.scalars(
            select(TeamMember).where(TeamMember.role == TeamRole.owner)
        ).all()
        assert [row.user_id for row in owner_rows] == [team.owner_id]


def test_static_provider_keeps_scheduler_idle() -> None:
    manager = scheduler.SchedulerManager(RateTableStore(static_rate_table()))
    assert not manager.enabled
    manager.start()
    assert not manager.scheduler.running


def test_failed_refresh_keeps_previous_table(monkeypatch) -> None:
    store = RateTableStore(static_rate_table())
    before = store.current

    class Failing:
        def load(self, symbols=None):
            raise RuntimeError("provider down")

    monkeypatch.setattr(scheduler, "FxRateService", Failing)
    assert scheduler.SchedulerManager(store)._run_job("test") is False
    assert store.current is before


def test_successful_refresh_swaps_table(monkeypatch) -> None:
    store = RateTableStore(static_rate_table())
    fresh = RateTable(base="USD", rates={"USD": 1, "EUR": 0.9}, source="frankfurter")

    class Working:
        def load(self, symbols=None):
            return fresh

    monkeypatch.setattr(scheduler, "FxRateService", Working)
    assert scheduler.SchedulerManager(store)._run_job("test") is True
    assert store.current is fresh
