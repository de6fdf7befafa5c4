from datetime import datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from errors import Forbidden, NotFound, ValidationError
from models import Account, AccountType, Transaction, TransactionType, User
from schemas import AccountIn, AccountUpdate, TransactionIn, TransactionUpdate
from services import AccountService, TransactionFilters, TransactionService


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def make_user(session: Session, username: str) -> User:
    user = User(
        username=username,
        password="x.y",
        email=f"{username}@example.com",
        full_name=username.title(),
    )
    session.add(user)
    session.commit()
    return user


def make_account(session: Session, user: User, balance: float = 1000) -> Account:
    return AccountService(session, user.id).create(
        AccountIn(
            name="Checking",
            type=AccountType.bank,
            account_number="****1234",
            balance=balance,
            currency="usd",
        )
    )


def balance_of(session: Session, account_id: int) -> float:
    session.expire_all()
    return session.get(Account, account_id).balance


def expense(account_id, amount, **extra) -> TransactionIn:
    return TransactionIn(
        account_id=account_id,
        amount=amount,
        description=extra.pop("description", "Groceries run"),
        category=extra.pop("category", "Groceries"),
        type=extra.pop("type", TransactionType.expense),
        **extra,
    )


def test_account_create_keeps_balance_and_normalizes_currency() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user, balance=1234.56)
        assert account.balance == 1234.56
        assert account.currency == "USD"
        assert account.user_id == user.id


def test_expense_debits_and_income_credits_linked_account() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        txns = TransactionService(session, user.id)

        txns.create(expense(account.id, 200))
        assert balance_of(session, account.id) == 800

        txns.create(expense(account.id, 150, type=TransactionType.income, category="Salary"))
        assert balance_of(session, account.id) == 950


def test_transfer_is_credited_to_its_account() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        TransactionService(session, user.id).create(
            expense(account.id, 500, type=TransactionType.transfer, category="Transfer")
        )
        assert balance_of(session, account.id) == 1500


def test_unlinked_transaction_touches_no_account() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        txn = TransactionService(session, user.id).create(expense(None, 40))
        assert txn.account_id is None
        assert balance_of(session, account.id) == 1000


def test_non_positive_amount_is_rejected_without_side_effects() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        with pytest.raises(ValidationError):
            TransactionService(session, user.id).create(expense(account.id, 0))
        assert balance_of(session, account.id) == 1000
        assert session.scalars(select(Transaction)).all() == []


def test_blank_description_is_rejected() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        with pytest.raises(ValidationError, match="Description"):
            TransactionService(session, user.id).create(
                expense(None, 10, description="   ")
            )


def test_cannot_book_against_someone_elses_account() -> None:
    with make_session() as session:
        owner = make_user(session, "owner")
        other = make_user(session, "other")
        account = make_account(session, owner)
        with pytest.raises(Forbidden):
            TransactionService(session, other.id).create(expense(account.id, 10))
        with pytest.raises(Forbidden):
            TransactionService(session, other.id).create(expense(9999, 10))
        assert balance_of(session, account.id) == 1000


def test_update_reverses_old_effect_and_applies_new_one() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        txns = TransactionService(session, user.id)
        txn = txns.create(expense(account.id, 200))

        txns.update(txn.id, TransactionUpdate(amount=50))
        assert balance_of(session, account.id) == 950

        txns.update(txn.id, TransactionUpdate(type=TransactionType.income))
        assert balance_of(session, account.id) == 1050

        txns.update(txn.id, TransactionUpdate(description="Refund"))
        assert balance_of(session, account.id) == 1050


def test_update_moving_between_accounts() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        first = make_account(session, user, balance=1000)
        second = make_account(session, user, balance=300)
        txns = TransactionService(session, user.id)
        txn = txns.create(expense(first.id, 100))

        txns.update(txn.id, TransactionUpdate(account_id=second.id))
        assert balance_of(session, first.id) == 1000
        assert balance_of(session, second.id) == 200

        txns.update(txn.id, TransactionUpdate(account_id=None))
        assert balance_of(session, second.id) == 300


def test_update_rejects_zero_amount_and_foreign_account() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        other = make_user(session, "other")
        account = make_account(session, user)
        foreign = make_account(session, other)
        txns = TransactionService(session, user.id)
        txn = txns.create(expense(account.id, 100))

        with pytest.raises(ValidationError):
            txns.update(txn.id, TransactionUpdate(amount=0))
        with pytest.raises(Forbidden):
            txns.update(txn.id, TransactionUpdate(account_id=foreign.id))
        assert balance_of(session, account.id) == 900
        assert balance_of(session, foreign.id) == 1000


def test_delete_restores_balance() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        txns = TransactionService(session, user.id)
        txn = txns.create(expense(account.id, 200))

        txns.delete(txn.id)

        assert balance_of(session, account.id) == 1000
        with pytest.raises(NotFound):
            txns.get(txn.id)


def test_get_checks_existence_before_ownership() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        other = make_user(session, "other")
        txn = TransactionService(session, user.id).create(expense(None, 10))

        with pytest.raises(Forbidden):
            TransactionService(session, other.id).get(txn.id)
        with pytest.raises(NotFound):
            TransactionService(session, other.id).get(txn.id + 100)


def test_deleting_account_keeps_transactions_in_history() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        txns = TransactionService(session, user.id)
        txn = txns.create(expense(account.id, 25))

        AccountService(session, user.id).delete(account.id)

        kept = txns.get(txn.id)
        assert kept.account_id is None
        txns.delete(txn.id)
        assert session.get(Account, account.id) is None


def test_account_update_is_partial() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        account = make_account(session, user)
        updated = AccountService(session, user.id).update(
            account.id, AccountUpdate(name="Main", balance=10)
        )
        assert updated.name == "Main"
        assert updated.balance == 10
        assert updated.account_number == "****1234"


def test_list_filters_and_orders_newest_first() -> None:
    with make_session() as session:
        user = make_user(session, "demo")
        other = make_user(session, "other")
        account = make_account(session, user)
        txns = TransactionService(session, user.id)
        older = txns.create(expense(account.id, 10, date=datetime(2025, 1, 1, 9, 0)))
        newer = txns.create(expense(None, 20, date=datetime(2025, 2, 1, 9, 0)))
        salary = txns.create(
            expense(
                account.id,
                100,
                type=TransactionType.income,
                category="Salary",
                date=datetime(2025, 1, 15, 9, 0),
            )
        )
        TransactionService(session, other.id).create(expense(None, 99))

        assert [t.id for t in txns.list()] == [newer.id, salary.id, older.id]
        assert [t.id for t in txns.list(TransactionFilters(account_id=account.id))] == [
            salary.id,
            older.id,
        ]
        assert [
            t.id for t in txns.list(TransactionFilters(type=TransactionType.income))
        ] == [salary.id]
        assert [t.id for t in txns.list(TransactionFilters(category="Salary"))] == [
            salary.id
        ]
