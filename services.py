from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session, joinedload

from authz import (
    can_add_member,
    can_remove_member,
    can_view_team,
    enforce,
    is_removable,
    owns_resource,
)
from errors import ConflictError, Forbidden, NotFound, Unauthenticated, ValidationError
from ledger import balance_effect, reconciliation_deltas
from models import (
    Account,
    Team,
    TeamMember,
    TeamRole,
    Transaction,
    TransactionType,
    User,
)
from passwords import hash_password, verify_password
from schemas import (
    AccountIn,
    AccountUpdate,
    PasswordChange,
    ProfileUpdate,
    RegisterIn,
    TeamIn,
    TeamMemberIn,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class TransactionFilters:
    account_id: Optional[int] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = None


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def by_username(self, username: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.username == username))

    def by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.email == email))

    def register(self, data: RegisterIn) -> User:
        username = data.username.strip()
        if self.by_username(username):
            raise ConflictError("Username already exists")
        if self.by_email(data.email):
            raise ConflictError("Email already in use")
        user = User(
            username=username,
            password=hash_password(data.password),
            email=data.email,
            full_name=data.full_name.strip(),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id} username={user.username}")
        return user

    def authenticate(self, username: str, password: str) -> User:
        user = self.by_username(username.strip())
        if not user or not verify_password(password, user.password):
            logger.info(f"login_failed: username={username}")
            raise Unauthenticated("Invalid username or password")
        return user

    def update_profile(self, user_id: int, data: ProfileUpdate) -> User:
        user = self.get(user_id)
        if data.email != user.email:
            existing = self.by_email(data.email)
            if existing and existing.id != user.id:
                raise ConflictError("Email already in use")
        user.full_name = data.full_name.strip()
        user.email = data.email
        self.session.commit()
        self.session.refresh(user)
        return user

    def change_password(self, user_id: int, data: PasswordChange) -> None:
        user = self.get(user_id)
        if not verify_password(data.current_password, user.password):
            raise ValidationError("Current password is incorrect")
        user.password = hash_password(data.new_password)
        self.session.commit()
        logger.info(f"password_changed: user_id={user.id}")


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at.asc(), Account.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        enforce(owns_resource(account, self.user_id), "Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            account_number=data.account_number.strip(),
            balance=data.balance,
            currency=data.currency,
            icon=data.icon,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(
            f"account_created: user_id={self.user_id} account_id={account.id} "
            f"balance={account.balance} currency={account.currency}"
        )
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        account = self.get(account_id)
        for name, value in data.model_dump(exclude_unset=True).items():
            if value is None and name != "icon":
                continue
            setattr(account, name, value)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        try:
            # Transactions stay in history, unlinked.
            detached = self.session.execute(
                update(Transaction)
                .where(Transaction.account_id == account.id)
                .values(account_id=None)
                .execution_options(synchronize_session="fetch")
            ).rowcount
            self.session.delete(account)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"account_deleted: user_id={self.user_id} account_id={account_id} "
            f"detached_transactions={detached}"
        )


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_account_id(self, account_id: Optional[int]) -> Optional[int]:
        if account_id is None:
            return None
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise Forbidden("Invalid account ID")
        return account.id

    def _apply_deltas(self, deltas: dict[int, float]) -> None:
        for account_id, delta in deltas.items():
            # Single UPDATE so concurrent writers cannot lose an increment.
            self.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(balance=Account.balance + delta)
            )
            logger.info(f"ledger_apply: account_id={account_id} delta={delta}")

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        enforce(owns_resource(txn, self.user_id), "Transaction not found")
        return txn

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        return self.session.scalars(stmt).all()

    def create(self, data: TransactionIn) -> Transaction:
        if data.amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        description = data.description.strip()
        category = data.category.strip()
        if not description:
            raise ValidationError("Description is required")
        if not category:
            raise ValidationError("Category is required")
        account_id = self._owned_account_id(data.account_id)

        txn = Transaction(
            user_id=self.user_id,
            account_id=account_id,
            amount=data.amount,
            description=description,
            category=category,
            type=data.type,
            date=to_naive_utc(data.date) if data.date else datetime.utcnow(),
            notes=data.notes,
        )
        try:
            self.session.add(txn)
            self.session.flush()
            self._apply_deltas(
                reconciliation_deltas(
                    None, 0.0, account_id, balance_effect(txn.type, txn.amount)
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"type={txn.type.value} amount={txn.amount} account_id={txn.account_id}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.model_dump(exclude_unset=True)

        if "amount" in changes:
            if changes["amount"] is None or changes["amount"] <= 0:
                raise ValidationError("Amount must be greater than zero")
        for name in ("description", "category"):
            if name in changes:
                value = (changes[name] or "").strip()
                if not value:
                    raise ValidationError(f"{name.capitalize()} is required")
                changes[name] = value
        for name in ("type", "date"):
            if name in changes and changes[name] is None:
                del changes[name]
        if "account_id" in changes:
            changes["account_id"] = self._owned_account_id(changes["account_id"])
        if "date" in changes:
            changes["date"] = to_naive_utc(changes["date"])

        old_account_id = txn.account_id
        old_effect = balance_effect(txn.type, txn.amount)
        try:
            for name, value in changes.items():
                setattr(txn, name, value)
            self.session.flush()
            self._apply_deltas(
                reconciliation_deltas(
                    old_account_id,
                    old_effect,
                    txn.account_id,
                    balance_effect(txn.type, txn.amount),
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        try:
            self._apply_deltas(
                reconciliation_deltas(
                    txn.account_id, balance_effect(txn.type, txn.amount), None, 0.0
                )
            )
            self.session.delete(txn)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"transaction_deleted: user_id={self.user_id} "
            f"transaction_id={transaction_id}"
        )


class TeamService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _members(self, team_id: int) -> list[TeamMember]:
        stmt = (
            select(TeamMember)
            .options(joinedload(TeamMember.user))
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.id.asc())
        )
        return self.session.scalars(stmt).all()

    def list_for_user(self) -> list[Team]:
        member_of = select(TeamMember.team_id).where(TeamMember.user_id == self.user_id)
        stmt = (
            select(Team)
            .where(or_(Team.owner_id == self.user_id, Team.id.in_(member_of)))
            .order_by(Team.id.asc())
        )
        return self.session.scalars(stmt).all()

    def create(self, data: TeamIn) -> Team:
        team = Team(name=data.name.strip(), owner_id=self.user_id)
        team.members.append(TeamMember(user_id=self.user_id, role=TeamRole.owner))
        self.session.add(team)
        self.session.commit()
        self.session.refresh(team)
        logger.info(f"team_created: team_id={team.id} owner_id={self.user_id}")
        return team

    def get(self, team_id: int) -> Team:
        team = self.session.get(Team, team_id)
        members = self._members(team_id) if team else []
        enforce(can_view_team(team, members, self.user_id), "Team not found")
        return team

    def members(self, team_id: int) -> list[TeamMember]:
        self.get(team_id)
        return self._members(team_id)

    def add_member(self, team_id: int, data: TeamMemberIn) -> TeamMember:
        team = self.session.get(Team, team_id)
        enforce(
            can_add_member(team, self.user_id),
            "Team not found",
            "Only team owner can add members",
        )
        if data.role == TeamRole.owner:
            raise ValidationError("A team can only have one owner")
        user = UserService(self.session).by_username(data.username.strip())
        if not user:
            raise NotFound("User not found")
        if any(m.user_id == user.id for m in self._members(team_id)):
            raise ConflictError("User is already a member")

        member = TeamMember(team_id=team.id, user_id=user.id, role=data.role)
        self.session.add(member)
        self.session.commit()
        self.session.refresh(member)
        logger.info(
            f"team_member_added: team_id={team.id} user_id={user.id} "
            f"role={member.role.value}"
        )
        return member

    def remove_member(self, team_id: int, target_user_id: int) -> None:
        team = self.session.get(Team, team_id)
        enforce(can_remove_member(team, self.user_id, target_user_id), "Team not found")
        if not is_removable(team, target_user_id):
            raise ValidationError("Cannot remove team owner")
        removed = self.session.execute(
            delete(TeamMember)
            .where(TeamMember.team_id == team.id, TeamMember.user_id == target_user_id)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        if not removed:
            self.session.rollback()
            raise NotFound("Member not found")
        self.session.commit()
        logger.info(
            f"team_member_removed: team_id={team.id} user_id={target_user_id} "
            f"by={self.user_id}"
        )
