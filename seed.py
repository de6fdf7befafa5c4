import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from models import AccountType, TransactionType, User
from periods import add_months
from schemas import AccountIn, RegisterIn, TeamIn, TransactionIn
from services import AccountService, TeamService, TransactionService, UserService

logger = logging.getLogger(__name__)

DEMO_USERNAME = "demo"
DEMO_PASSWORD = "password123"

# fmt: off
# (account key, months back, day, type, amount, category, description, notes)
DEMO_TRANSACTIONS = [
    ("checking", 0, 1, TransactionType.income, 3500, "Salary", "Monthly salary", "Regular monthly salary"),
    ("checking", 0, 3, TransactionType.expense, 1200, "Housing", "Monthly rent", "Apartment rent"),
    ("checking", 0, 5, TransactionType.transfer, 500, "Transfer", "Transfer to savings", "Monthly savings deposit"),
    ("checking", 0, 7, TransactionType.expense, 85.75, "Groceries", "Weekly grocery shopping", "Supermarket shopping"),
    ("credit", 0, 10, TransactionType.expense, 45.80, "Dining", "Dinner at Restaurant", "Dinner with friends"),
    ("credit", 0, 14, TransactionType.expense, 63.25, "Groceries", "Grocery shopping", "Local market"),
    ("checking", 0, 15, TransactionType.expense, 120, "Utilities", "Electricity bill", "Monthly electricity"),
    ("checking", 0, 15, TransactionType.expense, 65, "Utilities", "Water bill", "Monthly water"),
    ("checking", 0, 16, TransactionType.expense, 80, "Utilities", "Internet bill", "Monthly internet service"),
    ("checking", 1, 1, TransactionType.income, 3500, "Salary", "Monthly salary", "Regular monthly salary"),
    ("checking", 1, 3, TransactionType.expense, 1200, "Housing", "Monthly rent", "Apartment rent"),
]
# fmt: on


def seed_database(session: Session, today: Optional[date] = None) -> Optional[User]:
    """Create the demo user and sample data unless it already exists."""
    users = UserService(session)
    if users.by_username(DEMO_USERNAME):
        logger.info("seed: database already seeded")
        return None

    logger.info("seed: seeding database with demo data")
    today = today or date.today()
    demo = users.register(
        RegisterIn(
            username=DEMO_USERNAME,
            password=DEMO_PASSWORD,
            email="demo@example.com",
            full_name="Demo User",
        )
    )

    accounts = AccountService(session, demo.id)
    by_key = {
        "checking": accounts.create(
            AccountIn(
                name="Checking Account",
                type=AccountType.bank,
                account_number="****1234",
                balance=4500,
                currency="USD",
                icon="bank",
            )
        ),
        "savings": accounts.create(
            AccountIn(
                name="Savings Account",
                type=AccountType.bank,
                account_number="****5678",
                balance=12000,
                currency="USD",
                icon="savings",
            )
        ),
        "credit": accounts.create(
            AccountIn(
                name="Credit Card",
                type=AccountType.credit,
                account_number="****9876",
                balance=-850,
                currency="USD",
                icon="credit_card",
            )
        ),
    }

    txns = TransactionService(session, demo.id)
    this_month = today.replace(day=1)
    for row in DEMO_TRANSACTIONS:
        key, months_back, day, txn_type, amount, category, description, notes = row
        month = add_months(this_month, -months_back)
        txns.create(
            TransactionIn(
                account_id=by_key[key].id,
                amount=amount,
                type=txn_type,
                category=category,
                description=description,
                date=datetime(month.year, month.month, day, 12, 0),
                notes=notes,
            )
        )

    TeamService(session, demo.id).create(TeamIn(name="Personal Finance"))
    logger.info(f"seed: created demo user_id={demo.id}")
    return demo
