from typing import Optional

from models import TransactionType


def balance_effect(txn_type: TransactionType, amount: float) -> float:
    """Signed change a transaction makes to its account balance.

    Expenses always debit. Income and transfer credit the stored amount; a
    transaction carries a single account id, so a transfer cannot debit one
    account and credit another.
    """
    if txn_type == TransactionType.expense:
        return -abs(amount)
    return amount


def reconciliation_deltas(
    old_account_id: Optional[int],
    old_effect: float,
    new_account_id: Optional[int],
    new_effect: float,
) -> dict[int, float]:
    """Per-account balance changes that replace ``old_effect`` with ``new_effect``.

    Accounts whose change nets to zero are left out.
    """
    deltas: dict[int, float] = {}
    if old_account_id is not None:
        deltas[old_account_id] = deltas.get(old_account_id, 0.0) - old_effect
    if new_account_id is not None:
        deltas[new_account_id] = deltas.get(new_account_id, 0.0) + new_effect
    return {account_id: delta for account_id, delta in deltas.items() if delta != 0}
