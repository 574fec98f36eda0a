"""
Budget store interface.

The session gate and the tool handlers only ever see this protocol; the
Actual-backed implementation lives in actual_store. Records are plain
dicts with amounts in integer cents:

    account      {id, name, type, balance, offbudget}
    category     {id, name, is_group, hidden, budgeted}
    transaction  {id, date, account, payee_name, category, amount, notes,
                  is_child, transfer_id}
    payee        {id, name}
"""

from datetime import date
from typing import Any, Dict, List, Optional, Protocol

from .config import Settings


class BudgetStore(Protocol):
    """Data-access surface the session gate and tool handlers rely on."""

    async def open(self, settings: Settings) -> None: ...

    async def load_budget(self, budget_id: str) -> None: ...

    async def close(self) -> None: ...

    async def get_accounts(self) -> List[Dict[str, Any]]: ...

    async def get_categories(self) -> List[Dict[str, Any]]: ...

    async def get_transactions(self) -> List[Dict[str, Any]]: ...

    async def get_payees(self) -> List[Dict[str, Any]]: ...

    async def get_category_balance(self, category_id: str) -> int: ...

    async def get_category_balances(self) -> Dict[str, int]: ...

    async def set_budget(self, category_id: str, amount: int, month: Optional[date] = None) -> None: ...

    async def add_transaction(self, transaction: Dict[str, Any]) -> str: ...

    async def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None: ...

    async def delete_transaction(self, transaction_id: str) -> None: ...

    async def delete_category(self, category_id: str) -> None: ...

    async def get_bank_sync_status(self) -> Dict[str, Any]: ...

    async def sync_bank_accounts(self) -> int: ...
