"""
Actual Budget store - the only code that talks to an Actual server.

SECURITY AUDIT NOTES:
- The only server contacted is ACTUAL_SERVER_URL
- The password is passed to the actualpy client and never logged
- Records are returned as plain dicts, amounts in integer cents

The actualpy client is synchronous and keeps a SQLite session bound to the
thread that opened it, so every call runs on one dedicated worker thread.

actualpy documentation: https://actualpy.readthedocs.io/
"""

import asyncio
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from datetime import date
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from actual import Actual
from actual.database import Accounts, Categories, Transactions
from actual.queries import (
    create_budget,
    create_transaction,
    get_accounts,
    get_budget,
    get_categories,
    get_category_groups,
    get_or_create_payee,
    get_payees,
    get_transactions,
)

from .config import Settings
from .errors import ActualMCPError, BudgetStoreError, InitializationError, NotFoundError

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def cents_to_decimal(cents: int) -> Decimal:
    return Decimal(cents) / 100


def first_of_month(day: Optional[date] = None) -> date:
    day = day or date.today()
    return day.replace(day=1)


# ============================================================================
# ACTUAL BUDGET STORE
# ============================================================================

class ActualBudgetStore:
    """
    BudgetStore backed by the actualpy client.

    Lifecycle:
        open()        - authenticate against the server
        load_budget() - download the budget into data_dir and open a session
        close()       - close the session
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="actual-store")
        self._stack = ExitStack()
        self._actual: Optional[Actual] = None

    # ------------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------------

    async def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking client call on the store thread, mapping library errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, partial(fn, *args, **kwargs))
        except ActualMCPError:
            raise
        except Exception as e:
            raise BudgetStoreError(str(e) or type(e).__name__) from e

    @property
    def _session(self):
        if self._actual is None:
            raise BudgetStoreError("No budget is loaded")
        return self._actual.session

    def _commit(self) -> None:
        self._actual.commit()

    def _all_transactions(self, start_date: Optional[date] = None) -> List[Transactions]:
        """Standalone, split-child and split-parent transactions."""
        return (
            get_transactions(self._session, start_date=start_date)
            + get_transactions(self._session, start_date=start_date, is_parent=True)
        )

    def _find_transaction(self, transaction_id: str) -> Transactions:
        transaction = self._session.get(Transactions, transaction_id)
        if transaction is None or transaction.tombstone:
            raise NotFoundError(f'Transaction with ID "{transaction_id}" not found')
        return transaction

    def _find_category(self, category_id: str) -> Categories:
        # actualpy looks plain strings up by category name, never by ID.
        category = self._session.get(Categories, category_id)
        if category is None or category.tombstone:
            raise NotFoundError(f'Category with ID "{category_id}" not found')
        return category

    def _budgeted(self, month: date, category: Categories) -> int:
        budget = get_budget(self._session, month, category)
        return (budget.amount or 0) if budget else 0

    # ------------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------------

    async def open(self, settings: Settings) -> None:
        def _open():
            return Actual(
                base_url=settings.server_url,
                password=settings.password,
                data_dir=settings.data_dir,
                encryption_password=settings.encryption_password,
            )

        try:
            self._actual = await self._run(_open)
        except BudgetStoreError as e:
            raise InitializationError(f"Could not connect to {settings.server_url}: {e}") from e

    async def load_budget(self, budget_id: str) -> None:
        if self._actual is None:
            raise InitializationError("Session is not open")

        def _load():
            self._actual.set_file(budget_id)
            self._stack.enter_context(self._actual)

        try:
            await self._run(_load)
        except BudgetStoreError as e:
            raise InitializationError(f'Could not load budget "{budget_id}": {e}') from e
        logger.debug("Loaded budget %s", budget_id)

    async def close(self) -> None:
        await self._run(self._stack.close)
        self._actual = None

    # ------------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------------

    async def get_accounts(self) -> List[Dict[str, Any]]:
        def _query():
            return [
                {
                    "id": a.id,
                    "name": a.name,
                    "type": getattr(a, "type", None),
                    "balance": int(round(a.balance * 100)),
                    "offbudget": bool(a.offbudget),
                }
                for a in get_accounts(self._session)
            ]

        return await self._run(_query)

    async def get_categories(self) -> List[Dict[str, Any]]:
        def _query():
            month = first_of_month()
            result = [
                {
                    "id": g.id,
                    "name": g.name,
                    "is_group": True,
                    "hidden": bool(g.hidden),
                    "budgeted": 0,
                }
                for g in get_category_groups(self._session)
            ]
            for c in get_categories(self._session):
                result.append({
                    "id": c.id,
                    "name": c.name,
                    "is_group": False,
                    "hidden": bool(c.hidden),
                    "budgeted": self._budgeted(month, c),
                })
            return result

        return await self._run(_query)

    async def get_transactions(self) -> List[Dict[str, Any]]:
        def _query():
            return [
                {
                    "id": t.id,
                    "date": t.get_date().isoformat(),
                    "account": t.acct,
                    "payee_name": t.payee.name if t.payee else None,
                    "category": t.category_id,
                    "amount": t.amount or 0,
                    "notes": t.notes,
                    "is_child": bool(t.is_child),
                    "transfer_id": t.transferred_id,
                }
                for t in self._all_transactions()
            ]

        return await self._run(_query)

    async def get_payees(self) -> List[Dict[str, Any]]:
        def _query():
            return [{"id": p.id, "name": p.name} for p in get_payees(self._session)]

        return await self._run(_query)

    async def get_category_balance(self, category_id: str) -> int:
        """This month's budgeted amount plus this month's activity, in cents."""
        def _query():
            month = first_of_month()
            category = self._find_category(category_id)
            activity = sum(
                t.amount or 0
                for t in self._all_transactions(start_date=month)
                if t.category_id == category.id
            )
            return self._budgeted(month, category) + activity

        return await self._run(_query)

    async def get_category_balances(self) -> Dict[str, int]:
        """get_category_balance for every category, reading the month's transactions once."""
        def _query():
            month = first_of_month()
            activity: Dict[str, int] = defaultdict(int)
            for t in self._all_transactions(start_date=month):
                if t.category_id:
                    activity[t.category_id] += t.amount or 0
            return {
                c.id: self._budgeted(month, c) + activity[c.id]
                for c in get_categories(self._session)
            }

        return await self._run(_query)

    # ------------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------------

    async def set_budget(self, category_id: str, amount: int, month: Optional[date] = None) -> None:
        def _write():
            category = self._find_category(category_id)
            create_budget(self._session, first_of_month(month), category, cents_to_decimal(amount))
            self._commit()

        await self._run(_write)

    async def add_transaction(self, transaction: Dict[str, Any]) -> str:
        def _write():
            account = self._session.get(Accounts, transaction["account"])
            if account is None or account.tombstone:
                # Not an ID; let actualpy look it up by name.
                account = transaction["account"]
            category = None
            if transaction.get("category"):
                category = self._find_category(transaction["category"])
            created = create_transaction(
                self._session,
                date=date.fromisoformat(transaction["date"]),
                account=account,
                payee=transaction.get("payee") or "",
                notes=transaction.get("notes") or "",
                category=category,
                amount=cents_to_decimal(transaction["amount"]),
            )
            self._commit()
            return created.id

        return await self._run(_write)

    async def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None:
        def _write():
            t = self._find_transaction(transaction_id)
            if "payee_name" in fields:
                t.payee = get_or_create_payee(self._session, fields["payee_name"])
            if "category" in fields:
                t.category_id = self._find_category(fields["category"]).id
            if "amount" in fields:
                t.amount = fields["amount"]
            if "date" in fields:
                t.set_date(date.fromisoformat(fields["date"]))
            if "notes" in fields:
                t.notes = fields["notes"]
            self._commit()

        await self._run(_write)

    async def delete_transaction(self, transaction_id: str) -> None:
        def _write():
            self._find_transaction(transaction_id).delete()
            self._commit()

        await self._run(_write)

    async def delete_category(self, category_id: str) -> None:
        def _write():
            self._find_category(category_id).delete()
            self._commit()

        await self._run(_write)

    async def get_bank_sync_status(self) -> Dict[str, Any]:
        def _query():
            linked = [
                a.name for a in get_accounts(self._session)
                if getattr(a, "account_sync_source", None)
            ]
            return {"linkedAccounts": linked}

        return await self._run(_query)

    async def sync_bank_accounts(self) -> int:
        """Run bank sync for all linked accounts. Returns the number of imported transactions."""
        def _sync():
            imported = self._actual.run_bank_sync()
            self._commit()
            return len(imported or [])

        return await self._run(_sync)
