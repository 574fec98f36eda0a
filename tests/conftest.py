"""Shared fixtures: an in-memory budget store and a gate around it."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from actual_mcp_server.config import Settings
from actual_mcp_server.errors import NotFoundError
from actual_mcp_server.session import SessionGate


class FakeBudgetStore:
    """BudgetStore over in-memory lists. Counts lifecycle calls."""

    def __init__(self, setup_delay: float = 0, fail_with: Optional[Exception] = None):
        self.setup_delay = setup_delay
        self.fail_with = fail_with
        self.open_calls = 0
        self.load_calls = 0
        self.close_calls = 0
        self.loaded_budget: Optional[str] = None

        self.accounts: List[Dict[str, Any]] = []
        self.categories: List[Dict[str, Any]] = []
        self.transactions: List[Dict[str, Any]] = []
        self.payees: List[Dict[str, Any]] = []
        self.balances: Dict[str, int] = {}
        self.balance_scans = 0
        self.budgets: Dict[str, int] = {}
        self.synced = 0
        self.sync_error: Optional[Exception] = None
        self.delete_category_error: Optional[Exception] = None

    async def open(self, settings):
        self.open_calls += 1
        if self.setup_delay:
            await asyncio.sleep(self.setup_delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def load_budget(self, budget_id):
        self.load_calls += 1
        self.loaded_budget = budget_id

    async def close(self):
        self.close_calls += 1

    async def get_accounts(self):
        return list(self.accounts)

    async def get_categories(self):
        return list(self.categories)

    async def get_transactions(self):
        return list(self.transactions)

    async def get_payees(self):
        return list(self.payees)

    async def get_category_balances(self):
        self.balance_scans += 1
        return dict(self.balances)

    async def get_category_balance(self, category_id):
        return self.balances.get(category_id, 0)

    async def set_budget(self, category_id, amount, month=None):
        self.budgets[category_id] = amount

    async def add_transaction(self, transaction):
        new_id = f"tx-{len(self.transactions) + 1}"
        self.transactions.append({"id": new_id, **transaction})
        return new_id

    async def update_transaction(self, transaction_id, fields):
        for t in self.transactions:
            if t["id"] == transaction_id:
                t.update(fields)
                return
        raise NotFoundError(f'Transaction with ID "{transaction_id}" not found')

    async def delete_transaction(self, transaction_id):
        self.transactions = [t for t in self.transactions if t["id"] != transaction_id]

    async def delete_category(self, category_id):
        if self.delete_category_error is not None:
            raise self.delete_category_error
        self.categories = [c for c in self.categories if c["id"] != category_id]

    async def get_bank_sync_status(self):
        return {"linkedAccounts": ["Checking"]}

    async def sync_bank_accounts(self):
        if self.sync_error is not None:
            raise self.sync_error
        self.synced += 1
        return 2


def make_transaction(tid, date, amount, account="acc-1", payee="Grocer", category="cat-food", **extra):
    t = {
        "id": tid,
        "date": date,
        "account": account,
        "payee_name": payee,
        "category": category,
        "amount": amount,
        "notes": None,
        "is_child": False,
        "transfer_id": None,
    }
    t.update(extra)
    return t


@pytest.fixture
def settings():
    return Settings(budget_id="budget-1", password="secret", server_url="http://actual.test:5006")


@pytest.fixture
def store():
    return FakeBudgetStore()


@pytest.fixture
def gate(store, settings):
    return SessionGate(store, settings)


@pytest.fixture
def budget(store):
    """A store populated with a small budget."""
    store.accounts = [
        {"id": "acc-1", "name": "Checking", "type": "checking", "balance": 150000, "offbudget": False},
        {"id": "acc-2", "name": "Savings", "type": "savings", "balance": 500000, "offbudget": True},
    ]
    store.categories = [
        {"id": "grp-1", "name": "Everyday", "is_group": True, "hidden": False, "budgeted": 0},
        {"id": "cat-food", "name": "Food", "is_group": False, "hidden": False, "budgeted": 40000},
        {"id": "cat-fun", "name": "Fun", "is_group": False, "hidden": False, "budgeted": 10000},
        {"id": "cat-old", "name": "Old", "is_group": False, "hidden": True, "budgeted": 5000},
    ]
    store.transactions = [
        make_transaction("t1", "2026-01-05", -2500, payee="Grocer"),
        make_transaction("t2", "2026-01-20", -1200, payee="Cinema", category="cat-fun"),
        make_transaction("t3", "2026-02-02", -4000, payee="Big Grocer"),
        make_transaction("t4", "2026-02-10", 300000, payee="Employer", category=None),
        make_transaction("t5", "2026-02-10", -1000, payee="Grocer", is_child=True),
        make_transaction("t6", "2026-01-15", -7000, account="acc-2", payee=None, category=None),
    ]
    store.payees = [{"id": "p1", "name": "Grocer"}, {"id": "p2", "name": "Cinema"}]
    store.balances = {"cat-food": -6500, "cat-fun": -1200, "cat-old": -300}
    return store
