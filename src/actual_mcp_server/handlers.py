"""
Tool handlers - one coroutine per MCP tool.

Each handler takes the budget store and its validated input model and
returns a JSON-serialisable result. Handlers assume the session is ready;
the dispatcher calls SessionGate.ensure_ready() first.

Amounts are integer cents inside the store and dollars in every result.
Split child transactions are excluded unless a tool says otherwise.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import BudgetStoreError, NotFoundError, ValidationError
from .models import (
    CreateTransactionInput,
    DeleteCategoryInput,
    DeleteTransactionInput,
    GetAccountTransactionsInput,
    GetBalanceHistoryInput,
    GetCategoryByIdInput,
    GetSpendingByCategoryInput,
    GetTotalSpendingInput,
    GetTransactionByIdInput,
    GetTransactionsInput,
    GetUncategorizedTransactionsInput,
    SetCategoryBudgetByIdInput,
    SetCategoryBudgetInput,
    SetTransactionCategoryInput,
    UpdateTransactionInput,
)
from .store import BudgetStore


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def dollars_to_cents(dollars: float) -> int:
    """Convert dollars to store cents (100 cents = $1.00)."""
    return int(round(dollars * 100))


def cents_to_dollars(cents: int) -> float:
    """Convert store cents to dollars."""
    return round((cents or 0) / 100, 2)


def in_date_range(t: Dict[str, Any], start_date: Optional[str], end_date: Optional[str]) -> bool:
    """Inclusive YYYY-MM-DD comparison; missing bounds are open."""
    if start_date and t["date"] < start_date:
        return False
    if end_date and t["date"] > end_date:
        return False
    return True


def newest_first(transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(transactions, key=lambda t: t["date"], reverse=True)


def transaction_record(t: Dict[str, Any]) -> Dict[str, Any]:
    """Public shape of a transaction."""
    return {
        "id": t["id"],
        "date": t["date"],
        "account": t["account"],
        "payee": t.get("payee_name") or "Unknown",
        "category": t.get("category"),
        "amount": cents_to_dollars(t["amount"]),
        "notes": t.get("notes") or "",
        "isTransfer": bool(t.get("transfer_id")),
    }


def find_category(categories: List[Dict[str, Any]], name_or_id: str) -> Optional[Dict[str, Any]]:
    """Match by ID first, then by case-insensitive name."""
    for c in categories:
        if c["id"] == name_or_id:
            return c
    lowered = name_or_id.lower()
    for c in categories:
        if c["name"].lower() == lowered:
            return c
    return None


async def require_transaction(store: BudgetStore, transaction_id: str) -> Dict[str, Any]:
    for t in await store.get_transactions():
        if t["id"] == transaction_id:
            return t
    raise NotFoundError(f'Transaction with ID "{transaction_id}" not found')


async def require_category(store: BudgetStore, category_id: str) -> Dict[str, Any]:
    for c in await store.get_categories():
        if c["id"] == category_id:
            return c
    raise NotFoundError(f'Category with ID "{category_id}" not found')


def spending_categories(categories: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Visible leaf categories."""
    return [c for c in categories if not c.get("hidden") and not c.get("is_group")]


# ============================================================================
# ACCOUNT TOOLS
# ============================================================================

async def get_accounts(store: BudgetStore, params=None) -> List[Dict[str, Any]]:
    """All accounts with balances, types and transaction counts."""
    accounts = await store.get_accounts()
    transactions = await store.get_transactions()

    counts: Dict[str, int] = {}
    for t in transactions:
        if not t.get("is_child"):
            counts[t["account"]] = counts.get(t["account"], 0) + 1

    return [
        {
            "id": a["id"],
            "name": a["name"],
            "type": a.get("type"),
            "balance": cents_to_dollars(a.get("balance", 0)),
            "offBudget": bool(a.get("offbudget")),
            "transactionCount": counts.get(a["id"], 0),
        }
        for a in accounts
    ]


async def get_account_transactions(store: BudgetStore, params: GetAccountTransactionsInput) -> List[Dict[str, Any]]:
    """One account's transactions, newest first."""
    transactions = [
        t for t in await store.get_transactions()
        if t["account"] == params.account_id and not t.get("is_child")
    ]
    records = [transaction_record(t) for t in newest_first(transactions)[:params.limit]]
    for r in records:
        del r["account"]
        del r["isTransfer"]
    return records


async def get_balance_history(store: BudgetStore, params: GetBalanceHistoryInput) -> List[Dict[str, Any]]:
    """Running balance over an account's most recent transactions, oldest first."""
    transactions = sorted(
        (t for t in await store.get_transactions() if t["account"] == params.account_id and not t.get("is_child")),
        key=lambda t: t["date"],
    )

    running = 0
    history = []
    for t in transactions[-params.limit:]:
        running += t["amount"]
        history.append({
            "date": t["date"],
            "transaction": t.get("payee_name") or "Unknown",
            "amount": cents_to_dollars(t["amount"]),
            "balance": cents_to_dollars(running),
        })
    return history


# ============================================================================
# CATEGORY TOOLS
# ============================================================================

async def get_categories(store: BudgetStore, params=None) -> List[Dict[str, Any]]:
    """All categories with their budgeted amounts."""
    return [
        {
            "id": c["id"],
            "name": c["name"],
            "isGroup": bool(c.get("is_group")),
            "isHidden": bool(c.get("hidden")),
            "budgeted": cents_to_dollars(c.get("budgeted", 0)),
        }
        for c in await store.get_categories()
    ]


async def get_category_by_id(store: BudgetStore, params: GetCategoryByIdInput) -> Dict[str, Any]:
    """One category including its current balance."""
    category = await require_category(store, params.category_id)
    balance = await store.get_category_balance(category["id"])
    return {
        "id": category["id"],
        "name": category["name"],
        "budgeted": cents_to_dollars(category.get("budgeted", 0)),
        "spent": cents_to_dollars(abs(balance)),
        "balance": cents_to_dollars(balance),
        "isGroup": bool(category.get("is_group")),
        "isHidden": bool(category.get("hidden")),
    }


async def set_category_budget(store: BudgetStore, params: SetCategoryBudgetInput) -> Dict[str, Any]:
    """Set this month's budget for a category found by name."""
    lowered = params.category_name.lower()
    category = next((c for c in await store.get_categories() if c["name"].lower() == lowered), None)
    if category is None:
        raise NotFoundError(f'Category "{params.category_name}" not found')

    await store.set_budget(category["id"], dollars_to_cents(params.amount))
    return {"category": category["name"], "newBudget": params.amount}


async def set_category_budget_by_id(store: BudgetStore, params: SetCategoryBudgetByIdInput) -> Dict[str, Any]:
    """Set this month's budget for a category found by ID."""
    category = await require_category(store, params.category_id)
    await store.set_budget(category["id"], dollars_to_cents(params.amount))
    return {"category": category["name"], "newBudget": params.amount}


async def delete_category(store: BudgetStore, params: DeleteCategoryInput) -> Dict[str, Any]:
    """Delete a category permanently."""
    category = await require_category(store, params.category_id)
    try:
        await store.delete_category(category["id"])
    except BudgetStoreError as e:
        raise BudgetStoreError(f'Cannot delete category "{category["name"]}": {e}') from e

    return {
        "categoryId": category["id"],
        "categoryName": category["name"],
        "message": f'Category "{category["name"]}" deleted',
    }


# ============================================================================
# TRANSACTION TOOLS
# ============================================================================

async def get_transactions(store: BudgetStore, params: GetTransactionsInput) -> List[Dict[str, Any]]:
    """Transactions matching every given filter, newest first."""
    transactions = await store.get_transactions()

    if params.category:
        transactions = [t for t in transactions if t.get("category") == params.category]
    if params.account:
        transactions = [t for t in transactions if t["account"] == params.account]
    transactions = [t for t in transactions if in_date_range(t, params.start_date, params.end_date)]
    if params.payee:
        needle = params.payee.lower()
        transactions = [t for t in transactions if needle in (t.get("payee_name") or "").lower()]
    if params.exclude_child:
        transactions = [t for t in transactions if not t.get("is_child")]

    return [transaction_record(t) for t in newest_first(transactions)[:params.limit]]


async def get_transaction_by_id(store: BudgetStore, params: GetTransactionByIdInput) -> Dict[str, Any]:
    return transaction_record(await require_transaction(store, params.transaction_id))


async def get_uncategorized_transactions(
    store: BudgetStore, params: GetUncategorizedTransactionsInput,
) -> List[Dict[str, Any]]:
    """Transactions without a category, newest first."""
    transactions = [
        t for t in await store.get_transactions()
        if not t.get("category") and not t.get("is_child")
    ]
    records = [transaction_record(t) for t in newest_first(transactions)[:params.limit]]
    for r in records:
        del r["category"]
        del r["isTransfer"]
    return records


async def create_transaction(store: BudgetStore, params: CreateTransactionInput) -> Dict[str, Any]:
    """Create a transaction. An unknown category leaves it uncategorized."""
    payload: Dict[str, Any] = {
        "account": params.account,
        "payee": params.payee,
        "amount": dollars_to_cents(params.amount),
        "date": params.date,
    }

    if params.category:
        category = find_category(await store.get_categories(), params.category)
        if category:
            payload["category"] = category["id"]
    if params.notes:
        payload["notes"] = params.notes

    transaction_id = await store.add_transaction(payload)
    return {"transactionId": transaction_id}


async def update_transaction(store: BudgetStore, params: UpdateTransactionInput) -> Dict[str, Any]:
    """Update only the fields that were given."""
    updates: Dict[str, Any] = {}
    if params.payee is not None:
        updates["payee_name"] = params.payee
    if params.category is not None:
        updates["category"] = params.category
    if params.amount is not None:
        updates["amount"] = dollars_to_cents(params.amount)
    if params.date is not None:
        updates["date"] = params.date
    if params.notes is not None:
        updates["notes"] = params.notes

    if not updates:
        raise ValidationError("No fields to update. Specify at least one field to change.")

    await require_transaction(store, params.transaction_id)
    await store.update_transaction(params.transaction_id, updates)
    return {"transactionId": params.transaction_id, "updates": updates}


async def set_transaction_category(store: BudgetStore, params: SetTransactionCategoryInput) -> Dict[str, Any]:
    """Categorize a transaction by category ID or name."""
    await require_transaction(store, params.transaction_id)

    category = find_category(await store.get_categories(), params.category_name_or_id)
    if category is None:
        raise NotFoundError(f'Category "{params.category_name_or_id}" not found')

    await store.update_transaction(params.transaction_id, {"category": category["id"]})
    return {"transactionId": params.transaction_id, "category": category["name"]}


async def delete_transaction(store: BudgetStore, params: DeleteTransactionInput) -> Dict[str, Any]:
    """Delete a transaction permanently."""
    transaction = await require_transaction(store, params.transaction_id)
    await store.delete_transaction(params.transaction_id)

    payee = transaction.get("payee_name") or "Unknown"
    return {
        "transactionId": params.transaction_id,
        "message": f"Transaction deleted: {payee} (${cents_to_dollars(transaction['amount']):.2f})",
    }


# ============================================================================
# ANALYSIS TOOLS
# ============================================================================

async def get_budget_totals(store: BudgetStore, params=None) -> Dict[str, Any]:
    """Budgeted, spent and remaining over visible categories; balance over on-budget accounts."""
    balances = await store.get_category_balances()
    total_budgeted = 0
    total_spent = 0
    for c in spending_categories(await store.get_categories()):
        balance = balances.get(c["id"], 0)
        total_budgeted += c.get("budgeted") or 0
        total_spent += abs(balance)

    total_balance = sum(
        a.get("balance") or 0 for a in await store.get_accounts() if not a.get("offbudget")
    )

    return {
        "totalBudgeted": cents_to_dollars(total_budgeted),
        "totalSpent": cents_to_dollars(total_spent),
        "remaining": cents_to_dollars(total_budgeted - total_spent),
        "totalBalance": cents_to_dollars(total_balance),
    }


async def get_spending_by_category(store: BudgetStore, params: GetSpendingByCategoryInput) -> List[Dict[str, Any]]:
    """Per-category spending in the date range, largest first."""
    transactions = [
        t for t in await store.get_transactions()
        if not t.get("is_child") and in_date_range(t, params.start_date, params.end_date)
    ]

    balances = await store.get_category_balances()
    spending = []
    for c in spending_categories(await store.get_categories()):
        matched = [t for t in transactions if t.get("category") == c["id"]]
        spent = sum(abs(t["amount"]) for t in matched)
        balance = balances.get(c["id"], 0)
        budgeted = c.get("budgeted") or 0
        spending.append({
            "id": c["id"],
            "name": c["name"],
            "budgeted": cents_to_dollars(budgeted),
            "spent": cents_to_dollars(spent),
            "balance": cents_to_dollars(balance),
            "remaining": cents_to_dollars(budgeted + balance),
            "transactionCount": len(matched),
        })

    return sorted(spending, key=lambda s: s["spent"], reverse=True)


async def get_total_spending(store: BudgetStore, params: GetTotalSpendingInput) -> Dict[str, Any]:
    """Net outflow over a date range."""
    transactions = [
        t for t in await store.get_transactions()
        if not t.get("is_child") and in_date_range(t, params.start_date, params.end_date)
    ]

    total_spent = abs(sum(t["amount"] for t in transactions))
    count = len(transactions)
    average = total_spent / count if count else 0

    return {
        "totalSpent": cents_to_dollars(total_spent),
        "transactionCount": count,
        "avgTransaction": cents_to_dollars(average),
        "dateRange": {
            "startDate": params.start_date or "all time",
            "endDate": params.end_date or "today",
        },
    }


async def get_payees(store: BudgetStore, params=None) -> List[Dict[str, Any]]:
    return [{"id": p["id"], "name": p["name"]} for p in await store.get_payees()]


async def run_bank_sync(store: BudgetStore, params=None) -> Dict[str, Any]:
    """Sync all linked bank accounts."""
    try:
        status = await store.get_bank_sync_status()
        imported = await store.sync_bank_accounts()
    except BudgetStoreError as e:
        raise BudgetStoreError(f"Bank sync failed: {e}") from e

    return {
        "message": "Bank sync initiated",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "syncStatus": status,
        "importedTransactions": imported,
    }
