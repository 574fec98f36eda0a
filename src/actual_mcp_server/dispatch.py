"""
Tool dispatch - the boundary between MCP tool calls and the handlers.

For every call the dispatcher:
1. rejects unknown tools
2. rejects mutation tools in read-only mode, before the session is touched
3. validates the arguments against the tool's input model
4. waits for the session gate
5. runs the handler and wraps the outcome in a response envelope

A failing call never escapes as an exception: it comes back as
{"success": False, "error": "..."} so one bad request cannot take the
server down for others. Over MCP, FastMCP checks arguments against the
input schema first; those rejections are MCP tool errors, not envelopes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import pydantic

from . import handlers
from .errors import ActualMCPError, PolicyError, ValidationError
from .models import (
    CreateTransactionInput,
    DeleteCategoryInput,
    DeleteTransactionInput,
    GetAccountsInput,
    GetAccountTransactionsInput,
    GetBalanceHistoryInput,
    GetBudgetTotalsInput,
    GetCategoriesInput,
    GetCategoryByIdInput,
    GetPayeesInput,
    GetSpendingByCategoryInput,
    GetTotalSpendingInput,
    GetTransactionByIdInput,
    GetTransactionsInput,
    GetUncategorizedTransactionsInput,
    RunBankSyncInput,
    SetCategoryBudgetByIdInput,
    SetCategoryBudgetInput,
    SetTransactionCategoryInput,
    ToolInput,
    UpdateTransactionInput,
)
from .session import SessionGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A tool as exposed to the agent."""
    name: str
    title: str
    description: str
    handler: Callable[..., Awaitable[Any]]
    input_model: Type[ToolInput]
    mutation: bool = False
    destructive: bool = False
    idempotent: bool = True


# ============================================================================
# TOOL REGISTRY
# ============================================================================

TOOLS: List[ToolSpec] = [
    ToolSpec(
        "get_accounts", "List Accounts",
        "Get all accounts with their balances and types",
        handlers.get_accounts, GetAccountsInput,
    ),
    ToolSpec(
        "get_categories", "List Categories",
        "Get all budget categories with their budget amounts",
        handlers.get_categories, GetCategoriesInput,
    ),
    ToolSpec(
        "get_category_by_id", "Get Category",
        "Get detailed info for a specific category including balance",
        handlers.get_category_by_id, GetCategoryByIdInput,
    ),
    ToolSpec(
        "get_transactions", "List Transactions",
        "Get transactions with optional filters",
        handlers.get_transactions, GetTransactionsInput,
    ),
    ToolSpec(
        "get_transaction_by_id", "Get Transaction",
        "Get a specific transaction by ID",
        handlers.get_transaction_by_id, GetTransactionByIdInput,
    ),
    ToolSpec(
        "get_budget_totals", "Get Budget Totals",
        "Get overall budget totals: budgeted, spent, remaining, and account balance",
        handlers.get_budget_totals, GetBudgetTotalsInput,
    ),
    ToolSpec(
        "get_spending_by_category", "Spending by Category",
        "Get spending breakdown by category, sorted by amount spent",
        handlers.get_spending_by_category, GetSpendingByCategoryInput,
    ),
    ToolSpec(
        "get_payees", "List Payees",
        "Get all payees in your budget",
        handlers.get_payees, GetPayeesInput,
    ),
    ToolSpec(
        "get_account_transactions", "List Account Transactions",
        "Get all transactions for a specific account",
        handlers.get_account_transactions, GetAccountTransactionsInput,
    ),
    ToolSpec(
        "get_total_spending", "Get Total Spending",
        "Get total spending across all categories for a date range",
        handlers.get_total_spending, GetTotalSpendingInput,
    ),
    ToolSpec(
        "get_uncategorized_transactions", "List Uncategorized Transactions",
        "Get all transactions that haven't been categorized yet",
        handlers.get_uncategorized_transactions, GetUncategorizedTransactionsInput,
    ),
    ToolSpec(
        "get_balance_history", "Get Balance History",
        "Get historical balance for an account",
        handlers.get_balance_history, GetBalanceHistoryInput,
    ),
    ToolSpec(
        "set_category_budget", "Set Category Budget",
        "Set the budget amount for a category by name",
        handlers.set_category_budget, SetCategoryBudgetInput, mutation=True,
    ),
    ToolSpec(
        "set_category_budget_by_id", "Set Category Budget by ID",
        "Set the budget amount for a category by ID",
        handlers.set_category_budget_by_id, SetCategoryBudgetByIdInput, mutation=True,
    ),
    ToolSpec(
        "set_transaction_category", "Set Transaction Category",
        "Set or change the category for a transaction",
        handlers.set_transaction_category, SetTransactionCategoryInput, mutation=True,
    ),
    ToolSpec(
        "update_transaction", "Update Transaction",
        "Update transaction details like payee, amount, date, or notes",
        handlers.update_transaction, UpdateTransactionInput, mutation=True,
    ),
    ToolSpec(
        "create_transaction", "Create Transaction",
        "Create a new transaction",
        handlers.create_transaction, CreateTransactionInput, mutation=True, idempotent=False,
    ),
    ToolSpec(
        "delete_transaction", "Delete Transaction",
        "Delete a transaction permanently",
        handlers.delete_transaction, DeleteTransactionInput, mutation=True, destructive=True,
    ),
    ToolSpec(
        "delete_category", "Delete Category",
        "Delete a budget category permanently",
        handlers.delete_category, DeleteCategoryInput, mutation=True, destructive=True,
    ),
    ToolSpec(
        "run_bank_sync", "Run Bank Sync",
        "Initiate bank account synchronization",
        handlers.run_bank_sync, RunBankSyncInput, mutation=True, idempotent=False,
    ),
]


def format_error(e: Exception) -> str:
    """Format error for consistent error responses."""
    if isinstance(e, ActualMCPError):
        return str(e)
    return f"Unexpected error - {type(e).__name__}: {str(e)}"


def format_validation_error(e: pydantic.ValidationError) -> str:
    problems = []
    for err in e.errors():
        field = ".".join(str(part) for part in err["loc"]) or "arguments"
        problems.append(f"{field}: {err['msg']}")
    return "Invalid arguments - " + "; ".join(problems)


# ============================================================================
# DISPATCHER
# ============================================================================

class ToolDispatcher:
    """Routes tool calls through the read-only policy and the session gate."""

    def __init__(self, gate: SessionGate, read_only: bool = False, tools: Optional[List[ToolSpec]] = None):
        self.gate = gate
        self.read_only = read_only
        self._tools: Dict[str, ToolSpec] = {t.name: t for t in (tools if tools is not None else TOOLS)}

    def available_tools(self) -> List[ToolSpec]:
        """Tools exposed in the current mode."""
        return [t for t in self._tools.values() if not (self.read_only and t.mutation)]

    def check_policy(self, name: str) -> ToolSpec:
        """
        Look up a tool and apply the read-only policy.

        Raises:
            ValidationError: Unknown tool
            PolicyError: Mutation tool in read-only mode
        """
        spec = self._tools.get(name)
        if spec is None:
            raise ValidationError(f"Unknown tool: {name}")
        if self.read_only and spec.mutation:
            raise PolicyError(
                f'Tool "{name}" is disabled in read-only mode. Set READ_ONLY=false to enable mutations.'
            )
        return spec

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a tool and return its response envelope. Never raises."""
        logger.info("Tool called: %s", name)
        try:
            spec = self.check_policy(name)
            try:
                params = spec.input_model.model_validate(arguments or {})
            except pydantic.ValidationError as e:
                raise ValidationError(format_validation_error(e)) from e

            await self.gate.ensure_ready()
            result = await spec.handler(self.gate.store, params)
        except ActualMCPError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return {"success": False, "error": format_error(e)}
        except Exception as e:
            logger.exception("Tool %s failed unexpectedly", name)
            return {"success": False, "error": format_error(e)}

        return {"success": True, "data": result}
