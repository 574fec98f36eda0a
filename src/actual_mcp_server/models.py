"""
Pydantic models for MCP tool input validation.

All inputs are validated before the budget store is touched. Field
aliases are the camelCase argument names tools are called with.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ToolInput(BaseModel):
    """Base model for every tool input."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


class DateRangeInput(ToolInput):
    """Optional inclusive date range."""
    start_date: Optional[str] = Field(
        default=None, alias="startDate", description="Start date (YYYY-MM-DD)", pattern=DATE_PATTERN,
    )
    end_date: Optional[str] = Field(
        default=None, alias="endDate", description="End date (YYYY-MM-DD)", pattern=DATE_PATTERN,
    )


# ============================================================================
# ACCOUNT TOOLS
# ============================================================================

class GetAccountsInput(ToolInput):
    """Input for listing accounts."""
    pass


class GetAccountTransactionsInput(ToolInput):
    """Input for listing one account's transactions."""
    account_id: str = Field(..., alias="accountId", description="The account ID")
    limit: int = Field(default=100, description="Maximum number of transactions (default: 100)", ge=1)


class GetBalanceHistoryInput(ToolInput):
    """Input for an account's running balance."""
    account_id: str = Field(..., alias="accountId", description="The account ID")
    limit: int = Field(default=30, description="Number of recent transactions to include (default: 30)", ge=1)


# ============================================================================
# CATEGORY TOOLS
# ============================================================================

class GetCategoriesInput(ToolInput):
    """Input for listing categories."""
    pass


class GetCategoryByIdInput(ToolInput):
    """Input for getting a specific category."""
    category_id: str = Field(..., alias="categoryId", description="The category ID")


class SetCategoryBudgetInput(ToolInput):
    """Input for setting a category's budget by name."""
    category_name: str = Field(..., alias="categoryName", description="The category name", min_length=1)
    amount: float = Field(..., description="Budget amount in dollars", ge=0)


class SetCategoryBudgetByIdInput(ToolInput):
    """Input for setting a category's budget by ID."""
    category_id: str = Field(..., alias="categoryId", description="The category ID")
    amount: float = Field(..., description="Budget amount in dollars", ge=0)


class DeleteCategoryInput(ToolInput):
    """Input for deleting a category."""
    category_id: str = Field(..., alias="categoryId", description="The category ID to delete")


# ============================================================================
# TRANSACTION TOOLS
# ============================================================================

class GetTransactionsInput(DateRangeInput):
    """Input for listing transactions."""
    category: Optional[str] = Field(default=None, description="Filter by category ID")
    account: Optional[str] = Field(default=None, description="Filter by account ID")
    payee: Optional[str] = Field(default=None, description="Filter by payee name (partial match)")
    limit: int = Field(default=100, description="Maximum number of transactions (default: 100)", ge=1)
    exclude_child: bool = Field(
        default=True, alias="excludeChild", description="Exclude split child transactions (default: true)",
    )


class GetTransactionByIdInput(ToolInput):
    """Input for getting a specific transaction."""
    transaction_id: str = Field(..., alias="transactionId", description="The transaction ID")


class GetUncategorizedTransactionsInput(ToolInput):
    """Input for listing uncategorized transactions."""
    limit: int = Field(default=100, description="Maximum number of transactions (default: 100)", ge=1)


class CreateTransactionInput(ToolInput):
    """Input for creating a new transaction."""
    account: str = Field(..., description="Account ID")
    payee: str = Field(..., description="Payee name", max_length=200)
    amount: float = Field(..., description="Amount in dollars (negative for expenses, positive for income)")
    date: str = Field(..., description="Date (YYYY-MM-DD)", pattern=DATE_PATTERN)
    category: Optional[str] = Field(default=None, description="Category name or ID (optional)")
    notes: Optional[str] = Field(default=None, description="Notes (optional)", max_length=500)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        """Ensure amount has at most 2 decimal places."""
        return round(v, 2)


class UpdateTransactionInput(ToolInput):
    """Input for updating an existing transaction. Only given fields change."""
    transaction_id: str = Field(..., alias="transactionId", description="The transaction ID")
    payee: Optional[str] = Field(default=None, description="New payee name", max_length=200)
    category: Optional[str] = Field(default=None, description="New category ID")
    amount: Optional[float] = Field(default=None, description="New amount in dollars")
    date: Optional[str] = Field(default=None, description="New date (YYYY-MM-DD)", pattern=DATE_PATTERN)
    notes: Optional[str] = Field(default=None, description="New notes", max_length=500)


class SetTransactionCategoryInput(ToolInput):
    """Input for (re)categorizing a transaction."""
    transaction_id: str = Field(..., alias="transactionId", description="The transaction ID")
    category_name_or_id: str = Field(..., alias="categoryNameOrId", description="Category name or ID", min_length=1)


class DeleteTransactionInput(ToolInput):
    """Input for deleting a transaction."""
    transaction_id: str = Field(..., alias="transactionId", description="The transaction ID to delete")


# ============================================================================
# ANALYSIS TOOLS
# ============================================================================

class GetBudgetTotalsInput(ToolInput):
    """Input for overall budget totals."""
    pass


class GetSpendingByCategoryInput(DateRangeInput):
    """Input for the per-category spending breakdown."""
    pass


class GetTotalSpendingInput(DateRangeInput):
    """Input for total spending over a date range."""
    pass


class GetPayeesInput(ToolInput):
    """Input for listing payees."""
    pass


class RunBankSyncInput(ToolInput):
    """Input for starting a bank sync."""
    pass
