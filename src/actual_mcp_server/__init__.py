"""
Actual Budget MCP Server - an auditable MCP server for Actual Budget.

This package provides a Model Context Protocol (MCP) server that enables
AI assistants to work with an Actual Budget file:
- Reading accounts, categories, payees and transactions
- Spending breakdowns, totals and balance history
- Creating, updating and categorizing transactions
- Setting category budgets and running bank sync

Set READ_ONLY=true to disable every tool that writes to the budget.

Security: Your Actual server password is read from the environment or the
OS keyring and never sent to any AI provider. Only the configured Actual
server is contacted.
"""

__version__ = "1.0.0"
__license__ = "MIT"
