"""
Error types raised by the Actual MCP server.

Every error a tool call can report derives from ActualMCPError, so the
dispatcher can tell expected failures (passed through with their message)
from unexpected ones (reported with their type name).
"""


class ActualMCPError(Exception):
    """Base class for all errors raised by this package."""
    pass


class ConfigurationError(ActualMCPError):
    """A required setting is missing. Fatal at startup."""
    pass


class InitializationError(ActualMCPError):
    """Opening the budget session failed (bad password, unreachable server, unknown budget)."""
    pass


class PolicyError(ActualMCPError):
    """A mutation tool was called while read-only mode is active."""
    pass


class NotFoundError(ActualMCPError):
    """A looked-up account, category or transaction does not exist."""
    pass


class ValidationError(ActualMCPError):
    """Tool arguments were rejected."""
    pass


class BudgetStoreError(ActualMCPError):
    """The budget store failed to complete a request."""
    pass
