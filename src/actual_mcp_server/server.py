"""
Actual Budget MCP Server - Main entry point.

This file builds the MCP server and exposes every budget tool to it.
Run with: python -m actual_mcp_server.server

Or via the CLI: actual-mcp
"""

import json
import sys
from contextlib import asynccontextmanager
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import Settings, store_password
from .dispatch import ToolDispatcher, ToolSpec
from .errors import ConfigurationError
from .logging_config import configure_logging
from .session import SessionGate
from .store import BudgetStore

SERVER_NAME = "actual_budget_mcp"


# ============================================================================
# MCP SERVER SETUP
# ============================================================================

def make_tool(dispatcher: ToolDispatcher, spec: ToolSpec):
    """
    Build the coroutine FastMCP registers for one tool.

    FastMCP validates `params` against the input model before this runs,
    so schema violations come back as MCP tool errors (isError) rather
    than as a {"success": False} envelope, and never reach the gate.
    """

    async def tool(params) -> str:
        arguments = params.model_dump(by_alias=True, exclude_unset=True)
        envelope = await dispatcher.call(spec.name, arguments)
        return json.dumps(envelope, indent=2, default=str)

    tool.__name__ = spec.name
    tool.__doc__ = spec.description
    tool.__annotations__ = {"params": spec.input_model, "return": str}
    return tool


def create_server(settings: Settings, store: Optional[BudgetStore] = None) -> FastMCP:
    """
    Build the MCP server for a budget.

    Mutation tools are not registered at all in read-only mode; the
    dispatcher rejects them as well if they are called anyway.
    """
    if store is None:
        from .actual_store import ActualBudgetStore
        store = ActualBudgetStore()

    gate = SessionGate(store, settings)
    dispatcher = ToolDispatcher(gate, read_only=settings.read_only)

    @asynccontextmanager
    async def lifespan(server):
        """Close the budget session when the server stops."""
        try:
            yield {"dispatcher": dispatcher}
        finally:
            await gate.shutdown()

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)

    for spec in dispatcher.available_tools():
        mcp.tool(
            name=spec.name,
            description=spec.description,
            annotations={
                "title": spec.title,
                "readOnlyHint": not spec.mutation,
                "destructiveHint": spec.destructive,
                "idempotentHint": spec.idempotent,
                "openWorldHint": False,
            },
        )(make_tool(dispatcher, spec))

    return mcp


# ============================================================================
# CLI ENTRY POINT
# ============================================================================

def main(argv=None):
    """Main entry point for the MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="Actual Budget MCP Server")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["run", "store-password", "check-config"],
        default="run",
        help="Command to execute (default: run)",
    )

    args = parser.parse_args(argv)

    if args.command == "store-password":
        print("Enter your Actual server password:")
        password = input("> ").strip()
        if password:
            if store_password(password):
                print("✓ Password stored securely in OS keyring.")
            else:
                print("✗ Failed to store password. Set ACTUAL_PASSWORD environment variable instead.")
        else:
            print("✗ No password provided.")
        return

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "check-config":
        print(f"✓ Budget: {settings.budget_id}")
        print(f"✓ Server: {settings.server_url}")
        print(f"✓ Data directory: {settings.data_dir}")
        print(f"✓ Password found ({len(settings.password)} characters)")
        print(f"  Read-only mode: {'on' if settings.read_only else 'off'}")
        return

    # Default: run the MCP server on stdio
    configure_logging(settings.log_level)
    create_server(settings).run()


if __name__ == "__main__":
    main()
