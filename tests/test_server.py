"""Tests for the MCP server wiring and the CLI."""

import json

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from actual_mcp_server import server
from actual_mcp_server.config import Settings
from actual_mcp_server.dispatch import TOOLS, ToolDispatcher
from actual_mcp_server.models import GetPayeesInput
from actual_mcp_server.session import SessionGate

from conftest import FakeBudgetStore


def make_settings(read_only=False):
    return Settings(budget_id="budget-1", password="secret", read_only=read_only)


class TestCreateServer:

    @pytest.mark.asyncio
    async def test_all_tools_registered(self):
        mcp = server.create_server(make_settings(), store=FakeBudgetStore())

        names = {t.name for t in await mcp.list_tools()}

        assert "get_accounts" in names
        assert "delete_transaction" in names
        assert len(names) == 20

    @pytest.mark.asyncio
    async def test_read_only_registers_no_mutation_tools(self):
        mcp = server.create_server(make_settings(read_only=True), store=FakeBudgetStore())

        tools = await mcp.list_tools()

        assert len(tools) == 12
        assert all(t.annotations.readOnlyHint for t in tools)

    @pytest.mark.asyncio
    async def test_destructive_hint(self):
        mcp = server.create_server(make_settings(), store=FakeBudgetStore())

        tools = {t.name: t for t in await mcp.list_tools()}

        assert tools["delete_category"].annotations.destructiveHint is True
        assert tools["get_payees"].annotations.destructiveHint is False

    @pytest.mark.asyncio
    async def test_tool_returns_json_envelope(self):
        store = FakeBudgetStore()
        store.payees = [{"id": "p1", "name": "Grocer"}]
        spec = next(t for t in TOOLS if t.name == "get_payees")
        tool = server.make_tool(ToolDispatcher(SessionGate(store, make_settings())), spec)

        text = await tool(GetPayeesInput())

        assert json.loads(text) == {"success": True, "data": [{"id": "p1", "name": "Grocer"}]}
        assert store.open_calls == 1

    @pytest.mark.asyncio
    async def test_schema_violations_are_mcp_tool_errors(self):
        store = FakeBudgetStore()
        mcp = server.create_server(make_settings(), store=store)
        arguments = {"categoryName": "Food", "amount": -5}

        with pytest.raises(ToolError):
            await mcp.call_tool("set_category_budget", {"params": arguments})
        assert store.open_calls == 0

        # The dispatcher reports the same arguments as an envelope.
        dispatcher = ToolDispatcher(SessionGate(store, make_settings()))
        envelope = await dispatcher.call("set_category_budget", arguments)
        assert envelope["success"] is False
        assert envelope["error"].startswith("Invalid arguments")
        assert store.open_calls == 0


class TestMain:

    def test_missing_config_exits(self, monkeypatch, capsys):
        monkeypatch.delenv("ACTUAL_BUDGET_ID", raising=False)
        monkeypatch.setattr(server.Settings, "from_env", classmethod(_raise_missing))

        with pytest.raises(SystemExit) as exc_info:
            server.main(["run"])

        assert exc_info.value.code == 1
        assert "ACTUAL_BUDGET_ID" in capsys.readouterr().err

    def test_check_config(self, monkeypatch, capsys):
        monkeypatch.setattr(server.Settings, "from_env", classmethod(lambda cls: make_settings(read_only=True)))

        server.main(["check-config"])

        out = capsys.readouterr().out
        assert "budget-1" in out
        assert "secret" not in out
        assert "Read-only mode: on" in out


def _raise_missing(cls):
    from actual_mcp_server.errors import ConfigurationError
    raise ConfigurationError("ACTUAL_BUDGET_ID environment variable is required")
