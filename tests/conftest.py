"""Pytest fixtures for the MCP panel core."""

import asyncio
import json
from pathlib import Path

import pytest

from llmpanel.model.mcp.input_resolver import InputResolver
from llmpanel.model.mcp.manager import MCPServerManager
from llmpanel.model.mcp.session import MCPTransportConnector
from llmpanel.model.mcp.status import DiagnosticLog
from llmpanel.util.workspace_state import WorkspaceState


class FakeClient:
    """Stands in for a fastmcp session; never spawns anything."""

    def __init__(self, command, args, tools=None, error=None, gate=None, started=None):
        self.command = command
        self.args = args
        self._tools = tools if tools is not None else []
        self._error = error
        self._gate = gate
        self._started = started
        self.connected = False
        self.closed = False

    async def connect(self):
        if self._started is not None:
            self._started.set()
        if self._gate is not None:
            await self._gate.wait()
        if self._error is not None:
            raise self._error
        self.connected = True

    async def list_tools(self):
        return list(self._tools)

    async def aclose(self):
        self.closed = True


class FakeClientFactory:
    def __init__(self):
        self.calls = []
        self.clients = []
        self.tools = {}
        self.errors = {}
        self.gate = None
        self.started = None

    def __call__(self, command, args, cwd=None, env=None):
        self.calls.append({"command": command, "args": list(args), "cwd": cwd, "env": env})
        client = FakeClient(
            command,
            args,
            tools=self.tools.get(command, [{"name": "ping"}]),
            error=self.errors.get(command),
            gate=self.gate,
            started=self.started,
        )
        self.clients.append(client)
        return client


class FakePrompt:
    def __init__(self, answers=None):
        self.answers = dict(answers or {})
        self.calls = []

    async def __call__(self, definition, title, prompt):
        self.calls.append({"id": definition.id, "title": title, "prompt": prompt})
        return self.answers.get(definition.id)


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def write_config(workspace):
    def _write(cfg, rel=".vscode/mcp.json"):
        path = Path(workspace) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(cfg if isinstance(cfg, str) else json.dumps(cfg), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def state(workspace, tmp_path):
    return WorkspaceState(workspace, db_path=str(tmp_path / "state.db"))


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def prompt():
    return FakePrompt()


@pytest.fixture
def diagnostics():
    return DiagnosticLog(capacity=50)


@pytest.fixture
def manager(workspace, state, prompt, client_factory, diagnostics):
    connector = MCPTransportConnector(client_factory, diagnostics, timeout_s=5, system="Linux")
    resolver = InputResolver(state, prompt)
    return MCPServerManager(workspace, connector, resolver, diagnostics)


@pytest.fixture
def gate():
    return asyncio.Event()
