import asyncio
import inspect
import os
import platform
from typing import Any, Callable, Dict, List, Optional, Sequence

import llmpanel.util.config as config
import llmpanel.util.llmpanel_logger as _llmpanel_logger
from llmpanel.model.mcp.mcp_types import ConnectionRecord, MCPTool, ServerDescriptor, STDIO
from llmpanel.model.mcp.status import DiagnosticLog

logger = _llmpanel_logger.getLogger(__name__)

MISSING_COMMAND = "Missing command"
UNSUPPORTED_TYPE = "Unsupported server type (expected stdio)"
SDK_UNAVAILABLE = "MCP SDK not available"
CONNECT_FAILED = "Failed to connect"

# (command, args, cwd, env) -> client exposing connect() plus list_tools() or tools()
ClientFactory = Callable[[str, List[str], Optional[str], Optional[Dict[str, str]]], Any]


class MCPStdioFastMCPClientSession:
    """
    STDIO-backed session using FastMCPClient + StdioTransport.
    """

    def __init__(self, command: str, args: List[str],
                 cwd: Optional[str] = None, env: Optional[dict] = None) -> None:
        from fastmcp import Client as FastMCPClient
        from fastmcp.client.transports import StdioTransport

        self._client_cls = FastMCPClient
        self._transport = StdioTransport(command=command, args=args, cwd=cwd, env=env)
        self._client = None

    async def connect(self) -> None:
        self._client = self._client_cls(self._transport)
        await self._client.__aenter__()

    def _ensure_connected(self):
        if self._client is None:
            raise RuntimeError("MCP client not initialized. Call connect() first.")
        return self._client

    async def list_tools(self) -> List[Any]:
        return await self._ensure_connected().list_tools()

    async def aclose(self) -> None:
        if self._client:
            try:
                await self._client.__aexit__(None, None, None)
            finally:
                self._client = None


def load_client_factory() -> Optional[ClientFactory]:
    """
    Resolve the MCP client library once at startup.
    Returns None (and logs why) when it cannot be imported.
    """
    # Import lazily so a broken install degrades to per-server failures instead of crashing.
    try:
        import fastmcp  # noqa: F401
        from fastmcp.client.transports import StdioTransport  # noqa: F401
    except ImportError as e:
        logger.info("MCP client library not available: %s", e)
        return None
    return MCPStdioFastMCPClientSession


def validate_descriptor(desc: ServerDescriptor) -> Optional[str]:
    """Return the failure message for a descriptor that must not be spawned."""
    if not desc.command:
        return MISSING_COMMAND
    if (desc.type or STDIO) != STDIO:
        return UNSUPPORTED_TYPE
    return None


def normalize_launcher(command: str, args: Sequence[Any], system: Optional[str] = None) -> tuple[str, List[str]]:
    """
    Rewrite bare `npx` to `npx.cmd` on Windows and make package-runner
    launchers non-interactive by injecting `-y` unless already present.
    """
    system = system or platform.system()
    cmd = command
    cmd_args = [str(a) for a in args]
    if system == "Windows" and cmd.lower() in config.auto_confirm_launchers:
        cmd = f"{cmd}.cmd"
    if any(launcher in cmd.lower() for launcher in config.auto_confirm_launchers):
        has_yes = any(a.lower() in ("-y", "--yes") for a in cmd_args)
        if not has_yes:
            cmd_args.insert(0, "-y")
    return cmd, cmd_args


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def query_tools(client: Any) -> List[Any]:
    """
    Ask a connected client for its tool list via list_tools() or tools(),
    unwrapping a {"tools": [...]} / `.tools` envelope when present.
    """
    if callable(getattr(client, "list_tools", None)):
        res = await _maybe_await(client.list_tools())
    elif callable(getattr(client, "tools", None)):
        res = await _maybe_await(client.tools())
    else:
        return []
    if res is None:
        return []
    if isinstance(res, dict):
        res = res.get("tools", [])
    elif not isinstance(res, (list, tuple)) and hasattr(res, "tools"):
        res = res.tools
    return list(res or [])


async def close_client(client: Any) -> None:
    """Best-effort teardown; the terminal status is already decided, so errors are dropped."""
    for method in ("aclose", "close", "disconnect"):
        fn = getattr(client, method, None)
        if not callable(fn):
            continue
        try:
            await _maybe_await(fn())
        except Exception:
            pass


def shape_tools(raw: Sequence[Any]) -> List[MCPTool]:
    out: List[MCPTool] = []
    for t in raw or []:
        name = getattr(t, "name", None) or (t.get("name") if isinstance(t, dict) else None)
        desc = getattr(t, "description", None) or (t.get("description") if isinstance(t, dict) else None)
        out.append(MCPTool(name=str(name or "tool"), description=str(desc or "")))
    return out


class MCPTransportConnector:
    def __init__(
        self,
        client_factory: Optional[ClientFactory],
        diagnostics: Optional[DiagnosticLog] = None,
        timeout_s: Optional[float] = None,
        system: Optional[str] = None,
    ):
        self.client_factory = client_factory
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        self.timeout_s = config.connect_timeout_s if timeout_s is None else timeout_s
        self.system = system

    async def connect_and_list_tools(self, desc: ServerDescriptor, args: Sequence[Any]) -> ConnectionRecord:
        failure = validate_descriptor(desc)
        if failure:
            self.diagnostics.append(f"Server {desc.name}: {failure}.")
            return ConnectionRecord.failed(desc.name, failure)
        if self.client_factory is None:
            self.diagnostics.append(f"Server {desc.name}: {SDK_UNAVAILABLE}.")
            return ConnectionRecord.failed(desc.name, SDK_UNAVAILABLE)

        try:
            cmd, cmd_args = normalize_launcher(desc.command, args, self.system)
            self.diagnostics.append(f"Connecting to MCP server '{desc.name}' with: {cmd} {' '.join(cmd_args)}")
            if self.timeout_s and self.timeout_s > 0:
                raw = await asyncio.wait_for(self._spawn_and_query(desc, cmd, cmd_args), timeout=self.timeout_s)
            else:
                raw = await self._spawn_and_query(desc, cmd, cmd_args)
            tools = shape_tools(raw)
            self.diagnostics.append(f"Server '{desc.name}' tools:", [t.name for t in tools])
            return ConnectionRecord.active(desc.name, tools)
        except asyncio.TimeoutError as e:
            self.diagnostics.error(f"Failed to connect to server '{desc.name}':", e)
            return ConnectionRecord.failed(desc.name, f"Timed out after {self.timeout_s:g}s")
        except Exception as e:
            self.diagnostics.error(f"Failed to connect to server '{desc.name}':", e)
            return ConnectionRecord.failed(desc.name, str(e) or CONNECT_FAILED)

    async def _spawn_and_query(self, desc: ServerDescriptor, cmd: str, cmd_args: List[str]) -> List[Any]:
        env = {**os.environ, **desc.env} if desc.env else None
        client = self.client_factory(cmd, cmd_args, desc.cwd, env)
        try:
            connect = getattr(client, "connect", None)
            if callable(connect):
                await _maybe_await(connect())
            return await query_tools(client)
        finally:
            await close_client(client)
