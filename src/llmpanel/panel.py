import os
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from llmpanel.model.mcp.input_resolver import InputPrompt, InputResolver
from llmpanel.model.mcp.manager import MCPServerManager
from llmpanel.model.mcp.session import ClientFactory, MCPTransportConnector, load_client_factory
from llmpanel.model.mcp.status import DiagnosticLog, build_payload, summarize
from llmpanel.util.workspace_state import WorkspaceState
import llmpanel.util.llmpanel_logger as llmpanel_logger

logger = llmpanel_logger.getLogger(__name__)

LOAD_FAILED = "Failed to load MCP config"

PostMessage = Callable[[Dict[str, Any]], Any]

_DEFAULT = object()


class MCPPanel:
    """
    Host-facing side of the MCP core.

    The host posts `{"command": ...}` messages (loadMcp, refreshMcp, getLogs,
    debugMcp) and receives `mcpData` / `logs` messages through `post_message`.
    """

    def __init__(
        self,
        workspace_root: Optional[str | Path],
        prompt: InputPrompt,
        post_message: Optional[PostMessage] = None,
        state: Optional[WorkspaceState] = None,
        client_factory: Optional[ClientFactory] = _DEFAULT,  # type: ignore[assignment]
        diagnostics: Optional[DiagnosticLog] = None,
        timeout_s: Optional[float] = None,
    ):
        self.workspace_root = workspace_root
        self.post_message = post_message
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        if client_factory is _DEFAULT:
            client_factory = load_client_factory()
        if state is None:
            state = WorkspaceState(workspace_root or os.getcwd())
        self.state = state
        self.connector = MCPTransportConnector(client_factory, self.diagnostics, timeout_s=timeout_s)
        self.resolver = InputResolver(state, prompt)
        self.manager = MCPServerManager(workspace_root, self.connector, self.resolver, self.diagnostics)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            "loadMcp": lambda _msg: self.load_servers(),
            "refreshMcp": lambda msg: self.refresh_servers(bool(msg.get("force", True))),
            "getLogs": lambda _msg: self._post_logs_async(),
            "debugMcp": lambda _msg: self.debug_sdk(),
        }

    async def handle_message(self, message: Dict[str, Any]) -> Any:
        command = message.get("command")
        handler = self._handlers.get(command)
        if handler is None:
            logger.warning("Ignoring unknown panel command: %s", command)
            return None
        return await handler(message)

    # ---- commands ----------------------------------------------------------
    async def load_servers(self) -> Dict[str, Any]:
        return await self._load(self.manager.load_servers)

    async def refresh_servers(self, force: bool = False) -> Dict[str, Any]:
        return await self._load(lambda: self.manager.refresh_servers(force=force))

    def get_diagnostic_log(self) -> str:
        return self.diagnostics.text()

    async def debug_sdk(self) -> Dict[str, Any]:
        """Report whether the MCP client library can be used, mirrored to the diagnostic log."""
        self.diagnostics.append("Debug MCP SDK: starting resolve checks...")
        info: Dict[str, Any] = {"available": self.connector.client_factory is not None}
        try:
            import fastmcp
            info["location"] = os.path.dirname(fastmcp.__file__)
            info["version"] = version("fastmcp")
            self.diagnostics.append("MCP SDK package at:", info["location"])
            self.diagnostics.append("MCP SDK version:", info["version"])
        except (ImportError, PackageNotFoundError) as e:
            info["error"] = str(e)
            self.diagnostics.append("MCP SDK not resolvable:", str(e))
        self._post_logs()
        return info

    # ---- helpers -----------------------------------------------------------
    async def _load(self, run: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
        try:
            self.diagnostics.append("Loading MCP config and connecting to servers...")
            data = await run()
            self.diagnostics.append("MCP load complete. Servers:", summarize(data))
        except Exception as e:
            self.diagnostics.error("Failed to load MCP:", e)
            data = build_payload([], error=LOAD_FAILED)
        self._post({"command": "mcpData", "data": data})
        return data

    def _post_logs(self) -> None:
        self._post({"command": "logs", "text": self.get_diagnostic_log()})

    async def _post_logs_async(self) -> None:
        self._post_logs()

    def _post(self, message: Dict[str, Any]) -> None:
        if self.post_message is not None:
            self.post_message(message)
