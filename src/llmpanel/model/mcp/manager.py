import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional

from llmpanel.model.mcp.input_resolver import InputResolver
from llmpanel.model.mcp.load_mcp_servers import load_mcp_config
from llmpanel.model.mcp.mcp_types import ConnectionRecord, ConnectionStatus, McpConfig, ServerDescriptor
from llmpanel.model.mcp.session import CONNECT_FAILED, MCPTransportConnector, validate_descriptor
from llmpanel.model.mcp.status import DiagnosticLog, build_payload
from llmpanel.util import llmpanel_logger as _llmpanel_logger
logger = _llmpanel_logger.getLogger(__name__)


class MCPServerManager:
    """
    Name -> ConnectionRecord table for one workspace.

    Lazy queries connect each configured server once and answer from the
    table afterwards; a forced refresh drops the table, re-prompts inputs
    and connects everything again. Each pass gets a generation number and
    results from a superseded generation are discarded. Attempts for the
    same server name are serialized.
    """

    def __init__(
        self,
        workspace_root: Optional[str | Path],
        connector: MCPTransportConnector,
        resolver: InputResolver,
        diagnostics: Optional[DiagnosticLog] = None,
        config_loader: Callable[[Optional[str | Path]], McpConfig] = load_mcp_config,
    ):
        self.workspace_root = workspace_root
        self.connector = connector
        self.resolver = resolver
        self.diagnostics = diagnostics if diagnostics is not None else connector.diagnostics
        self._config_loader = config_loader
        self._config: Optional[McpConfig] = None
        self._records: Dict[str, ConnectionRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._generation = 0

    # ---- table access ------------------------------------------------------
    @property
    def generation(self) -> int:
        return self._generation

    @property
    def servers(self) -> List[ServerDescriptor]:
        return list(self._config.servers) if self._config else []

    def has_record(self, name: str) -> bool:
        return name in self._records

    def get_record(self, name: str) -> Optional[ConnectionRecord]:
        return self._records.get(name)

    def records(self) -> List[ConnectionRecord]:
        """Recorded servers in declaration order."""
        return [self._records[s.name] for s in self.servers if s.name in self._records]

    def snapshot(self) -> dict:
        return build_payload(self.records())

    # ---- commands ----------------------------------------------------------
    async def load_servers(self) -> dict:
        """Lazy path: read the configuration once, connect only unrecorded servers."""
        if self._config is None:
            self._reload_config(force=False)
        return await self._run_pass(force=False)

    async def refresh_servers(self, force: bool = False) -> dict:
        """Re-read the configuration; `force` also drops every record and re-prompts inputs."""
        self._reload_config(force=force)
        return await self._run_pass(force=force)

    async def get_server_tools(self, name: str) -> ConnectionRecord:
        """Connect a single server on demand (tree expansion) and cache it like the batch pass."""
        if self._config is None:
            self._reload_config(force=False)
        desc = next((s for s in self.servers if s.name == name), None)
        if desc is None:
            raise KeyError(f"Unknown MCP server: {name}")
        return await self._ensure_record(desc, self._generation, force=False, answered={})

    async def aclose(self) -> None:
        logger.debug("MCPServerManager closing...")
        self._records.clear()
        self._locks.clear()

    async def __aenter__(self) -> "MCPServerManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ---- internals ---------------------------------------------------------
    def _reload_config(self, force: bool) -> None:
        previous = {s.name: s for s in self.servers}
        self._config = self._config_loader(self.workspace_root)
        if self._config.error:
            self.diagnostics.append(f"No MCP config loaded: {self._config.error}.")
        self._generation += 1

        if force:
            self._records.clear()
            return

        # keep records whose descriptor did not change between generations
        current = {s.name: s for s in self._config.servers}
        for name in list(self._records):
            record = self._records[name]
            if record.status == ConnectionStatus.PENDING or previous.get(name) != current.get(name):
                del self._records[name]
            else:
                record.generation = self._generation

    async def _run_pass(self, force: bool) -> dict:
        generation = self._generation
        answered: Dict[str, str] = {}
        for desc in self.servers:
            if generation != self._generation:
                logger.debug("Generation %d superseded; stopping pass", generation)
                break
            await self._ensure_record(desc, generation, force, answered)
        return self.snapshot()

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    async def _ensure_record(
        self,
        desc: ServerDescriptor,
        generation: int,
        force: bool,
        answered: Dict[str, str],
    ) -> ConnectionRecord:
        async with self._lock_for(desc.name):
            existing = self._records.get(desc.name)
            if existing is not None and existing.generation == generation:
                return existing
            if generation != self._generation:
                logger.debug("Skipping '%s' for superseded generation %d", desc.name, generation)
                return existing or ConnectionRecord(server_name=desc.name, generation=generation)

            record = ConnectionRecord(server_name=desc.name, generation=generation)
            self._records[desc.name] = record
            try:
                result = await self._attempt(desc, force, answered)
            except BaseException:
                # cancelled attempts must not leave a pending record behind
                if self._records.get(desc.name) is record:
                    del self._records[desc.name]
                raise

            if generation != self._generation or self._records.get(desc.name) is not record:
                self.diagnostics.append(
                    f"Discarding result for '{desc.name}' from superseded generation {generation}."
                )
                return result

            record.status = result.status
            record.tools = result.tools
            record.message = result.message
            record.client = result.client
            return record

    async def _attempt(self, desc: ServerDescriptor, force: bool, answered: Dict[str, str]) -> ConnectionRecord:
        failure = validate_descriptor(desc)
        if failure:
            self.diagnostics.append(f"Server {desc.name}: {failure}.")
            return ConnectionRecord.failed(desc.name, failure)
        try:
            args = await self.resolver.resolve_args(
                desc.args, self._config.inputs if self._config else [], force, answered
            )
            return await self.connector.connect_and_list_tools(desc, args)
        except Exception as e:
            self.diagnostics.error(f"Failed to prepare server '{desc.name}':", e)
            return ConnectionRecord.failed(desc.name, str(e) or CONNECT_FAILED)
