import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import llmpanel.util.config as config
import llmpanel.util.llmpanel_logger as _llmpanel_logger
from llmpanel.model.mcp.mcp_types import InputDefinition, McpConfig, ServerDescriptor, STDIO

logger = _llmpanel_logger.getLogger(__name__)

LEGACY_SERVERS_KEY = "mcpServers"


def _expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def find_config_file(root: str | Path) -> Optional[Path]:
    for rel in config.mcp_config_paths:
        candidate = Path(root) / rel
        if candidate.is_file():
            return candidate
    return None


def _raw_server_entries(cfg: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Flatten the three accepted shapes into a list of server objects:
      - "servers": [ {name|id, command, args}, ... ]
      - "mcpServers": same array (legacy key)
      - "servers": { "<name>": {command, args}, ... }
    """
    for key in ("servers", LEGACY_SERVERS_KEY):
        block = cfg.get(key)
        if isinstance(block, list):
            return [s if isinstance(s, dict) else {} for s in block]
        if isinstance(block, dict) and block:
            return [{"name": name, **(scfg if isinstance(scfg, dict) else {})} for name, scfg in block.items()]
    return []


def _parse_inputs(cfg: Dict[str, Any]) -> List[InputDefinition]:
    raw = cfg.get("inputs")
    if not isinstance(raw, list):
        return []
    out: List[InputDefinition] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        out.append(InputDefinition(
            id=str(item["id"]),
            title=item.get("title"),
            description=item.get("description"),
            password=bool(item.get("password", False)),
        ))
    return out


def parse_mcp_config(cfg: Dict[str, Any], source: Optional[str] = None) -> McpConfig:
    if not isinstance(cfg, dict):
        raise ValueError("MCP config root must be a JSON object")

    servers: List[ServerDescriptor] = []
    seen = set()
    for idx, scfg in enumerate(_raw_server_entries(cfg)):
        name = scfg.get("name") or scfg.get("id") or f"server-{idx + 1}"
        name = str(name)
        if scfg.get("disabled", False):
            logger.debug("[MCP] '%s': skipping disabled server", name)
            continue
        if name in seen:
            logger.warning("[MCP] '%s': duplicate server name, keeping the first declaration", name)
            continue
        seen.add(name)

        # wrong-typed fields count as absent
        command = scfg.get("command")
        args = scfg.get("args")
        cwd = scfg.get("cwd")
        env = scfg.get("env")
        servers.append(ServerDescriptor(
            name=name,
            command=command if isinstance(command, str) and command else None,
            args=tuple(a if isinstance(a, str) else str(a) for a in args) if isinstance(args, list) else (),
            type=str(scfg.get("type") or STDIO),
            env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
            cwd=_expand_path(cwd) if isinstance(cwd, str) and cwd else None,
        ))

    return McpConfig(servers=servers, inputs=_parse_inputs(cfg), source=source)


def load_mcp_config(root: str | Path | None) -> McpConfig:
    """
    Read the workspace MCP configuration.

    A missing root, a missing file or unparseable JSON all yield an empty
    configuration; having no tool servers is a normal state.
    """
    if not root:
        logger.info("[MCP] No workspace root; no servers to load.")
        return McpConfig(error="No workspace root")

    config_path = find_config_file(root)
    if config_path is None:
        reason = f"No {' or '.join(config.mcp_config_paths)} found under {root}"
        logger.info("[MCP] %s", reason)
        return McpConfig(error=reason)

    try:
        with config_path.open("r", encoding="utf-8") as f:
            cfg = json.load(f)
        loaded = parse_mcp_config(cfg, source=str(config_path))
    except (OSError, ValueError, TypeError) as e:
        reason = f"Invalid MCP config at {config_path}: {e}"
        logger.info("[MCP] %s", reason)
        return McpConfig(error=reason)

    logger.debug("[MCP] Loaded %d server(s) and %d input(s) from %s",
                 len(loaded.servers), len(loaded.inputs), config_path)
    return loaded
