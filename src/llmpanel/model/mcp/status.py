import json
import traceback
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import llmpanel.util.config as config
import llmpanel.util.llmpanel_logger as _llmpanel_logger
from llmpanel.model.mcp.mcp_types import ConnectionRecord, ConnectionStatus

logger = _llmpanel_logger.getLogger(__name__)

ACTIVE_MARK = "\U0001F7E2 active"
FAILED_MARK = "\U0001F534 failed"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _fmt(part: Any) -> str:
    if isinstance(part, str):
        return part
    try:
        return json.dumps(part, default=str)
    except (TypeError, ValueError):
        return repr(part)


def _fmt_error(part: Any) -> str:
    if isinstance(part, BaseException):
        text = "".join(traceback.format_exception(type(part), part, part.__traceback__)).rstrip()
        return text or repr(part)
    return _fmt(part)


class DiagnosticLog:
    """
    Rolling diagnostic log: `[<ISO timestamp>] message` lines kept in a
    bounded FIFO. Every line is mirrored to the module logger.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = config.log_buffer_size if capacity is None else capacity
        if self.capacity < 1:
            raise ValueError(f"DiagnosticLog capacity must be at least 1, got {self.capacity}")
        self._lines: deque[str] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._lines)

    def append(self, *parts: Any) -> str:
        line = f"[{_iso_now()}] {' '.join(_fmt(p) for p in parts)}"
        self._lines.append(line)
        logger.info(line)
        return line

    def error(self, *parts: Any) -> str:
        line = f"[{_iso_now()}] ERROR {' '.join(_fmt_error(p) for p in parts)}"
        self._lines.append(line)
        logger.error(line)
        return line

    def snapshot(self) -> List[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)


def build_payload(records: Iterable[ConnectionRecord], error: Optional[str] = None) -> Dict[str, Any]:
    """Presentation payload for the host, servers kept in declaration order."""
    payload: Dict[str, Any] = {"servers": [r.to_dict() for r in records]}
    if error:
        payload["error"] = error
    return payload


def summarize(payload: Dict[str, Any]) -> List[Dict[str, str]]:
    return [{"name": s["name"], "status": s["status"]} for s in payload.get("servers", [])]


def render_tree(payload: Dict[str, Any]) -> str:
    lines: List[str] = []
    for server in payload.get("servers", []):
        status = server.get("status")
        if status == ConnectionStatus.ACTIVE.value:
            mark = ACTIVE_MARK
        elif status == ConnectionStatus.FAILED.value:
            mark = FAILED_MARK
        else:
            mark = ""
        lines.append(f"{server['name']}  {mark}".rstrip())
        if status == ConnectionStatus.FAILED.value:
            lines.append("  ! Failed to connect" + (f" ({server['message']})" if server.get("message") else ""))
            continue
        tools = server.get("tools") or []
        if not tools:
            lines.append("  i No tools available")
        for tool in tools:
            desc = tool.get("description") or ""
            lines.append(f"  - {tool['name']}" + (f"  {desc}" if desc else ""))
    return "\n".join(lines)
