from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

STDIO = "stdio"


@dataclass(frozen=True)
class ServerDescriptor:
    name: str
    command: Optional[str]
    args: Tuple[Any, ...] = ()
    type: str = STDIO
    env: Dict[str, str] = field(default_factory=dict, hash=False)
    cwd: Optional[str] = None


@dataclass(frozen=True)
class InputDefinition:
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    password: bool = False


@dataclass
class ResolvedInputValue:
    id: str
    value: str


@dataclass(frozen=True)
class MCPTool:
    name: str
    description: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "description": self.description}


ToolDescriptor = MCPTool


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass
class ConnectionRecord:
    server_name: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    client: Any = None
    tools: List[MCPTool] = field(default_factory=list)
    message: Optional[str] = None
    generation: int = 0

    @classmethod
    def failed(cls, server_name: str, message: str, generation: int = 0) -> "ConnectionRecord":
        return cls(server_name=server_name, status=ConnectionStatus.FAILED, message=message, generation=generation)

    @classmethod
    def active(cls, server_name: str, tools: List[MCPTool], generation: int = 0) -> "ConnectionRecord":
        return cls(server_name=server_name, status=ConnectionStatus.ACTIVE, tools=list(tools), generation=generation)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.server_name,
            "status": self.status.value,
            "tools": [t.to_dict() for t in self.tools],
        }
        if self.message is not None:
            out["message"] = self.message
        return out


@dataclass
class McpConfig:
    servers: List[ServerDescriptor] = field(default_factory=list)
    inputs: List[InputDefinition] = field(default_factory=list)
    source: Optional[str] = None
    error: Optional[str] = None
