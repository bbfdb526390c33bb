import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import llmpanel.util.llmpanel_logger as _llmpanel_logger
from llmpanel.model.mcp.mcp_types import InputDefinition, ResolvedInputValue
from llmpanel.util.workspace_state import WorkspaceState

logger = _llmpanel_logger.getLogger(__name__)

INPUT_PATTERN = re.compile(r"^\$\{input:([^}]+)\}$")
STATE_KEY_PREFIX = "mcp.input."

# (definition, title, prompt) -> answer, or None when the user dismissed the prompt
InputPrompt = Callable[[InputDefinition, str, str], Awaitable[Optional[str]]]


def state_key(input_id: str) -> str:
    return f"{STATE_KEY_PREFIX}{input_id}"


def placeholder_id(arg: Any) -> Optional[str]:
    """Return the input id when `arg` is exactly one ${input:<id>} token."""
    if not isinstance(arg, str):
        return None
    m = INPUT_PATTERN.match(arg)
    return m.group(1) if m else None


class InputResolver:
    def __init__(self, state: WorkspaceState, prompt: InputPrompt):
        self.state = state
        self.prompt = prompt

    async def resolve_args(
        self,
        args: Sequence[Any],
        definitions: Sequence[InputDefinition],
        force_refresh: bool = False,
        answered: Optional[Dict[str, str]] = None,
    ) -> List[Any]:
        """
        Substitute whole-string ${input:<id>} placeholders in `args`.

        `answered` collects values obtained during the current pass so a
        forced refresh asks for each id once even when several servers
        share it.
        """
        answered = answered if answered is not None else {}
        resolved: List[Any] = []
        for a in args:
            input_id = placeholder_id(a)
            if input_id is None:
                resolved.append(a)
                continue
            if input_id not in answered:
                answered[input_id] = (await self.resolve_value(input_id, definitions, force_refresh)).value
            resolved.append(answered[input_id])
        return resolved

    async def resolve_value(
        self,
        input_id: str,
        definitions: Sequence[InputDefinition],
        force_refresh: bool = False,
    ) -> ResolvedInputValue:
        key = state_key(input_id)
        if not force_refresh:
            existing = self.state.get(key)
            if existing:
                logger.debug("Input '%s' resolved from workspace state", input_id)
                return ResolvedInputValue(id=input_id, value=existing)

        definition = next((d for d in definitions if d.id == input_id), None) or InputDefinition(id=input_id)
        title = definition.title or f"Value for {input_id}"
        prompt = definition.description or f"Enter value for {input_id}"

        value = await self.prompt(definition, title, prompt)
        if not isinstance(value, str):
            logger.info("Input '%s' was dismissed; substituting an empty value", input_id)
            return ResolvedInputValue(id=input_id, value="")

        if value:
            await self.state.update(key, value)
        return ResolvedInputValue(id=input_id, value=value)
