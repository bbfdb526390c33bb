import argparse
import asyncio
import getpass
import json
import os
import sys

from llmpanel.model.mcp.mcp_types import InputDefinition
from llmpanel.model.mcp.status import render_tree
from llmpanel.panel import MCPPanel
from llmpanel.util.workspace_state import WorkspaceState

import llmpanel.util.llmpanel_logger as llmpanel_logger
logger = llmpanel_logger.getLogger(__name__)


def parse_args(argv=None):
    """Parses command line arguments for the MCP panel."""
    parser = argparse.ArgumentParser(description="Load and inspect the MCP servers of a workspace")
    parser.add_argument("-w", "--workspace", default=os.getcwd(), help="Workspace root holding .vscode/mcp.json")
    parser.add_argument("-r", "--refresh", action="store_true", help="Re-read the configuration before loading")
    parser.add_argument("-f", "--force", action="store_true", help="Forced refresh: reconnect everything and re-prompt inputs")
    parser.add_argument("-t", "--tree", action="store_true", help="Print the server/tool tree instead of JSON")
    parser.add_argument("-L", "--logs", action="store_true", help="Print the diagnostic log after loading")
    parser.add_argument("-d", "--debug_sdk", action="store_true", help="Report MCP client library availability")
    parser.add_argument("-e", "--events", action="store_true", help="Emit panel messages as NDJSON events on stdout")
    parser.add_argument("--state_db", help="Override the workspace state database path")
    parser.add_argument("--timeout", type=float, help="Per-server connect timeout in seconds")
    return parser.parse_args(argv)


async def prompt_input(definition: InputDefinition, title: str, prompt: str):
    """Blocking terminal prompt run off the event loop; EOF/Ctrl-C counts as dismissal."""
    ask = getpass.getpass if definition.password else input

    def _ask():
        try:
            return ask(f"{title} - {prompt}: ")
        except (EOFError, KeyboardInterrupt):
            return None

    return await asyncio.to_thread(_ask)


def _emit(message):
    payload = {k: v for k, v in message.items() if k != "command"}
    logger.emit_event(message.get("command", "message"), **payload)


async def run_panel(args) -> dict:
    state = WorkspaceState(args.workspace, db_path=args.state_db)
    panel = MCPPanel(
        args.workspace,
        prompt=prompt_input,
        post_message=_emit if args.events else None,
        state=state,
        timeout_s=args.timeout,
    )

    if args.debug_sdk:
        info = await panel.debug_sdk()
        logger.info(f"MCP SDK: {info}")

    if args.force or args.refresh:
        data = await panel.refresh_servers(force=args.force)
    else:
        data = await panel.load_servers()

    if not args.events:
        print(render_tree(data) if args.tree else json.dumps(data, indent=2, ensure_ascii=False))
    if args.logs:
        print(panel.get_diagnostic_log(), file=sys.stderr)
    return data


async def main(argv=None):
    args = parse_args(argv)
    if not os.path.isdir(args.workspace):
        logger.error(f"Workspace not found: {args.workspace}")
        sys.exit(2)
    try:
        data = await run_panel(args)
    except Exception:
        logger.critical("MCP panel failed unexpectedly.", exc_info=True)
        sys.exit(1)
    failed = [s["name"] for s in data.get("servers", []) if s.get("status") == "failed"]
    if failed:
        logger.info(f"Servers failed: {failed}")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
