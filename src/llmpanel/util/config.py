import json
import os

from dotenv import load_dotenv

# Load global config at module level

load_dotenv()

PROJECT_ROOT = os.getenv('LLMPANEL_PROJECT_ROOT') or os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

config_path = os.path.join(PROJECT_ROOT, "util", "config_dev.json")
if not os.path.exists(config_path):
    config_path = os.path.join(PROJECT_ROOT, "util", "config.json")

with open(config_path) as f:
    CONFIG = json.load(f)
    CONFIG['PROJECT_ROOT'] = PROJECT_ROOT

CONFIG.setdefault("app", {})
CONFIG.setdefault("mcp", {})

if os.getenv("LLMPANEL_LOG_LEVEL"):
    CONFIG["app"]["log_level"] = os.getenv("LLMPANEL_LOG_LEVEL").upper()

logs_folder_path = os.path.join(PROJECT_ROOT, CONFIG["app"].get("project_log_folder", "logs"))

state_folder_path = os.path.expanduser(CONFIG["app"].get("state_folder", "~/.llmpanel"))

state_db_path = os.getenv("LLMPANEL_STATE_DB") or os.path.join(state_folder_path, "workspace_state.db")

mcp_config_paths = CONFIG["mcp"].get("config_paths", [".vscode/mcp.json", "mcp.config.json"])

log_buffer_size = int(CONFIG["mcp"].get("log_buffer_size", 500))

auto_confirm_launchers = [c.lower() for c in CONFIG["mcp"].get("auto_confirm_launchers", ["npx"])]

connect_timeout_s = float(CONFIG["mcp"].get("connect_timeout_s", 30))
