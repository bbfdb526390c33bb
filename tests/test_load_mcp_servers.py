"""Tests for the workspace MCP config loader."""

from llmpanel.model.mcp.load_mcp_servers import load_mcp_config, parse_mcp_config
from llmpanel.model.mcp.mcp_types import ServerDescriptor


def _semantic(cfg):
    return [(s.name, s.command, s.args) for s in cfg.servers]


class TestShapes:
    """All accepted server collection shapes normalize to the same descriptors."""

    def test_map_array_and_legacy_key_are_equivalent(self):
        as_map = parse_mcp_config({"servers": {
            "alpha": {"command": "echo", "args": ["hi"]},
            "beta": {"command": "npx", "args": ["srv", "${input:key}"]},
        }})
        as_array = parse_mcp_config({"servers": [
            {"name": "alpha", "command": "echo", "args": ["hi"]},
            {"id": "beta", "command": "npx", "args": ["srv", "${input:key}"]},
        ]})
        as_legacy = parse_mcp_config({"mcpServers": [
            {"name": "alpha", "command": "echo", "args": ["hi"]},
            {"name": "beta", "command": "npx", "args": ["srv", "${input:key}"]},
        ]})

        expected = [("alpha", "echo", ("hi",)), ("beta", "npx", ("srv", "${input:key}"))]
        assert _semantic(as_map) == expected
        assert _semantic(as_array) == expected
        assert _semantic(as_legacy) == expected

    def test_positional_fallback_name(self):
        cfg = parse_mcp_config({"servers": [{"command": "a"}, {"name": "named", "command": "b"}, {"command": "c"}]})
        assert [s.name for s in cfg.servers] == ["server-1", "named", "server-3"]

    def test_defaults(self):
        cfg = parse_mcp_config({"servers": {"only": {"command": "echo"}}})
        assert cfg.servers == [ServerDescriptor(name="only", command="echo")]
        assert cfg.servers[0].type == "stdio"
        assert cfg.servers[0].args == ()

    def test_missing_command_is_kept(self):
        cfg = parse_mcp_config({"servers": {"broken": {"args": ["x"]}, "ok": {"command": "echo"}}})
        assert [s.name for s in cfg.servers] == ["broken", "ok"]
        assert cfg.servers[0].command is None

    def test_type_is_preserved(self):
        cfg = parse_mcp_config({"servers": {"web": {"type": "sse", "command": "x"}}})
        assert cfg.servers[0].type == "sse"

    def test_disabled_servers_are_skipped(self):
        cfg = parse_mcp_config({"servers": {"off": {"command": "x", "disabled": True}, "on": {"command": "y"}}})
        assert [s.name for s in cfg.servers] == ["on"]

    def test_duplicate_names_keep_first(self):
        cfg = parse_mcp_config({"servers": [{"name": "dup", "command": "one"}, {"name": "dup", "command": "two"}]})
        assert len(cfg.servers) == 1
        assert cfg.servers[0].command == "one"

    def test_env_and_cwd_pass_through(self, monkeypatch):
        monkeypatch.setenv("LLMPANEL_TEST_DIR", "/opt/tools")
        cfg = parse_mcp_config({"servers": {"s": {"command": "x", "env": {"A": 1}, "cwd": "$LLMPANEL_TEST_DIR/srv"}}})
        assert cfg.servers[0].env == {"A": "1"}
        assert cfg.servers[0].cwd == "/opt/tools/srv"

    def test_inputs_are_parsed(self):
        cfg = parse_mcp_config({
            "inputs": [
                {"id": "apiKey", "title": "API key", "description": "Your key", "password": True},
                {"title": "no id"},
                "junk",
            ],
            "servers": {},
        })
        assert len(cfg.inputs) == 1
        assert cfg.inputs[0].id == "apiKey"
        assert cfg.inputs[0].password is True


class TestLoadFromWorkspace:
    def test_no_root_yields_empty(self):
        cfg = load_mcp_config(None)
        assert cfg.servers == []
        assert cfg.inputs == []

    def test_missing_file_yields_empty(self, workspace):
        assert load_mcp_config(workspace).servers == []

    def test_invalid_json_yields_empty(self, workspace, write_config):
        write_config("{ not json")
        assert load_mcp_config(workspace).servers == []

    def test_non_object_root_yields_empty(self, workspace, write_config):
        write_config("[1, 2, 3]")
        assert load_mcp_config(workspace).servers == []

    def test_reads_vscode_config(self, workspace, write_config):
        path = write_config({"servers": {"echo": {"command": "echo", "args": ["hi"]}}})
        cfg = load_mcp_config(workspace)
        assert _semantic(cfg) == [("echo", "echo", ("hi",))]
        assert cfg.source == str(path)

    def test_legacy_file_location(self, workspace, write_config):
        write_config({"mcpServers": [{"name": "legacy", "command": "echo"}]}, rel="mcp.config.json")
        assert [s.name for s in load_mcp_config(workspace).servers] == ["legacy"]

    def test_vscode_config_wins_over_legacy(self, workspace, write_config):
        write_config({"servers": {"new": {"command": "echo"}}})
        write_config({"servers": {"old": {"command": "echo"}}}, rel="mcp.config.json")
        assert [s.name for s in load_mcp_config(workspace).servers] == ["new"]

    def test_wrong_typed_fields_are_dropped(self, workspace, write_config):
        write_config({"servers": {"s": {"command": "x", "cwd": 5, "env": ["A"], "args": "not-a-list"}}})
        cfg = load_mcp_config(workspace)
        assert cfg.error is None
        assert cfg.servers[0].cwd is None
        assert cfg.servers[0].env == {}
        assert cfg.servers[0].args == ()

    def test_non_string_command_counts_as_missing(self):
        assert parse_mcp_config({"servers": {"s": {"command": 7}}}).servers[0].command is None

    def test_missing_file_reports_reason(self, workspace):
        assert ".vscode/mcp.json" in load_mcp_config(workspace).error

    def test_invalid_json_reports_reason(self, workspace, write_config):
        write_config("{ not json")
        assert load_mcp_config(workspace).error.startswith("Invalid MCP config at ")
