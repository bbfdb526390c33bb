"""Tests for the durable per-workspace key/value store."""

import pytest

from llmpanel.util.workspace_state import WorkspaceState


class TestWorkspaceState:
    @pytest.mark.asyncio
    async def test_survives_new_instance(self, workspace, tmp_path):
        db = str(tmp_path / "state.db")
        await WorkspaceState(workspace, db_path=db).update("mcp.input.apiKey", "secret123")

        assert WorkspaceState(workspace, db_path=db).get("mcp.input.apiKey") == "secret123"

    @pytest.mark.asyncio
    async def test_scoped_by_workspace(self, tmp_path):
        db = str(tmp_path / "state.db")
        a = WorkspaceState(tmp_path / "a", db_path=db)
        b = WorkspaceState(tmp_path / "b", db_path=db)
        await a.update("k", "from-a")

        assert a.get("k") == "from-a"
        assert b.get("k") is None
        assert b.get("k", "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_overwrite_and_delete(self, state):
        await state.update("k", "one")
        await state.update("k", "two")
        assert state.get("k") == "two"

        await state.update("k", None)
        assert state.get("k") is None

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, state):
        await state.update("mcp.input.b", "2")
        await state.update("mcp.input.a", "1")
        await state.update("other", "x")

        assert state.keys("mcp.input.") == ["mcp.input.a", "mcp.input.b"]
