import os
import time
from typing import List, Optional

import llmpanel.util.db_service as db_service
import llmpanel.util.llmpanel_logger as llmpanel_logger

logger = llmpanel_logger.getLogger(__name__)


class WorkspaceState:
    """
    Durable key/value store scoped to one workspace root.

    Values survive process restarts; rows are keyed by the absolute
    workspace path so two workspaces never see each other's entries.
    """

    def __init__(self, workspace_root: str, db_path: Optional[str] = None):
        self.workspace = os.path.abspath(str(workspace_root))
        self.db_path = db_path

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with db_service.get_db_connection_sync(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM workspace_state WHERE workspace = ? AND key = ?",
                (self.workspace, key),
            ).fetchone()
        if not row:
            return default
        return row["value"]

    async def update(self, key: str, value: Optional[str]) -> None:
        """Store `value` under `key`; a None value deletes the entry."""
        async with db_service.get_db_connection(self.db_path) as conn:
            if value is None:
                conn.execute(
                    "DELETE FROM workspace_state WHERE workspace = ? AND key = ?",
                    (self.workspace, key),
                )
            else:
                conn.execute("""
                    INSERT INTO workspace_state (workspace, key, value, updated)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(workspace, key) DO UPDATE SET
                        value = excluded.value,
                        updated = excluded.updated
                """, (self.workspace, key, value, time.time()))
            conn.commit()
        logger.debug("Workspace state '%s' updated for %s", key, self.workspace)

    def keys(self, prefix: str = "") -> List[str]:
        with db_service.get_db_connection_sync(self.db_path) as conn:
            rows = conn.execute(
                "SELECT key FROM workspace_state WHERE workspace = ? AND key LIKE ? ORDER BY key",
                (self.workspace, prefix + "%"),
            ).fetchall()
        return [r["key"] for r in rows]
