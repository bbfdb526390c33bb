import os
import sqlite3
from contextlib import asynccontextmanager, contextmanager

import llmpanel.util.config as config
import llmpanel.util.llmpanel_logger as llmpanel_logger

logger = llmpanel_logger.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS workspace_state (
    workspace TEXT NOT NULL,
    key       TEXT NOT NULL,
    value     TEXT NOT NULL,
    updated   REAL NOT NULL,
    PRIMARY KEY (workspace, key)
)
"""


def _resolve_path(path=None):
    path = path or config.state_db_path
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    return path


def _open(path):
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row  # Enables dict(row)
    conn.execute(_SCHEMA)
    return conn


@contextmanager
def get_db_connection_sync(path=None):
    path = _resolve_path(path)
    logger.trace(f"Opening DB at {path} (sync)")
    conn = _open(path)
    try:
        yield conn
    finally:
        conn.close()


@asynccontextmanager
async def get_db_connection(path=None):
    path = _resolve_path(path)
    logger.trace(f"Opening DB at {path} (async)")
    conn = _open(path)
    try:
        yield conn
    finally:
        conn.close()
