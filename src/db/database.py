# manages connections to the sqlite files, provides helper methods internal to db package
import asyncio
import os.path
import weakref
from contextlib import asynccontextmanager
from sqlite3 import Row
from typing import Optional

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = os.path.dirname(os.path.abspath(__file__))

DB_PATH = os.getenv("STOREFRONT_DB", "data/storefront.sqlite")
DB_INIT_SCRIPTS = [
    os.path.join(_HERE, "schema.sql"),
    os.path.join(_HERE, "seed.sql"),
]

# database files whose schema has already been checked in this process
_initialized: set = set()
# asyncio locks bind to one event loop
_init_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()


def _init_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _init_locks.get(loop)
    if lock is None:
        lock = _init_locks[loop] = asyncio.Lock()
    return lock


async def _init_db(conn: aiosqlite.Connection) -> None:
    for script in DB_INIT_SCRIPTS:
        if not os.path.exists(script) or os.path.getsize(script) == 0:
            continue
        _logger.info(f"Initializing database with script {os.path.basename(script)}...")
        with open(script, "r") as f:
            await conn.executescript(f.read())
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


def _resolve(db_path: Optional[str]) -> str:
    path = db_path or DB_PATH
    folder = os.path.dirname(path)
    if folder and not os.path.isdir(folder):
        os.makedirs(folder, exist_ok=True)
    return path


@asynccontextmanager
async def connect(db_path: Optional[str] = None) -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    `db_path` defaults to the module level DB_PATH. The local cache, the
    profile document store and the account table may live in separate files;
    each file is initialized (tables and seed data) on first use.
    """
    path = _resolve(db_path)
    conn = await aiosqlite.connect(path)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")

    if path not in _initialized:
        async with _init_lock():
            if path not in _initialized:
                exists = await _table_exists(conn, "profile_documents")
                if not exists:
                    _logger.info(f"Initializing database {path}...")
                    await _init_db(conn)
                _initialized.add(path)
    try:
        yield conn
    finally:
        await conn.close()
