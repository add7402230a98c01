# src/db/crud.py
from __future__ import annotations

import hashlib
import secrets
import sqlite3
from typing import List, Optional

from db import models
from db.database import connect
from utils.pure import utc_now_iso


def _hash_password(pwd: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac("sha256", pwd.encode("utf-8"), salt.encode("utf-8"), 100_000).hex()


def _row_to_account(row) -> models.Account:
    return models.Account(
        uid=row["uid"],
        email=row["email"],
        display_name=row["display_name"],
        created_at=row["created_at"],
    )


# ---------------------------
# Accounts (identity provider backing)
# ---------------------------


async def email_available(email: str, db_path: Optional[str] = None) -> bool:
    """True if no account is already registered with the given email (case-insensitive)."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "SELECT 1 FROM accounts WHERE email = ? LIMIT 1;", (email.strip(),)
        )
        row = await cur.fetchone()
        await cur.close()
        return row is None


async def _generate_uid_unique(db_path: Optional[str] = None) -> str:
    """Generate an account uid that isn't already in use."""
    async with connect(db_path) as conn:
        while True:
            uid = "uid_" + secrets.token_hex(10)
            cur = await conn.execute("SELECT 1 FROM accounts WHERE uid = ?;", (uid,))
            exists = await cur.fetchone()
            await cur.close()
            if not exists:
                return uid


async def register_account(
    email: str,
    pwd: str,
    display_name: Optional[str] = None,
    db_path: Optional[str] = None,
) -> models.Account:
    """
    Create a new account and return it.

    Raises ValueError when the email is already registered or the password is empty.
    """
    email = email.strip()
    if not email or not pwd:
        raise ValueError("Email and password are required.")
    if not await email_available(email, db_path):
        raise ValueError(f"Email {email} is already registered.")

    uid = await _generate_uid_unique(db_path)
    salt = secrets.token_hex(8)
    created_at = utc_now_iso()
    async with connect(db_path) as conn:
        try:
            await conn.execute(
                """
                INSERT INTO accounts(uid, email, pwd_hash, salt, display_name, created_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (uid, email, _hash_password(pwd, salt), salt, display_name, created_at),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Email {email} is already registered.") from exc
        await conn.commit()
    return models.Account(
        uid=uid, email=email, display_name=display_name, created_at=created_at
    )


async def login(
    email: str, pwd: str, db_path: Optional[str] = None
) -> Optional[models.Account]:
    """Return the Account if email/pwd match; otherwise None."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "SELECT uid, email, pwd_hash, salt, display_name, created_at FROM accounts WHERE email = ?;",
            (email.strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    if not secrets.compare_digest(row["pwd_hash"], _hash_password(pwd, row["salt"])):
        return None
    return _row_to_account(row)


async def get_account(uid: str, db_path: Optional[str] = None) -> Optional[models.Account]:
    """Return the Account for the given uid, or None if not found."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "SELECT uid, email, display_name, created_at FROM accounts WHERE uid = ?;",
            (uid,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_account(row)


async def set_display_name(uid: str, name: Optional[str], db_path: Optional[str] = None) -> bool:
    """Update accounts.display_name; returns False when the uid does not exist."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "UPDATE accounts SET display_name = ? WHERE uid = ?;", (name, uid)
        )
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Products (read-only catalog source)
# ---------------------------


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=row["pid"],
        name=row["name"],
        category=row["category"],
        price=float(row["price"]),
        stock=int(row["stock_count"]),
        sku=row["sku"],
        weight=float(row["weight"] or 0.0),
        description=row["descr"],
        image=row["image"],
    )


async def list_products(db_path: Optional[str] = None) -> List[models.Product]:
    """Return every product ordered by pid."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            """
            SELECT pid, name, category, price, stock_count, sku, weight, descr, image
            FROM products
            ORDER BY pid;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


# ---------------------------
# Profile documents
# ---------------------------


async def get_document(doc_id: str, db_path: Optional[str] = None) -> Optional[models.StoredDocument]:
    """Return the stored JSON body for a profile document, or None."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "SELECT id, body, updated_at FROM profile_documents WHERE id = ?;",
            (doc_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.StoredDocument(id=row["id"], body=row["body"], updated_at=row["updated_at"])


async def put_document(doc_id: str, body: str, db_path: Optional[str] = None) -> None:
    """Create or overwrite the document body."""
    async with connect(db_path) as conn:
        await conn.execute(
            """
            INSERT INTO profile_documents(id, body, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at;
            """,
            (doc_id, body, utc_now_iso()),
        )
        await conn.commit()


async def delete_document(doc_id: str, db_path: Optional[str] = None) -> bool:
    """Delete a document; returns False when nothing was stored under doc_id."""
    async with connect(db_path) as conn:
        cur = await conn.execute("DELETE FROM profile_documents WHERE id = ?;", (doc_id,))
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Local cache (key-value)
# ---------------------------


async def cache_get(key: str, db_path: Optional[str] = None) -> Optional[str]:
    async with connect(db_path) as conn:
        cur = await conn.execute("SELECT value FROM local_cache WHERE key = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
    return row[0] if row else None


async def cache_set(key: str, value: str, db_path: Optional[str] = None) -> None:
    async with connect(db_path) as conn:
        await conn.execute(
            """
            INSERT INTO local_cache(key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at;
            """,
            (key, value, utc_now_iso()),
        )
        await conn.commit()


async def cache_remove(key: str, db_path: Optional[str] = None) -> None:
    async with connect(db_path) as conn:
        await conn.execute("DELETE FROM local_cache WHERE key = ?;", (key,))
        await conn.commit()
