"""Account directory.

The relay and the registration flow only depend on the :class:`Directory`
protocol. :class:`SqliteDirectory` is the shipped backend: one SQLite
connection guarded by a lock, with every call pushed to the default
executor so a slow disk never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol, TypeVar

from pyumbrella.exceptions import AccountNotFoundError, DirectoryError
from pyumbrella.models.account import Account, PendingCode

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    identifier        TEXT PRIMARY KEY,
    credential_hash   TEXT,
    alternate_contact TEXT,
    otp_code          TEXT,
    otp_expires_at    TEXT
)
"""


class Directory(Protocol):
    """Structural directory interface.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (:class:`SqliteDirectory`)
    concrete.
    """

    async def find_by_identifier(self, identifier: str) -> Account | None: ...

    async def upsert(self, account: Account) -> None: ...

    async def update_alternate_contact(self, identifier: str, contact: str | None) -> Account: ...

    async def complete_registration(
        self,
        identifier: str,
        code: str,
        *,
        credential_hash: str,
        alternate_contact: str | None,
    ) -> Account | None: ...


def _row_to_account(row: sqlite3.Row) -> Account:
    pending: PendingCode | None = None
    if row["otp_code"] is not None and row["otp_expires_at"] is not None:
        pending = PendingCode(
            code=row["otp_code"],
            expires_at=datetime.fromisoformat(row["otp_expires_at"]),
        )
    return Account(
        identifier=row["identifier"],
        credential_hash=row["credential_hash"],
        alternate_contact=row["alternate_contact"],
        pending_code=pending,
    )


class SqliteDirectory:
    """SQLite-backed :class:`Directory`.

    Usage::

        directory = SqliteDirectory("umbrella.sqlite3")
        account = await directory.find_by_identifier("user@example.com")
        directory.close()

    Pass ``":memory:"`` for a throwaway database.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise DirectoryError(f"Cannot open directory database {path!r}: {exc}") from exc
        _logger.debug("Directory opened path=%s", path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ------------------------------------------------------------------
    # Blocking implementations (executor threads)
    # ------------------------------------------------------------------

    def _find_sync(self, identifier: str) -> Account | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM accounts WHERE identifier = ?",
                    (identifier,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DirectoryError(f"Directory lookup failed: {exc}") from exc
        return _row_to_account(row) if row is not None else None

    def _upsert_sync(self, account: Account) -> None:
        pending = account.pending_code
        params = (
            account.identifier,
            account.credential_hash,
            account.alternate_contact,
            pending.code if pending is not None else None,
            pending.expires_at.isoformat() if pending is not None else None,
        )
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO accounts (identifier, credential_hash, alternate_contact, otp_code, otp_expires_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(identifier) DO UPDATE SET
                        credential_hash = excluded.credential_hash,
                        alternate_contact = excluded.alternate_contact,
                        otp_code = excluded.otp_code,
                        otp_expires_at = excluded.otp_expires_at
                    """,
                    params,
                )
        except sqlite3.Error as exc:
            raise DirectoryError(f"Directory write failed: {exc}") from exc

    def _update_contact_sync(self, identifier: str, contact: str | None) -> Account:
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    "UPDATE accounts SET alternate_contact = ? WHERE identifier = ?",
                    (contact, identifier),
                )
                if cursor.rowcount == 0:
                    raise AccountNotFoundError(f"No account for {identifier!r}", identifier=identifier)
                row = self._conn.execute(
                    "SELECT * FROM accounts WHERE identifier = ?",
                    (identifier,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DirectoryError(f"Directory write failed: {exc}") from exc
        return _row_to_account(row)

    def _complete_registration_sync(
        self,
        identifier: str,
        code: str,
        credential_hash: str,
        alternate_contact: str | None,
    ) -> Account | None:
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(
                    """
                    UPDATE accounts
                    SET credential_hash = ?, alternate_contact = ?, otp_code = NULL, otp_expires_at = NULL
                    WHERE identifier = ? AND otp_code = ?
                    """,
                    (credential_hash, alternate_contact, identifier, code),
                )
                if cursor.rowcount == 0:
                    return None
                row = self._conn.execute(
                    "SELECT * FROM accounts WHERE identifier = ?",
                    (identifier,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DirectoryError(f"Directory write failed: {exc}") from exc
        return _row_to_account(row)

    # ------------------------------------------------------------------
    # Directory protocol
    # ------------------------------------------------------------------

    async def find_by_identifier(self, identifier: str) -> Account | None:
        return await self._run(self._find_sync, identifier)

    async def upsert(self, account: Account) -> None:
        await self._run(self._upsert_sync, account)

    async def update_alternate_contact(self, identifier: str, contact: str | None) -> Account:
        return await self._run(self._update_contact_sync, identifier, contact)

    async def complete_registration(
        self,
        identifier: str,
        code: str,
        *,
        credential_hash: str,
        alternate_contact: str | None,
    ) -> Account | None:
        """Store the credential and consume *code* in one step.

        Only applies while *code* is still the pending one. Returns ``None``
        when it is not, because it was consumed or replaced meanwhile.
        """
        return await self._run(
            self._complete_registration_sync,
            identifier,
            code,
            credential_hash,
            alternate_contact,
        )
