"""
auth/store.py -- Read-only SQLAlchemy Core access to the AUTHD account database.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_account / _row_to_verification_hash are the mappers. The backend
never touches SQL directly.

The database is owned by the game server. This module only reads it:
  - the engine opens the file through an SQLite URI with mode=ro, so the
    driver itself refuses writes;
  - the Table objects below describe the columns we consume and are never
    passed to create_all();
  - no INSERT/UPDATE/DELETE is constructed anywhere in this module.

Security:
  All queries use bound parameters, LIMIT/OFFSET included. No f-strings in SQL.
  Usernames are matched exactly (case-sensitive) and never transformed.

Failure model:
  "No such active user" is a None result. "The store could not answer" is a
  StoreError. Callers must be able to tell the two apart.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import quote

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, func, select
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import AccountRecord, VerificationHash

logger = logging.getLogger("duneauth.store")

# ---------------------------------------------------------------------------
# Schema (consumed columns only -- owned by the game server)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_characters = Table(
    "characters",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String, nullable=False, unique=True),
    Column("email", String),
    Column("admin", Integer),
    Column("immortal", Integer),
    Column("flags", Integer),  # nonzero = active
    Column("password", Integer),  # FK -> passwords.id, the primary password
)

_passwords = Table(
    "passwords",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("digest", String),
    Column("method", Integer),
    Column("expires_at", Integer),  # epoch seconds, 0 = never
)


class StoreError(Exception):
    """The credential store could not be opened or a query failed to execute."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def readonly_sqlite_url(path: str | Path) -> URL:
    """Build a read-only SQLite URI for path.

    URL.create() is used instead of a formatted string so the path is never
    reparsed as a URL. The path is percent-quoted because SQLite decodes
    %XX escapes in URI filenames, and characters such as '?' or '#' would
    otherwise end the filename early.
    """
    resolved = Path(path).expanduser().resolve()
    return URL.create(
        "sqlite",
        database=f"file:{quote(str(resolved))}",
        query={"mode": "ro", "uri": "true"},
    )


def _active(table: Table):
    return table.c.flags != 0


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Read-only repository over the AUTHD characters/passwords tables.

    Usage:
        store = CredentialStore.from_path("/srv/mud/authd.db")
        stored = store.fetch_verification_hash("Paul")
        page = store.fetch_user_page(0, 50)
        store.close()
    """

    def __init__(self, db_url: str | URL, timeout: float = 5.0) -> None:
        # check_same_thread=False: one read-only engine is shared by the
        # HTTP bridge's worker threads. SQLite serializes readers itself.
        self.engine: Engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )

    @classmethod
    def from_path(cls, path: str | Path, timeout: float = 5.0) -> CredentialStore:
        return cls(readonly_sqlite_url(path), timeout=timeout)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the store opens and the characters table is readable.

        Selecting from characters (rather than SELECT 1) forces SQLite to read
        the file header and schema, so a missing file, a non-database file and
        a database without the expected table all surface here.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(select(_characters.c.id).limit(1)).fetchall()
        except SQLAlchemyError as exc:
            logger.warning("Credential store probe failed: %s", exc.__class__.__name__)
            return False
        return True

    # ------------------------------------------------------------------
    # Credential queries
    # ------------------------------------------------------------------

    def fetch_verification_hash(self, username: str) -> VerificationHash | None:
        """Return the primary password row for an active account, or None.

        Temporary passwords are never considered: the join follows
        characters.password, which only ever references the primary AUTHD
        password. Temporary passwords exist to log into the game and reset the
        real one; they must never open a web session.

        Returns None when no active account matches or when the row does not
        have the expected (digest, method, expires_at) shape. Raises
        StoreError when the query itself fails.
        """
        stmt = (
            select(_passwords.c.digest, _passwords.c.method, _passwords.c.expires_at)
            .select_from(_characters.join(_passwords, _characters.c.password == _passwords.c.id))
            .where(_characters.c.name == username)
            .where(_active(_characters))
            .limit(1)
        )
        row = self._fetch_one(stmt)
        if row is None:
            return None
        return _row_to_verification_hash(row)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def fetch_user(self, username: str) -> AccountRecord | None:
        """Look up an active account by exact name. Returns None if not found."""
        stmt = (
            select(_characters.c.name, _characters.c.email, _characters.c.admin, _characters.c.immortal)
            .where(_characters.c.name == username)
            .where(_active(_characters))
        )
        row = self._fetch_one(stmt)
        return _row_to_account(row) if row is not None else None

    def fetch_user_count(self, filter: Mapping[str, str] | None = None) -> int:
        """Return the number of active accounts.

        filter is accepted for parity with the host contract and ignored; the
        host UI that would send one does not exist for this backend.
        """
        if filter is not None:
            logger.debug("Ignoring user filter on count (%s)", type(filter).__name__)
        stmt = select(func.count(_characters.c.id)).where(_active(_characters))
        try:
            with self.engine.connect() as conn:
                result = conn.execute(stmt).scalar()
        except SQLAlchemyError as exc:
            raise StoreError("user count query failed") from exc
        return int(result or 0)

    def fetch_user_page(
        self,
        offset: int,
        limit: int,
        filter: Mapping[str, str] | None = None,
    ) -> list[AccountRecord]:
        """Return one page of active accounts in account id order.

        limit=0 returns an empty page (SQLite's LIMIT 0), never "everything".
        An offset past the end returns an empty page. Negative bounds raise
        ValueError: SQLite reads LIMIT -1 as "no limit", which is not a
        meaning any caller should be able to reach by accident.
        """
        if offset < 0 or limit < 0:
            raise ValueError(f"offset and limit must be >= 0 (got offset={offset}, limit={limit})")
        if filter is not None:
            logger.debug("Ignoring user filter on listing (%s)", type(filter).__name__)
        stmt = (
            select(_characters.c.name, _characters.c.email, _characters.c.admin, _characters.c.immortal)
            .where(_active(_characters))
            .order_by(_characters.c.id)
            .limit(limit)
            .offset(offset)
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            raise StoreError("user page query failed") from exc
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_one(self, stmt):
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).fetchone()
        except SQLAlchemyError as exc:
            raise StoreError("credential store query failed") from exc

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_verification_hash(row) -> VerificationHash | None:
    # Schema drift (extra/missing columns, NULL digest, text where an integer
    # belongs) is a not-found, not a crash.
    if len(row) != 3 or row.digest is None:
        logger.debug("Discarding malformed password row (%d field(s))", len(row))
        return None
    try:
        method = _to_int(row.method) if row.method is not None else -1
        expires_at = _to_int(row.expires_at) if row.expires_at is not None else 0
    except (TypeError, ValueError):
        logger.debug("Discarding password row with non-integer method or expiry")
        return None
    return VerificationHash(digest=str(row.digest), method=method, expires_at=expires_at)


def _row_to_account(row) -> AccountRecord:
    return AccountRecord(
        name=row.name,
        email=row.email,
        admin=_is_flag_set(row.admin),
        immortal=_is_flag_set(row.immortal),
    )


def _to_int(value) -> int:
    # SQLite columns are dynamically typed: accept "7" and 7.0, refuse 7.5.
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"non-integral value {value!r}")
    return int(value)


def _is_flag_set(value) -> bool:
    # Numeric equality with 1, so 1, 1.0 and "1" grant the group; 0, 2, NULL
    # and non-numeric text do not.
    try:
        return float(value) == 1
    except (TypeError, ValueError):
        return False
