"""
auth/backend.py -- Host-facing auth backend over the AUTHD credential store.

DuneAuthBackend implements the capability contract a wiki-style host expects
from an auth plugin: check a password, look up one user, count and page
through users, advertise what it can and cannot do. It can do very little on
purpose -- players edit their account in-game, never through the host.

Fail-closed contract:
  No exception crosses this boundary for store, lookup or configuration
  problems. check_password() returns False, get_user_data() returns None,
  get_user_count() returns 0 and retrieve_users() returns {}. Diagnostics
  go to the duneauth.backend logger only.

  A backend constructed with invalid settings or without a usable store
  path is permanently unavailable (available == False) and never attempts
  a connection.

Lifetime:
  The store engine is the only long-lived resource. It is opened in
  __init__ and released by close() (or by leaving a `with` block).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from auth.models import AccountRecord, Capabilities, UserInfo
from auth.passwords import (
    HASH_METHOD_BCRYPT,
    is_expired,
    normalize_hash_encoding,
    verify_dummy,
    verify_password,
)
from auth.store import CredentialStore, StoreError
from core.config import Settings, get_settings

logger = logging.getLogger("duneauth.backend")

# Everything except reading is disabled when this backend is in charge of auth.
CAPABILITIES = Capabilities(
    get_users=True,
    get_user_count=True,
    logout=True,
    add_user=False,
    del_user=False,
    mod_login=False,
    mod_pass=False,
    mod_name=False,
    mod_mail=False,
    mod_groups=False,
    get_groups=False,
    external=False,
)


class DuneAuthBackend:
    """Read-only auth backend for the AUTHD account database.

    Usage:
        with DuneAuthBackend("/srv/mud/authd.db") as backend:
            if backend.check_password("Paul", "secret"):
                info = backend.get_user_data("Paul")
    """

    capabilities: Capabilities = CAPABILITIES

    def __init__(
        self,
        db_path: str | Path | None = None,
        settings: Settings | None = None,
        store: CredentialStore | None = None,
    ) -> None:
        self._store: CredentialStore | None = None
        self._enforce_expiry = True
        try:
            self._settings = settings or get_settings()
        except ValidationError as exc:
            logger.error("Invalid DUNEAUTH_* configuration (%d error(s)); backend unavailable", exc.error_count())
            return
        self._enforce_expiry = self._settings.enforce_password_expiry

        if not self._enforce_expiry:
            logger.warning("Password expiry is NOT enforced -- expired AUTHD passwords will be accepted")

        if store is not None:
            self._store = store
            return

        path = str(db_path) if db_path is not None else self._settings.db_path
        if not path:
            logger.error("No credential store configured (set DUNEAUTH_DB_PATH); backend unavailable")
            return
        if not Path(path).expanduser().is_file():
            logger.error("Credential store %s is not a readable file; backend unavailable", path)
            return

        candidate = CredentialStore.from_path(path, timeout=self._settings.db_timeout)
        if not candidate.ping():
            candidate.close()
            logger.error("Credential store %s could not be opened read-only; backend unavailable", path)
            return
        self._store = candidate
        logger.info("Credential store opened read-only: %s", path)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def available(self) -> bool:
        return self._store is not None

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None

    def __enter__(self) -> DuneAuthBackend:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def ping(self) -> bool:
        """Return True if the backend is available and its store answers."""
        return self._store is not None and self._store.ping()

    # ------------------------------------------------------------------
    # Credential check
    # ------------------------------------------------------------------

    def check_password(self, username: str, password: str) -> bool:
        """Return True only if password is valid for the active account username.

        Order of checks:
          1. primary password row exists for an active account
          2. the row's method is bcrypt
          3. the row has not expired (unless expiry enforcement is disabled)
          4. the digest's variant tag is normalized
          5. bcrypt comparison

        Unknown users still pay for one bcrypt comparison so response time
        does not reveal whether the username exists.
        """
        if self._store is None:
            return False

        try:
            stored = self._store.fetch_verification_hash(username)
        except StoreError:
            logger.warning("Password check for %r failed: credential store unavailable", username, exc_info=True)
            stored = None

        if stored is None:
            verify_dummy(password)
            return False

        if stored.method != HASH_METHOD_BCRYPT:
            logger.warning("Password for %r uses unsupported hash method %r", username, stored.method)
            verify_dummy(password)
            return False

        if self._enforce_expiry and is_expired(stored.expires_at):
            logger.info("Rejected expired password for %r", username)
            verify_dummy(password)
            return False

        return verify_password(password, normalize_hash_encoding(stored.digest))

    # ------------------------------------------------------------------
    # User lookups
    # ------------------------------------------------------------------

    def get_user_data(self, username: str, require_groups: bool = True) -> UserInfo | None:
        """Return name, mail and groups for an active account, or None.

        require_groups is accepted for parity with the host contract. Groups
        are always included -- deriving them costs nothing.
        """
        if self._store is None:
            return None
        try:
            account = self._store.fetch_user(username)
        except StoreError:
            logger.warning("User lookup for %r failed: credential store unavailable", username, exc_info=True)
            return None
        return UserInfo.from_account(account) if account is not None else None

    def get_user_count(self, filter: Mapping[str, str] | None = None) -> int:
        """Return the number of active accounts.

        Advisory only: a store failure reads as 0, so this must never gate an
        authorization decision.
        """
        if self._store is None:
            return 0
        try:
            return self._store.fetch_user_count(filter)
        except StoreError:
            logger.warning("User count failed: credential store unavailable", exc_info=True)
            return 0

    def retrieve_users(
        self,
        start: int = 0,
        limit: int = 0,
        filter: Mapping[str, str] | None = None,
    ) -> dict[str, UserInfo]:
        """Return up to limit active users from index start, keyed by name.

        Insertion order follows the store (account id order), not the
        alphabet. limit=0 returns an empty mapping.
        """
        if self._store is None:
            return {}
        try:
            accounts = self._store.fetch_user_page(start, limit, filter)
        except ValueError as exc:
            logger.warning("Rejected user listing: %s", exc)
            return {}
        except StoreError:
            logger.warning("User listing failed: credential store unavailable", exc_info=True)
            return {}
        return _index_by_name(accounts)

    # ------------------------------------------------------------------
    # Naming policy
    # ------------------------------------------------------------------

    def is_case_sensitive(self) -> bool:
        return True  # always true for AUTHD

    def clean_user(self, username: str) -> str:
        # NOP -- every query is parameterized and registration happens in-game,
        # so there is no username policy to enforce here.
        return username

    def clean_group(self, group: str) -> str:
        # NOP -- groups are derived, never written.
        return group


def _index_by_name(accounts: list[AccountRecord]) -> dict[str, UserInfo]:
    return {account.name: UserInfo.from_account(account) for account in accounts}
