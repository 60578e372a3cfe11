"""
auth/models.py -- Domain dataclasses for the AUTHD credential store.

Pattern: Data class (pure data container, near-zero logic). The store maps
rows into these; the backend derives the host-facing UserInfo view from them.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AccountRecord:
    """An active character account as read from the characters table.

    Only accounts with flags <> 0 are ever materialized; inactive accounts
    never leave the store layer.
    """

    name: str  # exact, case-sensitive
    email: str | None = None
    admin: bool = False
    immortal: bool = False


@dataclass(frozen=True)
class VerificationHash:
    """The primary (non-temporary) password row for an account.

    method is the AUTHD hash method tag; expires_at is epoch seconds with
    0 meaning "never expires".
    """

    digest: str
    method: int
    expires_at: int = 0


@dataclass
class UserInfo:
    """Host-facing user view: name, mail, and derived groups.

    groups is ordered and duplicate-free. It is always derived from an
    AccountRecord via from_account() and never persisted.
    """

    name: str
    mail: str | None
    groups: list[str] = field(default_factory=list)

    @classmethod
    def from_account(cls, account: AccountRecord) -> UserInfo:
        groups = ["user"]
        if account.admin:
            groups.append("admin")
        if account.immortal:
            groups.append("immortal")
        return cls(name=account.name, mail=account.email, groups=groups)


@dataclass(frozen=True)
class Capabilities:
    """Static capability flags advertised to the host.

    Field names are snake_case; as_host_flags() returns the host's own flag
    names so the contract is exposed verbatim.
    """

    get_users: bool
    get_user_count: bool
    logout: bool
    add_user: bool
    del_user: bool
    mod_login: bool
    mod_pass: bool
    mod_name: bool
    mod_mail: bool
    mod_groups: bool
    get_groups: bool
    external: bool

    def as_host_flags(self) -> dict[str, bool]:
        return {
            "getUsers": self.get_users,
            "getUserCount": self.get_user_count,
            "logout": self.logout,
            "addUser": self.add_user,
            "delUser": self.del_user,
            "modLogin": self.mod_login,
            "modPass": self.mod_pass,
            "modName": self.mod_name,
            "modMail": self.mod_mail,
            "modGroups": self.mod_groups,
            "getGroups": self.get_groups,
            "external": self.external,
        }
