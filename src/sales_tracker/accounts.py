"""User registry and credential hashing.

Accounts carry an explicit :class:`~sales_tracker.constants.Role`; privilege is
never inferred from the username. Passwords are only ever stored as bcrypt
hashes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import bcrypt

from .constants import DEFAULT_BCRYPT_ROUNDS, MAX_PASSWORD_BYTES, SYSTEM_OWNER, Role


@dataclass(frozen=True)
class UserAccount:
    """A registered user."""

    username: str
    password_hash: str
    role: Role = Role.STANDARD

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass
class UserRegistry:
    """Ordered collection of accounts keyed by case-sensitive username."""

    accounts: List[UserAccount] = field(default_factory=list)


def hash_password(password: str, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash ``password`` with bcrypt and return the hash as text."""

    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def validate_username(username: str) -> None:
    """Reject usernames that cannot identify an owner unambiguously.

    Raises:
        ValueError: If ``username`` is empty, contains whitespace, or equals the
            owner sentinel reserved for admin-created sales.
    """

    if not username:
        raise ValueError("Username must not be empty")
    if any(char.isspace() for char in username):
        raise ValueError("Username must not contain whitespace")
    if username == SYSTEM_OWNER:
        raise ValueError(f"Username '{SYSTEM_OWNER}' is reserved")


def validate_password(password: str) -> None:
    """Reject passwords bcrypt cannot hash.

    Raises:
        ValueError: If ``password`` is empty or its UTF-8 encoding is longer
            than ``MAX_PASSWORD_BYTES``.
    """

    if not password:
        raise ValueError("Password must not be empty")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")


def find_account(registry: UserRegistry, username: str) -> Optional[UserAccount]:
    for account in registry.accounts:
        if account.username == username:
            return account
    return None


def add_account(registry: UserRegistry, account: UserAccount) -> bool:
    """Append ``account`` unless its username is already registered."""

    if find_account(registry, account.username) is not None:
        return False
    registry.accounts.append(account)
    return True


def remove_account(registry: UserRegistry, username: str) -> bool:
    for index, account in enumerate(registry.accounts):
        if account.username == username:
            del registry.accounts[index]
            return True
    return False


def list_accounts(registry: UserRegistry) -> List[UserAccount]:
    return list(registry.accounts)
