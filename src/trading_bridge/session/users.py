"""User store contract and in-memory implementation."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime


@dataclass
class UserRecord:
    """Persisted user fields the trading core depends on."""

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    broker_ssid: str | None = None
    sdk_linked: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


class UserStore(ABC):
    """Abstract user persistence.

    Only lookups and the broker secret are needed here; profile editing,
    password hashes and tokens live with the account layer.
    """

    @abstractmethod
    async def find_by_id(self, user_id: str) -> UserRecord | None:
        """Get a user by id."""
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> UserRecord | None:
        """Get a user by e-mail (case-insensitive)."""
        ...

    @abstractmethod
    async def set_broker_ssid(self, user_id: str, ssid: str | None) -> None:
        """Persist (or clear) the broker secret for a user."""
        ...


class InMemoryUserStore(UserStore):
    """Process-local user store."""

    def __init__(self, users: list[UserRecord] | None = None) -> None:
        self._users: dict[str, UserRecord] = {u.id: u for u in users or []}
        self._lock = asyncio.Lock()

    def add(self, user: UserRecord) -> UserRecord:
        """Insert or replace a user."""
        self._users[user.id] = user
        return user

    async def find_by_id(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    async def find_by_email(self, email: str) -> UserRecord | None:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user
        return None

    async def set_broker_ssid(self, user_id: str, ssid: str | None) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise KeyError(user_id)
            self._users[user_id] = replace(
                user,
                broker_ssid=ssid,
                sdk_linked=bool(ssid),
                updated_at=datetime.now(),
            )
