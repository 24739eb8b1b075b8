"""Who is talking to the bot - Telegram accounts mapped to backend users."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from config import Settings

logger = logging.getLogger(__name__)

ROLE_DIRECTOR = "director"
ROLE_TECHNICIAN = "technician"


@dataclass(frozen=True)
class UserContext:
    """The current user of one chat session."""
    telegram_id: int
    user_id: str
    name: str
    role: str

    @property
    def is_director(self) -> bool:
        return self.role == ROLE_DIRECTOR

    @property
    def current_technician_id(self) -> str:
        """Stamped onto submitted invoices as the submitting technician."""
        return self.user_id

    @property
    def role_display(self) -> str:
        return "Director" if self.is_director else "Technician"


class UserDirectory:
    """Lookup of configured directors and technicians by Telegram id."""

    def __init__(self, settings: Settings):
        self._allowed = set(settings.allowed_user_ids)
        self._users: dict[int, UserContext] = {}
        for entry in settings.technicians:
            self._users[entry.telegram_id] = UserContext(
                entry.telegram_id, entry.user_id, entry.name or f"Technician {entry.user_id}", ROLE_TECHNICIAN
            )
        # Directors win if someone is listed twice
        for entry in settings.directors:
            self._users[entry.telegram_id] = UserContext(
                entry.telegram_id, entry.user_id, entry.name or f"Director {entry.user_id}", ROLE_DIRECTOR
            )

    def is_authorized(self, telegram_id: int) -> bool:
        """Allowed when listed, or when no restriction is configured at all."""
        if telegram_id in self._users:
            return True
        if not self._allowed and not self._users:
            return True
        return telegram_id in self._allowed

    def get(self, telegram_id: int) -> Optional[UserContext]:
        user = self._users.get(telegram_id)
        if user is None and self.is_authorized(telegram_id):
            # Authorized but unmapped accounts submit under their Telegram id
            logger.warning(f"Telegram user {telegram_id} has no technician mapping")
            user = UserContext(telegram_id, str(telegram_id), f"User {telegram_id}", ROLE_TECHNICIAN)
        return user

    def all(self) -> list[UserContext]:
        return list(self._users.values())
