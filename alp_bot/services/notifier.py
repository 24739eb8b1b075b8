"""Where user-facing messages go."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notifier(ABC):
    @abstractmethod
    async def notify(self, message: str, severity: Severity = Severity.INFO):
        ...


class LogNotifier(Notifier):
    """Writes messages to the log. Used when no chat is attached."""

    _LEVELS = {
        Severity.INFO: logging.INFO,
        Severity.SUCCESS: logging.INFO,
        Severity.WARNING: logging.WARNING,
        Severity.ERROR: logging.ERROR,
    }

    async def notify(self, message: str, severity: Severity = Severity.INFO):
        logger.log(self._LEVELS[Severity(severity)], f"[{Severity(severity).value}] {message}")
