# -*- coding: utf-8 -*-

# Token Relay
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
User-facing notification sinks.

The client reports generic request failures through notify(message).
Delivery is fire-and-forget: a failing sink never changes the outcome
of the request that triggered it.
"""

from abc import ABC, abstractmethod
from typing import Callable, List

from loguru import logger


class Notifier(ABC):
    """Base notifier. Subclasses implement notify()."""

    @abstractmethod
    def notify(self, message: str) -> None:
        raise NotImplementedError


class NullNotifier(Notifier):
    def notify(self, message: str) -> None:
        return None


class LoggingNotifier(Notifier):
    """Writes notifications to the log."""

    def notify(self, message: str) -> None:
        logger.warning(f"[notify] {message}")


class CallbackNotifier(Notifier):
    """
    Forwards notifications to a callable (UI toast, chat message...).

    Exceptions raised by the callback are logged and dropped.
    """

    def __init__(self, callback: Callable[[str], None]):
        self._callback = callback

    def notify(self, message: str) -> None:
        try:
            self._callback(message)
        except Exception as e:
            logger.error(f"Notification callback failed: {e}")


class RecordingNotifier(Notifier):
    """Keeps every message in memory. Handy for tests and batch scripts."""

    def __init__(self):
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)
