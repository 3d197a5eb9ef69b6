"""Notification port — how core modules push messages to a farmer.

The daily digest depends on this protocol, never on a specific messenger.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Anything that can deliver a text message to a user id."""

    async def send_message(self, user_id: int, text: str) -> None: ...
