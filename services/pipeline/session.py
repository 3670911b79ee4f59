"""Per-form notification state.

A session lives as long as one invoice form in the browser. It records which
best-effort channels have already been attempted for each user action so
that repeated clicks do not repeat the notifications. The client holds the
session and sends it back with every request; the server keeps nothing.
"""

from typing import Literal

from pydantic import BaseModel, Field

Action = Literal["download", "email"]
Channel = Literal["chat", "crm"]


class NotificationSession(BaseModel):
    """Channels already attempted, per action."""

    download: set[Channel] = Field(default_factory=set)
    email: set[Channel] = Field(default_factory=set)

    def has_notified(self, action: Action, channel: Channel) -> bool:
        return channel in getattr(self, action)

    def mark(self, action: Action, channel: Channel) -> None:
        getattr(self, action).add(channel)
