"""
Error taxonomy for hierarchy and break/resign operations.

Every error carries a user-facing message. Cogs convert them into a reply at the
boundary of a single command or button handler; nothing is retried.
"""
from typing import Optional


class BotError(Exception):
    """Base class for errors that are reported back to the invoking user"""

    emoji = "❌"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def user_message(self) -> str:
        text = f"{self.emoji} {self.message}"
        if self.hint:
            text += f"\n{self.hint}"
        return text


class ConfigurationError(BotError):
    """Hierarchy or settings missing, or a stored role/channel no longer resolvable"""

    emoji = "⚠️"


class PrivilegeError(BotError):
    """Acting principal lacks capability, target unmanageable, or self-targeting"""

    emoji = "⛔"


class StateError(BotError):
    """Operation is invalid for the member's current state"""

    emoji = "🚫"


class NotificationFailure(BotError):
    """A best-effort direct message could not be delivered"""

    emoji = "📭"


class TransientExternalFailure(BotError):
    """A role mutation or message send was rejected by the platform"""

    emoji = "❌"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(
            message,
            hint or "Check that the bot's highest role is above every role it has to manage.",
        )
