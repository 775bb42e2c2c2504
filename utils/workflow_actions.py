"""
Interactive action identifiers for the break/resign workflow.

Buttons carry their action in the component custom_id. The id is decoded exactly
once, at the interaction boundary, into a WorkflowAction; handlers match on
``action.kind`` instead of splitting strings.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActionKind(str, Enum):
    BREAK = "break"
    RESIGN = "resign"
    COMEBACK_REQUEST = "comeback_request"
    APPROVE_COMEBACK = "approve_comeback"


# Wire ids are shared with messages already posted by earlier bot versions
BREAK_BUTTON_ID = "break_button"
RESIGN_BUTTON_ID = "resign_button"
COMEBACK_REQUEST_ID = "comeback_request"
APPROVE_COMEBACK_TEMPLATE = r"approve_comeback_(?P<user_id>[0-9]{15,21})"

_STATIC_IDS = {
    BREAK_BUTTON_ID: ActionKind.BREAK,
    RESIGN_BUTTON_ID: ActionKind.RESIGN,
    COMEBACK_REQUEST_ID: ActionKind.COMEBACK_REQUEST,
}
_APPROVE_RE = re.compile(rf"^{APPROVE_COMEBACK_TEMPLATE}$")


@dataclass(frozen=True)
class WorkflowAction:
    kind: ActionKind
    user_id: Optional[int] = None

    def __post_init__(self):
        needs_user = self.kind is ActionKind.APPROVE_COMEBACK
        if needs_user and self.user_id is None:
            raise ValueError("approve_comeback action requires a user id")
        if not needs_user and self.user_id is not None:
            raise ValueError(f"{self.kind.value} action takes no user id")

    @classmethod
    def approve_comeback(cls, user_id: int) -> "WorkflowAction":
        return cls(ActionKind.APPROVE_COMEBACK, int(user_id))

    def to_custom_id(self) -> str:
        if self.kind is ActionKind.APPROVE_COMEBACK:
            return f"approve_comeback_{self.user_id}"
        for custom_id, kind in _STATIC_IDS.items():
            if kind is self.kind:
                return custom_id
        raise ValueError(f"no custom id for {self.kind!r}")

    @classmethod
    def from_custom_id(cls, custom_id: str) -> "WorkflowAction":
        """
        Decode a component custom_id.

        Raises:
            ValueError: the id does not belong to the workflow
        """
        kind = _STATIC_IDS.get(custom_id)
        if kind is not None:
            return cls(kind)

        match = _APPROVE_RE.match(custom_id or "")
        if match:
            return cls.approve_comeback(int(match.group("user_id")))

        raise ValueError(f"unknown workflow action id: {custom_id!r}")
