"""
Persisted shapes for the break/resign workflow.

WorkflowSettings is stored per guild under ``settings``; LifecycleRecord is stored
per user under ``user_data`` while a resignation is pending comeback approval.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LifecycleStatus(str, Enum):
    """Authoritative workflow state of a resigned user"""
    RESIGNED = "resigned"
    COMEBACK_REQUESTED = "comeback_requested"


class MemberState(str, Enum):
    """Projection of a member's position in the resign workflow"""
    UNRANKED = "unranked"
    ACTIVE = "active"
    RESIGNED = "resigned"
    COMEBACK_REQUESTED = "comeback_requested"


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class WorkflowSettings:
    break_role_id: int
    resign_role_id: int
    public_channel_id: int
    admin_channel_id: int

    def to_dict(self) -> Dict[str, str]:
        return {
            'break_role': str(self.break_role_id),
            'resign_role': str(self.resign_role_id),
            'break_resign_channel': str(self.public_channel_id),
            'admin_channel': str(self.admin_channel_id),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowSettings":
        return cls(
            break_role_id=int(data['break_role']),
            resign_role_id=int(data['resign_role']),
            public_channel_id=int(data['break_resign_channel']),
            admin_channel_id=int(data['admin_channel']),
        )


@dataclass
class LifecycleRecord:
    saved_roles: List[int]
    guild_id: Optional[int]
    comeback_request_message_id: Optional[int] = None
    resignation_timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    status: LifecycleStatus = LifecycleStatus.RESIGNED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'saved_roles': [str(role_id) for role_id in self.saved_roles],
            'comeback_request_message_id': (
                str(self.comeback_request_message_id) if self.comeback_request_message_id else None
            ),
            'resignation_timestamp': self.resignation_timestamp,
            'guild_id': str(self.guild_id) if self.guild_id else None,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LifecycleRecord":
        # Records written before the status field existed are plain resignations
        status = data.get('status') or LifecycleStatus.RESIGNED.value
        return cls(
            saved_roles=[int(role_id) for role_id in data.get('saved_roles') or []],
            guild_id=_optional_int(data.get('guild_id')),
            comeback_request_message_id=_optional_int(data.get('comeback_request_message_id')),
            resignation_timestamp=int(data.get('resignation_timestamp') or 0),
            status=LifecycleStatus(status),
        )


def derive_member_state(record: Optional[LifecycleRecord], holds_rank: bool) -> MemberState:
    """
    Combine the stored record with live role membership.

    The record wins: a member with a pending record is resigned even if someone
    re-added a hierarchy role by hand.
    """
    if record is not None:
        if record.status is LifecycleStatus.COMEBACK_REQUESTED:
            return MemberState.COMEBACK_REQUESTED
        return MemberState.RESIGNED
    return MemberState.ACTIVE if holds_rank else MemberState.UNRANKED
