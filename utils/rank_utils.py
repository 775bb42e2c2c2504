"""
Rank resolution and rank transitions over an ordered role hierarchy.

A hierarchy is a list of role ids, lowest rank first. Rank index -1 means the
member holds no hierarchy role. Nothing here touches Discord: callers pass the
ids of the roles a member currently holds and apply the returned delta.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Sequence

from utils.exceptions import StateError

NO_RANK = -1


class TransitionStatus(str, Enum):
    RANK_SET = "rank_set"
    ALL_REMOVED = "all_removed"


class RankAction(str, Enum):
    HIRE = "hire"
    FIRE = "fire"
    PROMOTE = "promote"
    DEMOTE = "demote"


@dataclass(frozen=True)
class RoleDelta:
    """Roles to take away and the role to grant for one transition"""
    removed: FrozenSet[int]
    added: Optional[int]
    status: TransitionStatus
    target_index: int

    @property
    def is_noop(self) -> bool:
        return not self.removed and self.added is None


def held_hierarchy_roles(held_role_ids: Iterable[int], hierarchy: Sequence[int]) -> List[int]:
    """
    Hierarchy roles the member holds, in hierarchy order.

    A member should hold at most one, but anything from zero to all of them
    can be present when roles were edited by hand.
    """
    held = set(held_role_ids)
    return [role_id for role_id in hierarchy if role_id in held]


def resolve_rank(held_role_ids: Iterable[int], hierarchy: Sequence[int]) -> int:
    """
    Current rank index of a member.

    Args:
        held_role_ids: ids of every role the member holds
        hierarchy: ordered role ids, lowest rank first

    Returns:
        int: index of the highest hierarchy role held, or -1 when none is held
    """
    held = set(held_role_ids)
    current = NO_RANK
    for index, role_id in enumerate(hierarchy):
        if role_id in held:
            current = index
    return current


def plan_transition(held_role_ids: Iterable[int], hierarchy: Sequence[int], target_index: int) -> RoleDelta:
    """
    Role delta that leaves the member holding exactly ``hierarchy[target_index]``.

    Every hierarchy role currently held is removed, not just the one for the
    current rank, so an inconsistent member ends up with a single rank role.
    ``target_index`` -1 removes all hierarchy roles.
    """
    if not NO_RANK <= target_index < len(hierarchy):
        raise ValueError(f"target index {target_index} outside hierarchy of {len(hierarchy)} roles")

    removed = frozenset(held_hierarchy_roles(held_role_ids, hierarchy))

    if target_index == NO_RANK:
        return RoleDelta(removed=removed, added=None, status=TransitionStatus.ALL_REMOVED, target_index=NO_RANK)

    return RoleDelta(
        removed=removed,
        added=hierarchy[target_index],
        status=TransitionStatus.RANK_SET,
        target_index=target_index,
    )


def target_index_for(action: RankAction, current_rank: int, hierarchy_size: int, subject: str = "This member") -> int:
    """
    Rank index an action moves a member to.

    Raises:
        StateError: the action is not possible from ``current_rank``
    """
    if action is RankAction.HIRE:
        return 0

    if action is RankAction.FIRE:
        if current_rank == NO_RANK:
            raise StateError(f"Fire failed: {subject} does not currently hold any hierarchy roles.")
        return NO_RANK

    if action is RankAction.PROMOTE:
        # Unranked members are promoted into the lowest rank
        next_rank = current_rank + 1
        if next_rank >= hierarchy_size:
            raise StateError(f"Promotion failed: {subject} is already at the highest rank.")
        return next_rank

    if action is RankAction.DEMOTE:
        if current_rank == NO_RANK:
            raise StateError(f"Demotion failed: {subject} does not currently hold any hierarchy roles.")
        # Demoting the lowest rank removes every hierarchy role
        return current_rank - 1

    raise ValueError(f"unknown rank action: {action!r}")


def plan_action(action: RankAction, held_role_ids: Iterable[int], hierarchy: Sequence[int],
                subject: str = "This member") -> RoleDelta:
    """Resolve the current rank, apply the action's policy and plan the delta."""
    held = list(held_role_ids)
    current_rank = resolve_rank(held, hierarchy)
    target_index = target_index_for(action, current_rank, len(hierarchy), subject)
    return plan_transition(held, hierarchy, target_index)
