"""
Hierarchy Manager - applies rank transitions to guild members

Hire, fire, promote and demote are thin policies over one transition: resolve
the member's rank from the stored hierarchy, plan the role delta, apply it.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

import discord

from utils.data_store import DataStore, data_store
from utils.exceptions import ConfigurationError, PrivilegeError
from utils.logging_setup import audit
from utils.rank_utils import RankAction, RoleDelta, TransitionStatus, plan_action
from utils.role_utils import RoleUtils

SETUP_HINT = "Please use `/role-hierarchy-setup` first."


@dataclass
class TransitionResult:
    action: RankAction
    member: discord.Member
    delta: RoleDelta
    granted: Optional[discord.Role]

    def message(self) -> str:
        if self.delta.status is TransitionStatus.RANK_SET and self.granted is not None:
            return f"✅ Success! {self.member} has been granted the **{self.granted.name}** role."
        return f"✅ Success! All hierarchy roles have been removed from {self.member}."


class HierarchyManager:
    """Rank transitions and hierarchy setup for one bot process"""

    MIN_HIERARCHY_SIZE = 2

    def __init__(self, store: Optional[DataStore] = None):
        self.store = store or data_store

    def get_hierarchy(self, guild_id: int) -> List[int]:
        """
        Stored hierarchy of a guild.

        Raises:
            ConfigurationError: no hierarchy has been set up
        """
        hierarchy = self.store.get_hierarchy(guild_id)
        if not hierarchy:
            raise ConfigurationError("The role hierarchy has not been set up yet.", SETUP_HINT)
        return hierarchy

    @staticmethod
    def _audit_reason(action: RankAction, actor: Optional[discord.abc.User], note: Optional[str]) -> str:
        reason = f"Hierarchy action: {action.value}"
        if actor is not None:
            reason += f" by {actor}"
        if note:
            reason += f" ({note})"
        # Discord caps audit log reasons at 512 characters
        return reason[:512]

    async def transition(self, action: RankAction, actor: Optional[discord.abc.User],
                         target: discord.Member, note: Optional[str] = None) -> TransitionResult:
        """
        Move ``target`` according to ``action``.

        Raises:
            ConfigurationError, PrivilegeError, StateError, TransientExternalFailure
        """
        guild = target.guild
        hierarchy = self.get_hierarchy(guild.id)
        if actor is not None:
            RoleUtils.ensure_can_target(actor, target)

        async with self.store.locks("member", guild.id, target.id):
            delta = plan_action(action, RoleUtils.held_role_ids(target), hierarchy, subject=str(target))
            granted = await RoleUtils.apply_delta(target, delta, self._audit_reason(action, actor, note))

        audit(action.value, guild=guild.id, member=target.id, removed=sorted(delta.removed),
              added=delta.added, by=getattr(actor, 'id', None))
        return TransitionResult(action=action, member=target, delta=delta, granted=granted)

    async def hire(self, actor, target: discord.Member) -> TransitionResult:
        return await self.transition(RankAction.HIRE, actor, target)

    async def fire(self, actor, target: discord.Member) -> TransitionResult:
        return await self.transition(RankAction.FIRE, actor, target)

    async def promote(self, actor, target: discord.Member, reason: Optional[str] = None) -> TransitionResult:
        return await self.transition(RankAction.PROMOTE, actor, target, note=reason)

    async def demote(self, actor, target: discord.Member, reason: Optional[str] = None) -> TransitionResult:
        return await self.transition(RankAction.DEMOTE, actor, target, note=reason)

    async def setup_hierarchy(self, guild: discord.Guild, tokens: Sequence[str]) -> List[discord.Role]:
        """
        Replace the guild hierarchy with the roles named by ``tokens`` (lowest first).

        Nothing is stored unless every token resolves to a distinct role the bot
        can manage.

        Raises:
            ConfigurationError: too few tokens, unknown or duplicate role
            PrivilegeError: a role sits above the bot
        """
        tokens = [token for token in tokens if token.strip()]
        if len(tokens) < self.MIN_HIERARCHY_SIZE:
            raise ConfigurationError(
                "Please provide at least two roles (IDs or names) separated by spaces to establish a hierarchy."
            )

        roles: List[discord.Role] = []
        for token in tokens:
            role = RoleUtils.resolve_role_token(guild, token)
            if role is None:
                raise ConfigurationError(f"Could not find a role matching `{token}`. Please check your input.")
            if not RoleUtils.can_bot_manage_role(role):
                raise PrivilegeError(
                    f"The role `{role.name}` cannot be managed by the bot. "
                    "Ensure the bot's role is higher than all roles in the hierarchy."
                )
            if any(existing.id == role.id for existing in roles):
                raise ConfigurationError(f"The role `{role.name}` appears more than once in the hierarchy.")
            roles.append(role)

        async with self.store.locks("hierarchy", guild.id):
            await self.store.set_hierarchy(guild.id, [role.id for role in roles])
        audit("hierarchy-setup", guild=guild.id, roles=[role.id for role in roles])

        return roles


hierarchy_manager = HierarchyManager()
