"""
Role Utilities

Discord-side helpers for the rank system: resolving role tokens, checking that
the bot may manage a member or role, and applying a planned RoleDelta.
"""
import re
from typing import Iterable, List, Optional

import discord

from utils.exceptions import ConfigurationError, PrivilegeError, TransientExternalFailure
from utils.logging_setup import get_logger
from utils.rank_utils import RoleDelta

logger = get_logger(__name__)

ROLE_MENTION_RE = re.compile(r"^<@&(\d+)>$")


class RoleUtils:
    """Role helpers shared by the hierarchy and break/resign systems"""

    @staticmethod
    def held_role_ids(member: discord.Member) -> List[int]:
        return [role.id for role in member.roles]

    @staticmethod
    def can_bot_manage_role(role: discord.Role) -> bool:
        """The bot can add/remove a role when it sits below the bot's top role and is not integration managed"""
        return role.is_assignable()

    @staticmethod
    def resolve_role_token(guild: discord.Guild, token: str) -> Optional[discord.Role]:
        """
        Find a role by mention, raw id or case-insensitive name.

        Args:
            guild: guild to search
            token: "<@&123>", "123" or "Staff"

        Returns:
            discord.Role or None
        """
        token = token.strip()
        mention = ROLE_MENTION_RE.match(token)
        raw_id = mention.group(1) if mention else token

        if raw_id.isdigit():
            role = guild.get_role(int(raw_id))
            if role is not None:
                return role

        lowered = token.lower()
        return discord.utils.find(lambda r: r.name.lower() == lowered, guild.roles)

    @staticmethod
    def ensure_can_target(actor: discord.abc.User, target: discord.Member) -> None:
        """
        Refuse self-targeting and members ranked at or above the bot.

        Raises:
            PrivilegeError
        """
        if actor.id == target.id:
            raise PrivilegeError("You cannot use this command on yourself.")

        me = target.guild.me
        if target.id == target.guild.owner_id or me.top_role <= target.top_role:
            raise PrivilegeError(
                f"I cannot modify roles for {target}. "
                "My role must be higher than theirs and all hierarchy roles."
            )

    @staticmethod
    def resolve_roles(guild: discord.Guild, role_ids: Iterable[int]) -> List[discord.Role]:
        """Roles that still exist in the guild, in the given order."""
        roles = []
        for role_id in role_ids:
            role = guild.get_role(role_id)
            if role is not None:
                roles.append(role)
        return roles

    @staticmethod
    async def apply_delta(member: discord.Member, delta: RoleDelta, reason: str) -> Optional[discord.Role]:
        """
        Apply a planned rank change: one removal call, then one addition call.

        The granted role is resolved before anything is touched so a hierarchy
        pointing at a deleted role leaves the member unchanged.

        Returns:
            discord.Role granted, or None when the delta only removes

        Raises:
            ConfigurationError: the role to grant no longer exists
            TransientExternalFailure: Discord rejected a role mutation
        """
        granted = None
        if delta.added is not None:
            granted = member.guild.get_role(delta.added)
            if granted is None:
                raise ConfigurationError(
                    f"Target role ID {delta.added} was not found in this server.",
                    "Re-run `/role-hierarchy-setup` with roles that exist.",
                )

        try:
            if delta.removed:
                await member.remove_roles(
                    *[discord.Object(id=role_id) for role_id in sorted(delta.removed)],
                    reason=reason,
                )
            if granted is not None:
                await member.add_roles(granted, reason=reason)
        except discord.HTTPException as e:
            logger.exception("Role update for %s (%s) failed", member, member.id)
            raise TransientExternalFailure("Failed to manage roles for this member.") from e

        return granted
