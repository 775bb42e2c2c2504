"""
Lifecycle Manager - break, resignation and comeback workflow

A resignation snapshots the member's hierarchy roles into a LifecycleRecord,
swaps them for the configured resign role and DMs the member a comeback button.
The comeback request goes to the admin channel, where an administrator approves
it and the saved roles are restored in one call.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

import discord

from utils.config_manager import is_administrator
from utils.data_store import DataStore, data_store
from utils.exceptions import (
    ConfigurationError,
    NotificationFailure,
    PrivilegeError,
    StateError,
    TransientExternalFailure,
)
from utils.lifecycle_storage import (
    LifecycleRecord,
    LifecycleStatus,
    MemberState,
    WorkflowSettings,
    derive_member_state,
)
from utils.logging_setup import audit, get_logger
from utils.message_constants import MessageEmojis
from utils.message_service import MessageService
from utils.rank_utils import held_hierarchy_roles
from utils.role_utils import RoleUtils
from utils.workflow_actions import COMEBACK_REQUEST_ID, WorkflowAction
from utils import workflow_messages

logger = get_logger(__name__)

SETUP_HINT = "Please ask an Administrator to run `/resign-and-break-setup`."
DM_SENT = "Sent ✅"
DM_FAILED = "Failed ❌"


@dataclass
class ResolvedSettings:
    """WorkflowSettings with every id resolved against the live guild"""
    settings: WorkflowSettings
    break_role: discord.Role
    resign_role: discord.Role
    public_channel: discord.TextChannel
    admin_channel: discord.TextChannel


class LifecycleManager:
    """Break / resign / comeback workflow over the shared DataStore"""

    def __init__(self, store: Optional[DataStore] = None):
        self.store = store or data_store

    # ------------------------------------------------------------ settings

    def get_settings_and_validate(self, guild: discord.Guild) -> ResolvedSettings:
        """
        Resolve the guild's workflow settings.

        Raises:
            ConfigurationError: settings missing, or naming roles/channels that
                no longer exist (all missing components are listed)
        """
        settings = self.store.get_settings(guild.id)
        if settings is None:
            raise ConfigurationError("The break/resign system has not been set up for this server.", SETUP_HINT)

        break_role = guild.get_role(settings.break_role_id)
        resign_role = guild.get_role(settings.resign_role_id)
        public_channel = guild.get_channel(settings.public_channel_id)
        admin_channel = guild.get_channel(settings.admin_channel_id)

        missing = []
        if break_role is None:
            missing.append(f"Break Role (ID: `{settings.break_role_id}`)")
        if resign_role is None:
            missing.append(f"Resign Role (ID: `{settings.resign_role_id}`)")
        if public_channel is None:
            missing.append(f"Public Announcement Channel (ID: `{settings.public_channel_id}`)")
        if admin_channel is None:
            missing.append(f"Admin Request Channel (ID: `{settings.admin_channel_id}`)")

        if missing:
            raise ConfigurationError(
                "The following configured components are missing from the server:\n- " + "\n- ".join(missing),
                SETUP_HINT,
            )

        return ResolvedSettings(settings, break_role, resign_role, public_channel, admin_channel)

    async def setup_workflow(self, guild: discord.Guild,
                             break_role: discord.Role,
                             resign_role: discord.Role,
                             public_channel: discord.abc.GuildChannel,
                             admin_channel: discord.abc.GuildChannel) -> WorkflowSettings:
        """
        Store the four workflow settings for a guild, replacing any previous ones.

        Raises:
            ConfigurationError: same role twice, or a channel is not a text channel
            PrivilegeError: a role sits above the bot
        """
        if break_role.id == resign_role.id:
            raise ConfigurationError("The break role and the resign role must be different roles.")
        for role in (break_role, resign_role):
            if not RoleUtils.can_bot_manage_role(role):
                raise PrivilegeError(
                    f"I cannot manage the role `{role.name}`.",
                    "Move my highest role above it and try again.",
                )
        for channel in (public_channel, admin_channel):
            if not isinstance(channel, discord.TextChannel):
                raise ConfigurationError(f"{channel.mention} is not a text channel.")

        settings = WorkflowSettings(
            break_role_id=break_role.id,
            resign_role_id=resign_role.id,
            public_channel_id=public_channel.id,
            admin_channel_id=admin_channel.id,
        )
        async with self.store.locks("settings", guild.id):
            await self.store.set_settings(guild.id, settings)
        audit("workflow-setup", guild=guild.id, **settings.to_dict())
        return settings

    # -------------------------------------------------------------- helpers

    def _held_hierarchy_roles(self, member: discord.Member) -> List[int]:
        hierarchy = self.store.get_hierarchy(member.guild.id)
        if not hierarchy:
            raise ConfigurationError(
                "The role hierarchy has not been set up yet.",
                "Please ask an Administrator to run `/role-hierarchy-setup`.",
            )
        return held_hierarchy_roles(RoleUtils.held_role_ids(member), hierarchy)

    @staticmethod
    async def _announce(channel: discord.abc.Messageable, embed: discord.Embed) -> bool:
        try:
            await channel.send(embed=embed)
            return True
        except discord.HTTPException as e:
            logger.warning("Announcement in channel %s failed: %s", getattr(channel, 'id', '?'), e)
            return False

    @asynccontextmanager
    async def _member_lock(self, guild_id: int, user_id: int):
        """The user's lifecycle lock, then the member lock rank transitions take"""
        async with self.store.locks("user", user_id), self.store.locks("member", guild_id, user_id):
            yield

    async def _send_comeback_button(self, member: discord.Member, record: LifecycleRecord,
                                    content: str) -> Optional[discord.Message]:
        from forms.workflow.views import ComebackRequestView

        dm = await MessageService.send_dm(member, content, view=ComebackRequestView())
        if dm is not None:
            record.comeback_request_message_id = dm.id
            await self.store.save_record(member.id, record)
        return dm

    async def _undo_resignation(self, member: discord.Member, saved_roles: List[int], removed: bool) -> bool:
        """
        Give back roles taken by a failed resignation and drop its record.

        Returns:
            bool: False when the roles could not be given back; the record is kept
        """
        if removed:
            try:
                await member.add_roles(*RoleUtils.resolve_roles(member.guild, saved_roles),
                                       reason="Resignation rolled back")
            except discord.HTTPException:
                logger.exception("Could not give %s back roles %s, keeping the lifecycle record",
                                 member.id, saved_roles)
                return False
        await self.store.delete_record(member.id)
        return True

    @staticmethod
    def _with_status(text: str, dm_sent: bool, announced: bool = True) -> str:
        text += f" **DM Status: {DM_SENT if dm_sent else DM_FAILED}**"
        if not announced:
            text += "\n" + NotificationFailure("The public announcement could not be posted.").user_message()
        return text

    # ---------------------------------------------------------------- break

    async def take_break(self, member: discord.Member) -> str:
        """
        Grant the break role to a ranked member and announce it.

        Raises:
            ConfigurationError, StateError, TransientExternalFailure
        """
        resolved = self.get_settings_and_validate(member.guild)

        async with self.store.locks("member", member.guild.id, member.id):
            if not self._held_hierarchy_roles(member):
                raise StateError("You must hold a rank role from the established hierarchy to take a break.")
            if resolved.break_role in member.roles:
                raise StateError("You are already on break.")

            try:
                await member.add_roles(resolved.break_role, reason="Member took a break")
            except discord.HTTPException as e:
                logger.exception("Adding break role to %s failed", member.id)
                raise TransientExternalFailure("Failed to assign the break role.") from e

        dm = await MessageService.send_dm(
            member,
            f"{MessageEmojis.BREAK} You are now on break in **{member.guild.name}**. "
            "Enjoy your time off!",
        )
        announced = await self._announce(
            resolved.public_channel,
            workflow_messages.break_announcement(member, DM_SENT if dm is not None else DM_FAILED),
        )
        audit("break", guild=member.guild.id, member=member.id, dm=dm is not None)
        return self._with_status("✅ You are now on break. Enjoy your time off!", dm is not None, announced)

    # --------------------------------------------------------------- resign

    async def resign(self, member: discord.Member) -> str:
        """
        Save the member's hierarchy roles, replace them with the resign role and
        send the comeback button by DM.

        The record is written before any role is touched. If the role swap fails
        the removed roles are given back and the record is deleted; when even that
        fails the record is kept so the roles can still be restored by a comeback.

        Raises:
            ConfigurationError, StateError, TransientExternalFailure
        """
        guild = member.guild
        resolved = self.get_settings_and_validate(guild)

        async with self._member_lock(guild.id, member.id):
            existing = self.store.get_record(member.id)
            if existing is not None and existing.guild_id != guild.id:
                raise StateError("You already have a pending resignation in another server.")

            saved_roles = self._held_hierarchy_roles(member)
            state = derive_member_state(existing, bool(saved_roles))
            if state in (MemberState.RESIGNED, MemberState.COMEBACK_REQUESTED):
                raise StateError("You have already resigned. Use the button in your DMs to request a comeback.")
            # The resign role still blocks when it was granted by hand without a record
            if resolved.resign_role in member.roles:
                raise StateError("You are already resigned.")
            if state is MemberState.UNRANKED:
                raise StateError("You must hold a rank role from the established hierarchy to use the resignation system.")

            record = LifecycleRecord(saved_roles=saved_roles, guild_id=guild.id)
            await self.store.save_record(member.id, record)

            removed = False
            try:
                await member.remove_roles(*[discord.Object(id=role_id) for role_id in saved_roles],
                                          reason="Member resigned")
                removed = True
                await member.add_roles(resolved.resign_role, reason="Member resigned")
            except discord.HTTPException as e:
                logger.exception("Resignation role swap for %s failed", member.id)
                if await self._undo_resignation(member, saved_roles, removed):
                    raise TransientExternalFailure("Failed to swap your roles for the resign role.") from e
                # Only the record still knows the member's ranks
                await self._send_comeback_button(
                    member, record,
                    f"⚠️ Your resignation in **{guild.name}** could not be completed and your rank roles "
                    "could not be given back. They are saved: press the button below to have an "
                    "administrator restore them.",
                )
                raise TransientExternalFailure(
                    "Failed to swap your roles for the resign role. Your previous roles are saved; "
                    "use the button in your DMs to have them restored."
                ) from e

            dm = await self._send_comeback_button(
                member, record,
                f"{MessageEmojis.RESIGNATION} You have resigned from **{guild.name}**. "
                "When you are ready to return, press the button below to inform the administration.",
            )

        announced = await self._announce(
            resolved.public_channel,
            workflow_messages.resignation_announcement(member, DM_SENT if dm is not None else DM_FAILED),
        )
        audit("resign", guild=guild.id, member=member.id, saved=saved_roles, dm=dm is not None)

        text = "✅ You have resigned. Your roles have been saved."
        if dm is None:
            text += " Enable DMs from server members so you can request a comeback later."
        return self._with_status(text, dm is not None, announced)

    # ------------------------------------------------------------- comeback

    async def request_comeback(self, user: discord.abc.User, client: discord.Client,
                               source_message: Optional[discord.Message] = None) -> str:
        """
        Forward a resigned user's comeback request to the admin channel.

        Raises:
            ConfigurationError, StateError, TransientExternalFailure
        """
        from forms.workflow.views import approve_comeback_view

        async with self.store.locks("user", user.id):
            record = self.store.get_record(user.id)
            if record is None or record.guild_id is None:
                raise StateError(
                    "I cannot find your previous role data or server context. "
                    "Please contact an admin directly."
                )
            if record.status is LifecycleStatus.COMEBACK_REQUESTED:
                raise StateError("Your comeback request has already been sent. Please wait for an administrator.")

            guild = client.get_guild(record.guild_id)
            if guild is None:
                raise ConfigurationError("I am no longer in the server you resigned from. Please contact an admin.")

            settings = self.store.get_settings(guild.id)
            if settings is None:
                raise ConfigurationError("The admin request channel is not configured on that server.", SETUP_HINT)
            admin_channel = guild.get_channel(settings.admin_channel_id)
            if admin_channel is None:
                raise ConfigurationError(
                    f"The admin request channel (ID: `{settings.admin_channel_id}`) is missing from the server.",
                    SETUP_HINT,
                )

            try:
                await admin_channel.send(
                    embed=workflow_messages.comeback_request_embed(user, guild, record.saved_roles),
                    view=approve_comeback_view(user.id),
                )
            except discord.HTTPException as e:
                logger.exception("Posting comeback request for %s failed", user.id)
                raise TransientExternalFailure("Failed to deliver your comeback request.") from e

            record.status = LifecycleStatus.COMEBACK_REQUESTED
            await self.store.save_record(user.id, record)

        await MessageService.disable_button(source_message, COMEBACK_REQUEST_ID, "Comeback Requested")
        audit("comeback-request", guild=guild.id, member=user.id)
        return (
            "✅ Your comeback request has been sent to the Administration team. "
            "You will be notified when it is approved."
        )

    async def approve_comeback(self, admin: discord.Member, guild: discord.Guild, channel_id: int,
                               user_id: int, source_message: Optional[discord.Message] = None) -> str:
        """
        Restore a resigned member's saved roles.

        Saved roles that were deleted from the server meanwhile are skipped and
        listed in the result.

        Raises:
            ConfigurationError, PrivilegeError, StateError, TransientExternalFailure
        """
        if not is_administrator(admin):
            raise PrivilegeError("You must be an administrator to approve a comeback.")

        resolved = self.get_settings_and_validate(guild)
        if channel_id != resolved.settings.admin_channel_id:
            raise PrivilegeError("Comebacks can only be approved from the configured admin request channel.")

        async with self._member_lock(guild.id, user_id):
            record = self.store.get_record(user_id)
            if record is None:
                raise StateError(
                    f"Role data for <@{user_id}> was not found. "
                    "They might have been approved already or the data was lost."
                )
            if record.guild_id != guild.id:
                raise StateError("This comeback request belongs to another server.")

            member = guild.get_member(user_id)
            if member is None:
                try:
                    member = await guild.fetch_member(user_id)
                except discord.HTTPException as e:
                    raise StateError(f"Could not find <@{user_id}> in this server. They may have left.") from e

            restorable = RoleUtils.resolve_roles(guild, record.saved_roles)
            restored_ids = [role.id for role in restorable]
            skipped = [role_id for role_id in record.saved_roles if role_id not in restored_ids]
            reason = f"Comeback approved by {admin}"

            try:
                if resolved.resign_role in member.roles:
                    await member.remove_roles(resolved.resign_role, reason=reason)
                if restorable:
                    await member.add_roles(*restorable, reason=reason)
            except discord.HTTPException as e:
                logger.exception("Restoring roles for %s failed", user_id)
                raise TransientExternalFailure(f"Failed to restore roles for {member}.") from e

            await self.store.delete_record(user_id)

        await MessageService.disable_button(
            source_message, WorkflowAction.approve_comeback(user_id).to_custom_id(), "Comeback Approved"
        )
        dm = await MessageService.send_dm(
            member,
            f"🎉 Your comeback request in **{guild.name}** has been approved by {admin}! "
            "Your previous roles have been restored.",
        )
        announced = await self._announce(
            resolved.public_channel,
            workflow_messages.comeback_announcement(member, restored_ids),
        )
        audit("comeback-approve", guild=guild.id, member=user_id, restored=restored_ids,
              skipped=skipped, by=admin.id)

        text = f"✅ Comeback approved for {member.mention}. Roles restored."
        if skipped:
            text += "\n⚠️ These saved roles no longer exist and were skipped: " + ", ".join(
                f"`{role_id}`" for role_id in skipped
            )
        return self._with_status(text, dm is not None, announced)


lifecycle_manager = LifecycleManager()
