"""
Embeds used by the break/resign workflow.

Buttons are not built here: the views that carry them live in forms.workflow,
where their callbacks are.
"""
import os
from datetime import datetime
from typing import Iterable, Optional

import discord
import pytz

from utils.message_constants import MessageColors, MessageEmojis

BOT_TIMEZONE = os.getenv('BOT_TIMEZONE', 'UTC')


def role_mentions(role_ids: Iterable[int]) -> str:
    mentions = [f"<@&{role_id}>" for role_id in role_ids]
    return ", ".join(mentions) if mentions else "None"


def _timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name or BOT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.utc


def break_panel_embed(guild: discord.Guild, timezone_name: Optional[str] = None) -> discord.Embed:
    """The "Breaks & Resignations" panel posted by send_break_embed."""
    now = datetime.now(_timezone(timezone_name))
    embed = discord.Embed(
        title="Breaks & Resignations",
        description=(
            "If you want to take a break (≥7 Days) then click on the `Break` button below. "
            "And if you want to resign then click on the `Resign` button below.\n\n"
            "**Note:** These buttons are active only for members who hold an established hierarchy rank."
        ),
        color=MessageColors.INFO,
        timestamp=discord.utils.utcnow(),
    )
    if guild.icon:
        embed.set_thumbnail(url=guild.icon.url)
    embed.set_footer(text=f"Current Time & Date: {now.strftime('%b %d, %Y, %I:%M %p')} ({now.tzname()})")
    return embed


def break_announcement(member: discord.Member, dm_status: str) -> discord.Embed:
    return discord.Embed(
        title=f"{MessageEmojis.BREAK} Member Break",
        description=f"{member.mention} has taken a break (≥7 days). **DM Status: {dm_status}**",
        color=MessageColors.BREAK,
        timestamp=discord.utils.utcnow(),
    )


def resignation_announcement(member: discord.Member, dm_status: str) -> discord.Embed:
    return discord.Embed(
        title=f"{MessageEmojis.RESIGNATION} Member Resignation",
        description=f"{member.mention} has resigned. We thank them for their service! **DM Status: {dm_status}**",
        color=MessageColors.RESIGNATION,
        timestamp=discord.utils.utcnow(),
    )


def comeback_request_embed(user: discord.abc.User, guild: discord.Guild, saved_roles: Iterable[int]) -> discord.Embed:
    embed = discord.Embed(
        title=f"{MessageEmojis.COMEBACK} Comeback Request",
        description=(
            f"**{user}** ({user.id}) has requested to return to staff/rank structure in **{guild.name}**."
        ),
        color=MessageColors.COMEBACK_REQUEST,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="Previous Roles Saved", value=role_mentions(saved_roles), inline=False)
    embed.add_field(
        name="Action",
        value="Click the button below to restore their roles and remove the resign role.",
        inline=False,
    )
    return embed


def comeback_announcement(member: discord.Member, restored_role_ids: Iterable[int]) -> discord.Embed:
    return discord.Embed(
        title=f"{MessageEmojis.COMEBACK} Member Comeback",
        description=f"{member.mention} has come back to their previous role(s): **{role_mentions(restored_role_ids)}**",
        color=MessageColors.COMEBACK,
        timestamp=discord.utils.utcnow(),
    )
