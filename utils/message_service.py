"""
Outbound messaging helpers.

Replies work for both slash interactions and prefix command contexts; direct
messages are best effort and report failure instead of raising.
"""
from typing import Awaitable, Optional, TypeVar, Union

import discord
from discord.ext import commands

from utils.exceptions import BotError
from utils.logging_setup import get_logger

logger = get_logger(__name__)

ReplyTarget = Union[discord.Interaction, commands.Context]
T = TypeVar("T")

GENERIC_FAILURE = "❌ An unexpected error occurred. Please try again later."


class MessageService:
    """Sends replies, direct messages and button state updates"""

    @staticmethod
    async def reply(target: ReplyTarget,
                    content: Optional[str] = None,
                    embed: Optional[discord.Embed] = None,
                    ephemeral: bool = True) -> None:
        """
        Answer the invoking user.

        Args:
            target: slash interaction or prefix command context
            content: text of the reply
            embed: optional embed
            ephemeral: hide the reply from other users (interactions only)
        """
        kwargs = {}
        if content is not None:
            kwargs['content'] = content
        if embed is not None:
            kwargs['embed'] = embed

        if isinstance(target, discord.Interaction):
            if target.response.is_done():
                await target.followup.send(ephemeral=ephemeral, **kwargs)
            else:
                await target.response.send_message(ephemeral=ephemeral, **kwargs)
        else:
            await target.reply(**kwargs)

    @staticmethod
    async def publish(target: ReplyTarget,
                      content: Optional[str] = None,
                      embed: Optional[discord.Embed] = None) -> None:
        """
        Post a command result everyone in the channel can see.

        A slash command deferred ephemerally keeps its refusals private, but its
        first follow-up can only close that ephemeral reply, so the result goes
        out as a second, public follow-up.
        """
        if isinstance(target, discord.Interaction) and target.response.is_done():
            await target.followup.send(content="✅ Done.", ephemeral=True)
        await MessageService.reply(target, content=content, embed=embed, ephemeral=False)

    @staticmethod
    async def reply_error(target: ReplyTarget, error: BotError) -> None:
        await MessageService.reply(target, content=error.user_message(), ephemeral=True)

    @staticmethod
    async def send_dm(user: Union[discord.Member, discord.User],
                      content: Optional[str] = None,
                      embed: Optional[discord.Embed] = None,
                      view: Optional[discord.ui.View] = None) -> Optional[discord.Message]:
        """
        Direct message a user.

        Returns:
            discord.Message or None when the user cannot be reached
        """
        kwargs = {}
        if content is not None:
            kwargs['content'] = content
        if embed is not None:
            kwargs['embed'] = embed
        if view is not None:
            kwargs['view'] = view

        try:
            return await user.send(**kwargs)
        except discord.HTTPException as e:
            logger.warning("DM to %s (%s) failed: %s", user, getattr(user, 'id', '?'), e)
            return None

    @staticmethod
    async def disable_button(message: Optional[discord.Message], custom_id: str, label: str) -> bool:
        """
        Disable one button on an already sent message and relabel it.

        Returns:
            bool: True when the message was edited
        """
        if message is None:
            return False

        view = discord.ui.View.from_message(message, timeout=None)
        changed = False
        for item in view.children:
            if isinstance(item, discord.ui.Button) and item.custom_id == custom_id:
                item.disabled = True
                item.label = label
                changed = True

        if not changed:
            return False

        try:
            await message.edit(view=view)
            return True
        except discord.HTTPException as e:
            logger.warning("Could not disable button %s on message %s: %s", custom_id, message.id, e)
            return False

    @staticmethod
    async def guard(target: ReplyTarget, operation: Awaitable[T], name: str) -> Optional[T]:
        """
        Await one command or button operation and report its failure to the user.

        Returns:
            The operation result, or None when it failed and the user was told why
        """
        try:
            return await operation
        except BotError as e:
            logger.info("%s refused: %s", name, e.message)
            await MessageService.reply_error(target, e)
        except Exception:
            logger.exception("%s failed", name)
            await MessageService.reply(target, content=GENERIC_FAILURE)
        return None

    @staticmethod
    async def reply_command_error(ctx: commands.Context, error: commands.CommandError) -> None:
        """Error boundary for prefix commands"""
        original = getattr(error, 'original', error)
        if isinstance(original, BotError):
            await MessageService.reply_error(ctx, original)
        elif isinstance(error, commands.MissingPermissions):
            await ctx.reply("⛔ You must be an administrator to run this command.")
        elif isinstance(error, commands.NoPrivateMessage):
            await ctx.reply("🚫 This command only works inside a server.")
        elif isinstance(error, commands.UserInputError):
            usage = f"{ctx.clean_prefix}{ctx.command.qualified_name} {ctx.command.signature}".strip()
            await ctx.reply(f"⚠️ {error}\nUsage: `{usage}`")
        else:
            logger.error("Command %s failed", ctx.command, exc_info=original)
            await ctx.reply(GENERIC_FAILURE)
