"""
Break/resign commands

/resign and /break are self-service; /resign-and-break-setup and
/send_break_embed are for administrators.
"""
import discord
from discord import app_commands
from discord.ext import commands

from forms.workflow import send_break_embed
from utils.config_manager import is_administrator
from utils.exceptions import PrivilegeError, TransientExternalFailure
from utils.lifecycle_manager import lifecycle_manager
from utils.lifecycle_storage import WorkflowSettings
from utils.logging_setup import get_logger
from utils.message_service import MessageService, ReplyTarget

logger = get_logger(__name__)


def settings_summary(settings: WorkflowSettings) -> str:
    return (
        "**✅ Resign & Break system configured!**\n\n"
        f"- Break Role: <@&{settings.break_role_id}>\n"
        f"- Resign Role: <@&{settings.resign_role_id}>\n"
        f"- Public Announcement Channel: <#{settings.public_channel_id}>\n"
        f"- Admin Request Channel: <#{settings.admin_channel_id}>"
    )


class WorkflowCommands(commands.Cog):
    """Break, resignation and workflow setup commands"""

    def __init__(self, bot):
        self.bot = bot

    async def _resign(self, target: ReplyTarget, member: discord.Member) -> None:
        result = await MessageService.guard(target, lifecycle_manager.resign(member), f"resign by {member.id}")
        if result is not None:
            await MessageService.reply(target, content=result)

    async def _take_break(self, target: ReplyTarget, member: discord.Member) -> None:
        result = await MessageService.guard(target, lifecycle_manager.take_break(member), f"break by {member.id}")
        if result is not None:
            await MessageService.reply(target, content=result)

    async def _setup(self, target: ReplyTarget, actor, guild: discord.Guild, break_role, resign_role,
                     public_channel, admin_channel) -> None:
        async def run():
            if not is_administrator(actor):
                raise PrivilegeError("You must be an administrator to run this command.")
            return await lifecycle_manager.setup_workflow(guild, break_role, resign_role, public_channel, admin_channel)

        settings = await MessageService.guard(target, run(), f"workflow setup in {guild.id}")
        if settings is not None:
            await MessageService.reply(target, content=settings_summary(settings))

    async def _send_panel(self, target: ReplyTarget, actor, channel: discord.TextChannel) -> None:
        async def run():
            if not is_administrator(actor):
                raise PrivilegeError("You must be an administrator to run this command.")
            lifecycle_manager.get_settings_and_validate(channel.guild)
            try:
                return await send_break_embed(channel)
            except discord.HTTPException as e:
                raise TransientExternalFailure(
                    "Failed to send the embed.",
                    "Check bot permissions to send messages and embeds in this channel.",
                ) from e

        message = await MessageService.guard(target, run(), f"break panel in {channel.id}")
        if message is not None:
            await MessageService.reply(target, content="✅ Breaks & Resignations embed sent successfully to this channel.")

    # ------------------------------------------------------- slash commands

    @app_commands.command(name="resign", description="Resign from your rank. Your roles are saved for a comeback.")
    @app_commands.guild_only()
    async def resign_slash(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._resign(interaction, interaction.user)

    @app_commands.command(name="break", description="Take a break (7 days or more).")
    @app_commands.guild_only()
    async def break_slash(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._take_break(interaction, interaction.user)

    @app_commands.command(name="resign-and-break-setup",
                          description="Configure the roles and channels of the break/resign system.")
    @app_commands.describe(
        break_role="Role granted to members on break.",
        resign_role="Role granted to members who resigned.",
        public_channel="Channel for public break/resign/comeback announcements.",
        admin_channel="Channel where comeback requests are approved.",
    )
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def setup_slash(self, interaction: discord.Interaction, break_role: discord.Role,
                          resign_role: discord.Role, public_channel: discord.TextChannel,
                          admin_channel: discord.TextChannel):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._setup(interaction, interaction.user, interaction.guild, break_role, resign_role,
                          public_channel, admin_channel)

    @app_commands.command(name="send_break_embed",
                          description="Send the interactive Breaks & Resignations embed to this channel.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def send_break_embed_slash(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._send_panel(interaction, interaction.user, interaction.channel)

    # ------------------------------------------------------ prefix commands

    @commands.command(name="resign")
    @commands.guild_only()
    async def resign_prefix(self, ctx: commands.Context):
        await self._resign(ctx, ctx.author)

    @commands.command(name="break")
    @commands.guild_only()
    async def break_prefix(self, ctx: commands.Context):
        await self._take_break(ctx, ctx.author)

    @commands.command(name="resign-and-break-setup")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def setup_prefix(self, ctx: commands.Context, break_role: discord.Role, resign_role: discord.Role,
                           public_channel: discord.TextChannel, admin_channel: discord.TextChannel):
        await self._setup(ctx, ctx.author, ctx.guild, break_role, resign_role, public_channel, admin_channel)

    @commands.command(name="send_break_embed")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def send_break_embed_prefix(self, ctx: commands.Context):
        await self._send_panel(ctx, ctx.author, ctx.channel)

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        await MessageService.reply_command_error(ctx, error)


async def setup(bot):
    await bot.add_cog(WorkflowCommands(bot))
    logger.info("Workflow commands cog loaded")
