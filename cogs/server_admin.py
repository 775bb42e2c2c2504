"""
Server administration commands
"""
import discord
from discord import app_commands
from discord.ext import commands

from utils.logging_setup import get_logger
from utils.permissions_setup import setup_channel_permissions

logger = get_logger(__name__)


class ServerAdmin(commands.Cog):
    """Channel permission maintenance"""

    def __init__(self, bot):
        self.bot = bot

    @app_commands.command(name="fixperms",
                          description="Check and correct the bot's channel permissions across the server.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def fixperms_slash(self, interaction: discord.Interaction):
        if not interaction.user.guild_permissions.administrator:
            await interaction.response.send_message("⛔ You must be an administrator to run this command.",
                                                    ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        report = await setup_channel_permissions(interaction.guild)
        await interaction.followup.send(report, ephemeral=True)

    @commands.command(name="fixperms")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def fixperms_prefix(self, ctx: commands.Context):
        async with ctx.typing():
            report = await setup_channel_permissions(ctx.guild)
        await ctx.reply(report)

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.MissingPermissions):
            await ctx.reply("⛔ You must be an administrator to run this command.")
            return
        logger.error("Command %s failed", ctx.command, exc_info=getattr(error, 'original', error))
        await ctx.reply("❌ A fatal error occurred during permission setup.")


async def setup(bot):
    await bot.add_cog(ServerAdmin(bot))
    logger.info("Server admin cog loaded")
