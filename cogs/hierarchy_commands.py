"""
Rank hierarchy commands

/hire, /fire, /promote, /demote move a member through the stored hierarchy;
/role-hierarchy-setup replaces it. Each command also has a prefix form.
"""
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from utils.config_manager import is_administrator
from utils.exceptions import PrivilegeError
from utils.hierarchy_manager import TransitionResult, hierarchy_manager
from utils.logging_setup import get_logger
from utils.message_constants import MessageColors, MessageEmojis
from utils.message_service import MessageService, ReplyTarget
from utils.rank_utils import RankAction

logger = get_logger(__name__)


def _ensure_admin(user) -> None:
    if not is_administrator(user):
        raise PrivilegeError("You must be an administrator to run this command.")


def promotion_embed(result: TransitionResult, actor: discord.abc.User, reason: Optional[str]) -> discord.Embed:
    embed = discord.Embed(
        title=f"{MessageEmojis.PROMOTION} Promotion Successful",
        description=f"{result.member.mention} was promoted to {result.granted.mention} by {actor.mention}!",
        color=MessageColors.PROMOTION,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="New Role", value=result.granted.mention, inline=True)
    if reason:
        embed.add_field(name="Reason", value=reason[:1024], inline=False)
    return embed


def hierarchy_summary(roles: List[discord.Role]) -> str:
    lines = "\n".join(f"{position}. {role.name}" for position, role in enumerate(roles, start=1))
    return (
        "**✅ Role Hierarchy Setup Complete!**\n\n"
        "The following roles have been set in order (Lowest Rank to Highest Rank):\n"
        f"```\n{lines}\n```"
    )


class HierarchyCommands(commands.Cog):
    """Hire, fire, promote, demote and hierarchy setup"""

    def __init__(self, bot):
        self.bot = bot

    async def _transition(self, target: ReplyTarget, actor, member: discord.Member,
                          action: RankAction, reason: Optional[str] = None) -> None:
        async def run():
            _ensure_admin(actor)
            return await hierarchy_manager.transition(action, actor, member, note=reason)

        result = await MessageService.guard(target, run(), f"{action.value} of {member.id} by {actor.id}")
        if result is None:
            return

        if action is RankAction.PROMOTE and result.granted is not None:
            await MessageService.publish(target, embed=promotion_embed(result, actor, reason))
        else:
            await MessageService.publish(target, content=result.message())

    async def _setup_hierarchy(self, target: ReplyTarget, actor, guild: discord.Guild, tokens: List[str]) -> None:
        async def run():
            _ensure_admin(actor)
            return await hierarchy_manager.setup_hierarchy(guild, tokens)

        roles = await MessageService.guard(target, run(), f"hierarchy setup in {guild.id}")
        if roles is not None:
            await MessageService.reply(target, content=hierarchy_summary(roles))

    # ------------------------------------------------------- slash commands

    @app_commands.command(name="hire", description="Grant the lowest role of the hierarchy to a member.")
    @app_commands.describe(member="The member to hire.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def hire_slash(self, interaction: discord.Interaction, member: discord.Member):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._transition(interaction, interaction.user, member, RankAction.HIRE)

    @app_commands.command(name="fire", description="Remove every hierarchy role from a member.")
    @app_commands.describe(member="The member to fire.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def fire_slash(self, interaction: discord.Interaction, member: discord.Member):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._transition(interaction, interaction.user, member, RankAction.FIRE)

    @app_commands.command(name="promote", description="Promote a member to the next role in the hierarchy.")
    @app_commands.describe(member="The member to promote.", reason="The reason for the promotion.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def promote_slash(self, interaction: discord.Interaction, member: discord.Member,
                            reason: Optional[str] = None):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._transition(interaction, interaction.user, member, RankAction.PROMOTE, reason)

    @app_commands.command(name="demote", description="Demote a member to the previous role in the hierarchy.")
    @app_commands.describe(member="The member to demote.", reason="The reason for the demotion.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def demote_slash(self, interaction: discord.Interaction, member: discord.Member,
                           reason: Optional[str] = None):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._transition(interaction, interaction.user, member, RankAction.DEMOTE, reason)

    @app_commands.command(name="role-hierarchy-setup",
                          description="Define the rank hierarchy, lowest role first.")
    @app_commands.describe(roles="Role mentions, IDs or names separated by spaces, lowest rank first.")
    @app_commands.default_permissions(administrator=True)
    @app_commands.guild_only()
    async def hierarchy_setup_slash(self, interaction: discord.Interaction, roles: str):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await self._setup_hierarchy(interaction, interaction.user, interaction.guild, roles.split())

    # ------------------------------------------------------ prefix commands

    @commands.command(name="hire")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def hire_prefix(self, ctx: commands.Context, member: discord.Member):
        await self._transition(ctx, ctx.author, member, RankAction.HIRE)

    @commands.command(name="fire")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def fire_prefix(self, ctx: commands.Context, member: discord.Member):
        await self._transition(ctx, ctx.author, member, RankAction.FIRE)

    @commands.command(name="promote")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def promote_prefix(self, ctx: commands.Context, member: discord.Member, *, reason: Optional[str] = None):
        await self._transition(ctx, ctx.author, member, RankAction.PROMOTE, reason)

    @commands.command(name="demote")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def demote_prefix(self, ctx: commands.Context, member: discord.Member, *, reason: Optional[str] = None):
        await self._transition(ctx, ctx.author, member, RankAction.DEMOTE, reason)

    @commands.command(name="role-hierarchy-setup")
    @commands.guild_only()
    @commands.has_permissions(administrator=True)
    async def hierarchy_setup_prefix(self, ctx: commands.Context, *roles: str):
        await self._setup_hierarchy(ctx, ctx.author, ctx.guild, list(roles))

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        await MessageService.reply_command_error(ctx, error)


async def setup(bot):
    await bot.add_cog(HierarchyCommands(bot))
    logger.info("Hierarchy commands cog loaded")
