"""
Channel permission fixer used by /fixperms.

Grants the bot the overwrites it needs to post announcements and buttons in
every channel, and denies @everyone mentions server wide.
"""
import discord

from utils.logging_setup import get_logger

logger = get_logger(__name__)

BOT_OVERWRITE = {
    'view_channel': True,
    'send_messages': True,
    'embed_links': True,
    'attach_files': True,
    'add_reactions': True,
}


async def setup_channel_permissions(guild: discord.Guild) -> str:
    """
    Apply bot and @everyone overwrites to every channel of ``guild``.

    Per-channel failures are collected into the report; the pass continues.

    Returns:
        str: human readable report
    """
    logger.info("Channel permission setup started for guild %s", guild.id)
    me = guild.me
    everyone = guild.default_role
    failures = []

    for channel in guild.channels:
        try:
            await channel.set_permissions(me, reason="fixperms", **BOT_OVERWRITE)
            await channel.set_permissions(everyone, reason="fixperms", mention_everyone=False)
        except discord.Forbidden:
            failures.append(f"❌ Missing permissions to manage overwrites in #{channel.name}. Bot role is too low!")
            logger.error("fixperms: no permission to edit overwrites in #%s (%s)", channel.name, channel.id)
        except discord.HTTPException as e:
            failures.append(f"❌ Could not update #{channel.name}: {e.text or e}")
            logger.error("fixperms: updating #%s (%s) failed: %s", channel.name, channel.id, e)

    logger.info("Channel permission setup finished for guild %s: %d failure(s)", guild.id, len(failures))

    report = ["**Permission check and setup complete!**", ""]
    report.extend(failures)
    report.append(
        "✅ **Global rules applied:** Bot has R/W/Embed/React/Attach access everywhere. "
        "@everyone pings are disabled everywhere."
    )
    if failures:
        report.append("")
        report.append("**Some channels failed (❌). Ensure the bot's highest role is above all other roles.**")
    return "\n".join(report)
