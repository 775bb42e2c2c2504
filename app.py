import os
import asyncio
import signal
import discord
from discord.ext import commands
from dotenv import load_dotenv

from utils.config_manager import create_backup, get_data_status
from utils.logging_setup import setup_logging, get_logger

# Load environment variables from .env file
load_dotenv()

# Initialize logging before bot creation
setup_logging()
logger = get_logger(__name__)

from forms.workflow import ApproveComebackButton, BreakResignView, ComebackRequestView  # noqa: E402

# Initialize bot with intents
intents = discord.Intents.default()
intents.message_content = True
intents.members = True

bot = commands.Bot(command_prefix=os.getenv('BOT_PREFIX', '!'), intents=intents)

_startup_done = False


@bot.event
async def on_ready():
    global _startup_done
    logger.info('Logged in as %s (ID: %s)', bot.user, bot.user.id)

    # on_ready fires again after every reconnect
    if _startup_done:
        logger.info('Reconnected, start-up already completed')
        return
    _startup_done = True

    logger.info("Checking data file...")
    status = get_data_status()
    if status['data_exists'] and status['data_valid']:
        backup_path = create_backup("startup")
        if backup_path:
            logger.info("Startup backup created: %s", backup_path)
        logger.info("Data file OK, %s backup(s) available", status['backup_count'])
    else:
        logger.warning("Data file missing or invalid, it will be recreated or recovered on first access")

    await load_extensions()

    # Persistent interactive items survive restarts by custom_id
    bot.add_view(BreakResignView())
    bot.add_view(ComebackRequestView())
    bot.add_dynamic_items(ApproveComebackButton)
    logger.info("Persistent workflow buttons registered")

    try:
        synced = await bot.tree.sync()
        logger.info('Synced %s application command(s)', len(synced))
    except discord.HTTPException as e:
        logger.error('Failed to sync application commands: %s', e)

    logger.info('Bot is ready in %s guild(s)', len(bot.guilds))


async def load_extensions():
    """Load all extension cogs from the cogs directory."""
    for filename in sorted(os.listdir('./cogs')):
        if filename.endswith('.py') and not filename.startswith('_'):
            cog_name = filename[:-3]
            try:
                await bot.load_extension(f'cogs.{cog_name}')
                logger.info('Loaded extension: %s', cog_name)
            except commands.ExtensionError as e:
                logger.error('Failed to load extension %s: %s', cog_name, e)


async def shutdown_handler(sig=None):
    """Gracefully shutdown the bot."""
    logger.warning("Received shutdown signal %s", sig)
    try:
        await bot.close()
        logger.info("Discord connection closed")
    except discord.HTTPException as e:
        logger.error("Error while closing the connection: %s", e)


def read_token():
    """Token from DISCORD_TOKEN, falling back to token.txt"""
    token = os.environ.get('DISCORD_TOKEN')
    if token:
        return token

    logger.warning("DISCORD_TOKEN not found in environment or .env, trying token.txt...")
    try:
        with open('token.txt', 'r') as f:
            token = f.read().strip()
    except FileNotFoundError:
        token = None

    if not token:
        raise ValueError(
            "No Discord token found. Please either:\n"
            "1. Set the DISCORD_TOKEN environment variable\n"
            "2. Create a .env file with DISCORD_TOKEN=your_token\n"
            "3. Create a token.txt file containing just your token"
        )
    logger.info("Token read from token.txt")
    return token


async def main(token):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown_handler(s)))
        except NotImplementedError:
            # Windows event loops have no signal handler support, KeyboardInterrupt still stops the bot
            pass

    async with bot:
        await bot.start(token)


if __name__ == '__main__':
    logger.info("Starting Staff Hierarchy bot...")
    logger.info("Press Ctrl+C to stop")

    try:
        asyncio.run(main(read_token()))
    except KeyboardInterrupt:
        pass
    logger.info("Bot stopped")
