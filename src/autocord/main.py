"""
Autocord
========

A Discord bot that runs administrator-defined automation rules: message,
event and reaction triggers gated by role conditions and cooldowns, driving
replies, embeds, role changes, variables and moderation actions, plus
per-channel content filters with a violation log.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.
    Resolution order:
    1. AUTOCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("AUTOCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from autocord.configuration.app_configuration import app_config
from autocord.database.state_store import StateStore
from autocord.engine.rule_engine import RuleEngine
from autocord.util.discord_sink import DiscordSink
from autocord.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Returns
    -------
    str
        Discord bot token extracted from the loaded environment.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents the rule engine listens on.

    Returns
    -------
    discord.Intents
        Intents enabling guild, member, message content, and reaction events.
    """
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot, engine: RuleEngine) -> None:
    """Register the event listener cog with the provided bot instance."""
    from autocord.listener import events_listener

    events_listener.setup(discord_bot_instance, engine)
    logger.info("All cogs loaded successfully.")


def create_bot(store: StateStore) -> tuple[discord.Bot, RuleEngine]:
    """Instantiate the Discord bot, its platform sink and the rule engine."""
    bot = discord.Bot(intents=build_intents())
    engine = RuleEngine.from_config(store, DiscordSink(bot), app_config)
    load_cogs(bot, engine)
    return bot, engine


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, engine: RuleEngine | None, store: StateStore) -> None:
    """Stop the bot, drop pending transient deletions and close the store."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing Discord bot: %s", exc)

    if engine is not None:
        await engine.shutdown()

    try:
        await store.close()
    except Exception as exc:
        logger.exception("Error during state store shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the store and bot, returning an exit code."""
    token = load_environment()

    store = StateStore()
    try:
        logger.info("Opening state store at %s", app_config.database_path)
        await store.open(app_config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    bot: discord.Bot | None = None
    engine: RuleEngine | None = None
    exit_code = 0
    try:
        bot, engine = create_bot(store)
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, engine, store)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    logger.info("Starting Autocord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
