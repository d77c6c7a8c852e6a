import asyncio
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import discord
from discord import app_commands

from bot.commands.deals import DealsCommands
from config import settings
from core.ebay import ebay_client
from core.ranker import smart_ranker
from core.session import BrowseSession

log_dir = Path("./logs")
log_dir.mkdir(exist_ok=True)

log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
log_level = getattr(logging, settings.log_level)

logging.basicConfig(level=log_level, format=log_format)

file_handler = RotatingFileHandler(
    log_dir / "deal-finder.log",
    maxBytes=10 * 1024 * 1024,
    backupCount=5,
    encoding="utf-8",
)
file_handler.setFormatter(logging.Formatter(log_format))
file_handler.setLevel(log_level)
logging.getLogger().addHandler(file_handler)

log = logging.getLogger(__name__)


class DealFinderBot(discord.Client):
    def __init__(self):
        intents = discord.Intents.default()
        super().__init__(intents=intents)
        self.tree = app_commands.CommandTree(self)
        self.sessions: dict[int, BrowseSession] = {}

    def session_for(self, user_id: int) -> BrowseSession:
        if user_id not in self.sessions:
            self.sessions[user_id] = BrowseSession()
        return self.sessions[user_id]

    async def setup_hook(self) -> None:
        log.info(f"Using eBay {settings.ebay_mode} API, marketplace {settings.ebay_marketplace_id}")
        if settings.ranker_enabled and not settings.ranker_api_key:
            log.warning("Ranking service enabled without an API key; ranking will fall back to local order")

        self.tree.add_command(DealsCommands(self))

        await self.tree.sync()
        log.info("Commands synced")

    async def on_ready(self) -> None:
        log.info(f"Logged in as {self.user}")

    async def close(self) -> None:
        await ebay_client.close()
        await smart_ranker.close()
        await super().close()


async def main() -> None:
    if not settings.discord_bot_token:
        raise SystemExit("DISCORD_BOT_TOKEN is not set")

    bot = DealFinderBot()
    async with bot:
        await bot.start(settings.discord_bot_token)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
