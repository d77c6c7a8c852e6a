import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from bot.embeds import deal_embed, results_embed
from core.models import View
from core.service import fetch_item_details
from core.session import BrowseSession

if TYPE_CHECKING:
    from bot.main import DealFinderBot

log = logging.getLogger(__name__)

STALE_RESULTS_MESSAGE = "These results are out of date. Run the search again."


class LoadMoreView(discord.ui.View):
    def __init__(self, session: BrowseSession, owner_id: int, timeout: float = 600):
        super().__init__(timeout=timeout)
        self.session = session
        self.owner_id = owner_id
        self.generation = session.generation
        self.load_more.disabled = not session.can_load_more

    @property
    def is_stale(self) -> bool:
        return self.generation != self.session.generation

    async def _disable(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        button.disabled = True
        try:
            await interaction.edit_original_response(view=self)
        except discord.HTTPException as e:
            log.warning(f"Failed to disable previous Load more button: {e}")

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.owner_id:
            await interaction.response.send_message("Run your own search to browse results.", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Load more", style=discord.ButtonStyle.primary)
    async def load_more(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.defer()
        if self.is_stale:
            await self._disable(interaction, button)
            await interaction.followup.send(STALE_RESULTS_MESSAGE, ephemeral=True)
            return

        start = len(self.session.displayed)
        items = await self.session.load_more()
        await self._disable(interaction, button)

        if self.is_stale:
            await interaction.followup.send(STALE_RESULTS_MESSAGE, ephemeral=True)
            return

        if not items:
            message = self.session.error or "No more results."
            await interaction.followup.send(message, ephemeral=True)
            return

        embed = results_embed(
            self.session.title or "Results",
            items,
            start=start,
            has_more=self.session.can_load_more,
        )
        next_view = LoadMoreView(self.session, self.owner_id)
        await interaction.followup.send(embed=embed, view=next_view)


@app_commands.guild_install()
@app_commands.allowed_contexts(guilds=True, dms=True, private_channels=True)
class DealsCommands(app_commands.Group):
    def __init__(self, bot: "DealFinderBot"):
        super().__init__(name="deals", description="Browse eBay deals and auctions")
        self.bot = bot

    async def _browse(self, interaction: discord.Interaction, view: View, query: str | None) -> None:
        try:
            await interaction.response.defer()
        except discord.errors.NotFound:
            return

        session = self.bot.session_for(interaction.user.id)
        current = await session.load(view, query)
        if not current:
            return

        embed = results_embed(
            session.title or "Results",
            session.displayed,
            error=session.error,
            has_more=session.can_load_more,
        )
        embeds = [embed]
        if session.fallback:
            embeds.append(results_embed("You might also like", session.fallback))

        try:
            await interaction.followup.send(embeds=embeds, view=LoadMoreView(session, interaction.user.id))
        except discord.errors.NotFound:
            pass

    @app_commands.command(name="search", description="Search for discounted items")
    @app_commands.describe(query="What are you looking for?")
    async def search(self, interaction: discord.Interaction, query: str) -> None:
        await self._browse(interaction, View.DEALS, query)

    @app_commands.command(name="auctions", description="Browse auctions ending soon")
    @app_commands.describe(query="Search term, leave empty for trending auctions")
    async def auctions(self, interaction: discord.Interaction, query: str | None = None) -> None:
        await self._browse(interaction, View.AUCTIONS, query)

    @app_commands.command(name="home", description="Show today's top deals")
    async def home(self, interaction: discord.Interaction) -> None:
        await self._browse(interaction, View.DEALS, None)

    @app_commands.command(name="item", description="Show details for one item")
    @app_commands.describe(item_id="eBay item id, e.g. v1|1234567890|0")
    async def item(self, interaction: discord.Interaction, item_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        deal = await fetch_item_details(item_id)
        if deal is None:
            await interaction.followup.send(f"Could not load item `{item_id}`")
            return

        await interaction.followup.send(embed=deal_embed(deal))
