import logging

import discord

from core.models import Auction, Deal
from core.normalizer import parse_timestamp

log = logging.getLogger(__name__)

LINE_TITLE_LIMIT = 80
DESCRIPTION_LIMIT = 4096


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _relative_time(value: str) -> str:
    ends = parse_timestamp(value)
    if ends is None:
        return value
    return f"<t:{int(ends.timestamp())}:R>"


def deal_line(deal: Deal) -> str:
    title = _truncate(deal.title, LINE_TITLE_LIMIT)
    line = f"[{title}]({deal.link}) · **{deal.price}**"
    if deal.original_price and deal.discount:
        line += f" ~~{deal.original_price}~~ ({deal.discount}% off)"
    return line


def auction_line(auction: Auction) -> str:
    title = _truncate(auction.title, LINE_TITLE_LIMIT)
    return f"[{title}]({auction.link}) · **{auction.current_bid}** · ends {_relative_time(auction.end_time)}"


def _join_lines(lines: list[str]) -> str:
    out: list[str] = []
    size = 0
    for line in lines:
        if size + len(line) + 1 > DESCRIPTION_LIMIT:
            log.warning(f"Embed description full, dropping {len(lines) - len(out)} lines")
            break
        out.append(line)
        size += len(line) + 1
    return "\n".join(out)


def results_embed(
    title: str,
    items: list,
    start: int = 0,
    error: str | None = None,
    has_more: bool = False,
) -> discord.Embed:
    color = discord.Color.red() if error and not items else discord.Color.green()
    embed = discord.Embed(title=_truncate(title or "Results", 256), color=color)

    lines = []
    for index, item in enumerate(items, start=start + 1):
        line = auction_line(item) if isinstance(item, Auction) else deal_line(item)
        lines.append(f"`{index:>3}` {line}")
    if lines:
        embed.description = _join_lines(lines)
    elif not error:
        embed.description = "Nothing found."

    if error:
        embed.add_field(name="Error", value=_truncate(error, 1024), inline=False)
    if items and items[0].image_url:
        embed.set_thumbnail(url=items[0].image_url)
    if has_more:
        embed.set_footer(text="More results available")
    return embed


def deal_embed(deal: Deal) -> discord.Embed:
    embed = discord.Embed(
        title=_truncate(deal.title, 256),
        url=deal.link,
        color=discord.Color.green(),
    )
    embed.add_field(name="Price", value=deal.price, inline=True)
    if deal.original_price:
        embed.add_field(name="Was", value=deal.original_price, inline=True)
    if deal.discount:
        embed.add_field(name="Discount", value=f"{deal.discount}%", inline=True)
    embed.add_field(name="Condition", value=deal.condition or "Unknown", inline=True)
    embed.add_field(name="Category", value=deal.category or "General", inline=True)
    if deal.delivery_time:
        embed.add_field(name="Delivery", value=deal.delivery_time, inline=True)
    if deal.watch_count:
        embed.add_field(name="Watchers", value=str(deal.watch_count), inline=True)
    if deal.short_description:
        embed.add_field(name="Description", value=_truncate(deal.short_description, 1024), inline=False)

    if deal.image_url:
        embed.set_image(url=deal.image_url)
    if deal.seller_rating:
        embed.set_footer(text=f"Seller: {deal.seller_rating}")
    return embed
