import dataclasses
import json
import logging
from typing import Any, Awaitable, Callable

import httpx

from config import settings
from core.models import Deal

log = logging.getLogger(__name__)

SYSTEM_PROMPT = """You rank eBay deals for shoppers looking for a deal on a SINGLE consumer item.
You receive a JSON array of deals and an optional user query.

Exclude any deal that:
1. Is an accessory, part or non-physical item when the query names a specific product
   ("case for", "charger for", "screen protector for", "for parts", "box only", "manual only",
   "digital download").
2. Looks non-genuine ("replica", "inspired by", "AAA quality", "master copy", "as-is for parts"
   unless the query is about parts).
3. Prices a multi-unit lot ("pack of 200", "100pcs", "lot of 50", "wholesale bundle").
4. Has an original price grossly inflated beyond any plausible retail value for the item.
5. Has neither a positive discountPercentage nor an originalPrice above price.

Sort the rest by discountPercentage descending. Break ties by larger absolute saving, better
condition (New above Used above For parts), seller rating and feedback count, more recent
postedDate, higher watchCount, faster delivery.

You MUST respond with valid JSON only, no markdown or extra text.
Response format: {"rankedDeals": [{"id": "<id from input>"}, ...]}"""

RankFunction = Callable[[list[Deal], str | None], Awaitable[Any]]


class RankerError(Exception):
    pass


def _deal_payload(deal: Deal) -> dict:
    return {
        "id": deal.id,
        "title": deal.title,
        "price": deal.price,
        "originalPrice": deal.original_price,
        "discountPercentage": deal.discount_percentage,
        "postedDate": deal.posted_date,
        "deliveryTime": deal.delivery_time,
        "category": deal.category,
        "itemCondition": deal.condition,
        "sellerRating": deal.seller_rating,
        "shortDescription": deal.short_description,
        "watchCount": deal.watch_count,
    }


def _compatible(original: Any, value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if original is None:
        return isinstance(value, (str, int))
    return isinstance(value, type(original))


def restore_fields(original: Deal, returned: dict) -> Deal:
    """Overlay the service's values on the original, keeping anything omitted or mistyped."""
    names = {f.name for f in dataclasses.fields(Deal)} - {"id"}
    updates = {
        key: value
        for key, value in returned.items()
        if key in names and _compatible(getattr(original, key), value)
    }
    return dataclasses.replace(original, **updates)


def merge_ranked(deals: list[Deal], ranked: list) -> list[Deal]:
    """Keep only returned ids that exist in the input, in the service's order."""
    by_id = {deal.id: deal for deal in deals}
    seen: set[str] = set()
    result: list[Deal] = []

    for entry in ranked:
        if isinstance(entry, dict):
            deal_id, fields = str(entry.get("id")), entry
        elif isinstance(entry, (str, int)):
            deal_id, fields = str(entry), {}
        else:
            log.warning(f"Ranking service returned an unreadable entry: {entry!r}")
            continue

        if deal_id not in by_id:
            log.warning(f"Ranking service returned unknown deal id '{deal_id}'. Discarding it.")
            continue
        if deal_id in seen:
            continue
        seen.add(deal_id)
        result.append(restore_fields(by_id[deal_id], fields))

    return result


class SmartDealRanker:
    def __init__(
        self,
        enabled: bool | None = None,
        rank_fn: RankFunction | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._enabled = enabled
        self._rank_fn = rank_fn
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return settings.ranker_enabled

    async def _get_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": f"Bearer {settings.ranker_api_key}",
                    "Content-Type": "application/json",
                },
                timeout=settings.ranker_timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def rank_deals(self, deals: list[Deal], user_query: str | None = None) -> list[Deal]:
        """Filter and reorder deals with the external service.

        Falls back to the input list, in its original order, on any failure.
        """
        if not deals:
            return []
        if not self.enabled:
            return list(deals)
        ranked = await self.try_rank_deals(deals, user_query)
        return list(deals) if ranked is None else ranked

    async def try_rank_deals(self, deals: list[Deal], user_query: str | None = None) -> list[Deal] | None:
        """Like ``rank_deals`` but returns None when the service fails."""
        if not deals:
            return []

        log.info(f"Ranking {len(deals)} deals with external service. User query: {user_query or 'N/A'}")
        rank_fn = self._rank_fn or self._request_ranking
        try:
            ranked = await rank_fn(deals, user_query)
            if isinstance(ranked, dict):
                ranked = ranked.get("rankedDeals")
            if not isinstance(ranked, list):
                raise RankerError(f"Expected a list of ranked deals, got {type(ranked).__name__}")
            result = merge_ranked(deals, ranked)
        except Exception as e:
            log.error(f"Ranking service failed for {len(deals)} deals: {e}", exc_info=True)
            return None

        if not result:
            log.warning(f"Ranking service filtered out all {len(deals)} deals. User query: {user_query or 'N/A'}")
        log.info(f"Ranking service returned {len(result)} of {len(deals)} deals")
        return result

    async def _request_ranking(self, deals: list[Deal], user_query: str | None) -> Any:
        client = await self._get_client()

        user_prompt = f"""User query: "{user_query or ''}"

Deals:
{json.dumps([_deal_payload(d) for d in deals], ensure_ascii=False)}"""

        payload = {
            "model": settings.ranker_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.1,
        }

        resp = await client.post(settings.ranker_endpoint, json=payload)
        resp.raise_for_status()
        data = resp.json()
        content = data["choices"][0]["message"]["content"]
        return self._parse_response(content)

    def _parse_response(self, content: str) -> Any:
        content = content.strip()
        if content.startswith("```"):
            lines = content.split("\n")
            content = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
        return json.loads(content)


smart_ranker = SmartDealRanker()
