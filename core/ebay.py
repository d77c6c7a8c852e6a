import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import quote

import httpx

from config import settings
from core.models import RawListing, SearchMode, SearchPage
from core.parsers import DEAL_ITEMS_KEY, parse_item_summary, parse_search_results_json

log = logging.getLogger(__name__)

OAUTH_SCOPES = "https://api.ebay.com/oauth/api_scope https://api.ebay.com/oauth/api_scope/buy.deal"
SEARCH_PATH = "/buy/browse/v1/item_summary/search"
ITEM_PATH = "/buy/browse/v1/item/"
DEAL_ITEMS_PATH = "/buy/deal/v1/deal_item"
FIELD_GROUPS = "PRODUCT,COMPACT,SELLER_DETAILS,SHIPPING_DETAILS,TAXONOMY_DETAILS,WATCH_COUNT_DETAILS"

RATE_LIMIT_HEADERS = (
    "X-EBAY-API-CALL-LIMIT",
    "X-EBAY-API-CALL-REMAINING",
    "X-EBAY-API-POOLNAME",
    "X-EBAY-API-RESOURCE-NAME",
    "X-EBAY-API-APP-DAILY-LIMIT",
    "X-EBAY-API-APP-DAILY-REMAINING",
    "X-EBAY-API-USER-DAILY-LIMIT",
    "X-EBAY-API-USER-DAILY-REMAINING",
    "RateCalculation",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
)


class EbayError(Exception):
    pass


class EbayAuthError(EbayError):
    pass


class EbaySearchError(EbayError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class CachedToken:
    token: str
    expires_at: float


def log_rate_limit_headers(response: httpx.Response, context: str) -> None:
    found = [f"{name}: {response.headers[name]}" for name in RATE_LIMIT_HEADERS if name in response.headers]
    if found:
        log.info(f"[{context} ({settings.ebay_mode})] Rate limit info: {'; '.join(found)}")


class TokenProvider:
    """Client-credentials OAuth token, reused until shortly before it expires."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        auth_url: str | None = None,
        expiry_buffer: int | None = None,
        clock: Callable[[], float] = time.time,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.expiry_buffer = expiry_buffer
        self.clock = clock
        self._client = http_client
        self._owns_client = http_client is None
        self._cached: CachedToken | None = None
        self._lock = asyncio.Lock()

    def _credentials(self) -> tuple[str, str]:
        client_id = self.client_id or settings.active_client_id
        client_secret = self.client_secret or settings.active_client_secret
        if not client_id or not client_secret:
            raise EbayAuthError(
                f"eBay API credentials for {settings.ebay_mode} mode (ID and Secret) are not set"
            )
        return client_id, client_secret

    async def _get_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(timeout=settings.ebay_request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _is_fresh(self) -> bool:
        return self._cached is not None and self._cached.expires_at > self.clock()

    async def get_token(self) -> str:
        if self._is_fresh():
            return self._cached.token  # type: ignore[union-attr]

        async with self._lock:
            if self._is_fresh():
                return self._cached.token  # type: ignore[union-attr]
            return await self._request_token()

    async def refresh(self) -> str:
        async with self._lock:
            return await self._request_token()

    def invalidate(self) -> None:
        self._cached = None

    async def _request_token(self) -> str:
        client_id, client_secret = self._credentials()
        credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        client = await self._get_client()

        try:
            resp = await client.post(
                self.auth_url or settings.ebay_auth_url,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Authorization": f"Basic {credentials}",
                },
                data={"grant_type": "client_credentials", "scope": OAUTH_SCOPES},
            )
        except httpx.HTTPError as e:
            raise EbayAuthError(f"eBay auth request failed: {e}") from e

        if resp.status_code >= 400:
            raise EbayAuthError(
                f"eBay API authentication failed ({settings.ebay_mode}): "
                f"{resp.status_code} {resp.reason_phrase} - {resp.text}"
            )

        try:
            data = resp.json()
            token = data["access_token"]
            expires_in = int(data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            raise EbayAuthError(f"Malformed eBay auth response: {e}") from e

        buffer = self.expiry_buffer if self.expiry_buffer is not None else settings.token_expiry_buffer_seconds
        self._cached = CachedToken(token=token, expires_at=self.clock() + expires_in - buffer)
        log.info(f"Obtained eBay {settings.ebay_mode} token, valid for {expires_in - buffer}s")
        return token


class EbayClient:
    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        marketplace_id: str | None = None,
    ):
        self.tokens = token_provider or TokenProvider()
        self.base_url = base_url
        self.marketplace_id = marketplace_id
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(timeout=settings.ebay_request_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
        await self.tokens.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url or settings.ebay_api_base_url}{path}"

    async def _get(self, url: str, params: dict | None, context: str) -> httpx.Response:
        token = await self.tokens.get_token()
        client = await self._get_client()
        resp = await client.get(
            url,
            params=params,
            headers={
                "Authorization": f"Bearer {token}",
                "X-EBAY-C-MARKETPLACE-ID": self.marketplace_id or settings.ebay_marketplace_id,
            },
        )
        log_rate_limit_headers(resp, context)
        if resp.status_code >= 400:
            log.error(f"{context} error: {resp.status_code} {resp.reason_phrase}. {resp.text}")
            raise EbaySearchError(f"{context} failed with status {resp.status_code}", resp.status_code)
        return resp

    async def search_items(
        self,
        query: str,
        limit: int = 20,
        offset: int = 0,
        mode: SearchMode = SearchMode.ALL,
    ) -> SearchPage:
        params = {
            "q": query,
            "limit": str(limit),
            "offset": str(offset),
            "fieldgroups": FIELD_GROUPS,
        }
        if mode is SearchMode.AUCTIONS:
            params["filter"] = "buyingOptions:{AUCTION}"

        log.info(f"Searching eBay ({settings.ebay_mode}): query={query!r}, mode={mode.value}, offset={offset}")
        resp = await self._get(self._url(SEARCH_PATH), params, f"Search {query[:30]!r}")
        try:
            return await parse_search_results_json(resp.json(), offset=offset)
        except ValueError as e:
            raise EbaySearchError(f"Malformed search response: {e}") from e

    async def fetch_marketplace_deals(
        self,
        category_ids: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchPage:
        params = {"limit": str(limit), "offset": str(offset)}
        if category_ids:
            params["category_ids"] = category_ids

        log.info(f"Fetching marketplace deal items: offset={offset}, limit={limit}")
        resp = await self._get(self._url(DEAL_ITEMS_PATH), params, "Deal items")
        try:
            return await parse_search_results_json(resp.json(), offset=offset, items_key=DEAL_ITEMS_KEY)
        except ValueError as e:
            raise EbaySearchError(f"Malformed deal items response: {e}") from e

    async def get_item(self, item_id: str) -> RawListing:
        url = self._url(ITEM_PATH + quote(item_id, safe=""))
        resp = await self._get(url, {"fieldgroups": FIELD_GROUPS}, f"Item details {item_id}")
        try:
            data = resp.json()
        except ValueError as e:
            raise EbaySearchError(f"Malformed item response: {e}") from e
        if not isinstance(data, dict):
            raise EbaySearchError("Malformed item response: not an object")
        return parse_item_summary(data)


ebay_client = EbayClient()
