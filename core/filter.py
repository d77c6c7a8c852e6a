"""Rule-based genuineness and relevance filtering for normalized deals."""

import logging
import re
from dataclasses import dataclass
from typing import Callable

from config import settings
from core.discount import parse_amount
from core.models import Deal, RejectReason

log = logging.getLogger(__name__)

# Phrases that mark a non-primary listing wherever they appear.
ACCESSORY_PHRASES: tuple[str, ...] = (
    "case for",
    "cover for",
    "charger for",
    "cable for",
    "stand for",
    "mount for",
    "screen protector for",
    "skin for",
    "parts for",
    "for parts",
    "replacement part",
    "box only",
    "empty box",
    "manual only",
    "photo of",
    "image of",
    "digital download",
)

# Accessory nouns checked against the title as whole words.
ACCESSORY_NOUNS: tuple[str, ...] = (
    "case",
    "cover",
    "charger",
    "cable",
    "screen protector",
    "protector",
    "tempered glass",
    "strap",
    "holder",
    "dock",
    "adapter",
    "decal",
)

# Anything after one of these is bundled with the main product.
BUNDLE_MARKERS: tuple[str, ...] = ("with", "w/", "+", "&", "and", "includes", "including", "inc")

# An accessory noun this close to the end of the leading segment names what is sold.
HEAD_WINDOW = 2

NON_GENUINE_KEYWORDS: tuple[str, ...] = (
    "replica",
    "inspired by",
    "style of",
    "aaa quality",
    "master copy",
    "custom made to resemble",
    "counterfeit",
    "1:1 copy",
)

AS_IS_KEYWORDS: tuple[str, ...] = ("as-is for parts", "as is for parts")

PARTS_QUERY_TERMS: tuple[str, ...] = ("part", "parts", "spares", "repair", "faulty", "broken")

BULK_PHRASES: tuple[str, ...] = ("wholesale", "job lot", "bulk lot")
BULK_QUERY_TERMS: tuple[str, ...] = ("lot", "bulk", "wholesale", "pack", "pcs", "bundle")
_BULK_PATTERNS = (
    re.compile(r"\bpack of (\d+)"),
    re.compile(r"\blot of (\d+)"),
    re.compile(r"\bbundle of (\d+)"),
    re.compile(r"\b(\d+)\s*(?:pcs|pieces|pack)\b"),
)

GENERIC_QUERY_TERMS = frozenset(
    {
        "deal",
        "deals",
        "sale",
        "sales",
        "cheap",
        "best",
        "top",
        "today",
        "today's",
        "todays",
        "offer",
        "offers",
        "discount",
        "discounts",
        "clearance",
        "bargain",
        "bargains",
        "all",
        "anything",
        "stuff",
        "items",
        "new",
        "trending",
    }
)

_WORD = re.compile(r"[\w'/+]+")


@dataclass(frozen=True)
class FilterOutcome:
    deal: Deal
    reason: RejectReason


def _normalize(text: str | None) -> str:
    return (text or "").lower()


def _contains(text: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def _deal_text(deal: Deal) -> str:
    return _normalize(f"{deal.title} {deal.short_description or ''}")


def _query_words(query: str | None) -> set[str]:
    return set(_WORD.findall(_normalize(query)))


def is_specific_query(query: str | None) -> bool:
    """True when the query names something beyond generic deal vocabulary."""
    return bool(_query_words(query) - GENERIC_QUERY_TERMS)


def _query_mentions(query: str | None, terms: tuple[str, ...]) -> bool:
    words = _query_words(query)
    return any(term in words for term in terms)


_LINKING_WORDS = frozenset({"for", "of", "only"})


def _phrase_requested(phrase: str, query_words: set[str]) -> bool:
    return any(word in query_words for word in phrase.split() if word not in _LINKING_WORDS)


def _marker_pattern(marker: str) -> str:
    pattern = rf"(?<!\w){re.escape(marker)}"
    return pattern + r"(?!\w)" if marker[-1].isalnum() else pattern


_SEGMENT_BREAK = re.compile(r"[,;|]|" + "|".join(_marker_pattern(m) for m in BUNDLE_MARKERS))
_BRACKETED = re.compile(r"\([^)]*\)|\[[^\]]*\]")


def _leading_words(title: str) -> list[str]:
    """Words of the title before any bundle marker or separator, brackets removed."""
    segment = _SEGMENT_BREAK.split(_BRACKETED.sub(" ", title), maxsplit=1)[0]
    return _WORD.findall(segment)


def _noun_at(words: list[str], start: int, noun_words: list[str]) -> bool:
    if start + len(noun_words) > len(words):
        return False
    *body, last = noun_words
    candidate = words[start : start + len(noun_words)]
    return candidate[:-1] == body and candidate[-1] in (last, last + "s", last + "es")


def _heads_listing(title: str, noun: str, product_words: set[str]) -> bool:
    """True when the accessory noun is what the listing sells.

    That is the case when it sits at the end of the leading segment, or when
    none of the product words the query names come before it.
    """
    words = _leading_words(title)
    noun_words = noun.split()
    for start in range(len(words)):
        if not _noun_at(words, start, noun_words):
            continue
        end = start + len(noun_words) - 1
        if end >= len(words) - HEAD_WINDOW:
            return True
        if not product_words.intersection(words[:start]):
            return True
    return False


def is_true_deal(deal: Deal, query: str | None = None) -> bool:
    if deal.discount > 0:
        return True
    current = parse_amount(deal.price)
    original = parse_amount(deal.original_price)
    return current is not None and original is not None and original > current


def has_plausible_original_price(deal: Deal, query: str | None = None) -> bool:
    current = parse_amount(deal.price)
    original = parse_amount(deal.original_price)
    if current is None or original is None or current <= 0:
        return True
    return original / current <= settings.price_multiple_for(deal.category)


def is_genuine(deal: Deal, query: str | None = None) -> bool:
    text = _deal_text(deal)
    if any(_contains(text, keyword) for keyword in NON_GENUINE_KEYWORDS):
        return False
    if any(_contains(text, keyword) for keyword in AS_IS_KEYWORDS):
        return _query_mentions(query, PARTS_QUERY_TERMS)
    return True


def is_single_unit(deal: Deal, query: str | None = None) -> bool:
    if _query_mentions(query, BULK_QUERY_TERMS):
        return True
    text = _deal_text(deal)
    if any(_contains(text, phrase) for phrase in BULK_PHRASES):
        return False
    for pattern in _BULK_PATTERNS:
        for match in pattern.finditer(text):
            if int(match.group(1)) >= settings.bulk_min_quantity:
                return False
    return True


def is_primary_product(deal: Deal, query: str | None = None) -> bool:
    if not is_specific_query(query):
        return True
    query_text = _normalize(query)
    query_words = _query_words(query)
    parts_query = _query_mentions(query, PARTS_QUERY_TERMS)

    text = _deal_text(deal)
    for phrase in ACCESSORY_PHRASES:
        if _contains(text, phrase) and not _phrase_requested(phrase, query_words):
            if parts_query and "part" in phrase:
                continue
            return False

    title = _normalize(deal.title)
    product_words = query_words - GENERIC_QUERY_TERMS
    for noun in ACCESSORY_NOUNS:
        if noun in query_text:
            continue
        if _heads_listing(title, noun, product_words):
            return False
    return True


# Cheap metadata checks first, text analysis last.
PREDICATES: tuple[tuple[RejectReason, Callable[[Deal, str | None], bool]], ...] = (
    (RejectReason.NOT_A_DEAL, is_true_deal),
    (RejectReason.IMPLAUSIBLE_ORIGINAL_PRICE, has_plausible_original_price),
    (RejectReason.NOT_GENUINE, is_genuine),
    (RejectReason.BULK_PRICING, is_single_unit),
    (RejectReason.NOT_PRIMARY_PRODUCT, is_primary_product),
)


def evaluate_deal(deal: Deal, query: str | None = None) -> RejectReason | None:
    """Return the first failing rule, or None when the deal survives."""
    for reason, predicate in PREDICATES:
        if not predicate(deal, query):
            return reason
    return None


def filter_deals(deals: list[Deal], query: str | None = None) -> tuple[list[Deal], list[FilterOutcome]]:
    """Split deals into (kept, rejected), preserving order in both."""
    kept: list[Deal] = []
    rejected: list[FilterOutcome] = []

    for deal in deals:
        reason = evaluate_deal(deal, query)
        if reason:
            log.warning(f"Deal {deal.id} ('{deal.title[:30]}...') filtered out: {reason.value}")
            rejected.append(FilterOutcome(deal=deal, reason=reason))
            continue
        kept.append(deal)

    log.info(f"Filter kept {len(kept)} of {len(deals)} deals (query: {query or 'N/A'})")
    return kept, rejected
