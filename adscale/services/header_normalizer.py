"""
Maps Meta insight report column names to canonical record keys.

Headers arrive in several spellings depending on locale, currency and
whether the export used API field names ("inline_link_click_ctr") or the
Ads Manager labels ("CTR (link click-through rate)"). Everything funnels
through normalize_header() so the rest of the pipeline sees one vocabulary.
"""
import re
from typing import Dict, List

# ISO 4217 codes Meta appends to money columns, e.g. "Amount spent (VND)"
# after the parentheses are stripped, or "amount_spent_usd" from API exports
CURRENCY_CODES = (
    "usd", "eur", "gbp", "aud", "cad", "nzd", "sgd", "hkd", "jpy", "krw",
    "cny", "twd", "thb", "vnd", "idr", "myr", "php", "inr", "brl", "mxn",
    "chf", "sek", "nok", "dkk", "pln", "try", "zar", "aed", "sar", "ils",
)

_WHITESPACE = re.compile(r"\s+")
_PARENTHETICAL = re.compile(r"\(.*?\)")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")
_ALL_SUFFIX = re.compile(r"_all$")
_CURRENCY_SUFFIX = re.compile(r"_(?:%s)$" % "|".join(CURRENCY_CODES))
_AMOUNT_SPENT = re.compile(r"^amount_spent_.*$")
_VIDEO_PLAYS = re.compile(r"^(?:3-second|3_second)_video_plays$")

# Labels whose meaning lives inside the parentheses, matched before those
# are stripped (lowercased, whitespace already underscored)
_PARENTHETICAL_ALIASES: Dict[str, str] = {
    "ctr_(link_click-through_rate)": "inline_link_ctr",
    "cpc_(cost_per_link_click)": "cost_per_inline_link_click",
    "cpm_(cost_per_1,000_impressions)": "cpm",
    "purchase_roas_(return_on_ad_spend)": "purchase_roas",
}

# Alternative spellings of canonical keys
HEADER_ALIASES: Dict[str, str] = {
    "ad_set_id": "adset_id",
    "ad_set_name": "adset_name",
    "spend": "amount_spent",
    "inline_link_click_ctr": "inline_link_ctr",
    "link_click-through_rate": "inline_link_ctr",
    "cost_per_link_click": "cost_per_inline_link_click",
    "cost_per_results": "cost_per_result",
    "purchase_conversion_value": "purchases_conversion_value",
    "messaging_contacts": "total_messaging_contacts",
    "reporting_starts": "date_start",
    "reporting_ends": "date_stop",
}


def normalize_header(raw: str) -> str:
    """
    Normalize one column name to its canonical key.

    Total and idempotent: normalize_header(normalize_header(x)) equals
    normalize_header(x), and an empty header stays empty.
    """
    if not raw:
        return ""

    key = _WHITESPACE.sub("_", raw.strip().lower())

    if key in _PARENTHETICAL_ALIASES:
        return _PARENTHETICAL_ALIASES[key]

    key = _PARENTHETICAL.sub("", key)
    key = _REPEATED_UNDERSCORE.sub("_", key)
    key = key.strip("_")
    # "_all" and currency suffixes can stack in either order
    stripped = None
    while stripped != key:
        stripped = key
        key = _CURRENCY_SUFFIX.sub("", _ALL_SUFFIX.sub("", key))
    key = _AMOUNT_SPENT.sub("amount_spent", key)
    key = _VIDEO_PLAYS.sub("three_second_video_plays", key)
    key = key.strip("_").strip()

    return HEADER_ALIASES.get(key, key)


def normalize_headers(raw_headers: List[str]) -> List[str]:
    # Excel exports prefix the first header with a BOM
    if raw_headers:
        raw_headers = [raw_headers[0].lstrip("\ufeff")] + list(raw_headers[1:])
    return [normalize_header(h) for h in raw_headers]
