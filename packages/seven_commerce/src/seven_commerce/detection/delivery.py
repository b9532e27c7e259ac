"""
Delivery information extraction.

Customers send their address as free text ("Bingerville, Santai 0758519080",
"ville: Abidjan quartier Cocody", "mon numéro 07 58 51 90 80"). The result is
stored in order notes as a single line:

    [LIVRAISON]ville:Bingerville|quartier:Santai|tel:0758519080
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

LETTER = r"[^\W\d_]"
_NAME = rf"{LETTER}(?:{LETTER}|[\s-]){{0,60}}?"
_PLACE = rf"[^\W_](?:[^\W_]|[\s-]){{0,60}}?"
_PHONE = r"\+?\d[\d\s-]{7,}"

# "City, Quartier 0758519080" (or without the comma, one word each side)
_WHOLE_MESSAGE_PATTERNS = [
    re.compile(
        rf"^\s*({LETTER}(?:{LETTER}|[\s-]){{1,40}}?)\s*,\s*([^\W_](?:[^\W_]|[\s-]){{1,40}}?)\s+({_PHONE})\s*$"
    ),
    re.compile(
        rf"^\s*({LETTER}[\w-]*)\s+({LETTER}[\w-]*(?:\s+{LETTER}[\w-]*)?)\s+({_PHONE})\s*$"
    ),
]

_LABEL_RE = re.compile(
    r"\b(?:ville|commune|quartier|numéro|num|tel|téléphone|contact|je suis|j'habite)\b",
    re.IGNORECASE,
)

_CITY_PATTERNS = [
    re.compile(
        rf"(?:ville|commune|à)\s*:?\s*({_NAME})(?:\s*,|\s*$|\s+quartier|\s+numéro)",
        re.IGNORECASE,
    ),
    re.compile(rf"(?:je\s+suis\s+à|j'habite\s+à)\s+({_NAME})(?:\s*,|\s*$)", re.IGNORECASE),
]

_NEIGHBORHOOD_PATTERNS = [
    re.compile(rf"quartier\s*:?\s*({_PLACE})(?:\s*,|\s*$|\s+numéro)", re.IGNORECASE),
    re.compile(rf"(?:au|à)\s+quartier\s+({_PLACE})(?:\s*,|\s*$)", re.IGNORECASE),
]

_PHONE_PATTERNS = [
    re.compile(r"(?:numéro|tel|téléphone|contact)\s*:?\s*(\+?[\d\s-]{8,})", re.IGNORECASE),
    re.compile(
        r"(?:^|\s)(\+?(?:225|229|226|228|221|223|224)?\s*\d{2}\s*\d{2}\s*\d{2}\s*\d{2,3})(?:\s|$)"
    ),
    re.compile(r"\b(0\d{8,9})\b"),
    re.compile(r"\b(\+?(?:225|224)\s*\d[\d\s]{7,})\b"),
]

_BLOCK_RE = re.compile(r"\[LIVRAISON\]([^\n]*)")
BLOCK_TAG = "[LIVRAISON]"


@dataclass
class DeliveryInfo:
    city: str | None = None
    neighborhood: str | None = None
    phone: str | None = None

    @property
    def has_delivery_info(self) -> bool:
        return bool(self.city or self.neighborhood or self.phone)


def clean_phone(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def _first_match(
    text: str,
    patterns: list[re.Pattern],
    transform: Callable[[str], str] | None = None,
) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            value = match.group(1).strip()
            if transform:
                value = transform(value)
            if value:
                return value
    return None


def extract_delivery_info(text: str) -> DeliveryInfo:
    """Extract city, neighborhood and phone from a customer message."""
    text = text or ""

    # Labelled messages ("quartier Cocody, numéro ...") go to the patterns below
    whole_patterns = [] if _LABEL_RE.search(text) else _WHOLE_MESSAGE_PATTERNS
    for pattern in whole_patterns:
        match = pattern.match(text)
        if match:
            return DeliveryInfo(
                city=match.group(1).strip() or None,
                neighborhood=match.group(2).strip() or None,
                phone=clean_phone(match.group(3)) or None,
            )

    return DeliveryInfo(
        city=_first_match(text, _CITY_PATTERNS),
        neighborhood=_first_match(text, _NEIGHBORHOOD_PATTERNS),
        phone=_first_match(text, _PHONE_PATTERNS, clean_phone),
    )


def format_delivery_block(info: DeliveryInfo) -> str | None:
    """`[LIVRAISON]ville:X|quartier:Y|tel:Z`, or None when nothing is known."""
    parts = []
    if info.city:
        parts.append(f"ville:{info.city}")
    if info.neighborhood:
        parts.append(f"quartier:{info.neighborhood}")
    if info.phone:
        parts.append(f"tel:{info.phone}")
    if not parts:
        return None
    return BLOCK_TAG + "|".join(parts)


def merge_delivery_block(notes: str | None, block: str) -> str:
    """Replace the existing block in `notes`, or append it on a new line."""
    notes = notes or ""
    if BLOCK_TAG in notes:
        return _BLOCK_RE.sub(lambda _: block, notes, count=1)
    return f"{notes}\n{block}".strip()


def parse_delivery_block(notes: str | None) -> DeliveryInfo:
    info = DeliveryInfo()
    match = _BLOCK_RE.search(notes or "")
    if not match:
        return info

    for part in match.group(1).split("|"):
        key, _, value = part.partition(":")
        value = value.strip()
        if not value:
            continue
        if key == "ville":
            info.city = value
        elif key == "quartier":
            info.neighborhood = value
        elif key == "tel":
            info.phone = value
    return info
