"""
Product matching and quantity extraction.

Quantities are read next to the product mention so that model numbers
("Montre K20", "Samsung S21") are not taken for quantities.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

from seven_commerce.detection.keywords import FRENCH_NUMBERS, PRODUCT_STOPWORDS

MIN_QUANTITY = 1
MAX_QUANTITY = 100

_AFTER_PRODUCT_RE = re.compile(r"^[\sx:\-()]*(\d+)\b", re.IGNORECASE)
_INTENT_QUANTITY_RE = re.compile(
    r"(?:je\s+(?:veux|prends|voudrais|commande|souhaite))\s+(\d+)", re.IGNORECASE
)
_TOKEN_SPLIT_RE = re.compile(r"[\s,.'\"]+")
_DIGITS_RE = re.compile(r"\d+")


@dataclass
class MatchResult:
    matched: bool
    score: int = 0


def _word_in_text(word: str, text: str) -> bool:
    if word in text:
        return True
    if not word.endswith("s") and word + "s" in text:
        return True
    if word.endswith("s") and word[:-1] in text:
        return True
    return False


def match_product(text: str, product: Any) -> MatchResult:
    """
    Match a product (anything with `name` and `sku`) against a message.

    Scores: exact name 10, plural/singular name 9, SKU 8, otherwise the
    number of significant name words found.
    """
    lower = (text or "").lower()
    name = (product.name or "").lower()
    if not name:
        return MatchResult(matched=False)

    if name in lower:
        return MatchResult(matched=True, score=10)

    singular = name[:-1] if name.endswith("s") else name
    if name + "s" in lower or (singular and singular in lower):
        return MatchResult(matched=True, score=9)

    words = [w for w in name.split() if len(w) > 2 and w not in PRODUCT_STOPWORDS]
    matched_words = [w for w in words if _word_in_text(w, lower)]
    required = max(1, math.ceil(len(words) / 2))
    if words and len(matched_words) >= required:
        return MatchResult(matched=True, score=len(matched_words))

    sku = getattr(product, "sku", None)
    if sku and sku.lower() in lower:
        return MatchResult(matched=True, score=8)

    return MatchResult(matched=False)


def _clamp(value: int) -> int:
    return min(max(value, MIN_QUANTITY), MAX_QUANTITY)


def extract_quantity(text: str, product_name: str) -> int:
    """Quantity ordered for `product_name` in `text`, default 1."""
    lower = (text or "").lower()
    name = (product_name or "").lower()

    words = [w for w in name.split() if len(w) > 2]
    search_word = words[0] if words else name
    # Digit runs of the name itself ("21" in "S21") are never quantities
    model_numbers = set(_DIGITS_RE.findall(name))

    index = lower.rfind(search_word) if search_word else -1
    if index == -1:
        match = _INTENT_QUANTITY_RE.search(lower)
        if match:
            return _clamp(int(match.group(1)))
        return 1

    # "Savon x 3", "Savon (3)"
    after = lower[index + len(search_word):index + len(search_word) + 20]
    match = _AFTER_PRODUCT_RE.match(after)
    if match:
        qty = int(match.group(1))
        if MIN_QUANTITY <= qty <= MAX_QUANTITY and match.group(1) not in model_numbers:
            return qty

    before = lower[max(0, index - 60):index].strip()
    last_qty = None
    for token in _TOKEN_SPLIT_RE.split(before):
        if token.isdigit():
            if token not in model_numbers:
                last_qty = int(token)
        elif token in FRENCH_NUMBERS:
            last_qty = FRENCH_NUMBERS[token]

    if last_qty is not None and MIN_QUANTITY <= last_qty <= MAX_QUANTITY:
        return last_qty
    return 1
