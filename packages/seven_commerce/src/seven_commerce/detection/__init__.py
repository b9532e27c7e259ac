"""
Message Detection

Keyword classification, delivery extraction and product matching.
"""

from seven_commerce.detection.classifier import Classification, MessageClassifier
from seven_commerce.detection.delivery import (
    DeliveryInfo,
    extract_delivery_info,
    format_delivery_block,
    merge_delivery_block,
    parse_delivery_block,
)
from seven_commerce.detection.matching import MatchResult, extract_quantity, match_product

__all__ = [
    "Classification",
    "DeliveryInfo",
    "MatchResult",
    "MessageClassifier",
    "extract_delivery_info",
    "extract_quantity",
    "format_delivery_block",
    "match_product",
    "merge_delivery_block",
    "parse_delivery_block",
]
