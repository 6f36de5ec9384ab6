"""
Parsing package for spendsync.

Pure, synchronous text processing: the message extractor, its rule tables,
and the keyword classifier. Nothing in this package performs I/O.
"""

from spendsync.parsing.classifier import KeywordClassifier, all_categories, classify, suggest
from spendsync.parsing.extractor import (
    extract,
    extract_many,
    extract_reference,
    is_otp_message,
    is_promotional_message,
)

__all__ = [
    "KeywordClassifier",
    "all_categories",
    "classify",
    "extract",
    "extract_many",
    "extract_reference",
    "is_otp_message",
    "is_promotional_message",
    "suggest",
]
