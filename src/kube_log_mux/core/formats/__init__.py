"""Line classification.

Contains the stern envelope parser, leading-timestamp patterns and the JSON
shape rules used by MessageClassifier.
"""

from __future__ import annotations

from .base import (
    FRAMEWORK_PREFIXES,
    MESSAGE_KEYS,
    TIME_KEYS,
    as_text,
    first_timestamp,
    loads_structured,
    split_leading_timestamp,
)
from .classifier import MessageClassifier
from .envelope import SternEnvelope, parse_envelope
from .shapes import classify_value, is_exception_shaped, is_proxy_shaped

__all__ = [
    "FRAMEWORK_PREFIXES",
    "MESSAGE_KEYS",
    "MessageClassifier",
    "SternEnvelope",
    "TIME_KEYS",
    "as_text",
    "classify_value",
    "first_timestamp",
    "is_exception_shaped",
    "is_proxy_shaped",
    "loads_structured",
    "parse_envelope",
    "split_leading_timestamp",
]
