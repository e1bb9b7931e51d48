"""Detection categories for off-platform contact and payment attempts.

Each category is independent: it reports the spans it recognises in the raw
text and knows nothing about redaction or about the other categories. To add
a category, implement `DetectionCategory` and append an instance to
DEFAULT_CATEGORIES.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Span:
    start: int
    end: int


class DetectionCategory(Protocol):
    name: str

    def detect(self, content: str) -> list[Span]: ...


class PatternCategory:
    """Category backed by a single compiled regular expression."""

    def __init__(self, name: str, pattern: re.Pattern[str]) -> None:
        self.name = name
        self._pattern = pattern

    def detect(self, content: str) -> list[Span]:
        return [
            Span(m.start(), m.end())
            for m in self._pattern.finditer(content)
            if m.end() > m.start()
        ]


def _keyword_regex(keyword: str) -> str:
    # "bank transfer" also matches "banktransfer" and "bank   transfer"
    return r"\s*".join(re.escape(part) for part in keyword.split())


class KeywordCategory(PatternCategory):
    """Case-insensitive whole-word keyword list."""

    def __init__(self, name: str, keywords: Iterable[str]) -> None:
        alternation = "|".join(_keyword_regex(k) for k in keywords)
        super().__init__(name, re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE))


EMAIL_ADDRESSES = PatternCategory(
    "email_address",
    re.compile(
        r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"
        # spelled-out form: "jane at gmail dot com", "jane [at] gmail [dot] com"
        r"|\b[A-Za-z0-9._%+-]+\s*(?:\[at\]|\(at\)|\sat\s)\s*[A-Za-z0-9-]+"
        r"\s*(?:\[dot\]|\(dot\)|\sdot\s)\s*[A-Za-z]{2,}\b",
        re.IGNORECASE,
    ),
)

# 7-15 digits, optionally separated by spaces, dashes, dots or parentheses.
# A standalone date (2026-10-19, 19.10.2026) is not a phone number. Separate
# numbers that together reach 7 digits ("pay 1500 2000") are still redacted:
# that over-redaction is accepted, since a phone split into groups looks the same.
_DATE = r"(?:\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[.\-]\d{1,2}[.\-]\d{4})(?!\w|[.\-]\d)"

PHONE_NUMBERS = PatternCategory(
    "phone_number",
    re.compile(
        rf"(?<![\w])(?<!\d[.\-])(?!{_DATE})"
        r"\+?\(?\d(?:[\s\-.()]{0,2}\d){6,14}(?![\w])"
    ),
)

SOCIAL_HANDLES = KeywordCategory(
    "social_handle",
    [
        "whatsapp", "whats app", "telegram", "discord", "skype", "instagram",
        "insta", "facebook", "twitter", "snapchat", "wechat", "signal app",
    ],
)

PAYMENT_SERVICES = KeywordCategory(
    "payment_service",
    [
        "paypal", "venmo", "cashapp", "cash app", "zelle", "bitcoin", "btc",
        "crypto", "cryptocurrency", "usdt", "bank transfer", "wire transfer",
        "upi", "gpay", "google pay", "paytm", "phonepe",
    ],
)

COMPETING_PLATFORMS = KeywordCategory(
    "competing_platform",
    ["fiverr", "upwork", "freelancer", "github.com", "gitlab.com", "bitbucket.org"],
)

SOLICITATION_PHRASES = KeywordCategory(
    "solicitation",
    [
        "contact me", "reach out", "dm me", "message me", "text me",
        "call me", "email me", "mail me", "ping me",
    ],
)

DEFAULT_CATEGORIES: tuple[DetectionCategory, ...] = (
    EMAIL_ADDRESSES,
    PHONE_NUMBERS,
    SOCIAL_HANDLES,
    PAYMENT_SERVICES,
    COMPETING_PLATFORMS,
    SOLICITATION_PHRASES,
)
