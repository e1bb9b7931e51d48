"""ContentFilter — runs every detection category and redacts what they find.

The caller only learns *that* something was redacted, never which category
fired; category names are logged server-side at DEBUG level.
Filtering never rejects a message.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from src.ng_moderation.content_filter.categories import (
    DEFAULT_CATEGORIES,
    DetectionCategory,
    Span,
)

logger = logging.getLogger(__name__)

FILTERED_MARKER = "[FILTERED]"
FILTERED_REASON = "Contains potentially prohibited content"


@dataclass(frozen=True)
class FilterResult:
    is_filtered: bool
    reason: str | None
    filtered_content: str


def _merge(spans: list[Span]) -> list[Span]:
    """Sort and coalesce overlapping or touching spans."""
    merged: list[Span] = []
    for span in sorted(spans, key=lambda s: (s.start, s.end)):
        if merged and span.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Span(last.start, max(last.end, span.end))
        else:
            merged.append(span)
    return merged


def redact(content: str, spans: list[Span]) -> str:
    parts: list[str] = []
    cursor = 0
    for span in _merge(spans):
        parts.append(content[cursor:span.start])
        parts.append(FILTERED_MARKER)
        cursor = span.end
    parts.append(content[cursor:])
    return "".join(parts)


class ContentFilter:
    def __init__(self, categories: Sequence[DetectionCategory] | None = None) -> None:
        self._categories: tuple[DetectionCategory, ...] = tuple(
            DEFAULT_CATEGORIES if categories is None else categories
        )

    @property
    def category_names(self) -> list[str]:
        return [c.name for c in self._categories]

    def filter(self, content: str) -> FilterResult:
        spans: list[Span] = []
        matched: list[str] = []
        for category in self._categories:
            try:
                found = category.detect(content)
            except Exception:
                # A broken category must not let the text through unchecked.
                logger.exception("Detection category %s failed", category.name)
                return FilterResult(True, FILTERED_REASON, FILTERED_MARKER)
            if found:
                matched.append(category.name)
                spans.extend(found)

        if not spans:
            return FilterResult(False, None, content)

        logger.debug("Redacted message content: categories=%s", ",".join(matched))
        return FilterResult(True, FILTERED_REASON, redact(content, spans))


_default_filter = ContentFilter()


def get_content_filter() -> ContentFilter:
    """Module-level filter with the default category set."""
    return _default_filter
